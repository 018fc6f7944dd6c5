import sys

from flip_hash_benchmarks.cli import main

sys.exit(main())
