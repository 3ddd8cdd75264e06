import sys

from suji.cli import main

raise SystemExit(main(sys.argv[1:]))
