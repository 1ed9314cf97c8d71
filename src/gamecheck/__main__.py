import sys

from gamecheck.cli import main

sys.exit(main())
