import sys

from meshcheck.cli import main

sys.exit(main())
