import sys

from devforge.cli import main

sys.exit(main())
