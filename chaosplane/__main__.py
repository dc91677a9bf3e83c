import sys

from chaosplane.cli import main

sys.exit(main())
