import sys

from rangekit.cli import main

sys.exit(main())
