import sys

from flypoly.cli import main

sys.exit(main())
