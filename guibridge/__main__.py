"""Allow `python -m guibridge serve ...` when the console script is not on PATH."""

import sys

from guibridge.cli import main

sys.exit(main())
