"""Allow ``python -m shopfeed``."""

import sys

from shopfeed.cli import main

sys.exit(main())
