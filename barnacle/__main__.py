"""Allow ``python -m barnacle``."""

import sys

from barnacle.cli import main

sys.exit(main())
