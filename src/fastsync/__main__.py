"""Allow running fastsync with `python -m fastsync`."""

import sys

from .cli import main

sys.exit(main())
