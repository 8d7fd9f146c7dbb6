"""Allow ``python -m orgsync``."""

import sys

from orgsync.app import main

sys.exit(main())
