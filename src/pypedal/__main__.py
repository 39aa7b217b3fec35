"""Allow ``python -m pypedal``."""

from pypedal.cli import main

raise SystemExit(main())
