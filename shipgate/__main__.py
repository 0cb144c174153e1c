"""Allow `python -m shipgate`."""

from shipgate.cli import main

raise SystemExit(main())
