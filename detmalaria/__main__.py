"""Allow ``python -m detmalaria``."""
from .run import main

raise SystemExit(main())
