"""Allow ``python -m projdash``."""

from projdash.cli import app

app()
