"""Allow running devflash as `python -m devflash`."""

from devflash.cli import app

app()
