"""BoardPilot: natural-language operations for monday.com boards."""

__version__ = "0.1.0"
