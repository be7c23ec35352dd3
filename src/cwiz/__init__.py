"""Contract intake wizard engine for modular-home construction projects."""

__version__ = "0.1.0"
