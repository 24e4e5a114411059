"""epub2bundle - compile synchronized-media EPUBs into player bundles."""

__version__ = "0.1.0"
