"""GroupSplit: shared expense tracking for groups."""

__version__ = "1.0.0"
