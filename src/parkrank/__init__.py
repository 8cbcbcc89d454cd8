"""Pairwise park ranking with voting streaks, achievements and weekly competitions."""

__version__ = "0.1.0"
