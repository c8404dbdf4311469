"""Exhibit API — membership back end for the exhibit site."""

__version__ = "0.1.0"
