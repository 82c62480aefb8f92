"""ZPR: automated pull request reviewer."""

__version__ = "0.1.0"
