"""BlockDebt: community loan tracking with daily compounding interest."""

__version__ = "0.1.0"
