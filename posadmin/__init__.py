"""POS back-office administration tooling."""

__version__ = "1.0.0"
