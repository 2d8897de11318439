"""Multi-level CPA distribution engine."""

__version__ = "1.0.0"
