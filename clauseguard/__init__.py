"""ClauseGuard - contract text extraction, structured analysis and compliance."""

__version__ = "1.0.0"
