"""BigQuery dry-run cost previews for SQL editors."""

__version__ = "0.1.0"

__all__ = ["__version__"]
