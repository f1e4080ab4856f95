"""Utility helpers shared across bqpreview."""

from .formatters import format_data_size, format_elapsed, megabytes_to_bytes, truncate_message

__all__ = ["format_data_size", "format_elapsed", "megabytes_to_bytes", "truncate_message"]
