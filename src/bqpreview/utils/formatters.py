"""Human-readable formatting helpers shared by the status presenter and CLI."""

from __future__ import annotations

__all__ = ["format_data_size", "truncate_message", "format_elapsed", "megabytes_to_bytes"]

_SIZE_UNITS: tuple[str, ...] = ("B", "KB", "MB", "GB", "TB")
_SIZE_BASE = 1024


def format_data_size(num_bytes: int | float) -> str:
    """Format a byte count using binary units (``1536`` -> ``"1.5 KB"``)."""

    value = max(0, int(num_bytes))
    if value == 0:
        return "0 B"
    exponent = 0
    while exponent < len(_SIZE_UNITS) - 1 and value >= _SIZE_BASE ** (exponent + 1):
        exponent += 1
    scaled = round(value / (_SIZE_BASE**exponent), 2)
    # Drop the trailing ".0" so whole numbers read as "1 MB".
    text = f"{scaled:.2f}".rstrip("0").rstrip(".")
    return f"{text} {_SIZE_UNITS[exponent]}"


def megabytes_to_bytes(megabytes: float) -> int:
    return int(megabytes * _SIZE_BASE * _SIZE_BASE)


def truncate_message(message: str, limit: int = 50) -> str:
    """Return ``message`` cut to ``limit`` characters with a trailing ellipsis."""

    if limit <= 0 or len(message) <= limit:
        return message
    return f"{message[:limit]}..."


def format_elapsed(seconds: float | None) -> str:
    if seconds is None:
        return "N/A"
    return f"{max(0.0, seconds):.2f}s"
