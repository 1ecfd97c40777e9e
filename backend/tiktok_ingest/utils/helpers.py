"""General-purpose utility helpers."""
from datetime import datetime, timezone


def utc_now() -> datetime:
    """Return current UTC datetime."""
    return datetime.now(timezone.utc)


def truncate(text: str, max_length: int = 100, suffix: str = "...") -> str:
    """Truncate text to max_length, then append suffix."""
    if len(text) <= max_length:
        return text
    return text[:max_length] + suffix


def chunk_list(lst: list, size: int) -> list[list]:
    """Split a list into chunks of given size."""
    if size < 1:
        raise ValueError("chunk size must be positive")
    return [lst[i : i + size] for i in range(0, len(lst), size)]
