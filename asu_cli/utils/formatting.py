"""
Helper functions for formatting data into human-readable strings.
"""

from typing import Optional

MIB = 1048576


def format_size(bytes_size: int) -> str:
    """Formats bytes into a human-readable size string (e.g., '14.3 MB')."""
    if bytes_size <= 0:
        return "0 B"
    units = ["B", "KB", "MB", "GB", "TB"]
    i = 0
    while bytes_size >= 1024 and i < len(units) - 1:
        bytes_size /= 1024
        i += 1
    return f"{bytes_size:.1f} {units[i]}"


def format_duration(seconds: float) -> str:
    """
    Formats a duration in seconds into a human-readable string (e.g., '2h 34m 12s').
    """
    s = int(seconds)
    hours, remainder = divmod(s, 3600)
    minutes, secs = divmod(remainder, 60)
    parts = []
    if hours > 0:
        parts.append(f"{hours}h")
    if minutes > 0:
        parts.append(f"{minutes}m")
    if secs > 0 or not parts:
        parts.append(f"{secs}s")
    return " ".join(parts)


def download_started_text(index: int, count: int, name: str) -> str:
    return f"downloading [{index}/{count}] {name}"


def download_progress_text(
    index: int, count: int, name: str, done: int, total: Optional[int]
) -> str:
    """
    Status line for an image transfer in progress.

    With an unknown (or zero) total, only the bytes so far are shown.
    """
    if total:
        return (
            f"downloading [{index}/{count}] {name} "
            f"({done / MIB:.1f}/{total / MIB:.1f} MiB) {done / total * 100:.0f}%"
        )
    return f"downloading {index}/{count} {name} ({done / MIB:.1f}/... MiB)"
