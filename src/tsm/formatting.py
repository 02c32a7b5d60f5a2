"""Formatting utilities for CLI output."""

from typing import Optional


def format_duration(seconds: float) -> str:
    """Format a duration as e.g. "5 minutes".

    Args:
        seconds: Duration in seconds.

    Returns:
        Human-readable duration in the largest whole unit.
    """
    seconds = max(0, int(seconds))
    if seconds < 60:
        return f"{seconds} second{'s' if seconds != 1 else ''}"
    elif seconds < 3600:
        minutes = seconds // 60
        return f"{minutes} minute{'s' if minutes != 1 else ''}"
    elif seconds < 86400:
        hours = seconds // 3600
        return f"{hours} hour{'s' if hours != 1 else ''}"
    else:
        days = seconds // 86400
        return f"{days} day{'s' if days != 1 else ''}"


def format_detached(detached_time: Optional[str], now: float) -> str:
    """Format the @detached_time session option for listing.

    Args:
        detached_time: Stored epoch seconds, "0" or None.
        now: Current epoch seconds.

    Returns:
        "-" when not yet observed detached, otherwise "<duration> ago".

    Examples:
        >>> format_detached("0", 1000)
        '-'
        >>> format_detached("700", 1000)
        '5 minutes ago'
    """
    try:
        since = int(detached_time) if detached_time else 0
    except ValueError:
        return "?"
    if since <= 0:
        return "-"
    return f"{format_duration(now - since)} ago"
