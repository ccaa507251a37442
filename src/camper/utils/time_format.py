from typing import Optional


def format_duration(seconds: Optional[float]) -> str:
    """
    Render a duration for display.

    Args:
        seconds: Duration in seconds, None when unknown

    Returns:
        "M:SS", "H:MM:SS" past an hour, "--:--" when unknown or negative
    """
    if seconds is None or seconds < 0:
        return "--:--"
    total = int(seconds)
    hours, rest = divmod(total, 3600)
    minutes, secs = divmod(rest, 60)
    if hours:
        return f"{hours}:{minutes:02d}:{secs:02d}"
    return f"{minutes}:{secs:02d}"
