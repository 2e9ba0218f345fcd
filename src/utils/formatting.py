"""Display helpers shared by the app and the offline export."""


def format_time(total_seconds: int) -> str:
    """Render seconds as zero-padded `MM:SS`; minutes are not wrapped at 60."""
    seconds = max(0, int(total_seconds))
    minutes, secs = divmod(seconds, 60)
    return f"{minutes:02d}:{secs:02d}"


def format_points(value: float) -> str:
    """Drop a trailing `.0` so whole scores read as integers."""
    return str(int(value)) if float(value).is_integer() else f"{value:.2f}"
