"""
File and directory utilities.
"""

from pathlib import Path


def ensure_directory_exists(path: str | Path) -> Path:
    """
    Create the directory (and any missing parents) if it does not exist.

    Args:
        path: Directory path as string or Path.

    Returns:
        Resolved Path of the directory.
    """
    p = Path(path).resolve()
    p.mkdir(parents=True, exist_ok=True)
    return p


def safe_download_name(name: str, default: str = "download.html") -> str:
    """Strip directory parts and characters browsers reject in download names."""
    base = Path(name or "").name
    cleaned = "".join(ch for ch in base if ch.isalnum() or ch in "._- ").strip(" .")
    return cleaned or default
