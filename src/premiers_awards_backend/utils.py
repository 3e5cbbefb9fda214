"""
Utility functions for file system operations and filename sanitization.

This module provides helper functions for:
- Sanitizing uploaded filenames for safe filesystem usage
- Ensuring directory creation
- Checking and removing stored files
"""

from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Iterable

logger = logging.getLogger(__name__)

# Pattern to match characters that are not safe for filesystem paths
# Allows: alphanumeric characters, dots, underscores, and hyphens
SANITIZE_PATTERN = re.compile(r"[^a-zA-Z0-9._-]+")


def sanitize_filename(filename: str, fallback: str = "document") -> str:
    """
    Generate a filesystem-safe filename from an uploaded file's name.

    Args:
        filename: The original filename (may include a client-side path)
        fallback: Stem to use if sanitization leaves nothing

    Returns:
        A filename containing only safe characters, extension lowercased

    Example:
        >>> sanitize_filename("My Report (final).PDF")
        "My-Report-final.pdf"
        >>> sanitize_filename("@#$.pdf")
        "document.pdf"
    """
    name = Path(filename.replace("\\", "/")).name
    stem, suffix = split_extension(name)
    safe_stem = SANITIZE_PATTERN.sub("-", stem.strip()).strip("-_.") or fallback
    safe_suffix = SANITIZE_PATTERN.sub("", suffix.lower())
    return f"{safe_stem}{safe_suffix}"


def ensure_directory(path: Path) -> Path:
    """
    Create a directory if it doesn't exist, including parent directories.

    This is a safe idempotent operation that won't fail if the directory
    already exists.

    Args:
        path: The directory path to create

    Returns:
        The same path object for chaining

    Raises:
        OSError: If directory creation fails due to permissions or other I/O errors
    """
    path.mkdir(parents=True, exist_ok=True)
    return path


def split_extension(filename: str) -> tuple[str, str]:
    """
    Split a filename into stem and extension components.

    Example:
        >>> split_extension("document.pdf")
        ("document", ".pdf")
    """
    path = Path(filename)
    return path.stem, path.suffix


def file_exists(path: str | Path | None) -> bool:
    return bool(path) and Path(path).is_file()  # type: ignore[arg-type]


def delete_file(path: str | Path | None) -> bool:
    """
    Remove a stored file, ignoring files that are already gone.

    Returns:
        True if a file was removed
    """
    if not path:
        return False
    try:
        Path(path).unlink()
    except FileNotFoundError:
        logger.warning(f"File {path} already removed")
        return False
    return True


def is_accepted_mime_type(content_type: str | None, accepted: Iterable[str]) -> bool:
    return (content_type or "").split(";")[0].strip().lower() in {mime.lower() for mime in accepted}
