"""
Concatenation of nomination and attachment PDFs.

Pages are copied as-is (no re-rendering) in the order the sources are given.
The merged document is written to a temporary sibling and moved onto the
target only after every source has been read, so a failed merge never leaves
a file that looks like a finished one.
"""

from __future__ import annotations

import logging
import os
import tempfile
from pathlib import Path
from typing import Optional, Sequence

from pypdf import PasswordType, PdfReader, PdfWriter
from pypdf.errors import DependencyError, PyPdfError

from .errors import MaxPagesExceeded, PDFCorrupted
from .utils import ensure_directory

logger = logging.getLogger(__name__)


def _open_source(path: Path) -> PdfReader:
    if not path.is_file():
        raise PDFCorrupted(f"Source document {path.name} does not exist.")
    reader = PdfReader(str(path), strict=False)
    if reader.is_encrypted:
        # Owner-password-only documents open with an empty user password.
        if reader.decrypt("") == PasswordType.NOT_DECRYPTED:
            raise PDFCorrupted(f"Source document {path.name} is password protected.")
    return reader


def count_pages(path: Path) -> int:
    try:
        return len(_open_source(Path(path)).pages)
    except (PyPdfError, DependencyError, OSError) as exc:
        raise PDFCorrupted(f"Could not read {Path(path).name}: {exc}") from exc


def merge_pdfs(sources: Sequence[Path], destination: Path, max_pages: Optional[int] = None) -> int:
    """
    Merge ``sources`` into ``destination``.

    Args:
        sources: PDF paths, appended in order
        destination: Output path (replaced atomically on success)
        max_pages: Optional ceiling on the merged page count

    Returns:
        Number of pages in the merged document

    Raises:
        PDFCorrupted: A source is missing, unreadable or cannot be decrypted
        MaxPagesExceeded: The merged document has more than ``max_pages`` pages
    """
    if not sources:
        raise PDFCorrupted("No documents to merge.")

    writer = PdfWriter()
    for source in sources:
        path = Path(source)
        try:
            reader = _open_source(path)
            for page in reader.pages:
                writer.add_page(page)
        except PDFCorrupted as exc:
            logger.error(f"Merge aborted: {exc}")
            raise
        except (PyPdfError, DependencyError, OSError, ValueError) as exc:
            logger.error(f"Merge aborted: {path} could not be read ({exc})")
            raise PDFCorrupted(f"Could not read {path.name}: {exc}") from exc

    page_count = len(writer.pages)
    if max_pages is not None and page_count > max_pages:
        raise MaxPagesExceeded(f"Merged document has {page_count} pages (maximum {max_pages}).")

    ensure_directory(destination.parent)
    fd, temp_name = tempfile.mkstemp(dir=destination.parent, prefix=".merge-", suffix=".pdf")
    try:
        with os.fdopen(fd, "wb") as buffer:
            writer.write(buffer)
        os.replace(temp_name, destination)
    except Exception:
        Path(temp_name).unlink(missing_ok=True)
        raise

    logger.info(f"Merged {len(sources)} document(s) into {destination.name} ({page_count} pages)")
    return page_count
