"""
Zip packaging of nomination documents for bulk export.

Each nomination gets a folder named by its package identifier holding the
nomination PDF, the merged PDF (when one was generated) and every attachment.
Export is best-effort: a missing file, or a nomination whose entries cannot
be collected, is logged and reported in ``ArchiveResult.skipped`` while the
rest of the archive is still produced.
"""

from __future__ import annotations

import asyncio
import io
import logging
import re
import zipfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, List, Optional, Sequence, Set, Tuple
from uuid import uuid4

from .models import AttachmentRecord, NominationRecord
from .package_id import package_id
from .schema import SchemaLookup
from .utils import ensure_directory, file_exists

logger = logging.getLogger(__name__)

AttachmentSource = Callable[[str], Sequence[AttachmentRecord]]

DEFAULT_MAX_BUFFER_BYTES = 50 * 1024 * 1024

# attachment_<uuid>_, <uuid>_ or <hex uuid>_ prepended by the upload handler
UPLOAD_PREFIX = re.compile(
    r"^(?:attachment_)?(?:[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}|[0-9a-f]{32})_",
    re.IGNORECASE,
)
REPEATED_MARKER = re.compile(r"([_-])(nomination|merged)(?:[_-]\2)+", re.IGNORECASE)


def clean_filename(filename: str) -> str:
    """
    Human-browsable archive name for a stored file.

    Example:
        >>> clean_filename("attachment_0b6a3c2e-5f1d-11ee-8c99-0242ac120002_budget.pdf")
        "budget.pdf"
        >>> clean_filename("00042-23_innovation_nomination_nomination.pdf")
        "00042-23_innovation_nomination.pdf"
    """
    name = Path(filename).name
    stem, suffix = Path(name).stem, Path(name).suffix
    stem = UPLOAD_PREFIX.sub("", stem) or stem
    stem = REPEATED_MARKER.sub(r"\1\2", stem)
    return f"{stem}{suffix}"


def _unique_name(name: str, used: Set[str]) -> str:
    if name not in used:
        used.add(name)
        return name
    stem, suffix = Path(name).stem, Path(name).suffix
    counter = 2
    while f"{stem} ({counter}){suffix}" in used:
        counter += 1
    unique = f"{stem} ({counter}){suffix}"
    used.add(unique)
    return unique


@dataclass(frozen=True)
class ArchiveEntry:
    source: Path
    arcname: str


@dataclass
class ArchiveResult:
    """Finished archive, held in memory (``buffer``) or on disk (``path``)."""

    entries: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)
    buffer: Optional[bytes] = None
    path: Optional[Path] = None

    def read(self) -> bytes:
        if self.buffer is not None:
            return self.buffer
        if self.path is not None:
            return self.path.read_bytes()
        return b""


class ArchiveBuilder:
    def __init__(
        self,
        schema: SchemaLookup,
        attachment_source: AttachmentSource,
        export_root: Path,
        program_year: Optional[int] = None,
        max_buffer_bytes: int = DEFAULT_MAX_BUFFER_BYTES,
        flat_root: str = "nomination_package",
    ) -> None:
        self.schema = schema
        self.attachment_source = attachment_source
        self.export_root = export_root
        self.program_year = program_year
        self.max_buffer_bytes = max_buffer_bytes
        self.flat_root = flat_root

    async def build_package(self, nominations: Sequence[NominationRecord], to_file: bool = False) -> ArchiveResult:
        """Archive every nomination's documents and attachments, one folder each."""
        collected = await asyncio.gather(
            *(self._collect_package(nomination) for nomination in nominations),
            return_exceptions=True,
        )
        entries: List[ArchiveEntry] = []
        skipped: List[str] = []
        for nomination, outcome in zip(nominations, collected):
            if isinstance(outcome, Exception):
                logger.warning(f"Skipping nomination {nomination.id} in export: {outcome}")
                skipped.append(nomination.id)
                continue
            if isinstance(outcome, BaseException):
                raise outcome
            found, missing = outcome
            entries.extend(found)
            skipped.extend(missing)
        return await asyncio.to_thread(self._write, entries, skipped, to_file)

    async def build_flat(self, nominations: Sequence[NominationRecord], to_file: bool = False) -> ArchiveResult:
        """Archive each nomination's merged PDF (or nomination PDF) under one root folder."""
        entries, skipped = await asyncio.to_thread(self._flat_entries, nominations)
        return await asyncio.to_thread(self._write, entries, skipped, to_file)

    def _flat_entries(self, nominations: Sequence[NominationRecord]) -> Tuple[List[ArchiveEntry], List[str]]:
        entries: List[ArchiveEntry] = []
        skipped: List[str] = []
        used: Set[str] = set()
        for nomination in nominations:
            paths = nomination.file_paths
            candidate = paths.merged if file_exists(paths.merged) else paths.nomination
            if not file_exists(candidate):
                logger.warning(f"No generated PDF for nomination {nomination.id}; skipping")
                skipped.append(candidate or nomination.id)
                continue
            arcname = f"{self.flat_root}/{_unique_name(clean_filename(candidate), used)}"
            entries.append(ArchiveEntry(Path(candidate), arcname))
        return entries, skipped

    async def _collect_package(self, nomination: NominationRecord) -> Tuple[List[ArchiveEntry], List[str]]:
        folder = package_id(nomination, self.schema, self.program_year)
        attachments = await asyncio.to_thread(self.attachment_source, nomination.id)
        return await asyncio.to_thread(self._package_entries, nomination, folder, attachments)

    def _package_entries(
        self,
        nomination: NominationRecord,
        folder: str,
        attachments: Sequence[AttachmentRecord],
    ) -> Tuple[List[ArchiveEntry], List[str]]:
        found: List[ArchiveEntry] = []
        missing: List[str] = []
        used: Set[str] = set()

        def add(raw_path: str, description: str) -> None:
            if not file_exists(raw_path):
                logger.warning(f"{description} for nomination {nomination.id} not found at '{raw_path}'; skipping")
                missing.append(raw_path or f"{nomination.id}:{description}")
                return
            name = _unique_name(clean_filename(raw_path), used)
            found.append(ArchiveEntry(Path(raw_path), f"{folder}/{name}"))

        add(nomination.file_paths.nomination, "Nomination PDF")
        if file_exists(nomination.file_paths.merged):
            add(nomination.file_paths.merged, "Merged PDF")
        for attachment in attachments:
            add(attachment.file.path, f"Attachment {attachment.id}")
        return found, missing

    def _write(self, entries: Sequence[ArchiveEntry], skipped: List[str], to_file: bool) -> ArchiveResult:
        written: List[str] = []
        buffer = io.BytesIO()
        with zipfile.ZipFile(buffer, "w", compression=zipfile.ZIP_DEFLATED) as archive:
            for entry in entries:
                try:
                    archive.write(entry.source, entry.arcname)
                except OSError as exc:
                    logger.warning(f"Could not add {entry.source} to archive: {exc}")
                    skipped.append(str(entry.source))
                    continue
                written.append(entry.arcname)

        data = buffer.getvalue()
        logger.info(f"Archive built with {len(written)} file(s), {len(skipped)} skipped, {len(data)} bytes")
        if to_file or len(data) > self.max_buffer_bytes:
            path = ensure_directory(self.export_root) / f"nominations-{uuid4().hex}.zip"
            path.write_bytes(data)
            return ArchiveResult(entries=written, skipped=skipped, path=path)
        return ArchiveResult(entries=written, skipped=skipped, buffer=data)
