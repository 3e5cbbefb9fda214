"""
Nomination lifecycle management.

This module holds the business logic behind the nomination API:
- Draft creation, editing, submission and reversal
- Attachment registration, relabelling and removal
- PDF package generation on submission and administrative regeneration
- Bulk export of nominations as zip archives or CSV

The NominationManager class is the only component that writes nomination
state; HTTP handlers translate requests into calls on it.
"""

from __future__ import annotations

import asyncio
import csv
import io
import logging
import shutil
from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

from omegaconf import DictConfig

from .archive import ArchiveBuilder, ArchiveResult
from .database import NominationDatabase, new_id
from .errors import (
    AlreadySubmitted,
    InvalidInput,
    MaxAttachmentsExceeded,
    MaxDraftsExceeded,
    MissingFile,
    NoRecord,
    ServiceError,
)
from .global_settings import GlobalSettings
from .models import (
    AttachmentRecord,
    AttachmentUpdate,
    ExportFormat,
    NominationCreate,
    NominationRecord,
    NominationUpdate,
    RegenerationSummary,
    SchemaOptions,
    SubmitRequest,
    UploadedFile,
)
from .package_id import package_id, submission_id
from .packaging import NominationPackager
from .schema import SchemaLookup, build_schema_options
from .utils import delete_file, ensure_directory

logger = logging.getLogger(__name__)

SEQUENCE_NAME = "nominationId"

CSV_COLUMNS = [
    "submission_id",
    "package_id",
    "category",
    "title",
    "nominee",
    "organizations",
    "status",
    "attachments",
    "nomination_pdf",
    "merged_pdf",
    "created_at",
    "updated_at",
]


@dataclass
class ExportFile:
    """Export payload together with the name and type it is served under."""

    filename: str
    media_type: str
    content: ArchiveResult


class NominationManager:
    """
    Central coordinator for nominations and their attachments.

    Submissions and regenerations of the same nomination are serialized with
    a per-nomination asyncio lock, so a second submit waits for the first and
    then fails with AlreadySubmitted instead of generating twice. The lock is
    process-local.

    Attributes:
        db: Document store
        schema: Category, section and organization lookups
        settings: Global settings (program year)
        packager: Render/convert/merge pipeline
        upload_root: Base directory for attachment uploads
        export_root: Directory for archives too large to hold in memory
    """

    def __init__(
        self,
        db: NominationDatabase,
        schema: SchemaLookup,
        settings: GlobalSettings,
        packager: NominationPackager,
        program: DictConfig,
        upload_root: Path,
        export_root: Path,
    ) -> None:
        self.db = db
        self.schema = schema
        self.settings = settings
        self.packager = packager
        self.upload_root = ensure_directory(upload_root)
        self.export_root = export_root
        self.max_drafts = int(program.program.max_drafts)
        self.max_attachments = int(program.program.max_attachments)
        self.accepted_mime_types = list(program.uploads.mime_types)
        self.archive_buffer_bytes = int(program.archive.max_buffer_bytes)
        self.flat_root = str(program.archive.flat_root)
        self._locks: Dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

    # -- reads --------------------------------------------------------------

    def get(self, nomination_id: str) -> NominationRecord:
        record = self.db.get_nomination(nomination_id)
        if record is None:
            raise NoRecord(f"Nomination {nomination_id} not found.")
        return record

    def list_all(self) -> List[NominationRecord]:
        return self.db.list_nominations()

    def list_by_user(self, guid: str) -> List[NominationRecord]:
        return self.db.list_nominations(guid=guid)

    def schema_options(self) -> SchemaOptions:
        return build_schema_options(self.schema)

    # -- drafts -------------------------------------------------------------

    def create(self, data: NominationCreate) -> NominationRecord:
        """
        Create a draft nomination with the next sequence number.

        Raises:
            InvalidInput: Unknown category
            MaxDraftsExceeded: The submitter already holds the maximum number of drafts
        """
        if not self.schema.has_category(data.category):
            raise InvalidInput(f"Unknown category '{data.category}'.")

        drafts = self.db.list_nominations(guid=data.guid, submitted=False)
        if len(drafts) >= self.max_drafts:
            raise MaxDraftsExceeded(f"Draft limit of {self.max_drafts} reached.")

        now = datetime.now(timezone.utc)
        fields = data.model_dump()
        fields["year"] = data.year or self.settings.program_year()
        record = NominationRecord(
            id=new_id(),
            seq=self.db.next_sequence(SEQUENCE_NAME),
            submitted=False,
            created_at=now,
            updated_at=now,
            **fields,
        )
        self.db.save_nomination(record)
        logger.info(f"Created nomination {record.id} (seq {record.seq}, category {record.category})")
        return record

    def update(self, nomination_id: str, data: NominationUpdate) -> NominationRecord:
        """Save draft edits; submitted nominations are read-only."""
        record = self.get(nomination_id)
        if record.submitted:
            raise AlreadySubmitted(f"Nomination {nomination_id} has already been submitted.")
        updated = _apply(record, data.changes(), saved=True, updated_at=datetime.now(timezone.utc))
        self.db.save_nomination(updated)
        return updated

    async def submit(self, nomination_id: str, data: SubmitRequest) -> NominationRecord:
        """
        Generate the nomination's PDFs and mark it submitted.

        Input is checked before any file is written. The record is only
        updated after both PDFs exist, so a failed generation leaves the
        draft (and its empty file paths) untouched.

        Raises:
            InvalidInput: Unknown nomination or a year other than the program year
            AlreadySubmitted: The nomination was submitted before
            PDFCorrupted: Conversion or merge failed
            MaxPagesExceeded: Merged document is over the page ceiling
        """
        if not self.settings.validate_year(data.year):
            raise InvalidInput(f"Invalid submission year: {data.year!r}")

        async with self._locks[nomination_id]:
            record = self.db.get_nomination(nomination_id)
            if record is None:
                raise InvalidInput(f"Nomination {nomination_id} not found.")
            if record.submitted:
                raise AlreadySubmitted(f"Nomination {nomination_id} has already been submitted.")

            draft = _apply(record, data.changes(), year=int(data.year))
            attachments = self.ordered_attachments(draft)
            paths = await self.packager.generate(draft, attachments, self.settings.program_year())

            submitted = _apply(
                draft,
                {},
                file_paths=paths,
                submitted=True,
                saved=True,
                updated_at=datetime.now(timezone.utc),
            )
            self.db.save_nomination(submitted)

        logger.info(f"Nomination {nomination_id} submitted")
        return submitted

    def unsubmit(self, nomination_id: str) -> NominationRecord:
        record = self.db.get_nomination(nomination_id)
        if record is None:
            raise InvalidInput(f"Nomination {nomination_id} not found.")
        reverted = _apply(record, {}, submitted=False, updated_at=datetime.now(timezone.utc))
        self.db.save_nomination(reverted)
        logger.info(f"Nomination {nomination_id} reverted to draft")
        return reverted

    def delete(self, nomination_id: str) -> None:
        """Remove a nomination together with its attachments and generated files."""
        record = self.get(nomination_id)
        for attachment in self.db.list_attachments(nomination_id):
            self.db.delete_attachment(attachment.id)
            delete_file(attachment.file.path)
        shutil.rmtree(self.packager.generated_root / record.id, ignore_errors=True)
        self.db.delete_nomination(nomination_id)
        logger.info(f"Deleted nomination {nomination_id}")

    def download_path(self, nomination_id: str) -> Path:
        """Merged PDF of a nomination, falling back to the nomination PDF."""
        record = self.get(nomination_id)
        for candidate in (record.file_paths.merged, record.file_paths.nomination):
            if candidate and Path(candidate).is_file():
                return Path(candidate)
        raise MissingFile(f"No generated PDF for nomination {nomination_id}.")

    # -- attachments --------------------------------------------------------

    def ordered_attachments(self, nomination: NominationRecord) -> List[AttachmentRecord]:
        """Attachments in the nomination's stored order, unlisted ones last by upload time."""
        attachments = self.db.list_attachments(nomination.id)
        position = {attachment_id: index for index, attachment_id in enumerate(nomination.attachments)}
        return sorted(attachments, key=lambda a: position.get(a.id, len(position)))

    def list_attachments(self, nomination_id: str) -> List[AttachmentRecord]:
        return self.db.list_attachments(nomination_id)

    def upload_dir(self, nomination_id: str) -> Path:
        return self.upload_root / nomination_id

    def check_upload(self, nomination_id: str, count: int) -> NominationRecord:
        """
        Verify ``count`` more attachments may be added before any file is stored.

        Raises:
            InvalidInput: Unknown nomination or nothing to upload
            AlreadySubmitted: The nomination was submitted
            MaxAttachmentsExceeded: The attachment limit would be exceeded
        """
        record = self.db.get_nomination(nomination_id)
        if record is None:
            raise InvalidInput(f"Nomination {nomination_id} not found.")
        if record.submitted:
            raise AlreadySubmitted(f"Nomination {nomination_id} has already been submitted.")
        if count < 1:
            raise InvalidInput("No attachment files provided.")
        existing = len(self.db.list_attachments(nomination_id))
        if existing + count > self.max_attachments:
            raise MaxAttachmentsExceeded(f"Nominations accept at most {self.max_attachments} attachments.")
        return record

    def add_attachments(
        self,
        nomination_id: str,
        files: Sequence[UploadedFile],
        labels: Sequence[str] = (),
        descriptions: Sequence[str] = (),
    ) -> List[AttachmentRecord]:
        """
        Register stored upload files as attachments of a nomination.

        Labels and descriptions pair with files by position; missing ones are empty.
        """
        record = self.check_upload(nomination_id, len(files))
        now = datetime.now(timezone.utc)
        created: List[AttachmentRecord] = []
        for index, stored in enumerate(files):
            attachment = AttachmentRecord(
                id=new_id(),
                nomination=nomination_id,
                file=stored,
                label=labels[index] if index < len(labels) else "",
                description=descriptions[index] if index < len(descriptions) else "",
                created_at=now,
                updated_at=now,
            )
            self.db.save_attachment(attachment)
            created.append(attachment)

        ids = [*record.attachments, *(attachment.id for attachment in created)]
        self.db.save_nomination(_apply(record, {}, attachments=ids, updated_at=now))
        logger.info(f"Added {len(created)} attachment(s) to nomination {nomination_id}")
        return created

    def get_attachment(self, attachment_id: str) -> AttachmentRecord:
        attachment = self.db.get_attachment(attachment_id)
        if attachment is None:
            raise NoRecord(f"Attachment {attachment_id} not found.")
        return attachment

    def update_attachment(self, attachment_id: str, data: AttachmentUpdate) -> AttachmentRecord:
        attachment = self.get_attachment(attachment_id)
        self._ensure_editable(attachment.nomination)
        changes = data.model_dump(exclude_none=True)
        updated = attachment.model_copy(update={**changes, "updated_at": datetime.now(timezone.utc)})
        self.db.save_attachment(updated)
        return updated

    def attachment_path(self, attachment_id: str) -> Path:
        attachment = self.get_attachment(attachment_id)
        path = Path(attachment.file.path)
        if not path.is_file():
            raise MissingFile(f"File for attachment {attachment_id} is missing.")
        return path

    def delete_attachment(self, attachment_id: str) -> None:
        """Remove an attachment record and its file, and detach it from its nomination."""
        attachment = self.get_attachment(attachment_id)
        record = self._ensure_editable(attachment.nomination)
        self.db.delete_attachment(attachment_id)
        delete_file(attachment.file.path)
        if record is not None:
            remaining = [item for item in record.attachments if item != attachment_id]
            self.db.save_nomination(_apply(record, {}, attachments=remaining, updated_at=datetime.now(timezone.utc)))
        logger.info(f"Deleted attachment {attachment_id} of nomination {attachment.nomination}")

    def _ensure_editable(self, nomination_id: str) -> Optional[NominationRecord]:
        record = self.db.get_nomination(nomination_id)
        if record is not None and record.submitted:
            raise AlreadySubmitted(f"Nomination {nomination_id} has already been submitted.")
        return record

    # -- export -------------------------------------------------------------

    async def export(self, ids: Sequence[str], year: Optional[int], export_format: ExportFormat) -> ExportFile:
        """
        Bundle the requested nominations for download.

        Raises:
            InvalidInput: Wrong year, empty selection or an unknown nomination id
        """
        if not self.settings.validate_year(year):
            raise InvalidInput(f"Invalid export year: {year!r}")
        unique_ids = list(dict.fromkeys(ids))
        nominations = self.db.find_nominations(unique_ids)
        if not unique_ids or len(nominations) != len(unique_ids):
            raise InvalidInput("Export requires existing nomination ids.")

        builder = ArchiveBuilder(
            self.schema,
            self.db.list_attachments,
            self.export_root,
            program_year=self.settings.program_year(),
            max_buffer_bytes=self.archive_buffer_bytes,
            flat_root=self.flat_root,
        )
        if export_format == ExportFormat.ZIP:
            result = await builder.build_package(nominations)
            return ExportFile("nomination_packages.zip", "application/zip", result)
        if export_format == ExportFormat.PDF:
            result = await builder.build_flat(nominations)
            return ExportFile(f"{self.flat_root}.zip", "application/zip", result)
        return ExportFile("nominations.csv", "text/csv", ArchiveResult(buffer=self.to_csv(nominations)))

    def to_csv(self, nominations: Sequence[NominationRecord]) -> bytes:
        program_year = self.settings.program_year()
        output = io.StringIO()
        writer = csv.DictWriter(output, fieldnames=CSV_COLUMNS)
        writer.writeheader()
        for record in nominations:
            writer.writerow(self._csv_row(record, program_year))
        return output.getvalue().encode("utf-8")

    def _csv_row(self, record: NominationRecord, program_year: int) -> Dict[str, Any]:
        organizations = [self.schema.lookup("organizations", key) or key for key in record.organizations]
        return {
            "submission_id": submission_id(record.seq),
            "package_id": package_id(record, self.schema, program_year),
            "category": self.schema.lookup("categories", record.category) or record.category,
            "title": record.title,
            "nominee": record.nominee.full_name,
            "organizations": "; ".join(organizations),
            "status": record.status.value,
            "attachments": len(record.attachments),
            "nomination_pdf": record.file_paths.nomination,
            "merged_pdf": record.file_paths.merged,
            "created_at": record.created_at.isoformat(),
            "updated_at": record.updated_at.isoformat(),
        }

    # -- administration -----------------------------------------------------

    async def regenerate_all(self) -> RegenerationSummary:
        """
        Rebuild the PDFs of every submitted nomination.

        ``updated_at`` is left unchanged. A nomination whose generation fails
        keeps its previous file paths and is reported in ``failed``.
        """
        regenerated: List[str] = []
        failed: Dict[str, str] = {}
        program_year = self.settings.program_year()
        for record in self.db.list_nominations(submitted=True):
            async with self._locks[record.id]:
                try:
                    paths = await self.packager.generate(record, self.ordered_attachments(record), program_year)
                except ServiceError as exc:
                    logger.error(f"Regeneration failed for nomination {record.id}: {exc.code} ({exc.detail})")
                    failed[record.id] = exc.code
                    continue
                self.db.save_nomination(_apply(record, {}, file_paths=paths))
                regenerated.append(record.id)
        logger.info(f"Regenerated {len(regenerated)} nomination package(s), {len(failed)} failed")
        return RegenerationSummary(regenerated=regenerated, failed=failed)


def _apply(record: NominationRecord, changes: Dict[str, Any], **fields: Any) -> NominationRecord:
    """Validated copy of ``record`` with ``changes`` and ``fields`` applied."""
    data = record.model_dump()
    data.update(changes)
    for key, value in fields.items():
        data[key] = value.model_dump() if hasattr(value, "model_dump") else value
    return NominationRecord.model_validate(data)
