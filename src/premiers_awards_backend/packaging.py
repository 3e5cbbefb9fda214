"""
Nomination PDF packaging pipeline: render, convert, merge.

The steps run strictly in sequence; each one either completes or raises, so
the caller receives ``FilePaths`` only when both documents exist on disk.
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Optional, Sequence

from .models import AttachmentRecord, FilePaths, NominationRecord
from .package_id import package_id
from .pdf_converter import PdfConverterClient
from .pdf_merger import merge_pdfs
from .templating import NominationRenderer

logger = logging.getLogger(__name__)

DEFAULT_FOOTER = "Premier's Awards"


class NominationPackager:
    def __init__(
        self,
        renderer: NominationRenderer,
        converter: PdfConverterClient,
        generated_root: Path,
        footer: str = DEFAULT_FOOTER,
        max_pages: Optional[int] = None,
    ) -> None:
        self.renderer = renderer
        self.converter = converter
        self.generated_root = generated_root
        self.footer = footer
        self.max_pages = max_pages

    def output_paths(self, nomination: NominationRecord, program_year: Optional[int] = None) -> FilePaths:
        identifier = package_id(nomination, self.renderer.schema, program_year)
        directory = self.generated_root / nomination.id
        return FilePaths(
            nomination=str(directory / f"{identifier}_nomination.pdf"),
            merged=str(directory / f"{identifier}_merged.pdf"),
        )

    async def generate(
        self,
        nomination: NominationRecord,
        attachments: Sequence[AttachmentRecord],
        program_year: Optional[int] = None,
    ) -> FilePaths:
        """
        Produce the nomination PDF and the merged PDF for ``nomination``.

        Args:
            nomination: Record to render
            attachments: Attachment records, in the order they are merged
            program_year: Year used in the output file names

        Raises:
            SchemaUnavailable: Category or organization text could not be resolved
            PDFCorrupted: Conversion or merge failed
            MaxPagesExceeded: Merged document is over the configured page ceiling
        """
        paths = self.output_paths(nomination, program_year)
        nomination_path = Path(paths.nomination)
        merged_path = Path(paths.merged)

        html = self.renderer.render(nomination, attachments)
        await self.converter.convert(html, self.footer, nomination_path)

        sources = [nomination_path, *(Path(attachment.file.path) for attachment in attachments)]
        await asyncio.to_thread(merge_pdfs, sources, merged_path, self.max_pages)

        logger.info(f"Generated nomination package for {nomination.id} ({len(attachments)} attachment(s))")
        return paths
