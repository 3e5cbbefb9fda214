"""
Client for the external HTML to PDF conversion service.

The service accepts ``POST {"html": ..., "footer": ...}`` and answers with the
PDF as a binary stream. The body is streamed into a ``.part`` file next to
the destination, which is only renamed into place once the whole response
has been written.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Optional

import httpx

from .errors import PDFCorrupted
from .utils import ensure_directory

logger = logging.getLogger(__name__)

CHUNK_SIZE = 64 * 1024


class PdfConverterClient:
    def __init__(
        self,
        url: str,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.url = url
        self.timeout = timeout
        self._transport = transport

    async def convert(self, html: str, footer: str, destination: Path) -> Path:
        """
        Convert ``html`` and write the resulting PDF to ``destination``.

        Raises:
            PDFCorrupted: The service was unreachable, answered with a
                non-success status, or the stream was interrupted.
        """
        ensure_directory(destination.parent)
        partial = destination.with_name(destination.name + ".part")

        logger.info(f"Converting nomination HTML to {destination}")
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                async with client.stream("POST", self.url, json={"html": html, "footer": footer}) as response:
                    response.raise_for_status()
                    with partial.open("wb") as buffer:
                        async for chunk in response.aiter_bytes(CHUNK_SIZE):
                            buffer.write(chunk)
            os.replace(partial, destination)
        except httpx.HTTPError as exc:
            partial.unlink(missing_ok=True)
            logger.error(f"PDF conversion failed for {destination.name}: {exc}")
            raise PDFCorrupted(f"PDF conversion failed: {exc}") from exc
        except OSError as exc:
            partial.unlink(missing_ok=True)
            logger.error(f"Could not write converted PDF {destination}: {exc}")
            raise PDFCorrupted(f"Could not write converted PDF: {exc}") from exc

        return destination
