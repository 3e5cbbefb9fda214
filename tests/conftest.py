"""
Pytest configuration and fixtures for Premier's Awards Backend tests.
"""

import io
import os
import shutil
import tempfile
from datetime import datetime
from pathlib import Path
from uuid import uuid4

import httpx
import pytest
from fastapi.testclient import TestClient
from pypdf import PdfWriter

# Set test environment variables before importing the app
_DATA_DIR = tempfile.mkdtemp(prefix="pa_test_data_")
os.environ["DATA_PATH"] = _DATA_DIR
os.environ["DB_PATH"] = os.path.join(_DATA_DIR, "test.db")
os.environ["PDF_CONVERT_URL"] = "http://converter.test/pdf"
os.environ.pop("S3_BUCKET_NAME", None)

from premiers_awards_backend.configuration import make_program_config
from premiers_awards_backend.database import EventDatabase, NominationDatabase
from premiers_awards_backend.events import EventManager
from premiers_awards_backend.global_settings import GlobalSettings
from premiers_awards_backend.main import app, get_event_manager, nomination_manager
from premiers_awards_backend.models import FilePaths, NominationRecord
from premiers_awards_backend.nominations import NominationManager
from premiers_awards_backend.packaging import NominationPackager
from premiers_awards_backend.pdf_converter import PdfConverterClient
from premiers_awards_backend.schema import ConfigSchemaLookup
from premiers_awards_backend.templating import NominationRenderer

PROGRAM_YEAR = 2023
CONVERTER_URL = "http://converter.test/pdf"


def make_pdf_bytes(pages: int = 1, width: float = 612, encrypt: dict | None = None) -> bytes:
    """
    Build a minimal PDF with ``pages`` blank pages, letter-size by default.

    ``encrypt`` is passed to ``PdfWriter.encrypt`` (for example
    ``{"user_password": "", "owner_password": "x", "algorithm": "AES-256"}``).
    """
    writer = PdfWriter()
    for _ in range(pages):
        writer.add_blank_page(width=width, height=792)
    if encrypt:
        writer.encrypt(**encrypt)
    buffer = io.BytesIO()
    writer.write(buffer)
    return buffer.getvalue()


def write_pdf(path: Path, pages: int = 1, width: float = 612, encrypt: dict | None = None) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(make_pdf_bytes(pages, width=width, encrypt=encrypt))
    return path


def make_nomination(**overrides) -> NominationRecord:
    now = datetime(2023, 5, 1, 12, 0, 0)
    data = {
        "id": uuid4().hex,
        "seq": 42,
        "category": "innovation",
        "year": PROGRAM_YEAR,
        "guid": "user-guid",
        "title": "Better Roads Program",
        "organizations": ["org-21"],
        "created_at": now,
        "updated_at": now,
    }
    data.update(overrides)
    return NominationRecord(**data)


class ConverterStub:
    """Stands in for the HTML to PDF service, recording every request."""

    def __init__(self, pages: int = 1, status_code: int = 200):
        self.pages = pages
        self.status_code = status_code
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.status_code != 200:
            return httpx.Response(self.status_code, text="converter unavailable")
        return httpx.Response(200, content=make_pdf_bytes(self.pages), headers={"content-type": "application/pdf"})

    def client(self) -> PdfConverterClient:
        return PdfConverterClient(CONVERTER_URL, transport=httpx.MockTransport(self))


@pytest.fixture(scope="session", autouse=True)
def test_dirs():
    """Remove the shared data directory after all tests."""
    yield {"data": _DATA_DIR}
    shutil.rmtree(_DATA_DIR, ignore_errors=True)


@pytest.fixture
def converter():
    return ConverterStub()


@pytest.fixture
def client(converter, monkeypatch):
    """Create a test client whose converter calls are served by ``converter``."""
    monkeypatch.setattr(nomination_manager.packager, "converter", converter.client())
    return TestClient(app)


@pytest.fixture
def schema():
    return ConfigSchemaLookup()


@pytest.fixture
def renderer(schema):
    return NominationRenderer(schema)


@pytest.fixture
def manager(tmp_path, schema, renderer, converter):
    """A NominationManager over a private database and data directory."""
    db = NominationDatabase(tmp_path / "nominations.db")
    program = make_program_config({"program": {"max_attachments": 3, "max_drafts": 4}})
    packager = NominationPackager(renderer, converter.client(), tmp_path / "generated")
    return NominationManager(
        db=db,
        schema=schema,
        settings=GlobalSettings(db, default_year=PROGRAM_YEAR),
        packager=packager,
        program=program,
        upload_root=tmp_path / "uploads",
        export_root=tmp_path / "exports",
    )


@pytest.fixture
def sample_pdf(tmp_path):
    """A one-page PDF on disk."""
    return write_pdf(tmp_path / "sample.pdf")


@pytest.fixture
def generated_nomination(tmp_path):
    """A submitted nomination whose generated PDFs exist on disk."""
    folder = tmp_path / "generated"
    nomination_pdf = write_pdf(folder / "00042-23_innovation_nomination.pdf")
    merged_pdf = write_pdf(folder / "00042-23_innovation_merged.pdf", pages=2)
    return make_nomination(
        submitted=True,
        file_paths=FilePaths(nomination=str(nomination_pdf), merged=str(merged_pdf)),
    )


@pytest.fixture
def event_manager(tmp_path):
    """An EventManager over a private database."""
    return EventManager(EventDatabase(tmp_path / "events.db"), make_program_config({}))


@pytest.fixture
def event_client(event_manager):
    """Test client whose event routes use ``event_manager``."""
    app.dependency_overrides[get_event_manager] = lambda: event_manager
    yield TestClient(app)
    app.dependency_overrides.pop(get_event_manager, None)
