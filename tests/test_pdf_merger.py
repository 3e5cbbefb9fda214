"""
Tests for PDF merging.
"""

import pytest
from pypdf import PdfReader
from pypdf.errors import DependencyError

from conftest import write_pdf
from premiers_awards_backend.errors import MaxPagesExceeded, PDFCorrupted
from premiers_awards_backend.pdf_merger import count_pages, merge_pdfs


def page_widths(path):
    return [round(float(page.mediabox.width)) for page in PdfReader(str(path)).pages]


def test_merges_sources_in_order(tmp_path):
    first = write_pdf(tmp_path / "first.pdf", pages=1, width=300)
    second = write_pdf(tmp_path / "second.pdf", pages=2, width=400)
    third = write_pdf(tmp_path / "third.pdf", pages=1, width=500)
    destination = tmp_path / "out" / "merged.pdf"

    assert merge_pdfs([third, first, second], destination) == 4
    assert page_widths(destination) == [500, 300, 400, 400]
    assert count_pages(destination) == 4


@pytest.mark.parametrize("algorithm", ["RC4-128", "AES-256"])
def test_owner_password_sources_are_merged(tmp_path, algorithm):
    """Documents locked only by an owner password open with an empty user password."""
    nomination = write_pdf(tmp_path / "nomination.pdf", width=300)
    locked = write_pdf(
        tmp_path / "locked.pdf",
        pages=2,
        width=450,
        encrypt={"user_password": "", "owner_password": "x", "algorithm": algorithm},
    )
    destination = tmp_path / "merged.pdf"

    assert merge_pdfs([nomination, locked], destination) == 3
    assert page_widths(destination) == [300, 450, 450]
    assert count_pages(locked) == 2


@pytest.mark.parametrize("algorithm", ["RC4-128", "AES-256"])
def test_user_password_source_is_rejected(tmp_path, algorithm):
    nomination = write_pdf(tmp_path / "nomination.pdf")
    locked = write_pdf(
        tmp_path / "locked.pdf",
        encrypt={"user_password": "secret", "owner_password": "x", "algorithm": algorithm},
    )
    destination = tmp_path / "merged.pdf"

    with pytest.raises(PDFCorrupted, match="password protected"):
        merge_pdfs([nomination, locked], destination)
    with pytest.raises(PDFCorrupted):
        count_pages(locked)
    assert not destination.exists()
    assert list(tmp_path.glob(".merge-*")) == []


def test_decryption_dependency_error_is_reported_as_corrupt(tmp_path, monkeypatch):
    locked = write_pdf(
        tmp_path / "locked.pdf",
        encrypt={"user_password": "", "owner_password": "x", "algorithm": "AES-256"},
    )

    def missing_backend(self, password):
        raise DependencyError("cryptography is required for AES algorithm")

    monkeypatch.setattr(PdfReader, "decrypt", missing_backend)

    with pytest.raises(PDFCorrupted):
        merge_pdfs([locked], tmp_path / "merged.pdf")
    with pytest.raises(PDFCorrupted):
        count_pages(locked)


def test_missing_source_leaves_no_output(tmp_path):
    first = write_pdf(tmp_path / "first.pdf")
    destination = tmp_path / "merged.pdf"

    with pytest.raises(PDFCorrupted):
        merge_pdfs([first, tmp_path / "missing.pdf"], destination)
    assert not destination.exists()
    assert list(tmp_path.glob(".merge-*")) == []


def test_corrupt_source_keeps_previous_output(tmp_path):
    first = write_pdf(tmp_path / "first.pdf")
    broken = tmp_path / "broken.pdf"
    broken.write_bytes(b"this is not a pdf")
    destination = tmp_path / "merged.pdf"
    destination.write_bytes(b"previous")

    with pytest.raises(PDFCorrupted):
        merge_pdfs([first, broken], destination)
    assert destination.read_bytes() == b"previous"


def test_page_ceiling(tmp_path):
    first = write_pdf(tmp_path / "first.pdf", pages=3)
    second = write_pdf(tmp_path / "second.pdf", pages=3)
    destination = tmp_path / "merged.pdf"

    with pytest.raises(MaxPagesExceeded):
        merge_pdfs([first, second], destination, max_pages=5)
    assert not destination.exists()


def test_no_sources(tmp_path):
    with pytest.raises(PDFCorrupted):
        merge_pdfs([], tmp_path / "merged.pdf")
