"""Tests for MIME-dispatched text extraction."""

import io

import docx
import pytest

from conftest import make_pdf
from grounding_index.core.errors import EmptyContentError, ExtractionError, UnsupportedFormatError
from grounding_index.ingest.extractors import DOCX_MIME, PDF_MIME, ExtractorRegistry, decoder_from_callable


@pytest.fixture
def registry() -> ExtractorRegistry:
    return ExtractorRegistry()


def test_plain_text_is_decoded_as_utf8(registry: ExtractorRegistry) -> None:
    assert registry.extract("Café menu".encode("utf-8"), "text/plain") == "Café menu"


def test_mime_parameters_and_case_are_ignored(registry: ExtractorRegistry) -> None:
    assert registry.extract(b"hello there", "Text/Plain; charset=utf-8") == "hello there"
    assert registry.extract(b"a,b\n1,2", "text/csv") == "a,b\n1,2"


def test_markdown_front_matter_is_stripped(registry: ExtractorRegistry) -> None:
    source = b"---\ntitle: Guide\n---\n# Campus Guide\n\nVisit the **library** first."
    text = registry.extract(source, "text/markdown")
    assert "title: Guide" not in text
    assert "Campus Guide" in text
    assert "library" in text


def test_pdf_text_is_extracted(registry: ExtractorRegistry) -> None:
    text = registry.extract(make_pdf("Orientation week starts Monday"), PDF_MIME)
    assert "Orientation week starts Monday" in text


def test_docx_paragraphs_are_extracted(registry: ExtractorRegistry) -> None:
    document = docx.Document()
    document.add_paragraph("First paragraph.")
    document.add_paragraph("")
    document.add_paragraph("Second paragraph.")
    buffer = io.BytesIO()
    document.save(buffer)
    assert registry.extract(buffer.getvalue(), DOCX_MIME) == "First paragraph. Second paragraph."


def test_unsupported_type_is_rejected(registry: ExtractorRegistry) -> None:
    with pytest.raises(UnsupportedFormatError):
        registry.extract(b"\x00\x01", "application/zip")
    with pytest.raises(UnsupportedFormatError):
        registry.extract(b"hello", None)


def test_corrupt_pdf_is_an_extraction_error(registry: ExtractorRegistry) -> None:
    with pytest.raises(ExtractionError) as info:
        registry.extract(b"%PDF-1.4 this is not really a pdf", PDF_MIME)
    assert info.value.provider_name == "pdf"


def test_whitespace_only_content_is_empty(registry: ExtractorRegistry) -> None:
    with pytest.raises(EmptyContentError):
        registry.extract(b" \n\t ", "text/plain")


def test_custom_decoder_registration() -> None:
    registry = ExtractorRegistry(decoders={})
    registry.register("application/x-shout", decoder_from_callable("shout", lambda data: data.decode().upper()))
    assert registry.supported() == ["application/x-shout"]
    assert registry.extract(b"quiet", "application/x-shout") == "QUIET"
