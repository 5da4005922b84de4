"""Text extraction for uploaded source materials, dispatched by MIME type."""

from __future__ import annotations

import io
from typing import Callable, Mapping

import docx
import fitz
import yaml
from markdown_it import MarkdownIt

from grounding_index.core.errors import EmptyContentError, ExtractionError, UnsupportedFormatError
from grounding_index.core.logging import get_logger
from grounding_index.utils.text import normalize

logger = get_logger(__name__)

_MD = MarkdownIt()

PDF_MIME = "application/pdf"
DOCX_MIME = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"
MARKDOWN_MIMES = ("text/markdown", "text/x-markdown")


class BaseDecoder:
    """Common decoder interface: bytes in, text out."""

    name: str = "base"

    def decode(self, data: bytes) -> str:  # pragma: no cover - interface
        raise NotImplementedError


class PlainTextDecoder(BaseDecoder):
    name = "text"

    def decode(self, data: bytes) -> str:
        return data.decode("utf-8", errors="replace")


class MarkdownDecoder(BaseDecoder):
    name = "markdown"

    def decode(self, data: bytes) -> str:
        text = data.decode("utf-8", errors="replace")
        _, body = _split_front_matter(text)
        return _markdown_to_text(body)


class PDFDecoder(BaseDecoder):
    name = "pdf"

    def decode(self, data: bytes) -> str:
        with fitz.open(stream=data, filetype="pdf") as doc:
            pages = [page.get_text("text", sort=True) for page in doc]
        return normalize("\n\n".join(pages))


class DocxDecoder(BaseDecoder):
    name = "docx"

    def decode(self, data: bytes) -> str:
        document = docx.Document(io.BytesIO(data))
        paragraphs = [para.text for para in document.paragraphs if para.text.strip()]
        return normalize("\n".join(paragraphs))


class ExtractorRegistry:
    """Maps MIME types (exact or ``type/*`` wildcard) to decoders."""

    def __init__(self, decoders: Mapping[str, BaseDecoder] | None = None) -> None:
        self._decoders: dict[str, BaseDecoder] = {}
        if decoders is None:
            decoders = default_decoders()
        for mime, decoder in decoders.items():
            self.register(mime, decoder)

    def register(self, mime: str, decoder: BaseDecoder) -> None:
        self._decoders[_canonical(mime)] = decoder

    def supported(self) -> list[str]:
        return sorted(self._decoders)

    def for_mime(self, mime: str | None) -> BaseDecoder | None:
        if not mime:
            return None
        canonical = _canonical(mime)
        decoder = self._decoders.get(canonical)
        if decoder is not None:
            return decoder
        major = canonical.split("/", 1)[0]
        return self._decoders.get(f"{major}/*")

    def extract(self, data: bytes, mime: str | None) -> str:
        """Decode ``data`` to text; never returns an empty string."""
        decoder = self.for_mime(mime)
        if decoder is None:
            raise UnsupportedFormatError(f"Unsupported file type: {mime}")
        try:
            text = decoder.decode(data)
        except Exception as exc:
            logger.warning("Decoder %s failed: %s", decoder.name, exc)
            raise ExtractionError(f"Could not extract text from {mime} content: {exc}", provider_name=decoder.name) from exc
        if not text or not text.strip():
            raise EmptyContentError("No text extracted from document.", provider_name=decoder.name)
        return text


def default_decoders() -> dict[str, BaseDecoder]:
    markdown = MarkdownDecoder()
    decoders: dict[str, BaseDecoder] = {
        PDF_MIME: PDFDecoder(),
        DOCX_MIME: DocxDecoder(),
        "text/*": PlainTextDecoder(),
    }
    for mime in MARKDOWN_MIMES:
        decoders[mime] = markdown
    return decoders


def decoder_from_callable(name: str, func: Callable[[bytes], str]) -> BaseDecoder:
    """Wrap a plain function as a decoder for ad-hoc registrations."""

    class _CallableDecoder(BaseDecoder):
        def decode(self, data: bytes) -> str:
            return func(data)

    decoder = _CallableDecoder()
    decoder.name = name
    return decoder


def _canonical(mime: str) -> str:
    return mime.split(";", 1)[0].strip().lower()


def _split_front_matter(text: str) -> tuple[dict[str, object] | None, str]:
    if text.startswith("---"):
        parts = text.split("---", 2)
        if len(parts) >= 3:
            try:
                front_matter = yaml.safe_load(parts[1]) or {}
            except yaml.YAMLError:
                return None, text
            if isinstance(front_matter, dict):
                return front_matter, parts[2]
    return None, text


def _markdown_to_text(text: str) -> str:
    tokens = _MD.parse(text)
    parts: list[str] = []
    for token in tokens:
        content = token.content.strip()
        if content:
            parts.append(content)
    return normalize("\n".join(parts) if parts else text)


__all__ = [
    "BaseDecoder",
    "PlainTextDecoder",
    "MarkdownDecoder",
    "PDFDecoder",
    "DocxDecoder",
    "ExtractorRegistry",
    "decoder_from_callable",
    "default_decoders",
]
