"""Chunking utilities."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable, Iterator, Sequence

from grounding_index.core.errors import ConfigurationError


@dataclass(frozen=True, slots=True)
class ChunkerConfig:
    """Window parameters for fixed-size overlapping chunking."""

    window_size: int = 1500
    overlap: int = 200
    min_chars: int = 11

    @property
    def step(self) -> int:
        return self.window_size - self.overlap

    def validate(self) -> None:
        if self.window_size <= 0:
            raise ConfigurationError(f"window_size must be positive, got {self.window_size}")
        if self.overlap < 0:
            raise ConfigurationError(f"overlap must not be negative, got {self.overlap}")
        if self.overlap >= self.window_size:
            raise ConfigurationError(
                f"overlap ({self.overlap}) must be smaller than window_size ({self.window_size})"
            )
        if self.min_chars < 0:
            raise ConfigurationError(f"min_chars must not be negative, got {self.min_chars}")


@dataclass(slots=True)
class Segment:
    text: str
    start: int
    end: int


def iter_windows(text: str, config: ChunkerConfig) -> Iterator[Segment]:
    """Yield every raw window, including ones the length filter would drop.

    Window ``i`` starts at ``i * (window_size - overlap)``; iteration stops once
    a window reaches the end of the text.
    """
    config.validate()
    length = len(text)
    start = 0
    while start < length:
        end = min(start + config.window_size, length)
        yield Segment(text=text[start:end], start=start, end=end)
        if end >= length:
            break
        start += config.step


def chunk_segments(text: str, config: ChunkerConfig) -> list[Segment]:
    """Windows to embed; only a short trailing window is dropped.

    Interior windows are kept whatever their content, so the surviving
    windows still cover a prefix of ``text`` without gaps.
    """
    segments = list(iter_windows(text, config))
    if segments and len(segments[-1].text.strip()) < config.min_chars:
        segments.pop()
    return segments


def chunk_text(
    text: str,
    window_size: int = 1500,
    overlap: int = 200,
    min_chars: int = 11,
) -> list[str]:
    """Split text into overlapping fixed-size character windows."""
    config = ChunkerConfig(window_size=window_size, overlap=overlap, min_chars=min_chars)
    return [segment.text for segment in chunk_segments(text, config)]


def build_chunk_payloads(material_id: str, segments: Iterable[Segment]) -> list[dict[str, Any]]:
    """Attach material metadata and ordinals to chunk segments."""
    payloads = []
    for ordinal, segment in enumerate(segments):
        payloads.append(
            {
                "material_id": material_id,
                "ordinal": ordinal,
                "text": segment.text,
                "start_char": segment.start,
                "end_char": segment.end,
            }
        )
    return payloads


def reconstruct(chunks: Sequence[str], overlap: int) -> str:
    """Join chunks back together, dropping the overlapped prefix of each."""
    if not chunks:
        return ""
    return chunks[0] + "".join(chunk[overlap:] for chunk in chunks[1:])


__all__ = [
    "ChunkerConfig",
    "Segment",
    "iter_windows",
    "chunk_segments",
    "chunk_text",
    "build_chunk_payloads",
    "reconstruct",
]
