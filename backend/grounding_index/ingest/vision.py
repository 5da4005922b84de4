"""Image description adapters."""

from __future__ import annotations

import base64
import io
import logging
from dataclasses import dataclass

import requests
from PIL import Image, UnidentifiedImageError

from grounding_index.core.errors import ExtractionError, ProviderError, ProviderInputError, TransientProviderError
from grounding_index.utils.text import humanize_stem

logger = logging.getLogger(__name__)

DESCRIBE_PROMPT = (
    "Describe this image in detail for a marketing team. Focus on key elements, mood, "
    "potential use cases, and any notable features. Make it suitable for alt text or for "
    "finding the image later via search."
)


@dataclass(slots=True)
class ImageInfo:
    width: int
    height: int
    format: str | None


def inspect_image(data: bytes) -> ImageInfo:
    """Read dimensions and format without decoding the full raster."""
    try:
        with Image.open(io.BytesIO(data)) as image:
            width, height = image.size
            return ImageInfo(width=width, height=height, format=image.format)
    except (UnidentifiedImageError, OSError) as exc:
        raise ExtractionError(f"Unreadable image: {exc}", provider_name="pillow") from exc


class ImageDescriber:
    name: str = "base"

    def describe(self, data: bytes, mime_type: str, file_name: str, info: ImageInfo) -> str:  # pragma: no cover - interface
        raise NotImplementedError


class FilenameDescriber(ImageDescriber):
    """Offline describer built from the file name and image properties."""

    name = "filename"

    def describe(self, data: bytes, mime_type: str, file_name: str, info: ImageInfo) -> str:
        subject = humanize_stem(file_name) or "untitled image"
        orientation = "landscape" if info.width > info.height else "portrait" if info.height > info.width else "square"
        kind = (info.format or mime_type.split("/", 1)[-1]).upper()
        return f"{subject}. A {orientation} {kind} image, {info.width}x{info.height} pixels."


class HttpVisionDescriber(ImageDescriber):
    """Posts the image to a vision-model endpoint returning ``{"description": ...}``."""

    name = "vision-http"

    def __init__(self, endpoint: str, timeout: float = 60.0, prompt: str = DESCRIBE_PROMPT) -> None:
        self.endpoint = endpoint
        self.timeout = timeout
        self.prompt = prompt

    def describe(self, data: bytes, mime_type: str, file_name: str, info: ImageInfo) -> str:
        payload = {
            "prompt": self.prompt,
            "mime_type": mime_type,
            "file_name": file_name,
            "image_base64": base64.b64encode(data).decode("ascii"),
        }
        try:
            resp = requests.post(self.endpoint, json=payload, timeout=self.timeout)
        except (requests.Timeout, requests.ConnectionError) as exc:
            raise TransientProviderError(f"Vision endpoint unreachable: {exc}", provider_name=self.name) from exc
        if resp.status_code == 429 or resp.status_code >= 500:
            raise TransientProviderError(f"Vision endpoint returned {resp.status_code}", provider_name=self.name)
        if resp.status_code >= 400:
            raise ProviderInputError(f"Vision endpoint rejected image ({resp.status_code}): {resp.text[:200]}", provider_name=self.name)
        try:
            description = resp.json().get("description", "")
        except ValueError as exc:
            raise ProviderError("Vision endpoint returned invalid JSON", provider_name=self.name) from exc
        if not isinstance(description, str) or not description.strip():
            raise ProviderError("AI failed to generate image description.", provider_name=self.name)
        logger.debug("Vision description for %s: %s", file_name, description)
        return description.strip()


def build_describer(endpoint: str | None, timeout: float) -> ImageDescriber:
    if endpoint:
        return HttpVisionDescriber(endpoint, timeout=timeout)
    return FilenameDescriber()


__all__ = [
    "ImageInfo",
    "inspect_image",
    "ImageDescriber",
    "FilenameDescriber",
    "HttpVisionDescriber",
    "build_describer",
]
