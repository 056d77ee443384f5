"""Load weekly-ad files from disk for the extractor.

Only PDFs and images are accepted. Images are fully decoded once so a
truncated upload fails here, not halfway through a model call.
"""

from __future__ import annotations

import asyncio
import io
import mimetypes
from pathlib import Path

from PIL import Image

from dealhunter.errors import UnsupportedFileError
from dealhunter.models.contracts import AdFile

PDF_MIME_TYPE = "application/pdf"


def _is_supported(mime_type: str) -> bool:
    return mime_type == PDF_MIME_TYPE or mime_type.startswith("image/")


def _verify_image(name: str, data: bytes, guessed: str) -> str:
    """Decode the image and return its MIME type as Pillow sees it.

    Formats Pillow has no MIME type for keep the type guessed from the name.
    """
    try:
        with Image.open(io.BytesIO(data)) as img:
            img.load()  # Force full decode to catch truncation
            image_format = img.format
    except Exception as exc:
        raise UnsupportedFileError(f"Image is corrupt or unreadable: {name}") from exc
    return Image.MIME.get(image_format or "") or guessed


def load_ad_file(path: str | Path) -> AdFile:
    path = Path(path)
    mime_type, _ = mimetypes.guess_type(path.name)
    if mime_type is None or not _is_supported(mime_type):
        raise UnsupportedFileError(
            f"Only PDF and image files are supported, got {path.name} ({mime_type or 'unknown type'})"
        )
    data = path.read_bytes()
    if mime_type != PDF_MIME_TYPE:
        mime_type = _verify_image(path.name, data, mime_type)
    return AdFile(name=path.name, mime_type=mime_type, data=data)


async def load_ad_files(paths: list[str | Path]) -> list[AdFile]:
    """Read and validate several files concurrently, preserving order."""
    if not paths:
        return []
    return list(await asyncio.gather(*(asyncio.to_thread(load_ad_file, p) for p in paths)))
