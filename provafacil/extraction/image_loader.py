"""
Answer sheet image loading.

Turns a file on disk into an ImagePayload (base64 data URI) that the
vision model accepts. Photos are encoded as-is; scanned PDFs are
rasterized with PyMuPDF first.
"""

import base64
import mimetypes
from pathlib import Path

import fitz  # PyMuPDF

from provafacil.config import Settings, get_settings
from provafacil.models import ImagePayload

_MIME_OVERRIDES = {
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png": "image/png",
    ".webp": "image/webp",
    ".gif": "image/gif",
}


class ImageLoadError(Exception):
    """
    Raised when an answer sheet image cannot be loaded.

    Contains detailed information about the failure cause.
    """

    def __init__(self, message: str, file_path: str | Path, cause: Exception | None = None):
        self.file_path = str(file_path)
        self.cause = cause
        super().__init__(f"Failed to load '{file_path}': {message}")


def to_data_uri(data: bytes, mime_type: str) -> str:
    """Encode raw bytes as a base64 data URI."""
    encoded = base64.b64encode(data).decode("ascii")
    return f"data:{mime_type};base64,{encoded}"


def payload_from_data_uri(data_uri: str, source: str = "<upload>") -> ImagePayload:
    """
    Wrap an existing data URI (e.g. from a browser upload).

    Raises:
        ImageLoadError: If the URI is not a base64 data URI.
    """
    if not data_uri.startswith("data:") or ";base64," not in data_uri:
        raise ImageLoadError("Expected format 'data:<mimetype>;base64,<encoded_data>'", source)

    header, _, body = data_uri.partition(";base64,")
    mime_type = header[len("data:"):] or "application/octet-stream"
    if not body:
        raise ImageLoadError("Data URI has no content", source)

    return ImagePayload(data_uri=data_uri, mime_type=mime_type, source=source)


def load_image(file_path: Path | str, settings: Settings | None = None) -> ImagePayload:
    """
    Load an answer sheet from disk.

    Args:
        file_path: Path to a photo or a scanned PDF.
        settings: Configuration settings. Uses global settings if not provided.

    Returns:
        ImagePayload ready for extraction.

    Raises:
        ImageLoadError: If the file is missing, too large, unsupported or unreadable.
    """
    settings = settings or get_settings()
    path = Path(file_path) if isinstance(file_path, str) else file_path
    _validate_file(path, settings)

    if path.suffix.lower() == ".pdf":
        data = _render_pdf(path, settings.pdf_render_dpi)
        mime_type = "image/png"
    else:
        try:
            data = path.read_bytes()
        except OSError as e:
            raise ImageLoadError("Could not read file", path, cause=e) from e
        mime_type = _guess_mime_type(path)

    if not data:
        raise ImageLoadError("File is empty", path)

    return ImagePayload(
        data_uri=to_data_uri(data, mime_type),
        mime_type=mime_type,
        source=str(path.resolve()),
    )


def _validate_file(path: Path, settings: Settings) -> None:
    if not path.exists():
        raise ImageLoadError("File does not exist", path)

    if not path.is_file():
        raise ImageLoadError("Path is not a file", path)

    extension = path.suffix.lower()
    if extension not in settings.supported_image_extensions:
        raise ImageLoadError(
            f"Unsupported file format '{extension}'. "
            f"Expected one of: {settings.supported_image_extensions}",
            path,
        )

    size_mb = path.stat().st_size / (1024 * 1024)
    if size_mb > settings.max_image_size_mb:
        raise ImageLoadError(
            f"File is {size_mb:.1f} MB, limit is {settings.max_image_size_mb} MB",
            path,
        )


def _guess_mime_type(path: Path) -> str:
    extension = path.suffix.lower()
    if extension in _MIME_OVERRIDES:
        return _MIME_OVERRIDES[extension]
    guessed, _ = mimetypes.guess_type(path.name)
    return guessed or "application/octet-stream"


def _render_pdf(path: Path, dpi: int) -> bytes:
    """Rasterize the first page of a scanned PDF to PNG bytes."""
    try:
        with fitz.open(path) as doc:
            if doc.page_count == 0:
                raise ImageLoadError("PDF has no pages", path)
            pixmap = doc[0].get_pixmap(dpi=dpi)
            return pixmap.tobytes("png")

    except fitz.FileDataError as e:
        raise ImageLoadError("PDF file is corrupted or invalid", path, cause=e) from e
    except fitz.EmptyFileError as e:
        raise ImageLoadError("PDF file is empty", path, cause=e) from e
    except ImageLoadError:
        raise
    except Exception as e:
        raise ImageLoadError(f"Unexpected error: {e}", path, cause=e) from e
