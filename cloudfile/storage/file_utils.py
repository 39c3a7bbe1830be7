"""
File utility functions for cloud storage operations.

This module provides helpers for MIME type detection, image checks,
filename sanitizing and Content-Disposition headers.
"""

import mimetypes
from pathlib import Path
from typing import Set, Union
from urllib.parse import quote


DEFAULT_CONTENT_TYPE = "application/octet-stream"


class FileUtils:
    """Utility class for file naming and type detection."""

    IMAGE_EXTENSIONS: Set[str] = {".jpeg", ".jpg", ".png", ".gif", ".bmp", ".webp", ".tiff"}

    def __init__(self):
        """Initialize file utilities."""
        mimetypes.init()
        self._add_custom_mime_types()

    def _add_custom_mime_types(self) -> None:
        """Register types some platforms' mime tables lack."""
        custom_types = {
            ".webp": "image/webp",
            ".heif": "image/heif",
            ".avif": "image/avif",
            ".md": "text/markdown",
        }

        for extension, mime_type in custom_types.items():
            mimetypes.add_type(mime_type, extension)

    def get_content_type(self, file_path: Union[str, Path]) -> str:
        """
        Get MIME content type for a file name or path.

        Returns:
            MIME content type string, ``application/octet-stream`` when unknown
        """
        content_type, _ = mimetypes.guess_type(str(file_path))
        return content_type or DEFAULT_CONTENT_TYPE

    def is_image(self, file_path: Union[str, Path]) -> bool:
        """Check whether the extension names an image format."""
        return Path(str(file_path)).suffix.lower() in self.IMAGE_EXTENSIONS

    def sanitize_filename(self, filename: str) -> str:
        """
        Sanitize filename for safe storage.

        Unsafe characters become underscores, leading and trailing spaces and
        dots are removed and the stem is shortened so the name fits 255 bytes.
        """
        for char in '<>:"/\\|?*':
            filename = filename.replace(char, "_")

        filename = filename.strip(" .")

        if len(filename.encode("utf-8")) > 255:
            path = Path(filename)
            stem = path.stem.encode("utf-8")[:200].decode("utf-8", "ignore")
            filename = f"{stem}{path.suffix}"

        return filename

    def content_disposition(self, filename: str, inline: bool = False) -> str:
        """
        Build a Content-Disposition header value for a download name.

        Non-ASCII names are carried in the RFC 5987 ``filename*`` parameter.
        """
        disposition = "inline" if inline else "attachment"
        safe_name = self.sanitize_filename(filename)
        ascii_name = safe_name.encode("ascii", "ignore").decode("ascii") or "download"
        ascii_name = ascii_name.replace('"', "")

        if ascii_name == safe_name:
            return f'{disposition}; filename="{ascii_name}"'
        return f"{disposition}; filename=\"{ascii_name}\"; filename*=UTF-8''{quote(safe_name)}"


# Create a singleton instance for convenience
file_utils = FileUtils()

__all__ = [
    "DEFAULT_CONTENT_TYPE",
    "FileUtils",
    "file_utils",
]
