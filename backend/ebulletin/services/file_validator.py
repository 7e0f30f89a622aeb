"""
Validation of uploaded images (announcement attachments, carousel images).

Checks:
- File extension
- Magic bytes matching the extension
- File size
"""

import logging
from pathlib import Path
from typing import Dict, Tuple

logger = logging.getLogger(__name__)

IMAGE_EXTENSIONS = {"jpg", "jpeg", "png", "gif", "webp"}

# Format: { extension: [(magic_bytes, offset, description)] }
FILE_SIGNATURES: Dict[str, list[Tuple[bytes, int, str]]] = {
    "jpg": [(b"\xff\xd8\xff", 0, "JPEG image")],
    "jpeg": [(b"\xff\xd8\xff", 0, "JPEG image")],
    "png": [(b"\x89PNG\r\n\x1a\n", 0, "PNG image")],
    "gif": [
        (b"GIF87a", 0, "GIF image (87a)"),
        (b"GIF89a", 0, "GIF image (89a)"),
    ],
    # RIFF container; the WEBP tag sits at offset 8
    "webp": [(b"WEBP", 8, "WebP image")],
}

MIME_TYPES: Dict[str, str] = {
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "png": "image/png",
    "gif": "image/gif",
    "webp": "image/webp",
}


class FileValidationError(Exception):
    """Raised when file validation fails."""

    def __init__(self, message: str, error_code: str = "VALIDATION_ERROR"):
        self.message = message
        self.error_code = error_code
        super().__init__(self.message)


def validate_file_extension(filename: str, allowed_extensions: set[str]) -> str:
    """
    Validate and return the file extension.

    Returns:
        Lowercase file extension without dot

    Raises:
        FileValidationError: If extension is missing or not allowed
    """
    if not filename:
        raise FileValidationError("File name is empty", error_code="EMPTY_FILENAME")

    suffix = Path(filename).suffix.lower()
    if not suffix:
        raise FileValidationError("File has no extension", error_code="NO_EXTENSION")

    extension = suffix.lstrip(".")
    if extension not in allowed_extensions:
        raise FileValidationError(
            f"Unsupported file type: {extension}",
            error_code="UNSUPPORTED_TYPE",
        )

    return extension


def validate_magic_bytes(content: bytes, file_type: str) -> bool:
    """Check ``content`` against the known signatures for ``file_type``."""
    for magic_bytes, offset, description in FILE_SIGNATURES.get(file_type, []):
        if content[offset:offset + len(magic_bytes)] == magic_bytes:
            logger.debug(f"File matched signature: {description}")
            return True
    return False


def validate_file_size(content: bytes, max_size_mb: int) -> bool:
    """
    Raises:
        FileValidationError: If file is empty or too large
    """
    if not content:
        raise FileValidationError("File is empty", error_code="EMPTY_FILE")

    max_bytes = max_size_mb * 1024 * 1024
    if len(content) > max_bytes:
        raise FileValidationError(
            f"File is too large (maximum {max_size_mb}MB)",
            error_code="FILE_TOO_LARGE",
        )
    return True


def validate_image(filename: str, content: bytes, max_size_mb: int) -> str:
    """
    Validate an uploaded image.

    Returns:
        Validated file extension

    Raises:
        FileValidationError: If any validation fails
    """
    file_type = validate_file_extension(filename, IMAGE_EXTENSIONS)
    validate_file_size(content, max_size_mb)

    if not validate_magic_bytes(content, file_type):
        logger.warning(f"File {filename} has invalid magic bytes for type {file_type}")
        raise FileValidationError(
            f"File content does not match its extension ({file_type})",
            error_code="INVALID_CONTENT",
        )

    logger.info(f"File {filename} passed all validations")
    return file_type
