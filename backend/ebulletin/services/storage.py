"""
Local filesystem storage for uploaded images.
"""

import uuid
from pathlib import Path

from ebulletin.core.config import settings


class LocalStorageService:
    """Stores files below ``base_dir`` under generated names."""

    def __init__(self, base_dir: str):
        self.base_dir = Path(base_dir)
        self.base_dir.mkdir(parents=True, exist_ok=True)

    def upload(self, folder: str, extension: str, content: bytes) -> str:
        """
        Write ``content`` under ``folder`` with a random file name.

        Returns:
            Path of the stored file relative to ``base_dir``
        """
        relative = Path(folder) / f"{uuid.uuid4().hex}.{extension}"
        file_path = self.base_dir / relative
        file_path.parent.mkdir(parents=True, exist_ok=True)
        file_path.write_bytes(content)
        return relative.as_posix()

    def delete(self, path: str) -> None:
        file_path = self.base_dir / path
        if file_path.exists():
            file_path.unlink()

    def exists(self, path: str) -> bool:
        return (self.base_dir / path).exists()


def get_storage() -> LocalStorageService:
    """Storage dependency."""
    return LocalStorageService(settings.UPLOAD_DIR)
