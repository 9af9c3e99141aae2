# acadlib/core/storage.py
import uuid
from pathlib import Path
from typing import Optional

import aiofiles
import aiofiles.os
from fastapi import UploadFile
from loguru import logger

from acadlib.core.errors import InvalidRequestError, NotFoundError

ALLOWED_MIME_TYPES = {
    "application/pdf",
    "application/msword",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    "application/vnd.ms-powerpoint",
    "application/vnd.openxmlformats-officedocument.presentationml.presentation",
    "text/plain",
}
CHUNK_SIZE = 1024 * 1024


class BlobStore:
    """Stores uploaded files under unique names inside one directory."""

    def __init__(self, root: Path, max_size_bytes: int, field_name: str = "materialFile"):
        self.root = Path(root)
        self.max_size_bytes = max_size_bytes
        self.field_name = field_name

    def _unique_name(self, original_name: Optional[str]) -> str:
        extension = Path(original_name or "").suffix.lower()
        return f"{self.field_name}-{uuid.uuid4().hex}{extension}"

    def path_for(self, stored_name: str) -> Path:
        # Stored names never contain separators; reject anything that tries to escape the root.
        candidate = (self.root / stored_name).resolve()
        if candidate.parent != self.root.resolve():
            raise NotFoundError("File not found.", {"file_path": stored_name})
        return candidate

    async def save(self, upload: UploadFile) -> str:
        if upload.content_type not in ALLOWED_MIME_TYPES:
            raise InvalidRequestError(
                f"Invalid file type: {upload.content_type}. Only PDF, DOC(X), PPT(X), TXT are allowed.",
                {"file_name": upload.filename},
            )
        self.root.mkdir(parents=True, exist_ok=True)
        stored_name = self._unique_name(upload.filename)
        target = self.root / stored_name
        written = 0
        try:
            async with aiofiles.open(target, "wb") as out:
                while chunk := await upload.read(CHUNK_SIZE):
                    written += len(chunk)
                    if written > self.max_size_bytes:
                        raise InvalidRequestError(
                            f"File too large. Maximum size is {self.max_size_bytes // (1024 * 1024)}MB.",
                            {"file_name": upload.filename},
                        )
                    await out.write(chunk)
        except BaseException:
            await self.delete(stored_name)
            raise
        logger.info(f"Stored upload '{upload.filename}' as {stored_name} ({written} bytes).")
        return stored_name

    async def delete(self, stored_name: str) -> bool:
        path = self.path_for(stored_name)
        try:
            await aiofiles.os.remove(path)
        except FileNotFoundError:
            return False
        logger.info(f"Deleted stored file {stored_name}.")
        return True

    def exists(self, stored_name: str) -> bool:
        return self.path_for(stored_name).is_file()
