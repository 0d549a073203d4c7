import asyncio
import logging
from pathlib import Path
from uuid import UUID, uuid4

from claimcoach.config import settings

logger = logging.getLogger(__name__)


class FileStore:
    """Local-disk object store for uploaded carrier estimates.

    Write targets are opaque keys of the form ``claims/<claim_id>/<uuid>/<name>``
    so another backend (S3, Supabase storage) can be dropped in behind the
    same three calls.
    """

    def __init__(self, root: str | Path | None = None):
        self.root = Path(root or settings.UPLOAD_DIR)

    def new_key(self, claim_id: UUID, file_name: str) -> str:
        safe_name = Path(file_name).name.replace(" ", "_") or "estimate.pdf"
        return f"claims/{claim_id}/{uuid4()}/{safe_name}"

    def _path(self, key: str) -> Path:
        path = (self.root / key).resolve()
        if self.root.resolve() not in path.parents:
            raise ValueError(f"Storage key escapes the upload root: {key}")
        return path

    async def write(self, key: str, content: bytes) -> None:
        path = self._path(key)
        await asyncio.to_thread(self._write_sync, path, content)
        logger.info(f"Stored {len(content)} bytes at {key}")

    @staticmethod
    def _write_sync(path: Path, content: bytes) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(content)

    async def read(self, key: str) -> bytes:
        return await asyncio.to_thread(self._path(key).read_bytes)

    async def exists(self, key: str) -> bool:
        return await asyncio.to_thread(self._path(key).is_file)


def get_file_store() -> FileStore:
    return FileStore()
