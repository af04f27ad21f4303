# ponto/infrastructure/storage/local_storage.py
import os
import pathlib
import logging
from typing import Optional

logger = logging.getLogger("ponto.storage")


class LocalEvidenceStorage:
    """Evidencias en disco; la "URL firmada" es un file:// al archivo."""

    def __init__(self, base_dir: str):
        self.base = pathlib.Path(os.path.expanduser(base_dir))

    def _path(self, key: str) -> pathlib.Path:
        path = (self.base / key).resolve()
        if self.base.resolve() not in path.parents:
            raise ValueError(f"key fuera del directorio base: {key}")
        return path

    def upload(self, key: str, data: bytes, content_type: str = "image/jpeg") -> bool:
        try:
            path = self._path(key)
            path.parent.mkdir(parents=True, exist_ok=True)
            if path.exists():
                # sin upsert
                logger.info({"event": "local_upload_exists", "key": key})
                return False
            tmp = path.with_suffix(path.suffix + ".tmp")
            tmp.write_bytes(data)
            os.replace(tmp, path)
            return True
        except (OSError, ValueError) as e:
            logger.info({"event": "local_upload_error", "key": key, "error": str(e)})
            return False

    def signed_url(self, key: str, expires_in: int = 3600) -> Optional[str]:
        try:
            path = self._path(key)
        except ValueError:
            return None
        if not path.exists():
            return None
        return path.as_uri()
