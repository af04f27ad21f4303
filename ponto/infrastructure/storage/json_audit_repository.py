# ponto/infrastructure/storage/json_audit_repository.py
import os
import json
import logging
from typing import Any, Dict, List, Optional

from ...domain.value_objects import AuditRecord

logger = logging.getLogger("ponto.storage")

NO_IMAGE = "no-image"


def _ensure_dir(path: str):
    if not os.path.exists(path):
        os.makedirs(path, exist_ok=True)

def _safe_write_json(path: str, data: Dict[str, Any]):
    tmp = f"{path}.tmp"
    with open(tmp, "w", encoding="utf-8") as f:
        json.dump(data, f, ensure_ascii=False, indent=2)
    os.replace(tmp, path)

def _read_json_file(path: str) -> Optional[Dict[str, Any]]:
    try:
        with open(path, "r", encoding="utf-8") as f:
            return json.load(f)
    except (OSError, ValueError):
        return None


def record_to_row(record: AuditRecord) -> Dict[str, Any]:
    row = record.to_dict()
    row["attempt_image_url"] = row.pop("attempt_image_key") or NO_IMAGE
    return row

def row_to_record(row: Dict[str, Any]) -> AuditRecord:
    image = row.get("attempt_image_url")
    return AuditRecord(
        id=row["id"],
        profile_id=row.get("profile_id"),
        attempt_image_key=None if image in (None, NO_IMAGE) else image,
        recognition_result=row.get("recognition_result") or {},
        confidence_score=row.get("confidence_score"),
        status=row.get("status", "pending"),
        liveness_passed=bool(row.get("liveness_passed", False)),
        created_at=row.get("created_at", ""),
        reviewed_at=row.get("reviewed_at"),
    )


class JsonAuditRepository:
    """
    Un documento JSON por registro:
      <AUDIT_DIR>/<id>.json
    Escritura atómica (tmp + os.replace).
    """

    def __init__(self, base_dir: str):
        self.base_dir = os.path.expanduser(base_dir)

    def _path(self, record_id: str) -> str:
        return os.path.join(self.base_dir, f"{os.path.basename(record_id)}.json")

    def insert(self, record: AuditRecord) -> str:
        _ensure_dir(self.base_dir)
        path = self._path(record.id)
        if os.path.exists(path):
            raise FileExistsError(path)
        _safe_write_json(path, record_to_row(record))
        return record.id

    def get(self, record_id: str) -> Optional[AuditRecord]:
        row = _read_json_file(self._path(record_id))
        return row_to_record(row) if row else None

    def list(self) -> List[AuditRecord]:
        if not os.path.isdir(self.base_dir):
            return []
        out = []
        for name in os.listdir(self.base_dir):
            if not name.endswith(".json"):
                continue
            row = _read_json_file(os.path.join(self.base_dir, name))
            if not row or "id" not in row:
                logger.info({"event": "audit_row_unreadable", "file": name})
                continue
            out.append(row_to_record(row))
        return out

    def update(self, record: AuditRecord) -> None:
        path = self._path(record.id)
        if not os.path.exists(path):
            raise FileNotFoundError(path)
        _safe_write_json(path, record_to_row(record))
