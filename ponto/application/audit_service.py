# ponto/application/audit_service.py
from __future__ import annotations
import time
import uuid
import logging
import datetime
from typing import Any, Callable, Dict, List, Optional, Tuple

from ..domain.interfaces import AuditRepository, EvidenceStorage
from ..domain.value_objects import AuditRecord, AUDIT_STATUSES

logger = logging.getLogger("ponto.audit")

BUCKET_MARKER = "facial-audit"
NO_IMAGE = "no-image"
REVIEW_STATUSES = ("approved", "rejected")

AuditListener = Callable[[str, AuditRecord], None]


def _now_iso() -> str:
    return datetime.datetime.now(datetime.timezone.utc).isoformat()


def _parse_iso(value: str) -> datetime.datetime:
    # fromisoformat no acepta "Z" antes de 3.11
    if value.endswith(("Z", "z")):
        value = value[:-1] + "+00:00"
    dt = datetime.datetime.fromisoformat(value)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=datetime.timezone.utc)
    return dt


def evidence_key(profile_id: Optional[str], ts_ms: Optional[int] = None) -> str:
    ts_ms = ts_ms if ts_ms is not None else int(time.time() * 1000)
    return f"audit/{profile_id or 'unknown'}/{ts_ms}.jpg"


def normalize_evidence_key(url_or_key: Optional[str]) -> Optional[str]:
    """
    Acepta:
      - audit/<perfil>/<ts>.jpg
      - facial-audit/audit/<perfil>/<ts>.jpg
      - https://.../facial-audit/audit/<perfil>/<ts>.jpg
    Retorna la key sin prefijo de bucket, o None.
    """
    if not url_or_key or url_or_key == NO_IMAGE:
        return None
    key = url_or_key
    if url_or_key.startswith("http"):
        marker = f"/{BUCKET_MARKER}/"
        idx = url_or_key.find(marker)
        if idx == -1:
            return None
        key = url_or_key[idx + len(marker):]
        key = key.split("?", 1)[0]
    if key.startswith(f"{BUCKET_MARKER}/"):
        key = key[len(BUCKET_MARKER) + 1:]
    return key or None


class FacialAuditService:
    """
    Trazabilidad de intentos de reconocimiento facial: evidencia (imagen) +
    registro estructurado. Implementa el puerto AuditSink.
    """

    def __init__(self, storage: EvidenceStorage, repository: AuditRepository, signed_url_ttl: int = 3600):
        self.storage = storage
        self.repository = repository
        self.signed_url_ttl = signed_url_ttl
        self._listeners: List[AuditListener] = []

    # ---------- escritura ----------
    def upload_evidence(self, blob: bytes, profile_id: Optional[str] = None) -> Optional[str]:
        key = evidence_key(profile_id)
        try:
            if not self.storage.upload(key, blob, content_type="image/jpeg"):
                logger.info({"event": "evidence_upload_failed", "key": key})
                return None
        except Exception as e:
            logger.info({"event": "evidence_upload_error", "key": key, "error": str(e)})
            return None
        logger.info({"event": "evidence_uploaded", "key": key, "bytes": len(blob)})
        return key

    def create_record(
        self,
        profile_id: Optional[str],
        attempt_key: Optional[str],
        recognition_result: Dict[str, Any],
        confidence_score: Optional[float],
        status: str,
        liveness_passed: bool,
    ) -> Optional[str]:
        record = AuditRecord(
            id=str(uuid.uuid4()),
            profile_id=profile_id,
            attempt_image_key=attempt_key,
            recognition_result=dict(recognition_result or {}),
            confidence_score=confidence_score,
            status=status,
            liveness_passed=bool(liveness_passed),
            created_at=_now_iso(),
        )
        try:
            record_id = self.repository.insert(record)
        except Exception as e:
            logger.info({"event": "audit_record_error", "profile_id": profile_id, "error": str(e)})
            return None

        logger.info({
            "event": "audit_record_created",
            "id": record_id,
            "profile_id": profile_id,
            "has_image": attempt_key is not None,
            "status": status,
        })
        self._notify("created", record)
        return record_id

    def log_attempt(
        self,
        blob: Optional[bytes],
        profile_id: Optional[str],
        recognition_result: Dict[str, Any],
        status: str,
        confidence_score: Optional[float] = None,
        liveness_passed: bool = False,
    ) -> Tuple[Optional[str], Optional[str]]:
        key = self.upload_evidence(blob, profile_id) if blob else None
        audit_id = self.create_record(
            profile_id=profile_id,
            attempt_key=key,
            recognition_result=recognition_result,
            confidence_score=confidence_score,
            status=status,
            liveness_passed=liveness_passed,
        )
        return audit_id, key

    # ---------- lectura / revisión ----------
    def sign_url(self, url_or_key: Optional[str], expires_in: Optional[int] = None) -> Optional[str]:
        key = normalize_evidence_key(url_or_key)
        if key is None:
            return None
        try:
            return self.storage.signed_url(key, expires_in or self.signed_url_ttl)
        except Exception as e:
            logger.info({"event": "sign_url_error", "key": key, "error": str(e)})
            return None

    def get_record(self, record_id: str) -> Optional[AuditRecord]:
        return self.repository.get(record_id)

    def list_records(
        self,
        status: Optional[str] = None,
        profile_id: Optional[str] = None,
        since: Optional[str] = None,
        until: Optional[str] = None,
        search: Optional[str] = None,
    ) -> List[AuditRecord]:
        since_dt = _parse_iso(since) if since else None
        until_dt = _parse_iso(until) if until else None
        needle = (search or "").strip().lower()

        out = []
        for rec in self.repository.list():
            if status and rec.status != status:
                continue
            if profile_id and rec.profile_id != profile_id:
                continue
            created = _parse_iso(rec.created_at)
            if since_dt and created < since_dt:
                continue
            if until_dt and created > until_dt:
                continue
            if needle:
                haystack = " ".join([
                    rec.profile_id or "",
                    str(rec.recognition_result.get("userName") or ""),
                    str(rec.recognition_result.get("email") or ""),
                ]).lower()
                if needle not in haystack:
                    continue
            out.append(rec)

        out.sort(key=lambda r: r.created_at, reverse=True)
        return out

    def summary(self) -> Dict[str, int]:
        counts = {s: 0 for s in AUDIT_STATUSES}
        records = self.repository.list()
        for rec in records:
            counts[rec.status] = counts.get(rec.status, 0) + 1
        counts["total"] = len(records)
        return counts

    def update_status(self, record_id: str, status: str) -> Optional[AuditRecord]:
        if status not in REVIEW_STATUSES:
            raise ValueError(f"status inválido: {status}")
        record = self.repository.get(record_id)
        if record is None:
            return None
        record.status = status
        record.reviewed_at = _now_iso()
        self.repository.update(record)
        logger.info({"event": "audit_status_updated", "id": record_id, "status": status})
        self._notify("updated", record)
        return record

    # ---------- suscripciones ----------
    def subscribe(self, listener: AuditListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self, event: str, record: AuditRecord) -> None:
        for listener in list(self._listeners):
            try:
                listener(event, record)
            except Exception as e:
                logger.info({"event": "audit_listener_error", "audit_event": event, "error": str(e)})
