# ponto/domain/interfaces.py
from __future__ import annotations
from typing import Protocol, List, Optional, Dict, Any, Tuple
import numpy as np

from .value_objects import AuditRecord, MatchCandidate, StoredProfile

# ---- Captura (puertos) ----

class VideoSource(Protocol):
    """Devuelve el frame actual como ndarray (H, W, 4) uint8 RGBA."""
    def read_frame(self) -> Optional[np.ndarray]:
        ...

# ---- ML / visión (puertos) ----

class DescriptorExtractor(Protocol):
    @property
    def is_ready(self) -> bool:
        ...

    def load(self) -> None:
        ...

    def extract(self, img_bgr: np.ndarray) -> Optional[List[float]]:
        """Descriptor de la cara más prominente, o None si no hay cara."""
        ...

class FaceMatcher(Protocol):
    def query(self, descriptor: List[float], threshold: float) -> List[MatchCandidate]:
        """
        Candidatos ordenados de mejor a peor.
        Lanza MatcherError ante fallos de transporte/RPC o del almacén.
        """
        ...

# ---- Persistencia (puertos) ----

class EvidenceStorage(Protocol):
    def upload(self, key: str, data: bytes, content_type: str = "image/jpeg") -> bool:
        ...
    def signed_url(self, key: str, expires_in: int = 3600) -> Optional[str]:
        ...

class AuditRepository(Protocol):
    def insert(self, record: AuditRecord) -> str:
        ...
    def get(self, record_id: str) -> Optional[AuditRecord]:
        ...
    def list(self) -> List[AuditRecord]:
        ...
    def update(self, record: AuditRecord) -> None:
        ...

class ProfileRepository(Protocol):
    def save_face_descriptor(self, user_id: str, descriptor_json: str, reference: str) -> None:
        """Lanza ProfileStoreError si la escritura falla."""
        ...
    def list_face_descriptors(self) -> List[StoredProfile]:
        ...

class AuditSink(Protocol):
    """Tolerante a fallos: devuelve None en lugar de lanzar."""
    def upload_evidence(self, blob: bytes, profile_id: Optional[str] = None) -> Optional[str]:
        ...
    def create_record(
        self,
        profile_id: Optional[str],
        attempt_key: Optional[str],
        recognition_result: Dict[str, Any],
        confidence_score: Optional[float],
        status: str,
        liveness_passed: bool,
    ) -> Optional[str]:
        ...
    def log_attempt(
        self,
        blob: Optional[bytes],
        profile_id: Optional[str],
        recognition_result: Dict[str, Any],
        status: str,
        confidence_score: Optional[float] = None,
        liveness_passed: bool = False,
    ) -> Tuple[Optional[str], Optional[str]]:
        """Sube la evidencia (si hay) y crea el registro -> (audit_id, key)."""
        ...
