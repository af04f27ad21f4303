# ponto/application/recognition_service.py
from __future__ import annotations
import json
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

import numpy as np

from ..domain import errors as E
from ..domain.errors import MatcherError
from ..domain.interfaces import AuditSink, DescriptorExtractor, FaceMatcher, ProfileRepository
from ..domain.value_objects import (
    MatchCandidate, RecognitionOutcome, RecognitionSettings, RegistrationOutcome,
)
from ..infrastructure.imaging import encode_jpeg

logger = logging.getLogger("ponto.recognition")

REGISTERED_MARKER = "registered"


@dataclass
class FaceCapabilities:
    """Dependencias del flujo; se construyen una vez al arrancar la app."""
    extractor: DescriptorExtractor
    matcher: FaceMatcher
    audit: AuditSink
    profiles: ProfileRepository


class FaceRecognitionService:
    """
    Reconocimiento facial auditado:
      extracción de descriptor -> búsqueda remota -> registro de auditoría (siempre)

    Ninguna operación pública lanza excepciones; todo termina en un outcome.
    """

    def __init__(
        self,
        capabilities: FaceCapabilities,
        settings: RecognitionSettings,
        encoder: Callable[[np.ndarray, int], bytes] = encode_jpeg,
    ):
        self.caps = capabilities
        self.settings = settings
        self.encoder = encoder

    # ---- helpers ----
    def _ordered(self, matches: List[MatchCandidate]) -> List[MatchCandidate]:
        if self.settings.resort_matches:
            return sorted(matches, key=lambda m: m.similarity_score, reverse=True)
        return matches

    def _audit_no_face(self, image: np.ndarray, location: Optional[Dict[str, Any]]) -> None:
        # best-effort: una cara ausente es frecuente y de poco valor de auditoría
        try:
            blob = self.encoder(image, self.settings.evidence_quality_no_face)
        except Exception as e:
            logger.info({"event": "no_face_evidence_encode_failed", "error": str(e)})
            blob = None
        payload: Dict[str, Any] = {"success": False, "reason": E.REASON_NO_FACE}
        if location:
            payload["location"] = location
        self._audit(blob, None, payload, "rejected", None, liveness_passed=False)

    def _audit(
        self,
        blob: Optional[bytes],
        profile_id: Optional[str],
        payload: Dict[str, Any],
        status: str,
        confidence: Optional[float],
        liveness_passed: bool = True,
    ) -> Optional[str]:
        try:
            audit_id, _ = self.caps.audit.log_attempt(
                blob,
                profile_id,
                payload,
                status,
                confidence_score=confidence,
                liveness_passed=liveness_passed,
            )
            return audit_id
        except Exception as e:
            logger.info({"event": "audit_write_error", "profile_id": profile_id, "error": str(e)})
            return None

    # ---- operaciones ----
    def recognize(self, image: np.ndarray, location: Optional[Dict[str, Any]] = None) -> RecognitionOutcome:
        try:
            if not self.caps.extractor.is_ready:
                logger.info({"event": "recognize_models_not_ready"})
                return RecognitionOutcome(
                    success=False, error=E.MSG_MODELS_NOT_LOADED, reason=E.REASON_MODELS_NOT_LOADED,
                )

            descriptor = self.caps.extractor.extract(image)
            if descriptor is None:
                logger.info({"event": "recognize_no_face"})
                self._audit_no_face(image, location)
                return RecognitionOutcome(success=False, error=E.MSG_NO_FACE, reason=E.REASON_NO_FACE)

            blob = self.encoder(image, self.settings.evidence_quality_face)

            rpc_error: Optional[str] = None
            try:
                matches = self.caps.matcher.query(list(descriptor), self.settings.similarity_threshold)
            except MatcherError as e:
                rpc_error = str(e)
                matches = []

            if rpc_error is not None or not matches:
                reason = E.REASON_RPC_ERROR if rpc_error is not None else E.REASON_NO_MATCH
                payload: Dict[str, Any] = {"success": False, "reason": reason}
                if rpc_error is not None:
                    payload["error"] = rpc_error
                if location:
                    payload["location"] = location
                audit_id = self._audit(blob, None, payload, "rejected", None)
                logger.info({
                    "event": "recognize_rejected",
                    "reason": reason,
                    "threshold": self.settings.similarity_threshold,
                    "audit_id": audit_id,
                })
                return RecognitionOutcome(
                    success=False,
                    error=E.MSG_RPC_ERROR if rpc_error is not None else E.MSG_NO_MATCH,
                    reason=reason,
                    audit_id=audit_id,
                )

            match = self._ordered(matches)[0]
            payload = {
                "success": True,
                "userName": match.full_name,
                "email": match.email,
                "confidence": match.similarity_score,
            }
            if location:
                payload["location"] = location
            audit_id = self._audit(blob, match.profile_id, payload, "approved", match.similarity_score)
            logger.info({
                "event": "recognize_match",
                "profile_id": match.profile_id,
                "similarity": round(match.similarity_score, 4),
                "candidates": len(matches),
                "audit_id": audit_id,
            })
            return RecognitionOutcome(
                success=True,
                user_id=match.profile_id,
                user_name=match.full_name,
                confidence=match.similarity_score * 100.0,
                audit_id=audit_id,
            )
        except Exception as e:
            logger.exception({"event": "recognize_error", "error": str(e)})
            return RecognitionOutcome(success=False, error=E.MSG_PROCESSING, reason=E.REASON_PROCESSING)

    def register(self, image: np.ndarray, user_id: str) -> RegistrationOutcome:
        try:
            if not self.caps.extractor.is_ready:
                return RegistrationOutcome(success=False, error=E.MSG_MODELS_NOT_LOADED)

            descriptor = self.caps.extractor.extract(image)
            if descriptor is None:
                logger.info({"event": "register_no_face", "user_id": user_id})
                return RegistrationOutcome(success=False, error=E.MSG_NO_FACE)

            serialized = json.dumps([float(v) for v in descriptor])
            try:
                self.caps.profiles.save_face_descriptor(user_id, serialized, REGISTERED_MARKER)
            except E.ProfileStoreError as e:
                logger.info({"event": "register_save_failed", "user_id": user_id, "error": str(e)})
                return RegistrationOutcome(success=False, error=E.MSG_SAVE_FAILED)

            logger.info({"event": "register_ok", "user_id": user_id, "dims": len(descriptor)})
            return RegistrationOutcome(success=True)
        except Exception as e:
            logger.exception({"event": "register_error", "user_id": user_id, "error": str(e)})
            return RegistrationOutcome(success=False, error=E.MSG_PROCESSING)
