# ponto/infrastructure/config.py
import os
import logging
from typing import Tuple

from ..domain.value_objects import LivenessConfig, RecognitionSettings
from ..application.audit_service import FacialAuditService
from ..application.liveness_service import LivenessEstimator
from ..application.recognition_service import FaceCapabilities, FaceRecognitionService

# Adaptadores
from .backend.postgrest_client import PostgrestClient
from .backend.profile_repositories import LocalProfileRepository, PostgrestProfileRepository
from .extraction.insightface_extractor import InsightFaceExtractor
from .matching.cosine_matcher import LocalFaceMatcher
from .matching.postgrest_matcher import PostgrestFaceMatcher
from .storage.json_audit_repository import JsonAuditRepository
from .storage.local_storage import LocalEvidenceStorage
from .storage.s3_storage import S3EvidenceStorage, is_s3_uri

logger = logging.getLogger("ponto.config")


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes")


def get_recognition_settings() -> RecognitionSettings:
    return RecognitionSettings(
        similarity_threshold=float(os.getenv("FACE_SIMILARITY_TH", "0.6")),
        evidence_quality_no_face=int(os.getenv("EVIDENCE_QUALITY_NO_FACE", "80")),
        evidence_quality_face=int(os.getenv("EVIDENCE_QUALITY_FACE", "95")),
        resort_matches=_env_bool("FACE_RESORT_MATCHES", "0"),
    )


def get_liveness_config() -> LivenessConfig:
    return LivenessConfig(
        sensitivity=os.getenv("LIVENESS_SENSITIVITY", "medium"),
        num_frames=int(os.getenv("LIVENESS_NUM_FRAMES", "4")),
        frame_interval_ms=int(os.getenv("LIVENESS_FRAME_INTERVAL_MS", "800")),
        movement_threshold=float(os.getenv("LIVENESS_MOVEMENT_TH", "0.01")),
        liveness_required=_env_bool("LIVENESS_REQUIRED", "1"),
    )


def build_audit_service() -> FacialAuditService:
    evidence_uri = os.getenv("EVIDENCE_URI", "./facial_audit/evidence")
    if is_s3_uri(evidence_uri):
        storage = S3EvidenceStorage.from_uri(evidence_uri)
    else:
        storage = LocalEvidenceStorage(evidence_uri)
    return FacialAuditService(
        storage=storage,
        repository=JsonAuditRepository(os.getenv("AUDIT_DIR", "./facial_audit/records")),
        signed_url_ttl=int(os.getenv("SIGNED_URL_TTL", "3600")),
    )


def _matcher_and_profiles() -> Tuple[object, object]:
    backend_url = os.getenv("BACKEND_URL", "").strip()
    if backend_url:
        client = PostgrestClient(
            backend_url,
            api_key=os.getenv("BACKEND_API_KEY", ""),
            timeout=int(os.getenv("BACKEND_TIMEOUT", "10")),
        )
        return PostgrestFaceMatcher(client), PostgrestProfileRepository(client)
    profiles = LocalProfileRepository(os.getenv("PROFILES_PATH", "./facial_audit/profiles.json"))
    return LocalFaceMatcher(profiles), profiles


def build_extractor() -> InsightFaceExtractor:
    det = int(os.getenv("FACE_DET_SIZE", "640"))
    return InsightFaceExtractor(
        model_name=os.getenv("FACE_MODEL_NAME", "buffalo_l"),
        root=os.getenv("INSIGHTFACE_HOME"),
        det_size=(det, det),
    )


def build_capabilities() -> FaceCapabilities:
    matcher, profiles = _matcher_and_profiles()
    caps = FaceCapabilities(
        extractor=build_extractor(),
        matcher=matcher,
        audit=build_audit_service(),
        profiles=profiles,
    )
    logger.info({
        "event": "capabilities_built",
        "matcher": type(matcher).__name__,
        "profiles": type(profiles).__name__,
        "storage": type(caps.audit.storage).__name__,
    })
    return caps


def build_recognition_service(caps: FaceCapabilities) -> FaceRecognitionService:
    return FaceRecognitionService(caps, get_recognition_settings())


def _no_wait(seconds: float) -> None:
    return None


def build_liveness_estimator(wait: bool = True) -> LivenessEstimator:
    # wait=False: frames ya capturados por el cliente, sin pausa entre capturas
    return LivenessEstimator() if wait else LivenessEstimator(sleep=_no_wait)
