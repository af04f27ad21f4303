import numpy as np
import pytest

from ponto.application.audit_service import FacialAuditService
from ponto.application.recognition_service import FaceCapabilities, FaceRecognitionService
from ponto.domain.value_objects import RecognitionSettings
from ponto.infrastructure.storage.json_audit_repository import JsonAuditRepository
from ponto.infrastructure.storage.local_storage import LocalEvidenceStorage

from .fakes import _FakeExtractor, _FakeMatcher, _FakeProfiles, _RecordingAuditSink, _RecordingEncoder


@pytest.fixture
def image() -> np.ndarray:
    return np.full((48, 64, 3), 127, dtype=np.uint8)


@pytest.fixture
def make_service():
    def _make(extractor=None, matcher=None, audit=None, profiles=None, encoder=None, settings=None):
        caps = FaceCapabilities(
            extractor=extractor or _FakeExtractor(descriptor=[0.1, 0.2, 0.3]),
            matcher=matcher or _FakeMatcher(),
            audit=audit or _RecordingAuditSink(),
            profiles=profiles or _FakeProfiles(),
        )
        return FaceRecognitionService(caps, settings or RecognitionSettings(), encoder=encoder or _RecordingEncoder())
    return _make


@pytest.fixture
def audit_service(tmp_path) -> FacialAuditService:
    return FacialAuditService(
        storage=LocalEvidenceStorage(str(tmp_path / "evidence")),
        repository=JsonAuditRepository(str(tmp_path / "records")),
    )
