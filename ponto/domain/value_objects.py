# ponto/domain/value_objects.py
from __future__ import annotations
from dataclasses import dataclass, asdict
from typing import Any, Dict, List, Optional

AUDIT_STATUSES = ("approved", "rejected", "pending")
SENSITIVITIES = ("low", "medium", "high")


@dataclass(frozen=True)
class LivenessConfig:
    sensitivity: str = "medium"       # low | medium | high (informativo)
    test_mode: str = "automatic"      # automatic | manual (informativo)
    num_frames: int = 4
    frame_interval_ms: int = 800
    movement_threshold: float = 0.01  # 0..1, por par de frames
    liveness_required: bool = True


@dataclass(frozen=True)
class LivenessResult:
    passed: bool
    score: float                      # 0..1
    motion_scores: tuple = ()
    valid_comparisons: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "passed": self.passed,
            "score": round(self.score, 4),
            "motion_scores": [round(m, 4) for m in self.motion_scores],
            "valid_comparisons": self.valid_comparisons,
        }


@dataclass(frozen=True)
class RecognitionSettings:
    similarity_threshold: float = 0.6
    evidence_quality_no_face: int = 80
    evidence_quality_face: int = 95
    resort_matches: bool = False


@dataclass(frozen=True)
class MatchCandidate:
    profile_id: str
    full_name: str
    similarity_score: float           # 0..1
    email: Optional[str] = None


@dataclass
class RecognitionOutcome:
    success: bool
    user_id: Optional[str] = None
    user_name: Optional[str] = None
    confidence: Optional[float] = None  # 0..100
    error: Optional[str] = None
    reason: Optional[str] = None
    audit_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class RegistrationOutcome:
    success: bool
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class AuditRecord:
    id: str
    profile_id: Optional[str]
    attempt_image_key: Optional[str]
    recognition_result: Dict[str, Any]
    confidence_score: Optional[float]
    status: str
    liveness_passed: bool
    created_at: str
    reviewed_at: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class StoredProfile:
    id: str
    full_name: str
    descriptor: List[float]
    email: Optional[str] = None
