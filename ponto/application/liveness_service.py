# ponto/application/liveness_service.py
import time
import logging
from typing import Callable, List, Optional, Sequence

import numpy as np

from ..domain.interfaces import VideoSource
from ..domain.value_objects import LivenessConfig, LivenessResult

logger = logging.getLogger("ponto.liveness")

PIXEL_STRIDE = 8          # 1 de cada 8 píxeles (32 bytes en RGBA)
LUMA_WEIGHTS = np.array([0.299, 0.587, 0.114], dtype=np.float64)
MOTION_NORMALIZER = 40.0  # empírico
PASS_SCORE = 0.2

# (límite sobre el movimiento medio, incremento)
SCORE_TIERS = ((0.01, 0.3), (0.02, 0.3), (0.04, 0.2), (0.08, 0.2))
MULTI_PAIR_BONUS = 0.2

INSTRUCTIONS = (
    "Please turn your head slowly to the left",
    "Now turn your head slowly to the right",
    "Finally, smile for 2 seconds",
)

ProgressCallback = Callable[[int, int, Optional[str]], None]


def frame_motion_score(frame_a: np.ndarray, frame_b: np.ndarray) -> float:
    """
    Diferencia de luminancia media entre dos frames RGBA, normalizada a 0..1.
    Frames de tamaño distinto -> 0.0
    """
    if frame_a is None or frame_b is None or frame_a.shape != frame_b.shape:
        return 0.0

    px_a = np.asarray(frame_a).reshape(-1, 4)[::PIXEL_STRIDE, :3].astype(np.float64)
    px_b = np.asarray(frame_b).reshape(-1, 4)[::PIXEL_STRIDE, :3].astype(np.float64)
    if px_a.shape[0] == 0:
        return 0.0

    diff = np.abs(px_a @ LUMA_WEIGHTS - px_b @ LUMA_WEIGHTS)
    avg = float(diff.mean())
    return min(avg / MOTION_NORMALIZER, 1.0)


def aggregate_liveness_score(mean_motion: float, valid_comparisons: int) -> float:
    score = 0.0
    for limit, inc in SCORE_TIERS:
        if mean_motion > limit:
            score += inc
    if valid_comparisons >= 2:
        score += MULTI_PAIR_BONUS
    return float(min(1.0, max(0.0, score)))


def score_frames(frames: Sequence[np.ndarray], movement_threshold: float) -> LivenessResult:
    motions: List[float] = []
    total = 0.0
    valid = 0
    for i in range(1, len(frames)):
        m = frame_motion_score(frames[i - 1], frames[i])
        motions.append(m)
        if m > movement_threshold:
            total += m
            valid += 1

    mean = total / valid if valid > 0 else 0.0
    score = aggregate_liveness_score(mean, valid)
    return LivenessResult(
        passed=score >= PASS_SCORE,
        score=score,
        motion_scores=tuple(motions),
        valid_comparisons=valid,
    )


class LivenessEstimator:
    """
    Prueba de vida por movimiento entre frames consecutivos (anti foto estática).
    Nunca lanza: cualquier error de captura -> passed=False, score=0.0
    """

    def __init__(self, sleep: Callable[[float], None] = time.sleep):
        self._sleep = sleep

    def _capture(self, source: VideoSource) -> np.ndarray:
        frame = source.read_frame()
        if frame is None:
            raise ValueError("video source returned no frame")
        frame = np.asarray(frame)
        if frame.ndim != 3 or frame.shape[2] != 4:
            raise ValueError(f"expected RGBA frame, got shape {frame.shape}")
        return frame

    def evaluate(
        self,
        video_source: VideoSource,
        config: LivenessConfig,
        on_progress: Optional[ProgressCallback] = None,
    ) -> LivenessResult:
        if not config.liveness_required:
            return LivenessResult(passed=True, score=1.0)

        try:
            frames: List[np.ndarray] = []
            total = max(0, int(config.num_frames))
            for i in range(total):
                if on_progress is not None:
                    on_progress(i, total, INSTRUCTIONS[i] if i < len(INSTRUCTIONS) else None)
                self._sleep(config.frame_interval_ms / 1000.0)
                frames.append(self._capture(video_source))

            result = score_frames(frames, config.movement_threshold)
        except Exception as e:
            logger.info({"event": "liveness_error", "error": str(e)})
            return LivenessResult(passed=False, score=0.0)

        logger.info({
            "event": "liveness_result",
            "frames": len(frames),
            "sensitivity": config.sensitivity,
            "motion_scores": [round(m, 4) for m in result.motion_scores],
            "valid_comparisons": result.valid_comparisons,
            "score": round(result.score, 4),
            "passed": result.passed,
        })
        return result
