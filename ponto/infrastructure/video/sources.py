# ponto/infrastructure/video/sources.py
import logging
from typing import Optional, Sequence

import cv2
import numpy as np

logger = logging.getLogger("ponto.liveness")


class FrameSequenceSource:
    """Frames ya capturados (p. ej. subidos por el cliente); uno por llamada."""

    def __init__(self, frames: Sequence[np.ndarray]):
        self._frames = list(frames)
        self._idx = 0

    def read_frame(self) -> Optional[np.ndarray]:
        if self._idx >= len(self._frames):
            return None
        frame = self._frames[self._idx]
        self._idx += 1
        return frame


class OpenCVVideoSource:
    """
    Cámara/stream vía cv2.VideoCapture. El ciclo de vida lo maneja quien la crea
    (usar como context manager o llamar release()).
    """

    def __init__(self, device=0, width: int = 640, height: int = 480):
        self.cap = cv2.VideoCapture(device)
        if width:
            self.cap.set(cv2.CAP_PROP_FRAME_WIDTH, width)
        if height:
            self.cap.set(cv2.CAP_PROP_FRAME_HEIGHT, height)

    def read_frame(self) -> Optional[np.ndarray]:
        if not self.cap.isOpened():
            return None
        ok, frame = self.cap.read()
        if not ok or frame is None:
            logger.info({"event": "video_read_failed"})
            return None
        return cv2.cvtColor(frame, cv2.COLOR_BGR2RGBA)

    def release(self) -> None:
        self.cap.release()

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.release()
