# ponto/infrastructure/extraction/insightface_extractor.py
from __future__ import annotations
import os
import logging
import threading
from typing import List, Optional, Tuple

import numpy as np
from numpy.linalg import norm

logger = logging.getLogger("ponto.recognition")


def _pick_largest(face_objs):
    def area(f):
        box = f.bbox.astype(int)
        return int((box[2] - box[0]) * (box[3] - box[1]))
    return max(face_objs, key=area)


class InsightFaceExtractor:
    """
    Descriptor facial con InsightFace (buffalo_l) vía ONNXRuntime.
    Los modelos se cargan una sola vez (load) y luego solo se leen.
    """

    def __init__(
        self,
        model_name: str = "buffalo_l",
        root: Optional[str] = None,
        providers: Optional[List[str]] = None,
        det_size: Tuple[int, int] = (640, 640),
    ):
        self.model_name = model_name
        self.root = os.path.expanduser(root or os.environ.get("INSIGHTFACE_HOME") or "~/.insightface")
        self.providers = providers or ["CPUExecutionProvider"]
        self.det_size = det_size
        self._app = None
        self._lock = threading.Lock()

    @property
    def is_ready(self) -> bool:
        return self._app is not None

    def load(self) -> None:
        with self._lock:
            if self._app is not None:
                return
            from insightface.app import FaceAnalysis

            os.makedirs(self.root, exist_ok=True)
            app = FaceAnalysis(name=self.model_name, providers=self.providers, root=self.root)
            # ctx_id: -1 para CPU, 0+ para GPU
            ctx_id = 0 if any("CUDA" in p for p in self.providers) else -1
            app.prepare(ctx_id=ctx_id, det_size=self.det_size)
            self._app = app
            logger.info({"event": "face_models_loaded", "model": self.model_name, "providers": self.providers})

    def extract(self, img_bgr: np.ndarray) -> Optional[List[float]]:
        if self._app is None:
            raise RuntimeError("InsightFaceExtractor.load() no fue llamado")
        if img_bgr is None or img_bgr.size == 0:
            return None
        if img_bgr.dtype != np.uint8:
            img_bgr = np.clip(img_bgr, 0, 255).astype("uint8")

        faces = self._app.get(img_bgr)
        if not faces:
            return None

        face = _pick_largest(faces)
        emb = getattr(face, "normed_embedding", None)
        if emb is None:
            emb = face.embedding / (norm(face.embedding) + 1e-9)
        return emb.astype("float32").tolist()
