# ponto/infrastructure/imaging.py
import base64
import io
import logging
from typing import Optional

import cv2
import numpy as np
from PIL import Image

from ..domain.errors import EvidenceEncodingError

logger = logging.getLogger("ponto.imaging")


def encode_jpeg(img_bgr: np.ndarray, quality: int = 95) -> bytes:
    """JPEG baseline con optimize ON. Lanza EvidenceEncodingError si falla."""
    if img_bgr is None or getattr(img_bgr, "size", 0) == 0:
        raise EvidenceEncodingError("empty image")
    encode_params = [
        int(cv2.IMWRITE_JPEG_QUALITY), int(quality),
        int(cv2.IMWRITE_JPEG_OPTIMIZE), 1,
    ]
    ok, buf = cv2.imencode(".jpg", img_bgr, encode_params)
    if not ok:
        raise EvidenceEncodingError(f"imencode failed (quality={quality})")
    jpg_bytes = buf.tobytes()
    logger.debug({"event": "jpeg_stats", "quality": quality, "bytes": len(jpg_bytes)})
    return jpg_bytes


def decode_bytes_to_bgr(data: bytes) -> np.ndarray:
    # PIL -> RGB -> BGR (convención OpenCV)
    img = Image.open(io.BytesIO(data)).convert("RGB")
    arr = np.array(img)
    return np.ascontiguousarray(arr[:, :, ::-1])


def b64_to_bgr(b64: str) -> np.ndarray:
    """Acepta base64 plano o data URL (data:image/jpeg;base64,...)."""
    data = base64.b64decode(b64.split(",")[-1])
    try:
        return decode_bytes_to_bgr(data)
    except Exception as e:
        raise ValueError("imageBase64 inválido (no se pudo decodificar)") from e


def decode_frame_rgba(data: bytes) -> Optional[np.ndarray]:
    """Decodifica un frame subido (jpg/png) a RGBA; None si no es imagen."""
    try:
        img = Image.open(io.BytesIO(data)).convert("RGBA")
    except Exception:
        return None
    return np.array(img)
