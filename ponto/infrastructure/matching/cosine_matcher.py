# ponto/infrastructure/matching/cosine_matcher.py
from __future__ import annotations
from typing import List

import numpy as np
from numpy.linalg import norm

from ...domain.errors import MatcherError, ProfileStoreError
from ...domain.interfaces import ProfileRepository
from ...domain.value_objects import MatchCandidate


def l2_normalize(x: np.ndarray, eps: float = 1e-9) -> np.ndarray:
    x = np.asarray(x, dtype=np.float32)
    if x.ndim == 1:
        return x / (norm(x) + eps)
    return x / (norm(x, axis=1, keepdims=True) + eps)


class LocalFaceMatcher:
    """
    Matcher local (sin backend): similitud coseno contra los descriptores
    guardados en el ProfileRepository. Devuelve los candidatos >= threshold,
    ordenados de mayor a menor similitud.
    """

    def __init__(self, profiles: ProfileRepository, top_k: int = 5):
        self.profiles = profiles
        self.top_k = top_k

    def query(self, descriptor: List[float], threshold: float) -> List[MatchCandidate]:
        # fallos del almacén o descriptores corruptos -> MatcherError (se audita como rpc_error)
        try:
            stored = self.profiles.list_face_descriptors()
        except (ProfileStoreError, TypeError, ValueError) as e:
            raise MatcherError(f"profile store unavailable: {e}") from e
        q = np.asarray(descriptor, dtype=np.float32).reshape(-1)
        stored = [p for p in stored if len(p.descriptor) == q.shape[0]]
        if not stored:
            return []

        matrix = l2_normalize(np.asarray([p.descriptor for p in stored], dtype=np.float32))
        sims = matrix @ l2_normalize(q)

        order = np.argsort(-sims)[: self.top_k]
        out = []
        for i in order:
            sim = float(sims[int(i)])
            if sim < threshold:
                break
            p = stored[int(i)]
            out.append(MatchCandidate(profile_id=p.id, full_name=p.full_name, similarity_score=sim, email=p.email))
        return out
