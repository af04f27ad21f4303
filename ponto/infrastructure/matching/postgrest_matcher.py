# ponto/infrastructure/matching/postgrest_matcher.py
import json
import logging
from typing import Any, List

import requests

from ...domain.errors import MatcherError
from ...domain.value_objects import MatchCandidate
from ..backend.postgrest_client import PostgrestClient

logger = logging.getLogger("ponto.backend")

RPC_NAME = "find_user_by_face_embedding"


def _to_candidate(row: Any) -> MatchCandidate:
    return MatchCandidate(
        profile_id=str(row["profile_id"]),
        full_name=row.get("full_name") or "",
        similarity_score=float(row.get("similarity_score") or 0.0),
        email=row.get("email"),
    )


class PostgrestFaceMatcher:
    """
    Búsqueda por similitud en el backend (RPC find_user_by_face_embedding).
    El RPC ordena por similitud descendente; aquí no se reordena.
    """

    def __init__(self, client: PostgrestClient, rpc_name: str = RPC_NAME):
        self.client = client
        self.rpc_name = rpc_name

    def query(self, descriptor: List[float], threshold: float) -> List[MatchCandidate]:
        try:
            data = self.client.rpc(self.rpc_name, {
                "face_embedding": json.dumps([float(v) for v in descriptor]),
                "similarity_threshold": float(threshold),
            })
        except requests.RequestException as e:
            raise MatcherError(f"rpc {self.rpc_name} failed: {e}") from e
        except ValueError as e:
            raise MatcherError(f"rpc {self.rpc_name} returned invalid JSON: {e}") from e

        if not data:
            return []
        if not isinstance(data, list):
            raise MatcherError(f"rpc {self.rpc_name} returned {type(data).__name__}, expected list")
        try:
            matches = [_to_candidate(row) for row in data]
        except (KeyError, TypeError, ValueError) as e:
            raise MatcherError(f"rpc {self.rpc_name} returned malformed rows: {e}") from e
        logger.debug({"event": "match_candidates", "count": len(matches), "threshold": threshold})
        return matches
