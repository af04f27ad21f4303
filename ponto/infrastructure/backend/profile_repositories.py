# ponto/infrastructure/backend/profile_repositories.py
import os
import json
import logging
from typing import Any, Dict, List, Optional

import requests

from ...domain.errors import ProfileStoreError
from ...domain.value_objects import StoredProfile
from .postgrest_client import PostgrestClient

logger = logging.getLogger("ponto.backend")


class PostgrestProfileRepository:
    """Perfil remoto: guarda el descriptor serializado en profiles.face_embedding."""

    def __init__(self, client: PostgrestClient):
        self.client = client

    def save_face_descriptor(self, user_id: str, descriptor_json: str, reference: str) -> None:
        try:
            rows = self.client.update("profiles", user_id, {
                "face_embedding": descriptor_json,
                "facial_reference_url": reference,
            })
        except requests.RequestException as e:
            raise ProfileStoreError(str(e)) from e
        if isinstance(rows, list) and not rows:
            raise ProfileStoreError(f"perfil no encontrado: {user_id}")

    def list_face_descriptors(self) -> List[StoredProfile]:
        # la búsqueda remota la resuelve el RPC; no se descargan descriptores
        return []


class LocalProfileRepository:
    """
    Perfiles en un JSON local:
    {
      "<id>": {"full_name": "...", "email": "...", "face_embedding": "[...]", "facial_reference_url": "registered"}
    }
    """

    def __init__(self, path: str):
        self.path = os.path.expanduser(path)

    def _load(self) -> Dict[str, Dict[str, Any]]:
        if not os.path.exists(self.path):
            return {}
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            raise ProfileStoreError(f"no se pudo leer {self.path}: {e}") from e
        return data if isinstance(data, dict) else {}

    def _save(self, data: Dict[str, Dict[str, Any]]) -> None:
        parent = os.path.dirname(self.path)
        if parent:
            os.makedirs(parent, exist_ok=True)
        tmp = f"{self.path}.tmp"
        with open(tmp, "w", encoding="utf-8") as f:
            json.dump(data, f, ensure_ascii=False, indent=2)
        os.replace(tmp, self.path)

    def upsert_profile(self, user_id: str, full_name: str, email: Optional[str] = None) -> None:
        data = self._load()
        row = data.setdefault(user_id, {})
        row["full_name"] = full_name
        if email is not None:
            row["email"] = email
        self._save(data)

    def save_face_descriptor(self, user_id: str, descriptor_json: str, reference: str) -> None:
        data = self._load()
        if user_id not in data:
            raise ProfileStoreError(f"perfil no encontrado: {user_id}")
        data[user_id]["face_embedding"] = descriptor_json
        data[user_id]["facial_reference_url"] = reference
        try:
            self._save(data)
        except OSError as e:
            raise ProfileStoreError(str(e)) from e

    def list_face_descriptors(self) -> List[StoredProfile]:
        out = []
        for pid, row in self._load().items():
            if not isinstance(row, dict):
                continue
            raw = row.get("face_embedding")
            if not raw:
                continue
            try:
                vec = json.loads(raw) if isinstance(raw, str) else list(raw)
                descriptor = [float(v) for v in vec]
            except (TypeError, ValueError):
                logger.info({"event": "profile_descriptor_unreadable", "profile_id": pid})
                continue
            out.append(StoredProfile(
                id=pid,
                full_name=row.get("full_name") or "",
                descriptor=descriptor,
                email=row.get("email"),
            ))
        return out
