# ponto/infrastructure/backend/postgrest_client.py
import logging
from typing import Any, Dict, Optional

import requests

logger = logging.getLogger("ponto.backend")


class PostgrestClient:
    """
    Cliente mínimo para el backend (PostgREST):
      - rpc(name, params)       -> POST /rest/v1/rpc/<name>
      - update(table, id, data) -> PATCH /rest/v1/<table>?id=eq.<id>
    Los errores HTTP/transporte se propagan como requests.RequestException.
    """

    def __init__(self, base_url: str, api_key: str = "", timeout: int = 10, session: Optional[requests.Session] = None):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout
        self.session = session or requests.Session()

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json", "Accept": "application/json"}
        if self.api_key:
            headers["apikey"] = self.api_key
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    def rpc(self, name: str, params: Dict[str, Any]) -> Any:
        url = f"{self.base_url}/rest/v1/rpc/{name}"
        resp = self.session.post(url, json=params, headers=self._headers(), timeout=self.timeout)
        logger.info({"event": "backend_rpc", "name": name, "status": resp.status_code})
        resp.raise_for_status()
        if not resp.content:
            return None
        return resp.json()

    def update(self, table: str, row_id: str, values: Dict[str, Any]) -> Any:
        url = f"{self.base_url}/rest/v1/{table}"
        headers = self._headers()
        headers["Prefer"] = "return=representation"
        resp = self.session.patch(
            url,
            params={"id": f"eq.{row_id}"},
            json=values,
            headers=headers,
            timeout=self.timeout,
        )
        logger.info({"event": "backend_update", "table": table, "status": resp.status_code})
        resp.raise_for_status()
        return resp.json() if resp.content else []
