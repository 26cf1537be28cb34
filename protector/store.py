"""Client for the ``webhooks`` table of the Supabase REST record store."""
import logging
from typing import Optional

import requests

from .errors import StoreError, UpstreamError

logger = logging.getLogger(__name__)


class RecordStore:
    def __init__(self, base_url: str, service_key: str, timeout: float = 10.0, session=None):
        self.base_url = (base_url or "").rstrip("/") + "/rest/v1"
        self.timeout = timeout
        self.http = session or requests.Session()
        self.http.headers.update({
            "apikey": service_key,
            "Authorization": f"Bearer {service_key}",
        })

    def fetch_sealed(self, identifier: str) -> Optional[str]:
        """The sealed webhook URL for ``identifier`` or None when unknown."""
        try:
            resp = self.http.get(
                f"{self.base_url}/webhooks",
                params={"id": f"eq.{identifier}", "select": "webhook_enc"},
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise UpstreamError(f"record store lookup failed: {e}") from e

        if not resp.ok:
            logger.warning("record store lookup returned %s for %s", resp.status_code, identifier)
            return None
        try:
            rows = resp.json()
        except ValueError:
            return None
        if not isinstance(rows, list) or not rows or not isinstance(rows[0], dict):
            return None
        return rows[0].get("webhook_enc")

    def insert(self, identifier: str, owner_id: str, sealed: str) -> None:
        try:
            resp = self.http.post(
                f"{self.base_url}/webhooks",
                json={"id": identifier, "owner_discord_id": str(owner_id), "webhook_enc": sealed},
                headers={"Prefer": "return=representation"},
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise UpstreamError(f"record store insert failed: {e}") from e

        if not resp.ok:
            logger.error("record store insert error: %s %s", resp.status_code, resp.text)
            raise StoreError(
                f"record store insert returned {resp.status_code}",
                status=resp.status_code,
            )
