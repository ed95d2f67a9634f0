import os
from typing import Any, Mapping, Optional
from urllib.parse import urljoin

from dotenv import load_dotenv

from .utils import open_session


class CatalogClient:
    """Reads activity definitions from, and publishes state to, the catalog."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        token: Optional[str] = None,
        timeout: int = 30,
    ):
        load_dotenv()
        url = base_url or os.getenv("CATALOG_BASE_URL")
        if not url:
            raise ValueError("Environment variable 'CATALOG_BASE_URL' is not set")

        self.base_url = url.rstrip("/")
        self.session = open_session(token or os.getenv("CATALOG_API_TOKEN"))
        self.timeout = timeout

    # -------- core request --------
    def _request(
        self,
        method: str,
        path: str,
        *,
        headers: Optional[Mapping[str, str]] = None,
        params: Optional[dict] = None,
        json: Optional[dict] = None,
    ) -> Any:
        url = urljoin(self.base_url + "/", path.lstrip("/"))
        r = self.session.request(
            method=method.upper(),
            url=url,
            headers=headers,
            params=params,
            json=json,
            timeout=self.timeout,
        )
        r.raise_for_status()
        return r.json() if r.content else None

    # -------- API callers --------
    def get_activity(self, external_ref: str) -> dict:
        """Fetch the definition of activity ``external_ref``.

        The payload carries ``name``, ``levels`` (each with ``code``,
        ``name``, ``total``, ``probability`` and optional ``bonus``),
        ``majorLevels`` and an optional ``profitRate``.
        """
        return self._request("GET", f"/api/v1/activities/{external_ref}")

    def publish_state(
        self,
        external_ref: str,
        *,
        status: str,
        commitment_hash: Optional[str] = None,
        seed: Optional[str] = None,
    ) -> Optional[dict]:
        """Push the public state of an activity back to the catalog.

        ``seed`` must only be passed once the activity has been revealed.
        """
        payload: dict[str, Any] = {"status": status, "commitmentHash": commitment_hash}
        if seed is not None:
            payload["seed"] = seed
        return self._request(
            "PUT", f"/api/v1/activities/{external_ref}/state", json=payload
        )
