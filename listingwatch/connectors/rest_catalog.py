"""HTTP JSON catalog client (listings served by an external site)."""
import logging
import time
from datetime import datetime
from typing import Any, Optional, Sequence

import requests

from listingwatch.connectors.catalog import ListingRecord
from listingwatch.core.config import settings

logger = logging.getLogger(__name__)

# Only 429/5xx are retried; other 4xx are not.
RETRY_ATTEMPTS = 3
RETRY_BACKOFF_CAP = 10
LISTINGS_PATH = "/listings"


def _parse_datetime(value: Any) -> Optional[datetime]:
    if not value or not isinstance(value, str):
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None


def _to_record(item: dict[str, Any]) -> ListingRecord:
    attributes = item.get("attributes")
    if not isinstance(attributes, dict):
        attributes = item.get("acf") if isinstance(item.get("acf"), dict) else {}
    return ListingRecord(
        id=str(item.get("id")),
        title=str(item.get("title") or ""),
        url=item.get("url") or item.get("link"),
        category=item.get("category") or item.get("type"),
        status=str(item.get("status") or "publish"),
        attributes=attributes,
        published_at=_parse_datetime(item.get("published_at") or item.get("date")),
    )


class RestCatalog:
    """
    Reads listings from `{CATALOG_BASE_URL}/listings`.

    Expected response: a JSON array, or an object with an "items" array.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout_seconds: Optional[int] = None,
        session: Optional[requests.Session] = None,
    ):
        self.base_url = (base_url or settings.catalog_base_url or "").rstrip("/")
        if not self.base_url:
            raise ValueError("CATALOG_BASE_URL must be set when CATALOG_MODE=rest")
        self.timeout_seconds = timeout_seconds or settings.catalog_timeout_seconds
        self._session = session or requests.Session()
        self._session.headers.setdefault("Accept", "application/json")

    def _request_with_retry(self, method: str, url: str, **kwargs: Any) -> requests.Response:
        """Perform request with retry on 429 and 5xx; backoff capped."""
        last_exc: Exception | None = None
        for attempt in range(RETRY_ATTEMPTS):
            try:
                resp = self._session.request(method, url, timeout=self.timeout_seconds, **kwargs)
                if resp.status_code == 429 or 500 <= resp.status_code < 600:
                    if attempt < RETRY_ATTEMPTS - 1:
                        backoff = min(2 ** attempt, RETRY_BACKOFF_CAP)
                        logger.warning(
                            "Catalog API %s, retry in %ss (attempt %s/%s)",
                            resp.status_code, backoff, attempt + 1, RETRY_ATTEMPTS,
                        )
                        time.sleep(backoff)
                        continue
                resp.raise_for_status()
                return resp
            except requests.HTTPError:
                raise
            except requests.RequestException as e:
                last_exc = e
                if attempt < RETRY_ATTEMPTS - 1:
                    backoff = min(2 ** attempt, RETRY_BACKOFF_CAP)
                    logger.warning("Catalog request failed: %s, retry in %ss", e, backoff)
                    time.sleep(backoff)
        if last_exc:
            raise last_exc
        raise RuntimeError("Catalog request failed after retries")

    def fetch_page(
        self,
        categories: Optional[Sequence[str]],
        status: Optional[str],
        page: int,
        page_size: int,
    ) -> list[ListingRecord]:
        params: dict[str, Any] = {"page": page, "per_page": page_size}
        if categories:
            params["category"] = ",".join(categories)
        if status:
            params["status"] = status

        resp = self._request_with_retry("GET", f"{self.base_url}{LISTINGS_PATH}", params=params)
        data = resp.json()
        items = data.get("items", []) if isinstance(data, dict) else data
        if not isinstance(items, list):
            raise ValueError(f"Catalog returned unexpected payload type: {type(items).__name__}")
        return [_to_record(item) for item in items if isinstance(item, dict) and item.get("id") is not None]

    def get_attributes(self, listing_id: str) -> Optional[dict[str, Any]]:
        try:
            resp = self._request_with_retry("GET", f"{self.base_url}{LISTINGS_PATH}/{listing_id}")
        except requests.HTTPError as e:
            if e.response is not None and e.response.status_code == 404:
                return None
            raise
        return _to_record(resp.json()).attributes
