"""Tests for the HTTP catalog client (paging params, payload shapes, retry)."""
from unittest.mock import MagicMock, patch

import pytest
import requests

from listingwatch.connectors.rest_catalog import RestCatalog


def _response(status_code=200, payload=None):
    resp = MagicMock()
    resp.status_code = status_code
    resp.json.return_value = payload
    if status_code >= 400:
        error = requests.HTTPError(f"{status_code} error")
        error.response = resp
        resp.raise_for_status.side_effect = error
    return resp


def _catalog(*responses):
    session = MagicMock()
    session.headers = {}
    session.request.side_effect = list(responses)
    return RestCatalog(base_url="https://catalog.example.test/api/", timeout_seconds=5, session=session), session


@pytest.mark.unit
class TestFetchPage:

    def test_params_and_array_payload(self):
        catalog, session = _catalog(_response(payload=[
            {"id": 1, "title": "Talo", "link": "https://x/1", "type": "asunnot", "acf": {"hinta": 5}},
            {"title": "no id"},
        ]))
        records = catalog.fetch_page(["asunnot", "tontit"], "publish", 2, 50)

        method, url = session.request.call_args.args
        assert (method, url) == ("GET", "https://catalog.example.test/api/listings")
        assert session.request.call_args.kwargs["params"] == {
            "page": 2, "per_page": 50, "category": "asunnot,tontit", "status": "publish",
        }
        assert session.request.call_args.kwargs["timeout"] == 5
        assert len(records) == 1
        assert records[0].id == "1"
        assert records[0].url == "https://x/1"
        assert records[0].category == "asunnot"
        assert records[0].attributes == {"hinta": 5}

    def test_items_envelope(self):
        catalog, _ = _catalog(_response(payload={"items": [
            {"id": "a", "attributes": {"x": 1}, "published_at": "2024-05-01T10:00:00Z"},
        ]}))
        record = catalog.fetch_page(None, None, 1, 10)[0]
        assert record.attributes == {"x": 1}
        assert record.published_at.year == 2024

    def test_unexpected_payload(self):
        catalog, _ = _catalog(_response(payload={"items": "nope"}))
        with pytest.raises(ValueError):
            catalog.fetch_page(None, None, 1, 10)

    def test_retries_server_errors(self):
        catalog, session = _catalog(_response(503), _response(payload=[]))
        with patch("listingwatch.connectors.rest_catalog.time.sleep") as sleep:
            assert catalog.fetch_page(None, None, 1, 10) == []
        assert session.request.call_count == 2
        sleep.assert_called_once_with(1)

    def test_gives_up_after_retries(self):
        catalog, session = _catalog(_response(500), _response(502), _response(503))
        with patch("listingwatch.connectors.rest_catalog.time.sleep"):
            with pytest.raises(requests.HTTPError):
                catalog.fetch_page(None, None, 1, 10)
        assert session.request.call_count == 3

    def test_client_errors_not_retried(self):
        catalog, session = _catalog(_response(400))
        with pytest.raises(requests.HTTPError):
            catalog.fetch_page(None, None, 1, 10)
        assert session.request.call_count == 1

    def test_connection_errors_retried(self):
        catalog, session = _catalog(requests.ConnectionError("reset"), _response(payload=[]))
        with patch("listingwatch.connectors.rest_catalog.time.sleep"):
            assert catalog.fetch_page(None, None, 1, 10) == []
        assert session.request.call_count == 2


@pytest.mark.unit
class TestGetAttributes:

    def test_found(self):
        catalog, _ = _catalog(_response(payload={"id": 7, "attributes": {"hinta": 1}}))
        assert catalog.get_attributes("7") == {"hinta": 1}

    def test_missing(self):
        catalog, _ = _catalog(_response(404))
        assert catalog.get_attributes("7") is None


@pytest.mark.unit
def test_base_url_required():
    with patch("listingwatch.connectors.rest_catalog.settings") as fake_settings:
        fake_settings.catalog_base_url = ""
        with pytest.raises(ValueError):
            RestCatalog(session=MagicMock())
