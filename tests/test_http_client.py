"""Tests for the base HTTP client."""

import pytest
import requests
import responses

from nutrisync import __version__
from nutrisync.errors import RemoteAuthError, RemoteStoreError
from nutrisync.sync.http_client import NotFound, RemoteApiClient
from nutrisync.sync.retry import RetryConfig

API_URL = "http://nutrisync.test/api/v1/"


class TestRemoteApiClient:
    """Tests for RemoteApiClient."""

    def setup_method(self):
        """Set up test fixtures."""
        self.client = RemoteApiClient(
            API_URL,
            token="tok",
            retry_config=RetryConfig(max_retries=2, base_delay=0, jitter=False),
        )

    def teardown_method(self):
        """Clean up."""
        self.client.close()

    @responses.activate
    def test_headers(self):
        responses.add(responses.GET, f"{API_URL}ping", json={"ok": True})

        assert self.client.request("GET", "/ping") == {"ok": True}

        headers = responses.calls[0].request.headers
        assert headers["Authorization"] == "Bearer tok"
        assert headers["User-Agent"] == f"NutriSync/{__version__}"

    @responses.activate
    def test_empty_body(self):
        responses.add(responses.DELETE, f"{API_URL}thing", status=204)

        assert self.client.request("DELETE", "thing") == {}

    @responses.activate
    def test_uncompressed_json_payload(self):
        responses.add(responses.POST, f"{API_URL}thing", json={})

        self.client.request("POST", "thing", data={"a": 1})

        request = responses.calls[0].request
        assert request.body == b'{"a": 1}'
        assert "Content-Encoding" not in request.headers

    @responses.activate
    def test_compression_can_be_disabled(self):
        client = RemoteApiClient(API_URL, compress=False)
        responses.add(responses.PUT, f"{API_URL}thing", json={})

        client.request("PUT", "thing", data={"a": 1}, compress=True)

        assert "Content-Encoding" not in responses.calls[0].request.headers
        client.close()

    @responses.activate
    def test_401_raises_auth_error_without_retry(self):
        responses.add(responses.GET, f"{API_URL}thing", status=401)

        with pytest.raises(RemoteAuthError):
            self.client.request("GET", "thing")
        assert len(responses.calls) == 1

    @responses.activate
    def test_403_raises_auth_error(self):
        responses.add(responses.GET, f"{API_URL}thing", status=403)

        with pytest.raises(RemoteAuthError):
            self.client.request("GET", "thing")

    @responses.activate
    def test_404_raises_not_found(self):
        responses.add(responses.GET, f"{API_URL}thing", status=404)

        with pytest.raises(NotFound):
            self.client.request("GET", "thing")

    @responses.activate
    def test_5xx_retried_then_succeeds(self):
        responses.add(responses.GET, f"{API_URL}thing", status=502)
        responses.add(responses.GET, f"{API_URL}thing", json={"ok": True})

        assert self.client.request("GET", "thing") == {"ok": True}
        assert len(responses.calls) == 2

    @responses.activate
    def test_5xx_exhausted(self):
        responses.add(responses.GET, f"{API_URL}thing", status=500)

        with pytest.raises(RemoteStoreError, match="Server error: 500"):
            self.client.request("GET", "thing")
        assert len(responses.calls) == 3

    @responses.activate
    def test_no_retry_when_disabled(self):
        responses.add(responses.GET, f"{API_URL}thing", status=500)

        with pytest.raises(RemoteStoreError):
            self.client.request("GET", "thing", retry=False)
        assert len(responses.calls) == 1

    @responses.activate
    def test_connection_error(self):
        responses.add(
            responses.GET, f"{API_URL}thing", body=requests.exceptions.ConnectionError("refused")
        )

        with pytest.raises(RemoteStoreError, match="Cannot connect"):
            self.client.request("GET", "thing", retry=False)

    @responses.activate
    def test_client_error_message(self):
        responses.add(responses.POST, f"{API_URL}thing", json={"message": "bad payload"}, status=422)

        with pytest.raises(RemoteStoreError, match="bad payload"):
            self.client.request("POST", "thing", data={})

    @responses.activate
    def test_invalid_json(self):
        responses.add(responses.GET, f"{API_URL}thing", body="<html>")

        with pytest.raises(RemoteStoreError, match="Invalid JSON"):
            self.client.request("GET", "thing")
