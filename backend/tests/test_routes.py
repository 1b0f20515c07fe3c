"""
Tests for the HTTP surface.

The listing test mirrors an end-to-end check of the service: every URL in
the listing must resolve to a JPEG whose dimensions match its name.
"""

import json

import pytest
from fastapi.testclient import TestClient

from skyhub.app import create_app
from skyhub.errors import IndexConnectError, TransportError
from skyhub.models import size_from_name

from conftest import MANIFEST_URL, jpeg_size


@pytest.fixture
def client(remote, config):
    remote.add_images(10)
    app = create_app(config, http_client=remote.client())
    with TestClient(app) as test_client:
        yield test_client


class TestListing:

    def test_lists_thirty_images(self, client):
        response = client.get("/skyhub")

        assert response.status_code == 200
        documents = response.json()
        assert len(documents) == 30
        assert all(set(doc) == {"Name", "Url"} for doc in documents)

    def test_listing_is_pretty_printed(self, client):
        text = client.get("/skyhub").text
        assert text.startswith("[\n\t{")
        assert '\t\t"Name": ' in text

    def test_every_url_serves_matching_jpeg(self, client):
        for doc in client.get("/skyhub").json():
            response = client.get(doc["Url"])
            assert response.status_code == 200, doc["Url"]
            assert response.headers["content-type"] == "image/jpeg"
            assert jpeg_size(response.content) == size_from_name(doc["Name"])


class TestServing:

    def test_unknown_image(self, client):
        assert client.get("/skyhub/nope_320x240.jpg").status_code == 404

    def test_unindexed_file_is_not_served(self, client, config):
        (config.storage_dir / "orphan_320x240.jpg").write_bytes(b"\xff\xd8partial")
        assert client.get("/skyhub/orphan_320x240.jpg").status_code == 404

    def test_health(self, client):
        body = client.get("/health").json()
        assert body["status"] == "healthy"
        assert body["indexed_images"] == 30
        assert body["last_run"]["succeeded"] == 30


class TestRefresh:

    def test_refresh_is_idempotent(self, client):
        before = client.get("/skyhub").json()

        response = client.post("/skyhub/refresh")

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["succeeded"] == 30
        assert body["failed"] == 0
        assert client.get("/skyhub").json() == before

    def test_refresh_reports_failures(self, client, remote):
        remote.set_body("http://images.test/images/plane_3.jpg", b"garbage")

        body = client.post("/skyhub/refresh").json()

        assert body["success"] is False
        assert body["failed"] == 1
        assert body["failures"][0]["stage"] == "decode"
        assert body["failures"][0]["source_url"].endswith("plane_3.jpg")
        # Records from the previous run are still served
        assert len(client.get("/skyhub").json()) == 30

    def test_refresh_with_manifest_down(self, client, remote):
        remote.set_body(MANIFEST_URL, b"unavailable", status=503)

        response = client.post("/skyhub/refresh")

        assert response.status_code == 503


class TestStartup:

    def test_manifest_failure_aborts_startup(self, remote, config):
        app = create_app(config, http_client=remote.client())
        with pytest.raises(TransportError):
            with TestClient(app):
                pass

    def test_corrupt_index_aborts_startup(self, remote, config):
        remote.add_images(1)
        config.index_path.write_text("{broken")
        app = create_app(config, http_client=remote.client())
        with pytest.raises(IndexConnectError):
            with TestClient(app):
                pass

    def test_startup_without_ingest(self, remote, config):
        config.run_on_startup = False
        app = create_app(config, http_client=remote.client())
        with TestClient(app) as client:
            assert client.get("/skyhub").json() == []
            assert remote.calls[MANIFEST_URL] == 0

    def test_existing_index_served_after_restart(self, remote, config):
        remote.add_images(2)
        with TestClient(create_app(config, http_client=remote.client())) as client:
            first = client.get("/skyhub").json()

        config.run_on_startup = False
        with TestClient(create_app(config, http_client=remote.client())) as client:
            assert client.get("/skyhub").json() == first
            assert client.get(f"/skyhub/{first[0]['Name']}").status_code == 200


def test_listing_json_round_trips(client):
    documents = json.loads(client.get("/skyhub").content)
    assert sorted(d["Name"] for d in documents)[0] == "plane_0_320x240.jpg"
