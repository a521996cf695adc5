"""
Unit tests for the upload stores: Cloudinary (over a mock transport) and local disk.
"""
import hashlib
import re
from pathlib import Path
from urllib.parse import urlparse
from urllib.request import url2pathname

import httpx
import pytest
from tenacity import wait_none

from tote_mockup.clients import CloudinaryStore, LocalStore, Store, make_public_id
from tote_mockup.clients.cloudinary import sign_params
from tote_mockup.config import CloudinaryConfig
from tote_mockup.errors import UploadFailed

SECURE_URL = "https://res.cloudinary.com/demo/image/upload/v1/tote-bag-designs/mockup.jpg"


def form_value(body: bytes, name: str) -> str:
    match = re.search(rb'name="' + name.encode() + rb'"\r\n\r\n(.*?)\r\n', body, re.S)
    assert match, f"field {name} missing from upload"
    return match.group(1).decode()


def make_store(handler, **overrides) -> CloudinaryStore:
    config = CloudinaryConfig(cloud_name="demo", api_key="key-123", api_secret="s3cret", **overrides)
    return CloudinaryStore(config, transport=httpx.MockTransport(handler), retry_wait=wait_none())


@pytest.mark.unit
class TestSignParams:
    def test_sorted_pairs_plus_secret(self):
        signature = sign_params({"timestamp": "1315060510", "public_id": "sample_image"}, "abcd")

        expected = hashlib.sha1(b"public_id=sample_image&timestamp=1315060510abcd").hexdigest()
        assert signature == expected

    def test_empty_values_are_skipped(self):
        assert sign_params({"a": "1", "b": ""}, "x") == sign_params({"a": "1"}, "x")


@pytest.mark.unit
class TestCloudinaryStore:
    def test_signed_upload_returns_secure_url(self):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"secure_url": SECURE_URL})

        with make_store(handler) as store:
            url = store.upload(b"jpeg-bytes", "mockup.jpg")

        assert url == SECURE_URL
        assert len(seen) == 1
        request = seen[0]
        assert request.method == "POST"
        assert request.url.path == "/v1_1/demo/image/upload"

        body = request.read()
        assert form_value(body, "folder") == "tote-bag-designs"
        assert form_value(body, "api_key") == "key-123"
        assert re.fullmatch(r"\d{13}-mockup-[0-9a-f]{6}", form_value(body, "public_id"))
        assert b'filename="mockup.jpg"' in body
        assert b"jpeg-bytes" in body
        assert b"s3cret" not in body

        params = {key: form_value(body, key) for key in ("folder", "public_id", "timestamp")}
        assert form_value(body, "signature") == sign_params(params, "s3cret")

    def test_custom_folder(self):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request.read())
            return httpx.Response(200, json={"secure_url": SECURE_URL})

        with make_store(handler, folder="staging-totes") as store:
            store.upload(b"x", "logo.png")

        assert form_value(seen[0], "folder") == "staging-totes"

    def test_server_error_without_retries(self):
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            return httpx.Response(500, json={"error": {"message": "boom"}})

        with make_store(handler) as store, pytest.raises(UploadFailed) as exc_info:
            store.upload(b"x", "mockup.jpg")

        assert len(calls) == 1
        assert isinstance(exc_info.value.cause, httpx.HTTPStatusError)
        assert not exc_info.value.is_client_error

    def test_transient_failure_is_retried(self):
        responses = iter(
            [
                httpx.Response(503, text="unavailable"),
                httpx.Response(200, json={"secure_url": SECURE_URL}),
            ]
        )

        with make_store(lambda request: next(responses), upload_attempts=2) as store:
            assert store.upload(b"x", "mockup.jpg") == SECURE_URL

    def test_client_error_is_not_retried(self):
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            return httpx.Response(401, json={"error": {"message": "Invalid signature"}})

        with make_store(handler, upload_attempts=3) as store, pytest.raises(UploadFailed):
            store.upload(b"x", "mockup.jpg")

        assert len(calls) == 1

    def test_transport_error(self):
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            raise httpx.ConnectError("connection refused", request=request)

        with make_store(handler, upload_attempts=2) as store, pytest.raises(UploadFailed) as exc_info:
            store.upload(b"x", "mockup.jpg")

        assert len(calls) == 2
        assert isinstance(exc_info.value.cause, httpx.ConnectError)

    def test_missing_secure_url(self):
        with make_store(lambda request: httpx.Response(200, json={"public_id": "x"})) as store:
            with pytest.raises(UploadFailed, match="secure_url"):
                store.upload(b"x", "mockup.jpg")

    def test_invalid_json(self):
        with make_store(lambda request: httpx.Response(200, text="<html>")) as store:
            with pytest.raises(UploadFailed, match="invalid JSON"):
                store.upload(b"x", "mockup.jpg")

    def test_satisfies_store_protocol(self):
        with make_store(lambda request: httpx.Response(200, json={})) as store:
            assert isinstance(store, Store)


@pytest.mark.unit
class TestLocalStore:
    def test_writes_file_and_returns_uri(self, tmp_path):
        store = LocalStore(tmp_path, folder="tote-bag-designs")

        url = store.upload(b"png-bytes", "My Logo.PNG")
        path = Path(url2pathname(urlparse(url).path))

        assert url.startswith("file://")
        assert path.parent == (tmp_path / "tote-bag-designs").resolve()
        assert path.suffix == ".png"
        assert path.read_bytes() == b"png-bytes"
        assert isinstance(store, Store)

    def test_same_name_twice_does_not_overwrite(self, tmp_path):
        store = LocalStore(tmp_path)

        first = store.upload(b"one", "mockup.jpg")
        second = store.upload(b"two", "mockup.jpg")

        assert first != second
        assert len(list(store.base_dir.iterdir())) == 2

    def test_write_failure(self, tmp_path):
        blocker = tmp_path / "blocked"
        blocker.write_text("not a directory")

        with pytest.raises(UploadFailed) as exc_info:
            LocalStore(blocker).upload(b"x", "mockup.jpg")

        assert isinstance(exc_info.value.cause, OSError)


@pytest.mark.unit
class TestPublicId:
    def test_format(self):
        assert re.fullmatch(r"\d{13}-my-logo-[0-9a-f]{6}", make_public_id("My Logo.png"))
        assert re.fullmatch(r"\d{13}-upload-[0-9a-f]{6}", make_public_id("???.png"))
        assert re.fullmatch(r"\d{13}-logo-[0-9a-f]{6}", make_public_id("C:\\Users\\me\\logo.png"))

    def test_unique(self):
        ids = {make_public_id("mockup.jpg") for _ in range(200)}

        assert len(ids) == 200
