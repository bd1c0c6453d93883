from __future__ import annotations

import json
import logging

import httpx
import pytest

from pdfgen.config.cache import CacheRegistry
from pdfgen.config.client import ConfigStoreClient, parse_source_body


def test_parse_source_body_accepts_envelopes_and_bare_maps() -> None:
    envelope = {"propertySources": [{"name": "a", "source": {"k": "v"}}], "version": "1"}

    assert parse_source_body(json.dumps(envelope), name="a.json") == {"k": "v"}
    assert parse_source_body("propertySources:\n  - source:\n      k: y\n", name="a.yml") == {
        "k": "y"
    }
    assert parse_source_body("\ufeffk: bare\n", name="b.yml") == {"k": "bare"}


@pytest.mark.parametrize("body", ["", "   ", "- a\n- b\n", "key: [unclosed"])
def test_parse_source_body_returns_none_for_unusable_bodies(body: str) -> None:
    assert parse_source_body(body, name="x.yml") is None


def test_application_source_encodes_segments_and_caches() -> None:
    seen: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request.url.raw_path.decode())
        body = {"propertySources": [{"name": "a", "source": {"greeting": "hi"}}]}
        return httpx.Response(200, json=body)

    caches = CacheRegistry()
    client = ConfigStoreClient(
        "http://config.test/", caches=caches, transport=httpx.MockTransport(handler)
    )

    assert client.application_source("my app", "dev", "release/1") == {"greeting": "hi"}
    assert client.application_source("my app", "dev", "release/1") == {"greeting": "hi"}
    assert seen == ["/my%20app/dev/release%2F1"]

    client.evict_all()
    client.application_source("my app", "dev", "release/1")
    assert len(seen) == 2


def test_file_source_treats_errors_as_absent(caplog: pytest.LogCaptureFixture) -> None:
    caplog.set_level(logging.WARNING, logger="pdfgen.config.client")

    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("boom.yml"):
            raise httpx.ConnectError("refused", request=request)
        return httpx.Response(500)

    client = ConfigStoreClient(
        "http://config.test", caches=CacheRegistry(), transport=httpx.MockTransport(handler)
    )

    assert client.file_source(None, None, "mappings/boom.yml") is None
    assert client.file_source(None, None, "mappings/fail.yml") is None
    assert "request failed" in caplog.text
    assert "returned 500" in caplog.text
