"""HTTP client for the remote configuration store."""

from __future__ import annotations

import json
import logging
from typing import Any
from urllib.parse import quote

import httpx
import yaml  # type: ignore[import-untyped]

from pdfgen.config.cache import CacheRegistry
from pdfgen.config.settings import Settings

logger = logging.getLogger(__name__)

_DEFAULT_PROFILE = "default"
_DEFAULT_LABEL = "main"


class ConfigStoreClient:
    """Fetch application and file property sources from the config store.

    Network failures, 4xx/5xx responses and unparseable bodies all come back
    as ``None``; callers treat the fragment as absent.
    """

    def __init__(
        self,
        base_url: str,
        *,
        caches: CacheRegistry,
        timeout_seconds: float = 5.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._caches = caches
        self._http = httpx.Client(timeout=timeout_seconds, transport=transport)

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        caches: CacheRegistry,
        *,
        transport: httpx.BaseTransport | None = None,
    ) -> ConfigStoreClient:
        return cls(
            settings.config_server_url,
            caches=caches,
            timeout_seconds=settings.config_timeout_seconds,
            transport=transport,
        )

    def close(self) -> None:
        self._http.close()

    def application_source(
        self, application: str, profile: str | None = None, label: str | None = None
    ) -> dict[str, Any] | None:
        """Return the first property source of an application envelope."""

        profile = profile or _DEFAULT_PROFILE
        label = label or _DEFAULT_LABEL
        key = f"{application}|{profile}|{label}"
        return self._caches.get("appSource").get_or_load(
            key, lambda: self._fetch_application(application, profile, label)
        )

    def file_source(
        self, profile: str | None, label: str | None, repo_path: str
    ) -> dict[str, Any] | None:
        """Fetch a repo-relative file and return its source map."""

        profile = profile or _DEFAULT_PROFILE
        label = label or _DEFAULT_LABEL
        path = repo_path.lstrip("/")
        key = f"{profile}|{label}|{path}"
        return self._caches.get("configFile").get_or_load(
            key, lambda: self._fetch_file(profile, label, path)
        )

    def evict_all(self) -> None:
        self._caches.get("appSource").clear()
        self._caches.get("configFile").clear()

    def _fetch_application(
        self, application: str, profile: str, label: str
    ) -> dict[str, Any] | None:
        url = "/".join(
            [self._base_url, _encode(application), _encode(profile), _encode(label)]
        )
        body = self._get_text(url)
        if body is None:
            return None
        try:
            envelope = json.loads(body)
        except json.JSONDecodeError:
            logger.warning("config store returned non-JSON application body: %s", url)
            return None
        return _first_property_source(envelope)

    def _fetch_file(self, profile: str, label: str, path: str) -> dict[str, Any] | None:
        encoded_path = "/".join(_encode(segment) for segment in path.split("/") if segment)
        url = f"{self._base_url}/application/{_encode(profile)}/{_encode(label)}/{encoded_path}"
        body = self._get_text(url)
        if body is None:
            return None
        return parse_source_body(body, name=path)

    def _get_text(self, url: str) -> str | None:
        try:
            response = self._http.get(url)
        except httpx.HTTPError as exc:
            logger.warning("config store request failed: %s (%s)", url, exc)
            return None
        if response.status_code >= 400:
            logger.warning("config store returned %s for %s", response.status_code, url)
            return None
        text = response.content.decode("utf-8", errors="replace").lstrip("\ufeff")
        return text if text.strip() else None


def parse_source_body(body: str, *, name: str) -> dict[str, Any] | None:
    """Parse a file body as a JSON envelope, a YAML envelope, or a bare YAML map."""

    text = body.lstrip("\ufeff")
    if not text.strip():
        return None

    try:
        parsed_json = json.loads(text)
    except json.JSONDecodeError:
        parsed_json = None
    if isinstance(parsed_json, dict) and "propertySources" in parsed_json:
        return _first_property_source(parsed_json)

    try:
        parsed = yaml.safe_load(text)
    except yaml.YAMLError:
        logger.warning("config fragment is neither JSON nor YAML: %s", name)
        return None
    if not isinstance(parsed, dict):
        return None
    if "propertySources" in parsed:
        return _first_property_source(parsed)
    return parsed


def _first_property_source(envelope: Any) -> dict[str, Any] | None:
    if not isinstance(envelope, dict):
        return None
    sources = envelope.get("propertySources")
    if not isinstance(sources, list) or not sources:
        return None
    first = sources[0]
    if not isinstance(first, dict):
        return None
    source = first.get("source")
    return source if isinstance(source, dict) else None


def _encode(segment: str) -> str:
    return quote(segment, safe="")
