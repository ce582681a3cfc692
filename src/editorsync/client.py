from __future__ import annotations

import json
import logging
from typing import Any
from urllib.parse import quote

import httpx

from .config import DEFAULT_API_URL, DEFAULT_TIMEOUT_S
from .errors import PayloadParseError, RemoteAuthError, RemoteNotFoundError, RemoteTransportError
from .payload import GIST_FILENAME, SyncPayload, payload_from_json

logger = logging.getLogger(__name__)

GIST_DESCRIPTION = "VS Code Settings Sync"
GITHUB_API_VERSION = "2022-11-28"


def _http_error_detail(body: str) -> str | None:
    text = body.strip()
    if not text:
        return None
    try:
        obj = json.loads(text)
    except json.JSONDecodeError:
        return text
    if isinstance(obj, dict):
        for key in ("message", "detail", "error"):
            value = obj.get(key)
            if isinstance(value, str):
                value = value.strip()
                if value:
                    return value
    return text


def _describe(resp: httpx.Response) -> str:
    detail = _http_error_detail(resp.text)
    base = f"HTTP {resp.status_code}"
    if detail:
        return f"{base} {detail}"
    return base


class GistClient:
    """
    Minimal GitHub gist API client holding one sync payload per gist.

    Every gist this client writes is private and holds a single file, `vscode-settings.json`.
    """

    def __init__(
        self,
        *,
        token: str | None,
        api_url: str = DEFAULT_API_URL,
        timeout_s: float = DEFAULT_TIMEOUT_S,
    ) -> None:
        self.api_url = api_url.rstrip("/")
        self.token = token
        self.timeout_s = timeout_s
        self._default_headers = {
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": GITHUB_API_VERSION,
        }
        self._http = httpx.Client(timeout=timeout_s, follow_redirects=True)

    def close(self) -> None:
        self._http.close()

    def __enter__(self) -> "GistClient":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def request(
        self,
        *,
        method: str,
        path: str,
        json_body: Any | None = None,
        not_found: type[Exception] = RemoteNotFoundError,
    ) -> httpx.Response:
        if not self.token:
            raise RemoteAuthError("GitHub token is not configured. Run `editorsync configure` first.")
        if path.startswith(("http://", "https://")):
            url = path
        else:
            if not path.startswith("/"):
                path = "/" + path
            url = f"{self.api_url}{path}"

        headers = dict(self._default_headers)
        headers["Authorization"] = f"Bearer {self.token}"

        logger.debug("%s %s", method.upper(), url)
        try:
            resp = self._http.request(method.upper(), url, json=json_body, headers=headers)
        except httpx.HTTPError as e:
            raise RemoteTransportError(f"Request failed: {e}") from e

        if resp.status_code in (401, 403):
            raise RemoteAuthError(f"GitHub rejected the token. {_describe(resp)}")
        if resp.status_code == 404:
            raise not_found(f"Not found: {method.upper()} {path}. {_describe(resp)}")
        if resp.status_code >= 400:
            raise RemoteTransportError(f"GitHub API error. {_describe(resp)}")
        return resp

    def _json(self, resp: httpx.Response) -> Any:
        try:
            return resp.json()
        except json.JSONDecodeError as e:
            raise RemoteTransportError(f"GitHub returned a non-JSON response: {e}") from e

    def _files_body(self, payload: SyncPayload) -> dict[str, Any]:
        return {GIST_FILENAME: {"content": payload.to_json()}}

    def verify_credential(self) -> str:
        data = self._json(self.request(method="GET", path="/user", not_found=RemoteAuthError))
        login = data.get("login") if isinstance(data, dict) else None
        return login if isinstance(login, str) else ""

    def create(self, payload: SyncPayload) -> str:
        # GitHub answers 404 when the token lacks the gist scope.
        resp = self.request(
            method="POST",
            path="/gists",
            json_body={"description": GIST_DESCRIPTION, "public": False, "files": self._files_body(payload)},
            not_found=RemoteAuthError,
        )
        data = self._json(resp)
        gist_id = data.get("id") if isinstance(data, dict) else None
        if not isinstance(gist_id, str) or not gist_id:
            raise RemoteTransportError("GitHub did not return an id for the created gist.")
        logger.info("Created gist %s", gist_id)
        return gist_id

    def fetch(self, handle: str) -> SyncPayload:
        data = self._json(self.request(method="GET", path=f"/gists/{quote(handle, safe='')}"))
        files = data.get("files") if isinstance(data, dict) else None
        entry = files.get(GIST_FILENAME) if isinstance(files, dict) else None
        if not isinstance(entry, dict):
            raise PayloadParseError(f"Gist {handle} has no {GIST_FILENAME} file.")

        content = entry.get("content")
        if entry.get("truncated") and isinstance(entry.get("raw_url"), str):
            content = self.request(method="GET", path=entry["raw_url"]).text
        if not isinstance(content, str):
            raise PayloadParseError(f"Gist {handle} file {GIST_FILENAME} has no content.")
        return payload_from_json(content)

    def update(self, handle: str, payload: SyncPayload) -> None:
        self.request(
            method="PATCH",
            path=f"/gists/{quote(handle, safe='')}",
            json_body={"files": self._files_body(payload)},
        )
        logger.info("Updated gist %s", handle)
