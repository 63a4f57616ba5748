"""
Shared fixtures.

``fake_github`` emulates the GitHub contents API in memory so the client,
service and CLI can be exercised end to end through a mocked
requests.Session.
"""

import base64
import hashlib
import json
import posixpath
from typing import Any, Dict, List, Optional, Tuple, Union
from unittest.mock import Mock
from urllib.parse import unquote

import pytest
import requests

from dax_udf_sync.config import settings as settings_module

API_URL = "https://api.github.com"
REPO = "contoso/dax-functions"

ENV_VARS = [
    "GITHUB_TOKEN",
    "GH_TOKEN",
    "GITHUB_REPOSITORY",
    "GITHUB_BRANCH",
    "GITHUB_API_URL",
    "GITHUB_TOKEN_SECRET_ID",
    "UDF_SYNC_PATH",
    "UDF_SYNC_CONFIG",
    "UDF_SYNC_MODEL",
    "UDF_SYNC_FUNCTIONS_DIR",
    "AWS_REGION",
]


@pytest.fixture(autouse=True)
def isolated_environment(monkeypatch, tmp_path):
    """Keep CI variables (GITHUB_REPOSITORY, GITHUB_TOKEN) out of the tests."""
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)
    settings_module.clear_token_cache()
    yield
    settings_module.clear_token_cache()


def make_response(status_code: int = 200, payload: Any = None, text: Optional[str] = None, headers=None):
    response = Mock()
    response.status_code = status_code
    response.headers = headers or {}
    response.json.return_value = payload
    if text is None:
        text = json.dumps(payload) if payload is not None else ""
    response.text = text
    response.content = text.encode("utf-8")
    return response


def raw_bytes(content: Union[str, bytes]) -> bytes:
    return content if isinstance(content, bytes) else content.encode("utf-8")


def blob_sha(content: Union[str, bytes]) -> str:
    data = raw_bytes(content)
    return hashlib.sha1(b"blob %d\0" % len(data) + data).hexdigest()


class FakeGitHub:
    """
    In-memory repository served through ``session.request``.

    File values are text (stored as UTF-8) or raw bytes.
    """

    def __init__(
        self, files: Optional[Dict[str, Union[str, bytes]]] = None, api_url: str = API_URL, repo: str = REPO
    ):
        self.files: Dict[str, Union[str, bytes]] = dict(files or {})
        self.api_url = api_url
        self.repo = repo
        self.calls: List[Tuple[str, str, Dict[str, Any]]] = []
        self.puts: List[Dict[str, Any]] = []
        self.fail_paths: Dict[str, int] = {}
        self.session = Mock(spec=requests.Session)
        self.session.request.side_effect = self.request

    @property
    def contents_prefix(self) -> str:
        return f"{self.api_url}/repos/{self.repo}/contents/"

    def _raw_url(self, path: str) -> str:
        return f"https://raw.githubusercontent.com/{self.repo}/main/{path}"

    def _file_entry(self, path: str) -> Dict[str, Any]:
        data = raw_bytes(self.files[path])
        return {
            "type": "file",
            "name": posixpath.basename(path),
            "path": path,
            "sha": blob_sha(data),
            "size": len(data),
            "download_url": self._raw_url(path),
        }

    def _list(self, path: str) -> Optional[List[Dict[str, Any]]]:
        prefix = f"{path}/" if path else ""
        entries: Dict[str, Dict[str, Any]] = {}
        for file_path in self.files:
            if not file_path.startswith(prefix):
                continue
            remainder = file_path[len(prefix):]
            head = remainder.split("/", 1)[0]
            child = f"{prefix}{head}"
            if "/" in remainder:
                entries[child] = {"type": "dir", "name": head, "path": child, "sha": "tree", "size": 0}
            else:
                entries[child] = self._file_entry(child)
        if not entries and path:
            return None
        return [entries[key] for key in sorted(entries)]

    def request(self, method, url, timeout=None, params=None, json=None, **kwargs):
        self.calls.append((method, url, {"params": params, "json": json}))

        if url.startswith("https://raw.githubusercontent.com/"):
            path = url.split("/main/", 1)[1]
            response = make_response(200)
            response.content = raw_bytes(self.files[path])
            return response

        assert url.startswith(self.contents_prefix), url
        path = unquote(url[len(self.contents_prefix):]).strip("/")

        if path in self.fail_paths:
            return make_response(self.fail_paths[path], {"message": "boom"})

        if method == "GET":
            if path in self.files:
                entry = self._file_entry(path)
                entry["encoding"] = "base64"
                entry["content"] = base64.encodebytes(raw_bytes(self.files[path])).decode("ascii")
                return make_response(200, entry)
            listing = self._list(path)
            if listing is None:
                return make_response(404, {"message": "Not Found"})
            return make_response(200, listing)

        if method == "PUT":
            self.puts.append({"path": path, **json})
            exists = path in self.files
            if exists and "sha" not in json:
                return make_response(422, {"message": 'Invalid request.\n\n"sha" wasn\'t supplied.'})
            if exists and json["sha"] != blob_sha(self.files[path]):
                return make_response(409, {"message": f"{path} does not match {json['sha']}"})
            self.files[path] = base64.b64decode(json["content"]).decode("utf-8")
            return make_response(
                200 if exists else 201,
                {"content": self._file_entry(path), "commit": {"sha": "c0ffee"}},
            )

        raise AssertionError(f"Unexpected {method} {url}")


@pytest.fixture
def fake_github():
    return FakeGitHub(
        {
            "functions/Math/AddTax.dax": "(amount : NUMERIC) =>\n\tamount * 1.2\n",
            "functions/Text/Greeting.dax": "(name : STRING) =>\n\t\"Hello \" & name\n",
            "functions/README.md": "# Functions\n",
        }
    )
