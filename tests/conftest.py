"""Shared test fixtures and utilities."""

import base64
import hashlib
import io
import json
import re
import urllib.parse
from typing import Dict, List, Optional, Set, Tuple

import pytest
import requests
from requests.adapters import BaseAdapter
from requests.structures import CaseInsensitiveDict

from fstn.client import StoreClient
from fstn.session import Session, SessionManager

SERVER = "http://fstn.test"
ALICE_TOKEN = "tok-alice"


def _response(request, status: int, body: bytes = b"", content_type: str = "application/json"):
    resp = requests.Response()
    resp.status_code = status
    resp.raw = io.BytesIO(body)
    resp.headers = CaseInsensitiveDict({"content-type": content_type})
    resp.url = request.url
    resp.request = request
    resp.encoding = "utf-8"
    return resp


def _json(request, payload, status: int = 200):
    return _response(request, status, json.dumps(payload).encode("utf-8"))


def _parse_multipart(request) -> Dict[str, bytes]:
    boundary = request.headers["Content-Type"].split("boundary=", 1)[1].strip('"')
    delimiter = b"--" + boundary.encode("ascii")
    fields = {}
    for part in request.body.split(delimiter)[1:-1]:
        head, _, data = part[2:].partition(b"\r\n\r\n")
        name = re.search(rb'name="([^"]+)"', head).group(1).decode()
        fields[name] = data[:-2]
    return fields


class FakeFaasten(BaseAdapter):
    """In-process Faasten server mounted as a requests transport adapter."""

    def __init__(self, tokens: Optional[Dict[str, str]] = None):
        super().__init__()
        self.tokens = tokens if tokens is not None else {ALICE_TOKEN: "alice"}
        self.values: Dict[Tuple[str, ...], bytes] = {}
        self.dirs: Set[Tuple[str, ...]] = set()
        self.blobs: Dict[str, bytes] = {}
        self.requests: List[requests.PreparedRequest] = []
        self.ops: List[Tuple[str, dict]] = []
        self.gates: List[str] = []
        self.corrupt: Set[str] = set()
        self.readonly: Set[Tuple[str, ...]] = set()
        self.report_digest: Optional[str] = None
        self.down = False

    def close(self):
        pass

    def send(self, request, stream=False, timeout=None, verify=True, cert=None, proxies=None):
        self.requests.append(request)
        if self.down:
            raise requests.exceptions.ConnectionError("connection refused")

        path = urllib.parse.urlsplit(request.url).path
        if path in ("/faasten/ping", "/faasten/ping/scheduler"):
            return _response(request, 200, b"pong", "text/plain")

        user = self._user(request)
        if user is None:
            return _response(request, 401, b"unauthorized", "text/plain")

        if path == "/me":
            return _json(request, {"login": user})

        prefix = "/faasten/invoke/"
        if request.method == "POST" and path.startswith(prefix):
            self.gates.append(urllib.parse.unquote(path[len(prefix):]))
            return self._invoke(request)

        return _response(request, 404, b"no route", "text/plain")

    def _user(self, request) -> Optional[str]:
        header = request.headers.get("Authorization", "")
        if not header.startswith("Bearer "):
            return None
        return self.tokens.get(header[len("Bearer "):])

    def _invoke(self, request):
        if request.headers.get("Content-Type", "").startswith("multipart/form-data"):
            fields = _parse_multipart(request)
            payload = json.loads(fields["payload"])
        else:
            fields = {}
            payload = json.loads(request.body)
        op, args = payload["op"], payload["args"]
        self.ops.append((op, args))

        if op == "read":
            value = self.values.get(tuple(args["path"]))
            if value is None:
                return _json(request, {"success": False})
            return _json(request, {"success": True, "value": base64.b64encode(value).decode()})

        if op == "write":
            path = tuple(args["path"])
            if path in self.readonly:
                return _json(request, {"success": False})
            self.values[path] = base64.b64decode(args["data"])
            return _json(request, {"success": True})

        if op == "putblob":
            data = fields["blob"]
            digest = hashlib.sha256(data).hexdigest()
            self.blobs[digest] = data
            return _json(request, {"success": True, "digest": self.report_digest or digest})

        if op == "getblob":
            data = self.blobs.get(args["digest"])
            if data is None:
                return _response(request, 404, b"no such blob", "text/plain")
            if args["digest"] in self.corrupt:
                data = data[:-1] + bytes([data[-1] ^ 0xFF]) if data else b"x"
            return _response(request, 200, data, "application/octet-stream")

        if op == "ls":
            base = tuple(args["path"])
            entries = (*self.values, *self.dirs)
            names = sorted(
                {p[len(base)] for p in entries if p[:len(base)] == base and len(p) > len(base)}
            )
            return _json(request, {"success": True, "entries": names})

        if op in ("mkdir", "mkfile"):
            entry = (*args["base"], args["name"])
            if entry in self.values or entry in self.dirs:
                return _json(request, {"success": False})
            if op == "mkdir":
                self.dirs.add(entry)
            else:
                self.values[entry] = b""
            return _json(request, {"success": True})

        if op == "unlink":
            entry = (*args["base"], args["name"])
            doomed = [p for p in (*self.values, *self.dirs) if p[:len(entry)] == entry]
            if not doomed:
                return _json(request, {"success": False})
            for p in doomed:
                self.values.pop(p, None)
                self.dirs.discard(p)
            return _json(request, {"success": True})

        return _json(request, {"success": False, "error": f"unknown op {op}"}, status=400)


@pytest.fixture
def fake_server():
    return FakeFaasten()


@pytest.fixture
def http(fake_server):
    """requests.Session routed to the fake server."""
    session = requests.Session()
    session.mount(SERVER, fake_server)
    return session


@pytest.fixture
def alice_session():
    return Session(endpoint=SERVER, token=ALICE_TOKEN, user="alice")


@pytest.fixture
def client(alice_session, http):
    return StoreClient(SessionManager(alice_session), http=http)


@pytest.fixture
def anonymous_client(http):
    return StoreClient(SessionManager(None, server=SERVER), http=http)


@pytest.fixture
def config_dir(tmp_path, monkeypatch):
    """Isolated credential directory with no server/profile overrides."""
    directory = tmp_path / "config"
    monkeypatch.setenv("FSTN_CONFIG_DIR", str(directory))
    monkeypatch.delenv("FSTN_SERVER", raising=False)
    monkeypatch.delenv("FSTN_USER", raising=False)
    monkeypatch.delenv("FSTN_TIMEOUT", raising=False)
    return directory


@pytest.fixture
def routed_http(monkeypatch, http):
    """Make every HTTP session the code creates talk to the fake server."""
    monkeypatch.setattr("fstn.client.make_http_session", lambda: http)
    monkeypatch.setattr("fstn.session.make_http_session", lambda: http)
    return http
