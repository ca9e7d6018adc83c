"""Shared fixtures: a threaded mock API and a small accounts spec."""
import copy
import json
import os
import threading
from dataclasses import dataclass, field
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Any, Callable, Dict, List, Optional, Tuple, Union
from urllib.parse import urlsplit

import pytest


@dataclass
class RecordedRequest:
    method: str
    target: str
    headers: Dict[str, str] = field(default_factory=dict)
    body: str = ""

    @property
    def path(self) -> str:
        return urlsplit(self.target).path

    @property
    def query(self) -> str:
        return urlsplit(self.target).query


Reply = Tuple[int, Any]
Route = Union[Reply, Callable[[RecordedRequest], Reply]]


class MockApi:
    """In-process HTTP API with canned responses per (METHOD, path)."""

    def __init__(self):
        self.routes: Dict[Tuple[str, str], Route] = {}
        self.default: Route = (404, {"error": "not found"})
        self.requests: List[RecordedRequest] = []
        self._lock = threading.Lock()
        self.server: Optional[ThreadingHTTPServer] = None

    @property
    def url(self) -> str:
        host, port = self.server.server_address[:2]
        return f"http://{host}:{port}"

    def route(self, method: str, path: str, status: int, body: Any = None) -> None:
        self.routes[(method.upper(), path)] = (status, body)

    def record(self, req: RecordedRequest) -> Reply:
        with self._lock:
            self.requests.append(req)
        reply = self.routes.get((req.method, req.path), self.default)
        return reply(req) if callable(reply) else reply

    def requests_to(self, path: str) -> List[RecordedRequest]:
        return [r for r in self.requests if r.path == path]


def _handler_for(api: MockApi):
    class _Handler(BaseHTTPRequestHandler):
        def _handle(self):
            length = int(self.headers.get("Content-Length") or 0)
            body = self.rfile.read(length).decode("utf-8") if length else ""
            headers = {k.lower(): v for k, v in self.headers.items()}
            status, payload = api.record(RecordedRequest(self.command, self.path, headers, body))
            data = b"" if payload is None else (payload if isinstance(payload, str) else json.dumps(payload)).encode("utf-8")
            self.send_response(status)
            self.send_header("Content-Type", "application/json")
            self.send_header("Content-Length", str(len(data)))
            self.end_headers()
            self.wfile.write(data)

        do_GET = do_POST = do_PUT = do_PATCH = do_DELETE = _handle

        def log_message(self, format, *args):
            return

    return _Handler


@pytest.fixture
def mock_api():
    api = MockApi()
    server = ThreadingHTTPServer(("127.0.0.1", 0), _handler_for(api))
    server.daemon_threads = True
    api.server = server
    t = threading.Thread(target=server.serve_forever, daemon=True)
    t.start()
    try:
        yield api
    finally:
        server.shutdown()
        server.server_close()


@pytest.fixture(autouse=True)
def isolated_workdir(tmp_path, monkeypatch):
    """Run every test in a scratch directory with no APISCAN_* environment."""
    for key in list(os.environ):
        if key.startswith("APISCAN_"):
            monkeypatch.delenv(key, raising=False)
    monkeypatch.chdir(tmp_path)
    return tmp_path


ACCOUNTS_SPEC = {
    "openapi": "3.0.3",
    "info": {"title": "Accounts", "version": "1.0"},
    "servers": [{"url": "http://spec-server.invalid/api/"}],
    "paths": {
        "/oauth/token": {
            "post": {
                "summary": "Obtain an access token",
                "parameters": [
                    {"name": "client_id", "in": "query", "required": True, "schema": {"type": "string"}},
                    {"name": "client_secret", "in": "query", "required": True, "schema": {"type": "string"}},
                ],
                "responses": {
                    "200": {
                        "description": "token",
                        "content": {
                            "application/json": {
                                "schema": {
                                    "type": "object",
                                    "properties": {
                                        "access_token": {"type": "string"},
                                        "token_type": {"type": "string"},
                                    },
                                }
                            }
                        },
                    }
                },
            }
        },
        "/accounts": {
            "get": {
                "operationId": "listAccounts",
                "responses": {
                    "200": {
                        "description": "accounts",
                        "content": {
                            "application/json": {
                                "schema": {"type": "array", "items": {"$ref": "#/components/schemas/Account"}}
                            }
                        },
                    }
                },
            }
        },
        "/accounts/{account_id}": {
            "get": {
                "parameters": [
                    {"name": "account_id", "in": "path", "required": True, "schema": {"type": "string"}}
                ],
                "responses": {
                    "200": {
                        "description": "account",
                        "content": {"application/json": {"schema": {"$ref": "#/components/schemas/Account"}}},
                    },
                    "404": {
                        "description": "missing",
                        "content": {
                            "application/json": {
                                "schema": {"type": "object", "properties": {"error": {"type": "string"}}}
                            }
                        },
                    },
                },
            }
        },
    },
    "components": {
        "schemas": {
            "Account": {
                "type": "object",
                "properties": {
                    "account_id": {"type": "string"},
                    "balance": {"type": "number"},
                },
            }
        }
    },
}


@pytest.fixture
def accounts_spec():
    return copy.deepcopy(ACCOUNTS_SPEC)


@pytest.fixture
def write_params(tmp_path):
    def _write(values: Dict[str, Any], name: str = "params.json"):
        path = tmp_path / name
        path.write_text(json.dumps(values), encoding="utf-8")
        return path
    return _write
