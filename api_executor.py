########################################################
# SPECPROBE - API Security Scanner                     #
# Licensed under AGPL-V3.0                             #
# Author: Perry Mertens pamsniffer@gmail.com (C) 2025  #
# version 1.0  19-10-2026                              #
########################################################
from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Union
from urllib.parse import quote, urlencode
import json
import logging
import threading

import requests

from auth_utils import configure_session
from execution_context import Credential, ExecutionContext
from token_endpoint import TokenEndpointFinder

logger = logging.getLogger("api_executor")

DEFAULT_TRANSCRIPT = "reports/dynamic-requests.log"
RESPONSE_PREVIEW_LIMIT = 1000
SEPARATOR = "=" * 80
JSON_CONTENT_TYPE = "application/json"

Body = Union[Mapping[str, Any], List[Any], str, None]


@dataclass
class ApiCallResult:
    status_code: int = -1
    response_body: Optional[str] = None
    error: Optional[BaseException] = None

    #================funtion failure wrap a transport error ##########
    @classmethod
    def failure(cls, error: BaseException) -> "ApiCallResult":
        return cls(status_code=-1, response_body=None, error=error)

    def is_success(self) -> bool:
        return self.error is None and 200 <= self.status_code < 300

    def is_rate_limited(self) -> bool:
        return self.status_code == 429


#================funtion _shell_quote single-quote a value for a curl command ##########
def _shell_quote(value: str) -> str:
    return "'" + value.replace("'", "'\"'\"'") + "'"


#================funtion render_curl curl command for a request ##########
def render_curl(method: str, url: str, headers: Mapping[str, str], body: Optional[str] = None, multiline: bool = False) -> str:
    sep = " \\\n  " if multiline else " "
    parts = [f"curl -X {method.upper()} {_shell_quote(url)}"]
    for k, v in headers.items():
        parts.append(f"-H {_shell_quote(f'{k}: {v}')}")
    if body:
        parts.append(f"-d {_shell_quote(body)}")
    return sep.join(parts)


@dataclass
class TranscriptEntry:
    method: str
    url: str
    headers: Dict[str, str] = field(default_factory=dict)
    body: Optional[str] = None
    status_code: int = -1
    response_body: Optional[str] = None
    error: Optional[str] = None
    timestamp: str = field(default_factory=lambda: datetime.now().isoformat(timespec="seconds"))

    # ----------------------- Funtion render ----------------------------#
    def render(self) -> str:
        lines = [f"# {self.timestamp}", "### REQUEST", render_curl(self.method, self.url, self.headers, self.body, multiline=True), ""]
        lines.append(f"### RESPONSE ({self.status_code})")
        if self.response_body is not None:
            preview = self.response_body
            if len(preview) > RESPONSE_PREVIEW_LIMIT:
                preview = preview[:RESPONSE_PREVIEW_LIMIT] + "..."
            lines.append(preview)
        if self.error:
            lines.append(f"ERROR: {self.error}")
        lines.extend(["", SEPARATOR, "", ""])
        return "\n".join(lines)


class RequestTranscript:
    """Thread-safe, append-only record of every dynamic request."""

    # ----------------------- Funtion __init__ ----------------------------#
    def __init__(self):
        self._entries: List[TranscriptEntry] = []
        self._lock = threading.Lock()

    def record(self, entry: TranscriptEntry) -> None:
        with self._lock:
            self._entries.append(entry)

    def entries(self) -> List[TranscriptEntry]:
        with self._lock:
            return list(self._entries)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def render(self) -> str:
        return "".join(e.render() for e in self.entries())

    # ----------------------- Funtion save ----------------------------#
    def save(self, path: Union[str, Path] = DEFAULT_TRANSCRIPT) -> Optional[Path]:
        with self._lock:
            pending = list(self._entries)
            if not pending:
                return None
            target = Path(path)
            try:
                target.parent.mkdir(parents=True, exist_ok=True)
                with open(target, "a", encoding="utf-8") as fh:
                    for entry in pending:
                        fh.write(entry.render())
            except OSError as e:
                logger.error("Failed to write request log %s: %s", target, e)
                return None
            # flushed entries are not written twice
            del self._entries[:len(pending)]
        logger.info("Dynamic requests logged to: %s", target)
        return target


class ApiExecutor:
    """Authenticated HTTP driver for the dynamic checks.

    Every request goes through :meth:`_send`, which records a transcript
    entry and turns transport errors into an ``ApiCallResult`` instead of
    raising.
    """

    # ----------------------- Funtion __init__ ----------------------------#
    def __init__(
        self,
        base_url: str,
        session: Optional[requests.Session] = None,
        timeout: float = 10.0,
        transcript: Optional[RequestTranscript] = None,
        transcript_path: Union[str, Path] = DEFAULT_TRANSCRIPT,
        token_finder: Optional[TokenEndpointFinder] = None,
    ):
        self.base_url = (base_url or "").strip().rstrip("/")
        self.session = session if session is not None else configure_session()
        self.timeout = timeout
        self.transcript = transcript if transcript is not None else RequestTranscript()
        self.transcript_path = transcript_path
        self.token_finder = token_finder or TokenEndpointFinder()
        self._credential: Optional[Credential] = None
        self._credential_lock = threading.Lock()

    # ----------------------- Funtion credential ----------------------------#
    @property
    def credential(self) -> Optional[Credential]:
        with self._credential_lock:
            return self._credential

    @property
    def access_token(self) -> Optional[str]:
        cred = self.credential
        return cred.access_token if cred else None

    def _set_credential(self, credential: Optional[Credential]) -> None:
        with self._credential_lock:
            self._credential = credential

    # ----------------------- Funtion use_token ----------------------------#
    def use_token(self, token: str) -> None:
        token = (token or "").strip()
        if token.lower().startswith("bearer "):
            token = token[7:].strip()
        if not token:
            raise ValueError("Empty bearer token")
        self._set_credential(Credential(token))
        logger.info("Pre-issued bearer token installed.")

    # ----------------------- Funtion obtain_token ----------------------------#
    def obtain_token(self, spec: Dict[str, Any], context: ExecutionContext) -> bool:
        endpoint = self.token_finder.find(spec)
        if endpoint is None:
            logger.warning("No token endpoint found in spec.")
            return False

        params: Dict[str, str] = {}
        for name in endpoint.required_params:
            if not context.has(name):
                logger.warning("Missing param for token: %s", name)
                return False
            params[name] = str(context.get(name))

        url = self.base_url + endpoint.path
        if params:
            url += "?" + urlencode(params)

        result = self._send("POST", url, {}, None)
        if result.error is not None:
            logger.error("Error obtaining token: %s", result.error)
            return False
        if result.status_code != 200:
            logger.warning("Token request failed: %s", result.status_code)
            return False
        try:
            data = json.loads(result.response_body or "")
        except ValueError as e:
            logger.error("Token response is not JSON: %s", e)
            return False
        token = data.get("access_token") if isinstance(data, dict) else None
        if not token:
            logger.warning("No 'access_token' in token response")
            return False

        self._set_credential(Credential(str(token)))
        logger.info("Token obtained successfully.")
        return True

    # ----------------------- Funtion resolve_url ----------------------------#
    def resolve_url(self, path: str, context: Optional[ExecutionContext]) -> str:
        url = self.base_url + path
        if context is None:
            return url
        for key in context.keys():
            placeholder = "{" + key + "}"
            if placeholder in url:
                url = url.replace(placeholder, str(context.get(key)))
        return url

    # ----------------------- Funtion _headers ----------------------------#
    def _headers(self, context: Optional[ExecutionContext], json_body: bool = False) -> Dict[str, str]:
        headers: Dict[str, str] = {}
        if json_body:
            headers["Content-Type"] = JSON_CONTENT_TYPE
        cred = self.credential
        if cred is not None:
            headers["Authorization"] = cred.authorization
        if context is not None:
            headers.update(context.header_values())
        return headers

    # ----------------------- Funtion _send ----------------------------#
    def _send(self, method: str, url: str, headers: Dict[str, str], body: Optional[str]) -> ApiCallResult:
        method = method.upper()
        try:
            resp = self.session.request(method, url, headers=headers, data=body, timeout=self.timeout)
        except (requests.RequestException, ValueError) as e:
            # non latin-1 header values fail in http.client with UnicodeEncodeError
            logger.debug("%s %s failed: %s", method, url, e)
            self.transcript.record(TranscriptEntry(method, url, dict(headers), body, -1, None, str(e)))
            return ApiCallResult.failure(e)

        self.transcript.record(TranscriptEntry(method, url, dict(headers), body, resp.status_code, resp.text))
        logger.debug("%s %s -> %s", method, url, resp.status_code)
        return ApiCallResult(resp.status_code, resp.text)

    # ----------------------- Funtion call_endpoint ----------------------------#
    def call_endpoint(self, method: str, path: str, context: ExecutionContext) -> ApiCallResult:
        return self._send(method, self.resolve_url(path, context), self._headers(context), None)

    # ----------------------- Funtion call_endpoint_with_body ----------------------------#
    def call_endpoint_with_body(self, method: str, path: str, body: Body, context: ExecutionContext) -> ApiCallResult:
        payload = _encode_body(body)
        return self._send(method, self.resolve_url(path, context), self._headers(context, json_body=True), payload)

    # ----------------------- Funtion execute_request ----------------------------#
    def execute_request(self, method: str, path: str, path_params: Mapping[str, Any], body: Body = None) -> ApiCallResult:
        url = self.base_url + path
        for name, value in (path_params or {}).items():
            url = url.replace("{" + name + "}", quote(str(value), safe=""))
        return self._send(method, url, self._headers(None, json_body=True), _encode_body(body))

    # ----------------------- Funtion curl_command ----------------------------#
    def curl_command(self, method: str, url: str, context: Optional[ExecutionContext], body: Body = None) -> str:
        payload = _encode_body(body)
        return render_curl(method, url, self._headers(context, json_body=payload is not None), payload)

    # ----------------------- Funtion save_transcript ----------------------------#
    def save_transcript(self, path: Union[str, Path, None] = None) -> Optional[Path]:
        return self.transcript.save(path or self.transcript_path)


#================funtion _encode_body JSON text for a request body ##########
def _encode_body(body: Body) -> Optional[str]:
    if body is None:
        return None
    if isinstance(body, str):
        return body
    return json.dumps(body, ensure_ascii=False)
