"""Tests for ApiExecutor and the request transcript."""
import json
from unittest import mock
from urllib.parse import parse_qs

import pytest
import requests

from api_executor import ApiCallResult, ApiExecutor, RequestTranscript, TranscriptEntry
from execution_context import ExecutionContext


@pytest.fixture
def executor(mock_api, tmp_path):
    return ApiExecutor(mock_api.url + "/", timeout=5, transcript_path=tmp_path / "reports" / "dyn.log")


def _creds():
    return ExecutionContext({"client_id": "cid", "client_secret": "s&cret"})


class TestApiCallResult:
    """Outcome classification."""

    def test_success_and_rate_limit(self):
        assert ApiCallResult(200, "{}").is_success()
        assert ApiCallResult(204).is_success()
        assert not ApiCallResult(302).is_success()
        assert ApiCallResult(429).is_rate_limited()
        failed = ApiCallResult.failure(requests.ConnectionError("down"))
        assert failed.status_code == -1 and not failed.is_success()


class TestObtainToken:
    """Token acquisition through the discovered endpoint."""

    def test_success_stores_credential(self, executor, mock_api, accounts_spec):
        mock_api.route("POST", "/oauth/token", 200, {"access_token": "T", "token_type": "bearer"})
        assert executor.obtain_token(accounts_spec, _creds()) is True
        assert executor.access_token == "T"

        sent = mock_api.requests_to("/oauth/token")[0]
        assert parse_qs(sent.query) == {"client_id": ["cid"], "client_secret": ["s&cret"]}
        assert sent.body == ""

    def test_token_is_used_as_bearer(self, executor, mock_api, accounts_spec):
        mock_api.route("POST", "/oauth/token", 200, {"access_token": "T"})
        mock_api.route("GET", "/accounts/1001", 200, {"account_id": "1001"})
        executor.obtain_token(accounts_spec, _creds())
        ctx = ExecutionContext({"account_id": "1001"})
        res = executor.call_endpoint("GET", "/accounts/{account_id}", ctx)
        assert res.status_code == 200
        assert mock_api.requests_to("/accounts/1001")[0].headers["authorization"] == "Bearer T"

    def test_missing_secret_sends_nothing(self, executor, mock_api, accounts_spec):
        assert executor.obtain_token(accounts_spec, ExecutionContext({"client_id": "cid"})) is False
        assert mock_api.requests == []
        assert executor.credential is None

    def test_no_token_endpoint(self, executor, mock_api):
        spec = {"paths": {"/ping": {"get": {}}}}
        assert executor.obtain_token(spec, _creds()) is False
        assert mock_api.requests == []

    @pytest.mark.parametrize("status, body", [
        (401, {"error": "invalid_client"}),
        (200, "not json at all"),
        (200, {"token": "wrong-field"}),
        (200, ["access_token"]),
    ])
    def test_bad_responses_fail_quietly(self, executor, mock_api, accounts_spec, status, body):
        mock_api.route("POST", "/oauth/token", status, body)
        assert executor.obtain_token(accounts_spec, _creds()) is False
        assert executor.credential is None
        assert len(executor.transcript) == 1

    def test_transport_error_fails_quietly(self, accounts_spec):
        session = requests.Session()
        with mock.patch.object(session, "request", side_effect=requests.ConnectionError("refused")):
            ex = ApiExecutor("http://api.invalid", session=session)
            assert ex.obtain_token(accounts_spec, _creds()) is False

    def test_use_token_strips_scheme(self, executor):
        executor.use_token("Bearer  PRE ")
        assert executor.access_token == "PRE"
        with pytest.raises(ValueError):
            executor.use_token("   ")


class TestCallEndpoint:
    """Placeholder substitution, headers and error wrapping."""

    def test_x_headers_are_forwarded(self, executor, mock_api):
        ctx = ExecutionContext({"account_id": "5", "x-tenant": "acme", "client_id": "cid"})
        executor.call_endpoint("GET", "/accounts/{account_id}", ctx)
        sent = mock_api.requests[0]
        assert sent.path == "/accounts/5"
        assert sent.headers["x-tenant"] == "acme"
        assert "client_id" not in sent.headers
        assert "authorization" not in sent.headers

    def test_unknown_placeholders_stay(self, executor, mock_api):
        executor.call_endpoint("GET", "/orgs/{org_id}", ExecutionContext())
        assert mock_api.requests[0].path == "/orgs/%7Borg_id%7D"

    def test_json_body(self, executor, mock_api):
        mock_api.route("PATCH", "/accounts/5", 200, {"ok": True})
        res = executor.call_endpoint_with_body("patch", "/accounts/{account_id}", {"nickname": "n"}, ExecutionContext({"account_id": 5}))
        assert res.is_success()
        sent = mock_api.requests[0]
        assert sent.method == "PATCH"
        assert sent.headers["content-type"] == "application/json"
        assert json.loads(sent.body) == {"nickname": "n"}

    def test_get_does_not_mutate_state(self, executor, mock_api):
        executor.use_token("T")
        ctx = ExecutionContext({"account_id": "1"})
        before, cred = ctx.as_dict(), executor.credential
        executor.call_endpoint("GET", "/accounts/{account_id}", ctx)
        executor.call_endpoint("GET", "/accounts/{account_id}", ctx)
        assert ctx.as_dict() == before
        assert executor.credential is cred

    def test_transport_failure_is_wrapped_and_transcribed(self):
        session = requests.Session()
        with mock.patch.object(session, "request", side_effect=requests.ConnectionError("boom")):
            ex = ApiExecutor("http://api.invalid", session=session)
            res = ex.call_endpoint("GET", "/x", ExecutionContext())
        assert res.status_code == -1
        assert isinstance(res.error, requests.ConnectionError)
        assert not res.is_success()
        entry = ex.transcript.entries()[0]
        assert entry.error == "boom"
        assert "ERROR: boom" in entry.render()

    def test_non_latin1_header_is_wrapped_and_transcribed(self, executor):
        res = executor.call_endpoint("GET", "/accounts", ExecutionContext({"x-tenant": "банк"}))
        assert res.status_code == -1
        assert isinstance(res.error, UnicodeEncodeError)
        entry = executor.transcript.entries()[0]
        assert entry.status_code == -1
        assert entry.headers["x-tenant"] == "банк"
        assert "ERROR:" in entry.render()

    def test_execute_request_encodes_path_params(self, executor, mock_api):
        executor.execute_request("GET", "/files/{name}", {"name": "a b/c"})
        assert mock_api.requests[0].target == "/files/a%20b%2Fc"

    def test_curl_command_evidence(self, executor):
        executor.use_token("T")
        ctx = ExecutionContext({"x-tenant": "acme"})
        cmd = executor.curl_command("get", "http://h/accounts/2", ctx)
        assert cmd == "curl -X GET 'http://h/accounts/2' -H 'Authorization: Bearer T' -H 'x-tenant: acme'"
        with_body = executor.curl_command("post", "http://h/x", None, {"a": "it's"})
        assert "-H 'Content-Type: application/json'" in with_body
        assert "-d '{\"a\": \"it'\"'\"'s\"}'" in with_body


class TestTranscript:
    """Recording and flushing the request log."""

    def test_response_preview_is_capped(self):
        text = TranscriptEntry("GET", "http://h/x", {}, None, 200, "x" * 1500).render()
        assert "x" * 1000 + "..." in text
        assert "x" * 1001 not in text
        assert "### RESPONSE (200)" in text

    def test_save_appends_and_creates_directories(self, executor, mock_api, tmp_path):
        target = tmp_path / "reports" / "dyn.log"
        executor.call_endpoint("GET", "/first", ExecutionContext())
        assert executor.save_transcript() == target
        executor.call_endpoint("GET", "/second", ExecutionContext())
        executor.save_transcript()
        content = target.read_text(encoding="utf-8")
        assert content.count("### REQUEST") == 2
        assert content.index("/first") < content.index("/second")
        assert "curl -X GET" in content

    def test_empty_transcript_writes_nothing(self, tmp_path):
        target = tmp_path / "never" / "log.txt"
        assert RequestTranscript().save(target) is None
        assert not target.exists()

    def test_unwritable_target_is_logged(self, tmp_path, caplog):
        blocker = tmp_path / "file"
        blocker.write_text("x", encoding="utf-8")
        transcript = RequestTranscript()
        transcript.record(TranscriptEntry("GET", "http://h/x"))
        assert transcript.save(blocker / "sub" / "log.txt") is None
        assert "Failed to write request log" in caplog.text
        assert len(transcript) == 1
