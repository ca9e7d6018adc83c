"""End-to-end tests for AnalyzerModule against the mock API."""
import threading
from types import SimpleNamespace

import pytest

from analyzer import AnalyzerModule
from scan_config import ScanConfig
from security_checks import CheckResult, SecurityCheck


@pytest.fixture
def config(tmp_path):
    return ScanConfig(transcript=str(tmp_path / "reports" / "dyn.log"), threads=2, timeout=5)


@pytest.fixture
def params(write_params, mock_api):
    def _params(**overrides):
        values = {"base_url": mock_api.url, "client_id": "cid", "client_secret": "sec", "account_id": ["1001"]}
        values.update(overrides)
        return write_params(values)
    return _params


class _Recorder(SecurityCheck):
    name = "recorder"

    def __init__(self):
        self.seen = None

    def run(self, spec, results, dynamic_context=None):
        self.seen = dynamic_context
        results.add_result("recorder", CheckResult("COMPLETED"))


class _Boom(SecurityCheck):
    name = "boom"

    def run(self, spec, results, dynamic_context=None):
        raise RuntimeError("check exploded")


class _Slow(SecurityCheck):
    name = "slow"

    def __init__(self):
        self.stop_event = threading.Event()

    def run(self, spec, results, dynamic_context=None):
        self.stop_event.wait(10)


class _LateCaller(SecurityCheck):
    name = "late"

    def __init__(self):
        self.stop_event = threading.Event()

    def run(self, spec, results, dynamic_context=None):
        self.stop_event.wait(10)
        dynamic_context.executor.call_endpoint("GET", "/late", dynamic_context.execution_context)


class TestAnalyzerModule:
    """Full pipeline: signatures, context, token, checks, transcript."""

    def test_bola_confirmed_end_to_end(self, accounts_spec, mock_api, params, config, tmp_path):
        params()
        mock_api.route("POST", "/oauth/token", 200, {"access_token": "T"})
        mock_api.route("GET", "/accounts/1002", 200, {"account_id": "1002", "balance": 10})

        run = AnalyzerModule(config, show_progress=False).analyze(accounts_spec)

        assert run.base_url == mock_api.url
        assert run.dynamic_enabled
        assert set(run.signatures) == {"POST /oauth/token", "GET /accounts", "GET /accounts/{account_id}"}
        assert len(run.graph) == 1
        assert run.context.get("account_id") == "1001"
        assert run.results.endpoint_status("GET /accounts/{account_id}") == "BOLA CONFIRMED"
        assert run.results.get("bola_global").status == "ISSUES_FOUND"
        assert mock_api.requests_to("/accounts/1002")[0].headers["authorization"] == "Bearer T"

        log = (tmp_path / "reports" / "dyn.log").read_text(encoding="utf-8")
        assert "/oauth/token?client_id=cid&client_secret=sec" in log
        assert "Authorization: Bearer T" in log

    def test_token_failure_disables_dynamic_checks(self, accounts_spec, mock_api, params, config):
        params()
        mock_api.route("POST", "/oauth/token", 401, {"error": "invalid_client"})

        run = AnalyzerModule(config, show_progress=False).analyze(accounts_spec)

        assert run.dynamic_context is None
        assert not run.dynamic_enabled
        assert run.results.endpoint_status("GET /accounts/{account_id}") == "BOLA suspected (dynamic test: NOT_TESTED)"
        assert [r.path for r in mock_api.requests] == ["/oauth/token"]

    def test_pre_issued_token_skips_acquisition(self, accounts_spec, mock_api, params, config):
        params()
        mock_api.route("GET", "/accounts/1002", 200, {})
        config.token = "PRE"

        run = AnalyzerModule(config, show_progress=False).analyze(accounts_spec)

        assert run.dynamic_enabled
        assert mock_api.requests_to("/oauth/token") == []
        assert mock_api.requests_to("/accounts/1002")[0].headers["authorization"] == "Bearer PRE"

    def test_unauthenticated_probes_opt_in(self, accounts_spec, mock_api, params, config):
        params()
        mock_api.route("GET", "/accounts/1002", 200, {})
        config.unauthenticated_probes = True

        run = AnalyzerModule(config, show_progress=False).analyze(accounts_spec)

        assert run.dynamic_enabled
        assert run.executor.credential is None
        assert "authorization" not in mock_api.requests_to("/accounts/1002")[0].headers
        assert run.results.endpoint_status("GET /accounts/{account_id}") == "BOLA CONFIRMED"

    def test_failing_check_does_not_stop_others(self, accounts_spec, mock_api, config):
        config.base_url = mock_api.url
        recorder = _Recorder()

        run = AnalyzerModule(config, checks=[_Boom(), recorder], show_progress=False).analyze(accounts_spec)

        assert run.failed == ["boom"]
        assert run.results.get("recorder").status == "COMPLETED"
        assert recorder.seen is None

    def test_slow_check_is_discarded_on_timeout(self, accounts_spec, mock_api, config):
        config.base_url = mock_api.url
        config.check_timeout = 0.2
        slow = _Slow()

        run = AnalyzerModule(config, checks=[slow, _Recorder()], show_progress=False).analyze(accounts_spec)

        assert run.timed_out == ["slow"]
        assert slow.stop_event.is_set()
        assert run.results.get("recorder") is not None

    def test_request_of_stopped_check_reaches_transcript(self, accounts_spec, mock_api, config, tmp_path):
        config.base_url = mock_api.url
        config.token = "PRE"
        config.check_timeout = 0.2

        run = AnalyzerModule(config, checks=[_LateCaller()], show_progress=False).analyze(accounts_spec)

        assert run.timed_out == ["late"]
        assert len(mock_api.requests_to("/late")) == 1
        log = (tmp_path / "reports" / "dyn.log").read_text(encoding="utf-8")
        assert "/late" in log

    def test_spec_without_paths_runs_no_checks(self, mock_api, config):
        config.base_url = mock_api.url
        recorder = _Recorder()

        run = AnalyzerModule(config, checks=[recorder], show_progress=False).analyze({"openapi": "3.0.0"})

        assert run.signatures == {}
        assert len(run.results) == 0
        assert recorder.seen is None
        assert mock_api.requests == []


class TestBaseUrlResolution:
    """params file, then configuration, then spec servers."""

    def test_priority(self, accounts_spec):
        analyzer = AnalyzerModule(ScanConfig(base_url="http://config.local/"), checks=[])
        assert analyzer._resolve_base_url(SimpleNamespace(base_url="http://params.local"), accounts_spec) == "http://params.local"
        assert analyzer._resolve_base_url(SimpleNamespace(base_url=None), accounts_spec) == "http://config.local"

        analyzer = AnalyzerModule(ScanConfig(), checks=[])
        assert analyzer._resolve_base_url(SimpleNamespace(base_url=None), accounts_spec) == "http://spec-server.invalid/api"
        assert analyzer._resolve_base_url(SimpleNamespace(base_url=None), {"paths": {}}) == ""
