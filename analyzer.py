########################################################
# SPECPROBE - API Security Scanner                     #
# Licensed under AGPL-V3.0                             #
# Author: Perry Mertens pamsniffer@gmail.com (C) 2025  #
# version 1.0  19-10-2026                              #
########################################################
from __future__ import annotations
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeout, wait
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence
import logging
import time

import requests
from tqdm import tqdm

from api_executor import ApiExecutor
from auth_utils import configure_session
from bola_audit import BOLACheck
from dependency_graph import DependencyGraph
from endpoint_signatures import EndpointSignature, EndpointSignatureBuilder
from execution_context import DynamicContext, ExecutionContext
from openapi_universal import infer_base_url
from parameter_collector import ParameterCollector
from scan_config import ScanConfig
from security_checks import ScanResults, SecurityCheck

logger = logging.getLogger("analyzer")


@dataclass
class AnalysisRun:
    signatures: Dict[str, EndpointSignature]
    graph: DependencyGraph
    context: ExecutionContext
    dynamic_context: Optional[DynamicContext]
    results: ScanResults
    base_url: str = ""
    executor: Optional[ApiExecutor] = None
    timed_out: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)
    duration_ms: int = 0

    @property
    def dynamic_enabled(self) -> bool:
        return self.dynamic_context is not None and self.dynamic_context.is_available()


#================funtion build_signatures_and_graph static half of the analysis ##########
def build_signatures_and_graph(spec: Dict[str, Any]):
    signatures = EndpointSignatureBuilder(spec).build(spec)
    for sig in signatures.values():
        logger.info("  - %s", sig)
    graph = DependencyGraph(signatures)
    graph.log_graph()
    return signatures, graph


class AnalyzerModule:
    """Runs the full pipeline for one spec.

    Signatures and the dependency graph are built first. Parameters are
    collected next and a token is obtained. Then every check runs on a
    bounded worker pool and the request transcript is flushed at the end.
    """

    # ----------------------- Funtion __init__ ----------------------------#
    def __init__(
        self,
        config: Optional[ScanConfig] = None,
        checks: Optional[Sequence[SecurityCheck]] = None,
        session: Optional[requests.Session] = None,
        show_progress: bool = True,
    ):
        self.config = config or ScanConfig()
        self.show_progress = show_progress
        self.checks: List[SecurityCheck] = list(checks) if checks is not None else [BOLACheck(show_subbars=show_progress)]
        self.session = session

    # ----------------------- Funtion _resolve_base_url ----------------------------#
    def _resolve_base_url(self, collector: ParameterCollector, spec: Dict[str, Any]) -> str:
        for source, value in (
            ("params file", collector.base_url),
            ("configuration", self.config.base_url),
            ("spec servers", infer_base_url(spec)),
        ):
            if value:
                logger.info("Using base URL from %s: %s", source, value)
                return value.rstrip("/")
        logger.warning("No base URL available; dynamic requests will fail")
        return ""

    # ----------------------- Funtion _authenticate ----------------------------#
    def _authenticate(self, executor: ApiExecutor, spec: Dict[str, Any], ctx: ExecutionContext) -> bool:
        if self.config.token:
            executor.use_token(self.config.token)
            return True
        if executor.obtain_token(spec, ctx):
            logger.info("Token ready for dynamic analysis.")
            return True
        logger.warning("Token acquisition failed, dynamic checks may be limited.")
        return False

    # ----------------------- Funtion analyze ----------------------------#
    def analyze(self, spec: Dict[str, Any]) -> AnalysisRun:
        started = time.monotonic()
        logger.info("Starting OWASP API security analysis...")

        signatures, graph = build_signatures_and_graph(spec)

        collector = ParameterCollector(self.config, signatures)
        ctx = collector.collect()
        base_url = self._resolve_base_url(collector, spec)

        session = self.session or configure_session(self.config)
        executor = ApiExecutor(
            base_url,
            session=session,
            timeout=self.config.timeout,
            transcript_path=self.config.transcript,
        )
        authenticated = self._authenticate(executor, spec, ctx)
        logger.info("ExecutionContext initialized with: %s", ctx.keys())

        dynamic_context: Optional[DynamicContext] = None
        if authenticated or self.config.unauthenticated_probes:
            dynamic_context = DynamicContext(executor, ctx)
            logger.info("Dynamic analysis enabled%s.", "" if authenticated else " without credentials")
        else:
            logger.info("Dynamic analysis disabled: token not available.")

        run = AnalysisRun(signatures, graph, ctx, dynamic_context, ScanResults(), base_url, executor)
        if isinstance(spec.get("paths"), dict):
            self._run_checks(spec, run)
        else:
            logger.info("Spec has no 'paths', skipping security checks.")

        executor.save_transcript()
        run.duration_ms = int((time.monotonic() - started) * 1000)
        logger.info("Security analysis completed in %dms", run.duration_ms)
        return run

    # ----------------------- Funtion _run_checks ----------------------------#
    def _run_checks(self, spec: Dict[str, Any], run: AnalysisRun) -> None:
        if not self.checks:
            return
        pool = ThreadPoolExecutor(max_workers=self.config.threads, thread_name_prefix="check")
        stopped = []
        try:
            futures = [(check, pool.submit(check.run, spec, run.results, run.dynamic_context)) for check in self.checks]
            for check, fut in tqdm(futures, desc="Security checks", unit="check", disable=not self.show_progress):
                logger.info("Running %s check...", check.name)
                try:
                    fut.result(timeout=self.config.check_timeout)
                except FutureTimeout:
                    logger.error("%s check timed out after %ss, result discarded", check.name, self.config.check_timeout)
                    run.timed_out.append(check.name)
                    stop_event = getattr(check, "stop_event", None)
                    if stop_event is not None:
                        stop_event.set()
                        stopped.append(fut)
                except Exception:
                    logger.exception("Error running %s", check.name)
                    run.failed.append(check.name)
        finally:
            pool.shutdown(wait=False, cancel_futures=True)

        # a stopped check finishes its in-flight request within one request timeout
        if stopped:
            _, still_running = wait(stopped, timeout=self.config.timeout + 1)
            if still_running:
                logger.warning("%d timed-out check(s) still running, later requests are not transcribed", len(still_running))
