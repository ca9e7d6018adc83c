########################################################
# SPECPROBE - API Security Scanner                     #
# Licensed under  AGPL-3.0 License                     #
# Author: Perry Mertens pamsniffer@gmail.com (C) 2025  #
# version 1.0  19-10-2026                              #
########################################################
from __future__ import annotations

import enum
import logging
import random
import re
import string
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Optional, Set

from tqdm import tqdm

from execution_context import DynamicContext, ExecutionContext, dynamic_available
from openapi_universal import iter_operations
from security_checks import STATUS_COMPLETED, STATUS_ISSUES_FOUND, CheckResult, ScanResults, SecurityCheck

logger = logging.getLogger(__name__)

MIN_DELAY = 0.05
MAX_DELAY = 0.2
MAX_ATTEMPTS = 5
CHAR_MUTATION_TRIES = 10

BOLA_METHODS = ("get", "post", "put", "patch", "delete")
AUTH_PATH_MARKERS = ("/auth", "/token", "/login", "/oauth")
SERVICE_PATH_MARKERS = ("/health", "/jwks")

PLACEHOLDER_RE = re.compile(r"\{([^}]+)\}")
ID_PLACEHOLDER_RE = re.compile(r".*/\{[^}]*[iI][dD][^}]*\}.*")
DIGITS_RE = re.compile(r"\d+")

OWASP_CATEGORY = "API1:2023 - Broken Object Level Authorization"
CWE_ID = "639"
CWE_NAME = "Authorization Bypass Through User-Controlled Key"
REMEDIATION = "Validate that the authenticated user owns the requested resource. Do not trust client-provided IDs."
FINDING = "Potential BOLA: endpoint accesses object by ID, dynamic check required"


class ProbeState(str, enum.Enum):
    INIT = "INIT"
    MUTATE = "MUTATE"
    CALL = "CALL"
    CONFIRMED = "CONFIRMED"
    RATE_LIMITED = "RATE_LIMITED"
    EXHAUSTED = "EXHAUSTED"
    NOT_TESTED = "NOT_TESTED"


TERMINAL_STATES = {ProbeState.CONFIRMED, ProbeState.RATE_LIMITED, ProbeState.EXHAUSTED, ProbeState.NOT_TESTED}


@dataclass
class ProbeOutcome:
    state: ProbeState
    param_name: Optional[str] = None
    original_value: Optional[str] = None
    tried: List[str] = field(default_factory=list)
    calls: int = 0
    proof_of_concept: Optional[str] = None

    @property
    def confirmed(self) -> bool:
        return self.state is ProbeState.CONFIRMED

    # ----------------------- Funtion dynamic_status ----------------------------#
    @property
    def dynamic_status(self) -> str:
        if self.state is ProbeState.EXHAUSTED:
            return "NOT_CONFIRMED"
        return self.state.value


#================funtion first_placeholder name of the first {...} group in a path template ##########
def first_placeholder(path: str) -> Optional[str]:
    m = PLACEHOLDER_RE.search(path or "")
    return m.group(1) if m else None


#================funtion fill_placeholders resolve remaining placeholders from the context ##########
def fill_placeholders(path: str, context: ExecutionContext) -> str:
    def repl(m):
        name = m.group(1)
        return str(context.get(name)) if context.has(name) else m.group(0)
    return PLACEHOLDER_RE.sub(repl, path)


#================funtion _numeric_mutation ##########
def _numeric_mutation(value: str, tried: Set[str], rng: random.Random) -> Optional[str]:
    m = DIGITS_RE.search(value)
    if not m:
        return None
    num = int(m.group())
    for offset in (1, 10, -1, rng.randint(1, 50)):
        candidate = num + offset
        if candidate <= 0:
            continue
        mutated = value[:m.start()] + str(candidate) + value[m.end():]
        if mutated not in tried:
            return mutated
    return None


#================funtion _substitute_char swap one character for a different one of its class ##########
def _substitute_char(c: str, rng: random.Random) -> str:
    if c.isdigit():
        pool = string.digits
    elif c.isalpha():
        pool = string.ascii_lowercase if c.islower() else string.ascii_uppercase
    else:
        return c
    return rng.choice([x for x in pool if x != c])


#================funtion mutate_id next untried candidate for an object ID ##########
def mutate_id(value: str, tried: Set[str], rng: Optional[random.Random] = None) -> Optional[str]:
    """Numeric offsets first, then single-character substitution.

    Returns ``None`` when no untried candidate was found.
    """
    if not value:
        return None
    rng = rng or random.Random()
    mutated = _numeric_mutation(value, tried, rng)
    if mutated is not None:
        return mutated
    for _ in range(CHAR_MUTATION_TRIES):
        idx = rng.randrange(len(value))
        candidate = value[:idx] + _substitute_char(value[idx], rng) + value[idx + 1:]
        if candidate not in tried:
            return candidate
    return None


class BolaProbe:
    """Confirms BOLA on one endpoint by requesting neighbouring object IDs.

    Starts from the caller's own ID in the execution context, tries at most
    ``max_attempts`` mutations and stops at the first 2xx (confirmed) or 429
    (rate limited) response.
    """

    # ----------------------- Funtion __init__ ----------------------------#
    def __init__(
        self,
        dynamic_context: DynamicContext,
        rng: Optional[random.Random] = None,
        delay: Optional[Callable[[], float]] = None,
        stop_event: Optional[threading.Event] = None,
        max_attempts: int = MAX_ATTEMPTS,
    ):
        self.dynamic_context = dynamic_context
        self.rng = rng or random.Random()
        self.delay = delay or (lambda: self.rng.uniform(MIN_DELAY, MAX_DELAY))
        self.stop_event = stop_event or threading.Event()
        self.max_attempts = max_attempts

    # ----------------------- Funtion run ----------------------------#
    def run(self, method: str, path: str) -> ProbeOutcome:
        executor = self.dynamic_context.executor
        ctx = self.dynamic_context.execution_context
        endpoint = f"{method.upper()} {path}"

        outcome = ProbeOutcome(ProbeState.INIT)
        tried: Set[str] = set()
        attempts = 0
        mutated: Optional[str] = None
        state = ProbeState.INIT

        while state not in TERMINAL_STATES:
            if state is ProbeState.INIT:
                name = first_placeholder(path)
                if name is None or not ctx.has(name):
                    logger.info("No %s in params.json, skipping dynamic test for %s", name or "path parameter", endpoint)
                    state = ProbeState.NOT_TESTED
                    continue
                outcome.param_name = name
                outcome.original_value = str(ctx.get(name))
                tried.add(outcome.original_value)
                state = ProbeState.MUTATE

            elif state is ProbeState.MUTATE:
                if attempts >= self.max_attempts or self.stop_event.is_set():
                    state = ProbeState.EXHAUSTED
                    continue
                attempts += 1
                mutated = mutate_id(outcome.original_value, tried, self.rng)
                if mutated is None:
                    logger.debug("No untried mutation of %s=%s left", outcome.param_name, outcome.original_value)
                    continue
                tried.add(mutated)
                outcome.tried.append(mutated)
                state = ProbeState.CALL

            elif state is ProbeState.CALL:
                test_path = fill_placeholders(path.replace("{" + outcome.param_name + "}", mutated), ctx)
                if PLACEHOLDER_RE.search(test_path):
                    logger.debug("Unresolved placeholders in %s, attempt skipped", test_path)
                    state = ProbeState.MUTATE
                    continue

                res = executor.call_endpoint(method.upper(), test_path, ctx)
                outcome.calls += 1
                if res.is_rate_limited():
                    logger.warning("429 Too Many Requests, stopping BOLA test for %s", endpoint)
                    state = ProbeState.RATE_LIMITED
                elif res.is_success():
                    outcome.proof_of_concept = executor.curl_command(method, executor.base_url + test_path, ctx)
                    logger.info("BOLA confirmed on %s with %s=%s", endpoint, outcome.param_name, mutated)
                    state = ProbeState.CONFIRMED
                elif attempts < self.max_attempts and self.stop_event.wait(self.delay()):
                    logger.debug("BOLA probe for %s cancelled", endpoint)
                    state = ProbeState.EXHAUSTED
                else:
                    state = ProbeState.MUTATE

        outcome.state = state
        return outcome


#================funtion is_authentication_endpoint ##########
def is_authentication_endpoint(path: str) -> bool:
    p = path.lower()
    return any(marker in p for marker in AUTH_PATH_MARKERS)


#================funtion is_id_like_parameter ##########
def is_id_like_parameter(name: str) -> bool:
    if not name:
        return False
    lower = name.lower()
    is_object_id = lower.endswith("id") or "identifier" in lower
    is_auth = lower in ("client_id", "client_secret") or "token" in lower
    return is_object_id and not is_auth


#================funtion has_object_id_parameter ##########
def has_object_id_parameter(path: str, parameters: Iterable[Dict[str, Any]]) -> bool:
    if ID_PLACEHOLDER_RE.match(path):
        return True
    for p in parameters or []:
        if p.get("in") in ("query", "header") and is_id_like_parameter(str(p.get("name") or "")):
            return True
    return False


class BOLACheck(SecurityCheck):
    name = "BOLA"

    # ----------------------- Funtion __init__ ----------------------------#
    def __init__(
        self,
        probe_factory: Optional[Callable[[DynamicContext], BolaProbe]] = None,
        stop_event: Optional[threading.Event] = None,
        show_subbars: bool = True,
    ):
        self.stop_event = stop_event or threading.Event()
        self.probe_factory = probe_factory or (lambda dc: BolaProbe(dc, stop_event=self.stop_event))
        self.show_subbars = show_subbars

    # ----------------------- Funtion _candidate_operations ----------------------------#
    def _candidate_operations(self, spec: Dict[str, Any]) -> List[Dict[str, Any]]:
        ops = []
        for op in iter_operations(spec, methods=BOLA_METHODS):
            path = op["path"]
            if is_authentication_endpoint(path) or any(m in path for m in SERVICE_PATH_MARKERS):
                logger.debug("Skipping service endpoint %s %s", op["method"].upper(), path)
                continue
            ops.append(op)
        return ops

    # ----------------------- Funtion run ----------------------------#
    def run(self, spec: Dict[str, Any], results: ScanResults, dynamic_context: Optional[DynamicContext] = None) -> None:
        logger.info("Checking Broken Object Level Authorization (BOLA)...")
        if not isinstance((spec or {}).get("paths"), dict):
            logger.info("No paths defined in spec.")
            return

        dynamic = dynamic_available(dynamic_context)
        found_any = False
        for op in tqdm(self._candidate_operations(spec), desc="BOLA endpoints", unit="endpoint", disable=not self.show_subbars, leave=False):
            endpoint = f"{op['method'].upper()} {op['path']}"
            started = time.monotonic()
            result = CheckResult(STATUS_COMPLETED)

            if has_object_id_parameter(op["path"], op.get("parameters") or []):
                found_any = True
                result.add_finding(FINDING)
                result.add_detail("risk_level", "HIGH")
                result.add_detail("owasp_category", OWASP_CATEGORY)
                result.add_detail("cwe_id", CWE_ID)
                result.add_detail("cwe_name", CWE_NAME)
                result.add_detail("remediation", REMEDIATION)
                if dynamic:
                    outcome = self.probe_factory(dynamic_context).run(op["method"], op["path"])
                    result.add_detail("dynamic_status", outcome.dynamic_status)
                    if outcome.proof_of_concept:
                        result.add_detail("proof_of_concept", outcome.proof_of_concept)
                else:
                    result.add_detail("dynamic_status", "NOT_TESTED")

            result.execution_time_ms = int((time.monotonic() - started) * 1000)
            results.add_result(f"{endpoint}_bola", result)
            results.set_endpoint_status(endpoint, endpoint_status_line(result))

        summary = CheckResult(STATUS_ISSUES_FOUND if found_any else STATUS_COMPLETED)
        summary.add_detail("summary", "BOLA vulnerabilities detected or suspected" if found_any else "No BOLA issues found")
        results.add_result("bola_global", summary)
        logger.info("BOLA check completed.")


#================funtion endpoint_status_line per-endpoint status for the analysis table ##########
def endpoint_status_line(result: CheckResult) -> str:
    if not result.has_findings:
        return "No BOLA issues"
    status = result.details.get("dynamic_status")
    if status == "CONFIRMED":
        return "BOLA CONFIRMED"
    return f"BOLA suspected (dynamic test: {status})"
