########################################################
# SPECPROBE - API Security Scanner                     #
# Licensed under AGPL-V3.0                             #
# Author: Perry Mertens pamsniffer@gmail.com (C) 2025  #
# version 1.0  19-10-2026                              #
########################################################
from __future__ import annotations
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional
import threading

from execution_context import DynamicContext

STATUS_COMPLETED = "COMPLETED"
STATUS_ISSUES_FOUND = "ISSUES_FOUND"


@dataclass
class CheckResult:
    status: str = "PENDING"
    findings: List[str] = field(default_factory=list)
    details: Dict[str, Any] = field(default_factory=dict)
    execution_time_ms: int = 0

    def add_finding(self, finding: str) -> None:
        self.findings.append(finding)

    def add_detail(self, key: str, value: Any) -> None:
        self.details[key] = value

    @property
    def has_findings(self) -> bool:
        return bool(self.findings)

    #================funtion to_dict convert CheckResult to serializable dict ##########
    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status,
            "findings": list(self.findings),
            "details": dict(self.details),
            "execution_time_ms": self.execution_time_ms,
        }


class ScanResults:
    """Lock-guarded sink shared by concurrently running checks.

    ``results`` is keyed by result name (``"GET /x_bola"``, ``"bola_global"``),
    ``endpoint_status`` holds one status line per ``"METHOD path"``.
    """

    # ----------------------- Funtion __init__ ----------------------------#
    def __init__(self):
        self._results: Dict[str, CheckResult] = {}
        self._endpoint_status: Dict[str, str] = {}
        self._lock = threading.Lock()

    def add_result(self, key: str, result: CheckResult) -> None:
        with self._lock:
            self._results[key] = result

    def get(self, key: str) -> Optional[CheckResult]:
        with self._lock:
            return self._results.get(key)

    def set_endpoint_status(self, endpoint: str, status: str) -> None:
        with self._lock:
            self._endpoint_status[endpoint] = status

    def endpoint_status(self, endpoint: str) -> Optional[str]:
        with self._lock:
            return self._endpoint_status.get(endpoint)

    @property
    def results(self) -> Dict[str, CheckResult]:
        with self._lock:
            return dict(self._results)

    @property
    def endpoint_statuses(self) -> Dict[str, str]:
        with self._lock:
            return dict(self._endpoint_status)

    def __len__(self) -> int:
        with self._lock:
            return len(self._results)

    #================funtion to_dict plain dict view of every result ##########
    def to_dict(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "results": {k: r.to_dict() for k, r in self._results.items()},
                "endpoints": dict(self._endpoint_status),
            }


class SecurityCheck(ABC):
    name: str = ""

    @abstractmethod
    def run(self, spec: Dict[str, Any], results: ScanResults, dynamic_context: Optional[DynamicContext] = None) -> None:
        """Inspect ``spec`` and write findings into ``results``.

        ``dynamic_context`` may be ``None`` or unavailable; checks then stay
        static and report their dynamic status as not tested.
        """
