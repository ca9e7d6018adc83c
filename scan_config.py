########################################################
# SPECPROBE - API Security Scanner                     #
# Licensed under AGPL-V3.0                             #
# Author: Perry Mertens pamsniffer@gmail.com (C) 2025  #
# version 1.0  19-10-2026                              #
########################################################
from __future__ import annotations
from dataclasses import dataclass, fields, replace
from typing import Any, Mapping, Optional
import logging
import os

from dotenv import find_dotenv, load_dotenv

logger = logging.getLogger("scan_config")

ENV_PREFIX = "APISCAN_"
MIN_THREADS = 1
MAX_THREADS = 5
TRUE_VALUES = {"1", "true", "yes", "on"}


#================funtion clamp_threads keep the worker count within 1..5 ##########
def clamp_threads(value: Any) -> int:
    try:
        n = int(value)
    except (TypeError, ValueError):
        return 4
    return max(MIN_THREADS, min(n, MAX_THREADS))


#================funtion _env_bool ##########
def _env_bool(value: Optional[str]) -> bool:
    return (value or "").strip().lower() in TRUE_VALUES


@dataclass
class ScanConfig:
    base_url: Optional[str] = None
    client_id: Optional[str] = None
    client_secret: Optional[str] = None
    params_file: str = "params.json"
    token: Optional[str] = None
    timeout: float = 10.0
    threads: int = 4
    check_timeout: float = 120.0
    transcript: str = "reports/dynamic-requests.log"
    output_dir: str = "reports"
    insecure: bool = False
    proxy: Optional[str] = None
    client_cert: Optional[str] = None
    client_key: Optional[str] = None
    api_key: Optional[str] = None
    api_key_header: str = "X-API-Key"
    unauthenticated_probes: bool = False

    def __post_init__(self):
        self.threads = clamp_threads(self.threads)
        if self.base_url:
            self.base_url = self.base_url.strip().rstrip("/")

    # ----------------------- Funtion from_env ----------------------------#
    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None, env_file: Optional[str] = None) -> "ScanConfig":
        """Read ``APISCAN_*`` variables.

        With no explicit mapping the process environment is used after a
        ``.env`` file (``env_file``, or the nearest one above the working
        directory) is loaded into it.
        Variables already set in the environment win over the file.
        """
        if environ is None:
            dotenv_path = env_file or find_dotenv(usecwd=True)
            if dotenv_path:
                load_dotenv(dotenv_path, override=False)
            environ = os.environ

        values: dict = {}
        for f in fields(cls):
            raw = environ.get(ENV_PREFIX + f.name.upper())
            if raw is None or raw == "":
                continue
            if f.type in ("bool", bool):
                values[f.name] = _env_bool(raw)
            elif f.type in ("float", float):
                try:
                    values[f.name] = float(raw)
                except ValueError:
                    logger.warning("Ignoring %s%s=%r: not a number", ENV_PREFIX, f.name.upper(), raw)
            elif f.type in ("int", int):
                values[f.name] = clamp_threads(raw)
            else:
                values[f.name] = raw
        return cls(**values)

    # ----------------------- Funtion with_overrides ----------------------------#
    def with_overrides(self, **overrides: Any) -> "ScanConfig":
        known = {f.name for f in fields(self)}
        changes = {k: v for k, v in overrides.items() if k in known and v is not None}
        return replace(self, **changes)

    def __repr__(self) -> str:
        secret = "***" if self.client_secret else None
        token = "***" if self.token else None
        return (f"ScanConfig(base_url={self.base_url!r}, client_id={self.client_id!r}, client_secret={secret!r}, "
                f"token={token!r}, threads={self.threads}, timeout={self.timeout}, params_file={self.params_file!r})")
