########################################################
# SPECPROBE - API Security Scanner                     #
# Licensed under AGPL-V3.0                             #
# Author: Perry Mertens pamsniffer@gmail.com (C) 2025  #
# version 1.0  19-10-2026                              #
########################################################
from __future__ import annotations
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Dict, List, Optional
import threading

if TYPE_CHECKING:
    from api_executor import ApiExecutor

HEADER_KEY_PREFIX = "x-"


class ExecutionContext:
    """Known parameter values for dynamic calls.

    Additive only: a key exists once a non-None value was provided and is
    never removed. Overwriting keeps the key's original position.
    """

    # ----------------------- Funtion __init__ ----------------------------#
    def __init__(self, values: Optional[Dict[str, Any]] = None):
        self._values: Dict[str, Any] = {}
        self._lock = threading.Lock()
        for k, v in (values or {}).items():
            self.provide(k, v)

    # ----------------------- Funtion provide ----------------------------#
    def provide(self, key: str, value: Any) -> None:
        if value is None:
            return
        with self._lock:
            self._values[key] = value

    def has(self, key: str) -> bool:
        return key in self._values

    def get(self, key: str, default: Any = None) -> Any:
        return self._values.get(key, default)

    def keys(self) -> List[str]:
        return list(self._values)

    def as_dict(self) -> Dict[str, Any]:
        return dict(self._values)

    # ----------------------- Funtion header_values context keys forwarded as headers ----------------------------#
    def header_values(self) -> Dict[str, str]:
        return {k: str(v) for k, v in self._values.items() if k.lower().startswith(HEADER_KEY_PREFIX)}

    def __contains__(self, key: object) -> bool:
        return key in self._values

    def __len__(self) -> int:
        return len(self._values)

    def __repr__(self) -> str:
        return f"ExecutionContext{self.keys()}"


@dataclass(frozen=True)
class Credential:
    access_token: str
    token_type: str = "Bearer"

    @property
    def authorization(self) -> str:
        return f"{self.token_type} {self.access_token}"

    def __repr__(self) -> str:
        return f"Credential(token_type={self.token_type!r}, access_token='***')"


class DynamicContext:
    # ----------------------- Funtion __init__ ----------------------------#
    def __init__(self, executor: Optional["ApiExecutor"], execution_context: Optional[ExecutionContext]):
        self.executor = executor
        self.execution_context = execution_context

    def is_available(self) -> bool:
        return self.executor is not None and self.execution_context is not None


#================funtion dynamic_available None-safe availability check for checks ##########
def dynamic_available(ctx: Optional[DynamicContext]) -> bool:
    return ctx is not None and ctx.is_available()
