########################################################
# SPECPROBE - API Security Scanner                     #
# Licensed under the AGPL-V3.0 License                 #
# Author: Perry Mertens pamsniffer@gmail.com (C) 2025  #
# version 1.0  19-10-2026                              #
########################################################
from __future__ import annotations
from copy import deepcopy
from pathlib import Path
from typing import Any, Dict, Iterable, List, Tuple
import json
import logging

import yaml

__all__ = [
    "SpecLoadError",
    "HTTP_METHODS",
    "iter_path_items",
    "iter_operations",
    "infer_base_url",
    "load_spec",
]

logger = logging.getLogger("openapi_universal")

HTTP_METHODS = ("get", "post", "put", "patch", "delete", "head", "options")


class SpecLoadError(Exception):
    pass


#================funtion _coerce_list coerce value to list ##########
def _coerce_list(x: Any) -> List[Any]:
    if x is None:
        return []
    if isinstance(x, list):
        return x
    return [x]


#================funtion iter_path_items iterate path items from spec ##########
def iter_path_items(spec: Dict[str, Any]) -> Iterable[Tuple[str, Dict[str, Any]]]:
    paths = (spec or {}).get("paths")
    if not isinstance(paths, dict):
        return
    for p, item in paths.items():
        if not isinstance(item, dict):
            logger.debug("Skipping non-object path item %s", p)
            continue
        yield p, item


#================funtion _merge_parameters merge path-level and op-level parameters ##########
def _merge_parameters(path_level: List[Any], op_level: List[Any]) -> List[Dict[str, Any]]:
    merged: List[Dict[str, Any]] = []
    for src in (path_level or []) + (op_level or []):
        if isinstance(src, dict):
            merged.append(src)
    return merged


#================funtion iter_operations yield normalized operations from spec ##########
def iter_operations(spec: Dict[str, Any], methods: Iterable[str] = HTTP_METHODS) -> Iterable[Dict[str, Any]]:
    allowed = {m.lower() for m in methods}
    for path, item in iter_path_items(spec):
        path_params = _coerce_list(item.get("parameters"))
        for verb, op in item.items():
            m = str(verb).lower()
            if m not in allowed:
                continue
            if not isinstance(op, dict):
                logger.debug("Skipping non-object operation %s %s", m.upper(), path)
                continue
            yield {
                "method": m,
                "path": path,
                "operationId": op.get("operationId"),
                "summary": op.get("summary") or "",
                "description": op.get("description") or "",
                "parameters": _merge_parameters(path_params, _coerce_list(op.get("parameters"))),
                "requestBody": op.get("requestBody"),
                "responses": op.get("responses"),
                "security": op.get("security"),
                "raw": op,
            }


#================funtion infer_base_url infer base URL from OpenAPI/Swagger servers/host ##########
def infer_base_url(spec: Dict[str, Any]) -> str:
    servers = (spec or {}).get("servers") or []
    for s in servers:
        if not isinstance(s, dict):
            continue
        u = str(s.get("url") or "")
        if u.startswith(("http://", "https://")):
            return u.rstrip("/")
    host = (spec or {}).get("host", "")
    base_path = (spec or {}).get("basePath", "/") or "/"
    schemes = (spec or {}).get("schemes") or ["http"]
    if host:
        return f"{schemes[0]}://{host}{base_path.rstrip('/')}"
    return ""


#================funtion load_spec load JSON/YAML spec ##########
def load_spec(source) -> Dict[str, Any]:
    if isinstance(source, dict):
        return deepcopy(source)

    path = Path(str(source))
    if not path.exists():
        raise SpecLoadError(f"Swagger file not found: {path}")
    if not path.is_file():
        raise SpecLoadError(f"Path is not a file: {path}")
    try:
        text = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        raise SpecLoadError(f"Cannot read spec {path}: {e}") from e
    if not text.strip():
        raise SpecLoadError("Swagger file is empty")

    try:
        spec = json.loads(text)
    except json.JSONDecodeError:
        try:
            spec = yaml.safe_load(text)
        except yaml.YAMLError as e:
            raise SpecLoadError(f"Spec parse failed (not JSON/YAML): {e}") from e
    if not isinstance(spec, dict):
        raise SpecLoadError("Spec content must be a JSON/YAML object.")
    if "paths" not in spec:
        logger.warning("Spec %s has no 'paths' section", path)
    return spec
