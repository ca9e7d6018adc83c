########################################################
# SPECPROBE - API Security Scanner                     #
# Licensed under AGPL-V3.0                             #
# Author: Perry Mertens pamsniffer@gmail.com (C) 2025  #
# version 1.0  19-10-2026                              #
########################################################
from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional
import logging
import re

from openapi_universal import iter_operations
from schema_fields import SchemaFieldExtractor, extract_fields_from_content

logger = logging.getLogger("endpoint_signatures")

PARAMETER_LOCATIONS = ("path", "query", "header")
BODY_LOCATION = "body"


#================funtion endpoint_key "METHOD path" identity of an operation ##########
def endpoint_key(method: str, path: str) -> str:
    return f"{method.upper()} {path}"


#================funtion synthesize_operation_id ##########
def synthesize_operation_id(method: str, path: str) -> str:
    return method.lower() + re.sub(r"[^a-zA-Z0-9]", "_", path)


@dataclass
class EndpointSignature:
    path: str
    method: str
    operation_id: str
    # name -> path | query | header | body, last write wins
    inputs: Dict[str, str] = field(default_factory=dict)
    outputs: List[str] = field(default_factory=list)

    @property
    def key(self) -> str:
        return endpoint_key(self.method, self.path)

    #================funtion inputs_in names declared at the given locations ##########
    def inputs_in(self, *locations: str) -> List[str]:
        return [name for name, loc in self.inputs.items() if loc in locations]

    #================funtion add_output keep outputs unique and ordered ##########
    def add_output(self, name: str) -> None:
        if name not in self.outputs:
            self.outputs.append(name)

    def __str__(self) -> str:
        return f"{self.key} -> inputs: {list(self.inputs)}, outputs: {self.outputs}"


class EndpointSignatureBuilder:
    # ----------------------- Funtion __init__ ----------------------------#
    def __init__(self, spec: Optional[Dict[str, Any]] = None):
        self.extractor = SchemaFieldExtractor.from_spec(spec)

    # ----------------------- Funtion build ----------------------------#
    def build(self, spec: Dict[str, Any]) -> Dict[str, EndpointSignature]:
        signatures: Dict[str, EndpointSignature] = {}
        if not isinstance((spec or {}).get("paths"), dict):
            logger.warning("Spec has no usable 'paths' object; no endpoint signatures built")
            return signatures

        for op in iter_operations(spec):
            method, path = op["method"], op["path"]
            op_id = op.get("operationId")
            sig = EndpointSignature(
                path=path,
                method=method,
                operation_id=str(op_id) if op_id else synthesize_operation_id(method, path),
            )
            self._extract_inputs(op, sig)
            self._extract_outputs(op, sig)
            signatures[sig.key] = sig

        logger.info("Built %d endpoint signatures", len(signatures))
        return signatures

    # ----------------------- Funtion _extract_inputs ----------------------------#
    def _extract_inputs(self, op: Dict[str, Any], sig: EndpointSignature) -> None:
        for param in op.get("parameters") or []:
            name, loc = param.get("name"), param.get("in")
            if not name or loc not in PARAMETER_LOCATIONS:
                continue
            sig.inputs[str(name)] = loc

        request_body = op.get("requestBody")
        if isinstance(request_body, dict):
            for name in extract_fields_from_content(request_body.get("content"), self.extractor):
                sig.inputs[name] = BODY_LOCATION

    # ----------------------- Funtion _extract_outputs ----------------------------#
    def _extract_outputs(self, op: Dict[str, Any], sig: EndpointSignature) -> None:
        responses = op.get("responses")
        if not isinstance(responses, dict):
            return
        for code, response in responses.items():
            if not str(code).startswith("2") or not isinstance(response, dict):
                continue
            for name in extract_fields_from_content(response.get("content"), self.extractor):
                sig.add_output(name)


#================funtion build_endpoint_signatures ##########
def build_endpoint_signatures(spec: Dict[str, Any]) -> Dict[str, EndpointSignature]:
    return EndpointSignatureBuilder(spec).build(spec)
