########################################################
# SPECPROBE - API Security Scanner                     #
# Licensed under AGPL-V3.0                             #
# Author: Perry Mertens pamsniffer@gmail.com (C) 2025  #
# version 1.0  19-10-2026                              #
########################################################
from __future__ import annotations
from pathlib import Path
from typing import Any, Dict, Mapping, Optional
import json
import logging

from endpoint_signatures import EndpointSignature
from execution_context import ExecutionContext

logger = logging.getLogger("parameter_collector")

DEFAULT_PARAMS_FILE = "params.json"
CREDENTIAL_PARAMS = ("client_id", "client_secret")
DYNAMIC_LOCATIONS = ("path", "query", "header")
SECRET_PARAMS = {"client_secret", "password", "token"}


#================funtion mask_secret hide secret values in log output ##########
def mask_secret(name: str, value: Any) -> str:
    if name in SECRET_PARAMS:
        return "*** (hidden)"
    return str(value)


#================funtion _as_text render a params.json value, None when unusable ##########
def _as_text(node: Any) -> Optional[str]:
    if isinstance(node, list):
        if not node:
            return None
        node = node[0]
    if node is None or isinstance(node, (dict, list)):
        return None
    if isinstance(node, bool):
        return "true" if node else "false"
    text = str(node)
    return text if text.strip() else None


class ParameterCollector:
    """Builds the ExecutionContext for dynamic calls.

    Values come from the JSON parameter file first, then from configured
    client credentials. Names nobody supplies are logged and left out.
    """

    # ----------------------- Funtion __init__ ----------------------------#
    def __init__(self, config: Any, signatures: Mapping[str, EndpointSignature], params_file: Optional[str] = None):
        self.config = config
        self.signatures = signatures
        self.params_file = Path(params_file or getattr(config, "params_file", None) or DEFAULT_PARAMS_FILE)
        self.base_url: Optional[str] = None

    # ----------------------- Funtion required_parameters ----------------------------#
    def required_parameters(self) -> Dict[str, None]:
        required: Dict[str, None] = dict.fromkeys(CREDENTIAL_PARAMS)
        for sig in self.signatures.values():
            for name in sig.inputs_in(*DYNAMIC_LOCATIONS):
                required.setdefault(name, None)
        return required

    # ----------------------- Funtion _load_params_file ----------------------------#
    def _load_params_file(self) -> Optional[Dict[str, Any]]:
        if not self.params_file.is_file():
            logger.info("%s not found.", self.params_file)
            return None
        try:
            root = json.loads(self.params_file.read_text(encoding="utf-8"))
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
            logger.error("Failed to parse %s: %s", self.params_file, e)
            return None
        if not isinstance(root, dict):
            logger.error("Failed to parse %s: top-level value must be an object", self.params_file)
            return None

        base_url = _as_text(root.get("base_url"))
        if base_url:
            self.base_url = base_url.strip().rstrip("/")
            logger.info("Loaded base_url from %s: %s", self.params_file, self.base_url)
        else:
            logger.info("base_url not found in %s", self.params_file)
        return root

    # ----------------------- Funtion collect ----------------------------#
    def collect(self) -> ExecutionContext:
        ctx = ExecutionContext()
        root = self._load_params_file()

        required = self.required_parameters()
        logger.info("Required dynamic parameters: %s", list(required))

        file_values: Dict[str, str] = {}
        if root is not None:
            for name in required:
                if name not in root:
                    continue
                value = _as_text(root[name])
                if value is None:
                    logger.debug("Ignoring empty value for %s in %s", name, self.params_file)
                    continue
                file_values[name] = value
                logger.info("Loaded from %s: %s = %s", self.params_file, name, mask_secret(name, value))

        for name in required:
            if name in file_values:
                ctx.provide(name, file_values[name])
                continue
            configured = getattr(self.config, name, None) if name in CREDENTIAL_PARAMS else None
            if configured:
                ctx.provide(name, configured)
                logger.info("Using config: %s = %s", name, mask_secret(name, configured))
            else:
                logger.warning("Missing value for parameter: %s", name)

        return ctx
