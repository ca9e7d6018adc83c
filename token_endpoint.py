########################################################
# SPECPROBE - API Security Scanner                     #
# Licensed under AGPL-V3.0                             #
# Author: Perry Mertens pamsniffer@gmail.com (C) 2025  #
# version 1.0  19-10-2026                              #
########################################################
from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Dict, Optional
import logging

from openapi_universal import iter_operations

logger = logging.getLogger("token_endpoint")

CLIENT_PARAMS = ("client_id", "client_secret")
CREDENTIAL_LOCATIONS = ("query", "formData")
FORM_MEDIA_TYPE = "application/x-www-form-urlencoded"


@dataclass
class TokenEndpoint:
    path: str
    method: str = "post"
    # name -> query | formData
    required_params: Dict[str, str] = field(default_factory=dict)


#================funtion _form_body_properties property names of a form-urlencoded request body ##########
def _form_body_properties(request_body: Any) -> Dict[str, str]:
    if not isinstance(request_body, dict):
        return {}
    content = request_body.get("content")
    if not isinstance(content, dict):
        return {}
    media = content.get(FORM_MEDIA_TYPE)
    schema = media.get("schema") if isinstance(media, dict) else None
    props = schema.get("properties") if isinstance(schema, dict) else None
    if not isinstance(props, dict):
        return {}
    return {str(name).lower(): "formData" for name in props}


class TokenEndpointFinder:
    """Locates the OAuth2 client-credentials token operation of a spec.

    Only POST operations are considered and the first match in document
    order wins.
    """

    # ----------------------- Funtion find ----------------------------#
    def find(self, spec: Dict[str, Any]) -> Optional[TokenEndpoint]:
        for op in iter_operations(spec, methods=("post",)):
            path = op["path"]
            found: Dict[str, str] = {}
            for param in op.get("parameters") or []:
                name = str(param.get("name") or "").lower()
                loc = param.get("in")
                if loc in CREDENTIAL_LOCATIONS and name in CLIENT_PARAMS:
                    found[name] = loc
            for name, loc in _form_body_properties(op.get("requestBody")).items():
                if name in CLIENT_PARAMS:
                    found.setdefault(name, loc)

            if all(name in found for name in CLIENT_PARAMS):
                logger.info("Token endpoint found by parameters: POST %s", path)
                return TokenEndpoint(path, "post", {name: found[name] for name in CLIENT_PARAMS})

            summary = str(op.get("summary") or "").lower()
            desc = str(op.get("description") or "").lower()
            text = f"{summary} {desc}"
            if "token" in text and ("access" in text or "bearer" in text):
                logger.info("Token endpoint found by description: POST %s", path)
                return TokenEndpoint(path, "post", dict.fromkeys(CLIENT_PARAMS, "query"))

        logger.info("No token endpoint found in spec.")
        return None


#================funtion find_token_endpoint ##########
def find_token_endpoint(spec: Dict[str, Any]) -> Optional[TokenEndpoint]:
    return TokenEndpointFinder().find(spec)
