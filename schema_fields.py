########################################################
# SPECPROBE - API Security Scanner                     #
# Licensed under AGPL-V3.0                             #
# Author: Perry Mertens pamsniffer@gmail.com (C) 2025  #
# version 1.0  19-10-2026                              #
########################################################
from __future__ import annotations
from typing import Any, Dict, List, Optional, Set
import logging

logger = logging.getLogger("schema_fields")

SCALAR_TYPES = {"string", "number", "integer", "boolean", "null"}
COMPONENT_SCHEMA_PREFIX = "#/components/schemas/"
COMBINATORS = ("allOf", "anyOf", "oneOf")


#================funtion components_index pick components/schemas table from a spec ##########
def components_index(spec: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    components = (spec or {}).get("components")
    if not isinstance(components, dict):
        return {}
    schemas = components.get("schemas")
    return schemas if isinstance(schemas, dict) else {}


#================funtion schema_type declared type, objects by default ##########
def schema_type(schema: Any) -> str:
    if isinstance(schema, dict) and "type" in schema:
        t = schema["type"]
        # OAS 3.1 allows ["string", "null"]
        if isinstance(t, list):
            non_null = [x for x in t if x != "null"]
            return str(non_null[0]) if non_null else "null"
        return str(t)
    return "object"


#================funtion is_scalar_type ##########
def is_scalar_type(type_name: str) -> bool:
    return type_name in SCALAR_TYPES


class SchemaFieldExtractor:
    """Flattens a JSON schema into the set of scalar leaf field names.

    ``$ref`` pointers into ``#/components/schemas`` are followed, combinators
    are unioned and nested objects/arrays are walked without namespacing, so
    ``{"address": {"city": ...}}`` contributes ``city`` only.
    """

    # ----------------------- Funtion __init__ ----------------------------#
    def __init__(self, components: Optional[Dict[str, Any]] = None):
        self.components = components or {}

    # ----------------------- Funtion from_spec ----------------------------#
    @classmethod
    def from_spec(cls, spec: Optional[Dict[str, Any]]) -> "SchemaFieldExtractor":
        return cls(components_index(spec))

    # ----------------------- Funtion extract ----------------------------#
    def extract(self, schema: Any) -> Set[str]:
        fields: Dict[str, None] = {}
        self._walk(schema, fields, set())
        return set(fields)

    # ----------------------- Funtion extract_ordered ----------------------------#
    def extract_ordered(self, schema: Any) -> List[str]:
        fields: Dict[str, None] = {}
        self._walk(schema, fields, set())
        return list(fields)

    # ----------------------- Funtion resolve_ref ----------------------------#
    def resolve_ref(self, ref: Any) -> Optional[Dict[str, Any]]:
        if not isinstance(ref, str) or not ref.startswith(COMPONENT_SCHEMA_PREFIX):
            return None
        target = self.components.get(ref[len(COMPONENT_SCHEMA_PREFIX):])
        return target if isinstance(target, dict) else None

    # ----------------------- Funtion _walk ----------------------------#
    def _walk(self, schema: Any, fields: Dict[str, None], visiting: Set[str]) -> None:
        if not isinstance(schema, dict):
            return

        if "$ref" in schema:
            ref = schema.get("$ref")
            if ref in visiting:
                logger.debug("Recursive schema reference %s ignored", ref)
                return
            resolved = self.resolve_ref(ref)
            if resolved is None:
                logger.debug("Unresolvable schema reference %s", ref)
                return
            self._walk(resolved, fields, visiting | {ref})
            return

        combined = False
        for key in COMBINATORS:
            members = schema.get(key)
            if isinstance(members, list):
                combined = True
                for member in members:
                    self._walk(member, fields, visiting)
        if combined:
            return

        t = schema_type(schema)
        if t == "array":
            self._walk(schema.get("items"), fields, visiting)
            return

        if t == "object" or "properties" in schema:
            properties = schema.get("properties")
            if not isinstance(properties, dict):
                return
            for name, prop_schema in properties.items():
                if is_scalar_type(schema_type(prop_schema)):
                    fields.setdefault(name, None)
                else:
                    self._walk(prop_schema, fields, visiting)


#================funtion extract_fields module-level convenience ##########
def extract_fields(schema: Any, components: Optional[Dict[str, Any]] = None) -> Set[str]:
    return SchemaFieldExtractor(components).extract(schema)


#================funtion extract_fields_from_content JSON media types of a content map ##########
def extract_fields_from_content(content: Any, extractor: SchemaFieldExtractor) -> List[str]:
    if not isinstance(content, dict):
        return []
    ordered: Dict[str, None] = {}
    for media_type, media in content.items():
        if "json" not in str(media_type).lower() or not isinstance(media, dict):
            continue
        for name in extractor.extract_ordered(media.get("schema")):
            ordered.setdefault(name, None)
    return list(ordered)

