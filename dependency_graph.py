########################################################
# SPECPROBE - API Security Scanner                     #
# Licensed under AGPL-V3.0                             #
# Author: Perry Mertens pamsniffer@gmail.com (C) 2025  #
# version 1.0  19-10-2026                              #
########################################################
from __future__ import annotations
from dataclasses import dataclass
from typing import Dict, Iterator, List, Mapping
import logging

from endpoint_signatures import EndpointSignature

logger = logging.getLogger("dependency_graph")


@dataclass(frozen=True)
class DependencyEdge:
    producer_key: str
    consumer_key: str
    field_name: str

    def __str__(self) -> str:
        return f"[{self.producer_key}] --({self.field_name})--> [{self.consumer_key}]"


class DependencyGraph:
    """Producer -> consumer index over endpoint signatures.

    One-hop lookup only: it tells which endpoints can supply a field, it does
    not order or chain calls.
    """

    # ----------------------- Funtion __init__ ----------------------------#
    def __init__(self, signatures: Mapping[str, EndpointSignature]):
        self._providers_by_field: Dict[str, List[str]] = {}
        self._edges_by_consumer: Dict[str, List[DependencyEdge]] = {}

        for key, sig in signatures.items():
            for output in sig.outputs:
                self._providers_by_field.setdefault(output, []).append(key)

        for consumer_key, sig in signatures.items():
            edges: List[DependencyEdge] = []
            for input_name in sig.inputs:
                for provider in self._providers_by_field.get(input_name, []):
                    if provider == consumer_key:
                        continue
                    edges.append(DependencyEdge(provider, consumer_key, input_name))
            if edges:
                self._edges_by_consumer[consumer_key] = edges

    # ----------------------- Funtion providers_for ----------------------------#
    def providers_for(self, field_name: str) -> List[str]:
        return list(self._providers_by_field.get(field_name, []))

    # ----------------------- Funtion dependencies_of ----------------------------#
    def dependencies_of(self, endpoint_key: str) -> List[DependencyEdge]:
        return list(self._edges_by_consumer.get(endpoint_key, []))

    # ----------------------- Funtion dependents_of ----------------------------#
    def dependents_of(self, endpoint_key: str) -> List[str]:
        return [e.consumer_key for e in self.edges() if e.producer_key == endpoint_key]

    # ----------------------- Funtion edges ----------------------------#
    def edges(self) -> Iterator[DependencyEdge]:
        for edges in self._edges_by_consumer.values():
            yield from edges

    @property
    def fields(self) -> List[str]:
        return list(self._providers_by_field)

    def __len__(self) -> int:
        return sum(len(e) for e in self._edges_by_consumer.values())

    # ----------------------- Funtion log_graph ----------------------------#
    def log_graph(self, log: logging.Logger = logger) -> None:
        if not self._edges_by_consumer:
            log.info("Dependency graph is empty.")
            return
        log.info("Built dependency graph (%d edges):", len(self))
        for edge in self.edges():
            log.info("  - %s", edge)
