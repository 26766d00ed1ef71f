"""
Process-scoped runtime state

One RuntimeState per page instance holds everything that would otherwise be a
module global: the enabled flag, the applied-patch registry, and the previous
cycle's issue set per scan scope. Components receive it explicitly.

Lifecycle:
    state = RuntimeState()      # fresh, disabled
    state.enable()              # mode on
    state.reset()               # mode off, registry and dedupe memory cleared
"""

from __future__ import annotations

from collections import OrderedDict
from dataclasses import dataclass, field

from darkpatch.contracts.types import Patch

# Scoped cycles key on the set of mutated nodes, so keep only the recent ones
MAX_TRACKED_SCOPES = 64


@dataclass
class CycleStats:
    cycles: int = 0
    skipped_unchanged: int = 0
    issues_seen: int = 0
    patches_applied: int = 0
    patches_unchanged: int = 0
    no_patch: int = 0
    errors: int = 0


@dataclass
class RuntimeState:
    enabled: bool = False
    domain: str | None = None
    # node identity -> the one active patch on that node
    applied: dict[str, Patch] = field(default_factory=dict)
    # scope key -> serialized issue set from the last cycle over that scope (LRU)
    last_issue_sets: OrderedDict[str, frozenset[str]] = field(default_factory=OrderedDict)
    max_tracked_scopes: int = MAX_TRACKED_SCOPES
    stats: CycleStats = field(default_factory=CycleStats)

    def enable(self, domain: str | None = None) -> None:
        self.enabled = True
        if domain is not None:
            self.domain = domain

    def reset(self) -> None:
        self.enabled = False
        self.applied.clear()
        self.last_issue_sets.clear()
        self.stats = CycleStats()

    def issues_changed(self, scope_key: str, serialized: frozenset[str]) -> bool:
        """Record the issue set for scope_key; True when it differs from last time."""
        previous = self.last_issue_sets.pop(scope_key, None)
        self.last_issue_sets[scope_key] = serialized
        while len(self.last_issue_sets) > self.max_tracked_scopes:
            self.last_issue_sets.popitem(last=False)
        return previous != serialized

    def forget_scope(self, scope_key: str) -> None:
        self.last_issue_sets.pop(scope_key, None)
