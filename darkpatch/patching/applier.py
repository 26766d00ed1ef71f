"""
Patch Applier

Maintains at most one style block per patched node:

    apply(patch, identity)  - insert, replace, or no-op when the active patch
                              already has the same signature and rule text
    remove(identity)        - delete the block and clear the node marker
    disable_all()           - remove every block, every marker and the
                              document mode marker in one call

Block ids are derived from the node identity, so a replacement overwrites the
previous block instead of stacking a second one. The registry is only updated
after the host accepted the write.
"""

from __future__ import annotations

from enum import Enum

from darkpatch.contracts.types import Patch
from darkpatch.errors import ApplyError
from darkpatch.host.tree import HostTree
from darkpatch.observability.logging import get_logger
from darkpatch.observability.telemetry import counter, log_event
from darkpatch.patching.selectors import BLOCK_ID_PREFIX, block_id_for
from darkpatch.runtime.state import RuntimeState

logger = get_logger(__name__)

# Registry key for page-level (conversational) patches; no node marker
PAGE_IDENTITY = ":root"


class ApplyOutcome(str, Enum):
    INSERTED = "inserted"
    REPLACED = "replaced"
    UNCHANGED = "unchanged"


def render_block(patch: Patch) -> str:
    return f"/* darkpatch {patch.patch_id} ({patch.source_kind.value}) */\n{patch.rule_text}\n"


class PatchApplier:
    def __init__(self, tree: HostTree, state: RuntimeState):
        self.tree = tree
        self.state = state

    @property
    def registry(self) -> dict[str, Patch]:
        return self.state.applied

    def active_patch(self, node_identity: str) -> Patch | None:
        return self.registry.get(node_identity)

    def apply(self, patch: Patch, node_identity: str) -> ApplyOutcome:
        """
        Raises:
            ApplyError: Node no longer exists, or the host rejected the write
        """
        existing = self.registry.get(node_identity)
        if existing is not None and existing.same_content(patch):
            counter("applier.unchanged")
            return ApplyOutcome.UNCHANGED

        node = None
        if node_identity != PAGE_IDENTITY:
            node = self.tree.resolve(node_identity)
            if node is None:
                raise ApplyError(f"Node not found: {node_identity}", node_identity=node_identity)

        block_id = block_id_for(node_identity)
        try:
            self.tree.insert_style_block(block_id, render_block(patch))
        except ApplyError as e:
            e.node_identity = e.node_identity or node_identity
            counter("applier.rejected")
            logger.warning("Host rejected patch %s for %s: %s", patch.patch_id, node_identity, e)
            raise

        if node is not None:
            self.tree.set_marker(node, True)
        self.registry[node_identity] = patch

        outcome = ApplyOutcome.REPLACED if existing is not None else ApplyOutcome.INSERTED
        counter(f"applier.{outcome.value}")
        log_event(
            "applier.apply",
            node=node_identity,
            patch_id=patch.patch_id,
            source=patch.source_kind.value,
            outcome=outcome.value,
        )
        return outcome

    def remove(self, node_identity: str) -> bool:
        """
        Remove the node's block and marker. False when nothing was active.

        Raises:
            ApplyError: If the host rejected the removal
        """
        if node_identity not in self.registry:
            return False

        self.tree.remove_style_block(block_id_for(node_identity))
        if node_identity != PAGE_IDENTITY:
            node = self.tree.resolve(node_identity)
            if node is not None:
                self.tree.set_marker(node, False)
        del self.registry[node_identity]
        counter("applier.removed")
        return True

    def disable_all(self) -> int:
        """
        Remove all blocks, markers and the mode marker.

        Keeps going past individual failures and reports them together.

        Returns:
            Number of style blocks removed

        Raises:
            ApplyError: Aggregated failures, raised after every removal was attempted
        """
        errors: list[str] = []
        removed = 0

        block_ids = {block_id_for(identity) for identity in self.registry}
        # Also sweep blocks left behind by an earlier registry (e.g. after reset)
        block_ids.update(b for b in self.tree.style_blocks() if b.startswith(BLOCK_ID_PREFIX))

        for block_id in sorted(block_ids):
            try:
                if self.tree.remove_style_block(block_id):
                    removed += 1
            except ApplyError as e:
                errors.append(f"{block_id}: {e}")

        for node in self.tree.iter_descendants(self.tree.root()):
            if self.tree.has_marker(node):
                self.tree.set_marker(node, False)

        self.tree.set_mode_marker(False)
        self.registry.clear()

        counter("applier.disable_all")
        log_event("applier.disable_all", removed=removed, errors=len(errors))

        if errors:
            raise ApplyError(f"Failed to remove {len(errors)} style block(s): " + "; ".join(errors))
        return removed
