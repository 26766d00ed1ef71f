"""Host tree contract and the in-memory document implementation"""

from darkpatch.host.memory import DocumentTree, Element
from darkpatch.host.tree import HostTree, MutationListener, Node

__all__ = ["DocumentTree", "Element", "HostTree", "MutationListener", "Node"]
