"""Owned, identity-keyed surface area tree.

A ``Tree`` is a node plus a mapping from child identity to child tree. It holds
no reference to the native tree it was built from, so it can be kept, copied
and read from several threads once construction is done.
"""

from __future__ import annotations

from collections.abc import Iterator, Mapping
from types import MappingProxyType
from typing import TYPE_CHECKING, Any

from sasatree.core.area import AREA_FIELDS, NodeArea
from sasatree.core.node import Node, NodeKind
from sasatree.core.uids import AtomUID, ChainUID, NodeUID, ResidueUID, StructureUID, uid_from_string

if TYPE_CHECKING:
  from sasatree.io.structure import Structure
  from sasatree.native.engine import SasaResult


_CHILDREN_KEY = "children"


class Tree:
  """Rooted tree of ``Node`` values keyed by identity.

  Args:
    node: The node at this level.
    children: Child trees keyed by their node identity.

  Attributes:
    meta: Result node the tree was built from (classifier name), when known.

  """

  __slots__ = ("_children", "meta", "node")

  def __init__(self, node: Node, children: dict[NodeUID, Tree] | None = None) -> None:
    self.node = node
    self._children: dict[NodeUID, Tree] = children if children is not None else {}
    self.meta: Node | None = None

  @classmethod
  def from_result(
    cls,
    result: SasaResult | None,
    structure: Structure | None,
    depth: NodeKind = NodeKind.ATOM,
  ) -> Tree:
    """Materialize a tree from a computed result and the structure it belongs to.

    Raises:
      StructureOrResultNullError: If either argument is missing.

    """
    # Imported here: the builder and engine depend on this module.
    from sasatree.builder import build_tree  # noqa: PLC0415
    from sasatree.native.engine import tree_init  # noqa: PLC0415

    return build_tree(tree_init(result, structure), depth)

  # --- Access ---

  @property
  def kind(self) -> NodeKind:
    return self.node.kind

  @property
  def uid(self) -> NodeUID | None:
    return self.node.uid

  @property
  def area(self) -> NodeArea | None:
    return self.node.area

  @property
  def children(self) -> Mapping[NodeUID, Tree]:
    """Read-only view of the immediate children."""
    return MappingProxyType(self._children)

  def child(self, uid: NodeUID) -> Tree | None:
    return self._children.get(uid)

  def add_child(self, child: Tree) -> None:
    """Attach ``child`` under its identity.

    Raises:
      ValueError: If the child has no identity or the identity is taken.

    """
    uid = child.node.uid
    if uid is None:
      msg = f"Cannot attach a {child.node.kind.value} node without identity."
      raise ValueError(msg)
    if uid in self._children:
      msg = f"Duplicate child identity {uid} under {self.node}."
      raise ValueError(msg)
    self._children[uid] = child

  def get(self, uid: NodeUID) -> Tree | None:
    """Find the subtree with identity ``uid`` by following the identity nesting.

    Costs one dictionary lookup per level between this node and the target.
    """
    if uid == self.node.uid:
      return self
    path: list[NodeUID]
    if isinstance(uid, AtomUID):
      path = [uid.chain, uid.residue, uid]
    elif isinstance(uid, ResidueUID):
      path = [uid.chain, uid]
    elif isinstance(uid, (ChainUID, StructureUID)):
      path = [uid]
    else:
      return None

    # Start below our own level.
    if isinstance(self.node.uid, ChainUID):
      if path[0] != self.node.uid:
        return None
      path = path[1:]
    elif isinstance(self.node.uid, ResidueUID):
      if len(path) < 3 or path[1] != self.node.uid:  # noqa: PLR2004
        return None
      path = path[2:]

    current: Tree | None = self
    for key in path:
      current = current._children.get(key) if current is not None else None
    return current

  def __contains__(self, uid: object) -> bool:
    return isinstance(uid, (StructureUID, ChainUID, ResidueUID, AtomUID)) and (
      self.get(uid) is not None
    )

  # --- Traversal ---

  def iter_trees(self, kind: NodeKind | None = None) -> Iterator[Tree]:
    """Depth-first, pre-order walk with siblings in identity order."""
    stack: list[Tree] = [self]
    while stack:
      tree = stack.pop()
      if kind is None or tree.node.kind is kind:
        yield tree
      if kind is not None and tree.node.kind.depth >= kind.depth:
        continue
      stack.extend(tree._children[key] for key in sorted(tree._children, reverse=True))

  def walk(self, kind: NodeKind | None = None) -> Iterator[Tree]:
    """Depth-first, pre-order walk with siblings in insertion order.

    Unlike ``iter_trees`` nothing is sorted, so a full walk is linear in the
    number of nodes.
    """
    stack: list[Tree] = [self]
    while stack:
      tree = stack.pop()
      if kind is None or tree.node.kind is kind:
        yield tree
      if kind is not None and tree.node.kind.depth >= kind.depth:
        continue
      stack.extend(reversed(tree._children.values()))

  def iter_nodes(self, kind: NodeKind | None = None) -> Iterator[Node]:
    for tree in self.iter_trees(kind):
      yield tree.node

  def nodes(self, kind: NodeKind) -> list[Node]:
    """All nodes of ``kind`` in identity order."""
    return list(self.iter_nodes(kind))

  def count(self, kind: NodeKind | None = None) -> int:
    return sum(1 for _ in self.walk(kind))

  def index(self, kind: NodeKind) -> dict[NodeUID, Node]:
    """Map identity to node for every node of ``kind``."""
    return {tree.node.uid: tree.node for tree in self.walk(kind) if tree.node.uid is not None}

  def __len__(self) -> int:
    return self.count()

  def __iter__(self) -> Iterator[Node]:
    return self.iter_nodes()

  def __repr__(self) -> str:
    return f"Tree({self.node}, children={len(self._children)})"

  # --- Serialization ---

  def to_dict(self) -> dict[str, Any]:
    """Nested document keyed by identity text, with area fields inlined.

    The top level is keyed by this node's identity. Each entry holds the
    area fields, the kind, and a ``children`` mapping when the node has
    children.
    """
    key = str(self.node.uid) if self.node.uid is not None else self.node.kind.value
    return {key: self._entry()}

  def _entry(self) -> dict[str, Any]:
    entry: dict[str, Any] = {"kind": self.node.kind.value}
    if self.node.area is not None:
      entry.update(self.node.area.to_dict())
    if self._children:
      children: dict[str, Any] = {}
      for key in sorted(self._children):
        children[str(key)] = self._children[key]._entry()
      entry[_CHILDREN_KEY] = children
    return entry

  @classmethod
  def from_dict(cls, document: Mapping[str, Any]) -> Tree:
    """Rebuild a tree written by ``to_dict``. Properties are not persisted.

    Raises:
      ValueError: If the document does not hold exactly one top-level entry.
      IdentityError: If a key is not a valid identity rendering.

    """
    if len(document) != 1:
      msg = f"Expected one top-level entry, got {len(document)}."
      raise ValueError(msg)
    ((key, entry),) = document.items()
    return cls._from_entry(key, entry)

  @classmethod
  def _from_entry(cls, key: str, entry: Mapping[str, Any]) -> Tree:
    kind = NodeKind.parse(entry["kind"])
    uid: NodeUID | None = None
    if kind is NodeKind.STRUCTURE:
      uid = StructureUID(key)
    elif kind.has_identity:
      uid = uid_from_string(key)
    area = None
    if kind.has_area and all(name in entry for name in AREA_FIELDS):
      area = NodeArea(*(float(entry[name]) for name in AREA_FIELDS))
    tree = cls(Node(kind, uid, area))
    for child_key, child_entry in entry.get(_CHILDREN_KEY, {}).items():
      tree.add_child(cls._from_entry(child_key, child_entry))
    return tree
