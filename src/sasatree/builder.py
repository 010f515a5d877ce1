"""Conversion of a native result tree into an owned ``Tree``.

``build_tree`` walks the native tree once, depth first, turning every node down
to ``stop_kind`` into a ``Node`` keyed by its identity, and releases the native
tree on every exit path. Deeper native nodes are never visited.
"""

from __future__ import annotations

import logging
from typing import Any

from sasatree.config import DEFAULT_BUILD_OPTIONS, BuildOptions, MultiModelPolicy
from sasatree.core.area import NodeArea
from sasatree.core.errors import NativeTreeConstructionError, NullNativeFieldError
from sasatree.core.node import (
  AtomProperties,
  ChainProperties,
  Node,
  NodeKind,
  NodeProperties,
  ResidueProperties,
  ResultProperties,
  StructureProperties,
)
from sasatree.core.tree import Tree
from sasatree.core.uids import AtomUID, ChainUID, NodeUID, ResidueUID, StructureUID
from sasatree.native.handle import NativeTree
from sasatree.native.protocol import NULL, NativeHandle, NativeKind, NativeText, NativeTreeAPI

logger = logging.getLogger(__name__)

_KINDS: dict[NativeKind, NodeKind] = {
  NativeKind.ROOT: NodeKind.ROOT,
  NativeKind.RESULT: NodeKind.RESULT,
  NativeKind.STRUCTURE: NodeKind.STRUCTURE,
  NativeKind.CHAIN: NodeKind.CHAIN,
  NativeKind.RESIDUE: NodeKind.RESIDUE,
  NativeKind.ATOM: NodeKind.ATOM,
}


def _decode(value: NativeText) -> str | None:
  if value is None or isinstance(value, str):
    return value
  return value.decode("utf-8")


class _Walker:
  """State of one ``build_tree`` call."""

  def __init__(self, api: NativeTreeAPI, stop_kind: NodeKind, options: BuildOptions) -> None:
    self.api = api
    self.stop_kind = stop_kind
    self.options = options
    self.visited: set[NativeHandle] = set()
    self.n_nodes = 0
    self.n_merged = 0

  # --- Native field access ---

  def kind(self, handle: NativeHandle) -> NodeKind:
    try:
      native = NativeKind(self.api.kind_of(handle))
    except ValueError:
      native = NativeKind.NONE
    kind = _KINDS.get(native)
    if kind is None:
      msg = f"Native node {handle} has no valid type ({native.name})."
      logger.error(msg)
      raise NativeTreeConstructionError(msg)
    return kind

  def required_text(self, value: NativeText, field: str, handle: NativeHandle) -> str:
    if value is None:
      msg = f"Native node {handle}: required field '{field}' is null."
      logger.error(msg)
      raise NullNativeFieldError(msg)
    try:
      return _decode(value)  # type: ignore[return-value]
    except UnicodeDecodeError as e:
      msg = f"Native node {handle}: field '{field}' is not valid UTF-8."
      logger.error(msg)
      raise NullNativeFieldError(msg) from e

  def optional_text(self, value: NativeText, field: str, handle: NativeHandle) -> str | None:
    try:
      return _decode(value)
    except UnicodeDecodeError:
      logger.warning("Native node %d: dropping undecodable '%s'.", handle, field)
      return None

  def area(self, handle: NativeHandle) -> NodeArea:
    raw = self.api.area_of(handle)
    if raw is None:
      msg = f"Native node {handle}: area is null."
      logger.error(msg)
      raise NullNativeFieldError(msg)
    return NodeArea(
      total=float(raw.total),
      main_chain=float(raw.main_chain),
      side_chain=float(raw.side_chain),
      polar=float(raw.polar),
      apolar=float(raw.apolar),
      unknown=float(raw.unknown),
    )

  # --- Node construction ---

  def node(self, handle: NativeHandle, kind: NodeKind, parent_uid: NodeUID | None) -> Node:
    """Build the node for ``handle``; identity derives from ``parent_uid``."""
    api = self.api
    uid: NodeUID | None = None
    properties: NodeProperties | None = None

    if kind is NodeKind.RESULT:
      classified_by = self.optional_text(api.classified_by(handle), "classified_by", handle)
      properties = ResultProperties(classified_by or "")
      return Node(kind, properties=properties)
    if kind is NodeKind.ROOT:
      return Node(kind)

    if kind is NodeKind.STRUCTURE:
      name = self.required_text(api.name(handle), "name", handle)
      uid = StructureUID(name)
      labels = self.optional_text(api.structure_chain_labels(handle), "chain_labels", handle)
      properties = StructureProperties(
        name=name,
        model=int(api.structure_model(handle)),
        n_atoms=int(api.structure_n_atoms(handle)),
        chain_labels=tuple(labels or ()),
      )
    elif kind is NodeKind.CHAIN:
      label = self.required_text(api.name(handle), "name", handle)
      uid = ChainUID.from_label(label)
      properties = ChainProperties(n_residues=int(api.chain_n_residues(handle)))
    elif kind is NodeKind.RESIDUE:
      chain = self.parent_of(parent_uid, ChainUID, kind, handle)
      number = self.required_text(api.residue_number(handle), "residue_number", handle)
      uid = ResidueUID.from_field(chain, number)
      properties = ResidueProperties(
        name=(self.optional_text(api.name(handle), "name", handle) or "").strip(),
        n_atoms=int(api.residue_n_atoms(handle)),
      )
    elif kind is NodeKind.ATOM:
      residue = self.parent_of(parent_uid, ResidueUID, kind, handle)
      uid = AtomUID.from_name(residue, self.required_text(api.name(handle), "name", handle))
      properties = AtomProperties(
        name=uid.atom_name,
        is_polar=bool(api.atom_is_polar(handle)),
        is_mainchain=bool(api.atom_is_mainchain(handle)),
        radius=float(api.atom_radius(handle)),
        pdb_line=self.optional_text(api.atom_pdb_line(handle), "pdb_line", handle),
      )

    return Node(kind, uid=uid, area=self.area(handle), properties=properties)

  def parent_of(
    self,
    parent_uid: NodeUID | None,
    expected: type,
    kind: NodeKind,
    handle: NativeHandle,
  ) -> Any:  # noqa: ANN401
    if not isinstance(parent_uid, expected):
      msg = f"Native node {handle}: {kind.value} is not nested under a {expected.__name__[:-3]}."
      logger.error(msg)
      raise NativeTreeConstructionError(msg)
    return parent_uid

  # --- Traversal ---

  def enter(self, handle: NativeHandle) -> None:
    if handle in self.visited:
      msg = f"Native tree is cyclic: node {handle} reached twice."
      logger.error(msg)
      raise NativeTreeConstructionError(msg)
    self.visited.add(handle)

  def children(self, parent: Tree, first: NativeHandle, depth: int) -> None:
    """Convert the sibling run starting at ``first`` into children of ``parent``."""
    if depth > self.options.max_depth:
      msg = f"Native tree is deeper than {self.options.max_depth} levels."
      logger.error(msg)
      raise NativeTreeConstructionError(msg)

    handle = first
    run = 0
    while handle != NULL:
      run += 1
      if run > self.options.max_siblings:
        msg = f"Native sibling run exceeds {self.options.max_siblings} nodes."
        logger.error(msg)
        raise NativeTreeConstructionError(msg)
      self.enter(handle)

      subtree = self.subtree(handle, parent.node.uid, depth, parent.node.kind)
      self.attach(parent, subtree)
      handle = self.api.next_sibling(handle)

  def subtree(
    self,
    handle: NativeHandle,
    parent_uid: NodeUID | None,
    depth: int,
    parent_kind: NodeKind | None = None,
  ) -> Tree:
    kind = self.kind(handle)
    if parent_kind is not None and kind.depth != parent_kind.depth + 1:
      msg = f"Native node {handle}: {kind.value} found directly below a {parent_kind.value}."
      logger.error(msg)
      raise NativeTreeConstructionError(msg)

    tree = Tree(self.node(handle, kind, parent_uid))
    self.n_nodes += 1
    if kind is not self.stop_kind:
      first = self.api.first_child(handle)
      if first != NULL:
        self.children(tree, first, depth + 1)
    return tree

  def attach(self, parent: Tree, subtree: Tree) -> None:
    uid = subtree.node.uid
    existing = parent.child(uid) if uid is not None else None
    if existing is None:
      parent.add_child(subtree)
      return
    logger.warning("Duplicate sibling identity %s; merging into the first occurrence.", uid)
    self.n_merged += 1
    _merge(existing, subtree)

  def find_structures(self, root: NativeHandle) -> list[NativeHandle]:
    """Structure nodes at or below ``root``, skipping root and result levels."""
    found: list[NativeHandle] = []
    pending = [root]
    while pending:
      handle = pending.pop(0)
      self.enter(handle)
      kind = self.kind(handle)
      if kind is NodeKind.STRUCTURE:
        found.append(handle)
      elif kind in (NodeKind.ROOT, NodeKind.RESULT):
        logger.debug("Skipping native %s node %d", kind.value, handle)
        child = self.api.first_child(handle)
        run = 0
        while child != NULL:
          run += 1
          if run > self.options.max_siblings:
            msg = f"Native sibling run exceeds {self.options.max_siblings} nodes."
            logger.error(msg)
            raise NativeTreeConstructionError(msg)
          pending.append(child)
          child = self.api.next_sibling(child)
      else:
        msg = f"Native tree starts at a {kind.value} node; expected root, result or structure."
        logger.error(msg)
        raise NativeTreeConstructionError(msg)
    return found

  def result_meta(self, structure: NativeHandle) -> Node | None:
    parent = self.api.parent(structure)
    if parent == NULL or self.api.kind_of(parent) != NativeKind.RESULT:
      return None
    return self.node(parent, NodeKind.RESULT, None)


def _merge(target: Tree, donor: Tree) -> None:
  """Fold ``donor`` into ``target``: areas add up, properties are dropped."""
  if target.node.area is not None and donor.node.area is not None:
    target.node.set_area(target.node.area + donor.node.area)
  target.node.properties = None
  for uid, child in donor.children.items():
    existing = target.child(uid)
    if existing is None:
      target.add_child(child)
    else:
      _merge(existing, child)


def _fold_structure(target: Tree, donor: Tree) -> None:
  """Fold a joined structure into ``target``. Chains sharing a label merge."""
  mine = target.node.properties
  theirs = donor.node.properties
  _merge(target, donor)
  if isinstance(mine, StructureProperties) and isinstance(theirs, StructureProperties):
    extra = tuple(label for label in theirs.chain_labels if label not in mine.chain_labels)
    target.node.properties = StructureProperties(
      name=mine.name,
      model=mine.model,
      n_atoms=mine.n_atoms + theirs.n_atoms,
      chain_labels=mine.chain_labels + extra,
    )
  logger.info("Folded joined structure %s into %s", donor.node.uid, target.node.uid)


def build_tree(
  native: NativeTree,
  stop_kind: NodeKind = NodeKind.ATOM,
  options: BuildOptions = DEFAULT_BUILD_OPTIONS,
) -> Tree:
  """Convert a native tree into an owned tree and release the native tree.

  Root and result levels above the structure nodes are skipped. A joined
  native tree holds several structures; by default they are folded into the
  first one. The native tree is released exactly once, whether conversion
  succeeds or fails.

  Args:
    native: Owning handle; invalid after this call.
    stop_kind: Deepest kind to materialize. Nodes of this kind become leaves.
    options: Guards against malformed native trees, and the policy for
      native trees that hold several structures.

  Returns:
    Tree rooted at the first structure node, with the areas and children of
    any structures joined after it unless the policy says otherwise.

  Raises:
    ValueError: If ``stop_kind`` is above the structure level.
    NativeTreeConstructionError: If the native tree is released, empty or malformed.
    NullNativeFieldError: If a required native field is null.
    IdentityError: If a chain label, residue number or atom name is invalid.

  """
  with native:
    if stop_kind.depth < NodeKind.STRUCTURE.depth:
      msg = f"stop_kind must be structure or deeper, got {stop_kind.value}."
      raise ValueError(msg)

    walker = _Walker(native.api, stop_kind, options)
    structures = walker.find_structures(native.root)
    if not structures:
      msg = "Native tree holds no structure node."
      logger.error(msg)
      raise NativeTreeConstructionError(msg)
    if len(structures) > 1:
      if options.multi_model is MultiModelPolicy.ERROR:
        msg = f"Native tree holds {len(structures)} structures; merge them or split models first."
        logger.error(msg)
        raise NativeTreeConstructionError(msg)
      if options.multi_model is MultiModelPolicy.FIRST:
        logger.warning(
          "Native tree holds %d structures; building the first, ignoring %d.",
          len(structures),
          len(structures) - 1,
        )
        structures = structures[:1]

    tree = walker.subtree(structures[0], None, 0)
    tree.meta = walker.result_meta(structures[0])
    for handle in structures[1:]:
      _fold_structure(tree, walker.subtree(handle, None, 0))

  logger.info(
    "Built %s tree for %s: %d nodes, %d duplicates merged",
    stop_kind.value,
    tree.node.uid,
    walker.n_nodes,
    walker.n_merged,
  )
  return tree
