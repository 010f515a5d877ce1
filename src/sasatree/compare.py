"""Identity-based comparison of two surface area trees.

Nodes are paired by identity through a hash map built from one tree, so the
cost is linear in the size of both trees and pairing does not depend on
sibling order or on both trees having the same number of children.
"""

from __future__ import annotations

import logging
from collections.abc import Callable

from sasatree.core.area import NodeArea
from sasatree.core.node import Node, NodeKind
from sasatree.core.tree import Tree
from sasatree.core.uids import NodeUID, ResidueUID

logger = logging.getLogger(__name__)

AreaOp = Callable[[NodeArea, NodeArea], NodeArea]
AreaPredicate = Callable[[NodeArea], bool]


def delta(base: NodeArea, variant: NodeArea) -> NodeArea:
  """``variant - base``: positive where the variant exposes more area."""
  return variant - base


def compare(
  tree_a: Tree,
  tree_b: Tree,
  kind: NodeKind,
  op: AreaOp,
  predicate: AreaPredicate,
) -> list[Node]:
  """Pair nodes of ``kind`` by identity and keep those whose combined area passes.

  For every node of ``kind`` in ``tree_a`` with a counterpart in ``tree_b``,
  ``op(area_a, area_b)`` is computed; when ``predicate`` holds on it, a new
  node with the shared identity and the combined area is emitted. Nodes
  without a counterpart, and nodes without an area, are skipped.

  Args:
    tree_a: First tree, e.g. the full structure.
    tree_b: Second tree, e.g. a truncated variant.
    kind: Level to compare.
    op: Combines the two areas of a matched pair.
    predicate: Filter on the combined area.

  Returns:
    Result nodes in the order ``tree_a`` holds them. Properties come from
    ``tree_a``.

  """
  if kind in (NodeKind.ROOT, NodeKind.RESULT):
    logger.debug("Nodes of kind %s carry no area; nothing to compare.", kind.value)
    return []

  lookup: dict[NodeUID, Node] = tree_b.index(kind)
  if not lookup and tree_b.node.kind.depth < kind.depth:
    logger.warning("Tree %s has no %s nodes; was it built deep enough?", tree_b.node, kind.value)

  result: list[Node] = []
  n_missing = 0
  for subtree in tree_a.walk(kind):
    node_a = subtree.node
    if node_a.uid is None or node_a.area is None:
      continue
    node_b = lookup.get(node_a.uid)
    if node_b is None:
      n_missing += 1
      logger.debug("%s has no counterpart in the other tree", node_a.uid)
      continue
    if node_b.area is None:
      continue

    area = op(node_a.area, node_b.area)
    if predicate(area):
      result.append(Node(kind, uid=node_a.uid, area=area, properties=node_a.properties))

  if n_missing:
    logger.info("%d %s nodes had no counterpart", n_missing, kind.value)
  return result


def compare_residues(base: Tree, variant: Tree, threshold: float = 0.0) -> list[Node]:
  """Residues whose total area grows by more than ``threshold`` in ``variant``."""
  return compare(base, variant, NodeKind.RESIDUE, delta, lambda d: d.total > threshold)


def residue_deltas(nodes: list[Node]) -> dict[str, float]:
  """Map residue field (number plus insertion code) to total area of each result node.

  Raises:
    ValueError: If the nodes span more than one chain, which would make the
      residue fields ambiguous.

  """
  deltas: dict[str, float] = {}
  chains: set[str] = set()
  for node in nodes:
    if not isinstance(node.uid, ResidueUID) or node.area is None:
      continue
    chains.add(node.uid.chain_id)
    deltas[node.uid.residue_field()] = node.area.total
  if len(chains) > 1:
    msg = f"Residue fields are ambiguous across chains {sorted(chains)}."
    raise ValueError(msg)
  return deltas
