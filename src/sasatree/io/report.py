"""Persisted comparison reports.

A report holds the nodes ``compare`` returned, all of one kind, nested the
way the tree nests them::

    {
      "kind": "residue",
      "nodes": {
        "A": {"children": {"A:10": {"total": 12.5, ...}, "A:10B": {...}}}
      }
    }

Levels above the compared kind carry only ``children``.
"""

from __future__ import annotations

import json
import logging
import pathlib
from collections.abc import Iterable, Mapping
from typing import Any

from sasatree.core.area import AREA_FIELDS, NodeArea
from sasatree.core.node import Node, NodeKind
from sasatree.core.uids import AtomUID, ResidueUID, StructureUID, uid_from_string

logger = logging.getLogger(__name__)

_CHILDREN_KEY = "children"


def _path(node: Node) -> list[str]:
  uid = node.uid
  if isinstance(uid, AtomUID):
    return [str(uid.chain), str(uid.residue), str(uid)]
  if isinstance(uid, ResidueUID):
    return [str(uid.chain), str(uid)]
  return [str(uid)]


def report_to_dict(nodes: Iterable[Node]) -> dict[str, Any]:
  """Nest comparison result nodes by identity.

  Raises:
    ValueError: If the nodes are of different kinds, or lack an identity or area.

  """
  nodes = sorted(nodes, key=lambda n: n.uid.sort_key() if n.uid is not None else ())
  kinds = {node.kind for node in nodes}
  if len(kinds) > 1:
    msg = f"Report nodes must share one kind, got {sorted(k.value for k in kinds)}."
    raise ValueError(msg)

  document: dict[str, Any] = {}
  for node in nodes:
    if node.uid is None or node.area is None:
      msg = f"Cannot report {node}: nodes need an identity and an area."
      raise ValueError(msg)
    *parents, key = _path(node)
    level = document
    for parent in parents:
      level = level.setdefault(parent, {}).setdefault(_CHILDREN_KEY, {})
    level[key] = node.area.to_dict()

  kind = kinds.pop().value if kinds else None
  return {"kind": kind, "nodes": document}


def report_from_dict(document: Mapping[str, Any]) -> list[Node]:
  """Inverse of ``report_to_dict``; properties are not persisted."""
  if document.get("kind") is None:
    return []
  kind = NodeKind.parse(document["kind"])
  nodes: list[Node] = []

  def visit(entries: Mapping[str, Any]) -> None:
    for key, entry in entries.items():
      if _CHILDREN_KEY in entry:
        visit(entry[_CHILDREN_KEY])
        continue
      uid = StructureUID(key) if kind is NodeKind.STRUCTURE else uid_from_string(key)
      area = NodeArea(*(float(entry[name]) for name in AREA_FIELDS))
      nodes.append(Node(kind, uid=uid, area=area))

  visit(document.get("nodes", {}))
  return sorted(nodes, key=lambda n: n.uid.sort_key())


def write_report(path: str | pathlib.Path, nodes: Iterable[Node]) -> None:
  document = report_to_dict(nodes)
  path = pathlib.Path(path)
  with path.open("w") as f:
    json.dump(document, f, indent=2)
  logger.info("Wrote report with %s nodes to %s", document["kind"], path)


def read_report(path: str | pathlib.Path) -> list[Node]:
  """Read a report written by ``write_report``.

  Raises:
    FileNotFoundError: If ``path`` does not exist.
    IdentityError: If an identity in the report is malformed.

  """
  path = pathlib.Path(path)
  with path.open() as f:
    document = json.load(f)
  nodes = report_from_dict(document)
  logger.debug("Read %d nodes from %s", len(nodes), path)
  return nodes
