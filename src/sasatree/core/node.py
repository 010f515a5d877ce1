"""Node kinds, kind-specific properties and the node value."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field, replace
from typing import Any, Union

from sasatree.core.area import NodeArea
from sasatree.core.uids import AtomUID, ChainUID, NodeUID, ResidueUID, StructureUID


class NodeKind(enum.Enum):
  """Closed set of levels in a surface area tree, outermost first."""

  ROOT = "root"
  RESULT = "result"
  STRUCTURE = "structure"
  CHAIN = "chain"
  RESIDUE = "residue"
  ATOM = "atom"

  @classmethod
  def parse(cls, text: str) -> NodeKind:
    """Parse a kind name case-insensitively, e.g. ``"Residue"``."""
    try:
      return cls(text.strip().lower())
    except ValueError:
      names = ", ".join(k.value for k in cls)
      msg = f"Invalid node kind {text!r}: expected one of {names}."
      raise ValueError(msg) from None

  @property
  def depth(self) -> int:
    """Nesting level, 0 for the root."""
    return _DEPTH[self]

  @property
  def has_area(self) -> bool:
    return self not in (NodeKind.ROOT, NodeKind.RESULT)

  @property
  def has_identity(self) -> bool:
    return self not in (NodeKind.ROOT, NodeKind.RESULT)


_DEPTH = {kind: i for i, kind in enumerate(NodeKind)}

# Identity type carried by each kind.
UID_TYPES: dict[NodeKind, type] = {
  NodeKind.STRUCTURE: StructureUID,
  NodeKind.CHAIN: ChainUID,
  NodeKind.RESIDUE: ResidueUID,
  NodeKind.ATOM: AtomUID,
}


@dataclass(frozen=True)
class AtomProperties:
  name: str
  is_polar: bool
  is_mainchain: bool
  radius: float
  pdb_line: str | None = None


@dataclass(frozen=True)
class ResidueProperties:
  name: str  # residue name, e.g. "ALA"
  n_atoms: int


@dataclass(frozen=True)
class ChainProperties:
  n_residues: int


@dataclass(frozen=True)
class StructureProperties:
  name: str
  model: int
  n_atoms: int
  chain_labels: tuple[str, ...] = ()


@dataclass(frozen=True)
class ResultProperties:
  classified_by: str


NodeProperties = Union[
  AtomProperties,
  ResidueProperties,
  ChainProperties,
  StructureProperties,
  ResultProperties,
]

_PROPERTY_TYPES: dict[NodeKind, type] = {
  NodeKind.ATOM: AtomProperties,
  NodeKind.RESIDUE: ResidueProperties,
  NodeKind.CHAIN: ChainProperties,
  NodeKind.STRUCTURE: StructureProperties,
  NodeKind.RESULT: ResultProperties,
}


@dataclass
class Node:
  """A single tree node.

  ``area`` and ``uid`` are ``None`` only for root and result nodes.
  ``properties`` is ``None`` when the node was degraded while building
  (e.g. merged from duplicate siblings).

  Attributes:
    kind: Level of the node.
    uid: Identity, unique among siblings.
    area: Area aggregate of the node and its descendants.
    properties: Kind-specific descriptive fields.

  """

  kind: NodeKind
  uid: NodeUID | None = None
  area: NodeArea | None = None
  properties: NodeProperties | None = field(default=None, compare=False)

  def __post_init__(self) -> None:
    if self.uid is not None:
      expected = UID_TYPES.get(self.kind)
      if expected is None or not isinstance(self.uid, expected):
        msg = f"{self.kind.name} node cannot carry identity {self.uid!r}."
        raise TypeError(msg)
    if self.properties is not None and not isinstance(
      self.properties, _PROPERTY_TYPES.get(self.kind, ())
    ):
      msg = f"{self.kind.name} node cannot carry properties {self.properties!r}."
      raise TypeError(msg)

  def set_area(self, area: NodeArea | None) -> None:
    self.area = area

  def with_area(self, area: NodeArea | None) -> Node:
    """Return a copy carrying ``area``."""
    return replace(self, area=area)

  def to_dict(self) -> dict[str, Any]:
    """Flat key-value form: kind, identity text and inlined area fields."""
    data: dict[str, Any] = {"kind": self.kind.value}
    if self.uid is not None:
      data["uid"] = str(self.uid)
    if self.area is not None:
      data.update(self.area.to_dict())
    return data

  def __str__(self) -> str:
    label = str(self.uid) if self.uid is not None else self.kind.value
    if self.area is None:
      return f"<{self.kind.value} {label}>"
    return f"<{self.kind.value} {label} total={self.area.total:.3f}>"
