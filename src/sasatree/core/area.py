"""Six-component surface area aggregate attached to tree nodes."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import astuple, dataclass, fields

import numpy as np


@dataclass(frozen=True)
class NodeArea:
  """Accessible surface area of a node, split by atom class.

  Equality is exact float equality. Callers comparing recomputed areas must
  apply their own tolerance.

  Attributes:
    total: Total area in square Angstrom.
    main_chain: Area of backbone atoms.
    side_chain: Area of side-chain atoms.
    polar: Area of polar atoms.
    apolar: Area of apolar atoms.
    unknown: Area of atoms the classifier could not assign.

  """

  total: float = 0.0
  main_chain: float = 0.0
  side_chain: float = 0.0
  polar: float = 0.0
  apolar: float = 0.0
  unknown: float = 0.0

  def __add__(self, other: NodeArea) -> NodeArea:
    if not isinstance(other, NodeArea):
      return NotImplemented
    return NodeArea(*(a + b for a, b in zip(astuple(self), astuple(other), strict=True)))

  def __sub__(self, other: NodeArea) -> NodeArea:
    if not isinstance(other, NodeArea):
      return NotImplemented
    return NodeArea(*(a - b for a, b in zip(astuple(self), astuple(other), strict=True)))

  def __neg__(self) -> NodeArea:
    return NodeArea(*(-a for a in astuple(self)))

  def as_array(self) -> np.ndarray:
    """Return the six components as a float64 vector in field order."""
    return np.asarray(astuple(self), dtype=np.float64)

  @classmethod
  def from_array(cls, values: Iterable[float]) -> NodeArea:
    """Build an area from six values in field order."""
    values = np.asarray(list(values), dtype=np.float64)
    if values.shape != (len(AREA_FIELDS),):
      msg = f"Expected {len(AREA_FIELDS)} area components, got shape {values.shape}."
      raise ValueError(msg)
    return cls(*(float(v) for v in values))

  @classmethod
  def sum(cls, areas: Iterable[NodeArea]) -> NodeArea:
    """Pointwise sum of any number of areas."""
    result = cls()
    for area in areas:
      result = result + area
    return result

  def to_dict(self) -> dict[str, float]:
    return {name: getattr(self, name) for name in AREA_FIELDS}


AREA_FIELDS: tuple[str, ...] = tuple(f.name for f in fields(NodeArea))


def add(a: NodeArea, b: NodeArea) -> NodeArea:
  """Pointwise ``a + b``."""
  return a + b


def sub(a: NodeArea, b: NodeArea) -> NodeArea:
  """Pointwise ``a - b``."""
  return a - b
