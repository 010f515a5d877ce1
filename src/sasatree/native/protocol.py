"""Traversal contract of a native (engine-owned) result tree.

A native tree is reachable only through integer handles. ``NULL`` (0) is the
invalid sentinel returned by any accessor that has nothing to report, and
must be checked before use. String accessors may return ``str`` or raw
``bytes`` as produced by a C library.
"""

from __future__ import annotations

import enum
from typing import Protocol, runtime_checkable

NULL = 0

NativeHandle = int
NativeText = str | bytes | None


class NativeKind(enum.IntEnum):
  """Node type codes used by the engine."""

  NONE = 0
  ATOM = 1
  RESIDUE = 2
  CHAIN = 3
  STRUCTURE = 4
  RESULT = 5
  ROOT = 6


class StatusCode(enum.IntEnum):
  """Return codes of engine operations."""

  SUCCESS = 0
  FAIL = -1
  WARN = -2


class NativeArea(Protocol):
  total: float
  main_chain: float
  side_chain: float
  polar: float
  apolar: float
  unknown: float


@runtime_checkable
class NativeTreeAPI(Protocol):
  """Accessors an engine must expose for ``build_tree`` and ``NativeTree``."""

  def kind_of(self, node: NativeHandle) -> NativeKind: ...

  def first_child(self, node: NativeHandle) -> NativeHandle: ...

  def next_sibling(self, node: NativeHandle) -> NativeHandle: ...

  def parent(self, node: NativeHandle) -> NativeHandle: ...

  def name(self, node: NativeHandle) -> NativeText: ...

  def area_of(self, node: NativeHandle) -> NativeArea | None: ...

  def residue_number(self, node: NativeHandle) -> NativeText: ...

  def residue_n_atoms(self, node: NativeHandle) -> int: ...

  def chain_n_residues(self, node: NativeHandle) -> int: ...

  def structure_model(self, node: NativeHandle) -> int: ...

  def structure_n_atoms(self, node: NativeHandle) -> int: ...

  def structure_chain_labels(self, node: NativeHandle) -> NativeText: ...

  def atom_is_polar(self, node: NativeHandle) -> bool: ...

  def atom_is_mainchain(self, node: NativeHandle) -> bool: ...

  def atom_radius(self, node: NativeHandle) -> float: ...

  def atom_pdb_line(self, node: NativeHandle) -> NativeText: ...

  def classified_by(self, node: NativeHandle) -> NativeText: ...

  def release_tree(self, root: NativeHandle) -> None: ...

  def join_trees(self, primary: NativeHandle, donor: NativeHandle) -> StatusCode: ...
