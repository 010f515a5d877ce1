"""In-process geometry engine exposing results as a native tree.

Per-atom areas come from ``biotite.structure.sasa`` (Shrake-Rupley). The result
hierarchy is then laid out in a ``NodeArena``: a handle table of records
linked by first-child, next-sibling and parent handles, released explicitly,
the way a C library hands out its result trees. ``build_tree`` turns such a
tree into an owned ``Tree``.

Native layout::

    ROOT
    └── RESULT (classified_by)
        └── STRUCTURE (name, model)
            └── CHAIN ─ CHAIN ...
                └── RESIDUE ─ RESIDUE ...
                    └── ATOM ─ ATOM ...
"""

from __future__ import annotations

import itertools
import logging
from collections.abc import Iterator
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, NamedTuple

import numpy as np
from biotite import structure

from sasatree.chem.classifier import CLASSIFIER_NAME, AtomClass, atom_radius, classify
from sasatree.config import DEFAULT_CALCULATION_PARAMETERS, CalculationParameters
from sasatree.core.errors import (
  EngineError,
  NativeTreeConstructionError,
  StructureOrResultNullError,
)
from sasatree.native.handle import NativeTree
from sasatree.native.protocol import NULL, NativeHandle, NativeKind, NativeText, StatusCode

if TYPE_CHECKING:
  from sasatree.io.structure import Structure

logger = logging.getLogger(__name__)


class AreaRecord(NamedTuple):
  total: float = 0.0
  main_chain: float = 0.0
  side_chain: float = 0.0
  polar: float = 0.0
  apolar: float = 0.0
  unknown: float = 0.0


@dataclass
class _Record:
  kind: NativeKind
  name: NativeText
  parent: NativeHandle = NULL
  first_child: NativeHandle = NULL
  last_child: NativeHandle = NULL
  next_sibling: NativeHandle = NULL
  area: AreaRecord | None = None
  data: dict[str, Any] = field(default_factory=dict)


class NodeArena:
  """Handle table holding every live native node of this engine.

  Handles are positive integers that are never reused. Accessors called on an
  unknown handle return the null sentinel for their type, as the C API would.
  """

  def __init__(self) -> None:
    self._records: dict[NativeHandle, _Record] = {}
    self._handles = itertools.count(1)

  def __len__(self) -> int:
    """Number of live nodes."""
    return len(self._records)

  def __contains__(self, node: object) -> bool:
    return node in self._records

  # --- Construction ---

  def new_node(
    self,
    kind: NativeKind,
    name: NativeText = None,
    parent: NativeHandle = NULL,
    area: AreaRecord | None = None,
    **data: Any,  # noqa: ANN401
  ) -> NativeHandle:
    """Allocate a node and append it as the last child of ``parent``."""
    handle = next(self._handles)
    self._records[handle] = _Record(kind=kind, name=name, parent=parent, area=area, data=data)
    if parent != NULL:
      self._append_child(parent, handle)
    return handle

  def _append_child(self, parent: NativeHandle, child: NativeHandle) -> None:
    record = self._records[parent]
    if record.first_child == NULL:
      record.first_child = child
    else:
      self._records[record.last_child].next_sibling = child
    record.last_child = child

  def link_sibling(self, node: NativeHandle, sibling: NativeHandle) -> None:
    """Point ``node``'s next-sibling at ``sibling`` without any checks.

    Only for simulating damaged trees.
    """
    self._records[node].next_sibling = sibling

  # --- Traversal contract ---

  def kind_of(self, node: NativeHandle) -> NativeKind:
    record = self._records.get(node)
    return record.kind if record is not None else NativeKind.NONE

  def first_child(self, node: NativeHandle) -> NativeHandle:
    record = self._records.get(node)
    return record.first_child if record is not None else NULL

  def next_sibling(self, node: NativeHandle) -> NativeHandle:
    record = self._records.get(node)
    return record.next_sibling if record is not None else NULL

  def parent(self, node: NativeHandle) -> NativeHandle:
    record = self._records.get(node)
    return record.parent if record is not None else NULL

  def name(self, node: NativeHandle) -> NativeText:
    record = self._records.get(node)
    return record.name if record is not None else None

  def area_of(self, node: NativeHandle) -> AreaRecord | None:
    record = self._records.get(node)
    return record.area if record is not None else None

  def _data(
    self, node: NativeHandle, key: str, kind: NativeKind, default: Any  # noqa: ANN401
  ) -> Any:  # noqa: ANN401
    record = self._records.get(node)
    if record is None or record.kind is not kind:
      return default
    return record.data.get(key, default)

  def residue_number(self, node: NativeHandle) -> NativeText:
    return self._data(node, "number", NativeKind.RESIDUE, None)

  def residue_n_atoms(self, node: NativeHandle) -> int:
    return self._data(node, "n_atoms", NativeKind.RESIDUE, 0)

  def chain_n_residues(self, node: NativeHandle) -> int:
    return self._data(node, "n_residues", NativeKind.CHAIN, 0)

  def structure_model(self, node: NativeHandle) -> int:
    return self._data(node, "model", NativeKind.STRUCTURE, 0)

  def structure_n_atoms(self, node: NativeHandle) -> int:
    return self._data(node, "n_atoms", NativeKind.STRUCTURE, 0)

  def structure_chain_labels(self, node: NativeHandle) -> NativeText:
    return self._data(node, "chain_labels", NativeKind.STRUCTURE, None)

  def atom_is_polar(self, node: NativeHandle) -> bool:
    return self._data(node, "is_polar", NativeKind.ATOM, False)

  def atom_is_mainchain(self, node: NativeHandle) -> bool:
    return self._data(node, "is_mainchain", NativeKind.ATOM, False)

  def atom_radius(self, node: NativeHandle) -> float:
    return self._data(node, "radius", NativeKind.ATOM, 0.0)

  def atom_pdb_line(self, node: NativeHandle) -> NativeText:
    return self._data(node, "pdb_line", NativeKind.ATOM, None)

  def classified_by(self, node: NativeHandle) -> NativeText:
    return self._data(node, "classified_by", NativeKind.RESULT, None)

  # --- Ownership ---

  def release_tree(self, root: NativeHandle) -> None:
    """Free ``root`` and all its descendants.

    Raises:
      NativeTreeConstructionError: If ``root`` is not a live root node.

    """
    record = self._records.get(root)
    if record is None:
      msg = f"Native node {root} is not live (double release?)."
      logger.error(msg)
      raise NativeTreeConstructionError(msg)
    if record.parent != NULL:
      msg = f"Native node {root} is not a root and cannot be released on its own."
      logger.error(msg)
      raise NativeTreeConstructionError(msg)

    stack = [root]
    seen = {root}
    while stack:
      handle = stack.pop()
      node = self._records.pop(handle, None)
      if node is None:
        continue
      child = node.first_child
      # Damaged sibling links may loop; free each node once.
      while child != NULL and child in self._records and child not in seen:
        seen.add(child)
        stack.append(child)
        child = self._records[child].next_sibling

  def join_trees(self, primary: NativeHandle, donor: NativeHandle) -> StatusCode:
    """Append the results under ``donor`` to the results under ``primary``.

    On success the donor root is freed and its children belong to
    ``primary``. On failure nothing changes.
    """
    target = self._records.get(primary)
    source = self._records.get(donor)
    if target is None or source is None or primary == donor:
      return StatusCode.FAIL
    if target.kind is not NativeKind.ROOT or source.kind is not NativeKind.ROOT:
      return StatusCode.FAIL

    del self._records[donor]
    if source.first_child == NULL:
      return StatusCode.WARN

    child = source.first_child
    while child != NULL:
      self._records[child].parent = primary
      child = self._records[child].next_sibling
    if target.first_child == NULL:
      target.first_child = source.first_child
    else:
      self._records[target.last_child].next_sibling = source.first_child
    target.last_child = source.last_child
    return StatusCode.SUCCESS


DEFAULT_ARENA = NodeArena()


# --- Flat result ---


@dataclass(frozen=True)
class SasaResult:
  """Per-atom surface areas for one structure.

  Attributes:
    atom_areas: Area of each atom in structure order, shape (N,).
    parameters: Parameters the areas were computed with.

  """

  atom_areas: np.ndarray
  parameters: CalculationParameters = DEFAULT_CALCULATION_PARAMETERS

  @property
  def total(self) -> float:
    return float(np.sum(self.atom_areas))

  @property
  def n_atoms(self) -> int:
    return int(self.atom_areas.shape[0])

  def atom_sasa(self) -> list[float]:
    return [float(a) for a in self.atom_areas]

  def get(self, index: int) -> float | None:
    if not 0 <= index < self.n_atoms:
      return None
    return float(self.atom_areas[index])

  def __iter__(self) -> Iterator[float]:
    return iter(self.atom_sasa())

  def __len__(self) -> int:
    return self.n_atoms

  def __str__(self) -> str:
    return f"{self.total}"


def calculate(
  structure_: Structure,
  parameters: CalculationParameters = DEFAULT_CALCULATION_PARAMETERS,
) -> SasaResult:
  """Compute per-atom accessible surface area.

  Raises:
    EngineError: If the structure has no atoms or the calculation fails.

  """
  atom_array = structure_.atom_array
  if atom_array.array_length() == 0:
    msg = f"Cannot calculate SASA of empty structure {structure_.name!r}."
    logger.error(msg)
    raise EngineError(msg)

  vdw_radii: Any = parameters.radii
  if structure_.radii is not None:
    vdw_radii = structure_.radii

  try:
    areas = structure.sasa(
      atom_array,
      probe_radius=parameters.probe_radius,
      ignore_ions=parameters.ignore_ions,
      point_number=parameters.n_points,
      point_distr=parameters.point_distribution,
      vdw_radii=vdw_radii,
    )
  except (ValueError, KeyError) as e:
    msg = f"SASA calculation failed for {structure_.name!r}: {e}"
    logger.exception(msg)
    raise EngineError(msg) from e

  # Atoms excluded from the calculation (hydrogens, ions) come back as NaN.
  areas = np.nan_to_num(np.asarray(areas, dtype=np.float64), nan=0.0)
  logger.info(
    "Calculated SASA for %s: %d atoms, total %.3f",
    structure_.name,
    len(areas),
    float(areas.sum()),
  )
  return SasaResult(atom_areas=areas, parameters=parameters)


# --- Native tree materialization ---


def _component_matrix(areas: np.ndarray, classes: np.ndarray, mainchain: np.ndarray) -> np.ndarray:
  """Split each atom's area into the six components, shape (N, 6)."""
  matrix = np.zeros((areas.shape[0], len(AreaRecord._fields)), dtype=np.float64)
  matrix[:, 0] = areas
  matrix[:, 1] = np.where(mainchain, areas, 0.0)
  matrix[:, 2] = np.where(mainchain, 0.0, areas)
  matrix[:, 3] = np.where(classes == AtomClass.POLAR, areas, 0.0)
  matrix[:, 4] = np.where(classes == AtomClass.APOLAR, areas, 0.0)
  matrix[:, 5] = np.where(classes == AtomClass.UNKNOWN, areas, 0.0)
  return matrix


def _segment_starts(keys: list[tuple]) -> list[int]:
  """Indices where the key differs from the previous element."""
  return [i for i, key in enumerate(keys) if i == 0 or key != keys[i - 1]]


def _record(row: np.ndarray) -> AreaRecord:
  return AreaRecord(*(float(v) for v in row))


def _native_chain_label(chain_id: str) -> str:
  # PDB files leave the chain column blank for single-chain entries.
  return chain_id if chain_id else " "


def _residue_number_field(res_id: int, ins_code: str) -> str:
  """PDB columns 23-27: right-aligned number and an insertion code column."""
  return f"{res_id:>4}{ins_code or ' '}"


def _pdb_line(atom_array: structure.AtomArray, i: int) -> str:
  name = str(atom_array.atom_name[i])
  name_field = f" {name:<3}" if len(name) < 4 else name[:4]  # noqa: PLR2004
  record = "HETATM" if atom_array.hetero[i] else "ATOM  "
  x, y, z = (float(c) for c in atom_array.coord[i])
  return (
    f"{record}{i + 1:>5} {name_field} {atom_array.res_name[i]:>3} "
    f"{_native_chain_label(str(atom_array.chain_id[i]))[:1]}"
    f"{_residue_number_field(int(atom_array.res_id[i]), str(atom_array.ins_code[i]))}   "
    f"{x:8.3f}{y:8.3f}{z:8.3f}  1.00  0.00          {atom_array.element[i]:>2}"
  )


def tree_init(
  result: SasaResult | None,
  structure_: Structure | None,
  label: str | None = None,
  arena: NodeArena | None = None,
) -> NativeTree:
  """Lay out a computed result as a native tree.

  Args:
    result: Per-atom areas from ``calculate``.
    structure_: The structure ``result`` was computed for.
    label: Structure name in the tree; defaults to the structure's name.
    arena: Handle table to allocate in; defaults to the shared arena.

  Returns:
    Owning handle on the new native tree.

  Raises:
    StructureOrResultNullError: If ``result`` or ``structure_`` is missing.
    EngineError: If the result does not belong to the structure.

  """
  if structure_ is None:
    msg = "Failed to create native tree: structure was null."
    logger.error(msg)
    raise StructureOrResultNullError(msg)
  if result is None:
    msg = "Failed to create native tree: result was null."
    logger.error(msg)
    raise StructureOrResultNullError(msg)

  atom_array = structure_.atom_array
  n_atoms = atom_array.array_length()
  if result.n_atoms != n_atoms:
    msg = (
      f"Result holds {result.n_atoms} atom areas but structure {structure_.name!r} "
      f"has {n_atoms} atoms."
    )
    logger.error(msg)
    raise EngineError(msg)

  arena = arena if arena is not None else DEFAULT_ARENA
  classes, mainchain = classify(atom_array.element, atom_array.atom_name)
  components = _component_matrix(result.atom_areas, classes, mainchain)
  radii = structure_.radii

  chain_ids = [_native_chain_label(str(c)) for c in atom_array.chain_id]
  residue_keys = [
    (chain_ids[i], int(atom_array.res_id[i]), str(atom_array.ins_code[i])) for i in range(n_atoms)
  ]
  chain_starts = _segment_starts([(c,) for c in chain_ids])
  residue_starts = _segment_starts(residue_keys)
  labels = "".join(chain_ids[i] for i in chain_starts)

  root = arena.new_node(NativeKind.ROOT)
  result_node = arena.new_node(
    NativeKind.RESULT,
    name=CLASSIFIER_NAME,
    parent=root,
    classified_by=CLASSIFIER_NAME,
  )
  structure_node = arena.new_node(
    NativeKind.STRUCTURE,
    name=label if label is not None else structure_.name,
    parent=result_node,
    area=_record(components.sum(axis=0)),
    model=structure_.model,
    n_atoms=n_atoms,
    chain_labels=labels,
  )

  chain_bounds = [*chain_starts, n_atoms]
  for c_start, c_end in itertools.pairwise(chain_bounds):
    starts = [s for s in residue_starts if c_start <= s < c_end]
    chain_node = arena.new_node(
      NativeKind.CHAIN,
      name=chain_ids[c_start],
      parent=structure_node,
      area=_record(components[c_start:c_end].sum(axis=0)),
      n_residues=len(starts),
    )
    for r_start, r_end in itertools.pairwise([*starts, c_end]):
      _, res_id, ins_code = residue_keys[r_start]
      residue_node = arena.new_node(
        NativeKind.RESIDUE,
        name=str(atom_array.res_name[r_start]),
        parent=chain_node,
        area=_record(components[r_start:r_end].sum(axis=0)),
        number=_residue_number_field(res_id, ins_code),
        n_atoms=r_end - r_start,
      )
      for i in range(r_start, r_end):
        radius = (
          float(radii[i])
          if radii is not None
          else atom_radius(
            str(atom_array.res_name[i]),
            str(atom_array.atom_name[i]),
            str(atom_array.element[i]),
            result.parameters.radii,
          )
        )
        arena.new_node(
          NativeKind.ATOM,
          name=str(atom_array.atom_name[i]),
          parent=residue_node,
          area=_record(components[i]),
          is_polar=bool(classes[i] == AtomClass.POLAR),
          is_mainchain=bool(mainchain[i]),
          radius=radius,
          pdb_line=_pdb_line(atom_array, i),
        )

  logger.debug(
    "Native tree %d for %s: %d chains, %d residues, %d atoms",
    root,
    structure_.name,
    len(chain_starts),
    len(residue_starts),
    n_atoms,
  )
  return NativeTree(arena, root)


def compute_tree(
  structure_: Structure,
  parameters: CalculationParameters = DEFAULT_CALCULATION_PARAMETERS,
  label: str | None = None,
  arena: NodeArena | None = None,
) -> NativeTree:
  """Compute areas for ``structure_`` and return them as a native tree."""
  return tree_init(calculate(structure_, parameters), structure_, label, arena)
