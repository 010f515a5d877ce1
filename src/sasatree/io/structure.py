"""Molecular structures handed to the geometry engine.

Parsing is delegated to ``biotite.structure.io``; this module applies the
loading options, names the structure and offers the small amount of editing
the comparisons need (adding atoms, removing residues).
"""

from __future__ import annotations

import functools
import logging
import operator
import pathlib
from collections.abc import Iterable
from typing import IO, TYPE_CHECKING

import numpy as np
from biotite import structure
from biotite.structure import AtomArray, AtomArrayStack
from biotite.structure import io as structure_io

from sasatree.chem.classifier import atom_radius
from sasatree.config import DEFAULT_CALCULATION_PARAMETERS, CalculationParameters, StructureOptions
from sasatree.core.errors import EngineError
from sasatree.core.node import NodeKind
from sasatree.core.uids import parse_chain_label, parse_residue_field

if TYPE_CHECKING:
  from sasatree.core.tree import Tree
  from sasatree.native.engine import SasaResult

logger = logging.getLogger(__name__)

_HYDROGENS = ("H", "D")


class Structure:
  """A named atom array plus the metadata the engine reports.

  Args:
    atom_array: Atoms in file order.
    name: Structure name, used as the structure node identity.
    model: Model number the atoms were read from.
    radii: Per-atom radii overriding the classifier's, e.g. read from the
      occupancy column.

  """

  def __init__(
    self,
    atom_array: AtomArray,
    name: str = "Unnamed",
    model: int = 1,
    radii: np.ndarray | None = None,
  ) -> None:
    if not isinstance(atom_array, AtomArray):
      msg = f"Expected AtomArray, but got {type(atom_array)}."
      logger.error(msg)
      raise TypeError(msg)
    if radii is not None and len(radii) != atom_array.array_length():
      msg = f"Got {len(radii)} radii for {atom_array.array_length()} atoms."
      raise ValueError(msg)
    self.atom_array = atom_array
    self.name = name
    self.model = model
    self.radii = radii

  # --- Construction ---

  @classmethod
  def empty(cls, name: str | None = None) -> Structure:
    """A structure with no atoms; add some with ``add_atom`` before calculating."""
    return cls(AtomArray(0), name=name if name is not None else "Unnamed")

  @classmethod
  def from_atom_array(cls, atom_array: AtomArray, name: str = "Unnamed") -> Structure:
    return cls(atom_array, name=name)

  @classmethod
  def from_path(
    cls,
    path: str | pathlib.Path | IO[str],
    options: StructureOptions | None = None,
    name: str | None = None,
  ) -> Structure:
    """Load one structure from a PDB or mmCIF file.

    Raises:
      ValueError: If the options split the file into several structures; use
        ``load_structures`` for that.

    """
    structures = load_structures(path, options, name)
    if len(structures) != 1:
      msg = f"Options produce {len(structures)} structures; use load_structures()."
      raise ValueError(msg)
    return structures[0]

  def add_atom(
    self,
    atom_name: str,
    residue_name: str,
    residue_number: str,
    chain_label: str,
    x: float,
    y: float,
    z: float,
    element: str | None = None,
  ) -> None:
    """Append one atom.

    Args:
      atom_name: Atom name, e.g. ``"CA"``.
      residue_name: Residue name, e.g. ``"ALA"``.
      residue_number: Residue number field, e.g. ``"42"`` or ``"42A"``.
      chain_label: One-character chain label.
      x: X coordinate in Angstrom.
      y: Y coordinate in Angstrom.
      z: Z coordinate in Angstrom.
      element: Element symbol; guessed from the atom name when omitted.

    Raises:
      IdentityError: If the chain label or residue number is invalid.

    """
    chain_id = parse_chain_label(chain_label)
    res_id, ins_code = parse_residue_field(residue_number)
    atom = structure.Atom(
      [x, y, z],
      chain_id=chain_id,
      res_id=res_id,
      ins_code=ins_code or "",
      res_name=residue_name.strip(),
      hetero=False,
      atom_name=atom_name.strip(),
      element=element if element is not None else _guess_element(atom_name),
    )
    self.add_atoms([atom])

  def add_atoms(self, atoms: Iterable[structure.Atom]) -> None:
    new = structure.array(list(atoms))
    for category in self.atom_array.get_annotation_categories():
      if category not in new.get_annotation_categories():
        new.add_annotation(category, dtype=self.atom_array.get_annotation(category).dtype)
    self.atom_array = self.atom_array + new if self.atom_array.array_length() else new
    if self.radii is not None:
      self.radii = None
      logger.warning("Per-atom radii of %s dropped after adding atoms.", self.name)

  # --- Queries ---

  @property
  def n_atoms(self) -> int:
    return self.atom_array.array_length()

  @property
  def chain_labels(self) -> list[str]:
    """Chain labels in order of first appearance."""
    labels: list[str] = []
    for chain_id in self.atom_array.chain_id:
      if chain_id not in labels:
        labels.append(str(chain_id))
    return labels

  @property
  def n_residues(self) -> int:
    return structure.get_residue_count(self.atom_array) if self.n_atoms else 0

  def without_residues(self, chain_label: str, residue_numbers: Iterable[int]) -> Structure:
    """Copy of this structure with the given residues of one chain removed."""
    numbers = np.asarray(sorted(set(residue_numbers)), dtype=int)
    remove = (self.atom_array.chain_id == chain_label) & np.isin(self.atom_array.res_id, numbers)
    logger.debug("Removing %d atoms from %s chain %s", int(remove.sum()), self.name, chain_label)
    radii = self.radii[~remove] if self.radii is not None else None
    return Structure(self.atom_array[~remove], name=self.name, model=self.model, radii=radii)

  # --- Calculation ---

  def calculate_sasa(
    self,
    parameters: CalculationParameters = DEFAULT_CALCULATION_PARAMETERS,
  ) -> SasaResult:
    from sasatree.native.engine import calculate  # noqa: PLC0415

    return calculate(self, parameters)

  def calculate_sasa_tree(
    self,
    depth: NodeKind = NodeKind.ATOM,
    parameters: CalculationParameters = DEFAULT_CALCULATION_PARAMETERS,
  ) -> Tree:
    """Compute areas and build the owned tree down to ``depth``."""
    from sasatree.builder import build_tree  # noqa: PLC0415
    from sasatree.native.engine import compute_tree  # noqa: PLC0415

    return build_tree(compute_tree(self, parameters), depth)

  def __repr__(self) -> str:
    return f"Structure({self.name!r}, model={self.model}, n_atoms={self.n_atoms})"


def _guess_element(atom_name: str) -> str:
  letters = [c for c in atom_name.strip() if c.isalpha()]
  return letters[0].upper() if letters else ""


def _structure_name(path: str | pathlib.Path | IO[str]) -> str:
  if isinstance(path, (str, pathlib.Path)):
    return pathlib.Path(path).name.split(".")[0]
  return str(getattr(path, "name", "Unnamed"))


def _read(path: str | pathlib.Path | IO[str], extra_fields: list[str]) -> AtomArrayStack:
  if isinstance(path, (str, pathlib.Path)):
    atoms = structure_io.load_structure(path, extra_fields=extra_fields)
  else:
    from biotite.structure.io.pdb import PDBFile  # noqa: PLC0415

    atoms = PDBFile.read(path).get_structure(extra_fields=extra_fields)
  if isinstance(atoms, AtomArray):
    atoms = structure.stack([atoms])
  return atoms


def _filter(atom_array: AtomArray, options: StructureOptions, radii: np.ndarray | None) -> tuple:
  keep = np.ones(atom_array.array_length(), dtype=bool)
  if not options.include_hetatm:
    keep &= ~atom_array.hetero
  if not options.include_hydrogen:
    keep &= ~np.isin(atom_array.element, _HYDROGENS)

  if options.skip_unknown or options.halt_at_unknown:
    known = np.array(
      [
        atom_radius(str(r), str(a), str(e)) > 0
        for r, a, e in zip(atom_array.res_name, atom_array.atom_name, atom_array.element)
      ],
      dtype=bool,
    )
    unknown = keep & ~known
    if unknown.any():
      if options.halt_at_unknown:
        i = int(np.flatnonzero(unknown)[0])
        msg = f"Unknown atom {atom_array.res_name[i]} {atom_array.atom_name[i]}."
        logger.error(msg)
        raise EngineError(msg)
      logger.warning("Skipping %d unknown atoms", int(unknown.sum()))
      keep &= known

  return atom_array[keep], (radii[keep] if radii is not None else None)


def load_structures(
  path: str | pathlib.Path | IO[str],
  options: StructureOptions | None = None,
  name: str | None = None,
) -> list[Structure]:
  """Load the structures a file yields under ``options``.

  Without ``join_models`` or ``separate_models`` only the first model is
  read. ``separate_models`` yields one structure per model and
  ``separate_chains`` one per chain (of each model).

  Args:
    path: File path, or a file-like object holding PDB text.
    options: Loading options; defaults to ``StructureOptions()``.
    name: Structure name; defaults to the file name up to the first dot.

  Returns:
    Structures in file order.

  """
  options = options if options is not None else StructureOptions()
  name = name if name is not None else _structure_name(path)
  extra_fields = ["occupancy"] if options.radius_from_occupancy else []

  stack = _read(path, extra_fields)
  n_models = stack.stack_depth()
  logger.info("Loaded %s: %d model(s), %d atoms per model", name, n_models, stack.array_length())

  models: list[tuple[int, AtomArray]]
  if options.join_models:
    models = [(1, functools.reduce(operator.add, (stack[i] for i in range(n_models))))]
  elif options.separate_models:
    models = [(i + 1, stack[i]) for i in range(n_models)]
  else:
    models = [(1, stack[0])]

  structures: list[Structure] = []
  for model, atom_array in models:
    radii = np.asarray(atom_array.occupancy, dtype=np.float64) if extra_fields else None
    atom_array, radii = _filter(atom_array, options, radii)
    if options.separate_chains:
      for chain_id in dict.fromkeys(atom_array.chain_id):
        mask = atom_array.chain_id == chain_id
        chain_radii = radii[mask] if radii is not None else None
        structures.append(Structure(atom_array[mask], name, model, chain_radii))
    else:
      structures.append(Structure(atom_array, name, model, radii))
  return structures
