"""Atom classes and radii used to split surface area.

Classes follow the ProtOr scheme: nitrogen and oxygen are polar, carbon and
sulfur apolar, anything else unknown. Backbone membership is by atom name.
"""

from __future__ import annotations

import enum
import logging

import numpy as np
from biotite.structure import info

logger = logging.getLogger(__name__)

CLASSIFIER_NAME = "ProtOr"

MAINCHAIN_ATOMS = frozenset({"N", "CA", "C", "O", "OXT"})

_POLAR_ELEMENTS = frozenset({"N", "O"})
_APOLAR_ELEMENTS = frozenset({"C", "S", "SE"})


class AtomClass(enum.IntEnum):
  UNKNOWN = 0
  POLAR = 1
  APOLAR = 2


def classify_element(element: str) -> AtomClass:
  element = element.strip().upper()
  if element in _POLAR_ELEMENTS:
    return AtomClass.POLAR
  if element in _APOLAR_ELEMENTS:
    return AtomClass.APOLAR
  return AtomClass.UNKNOWN


def is_mainchain(atom_name: str) -> bool:
  return atom_name.strip() in MAINCHAIN_ATOMS


def atom_radius(res_name: str, atom_name: str, element: str, radii: str = "ProtOr") -> float:
  """Van der Waals radius of one atom in Angstrom, 0.0 when unknown.

  ProtOr radii fall back to the single-element radius for atoms outside the
  ProtOr tables, as biotite does.
  """
  radius = None
  if radii == "ProtOr":
    radius = info.vdw_radius_protor(res_name, atom_name)
  if radius is None:
    radius = info.vdw_radius_single(element)
  if radius is None:
    logger.debug("No radius for %s %s (%s)", res_name, atom_name, element)
    return 0.0
  return float(radius)


def classify(elements: np.ndarray, atom_names: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
  """Vectorized classes for a whole structure.

  Args:
    elements: Element symbols, shape (N,).
    atom_names: Atom names, shape (N,).

  Returns:
    Tuple of ``AtomClass`` codes (int8, shape (N,)) and a main-chain mask
    (bool, shape (N,)).

  """
  classes = np.fromiter(
    (classify_element(str(e)) for e in elements),
    dtype=np.int8,
    count=len(elements),
  )
  mainchain = np.isin(np.char.strip(np.asarray(atom_names, dtype=str)), list(MAINCHAIN_ATOMS))
  return classes, mainchain
