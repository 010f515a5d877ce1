"""Stable biological identities for tree nodes.

Identities are nested values: an ``AtomUID`` holds a complete ``ResidueUID``,
which holds a complete ``ChainUID``. Equality and hashing are structural, so two
trees built from different files agree on the key of "residue 10A of chain B"
no matter where that residue sits among its siblings.

Text rendering, used as keys in persisted reports:

- chain: ``A``
- residue: ``A:10`` or ``A:10B`` (insertion code appended)
- atom: ``A:10B:CA``
"""

from __future__ import annotations

import abc
import functools
import re
from dataclasses import dataclass
from typing import Union

from sasatree.core.errors import (
  InvalidAtomNameError,
  InvalidChainLabelError,
  InvalidResidueNumberError,
)


_RESIDUE_NUMBER = re.compile(r"[+-]?[0-9]+")
_INT32_MIN = -(2**31)
_INT32_MAX = 2**31 - 1


def parse_chain_label(raw: str) -> str:
  """Validate a chain label.

  Args:
    raw: Label as reported by the structure, not trimmed.

  Returns:
    The label, which is exactly one printable character.

  Raises:
    InvalidChainLabelError: If the label is not one printable character.

  """
  if not isinstance(raw, str) or len(raw) != 1 or not raw.isprintable():
    msg = f"Invalid chain label {raw!r}: expected exactly one printable character."
    raise InvalidChainLabelError(msg)
  return raw


def parse_residue_field(raw: str) -> tuple[int, str | None]:
  """Split a PDB-style residue number field into number and insertion code.

  The trimmed field's last character is an insertion code if and only if it
  is not a digit. What remains must be a signed 32-bit integer.

  Args:
    raw: Residue number field, e.g. ``"  42 "`` or ``"100A"``.

  Returns:
    Tuple of residue number and insertion code (``None`` when absent).

  Raises:
    InvalidResidueNumberError: If the number part does not parse.

  """
  if not isinstance(raw, str):
    msg = f"Invalid residue number {raw!r}: expected a string."
    raise InvalidResidueNumberError(msg)

  field = raw.strip()
  if not field:
    msg = f"Invalid residue number {raw!r}: field is empty."
    raise InvalidResidueNumberError(msg)

  insertion_code: str | None = None
  if not field[-1].isdigit():
    insertion_code = field[-1]
    field = field[:-1].rstrip()

  if not _RESIDUE_NUMBER.fullmatch(field):
    msg = f"Invalid residue number {raw!r}: {field!r} is not an integer."
    raise InvalidResidueNumberError(msg)

  number = int(field)
  if not _INT32_MIN <= number <= _INT32_MAX:
    msg = f"Invalid residue number {raw!r}: out of 32-bit range."
    raise InvalidResidueNumberError(msg)

  return number, insertion_code


def parse_atom_name(raw: str) -> str:
  """Trim an atom name, rejecting empty names."""
  name = raw.strip() if isinstance(raw, str) else ""
  if not name:
    msg = f"Invalid atom name {raw!r}: name is empty."
    raise InvalidAtomNameError(msg)
  return name


@functools.total_ordering
class _OrderedUID(abc.ABC):
  """Ordering by ``sort_key`` for deterministic iteration and printing."""

  @abc.abstractmethod
  def sort_key(self) -> tuple:
    """Tuple compared across all identity kinds."""

  def __lt__(self, other: object) -> bool:
    if not isinstance(other, _OrderedUID):
      return NotImplemented
    return self.sort_key() < other.sort_key()


@dataclass(frozen=True, eq=True)
class StructureUID(_OrderedUID):
  """Identity of a structure node: the structure name."""

  name: str

  def sort_key(self) -> tuple:
    return ("", self.name)

  def __str__(self) -> str:
    return self.name


@dataclass(frozen=True, eq=True)
class ChainUID(_OrderedUID):
  """Identity of a chain."""

  chain_id: str

  @classmethod
  def from_label(cls, raw: str) -> ChainUID:
    return cls(parse_chain_label(raw))

  def sort_key(self) -> tuple:
    return (self.chain_id,)

  def __str__(self) -> str:
    return self.chain_id


@dataclass(frozen=True, eq=True)
class ResidueUID(_OrderedUID):
  """Identity of a residue within a chain."""

  chain: ChainUID
  residue_number: int
  insertion_code: str | None = None

  @classmethod
  def from_field(cls, chain: ChainUID, raw: str) -> ResidueUID:
    """Build from a validated chain identity and a raw residue number field."""
    number, insertion_code = parse_residue_field(raw)
    return cls(chain, number, insertion_code)

  @property
  def chain_id(self) -> str:
    return self.chain.chain_id

  def sort_key(self) -> tuple:
    return (*self.chain.sort_key(), self.residue_number, self.insertion_code or "")

  def residue_field(self) -> str:
    """Residue number and insertion code as one string, e.g. ``10A``."""
    return f"{self.residue_number}{self.insertion_code or ''}"

  def __str__(self) -> str:
    return f"{self.chain}:{self.residue_field()}"


@dataclass(frozen=True, eq=True)
class AtomUID(_OrderedUID):
  """Identity of an atom within a residue."""

  residue: ResidueUID
  atom_name: str

  @classmethod
  def from_name(cls, residue: ResidueUID, raw: str) -> AtomUID:
    """Build from a validated residue identity and a raw atom name."""
    return cls(residue, parse_atom_name(raw))

  @property
  def chain(self) -> ChainUID:
    return self.residue.chain

  @property
  def chain_id(self) -> str:
    return self.residue.chain_id

  @property
  def residue_number(self) -> int:
    return self.residue.residue_number

  @property
  def insertion_code(self) -> str | None:
    return self.residue.insertion_code

  def sort_key(self) -> tuple:
    return (*self.residue.sort_key(), self.atom_name)

  def __str__(self) -> str:
    return f"{self.residue}:{self.atom_name}"


NodeUID = Union[StructureUID, ChainUID, ResidueUID, AtomUID]


def uid_from_string(text: str) -> ChainUID | ResidueUID | AtomUID:
  """Parse the text rendering of a chain, residue or atom identity.

  The chain label is always the first character, so a ``:`` chain label is
  still read back correctly.

  Raises:
    IdentityError: If any component is invalid.

  """
  if len(text) > 1 and text[1] != ":":
    msg = f"Invalid identity {text!r}: chain label must be one character."
    raise InvalidChainLabelError(msg)

  chain = ChainUID.from_label(text[:1])
  if len(text) == 1:
    return chain

  residue_field, sep, atom_name = text[2:].partition(":")
  residue = ResidueUID.from_field(chain, residue_field)
  if not sep:
    return residue
  return AtomUID.from_name(residue, atom_name)
