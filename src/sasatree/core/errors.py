"""Exception hierarchy for sasatree."""

from __future__ import annotations

# --- Base ---


class SasaTreeError(Exception):
  """Base class for all sasatree exceptions."""


# --- Identity parsing ---


class IdentityError(SasaTreeError, ValueError):
  """A chain, residue or atom identity could not be constructed."""


class InvalidChainLabelError(IdentityError):
  """Chain label is not exactly one printable character."""


class InvalidResidueNumberError(IdentityError):
  """Residue number field does not parse as an integer plus optional insertion code."""


class InvalidAtomNameError(IdentityError):
  """Atom name is empty once surrounding whitespace is removed."""


# --- Native tree ---


class NativeError(SasaTreeError):
  """Base class for failures at the native tree boundary."""


class NullNativeFieldError(NativeError):
  """A required native accessor returned the null sentinel."""


class NativeTreeConstructionError(NativeError):
  """The native tree is missing, already released, or malformed."""


class StructureOrResultNullError(NativeError):
  """A tree was requested from a missing structure or result."""


class JoinError(NativeError):
  """The native join failed; both trees are left with the caller."""

  def __init__(self, msg: str, code: int | None = None) -> None:
    """Store the native status code next to the message."""
    super().__init__(msg)
    self.code = code


# --- Engine ---


class EngineError(SasaTreeError):
  """The geometry engine could not compute areas for a structure."""
