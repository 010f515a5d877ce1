"""Single-ownership handle on a native tree, and joining of native trees."""

from __future__ import annotations

import logging
from types import TracebackType

from sasatree.core.errors import JoinError, NativeTreeConstructionError
from sasatree.native.protocol import NULL, NativeHandle, NativeKind, NativeTreeAPI, StatusCode

logger = logging.getLogger(__name__)


class NativeTree:
  """Owns the root handle of a native tree and releases it exactly once.

  The handle is cleared the moment ownership ends (release, or a join into
  another tree), so a second ``release`` is a no-op rather than a double free.
  Use as a context manager to release on every exit path.

  Args:
    api: Engine exposing the traversal contract.
    root: Root handle returned by the engine.

  Raises:
    NativeTreeConstructionError: If ``root`` is the null sentinel.

  """

  def __init__(self, api: NativeTreeAPI, root: NativeHandle) -> None:
    if root == NULL:
      msg = "Failed to create NativeTree: the engine returned a null root."
      logger.error(msg)
      raise NativeTreeConstructionError(msg)
    self.api = api
    self._root: NativeHandle | None = root

  @property
  def root(self) -> NativeHandle:
    """The live root handle.

    Raises:
      NativeTreeConstructionError: If the tree was released or joined away.

    """
    if self._root is None:
      msg = "NativeTree handle is no longer valid (released or joined into another tree)."
      raise NativeTreeConstructionError(msg)
    return self._root

  @property
  def is_valid(self) -> bool:
    return self._root is not None

  def release(self) -> None:
    """Free the native tree. Safe to call more than once."""
    root, self._root = self._root, None
    if root is not None:
      logger.debug("Releasing native tree %d", root)
      self.api.release_tree(root)

  def join(self, donor: NativeTree) -> None:
    """Move every subtree of ``donor`` under this tree's root.

    On success (or a native warning) ``donor`` is invalidated and must not be
    released; its nodes now belong to this tree. On failure ``donor`` is left
    intact and the caller still owns it.

    Raises:
      JoinError: If the engine reports failure.

    """
    if donor is self:
      msg = "Cannot join a native tree into itself."
      raise JoinError(msg)
    if donor.api is not self.api:
      msg = "Cannot join native trees owned by different engines."
      raise JoinError(msg)

    code = StatusCode(self.api.join_trees(self.root, donor.root))
    if code is StatusCode.FAIL:
      msg = "An error occurred whilst joining native result trees."
      logger.error(msg)
      raise JoinError(msg, code=int(code))

    donor._root = None
    if code is StatusCode.WARN:
      logger.warning("A warning occurred when joining native result trees.")

  def kind(self) -> NativeKind:
    return NativeKind(self.api.kind_of(self.root))

  def __enter__(self) -> NativeTree:
    return self

  def __exit__(
    self,
    exc_type: type[BaseException] | None,
    exc: BaseException | None,
    tb: TracebackType | None,
  ) -> None:
    self.release()

  def __del__(self) -> None:
    if getattr(self, "_root", None) is not None:
      logger.warning("NativeTree %d was never released; releasing on collection.", self._root)
      self.release()

  def __repr__(self) -> str:
    state = "released" if self._root is None else f"root={self._root}"
    return f"NativeTree({state})"


def join(primary: NativeTree, donor: NativeTree) -> None:
  """Merge ``donor`` into ``primary``. See ``NativeTree.join``."""
  primary.join(donor)
