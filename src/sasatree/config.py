"""Configuration for area calculation, structure loading and tree building."""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Literal


@dataclass(frozen=True)
class CalculationParameters:
  """Parameters of the Shrake-Rupley surface area calculation.

  Attributes:
    probe_radius: Solvent probe radius in Angstrom.
    n_points: Number of sphere points per atom.
    point_distribution: Sphere point distribution passed to biotite.
    radii: Radius set; "ProtOr" or "Single".
    ignore_ions: Exclude ions from the calculation.

  """

  probe_radius: float = 1.4
  n_points: int = 1000
  point_distribution: Literal["Fibonacci"] = "Fibonacci"
  radii: Literal["ProtOr", "Single"] = "ProtOr"
  ignore_ions: bool = True

  def __post_init__(self) -> None:
    if self.probe_radius < 0:
      msg = f"probe_radius must be non-negative, got {self.probe_radius}."
      raise ValueError(msg)
    if self.n_points <= 0:
      msg = f"n_points must be positive, got {self.n_points}."
      raise ValueError(msg)


DEFAULT_CALCULATION_PARAMETERS = CalculationParameters()


@dataclass(frozen=True)
class StructureOptions:
  """Options applied when loading a structure file.

  Attributes:
    include_hetatm: Keep HETATM records.
    include_hydrogen: Keep hydrogen atoms.
    separate_models: Load each model as its own structure.
    separate_chains: Load each chain as its own structure.
    join_models: Merge all models into one structure.
    halt_at_unknown: Fail on atoms the classifier does not know.
    skip_unknown: Drop atoms the classifier does not know.
    radius_from_occupancy: Read atomic radii from the occupancy column.

  """

  include_hetatm: bool = False
  include_hydrogen: bool = False
  separate_models: bool = False
  separate_chains: bool = False
  join_models: bool = False
  halt_at_unknown: bool = False
  skip_unknown: bool = False
  radius_from_occupancy: bool = False

  def __post_init__(self) -> None:
    if self.join_models and self.separate_models:
      msg = "join_models and separate_models are mutually exclusive."
      raise ValueError(msg)
    if self.halt_at_unknown and self.skip_unknown:
      msg = "halt_at_unknown and skip_unknown are mutually exclusive."
      raise ValueError(msg)


class MultiModelPolicy(enum.Enum):
  """What ``build_tree`` does with more than one structure in a native tree."""

  MERGE = "merge"  # fold every structure into the first
  FIRST = "first"  # build the first structure, report the rest
  ERROR = "error"


@dataclass(frozen=True)
class BuildOptions:
  """Guards for walking a native tree that may be malformed.

  Attributes:
    max_depth: Deepest nesting accepted below the first visited node.
    max_siblings: Longest sibling run accepted at one level.
    multi_model: Policy for native trees holding several structures.

  """

  max_depth: int = 16
  max_siblings: int = 1_000_000
  multi_model: MultiModelPolicy = MultiModelPolicy.MERGE


DEFAULT_BUILD_OPTIONS = BuildOptions()
