"""sasatree: identity-keyed solvent accessible surface area trees.

Areas are computed per atom, laid out as a native result tree, converted once
into an owned ``Tree`` keyed by chain, residue and atom identity, and compared
across structures by identity rather than by position.
"""

from sasatree.builder import build_tree
from sasatree.compare import compare, compare_residues, delta, residue_deltas
from sasatree.config import (
  BuildOptions,
  CalculationParameters,
  MultiModelPolicy,
  StructureOptions,
)
from sasatree.core.area import NodeArea
from sasatree.core.errors import (
  EngineError,
  IdentityError,
  InvalidAtomNameError,
  InvalidChainLabelError,
  InvalidResidueNumberError,
  JoinError,
  NativeError,
  NativeTreeConstructionError,
  NullNativeFieldError,
  SasaTreeError,
  StructureOrResultNullError,
)
from sasatree.core.node import Node, NodeKind
from sasatree.core.tree import Tree
from sasatree.core.uids import AtomUID, ChainUID, ResidueUID, StructureUID, uid_from_string
from sasatree.io.report import read_report, write_report
from sasatree.io.structure import Structure, load_structures
from sasatree.native.engine import SasaResult, calculate, compute_tree, tree_init
from sasatree.native.handle import NativeTree, join

__all__ = [
  # Identities and nodes
  "AtomUID",
  "ChainUID",
  "ResidueUID",
  "StructureUID",
  "uid_from_string",
  "Node",
  "NodeArea",
  "NodeKind",
  "Tree",
  # Building and comparing
  "build_tree",
  "compare",
  "compare_residues",
  "delta",
  "residue_deltas",
  # Native trees
  "NativeTree",
  "join",
  "SasaResult",
  "calculate",
  "compute_tree",
  "tree_init",
  # Structures and reports
  "Structure",
  "load_structures",
  "read_report",
  "write_report",
  # Configuration
  "BuildOptions",
  "CalculationParameters",
  "MultiModelPolicy",
  "StructureOptions",
  # Errors
  "EngineError",
  "IdentityError",
  "InvalidAtomNameError",
  "InvalidChainLabelError",
  "InvalidResidueNumberError",
  "JoinError",
  "NativeError",
  "NativeTreeConstructionError",
  "NullNativeFieldError",
  "SasaTreeError",
  "StructureOrResultNullError",
]
