"""Tests for structure loading and editing."""

import io

import numpy as np
import pytest
from biotite.structure import AtomArray

from sasatree.config import CalculationParameters, StructureOptions
from sasatree.core.errors import EngineError, InvalidChainLabelError, InvalidResidueNumberError
from sasatree.core.node import NodeKind
from sasatree.core.uids import AtomUID, ChainUID, ResidueUID
from sasatree.io.structure import Structure, load_structures
from sasatree.native.engine import SasaResult

SAMPLE_N_ATOMS = 23


def test_from_path_defaults(sample_pdb):
    """Hydrogens and HETATM records are dropped; the name is the file stem."""
    structure = Structure.from_path(sample_pdb)
    assert structure.name == "sample"
    assert structure.model == 1
    assert structure.n_atoms == SAMPLE_N_ATOMS
    assert structure.chain_labels == ["A", "B"]
    assert structure.n_residues == 5
    assert structure.radii is None
    assert "HOH" not in structure.atom_array.res_name
    assert "H" not in structure.atom_array.element


@pytest.mark.parametrize(
    "options, n_atoms",
    [
        (StructureOptions(include_hetatm=True), SAMPLE_N_ATOMS + 1),
        (StructureOptions(include_hydrogen=True), SAMPLE_N_ATOMS + 1),
        (StructureOptions(include_hetatm=True, include_hydrogen=True), SAMPLE_N_ATOMS + 2),
    ],
)
def test_from_path_filters(sample_pdb, options, n_atoms):
    assert Structure.from_path(sample_pdb, options).n_atoms == n_atoms


def test_from_file_object(sample_pdb):
    structure = Structure.from_path(io.StringIO(sample_pdb.read_text()), name="stream")
    assert structure.name == "stream"
    assert structure.n_atoms == SAMPLE_N_ATOMS


def test_separate_chains(sample_pdb):
    options = StructureOptions(separate_chains=True)
    structures = load_structures(sample_pdb, options)
    assert [s.chain_labels for s in structures] == [["A"], ["B"]]
    assert [s.n_atoms for s in structures] == [19, 4]
    assert all(s.name == "sample" for s in structures)
    with pytest.raises(ValueError, match="load_structures"):
        Structure.from_path(sample_pdb, options)


def test_models(multi_model_pdb):
    assert Structure.from_path(multi_model_pdb).n_atoms == SAMPLE_N_ATOMS

    separate = load_structures(multi_model_pdb, StructureOptions(separate_models=True))
    assert [s.model for s in separate] == [1, 2]
    assert not np.allclose(separate[0].atom_array.coord, separate[1].atom_array.coord)

    joined = Structure.from_path(multi_model_pdb, StructureOptions(join_models=True))
    assert joined.n_atoms == 2 * SAMPLE_N_ATOMS


def test_conflicting_options():
    with pytest.raises(ValueError, match="mutually exclusive"):
        StructureOptions(join_models=True, separate_models=True)
    with pytest.raises(ValueError, match="mutually exclusive"):
        StructureOptions(halt_at_unknown=True, skip_unknown=True)


def test_radius_from_occupancy(write_pdb):
    path = write_pdb("radii", [
        ("N", "GLY", "A", 1, 0.0, 0.0, 0.0, "N", " ", "ATOM", 1.65),
        ("CA", "GLY", "A", 1, 1.5, 0.0, 0.0, "C", " ", "ATOM", 1.87),
    ])

    structure = Structure.from_path(path, StructureOptions(radius_from_occupancy=True))
    np.testing.assert_allclose(structure.radii, [1.65, 1.87])
    assert structure.calculate_sasa().n_atoms == 2


@pytest.fixture
def unknown_atom_pdb(write_pdb):
    return write_pdb("unknown", [
        ("N", "GLY", "A", 1, 0.0, 0.0, 0.0, "N"),
        ("CA", "GLY", "A", 1, 1.5, 0.0, 0.0, "C"),
        ("X1", "UNK", "A", 2, 5.0, 0.0, 0.0, "XX"),
    ])


def test_halt_at_unknown(unknown_atom_pdb):
    with pytest.raises(EngineError, match="Unknown atom UNK X1"):
        Structure.from_path(unknown_atom_pdb, StructureOptions(halt_at_unknown=True))


def test_skip_unknown(unknown_atom_pdb):
    structure = Structure.from_path(unknown_atom_pdb, StructureOptions(skip_unknown=True))
    assert structure.n_atoms == 2


def test_without_residues(sample_pdb):
    """Residue 2 and its insertion residue 2A are removed; other chains are untouched."""
    structure = Structure.from_path(sample_pdb)
    truncated = structure.without_residues("A", [2])
    assert truncated.n_atoms == SAMPLE_N_ATOMS - 8
    assert truncated.name == structure.name
    assert structure.n_atoms == SAMPLE_N_ATOMS

    untouched = structure.without_residues("B", [2])
    assert untouched.n_atoms == SAMPLE_N_ATOMS


def test_built_structure():
    structure = Structure.empty("built")
    assert structure.n_atoms == 0
    structure.add_atom("N", "GLY", "10A", "A", 0.0, 0.0, 0.0)
    structure.add_atom("CA", "GLY", "10A", "A", 1.45, 0.0, 0.0)
    structure.add_atom("C", "GLY", "10A", "A", 2.0, 1.4, 0.0)
    assert structure.n_atoms == 3
    assert list(structure.atom_array.element) == ["N", "C", "C"]

    tree = structure.calculate_sasa_tree()
    residue = ResidueUID(ChainUID("A"), 10, "A")
    assert residue in tree
    assert AtomUID(residue, "CA") in tree
    assert tree.count(NodeKind.ATOM) == 3


def test_add_atom_validates_identity():
    structure = Structure.empty()
    with pytest.raises(InvalidChainLabelError):
        structure.add_atom("N", "GLY", "1", "AB", 0.0, 0.0, 0.0)
    with pytest.raises(InvalidResidueNumberError):
        structure.add_atom("N", "GLY", "x", "A", 0.0, 0.0, 0.0)
    assert structure.n_atoms == 0


def test_empty_structure_cannot_be_calculated():
    with pytest.raises(EngineError):
        Structure.empty().calculate_sasa()


def test_calculate_sasa(sample_pdb):
    structure = Structure.from_path(sample_pdb)
    result = structure.calculate_sasa(CalculationParameters(n_points=200))
    assert isinstance(result, SasaResult)
    assert result.parameters.n_points == 200
    assert result.n_atoms == SAMPLE_N_ATOMS


def test_calculate_sasa_tree_depth(sample_pdb):
    tree = Structure.from_path(sample_pdb).calculate_sasa_tree(NodeKind.RESIDUE)
    assert tree.count(NodeKind.ATOM) == 0
    assert tree.count(NodeKind.RESIDUE) == 5


def test_constructor_checks():
    with pytest.raises(TypeError):
        Structure([1, 2, 3])
    with pytest.raises(ValueError, match="radii"):
        Structure(AtomArray(2), radii=np.ones(3))


def test_invalid_parameters():
    with pytest.raises(ValueError, match="probe_radius"):
        CalculationParameters(probe_radius=-1.0)
    with pytest.raises(ValueError, match="n_points"):
        CalculationParameters(n_points=0)
