"""Shared test fixtures."""

from functools import partial
from pathlib import Path

import pytest

from sasatree.chem.classifier import MAINCHAIN_ATOMS
from sasatree.native.engine import AreaRecord, NodeArena
from sasatree.native.handle import NativeTree
from sasatree.native.protocol import NativeKind


def pdb_atom_line(serial, name, res_name, chain, res_seq, x, y, z, element,
                  icode=" ", record="ATOM", occupancy=1.0):
    """Format one fixed-column PDB ATOM/HETATM record."""
    name_field = f" {name:<3}" if len(name) < 4 else name
    return (
        f"{record:<6}{serial:>5} {name_field} {res_name:>3} {chain}{res_seq:>4}{icode}   "
        f"{x:8.3f}{y:8.3f}{z:8.3f}{occupancy:6.2f}{0.0:6.2f}          {element:>2}  "
    )


# (chain, res_seq, icode, res_name, atom names); atoms are laid out along x.
_RESIDUES = [
    ("A", 1, " ", "ALA", ["N", "CA", "C", "O", "CB"]),
    ("A", 2, " ", "GLY", ["N", "CA", "C", "O"]),
    ("A", 2, "A", "GLY", ["N", "CA", "C", "O"]),
    ("A", 3, " ", "ALA", ["N", "CA", "C", "O", "CB", "OXT"]),
    ("B", 1, " ", "GLY", ["N", "CA", "C", "O"]),
]

SAMPLE_N_ATOMS = 23


def _sample_lines(y_offset=0.0):
    lines = []
    serial = 1
    position = {"A": 0, "B": 0}
    for chain, res_seq, icode, res_name, names in _RESIDUES:
        y = y_offset + (0.0 if chain == "A" else 12.0)
        for name in names:
            k = position[chain]
            position[chain] += 1
            x = 1.5 * k
            lines.append(pdb_atom_line(serial, name, res_name, chain, res_seq,
                                       x, y + 0.4 * (k % 2), 0.0, name[0], icode=icode))
            serial += 1
    return lines, serial


def sample_pdb_text():
    """Two chains, an insertion code, one hydrogen and one water."""
    lines, serial = _sample_lines()
    lines.insert(1, pdb_atom_line(serial, "H", "ALA", "A", 1, -0.8, 0.8, 0.0, "H"))
    # Water closes chain A, before chain B starts.
    lines.insert(20, pdb_atom_line(serial + 1, "O", "HOH", "A", 100, 0.0, -8.0, 0.0, "O",
                                   record="HETATM"))
    return "\n".join([*lines, "END"]) + "\n"


def multi_model_pdb_text():
    """The protein atoms of the sample, twice, as two models."""
    blocks = []
    for model in (1, 2):
        lines, _ = _sample_lines(y_offset=30.0 * (model - 1))
        blocks.extend([f"MODEL     {model:>4}", *lines, "ENDMDL"])
    return "\n".join([*blocks, "END"]) + "\n"


@pytest.fixture
def sample_pdb(tmp_path) -> Path:
    """Path to the sample structure, named ``sample``."""
    path = tmp_path / "sample.pdb"
    path.write_text(sample_pdb_text())
    return path


@pytest.fixture
def multi_model_pdb(tmp_path) -> Path:
    path = tmp_path / "models.pdb"
    path.write_text(multi_model_pdb_text())
    return path


# --- Hand-built native trees ---


def atom_area(atom_name, total):
    """Split ``total`` into components the way the ProtOr classifier would."""
    name = atom_name.strip()
    main = name in MAINCHAIN_ATOMS
    polar = name[:1] in ("N", "O")
    return AreaRecord(
        total=total,
        main_chain=total if main else 0.0,
        side_chain=0.0 if main else total,
        polar=total if polar else 0.0,
        apolar=0.0 if polar else total,
    )


def sum_areas(records):
    return AreaRecord(*(sum(values) for values in zip(*records)))


def build_native(arena, chains, name="test", model=1, as_bytes=False, pdb_line=None):
    """Lay out ``{chain: {residue field: {atom name: area}}}`` as a native tree.

    Keys are passed to the native nodes verbatim, so ``"10"`` and ``" 10"``
    make two native residues with the same identity.
    """
    def text(value):
        return value.encode() if as_bytes and isinstance(value, str) else value

    residue_areas = {
        label: {number: {a: atom_area(a, t) for a, t in atoms.items()}
                for number, atoms in residues.items()}
        for label, residues in chains.items()
    }
    chain_totals = {
        label: sum_areas([sum_areas(atoms.values()) for atoms in residues.values()])
        for label, residues in residue_areas.items()
    }
    n_atoms = sum(len(atoms) for residues in chains.values() for atoms in residues.values())

    root = arena.new_node(NativeKind.ROOT)
    result = arena.new_node(NativeKind.RESULT, name="ProtOr", parent=root,
                            classified_by=text("ProtOr"))
    structure = arena.new_node(
        NativeKind.STRUCTURE, name=text(name), parent=result,
        area=sum_areas(chain_totals.values()), model=model, n_atoms=n_atoms,
        chain_labels=text("".join(chains)),
    )
    for label, residues in residue_areas.items():
        chain = arena.new_node(NativeKind.CHAIN, name=text(label), parent=structure,
                               area=chain_totals[label], n_residues=len(residues))
        for number, atoms in residues.items():
            residue = arena.new_node(
                NativeKind.RESIDUE, name=text("ALA"), parent=chain,
                area=sum_areas(atoms.values()), number=text(number), n_atoms=len(atoms),
            )
            for atom_name, record in atoms.items():
                arena.new_node(
                    NativeKind.ATOM, name=text(atom_name), parent=residue, area=record,
                    is_polar=record.polar > 0,
                    is_mainchain=atom_name.strip() in MAINCHAIN_ATOMS,
                    radius=1.7,
                    pdb_line=pdb_line if pdb_line is not None else text(f"ATOM {atom_name}"),
                )
    return NativeTree(arena, root)


@pytest.fixture
def arena() -> NodeArena:
    """A private handle table, so tests can check that everything was released."""
    return NodeArena()


@pytest.fixture
def native_factory(arena):
    """Returns a function building native trees in ``arena``."""
    return partial(build_native, arena)


@pytest.fixture
def small_chains():
    """Chain A with residues 1, 2 and 2A; chain B with residue 1."""
    return {
        "A": {
            "   1": {"N": 10.0, "CA": 5.0, "CB": 20.0},
            "   2": {"N": 3.0, "CA": 1.0},
            "   2A": {"N": 4.0, "O": 6.0},
        },
        "B": {
            "   1": {"N": 7.0, "CA": 2.0},
        },
    }


@pytest.fixture
def write_pdb(tmp_path):
    """Returns a function writing ``pdb_atom_line`` argument tuples to a PDB file."""
    def _write(name, rows, **common):
        lines = [pdb_atom_line(i + 1, *row, **common) for i, row in enumerate(rows)]
        path = tmp_path / f"{name}.pdb"
        path.write_text("\n".join([*lines, "END"]) + "\n")
        return path

    return _write
