"""Tests for identity-based tree comparison."""

import logging
from unittest import mock

import pytest

from sasatree.builder import build_tree
from sasatree.compare import compare, compare_residues, delta, residue_deltas
from sasatree.config import StructureOptions
from sasatree.core.area import NodeArea
from sasatree.core.node import Node, NodeKind, ResidueProperties
from sasatree.core.uids import ChainUID, ResidueUID
from sasatree.io.structure import Structure
from sasatree.native.engine import NodeArena, compute_tree

X = ChainUID("X")


def _chain(areas):
    """One chain ``X`` with one N atom per residue field."""
    return {"X": {field: {"N": total} for field, total in areas.items()}}


@pytest.mark.parametrize("kind", [NodeKind.CHAIN, NodeKind.RESIDUE, NodeKind.ATOM])
def test_self_difference_is_empty(native_factory, small_chains, kind):
    tree = build_tree(native_factory(small_chains))
    assert compare(tree, tree, kind, delta, lambda d: abs(d.total) > 1e-9) == []


def test_matching_is_by_identity_not_position(native_factory):
    """Residue 3 of A pairs with residue 3 of B, not with B's second slot."""
    tree_a = build_tree(native_factory(_chain({"1": 10.0, "2": 20.0, "3": 30.0, "4": 40.0})))
    tree_b = build_tree(native_factory(_chain({"1": 11.0, "3": 33.0, "4": 44.0})))

    result = compare(tree_a, tree_b, NodeKind.RESIDUE, delta, lambda _: True)

    assert [node.uid for node in result] == [
        ResidueUID(X, 1), ResidueUID(X, 3), ResidueUID(X, 4)
    ]
    assert [node.area.total for node in result] == pytest.approx([1.0, 3.0, 4.0])
    assert all(node.kind is NodeKind.RESIDUE for node in result)


def test_matching_ignores_sibling_order(native_factory):
    tree_a = build_tree(native_factory(_chain({"1": 1.0, "2": 2.0})))
    tree_b = build_tree(native_factory(_chain({"2": 5.0, "1": 1.5})))
    result = compare(tree_a, tree_b, NodeKind.RESIDUE, delta, lambda _: True)
    assert {str(node.uid): node.area.total for node in result} == {"X:1": 0.5, "X:2": 3.0}


def test_insertion_codes_do_not_collide(native_factory):
    tree_a = build_tree(native_factory(_chain({"10": 1.0, "10A": 2.0})))
    tree_b = build_tree(native_factory(_chain({"10": 4.0, "10A": 8.0})))
    result = compare(tree_a, tree_b, NodeKind.RESIDUE, delta, lambda _: True)
    assert {str(node.uid): node.area.total for node in result} == {"X:10": 3.0, "X:10A": 6.0}


def test_predicate_and_operation(native_factory):
    tree_a = build_tree(native_factory(_chain({"1": 1.0, "2": 2.0})))
    tree_b = build_tree(native_factory(_chain({"1": 1.0, "2": 5.0})))
    summed = compare(tree_a, tree_b, NodeKind.RESIDUE, lambda a, b: a + b, lambda d: d.total > 5)
    assert [str(node.uid) for node in summed] == ["X:2"]
    assert summed[0].area.total == 7.0


def test_atom_level_components(native_factory):
    tree_a = build_tree(native_factory(_chain({"1": 2.0})))
    tree_b = build_tree(native_factory(_chain({"1": 5.0})))
    (node,) = compare(tree_a, tree_b, NodeKind.ATOM, delta, lambda _: True)
    assert str(node.uid) == "X:1:N"
    assert node.area == NodeArea(total=3.0, main_chain=3.0, polar=3.0)


def test_properties_come_from_first_tree(native_factory):
    tree_a = build_tree(native_factory(_chain({"1": 2.0})))
    tree_b = build_tree(native_factory(_chain({"1": 5.0})))
    (node,) = compare_residues(tree_a, tree_b)
    assert node.properties == ResidueProperties("ALA", 1)


def test_kinds_without_area_yield_nothing(native_factory, small_chains):
    tree = build_tree(native_factory(small_chains))
    assert compare(tree, tree, NodeKind.ROOT, delta, lambda _: True) == []
    assert compare(tree, tree, NodeKind.RESULT, delta, lambda _: True) == []


def test_structure_level(native_factory, small_chains):
    tree_a = build_tree(native_factory(small_chains, name="s"))
    tree_b = build_tree(native_factory(small_chains, name="s"))
    (node,) = compare(tree_a, tree_b, NodeKind.STRUCTURE, delta, lambda _: True)
    assert node.area == NodeArea()


def test_kind_not_materialized(native_factory, small_chains, caplog):
    tree_a = build_tree(native_factory(small_chains))
    tree_b = build_tree(native_factory(small_chains), NodeKind.RESIDUE)
    with caplog.at_level(logging.WARNING):
        assert compare(tree_a, tree_b, NodeKind.ATOM, delta, lambda _: True) == []
    assert "built deep enough" in caplog.text


# Hand-built residue areas for chain X: the variant lacks residues 147-156
# and its neighbours gain the amounts below.
_FULL = {str(number): 50.0 + number / 8.0 for number in range(140, 161)}
_EXPOSED = {
    "145": 0.5103,
    "146": 12.3456,
    "157": 7.0312,
    "158": 1.2589,
}
_VARIANT = {
    field: total + _EXPOSED.get(field, 0.0)
    for field, total in _FULL.items()
    if not 147 <= int(field) <= 156
}


def test_truncation_regression(write_pdb):
    """Deleting X2 and X11 fully exposes the atoms they enclosed.

    The accessible spheres of X1 and X10 lie wholly inside those of the larger
    atoms 0.2 A away, so every surface point is buried in the full structure
    and every point is free once the larger atom is gone. The delta is then
    the whole accessible sphere, 4 pi (r + 1.4)^2, for r = 1.5 and r = 1.8.
    """
    path = write_pdb("enclosed", [
        ("N", "ALA", "X", 1, 0.0, 0.0, 0.0, "N", " ", "ATOM", 1.5),
        ("CA", "GLY", "X", 2, 0.2, 0.0, 0.0, "C", " ", "ATOM", 2.0),
        ("CA", "GLY", "X", 3, 0.0, 20.0, 0.0, "C", " ", "ATOM", 1.6),
        ("N", "ALA", "X", 10, 30.0, 0.0, 0.0, "N", " ", "ATOM", 1.8),
        ("CA", "GLY", "X", 11, 30.2, 0.0, 0.0, "C", " ", "ATOM", 2.2),
        ("CA", "GLY", "X", 12, 30.0, 20.0, 0.0, "C", " ", "ATOM", 1.6),
    ])
    full = Structure.from_path(path, StructureOptions(radius_from_occupancy=True))
    truncated = full.without_residues("X", [2, 11])

    full_tree = build_tree(compute_tree(full, arena=NodeArena()), NodeKind.RESIDUE)
    truncated_tree = build_tree(compute_tree(truncated, arena=NodeArena()), NodeKind.RESIDUE)
    deltas = residue_deltas(compare_residues(full_tree, truncated_tree))

    assert full_tree.get(ResidueUID(X, 1)).area.total == 0.0
    assert set(deltas) == {"1", "10"}
    assert deltas["1"] == pytest.approx(105.6832, abs=1e-4)
    assert deltas["10"] == pytest.approx(128.6796, abs=1e-4)


def test_compare_follows_first_tree_order(native_factory):
    """Results come out in the order tree_a holds them; nothing is sorted."""
    tree_a = build_tree(native_factory(_chain({"3": 3.0, "1": 1.0, "2": 2.0})))
    tree_b = build_tree(native_factory(_chain({"1": 2.0, "2": 4.0, "3": 6.0})))
    with mock.patch("sasatree.core.tree.sorted", side_effect=AssertionError, create=True):
        result = compare(tree_a, tree_b, NodeKind.RESIDUE, delta, lambda _: True)
    assert [str(node.uid) for node in result] == ["X:3", "X:1", "X:2"]


def test_threshold(native_factory):
    full = build_tree(native_factory(_chain(_FULL)), NodeKind.RESIDUE)
    variant = build_tree(native_factory(_chain(_VARIANT)), NodeKind.RESIDUE)
    deltas = residue_deltas(compare_residues(full, variant, threshold=1.0))
    assert set(deltas) == {"146", "157", "158"}


def test_residue_deltas_rejects_mixed_chains():
    nodes = [
        Node(NodeKind.RESIDUE, ResidueUID(ChainUID("A"), 1), NodeArea(total=1.0)),
        Node(NodeKind.RESIDUE, ResidueUID(ChainUID("B"), 1), NodeArea(total=1.0)),
    ]
    with pytest.raises(ValueError, match="ambiguous"):
        residue_deltas(nodes)


def test_residue_deltas_keeps_insertion_codes():
    nodes = [
        Node(NodeKind.RESIDUE, ResidueUID(X, 10), NodeArea(total=1.0)),
        Node(NodeKind.RESIDUE, ResidueUID(X, 10, "A"), NodeArea(total=2.0)),
    ]
    assert residue_deltas(nodes) == {"10": 1.0, "10A": 2.0}


def test_removing_residues_exposes_neighbours(sample_pdb):
    """End to end: deleting residue 2 of chain A exposes residue 1."""
    structure = Structure.from_path(sample_pdb)
    truncated = structure.without_residues("A", [2])
    full_tree = build_tree(compute_tree(structure, arena=NodeArena()), NodeKind.RESIDUE)
    truncated_tree = build_tree(compute_tree(truncated, arena=NodeArena()), NodeKind.RESIDUE)

    result = compare_residues(full_tree, truncated_tree)

    uids = {node.uid for node in result}
    assert ResidueUID(ChainUID("A"), 1) in uids
    assert not any(uid.residue_number == 2 for uid in uids)
    assert all(node.area.total > 0 for node in result)
