"""Tests for hierarchical node identifiers."""

from __future__ import annotations

import pytest

from proofledger.proof.errors import InvalidNodeIDError
from proofledger.proof.nodeid import NodeID, format_node_id, parse_node_id


@pytest.mark.parametrize("text", ["1", "1.2", "1.2.3", "1.10.4"])
def test_parse_format_preserves_text(text: str) -> None:
    assert str(NodeID.parse(text)) == text


@pytest.mark.parametrize(
    "text",
    ["", " ", "0", "2", "2.1", "1.", ".1", "1..2", "1.0", "1.-1", "1.a", "1. 2", "a", "1.2.", "１"],
)
def test_parse_rejects_malformed(text: str) -> None:
    with pytest.raises(InvalidNodeIDError):
        NodeID.parse(text)


@pytest.mark.parametrize("text", ["01", "1.01", "1.2.007", "1.00"])
def test_parse_rejects_leading_zeros(text: str) -> None:
    with pytest.raises(InvalidNodeIDError, match="leading zero"):
        NodeID.parse(text)


def test_invalid_node_id_is_value_error() -> None:
    with pytest.raises(ValueError):
        NodeID.parse("1..2")


def test_structure() -> None:
    root = NodeID.root()
    assert root.is_root
    assert root.depth == 1
    assert root.parent() is None

    child = root.child(3)
    assert str(child) == "1.3"
    assert child.depth == 2
    assert not child.is_root
    assert child.parent() == root
    assert root.is_ancestor_of(child.child(1))
    assert not child.is_ancestor_of(child)


def test_child_rejects_nonpositive_segment() -> None:
    with pytest.raises(InvalidNodeIDError):
        NodeID.root().child(0)


def test_ordering_is_numeric_per_segment() -> None:
    ids = [NodeID.parse(t) for t in ["1.10", "1.2", "1", "1.2.1"]]
    assert [str(i) for i in sorted(ids)] == ["1", "1.2", "1.2.1", "1.10"]


def test_hashable_and_equal_by_value() -> None:
    assert {NodeID.parse("1.2"), NodeID.parse("1.2")} == {NodeID((1, 2))}


def test_parse_node_id_accepts_both_forms() -> None:
    node_id = NodeID.parse("1.4")
    assert parse_node_id(node_id) is node_id
    assert parse_node_id("1.4") == node_id
    assert format_node_id(node_id) == "1.4"
