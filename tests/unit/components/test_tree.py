"""
Unit tests for the tree mutation layer.

Covers node creation defaults, insertion (including splitter splice-in),
removal with splice-through, field updates with derived values, splitter
conversion, and the no-op contract for stale references.
"""

import copy

import pytest

from ponbudget.config import LossDefaults
from ponbudget.dom import LengthUnit, Node, NodeKind, find_node
from ponbudget.tree import (
    ROOT_ID,
    convert_splitter,
    create_node,
    create_root,
    insert,
    remove,
    resize_branches,
    update,
)


def leaf(node_id: str, kind: NodeKind = NodeKind.CONNECTOR) -> Node:
    return Node(id=node_id, kind=kind, label=node_id)


def chain(*nodes: Node) -> Node:
    return Node(id=ROOT_ID, kind=NodeKind.SOURCE, branches=[list(nodes)])


def ids(branch: list[Node]) -> list[str]:
    return [node.id for node in branch]


def balanced(node_id: str, ratio: str, branches: list[list[Node]]) -> Node:
    return Node(id=node_id, kind=NodeKind.BALANCED_SPLITTER, split_ratio=ratio,
                own_loss=0.0, branches=branches)


class TestCreateNode:
    def setup_method(self):
        self.defaults = LossDefaults(
            fiber_attenuation=0.4,
            connector_loss=0.3,
            splice_loss=0.1,
            terminal_loss=0.0,
            splitter_extra_loss=0.5,
        )

    def test_ids_are_unique(self):
        a = create_node(NodeKind.CONNECTOR, self.defaults)
        b = create_node(NodeKind.CONNECTOR, self.defaults)
        assert a.id != b.id

    def test_fiber_defaults(self):
        node = create_node(NodeKind.FIBER_SPAN, self.defaults)
        assert node.length_value == 1.0
        assert node.length_unit is LengthUnit.KILOMETERS
        assert node.attenuation_coefficient == 0.4
        assert node.own_loss == pytest.approx(0.4)
        assert node.branches == []

    def test_balanced_splitter_defaults(self):
        node = create_node(NodeKind.BALANCED_SPLITTER, self.defaults)
        assert node.split_ratio == "1:2"
        assert node.own_loss == pytest.approx(3.5 + 0.5)
        assert node.branches == [[], []]

    def test_unbalanced_splitter_defaults(self):
        node = create_node(NodeKind.UNBALANCED_SPLITTER, self.defaults)
        assert node.split_ratio == "10/90"
        assert node.own_loss == pytest.approx(0.5)
        assert node.drop_loss_override == 11.0
        assert node.pass_loss_override == 1.1
        assert node.branches == [[], []]

    def test_connector_and_splice_defaults(self):
        assert create_node(NodeKind.CONNECTOR, self.defaults).own_loss == 0.3
        assert create_node(NodeKind.SPLICE, self.defaults).own_loss == 0.1

    def test_terminal_is_leaf(self):
        node = create_node(NodeKind.TERMINAL, self.defaults)
        assert node.own_loss == 0.0
        assert node.branches == []

    def test_label_override(self):
        assert create_node(NodeKind.TERMINAL, self.defaults, label="ONU 7").label == "ONU 7"

    def test_uses_configured_defaults_when_none_given(self):
        assert create_node(NodeKind.CONNECTOR).own_loss == LossDefaults().connector_loss

    def test_create_root(self):
        root = create_root()
        assert root.id == ROOT_ID
        assert root.kind is NodeKind.SOURCE
        assert root.branches == [[]]


class TestInsert:
    def test_append_to_branch(self):
        tree = chain(leaf("a"))
        result = insert(tree, ROOT_ID, 0, leaf("b"))
        assert ids(result.branches[0]) == ["a", "b"]

    def test_insert_at_position_shifts_right(self):
        tree = chain(leaf("a"), leaf("c"))
        result = insert(tree, ROOT_ID, 0, leaf("b"), at_index=1)
        assert ids(result.branches[0]) == ["a", "b", "c"]

    def test_position_past_end_appends(self):
        tree = chain(leaf("a"))
        result = insert(tree, ROOT_ID, 0, leaf("b"), at_index=5)
        assert ids(result.branches[0]) == ["a", "b"]

    def test_insert_into_nested_branch(self):
        tree = chain(balanced("s", "1:2", [[], [leaf("x")]]))
        result = insert(tree, "s", 1, leaf("y"), at_index=0)
        assert ids(find_node(result, "s").branches[1]) == ["y", "x"]

    def test_splitter_takes_downstream_content(self):
        tree = chain(leaf("a"), leaf("b"), leaf("c"))
        splitter = balanced("s", "1:2", [[], []])
        result = insert(tree, ROOT_ID, 0, splitter, at_index=1)

        assert ids(result.branches[0]) == ["a", "s"]
        inserted = result.branches[0][1]
        assert ids(inserted.branches[0]) == ["b", "c"]
        assert inserted.branches[1] == []

    def test_splitter_appended_at_end_keeps_empty_branches(self):
        tree = chain(leaf("a"))
        result = insert(tree, ROOT_ID, 0, balanced("s", "1:2", [[], []]), at_index=1)
        assert ids(result.branches[0]) == ["a", "s"]
        assert result.branches[0][1].branches == [[], []]

    def test_does_not_mutate_input(self):
        tree = chain(leaf("a"), leaf("b"))
        before = copy.deepcopy(tree)
        insert(tree, ROOT_ID, 0, balanced("s", "1:2", [[], []]), at_index=0)
        assert tree == before

    def test_untouched_subtrees_are_shared(self):
        left = balanced("s1", "1:2", [[leaf("x")], []])
        tree = chain(left, balanced("s2", "1:2", [[], []]))
        result = insert(tree, "s2", 0, leaf("y"))
        assert result.branches[0][0] is left

    def test_unknown_parent_is_noop(self):
        tree = chain(leaf("a"))
        assert insert(tree, "ghost", 0, leaf("b")) is tree

    def test_branch_index_out_of_range_is_noop(self):
        tree = chain(leaf("a"))
        assert insert(tree, ROOT_ID, 3, leaf("b")) is tree

    def test_terminal_has_no_branch_to_insert_into(self):
        tree = chain(leaf("t", NodeKind.TERMINAL))
        assert insert(tree, "t", 0, leaf("b")) is tree

    def test_negative_position_is_noop(self):
        tree = chain(leaf("a"))
        assert insert(tree, ROOT_ID, 0, leaf("b"), at_index=-1) is tree

    def test_duplicate_id_is_noop(self):
        tree = chain(leaf("a"))
        assert insert(tree, ROOT_ID, 0, leaf("a")) is tree


class TestRemove:
    def test_remove_leaf(self):
        tree = chain(leaf("a"), leaf("b"), leaf("c"))
        result = remove(tree, "b")
        assert ids(result.branches[0]) == ["a", "c"]

    def test_remove_splitter_splices_first_branch(self):
        splitter = balanced("s", "1:2", [[leaf("x"), leaf("y")], []])
        tree = chain(leaf("a"), splitter, leaf("b"))
        result = remove(tree, "s")
        assert ids(result.branches[0]) == ["a", "x", "y", "b"]

    def test_remove_splitter_discards_other_branches(self):
        splitter = balanced("s", "1:4", [[leaf("x")], [leaf("lost")], [], []])
        tree = chain(splitter)
        result = remove(tree, "s")
        assert ids(result.branches[0]) == ["x"]
        assert find_node(result, "lost") is None

    def test_remove_unbalanced_splitter_keeps_drop_leg(self):
        tap = Node(id="u", kind=NodeKind.UNBALANCED_SPLITTER, split_ratio="10/90",
                   branches=[[leaf("drop")], [leaf("pass")]])
        result = remove(chain(tap), "u")
        assert ids(result.branches[0]) == ["drop"]

    def test_remove_non_splitter_drops_only_itself(self):
        tree = chain(leaf("a"), leaf("b"))
        result = remove(tree, "a")
        assert ids(result.branches[0]) == ["b"]

    def test_remove_at_depth(self):
        inner = balanced("s2", "1:2", [[leaf("deep")], []])
        tree = chain(balanced("s1", "1:2", [[], [inner]]))
        result = remove(tree, "deep")
        assert find_node(result, "deep") is None
        assert find_node(result, "s2").branches == [[], []]

    def test_root_is_never_removed(self):
        tree = chain(leaf("a"))
        assert remove(tree, ROOT_ID) is tree

    def test_unknown_id_is_noop(self):
        tree = chain(leaf("a"))
        result = remove(tree, "ghost")
        assert result is tree
        assert result == chain(leaf("a"))

    def test_does_not_mutate_input(self):
        tree = chain(leaf("a"), balanced("s", "1:2", [[leaf("x")], []]))
        before = copy.deepcopy(tree)
        remove(tree, "s")
        assert tree == before


class TestUpdateFiber:
    def setup_method(self):
        self.defaults = LossDefaults(fiber_attenuation=0.35)
        self.fiber = Node(
            id="f", kind=NodeKind.FIBER_SPAN, own_loss=0.35,
            length_value=1.0, length_unit=LengthUnit.KILOMETERS, attenuation_coefficient=0.35,
        )
        self.tree = chain(self.fiber)

    def fiber_of(self, tree: Node) -> Node:
        return find_node(tree, "f")

    def test_length_change_recomputes_loss(self):
        result = update(self.tree, "f", {"length_value": 4.0}, self.defaults)
        assert self.fiber_of(result).own_loss == pytest.approx(1.4)

    def test_coefficient_change_recomputes_loss(self):
        result = update(self.tree, "f", {"attenuation_coefficient": 0.5}, self.defaults)
        assert self.fiber_of(result).own_loss == pytest.approx(0.5)

    def test_unit_change_converts_value_and_keeps_loss(self):
        result = update(self.tree, "f", {"length_unit": LengthUnit.METERS}, self.defaults)
        fiber = self.fiber_of(result)
        assert fiber.length_value == pytest.approx(1000.0)
        assert fiber.length_unit is LengthUnit.METERS
        assert fiber.own_loss == pytest.approx(0.35)

    def test_unit_round_trip(self):
        there = update(self.tree, "f", {"length_unit": LengthUnit.METERS}, self.defaults)
        back = update(there, "f", {"length_unit": LengthUnit.KILOMETERS}, self.defaults)
        fiber = self.fiber_of(back)
        assert fiber.length_value == pytest.approx(1.0)
        assert fiber.own_loss == pytest.approx(self.fiber.own_loss)

    def test_same_unit_is_not_converted(self):
        result = update(self.tree, "f", {"length_unit": LengthUnit.KILOMETERS}, self.defaults)
        assert self.fiber_of(result).length_value == 1.0

    def test_unit_given_as_string(self):
        result = update(self.tree, "f", {"length_unit": "m"}, self.defaults)
        fiber = self.fiber_of(result)
        assert fiber.length_unit is LengthUnit.METERS
        assert fiber.length_value == pytest.approx(1000.0)
        assert fiber.own_loss == pytest.approx(0.35)

    def test_unknown_unit_string_rejected(self):
        with pytest.raises(ValueError):
            update(self.tree, "f", {"length_unit": "mi"}, self.defaults)

    def test_length_given_with_unit_is_taken_as_is(self):
        changes = {"length_value": 250.0, "length_unit": LengthUnit.METERS}
        fiber = self.fiber_of(update(self.tree, "f", changes, self.defaults))
        assert fiber.length_value == 250.0
        assert fiber.own_loss == pytest.approx(0.25 * 0.35)

    def test_missing_coefficient_uses_default(self):
        tree = chain(Node(id="f", kind=NodeKind.FIBER_SPAN, length_value=1.0,
                          length_unit=LengthUnit.KILOMETERS))
        result = update(tree, "f", {"length_value": 2.0}, LossDefaults(fiber_attenuation=0.3))
        assert self.fiber_of(result).own_loss == pytest.approx(0.6)

    def test_fiber_loss_is_not_directly_editable(self):
        result = update(self.tree, "f", {"own_loss": 9.9}, self.defaults)
        assert self.fiber_of(result).own_loss == pytest.approx(0.35)

    def test_label_change_has_no_side_effects(self):
        result = update(self.tree, "f", {"label": "Feeder"}, self.defaults)
        fiber = self.fiber_of(result)
        assert fiber.label == "Feeder"
        assert fiber.own_loss == 0.35
        assert fiber.length_value == 1.0


class TestUpdateSplitters:
    def test_balanced_ratio_sets_loss(self):
        tree = chain(balanced("s", "1:2", [[], []]))
        result = update(tree, "s", {"split_ratio": "1:8"}, LossDefaults(splitter_extra_loss=0.3))
        assert find_node(result, "s").own_loss == pytest.approx(10.8)

    def test_shrinking_ratio_keeps_prefix(self):
        b = [[leaf(f"b{i}")] for i in range(4)]
        tree = chain(balanced("s", "1:4", b))
        result = update(tree, "s", {"split_ratio": "1:2"}, LossDefaults())
        assert [ids(branch) for branch in find_node(result, "s").branches] == [["b0"], ["b1"]]

    def test_growing_ratio_pads_with_empty_branches(self):
        b = [[leaf(f"b{i}")] for i in range(4)]
        tree = chain(balanced("s", "1:4", b))
        result = update(tree, "s", {"split_ratio": "1:8"}, LossDefaults())
        assert [ids(branch) for branch in find_node(result, "s").branches] == [
            ["b0"], ["b1"], ["b2"], ["b3"], [], [], [], [],
        ]

    def test_unknown_balanced_ratio_is_lossless(self):
        tree = chain(balanced("s", "1:2", [[], []]))
        result = update(tree, "s", {"split_ratio": "1:3"}, LossDefaults())
        splitter = find_node(result, "s")
        assert splitter.own_loss == 0.0
        assert len(splitter.branches) == 3

    def test_unparseable_ratio_keeps_branches(self):
        tree = chain(balanced("s", "1:2", [[leaf("x")], []]))
        result = update(tree, "s", {"split_ratio": "weird"}, LossDefaults())
        assert len(find_node(result, "s").branches) == 2

    def test_unbalanced_ratio_resets_overrides(self):
        tap = Node(id="u", kind=NodeKind.UNBALANCED_SPLITTER, split_ratio="10/90",
                   drop_loss_override=12.5, pass_loss_override=0.9, branches=[[], []])
        result = update(chain(tap), "u", {"split_ratio": "30/70"}, LossDefaults())
        updated = find_node(result, "u")
        assert updated.drop_loss_override == 6.1
        assert updated.pass_loss_override == 2.2
        assert len(updated.branches) == 2

    def test_unknown_unbalanced_ratio_clears_overrides(self):
        tap = Node(id="u", kind=NodeKind.UNBALANCED_SPLITTER, split_ratio="10/90",
                   drop_loss_override=11.0, pass_loss_override=1.1, branches=[[], []])
        result = update(chain(tap), "u", {"split_ratio": "15/85"}, LossDefaults())
        updated = find_node(result, "u")
        assert updated.drop_loss_override is None
        assert updated.pass_loss_override is None

    def test_override_edit_is_plain_merge(self):
        tap = Node(id="u", kind=NodeKind.UNBALANCED_SPLITTER, split_ratio="10/90",
                   drop_loss_override=11.0, pass_loss_override=1.1, branches=[[], []])
        result = update(chain(tap), "u", {"drop_loss_override": 10.2}, LossDefaults())
        updated = find_node(result, "u")
        assert updated.drop_loss_override == 10.2
        assert updated.split_ratio == "10/90"


class TestUpdateContract:
    def test_unknown_id_is_noop(self):
        tree = chain(leaf("a"))
        assert update(tree, "ghost", {"label": "x"}) is tree

    @pytest.mark.parametrize("field", ["id", "kind", "branches", "power_in", "power_out"])
    def test_protected_fields_rejected(self, field):
        with pytest.raises(ValueError, match="cannot be updated"):
            update(chain(leaf("a")), "a", {field: None})

    def test_protected_field_on_unknown_id_is_noop(self):
        tree = chain(leaf("a"))
        assert update(tree, "ghost", {"branches": []}) is tree

    def test_unknown_field_rejected(self):
        with pytest.raises(TypeError):
            update(chain(leaf("a")), "a", {"colour": "red"})

    def test_does_not_mutate_input(self):
        tree = chain(balanced("s", "1:4", [[leaf("x")], [], [], []]))
        before = copy.deepcopy(tree)
        update(tree, "s", {"split_ratio": "1:2"}, LossDefaults())
        assert tree == before


class TestConvertSplitter:
    def test_balanced_to_unbalanced(self):
        tree = chain(balanced("s", "1:4", [[leaf("a")], [leaf("b")], [leaf("c")], []]))
        result = convert_splitter(tree, "s", LossDefaults(splitter_extra_loss=0.2))
        node = find_node(result, "s")
        assert node.kind is NodeKind.UNBALANCED_SPLITTER
        assert node.split_ratio == "10/90"
        assert node.own_loss == pytest.approx(0.2)
        assert (node.drop_loss_override, node.pass_loss_override) == (11.0, 1.1)
        assert [ids(branch) for branch in node.branches] == [["a"], ["b"]]

    def test_unbalanced_to_balanced(self):
        tap = Node(id="u", kind=NodeKind.UNBALANCED_SPLITTER, split_ratio="20/80",
                   drop_loss_override=7.9, pass_loss_override=1.6,
                   branches=[[leaf("a")], [leaf("b")]])
        result = convert_splitter(chain(tap), "u", LossDefaults())
        node = find_node(result, "u")
        assert node.kind is NodeKind.BALANCED_SPLITTER
        assert node.split_ratio == "1:2"
        assert node.own_loss == pytest.approx(3.5)
        assert node.drop_loss_override is None
        assert [ids(branch) for branch in node.branches] == [["a"], ["b"]]

    def test_id_is_preserved(self):
        tree = chain(balanced("s", "1:2", [[], []]))
        assert find_node(convert_splitter(tree, "s", LossDefaults()), "s") is not None

    def test_non_splitter_is_noop(self):
        tree = chain(leaf("a"))
        assert convert_splitter(tree, "a", LossDefaults()) is tree

    def test_unknown_id_is_noop(self):
        tree = chain(leaf("a"))
        assert convert_splitter(tree, "ghost", LossDefaults()) is tree


class TestResizeBranches:
    def test_resize_returns_new_lists(self):
        original = [[leaf("a")], [leaf("b")]]
        resized = resize_branches(original, 3)
        assert resized[0] is not original[0]
        assert resized[2] == []
