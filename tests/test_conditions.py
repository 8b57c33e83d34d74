"""Tests for condition evaluation and AND/OR grouping."""

import pytest

from claimflow.automation.conditions import (
    evaluate_condition,
    evaluate_conditions,
    evaluate_value_condition,
    group_conditions,
    pick_field_value,
)
from claimflow.automation.models import Condition, StoreResult
from claimflow.automation.storage import AutomationStorage


# =============================================================================
# Single operator
# =============================================================================

class TestValueCondition:
    @pytest.mark.parametrize("value", ["X", 5, 2.5, True, False, 0, "", [1, 2], float("nan")])
    def test_equals_reflexive_and_not_equals_false(self, value):
        assert evaluate_value_condition("equals", value, value) is True
        assert evaluate_value_condition("not_equals", value, value) is False

    def test_equals_number_and_text(self):
        assert evaluate_value_condition("equals", 5, "5") is True
        assert evaluate_value_condition("equals", "5", 5) is True
        assert evaluate_value_condition("not_equals", 5, "5") is False

    def test_equals_mismatch(self):
        assert evaluate_value_condition("equals", "X", "Y") is False
        assert evaluate_value_condition("not_equals", "X", "Y") is True

    def test_equals_bool_and_text(self):
        assert evaluate_value_condition("equals", True, "true") is True
        assert evaluate_value_condition("equals", True, 1) is False

    def test_contains_case_insensitive(self):
        assert evaluate_value_condition("contains", "Water Damage", "damage") is True
        assert evaluate_value_condition("contains", "Water Damage", "fire") is False

    @pytest.mark.parametrize("actual, expected", [(123, "2"), ("123", 2), (["a"], "a"), (None, "")])
    def test_contains_requires_text_on_both_sides(self, actual, expected):
        assert evaluate_value_condition("contains", actual, expected) is False

    def test_numeric_comparisons(self):
        assert evaluate_value_condition("greater_than", 10, 5) is True
        assert evaluate_value_condition("greater_than", "10", "5") is True
        assert evaluate_value_condition("less_than", "2.5", 3) is True
        assert evaluate_value_condition("less_than", 3, 3) is False

    @pytest.mark.parametrize("actual", ["abc", None, True, ""])
    def test_numeric_coercion_failure_is_false(self, actual):
        assert evaluate_value_condition("greater_than", actual, 1) is False
        assert evaluate_value_condition("less_than", actual, 1) is False

    @pytest.mark.parametrize("value", [None, "", [], 0, False, "   ", "x", [0]])
    def test_emptiness_operators_are_complementary(self, value):
        assert evaluate_value_condition("is_empty", value) != evaluate_value_condition(
            "is_not_empty", value
        )

    def test_zero_false_and_whitespace_are_not_empty(self):
        for value in (0, False, "   "):
            assert evaluate_value_condition("is_empty", value) is False
            assert evaluate_value_condition("is_not_empty", value) is True

    def test_unknown_operator(self):
        assert evaluate_value_condition("matches_regex", "a", "a") is False


class TestPickFieldValue:
    def test_prefers_raw_value(self):
        assert pick_field_value({"value": "raw", "text_value": "text", "numeric_value": 1.0}) == "raw"

    def test_falls_back_to_text_then_numeric(self):
        assert pick_field_value({"value": None, "text_value": "text", "numeric_value": 1.0}) == "text"
        assert pick_field_value({"value": None, "text_value": None, "numeric_value": 1.0}) == 1.0

    def test_none_when_nothing_found(self):
        assert pick_field_value(None) is None
        assert pick_field_value({"value": None, "text_value": None, "numeric_value": None}) is None

    @pytest.mark.parametrize("raw", ["", 0, False])
    def test_falsy_raw_value_falls_through_to_text(self, raw):
        assert pick_field_value({"value": raw, "text_value": "zero", "numeric_value": None}) == "zero"

    def test_numeric_projection_returned_as_is(self):
        assert pick_field_value({"value": "", "text_value": "", "numeric_value": 0}) == 0
        assert pick_field_value({"value": 0, "text_value": None, "numeric_value": None}) is None

    def test_empty_sequence_is_kept(self):
        assert pick_field_value({"value": [], "text_value": "x", "numeric_value": None}) == []


# =============================================================================
# Grouping
# =============================================================================

def _c(column_id: str, value: str, logic: str | None = None) -> Condition:
    return Condition(operator="equals", column_id=column_id, value=value, logic=logic)


class TestGrouping:
    def test_no_markers_single_group(self):
        conditions = [_c("c1", "a"), _c("c2", "b"), _c("c3", "c")]
        assert group_conditions(conditions) == [conditions]

    def test_switch_opens_new_group(self):
        a, b, c = _c("c1", "a"), _c("c2", "b", logic="OR"), _c("c3", "c")
        assert group_conditions([a, b, c]) == [[a], [b, c]]

    def test_leading_marker_does_not_split_empty_group(self):
        a, b = _c("c1", "a", logic="OR"), _c("c2", "b")
        # current logic stays AND: the first OR never became the current logic
        assert group_conditions([a, b]) == [[a, b]]

    def test_repeated_marker_stays_in_group(self):
        a, b, c = _c("c1", "a"), _c("c2", "b", logic="OR"), _c("c3", "c", logic="OR")
        assert group_conditions([a, b, c]) == [[a], [b, c]]

    def test_switch_back_to_and(self):
        a, b, c = _c("c1", "a"), _c("c2", "b", logic="OR"), _c("c3", "c", logic="AND")
        assert group_conditions([a, b, c]) == [[a], [b], [c]]


# =============================================================================
# Evaluation against stored field values
# =============================================================================

@pytest.mark.asyncio
async def test_empty_conditions_always_pass(storage):
    assert await evaluate_conditions([], "i1", storage) is True
    assert await evaluate_conditions([], None, storage) is True


@pytest.mark.asyncio
async def test_conjunction_without_markers(storage):
    await storage.set_column_value("i1", "c1", "X")
    await storage.set_column_value("i1", "c2", "Y")

    conditions = [_c("c1", "X"), _c("c2", "Y")]
    assert await evaluate_conditions(conditions, "i1", storage) is True

    await storage.set_column_value("i1", "c2", "Z")
    assert await evaluate_conditions(conditions, "i1", storage) is False


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "c1, c2, expected",
    [
        ("X", "Z", True),
        ("Q", "Y", True),
        ("X", "Y", True),
        ("Q", "Z", False),
    ],
)
async def test_or_marker_passes_when_any_group_passes(storage, c1, c2, expected):
    await storage.set_column_value("i1", "c1", c1)
    await storage.set_column_value("i1", "c2", c2)

    conditions = [_c("c1", "X"), _c("c2", "Y", logic="OR")]
    assert await evaluate_conditions(conditions, "i1", storage) is expected


@pytest.mark.asyncio
async def test_or_anywhere_switches_between_group_reduction(storage):
    # [a] OR [b AND c]: b must hold together with c
    await storage.set_column_value("i1", "c1", "no")
    await storage.set_column_value("i1", "c2", "b")
    await storage.set_column_value("i1", "c3", "no")

    conditions = [_c("c1", "a"), _c("c2", "b", logic="OR"), _c("c3", "c")]
    assert await evaluate_conditions(conditions, "i1", storage) is False

    await storage.set_column_value("i1", "c3", "c")
    assert await evaluate_conditions(conditions, "i1", storage) is True


@pytest.mark.asyncio
async def test_text_and_numeric_projections(storage):
    await storage.set_column_value("i1", "amount", numeric_value=1500.0)
    await storage.set_column_value("i1", "notes", text_value="Category 2 water loss")

    conditions = [
        Condition(operator="greater_than", column_id="amount", value="1000"),
        Condition(operator="contains", column_id="notes", value="WATER"),
    ]
    assert await evaluate_conditions(conditions, "i1", storage) is True


@pytest.mark.asyncio
async def test_empty_raw_value_uses_text_projection(storage):
    await storage.set_column_value("i1", "c1", "", text_value="Water")

    conditions = [Condition(operator="equals", column_id="c1", value="Water")]
    assert await evaluate_conditions(conditions, "i1", storage) is True


@pytest.mark.asyncio
async def test_numeric_prefix_comparisons(storage):
    await storage.set_column_value("i1", "area", "12 sqft")
    await storage.set_column_value("i1", "rooms", [5, 6])

    conditions = [
        Condition(operator="greater_than", column_id="area", value=5),
        Condition(operator="less_than", column_id="rooms", value=6),
    ]
    assert await evaluate_conditions(conditions, "i1", storage) is True
    assert evaluate_value_condition("greater_than", "1_000", 999) is False
    assert evaluate_value_condition("greater_than", "inf", 5) is False


@pytest.mark.asyncio
async def test_missing_field_value_is_null(storage):
    assert await evaluate_condition(
        Condition(operator="is_empty", column_id="missing"), "i1", storage
    ) is True
    assert await evaluate_condition(
        Condition(operator="equals", column_id="missing", value="X"), "i1", storage
    ) is False


@pytest.mark.asyncio
async def test_condition_without_column_compares_null(storage):
    assert await evaluate_condition(Condition(operator="is_empty"), "i1", storage) is True
    assert await evaluate_condition(Condition(operator="is_not_empty"), "i1", storage) is False


@pytest.mark.asyncio
async def test_field_lookup_failure_treated_as_null(tmp_path, log_messages):
    class BrokenStorage(AutomationStorage):
        async def get_field_value(self, item_id, column_id):
            return StoreResult.failure("query_failed", "disk I/O error")

    store = BrokenStorage(str(tmp_path / "broken.sqlite"))
    condition = Condition(operator="is_empty", column_id="c1")

    assert await evaluate_condition(condition, "i1", store) is True
    assert any(level == "ERROR" and "Field lookup failed" in msg for level, msg in log_messages)
