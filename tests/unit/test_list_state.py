"""Unit tests for list screen selection and filtering."""

import random

import pytest

from s2tui.models import AccessTokenInfo, BasinInfo
from s2tui.tui.state import AccessTokensState, BasinsState


def _basins(*names: str) -> BasinsState:
    return BasinsState(items=[BasinInfo(name=n) for n in names], loading=False)


@pytest.mark.parametrize("count", [0, 1, 2, 7])
def test_navigation_keeps_selection_in_bounds(count):
    state = _basins(*[f"basin-{i:04d}" for i in range(count)])
    rng = random.Random(count)
    for _ in range(200):
        op = rng.choice(["up", "down", "top", "bottom"])
        if op == "up":
            state.move(-1)
        elif op == "down":
            state.move(1)
        elif op == "top":
            state.first()
        else:
            state.last()
        if count == 0:
            assert state.selected == 0
        else:
            assert 0 <= state.selected <= count - 1


def test_last_then_filter_resets_selection():
    state = _basins("a", "b", "c")
    state.last()
    assert state.selected == 2

    state.push_filter("b")
    assert state.filter == "b"
    assert [b.name for b in state.filtered()] == ["b"]
    assert state.selected == 0


def test_filtered_view_is_recomputed_from_items():
    state = _basins("orders", "payments", "orders-dlq")
    state.push_filter("orders")
    assert [b.name for b in state.filtered()] == ["orders", "orders-dlq"]

    state.items.append(BasinInfo(name="orders-archive"))
    assert len(state.filtered()) == 3

    state.pop_filter()
    assert state.filter == "order"
    assert state.selected == 0


def test_selected_item_none_when_filter_matches_nothing():
    state = _basins("a", "b")
    state.push_filter("zzz")
    assert state.filtered() == []
    assert state.selected_item() is None


def test_set_items_clamps_selection_and_clears_loading():
    state = _basins("a", "b", "c", "d")
    state.last()
    state.loading = True
    state.set_items([BasinInfo(name="a")])
    assert state.selected == 0
    assert state.loading is False


def test_begin_load_supersedes_previous_id():
    state = _basins("a")
    state.begin_load(3)
    state.begin_load(4)
    assert state.load_id == 4
    assert state.loading is True


def test_token_filter_is_case_insensitive():
    state = AccessTokensState(
        items=[AccessTokenInfo(id="CI-Deploy"), AccessTokenInfo(id="reader")],
        loading=False,
    )
    state.push_filter("ci-d")
    assert [t.id for t in state.filtered()] == ["CI-Deploy"]
