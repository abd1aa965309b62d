"""Tests for the interactive end of the scan command."""

from types import SimpleNamespace
from unittest.mock import AsyncMock

import pytest

from kitchen.scanner.cli import _finish_interactive
from kitchen.scanner.session import ScanState
from kitchen.types import Recipe, Supply


def _answers(monkeypatch, *answers):
    replies = iter(answers)
    monkeypatch.setattr("builtins.input", lambda prompt="": next(replies))


class TestFinishInteractive:
    @pytest.mark.asyncio
    async def test_non_numeric_quantity_exits_with_error(self, monkeypatch, capsys):
        session = SimpleNamespace(
            state=ScanState.FOUND_SUPPLY,
            supply=Supply("s1", "Rice", 12, "kg", "k1"),
            form_quantity=1,
            record_consumption=AsyncMock(),
        )
        _answers(monkeypatch, "lots")

        assert await _finish_interactive(session) == 1
        session.record_consumption.assert_not_awaited()
        assert "Not a quantity: lots" in capsys.readouterr().err

    @pytest.mark.asyncio
    async def test_non_numeric_servings_exits_with_error(self, monkeypatch, capsys):
        session = SimpleNamespace(
            state=ScanState.FOUND_RECIPE,
            recipe=Recipe("r1", "Curry", servings=4),
            use_recipe=AsyncMock(),
        )
        _answers(monkeypatch, "two")

        assert await _finish_interactive(session) == 1
        session.use_recipe.assert_not_awaited()
        assert "Not a number of servings: two" in capsys.readouterr().err

    @pytest.mark.asyncio
    async def test_blank_quantity_uses_form_default(self, monkeypatch):
        supply = Supply("s1", "Rice", 12, "kg", "k1")
        session = SimpleNamespace(
            state=ScanState.FOUND_SUPPLY,
            supply=supply,
            form_quantity=1,
            record_consumption=AsyncMock(return_value=None),
        )
        _answers(monkeypatch, "", "")

        await _finish_interactive(session)
        session.record_consumption.assert_awaited_once_with(1, "")
