"""Smoke test: every simulation scenario runs end to end on in-memory SQLite."""

import pytest

import simulation


@pytest.mark.parametrize("scenario", [1, 2, 3])
async def test_scenario_runs(scenario: int, capsys) -> None:
    await simulation.run_scenario(scenario, use_sqlite=True)

    out = capsys.readouterr().out
    assert f"SCENARIO {scenario}" in out
    assert simulation._sqlite_engine is None


async def test_consultation_scenario_refuses_buffer_overlap(capsys) -> None:
    await simulation.run_scenario(3, use_sqlite=True)

    assert "Refused: Time slot" in capsys.readouterr().out


async def test_happy_path_wallet_reconciles(capsys) -> None:
    await simulation.run_scenario(1, use_sqlite=True)

    assert "Wallet reconciles with ledger: True" in capsys.readouterr().out
