from __future__ import annotations

import pytest


def test_swap_demo_runs_offline(capsys: pytest.CaptureFixture) -> None:
    from tools.aquaflow_swap_demo import main

    assert main(["--pools", "3", "--swaps", "2"]) == 0
    out = capsys.readouterr().out
    # The 5 bps pool gives the best output.
    assert "via pool_id=2" in out
    assert "OK: 2 swap(s) executed" in out
