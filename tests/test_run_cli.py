"""Tests for the command-line argument checks in `run.py`."""

from __future__ import annotations

import pytest

import run


def _check(argv: list[str]) -> None:
    parser = run.build_parser()
    run.check_args(parser, parser.parse_args(argv))


def test_maxwell_rejects_non_abelian_source():
    with pytest.raises(SystemExit):
        _check(["--solver", "maxwell", "--colors", "2"])


@pytest.mark.parametrize(
    "argv",
    [
        ["--solver", "maxwell", "--colors", "1"],
        ["--solver", "maxwell", "--colors", "2", "--no-source", "--pulse"],
        ["--solver", "yang_mills", "--colors", "3"],
    ],
)
def test_accepted_solver_color_combinations(argv):
    _check(argv)


def test_grid_needs_two_or_three_axes():
    with pytest.raises(SystemExit):
        _check(["--grid", "8"])
