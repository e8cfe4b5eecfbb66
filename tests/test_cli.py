"""Tests for the command-line parser."""

from __future__ import annotations

import pytest

from richlist_tracker.__main__ import COMMANDS, build_parser


class TestBuildParser:
    def test_every_command_is_dispatched(self) -> None:
        parser = build_parser()
        for name in COMMANDS:
            args = parser.parse_args([name])
            assert args.command == name

    def test_report_options(self) -> None:
        args = build_parser().parse_args(["ghosts", "--chain", "sidechain", "--limit", "5", "--max-appearances", "2"])

        assert args.chain == "sidechain"
        assert args.limit == 5
        assert args.max_appearances == 2

    def test_defaults(self) -> None:
        args = build_parser().parse_args(["dormant"])

        assert args.chain is None
        assert args.limit == 50

    def test_command_required(self) -> None:
        with pytest.raises(SystemExit):
            build_parser().parse_args([])
