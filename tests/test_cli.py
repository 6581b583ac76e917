"""Tests for CLI commands against a temporary data directory."""

import json

from polysentience.__main__ import build_parser
from polysentience.storage.state import load_state


def _run(*argv: str) -> int:
    args = build_parser().parse_args(list(argv))
    return args.func(args)


def test_seed_and_status(data_dir, capsys) -> None:
    assert _run("seed") == 0
    assert _run("status") == 0

    out = capsys.readouterr().out
    assert "Seeded 8 celebrity agents" in out
    assert "Agents: 8 (8 active)" in out


def test_create_and_adjust_agent(data_dir) -> None:
    assert _run("create-agent", "--name", "Mine", "--strategy", "MOMENTUM", "--balance", "50") == 0
    agent = next(iter(load_state(data_dir).agents.values()))

    assert _run("adjust", "--agent-id", agent.id, "--amount", "25", "--reason", "bonus") == 0
    assert load_state(data_dir).agents[agent.id].current_balance == 75.0
    assert _run("adjust", "--agent-id", "ghost", "--amount", "1") == 1


def test_export_import(data_dir, tmp_path) -> None:
    _run("seed")
    export_path = tmp_path / "export.json"

    assert _run("export", "--output", str(export_path)) == 0
    assert len(json.loads(export_path.read_text())["agents"]) == 8

    bad_path = tmp_path / "bad.json"
    bad_path.write_text("{}")
    assert _run("import", "--input", str(bad_path)) == 1
    assert _run("import", "--input", str(export_path)) == 0
    assert len(load_state(data_dir).agents) == 8
