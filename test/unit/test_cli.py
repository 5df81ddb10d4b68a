"""Unit tests for the coach_chat command-line tool."""

import importlib.util
import json
import sys
from pathlib import Path

import pytest

from conftest import TODAY
from coach_ai.history import load_history
from coach_ai.storage import SQLiteStore


CLI_PATH = Path(__file__).parent.parent.parent / "bin" / "coach_chat.py"


@pytest.fixture
def cli(monkeypatch):
    monkeypatch.delenv("AI_CHAT_URL", raising=False)
    spec = importlib.util.spec_from_file_location("coach_chat", CLI_PATH)
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


@pytest.fixture
def workouts_file(tmp_path, sample_workouts):
    path = tmp_path / "workouts.json"
    path.write_text(json.dumps(sample_workouts), encoding="utf-8")
    return path


def run_cli(cli, monkeypatch, *args):
    monkeypatch.setattr(sys, "argv", ["coach_chat.py", *args])
    cli.main()


@pytest.mark.unit
def test_ask_prints_fallback_and_stores_turns(cli, monkeypatch, capsys, workouts_file, temp_db_path):
    run_cli(cli, monkeypatch, "--workouts", str(workouts_file), "--db-path", str(temp_db_path),
            "--today", TODAY, "--lang", "en", "--weekly-goal", "4", "what should I train next?")

    out = capsys.readouterr().out
    assert out.startswith("[fallback] Next session: Bench Press")
    assert "Based on: 2 sessions in last 7 days" in out

    messages = load_history(SQLiteStore(temp_db_path))
    assert [m.role for m in messages] == ["user", "assistant"]
    assert messages[1].source == "fallback"


@pytest.mark.unit
def test_regenerate_with_same_local_answer_is_rejected(cli, monkeypatch, capsys, workouts_file, temp_db_path):
    common = ["--workouts", str(workouts_file), "--db-path", str(temp_db_path), "--today", TODAY, "--lang", "en"]
    run_cli(cli, monkeypatch, *common, "pb?")
    capsys.readouterr()

    run_cli(cli, monkeypatch, *common, "--regenerate")

    assert "almost the same" in capsys.readouterr().out
    assert len(load_history(SQLiteStore(temp_db_path))) == 2


@pytest.mark.unit
def test_clear(cli, monkeypatch, capsys, workouts_file, temp_db_path):
    run_cli(cli, monkeypatch, "--workouts", str(workouts_file), "--db-path", str(temp_db_path), "hej")
    run_cli(cli, monkeypatch, "--db-path", str(temp_db_path), "--clear")

    assert "Conversation cleared." in capsys.readouterr().out
    assert load_history(SQLiteStore(temp_db_path)) == []


@pytest.mark.unit
def test_missing_workouts_exits(cli, monkeypatch, temp_db_path):
    with pytest.raises(SystemExit):
        run_cli(cli, monkeypatch, "--db-path", str(temp_db_path), "hej")


@pytest.mark.unit
def test_unopenable_store_exits_with_error(cli, monkeypatch, capsys, tmp_path, workouts_file):
    db_path = tmp_path / "missing" / "coach.db"

    with pytest.raises(SystemExit) as exc_info:
        run_cli(cli, monkeypatch, "--workouts", str(workouts_file), "--db-path", str(db_path), "hej")

    assert exc_info.value.code == 1
    assert "ERROR: could not open store" in capsys.readouterr().out


@pytest.mark.unit
@pytest.mark.parametrize("content", [None, "{not json"])
def test_bad_profile_file_exits_with_error(cli, monkeypatch, capsys, tmp_path, workouts_file, temp_db_path, content):
    profile_path = tmp_path / "profile.json"
    if content is not None:
        profile_path.write_text(content, encoding="utf-8")

    with pytest.raises(SystemExit) as exc_info:
        run_cli(cli, monkeypatch, "--workouts", str(workouts_file), "--db-path", str(temp_db_path),
                "--profile", str(profile_path), "hej")

    assert exc_info.value.code == 1
    assert "ERROR: could not read profile" in capsys.readouterr().out
    assert load_history(SQLiteStore(temp_db_path)) == []
