import json

from savings_tracker.cli import main


def test_cli_flow(tmp_path, capsys):
    db_path = str(tmp_path / "cli.db")
    assert main(["--database", db_path, "init-db"]) == 0
    assert main(["--database", db_path, "add-user", "alice", "secret-pw"]) == 0
    assert "Created user alice" in capsys.readouterr().out

    out_json = tmp_path / "summary.json"
    assert main(["--database", db_path, "report", "--user", "alice", "--json", str(out_json)]) == 0
    assert "No applications yet." in capsys.readouterr().out
    assert json.loads(out_json.read_text())["totals"]["initial"] == 0

    export_path = tmp_path / "export.json"
    assert main(["--database", db_path, "export", "--user", "alice", "--output", str(export_path)]) == 0
    assert json.loads(export_path.read_text())["applications"] == []


def test_cli_unknown_user(tmp_path, capsys):
    db_path = str(tmp_path / "cli.db")
    assert main(["--database", db_path, "report", "--user", "ghost"]) == 1
    assert "Unknown user" in capsys.readouterr().err


def test_cli_duplicate_user(tmp_path, capsys):
    db_path = str(tmp_path / "cli.db")
    main(["--database", db_path, "add-user", "alice", "secret-pw"])
    assert main(["--database", db_path, "add-user", "alice", "secret-pw"]) == 1
    assert "already exists" in capsys.readouterr().err
