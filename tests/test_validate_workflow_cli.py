import json

import validate_workflow

from conftest import simple_workflow


def test_cli_passes_valid_workflow(tmp_path, capsys):
    path = tmp_path / "wf.json"
    path.write_text(json.dumps(simple_workflow()), encoding="utf-8")

    assert validate_workflow.main([str(path)]) == 0
    assert "校验通过" in capsys.readouterr().out


def test_cli_reports_numbered_errors(tmp_path, capsys):
    raw = simple_workflow()
    raw["nodes"] = raw["nodes"][1:]
    raw["nodes"][0]["parameters"] = {}
    raw["connections"] = []
    path = tmp_path / "wf.json"
    path.write_text(json.dumps(raw), encoding="utf-8")

    assert validate_workflow.main([str(path)]) == 1

    err = capsys.readouterr().err
    assert "1. [MISSING_TRIGGER]" in err
    assert "[MISSING_REQUIRED_PARAM] (node=http_1, field=parameters.url)" in err


def test_cli_rejects_missing_or_invalid_file(tmp_path):
    assert validate_workflow.main([str(tmp_path / "nope.json")]) == 2

    broken = tmp_path / "broken.json"
    broken.write_text("{not json", encoding="utf-8")
    assert validate_workflow.main([str(broken)]) == 2
