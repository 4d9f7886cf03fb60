from __future__ import annotations

import json
import zipfile
from pathlib import Path

from study_uploader.cli import main


def write_result(path: Path, identifier: str, recording: Path) -> Path:
    document = {
        "identifier": identifier,
        "step_history": [
            {"kind": "answer", "identifier": "mood", "json_value": 4, "question_text": "How do you feel?"},
            {
                "kind": "branch",
                "identifier": "walk",
                "step_history": [
                    {"kind": "file", "identifier": "motion", "path": str(recording), "content_type": "application/json"},
                ],
            },
        ],
    }
    path.write_text(json.dumps(document), encoding="utf-8")
    return path


def test_main_writes_archive_and_cleans_up(tmp_path: Path):
    output = tmp_path / "output"
    output.mkdir()
    recording = output / "motion.json"
    recording.write_text("[]", encoding="utf-8")
    result_file = write_result(tmp_path / "result.json", "survey", recording)
    out = tmp_path / "archives" / "survey.zip"

    code = main([str(result_file), "--output-directory", str(output), "--out", str(out), "--data-group", "beta"])

    assert code == 0
    assert not output.exists()
    with zipfile.ZipFile(out) as z:
        names = set(z.namelist())
        answers = json.loads(z.read("answers.json"))
        manifest = json.loads(z.read("info.json"))
    assert {"answers.json", "answers_schema.json", "assessmentResult.json", "walk/motion.json", "info.json"} == names
    assert answers == {"mood": 4}
    assert manifest["dataGroups"] == "beta"


def test_keep_output_skips_cleanup(tmp_path: Path):
    output = tmp_path / "output"
    output.mkdir()
    recording = output / "motion.json"
    recording.write_text("[]", encoding="utf-8")
    result_file = write_result(tmp_path / "result.json", "survey", recording)

    code = main([str(result_file), "--output-directory", str(output), "--out", str(tmp_path / "a.zip"), "--keep-output"])

    assert code == 0
    assert output.exists()


def test_invalid_result_file(tmp_path: Path):
    bad = tmp_path / "bad.json"
    bad.write_text('{"step_history": []}', encoding="utf-8")

    assert main([str(bad)]) == 2
    assert main([str(tmp_path / "missing.json")]) == 2


def test_invalid_identifier_fails_construction(tmp_path: Path):
    result_file = tmp_path / "result.json"
    result_file.write_text(json.dumps({"identifier": "bad id"}), encoding="utf-8")

    assert main([str(result_file), "--out", str(tmp_path / "a.zip")]) == 1


def test_missing_recording_fails_build(tmp_path: Path):
    output = tmp_path / "output"
    output.mkdir()
    result_file = write_result(tmp_path / "result.json", "survey", output / "missing.json")

    assert main([str(result_file), "--output-directory", str(output), "--out", str(tmp_path / "a.zip")]) == 2
    assert not output.exists()


def test_cleanup_failure_returns_error_code(tmp_path: Path, caplog):
    recording = tmp_path / "motion.json"
    recording.write_text("[]", encoding="utf-8")
    result_file = write_result(tmp_path / "result.json", "survey", recording)
    out = tmp_path / "a.zip"

    code = main([str(result_file), "--output-directory", str(tmp_path / "nope"), "--out", str(out)])

    assert code == 2
    assert out.exists()
    assert any("Failed to remove output directory" in r.getMessage() for r in caplog.records)
