from __future__ import annotations

import io
import json
import zipfile
from pathlib import Path

import pytest

from study_uploader.archive.data_archive import (
    FORMAT_VERSION,
    MANIFEST_FILENAME,
    ArchiveError,
    StudyDataUploadArchive,
)
from study_uploader.models import AssessmentScheduleInfo, FileInfo, JsonSchema, JsonSchemaProperty, JsonType


def open_zip(archive: StudyDataUploadArchive) -> zipfile.ZipFile:
    return zipfile.ZipFile(io.BytesIO(archive.archive_data))


@pytest.mark.parametrize("identifier", ["", "has space", "a/b", "a\\b", None])
def test_invalid_identifier_is_rejected(identifier):
    with pytest.raises(ArchiveError):
        StudyDataUploadArchive(identifier)


@pytest.mark.parametrize("data_groups", [[""], ["ok", "  "], [3]])
def test_invalid_data_groups_are_rejected(data_groups):
    with pytest.raises(ArchiveError):
        StudyDataUploadArchive("survey", data_groups=data_groups)


def test_completed_archive_contains_files_and_manifest():
    schedule = AssessmentScheduleInfo(instance_guid="inst-1", event_guid="evt-9")
    archive = StudyDataUploadArchive("survey", schedule=schedule, data_groups=["a", "b"])
    archive.add_file(b"hello", FileInfo(filename="walk/motion.json", content_type="application/json"))

    data = archive.complete_archive()

    assert archive.is_completed
    assert data == archive.archive_data
    with open_zip(archive) as z:
        assert set(z.namelist()) == {"walk/motion.json", MANIFEST_FILENAME}
        assert z.read("walk/motion.json") == b"hello"
        manifest = json.loads(z.read(MANIFEST_FILENAME))

    assert manifest == archive.manifest
    assert manifest["identifier"] == "survey"
    assert manifest["format"] == FORMAT_VERSION
    assert manifest["dataGroups"] == "a,b"
    assert manifest["instanceGuid"] == "inst-1"
    assert manifest["eventGuid"] == "evt-9"
    assert "sessionInstanceGuid" not in manifest
    assert [f["filename"] for f in manifest["files"]] == ["walk/motion.json"]
    assert manifest["files"][0]["contentType"] == "application/json"


def test_local_schema_is_written_once():
    schema = JsonSchema(id="answers_schema.json", properties={"q1": JsonSchemaProperty(json_type=JsonType.STRING)})
    archive = StudyDataUploadArchive("survey")
    archive.add_file(b"{}", FileInfo(filename="answers.json", json_schema=schema.id), local_schema=schema)
    archive.complete_archive()

    with open_zip(archive) as z:
        rendered = json.loads(z.read("answers_schema.json"))
    assert rendered["properties"]["q1"]["type"] == "string"
    assert archive.manifest["schemas"] == ["answers_schema.json"]
    assert archive.files == ["answers.json"]


def test_files_keep_insertion_order():
    archive = StudyDataUploadArchive("survey")
    for name in ["c.json", "a.json", "b.json"]:
        archive.add_file(b"", FileInfo(filename=name))
    assert archive.files == ["c.json", "a.json", "b.json"]
    assert archive.file_info("a.json").filename == "a.json"
    assert archive.file_info("missing.json") is None


def test_duplicate_filename_is_rejected():
    archive = StudyDataUploadArchive("survey")
    archive.add_file(b"1", FileInfo(filename="a.json"))
    with pytest.raises(ArchiveError):
        archive.add_file(b"2", FileInfo(filename="a.json"))
    with pytest.raises(ArchiveError):
        archive.add_file(b"3", FileInfo(filename=MANIFEST_FILENAME))


def test_completed_archive_accepts_no_more_files():
    archive = StudyDataUploadArchive("survey")
    archive.complete_archive()

    with pytest.raises(ArchiveError):
        archive.add_file(b"late", FileInfo(filename="late.json"))
    with pytest.raises(ArchiveError):
        archive.complete_archive()


def test_write_to_requires_completed_archive(tmp_path: Path):
    archive = StudyDataUploadArchive("survey")
    with pytest.raises(ArchiveError):
        archive.write_to(tmp_path / "out.zip")

    archive.complete_archive()
    out = archive.write_to(tmp_path / "out.zip")
    assert out.read_bytes() == archive.archive_data
