"""
Pluggable strategies used by the archive builder.
"""
from dataclasses import dataclass
from typing import Callable, Optional, Tuple

from ..models import AssessmentResult, AssessmentResultObject, FileInfo, ResultData

ASSESSMENT_RESULT_FILENAME = "assessmentResult.json"


class ManifestMapper:
    """Strategy interface: decides the manifest info for an archived file."""
    def map(self, result: ResultData, file_info: FileInfo) -> Optional[FileInfo]:
        raise NotImplementedError


class PassThroughManifestMapper(ManifestMapper):
    def map(self, result: ResultData, file_info: FileInfo) -> Optional[FileInfo]:
        return file_info


@dataclass(frozen=True)
class FunctionManifestMapper(ManifestMapper):
    """Adapts a plain function. Returning None drops the file from the archive."""
    fn: Callable[[ResultData, FileInfo], Optional[FileInfo]]

    def map(self, result: ResultData, file_info: FileInfo) -> Optional[FileInfo]:
        return self.fn(result, file_info)


class ResultFileSerializer:
    """Strategy interface: produces the top-level assessment result file, if any."""
    def serialize(self, result: AssessmentResult) -> Optional[Tuple[bytes, FileInfo]]:
        raise NotImplementedError


class AssessmentResultFileSerializer(ResultFileSerializer):
    """Writes assessmentResult.json for results that can encode themselves."""

    def serialize(self, result: AssessmentResult) -> Optional[Tuple[bytes, FileInfo]]:
        if not isinstance(result, AssessmentResultObject):
            return None
        data = result.json_encoded_data()
        file_info = FileInfo(
            filename=ASSESSMENT_RESULT_FILENAME,
            timestamp=result.end_date,
            content_type="application/json",
            identifier=result.identifier,
            json_schema=result.json_schema
        )
        return data, file_info
