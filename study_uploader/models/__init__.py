"""
Pydantic models for assessment result trees and upload archive metadata.
"""
import asyncio
import json
import uuid
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Annotated, Any, ClassVar, Dict, List, Literal, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field


ASSESSMENT_RESULT_SCHEMA = (
    "https://sage-bionetworks.github.io/mobile-client-json/schemas/v2/AssessmentResultObject.json"
)


def _now() -> datetime:
    return datetime.now(timezone.utc)


class JsonType(str, Enum):
    """The JSON type of a value, as declared in a JSON schema."""
    STRING = "string"
    NUMBER = "number"
    INTEGER = "integer"
    BOOLEAN = "boolean"
    NULL = "null"
    ARRAY = "array"
    OBJECT = "object"

    @classmethod
    def of(cls, value: Any) -> Optional["JsonType"]:
        """Infer the JSON type of a Python value. Returns None for None."""
        if value is None:
            return None
        # bool is a subclass of int
        if isinstance(value, bool):
            return cls.BOOLEAN
        if isinstance(value, int):
            return cls.INTEGER
        if isinstance(value, float):
            return cls.NUMBER
        if isinstance(value, str):
            return cls.STRING
        if isinstance(value, (list, tuple)):
            return cls.ARRAY
        if isinstance(value, dict):
            return cls.OBJECT
        return None


class NodeKind(str, Enum):
    """How the archive builder treats a result node."""
    BRANCH = "branch"
    COLLECTION = "collection"
    FILE_ARCHIVABLE = "file_archivable"
    ANSWER = "answer"
    OPAQUE = "opaque"


class FileInfo(BaseModel):
    """Manifest metadata for a single file in an upload archive."""
    filename: str
    timestamp: datetime = Field(default_factory=_now)
    content_type: Optional[str] = None
    identifier: Optional[str] = None
    json_schema: Optional[str] = Field(None, description="Schema URL or local schema file name")

    def manifest_entry(self) -> Dict[str, Any]:
        entry = {
            "filename": self.filename,
            "timestamp": self.timestamp.isoformat(),
            "contentType": self.content_type,
            "identifier": self.identifier,
            "jsonSchema": self.json_schema,
        }
        return {key: value for key, value in entry.items() if value is not None}


class JsonSchemaProperty(BaseModel):
    """A primitive property of a generated JSON schema."""
    json_type: JsonType
    description: Optional[str] = None


class JsonSchema(BaseModel):
    """A flat object schema that is shipped alongside a generated file."""
    id: str
    description: Optional[str] = None
    properties: Dict[str, JsonSchemaProperty] = Field(default_factory=dict)

    def to_json(self) -> Dict[str, Any]:
        properties = {}
        for name, prop in self.properties.items():
            rendered: Dict[str, Any] = {"type": prop.json_type.value}
            if prop.description:
                rendered["description"] = prop.description
            properties[name] = rendered
        document = {
            "$schema": "http://json-schema.org/draft-07/schema#",
            "$id": self.id,
            "type": "object",
            "title": self.id,
            "properties": properties,
        }
        if self.description:
            document["description"] = self.description
        return document


class ClientInfo(BaseModel):
    """Platform metadata stamped onto adherence payloads."""
    os_name: str
    device_name: str
    os_version: str
    app_version: str

    def appending_to(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        """Return a copy of ``payload`` with any missing client fields filled in."""
        stamped = dict(payload)
        stamped.setdefault("osName", self.os_name)
        stamped.setdefault("deviceName", self.device_name)
        stamped.setdefault("osVersion", self.os_version)
        stamped.setdefault("appVersion", self.app_version)
        return stamped


class AssessmentScheduleInfo(BaseModel):
    """Reference to the scheduled instance an assessment was run for."""
    instance_guid: str
    session_instance_guid: Optional[str] = None
    event_guid: Optional[str] = None

    def manifest_fields(self) -> Dict[str, str]:
        fields = {
            "instanceGuid": self.instance_guid,
            "sessionInstanceGuid": self.session_instance_guid,
            "eventGuid": self.event_guid,
        }
        return {key: value for key, value in fields.items() if value is not None}


# ---------------------------------------------------------------------------
# Result tree
# ---------------------------------------------------------------------------

class ResultData(BaseModel):
    """Common fields for every node in a result tree."""
    model_config = ConfigDict(frozen=True)

    node_kind: ClassVar[NodeKind] = NodeKind.OPAQUE

    identifier: str
    start_date: datetime = Field(default_factory=_now)
    end_date: datetime = Field(default_factory=_now)


class BaseResult(ResultData):
    """A plain result with nothing to archive."""
    kind: Literal["base"] = "base"


class AnswerResult(ResultData):
    """A single answer to a question, with an optional declared type."""
    node_kind: ClassVar[NodeKind] = NodeKind.ANSWER

    kind: Literal["answer"] = "answer"
    json_value: Any = None
    answer_type: Optional[JsonType] = None
    question_text: Optional[str] = None

    @property
    def base_type(self) -> Optional[JsonType]:
        return self.answer_type or JsonType.of(self.json_value)


class FileResult(ResultData):
    """A file written to disk by a recorder while the assessment was running."""
    node_kind: ClassVar[NodeKind] = NodeKind.FILE_ARCHIVABLE

    kind: Literal["file"] = "file"
    path: Optional[Path] = None
    content_type: Optional[str] = None
    json_schema: Optional[str] = None

    def archive_filename(self, step_path: Optional[str] = None) -> str:
        suffix = self.path.suffix if self.path is not None else ""
        filename = f"{self.identifier}{suffix}"
        return f"{step_path}/{filename}" if step_path else filename

    async def build_archivable_file_data(
        self,
        step_path: Optional[str] = None
    ) -> Optional[Tuple[FileInfo, bytes]]:
        """
        Read the recorded file for inclusion in an archive.

        Args:
            step_path: Path of the parent node within the result tree

        Returns:
            The manifest info and file contents, or None if nothing was recorded
        """
        if self.path is None:
            return None
        data = await asyncio.to_thread(self.path.read_bytes)
        file_info = FileInfo(
            filename=self.archive_filename(step_path),
            timestamp=self.end_date,
            content_type=self.content_type,
            identifier=self.identifier,
            json_schema=self.json_schema
        )
        return file_info, data


class JsonFileResult(ResultData):
    """A result whose payload is a JSON object, archived as its own file."""
    node_kind: ClassVar[NodeKind] = NodeKind.FILE_ARCHIVABLE

    kind: Literal["json"] = "json"
    json_value: Dict[str, Any] = Field(default_factory=dict)
    json_schema: Optional[str] = None

    async def build_archivable_file_data(
        self,
        step_path: Optional[str] = None
    ) -> Optional[Tuple[FileInfo, bytes]]:
        filename = f"{self.identifier}.json"
        data = json.dumps(self.json_value, indent=2, sort_keys=True, ensure_ascii=False)
        file_info = FileInfo(
            filename=f"{step_path}/{filename}" if step_path else filename,
            timestamp=self.end_date,
            content_type="application/json",
            identifier=self.identifier,
            json_schema=self.json_schema
        )
        return file_info, data.encode("utf-8")


class BranchResult(ResultData):
    """A node with its own nested step history."""
    node_kind: ClassVar[NodeKind] = NodeKind.BRANCH

    kind: Literal["branch"] = "branch"
    step_history: List["ResultNode"] = Field(default_factory=list)
    async_results: Optional[List["ResultNode"]] = None


class CollectionResult(ResultData):
    """A node grouping an ordered set of child results."""
    node_kind: ClassVar[NodeKind] = NodeKind.COLLECTION

    kind: Literal["collection"] = "collection"
    children: List["ResultNode"] = Field(default_factory=list)


ResultNode = Annotated[
    Union[BaseResult, AnswerResult, FileResult, JsonFileResult, BranchResult, CollectionResult],
    Field(discriminator="kind")
]

BranchResult.model_rebuild()
CollectionResult.model_rebuild()


class AssessmentResult(BaseModel):
    """The root of a completed assessment's result tree."""
    model_config = ConfigDict(frozen=True)

    identifier: str
    task_run_uuid: uuid.UUID = Field(default_factory=uuid.uuid4)
    start_date: datetime = Field(default_factory=_now)
    end_date: datetime = Field(default_factory=_now)
    step_history: List[ResultNode] = Field(default_factory=list)
    async_results: Optional[List[ResultNode]] = None


class AssessmentResultObject(AssessmentResult):
    """An assessment result that can encode itself as a JSON document."""
    json_schema: ClassVar[str] = ASSESSMENT_RESULT_SCHEMA

    def json_encoded_data(self) -> bytes:
        return self.model_dump_json(indent=2).encode("utf-8")


def parse_assessment_result(data: Dict[str, Any]) -> AssessmentResultObject:
    """Validate a serialized result tree."""
    return AssessmentResultObject.model_validate(data)
