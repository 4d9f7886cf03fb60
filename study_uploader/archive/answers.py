"""
Answers - flattens answer results into a single answers.json document.

Each answer is keyed by its path in the result tree (with slashes replaced by
underscores) and described by a generated JSON schema.
"""
import json
import math
from datetime import datetime
from typing import Any, Dict, Optional, Tuple, Union

from ..models import AnswerResult, FileInfo, JsonSchema, JsonSchemaProperty, JsonType

ANSWERS_FILENAME = "answers.json"
ANSWERS_SCHEMA_ID = "answers_schema.json"


def json_number(value: float) -> Optional[Union[int, float]]:
    """Normalize a float to the value JSON encoders write for it. None if not representable."""
    if math.isnan(value) or math.isinf(value):
        return None
    if value.is_integer() and abs(value) < 2 ** 53:
        return int(value)
    return value


def _text_form(element: Any) -> str:
    if element is None:
        return "null"
    if isinstance(element, bool):
        return "true" if element else "false"
    if isinstance(element, (dict, list, tuple)):
        return json.dumps(element, sort_keys=True, separators=(",", ":"))
    return str(element)


def flatten_answer(answer: AnswerResult) -> Optional[Tuple[Any, JsonType]]:
    """
    Flatten an answer into a value that fits in a flat answers document.

    Args:
        answer: The answer result to flatten

    Returns:
        A (value, json_type) pair, or None if the answer can't be represented
    """
    # Exit early for types that are not supported
    base_type = answer.base_type
    if base_type is None or base_type == JsonType.NULL:
        return None

    value = answer.json_value
    if value is None:
        return None, (JsonType.STRING if base_type == JsonType.ARRAY else base_type)

    if isinstance(value, (bool, str, int)):
        return value, base_type
    if isinstance(value, float):
        number = json_number(value)
        if number is None:
            return None
        return number, base_type
    if isinstance(value, (list, tuple)):
        return ",".join(_text_form(element) for element in value), JsonType.STRING
    if isinstance(value, dict):
        # objects are supported as a json blob only
        return value, base_type
    return None


def answer_key(path: str) -> str:
    return path.replace("/", "_")


class AnswersCollector:
    """
    Accumulates flattened answers and their schema properties during a build.
    """

    def __init__(self):
        self.answers: Dict[str, Any] = {}
        self.properties: Dict[str, JsonSchemaProperty] = {}

    @property
    def is_empty(self) -> bool:
        return not self.answers

    def record(self, path: str, answer: AnswerResult) -> Optional[str]:
        """
        Add an answer under its path-derived key.

        Returns:
            The key used, or None if the answer was skipped
        """
        flattened = flatten_answer(answer)
        if flattened is None:
            return None
        value, json_type = flattened
        key = answer_key(path)
        self.answers[key] = value
        self.properties[key] = JsonSchemaProperty(json_type=json_type, description=answer.question_text)
        return key

    def schema(self, description: Optional[str] = None) -> JsonSchema:
        return JsonSchema(id=ANSWERS_SCHEMA_ID, description=description, properties=dict(self.properties))

    def encode(self) -> bytes:
        """Pretty-printed, key-sorted JSON. Raises ValueError or TypeError on unencodable values."""
        text = json.dumps(self.answers, indent=2, sort_keys=True, ensure_ascii=False, allow_nan=False)
        return text.encode("utf-8")

    def build_file(self, identifier: str, timestamp: datetime) -> Tuple[bytes, FileInfo, JsonSchema]:
        data = self.encode()
        file_info = FileInfo(
            filename=ANSWERS_FILENAME,
            timestamp=timestamp,
            content_type="application/json",
            json_schema=ANSWERS_SCHEMA_ID
        )
        return data, file_info, self.schema(description=identifier)
