"""
Upload archive that collects data files, writes a manifest and seals
everything into a single zip payload for the upload queue.
"""
import io
import json
import logging
import re
import zipfile
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Tuple

from ..models import AssessmentScheduleInfo, FileInfo, JsonSchema

logger = logging.getLogger(__name__)

MANIFEST_FILENAME = "info.json"
FORMAT_VERSION = "v2_generic"

_IDENTIFIER_PATTERN = re.compile(r"^[^\s/\\]+$")


class ArchiveError(ValueError):
    """Raised when an archive can't be created, modified or sealed."""


class StudyDataUploadArchive:
    """
    An archive of files for a single assessment run.

    Files are added until complete_archive() is called; after that the
    archive is read-only and its zip payload is available.
    """

    def __init__(
        self,
        identifier: str,
        schedule: Optional[AssessmentScheduleInfo] = None,
        data_groups: Optional[Iterable[str]] = None
    ):
        """
        Args:
            identifier: Identifier of the assessment being archived
            schedule: Schedule the assessment was run for (if any)
            data_groups: Data groups of the participant (if any)

        Raises:
            ArchiveError: If the identifier or data groups are invalid
        """
        if not isinstance(identifier, str) or not _IDENTIFIER_PATTERN.match(identifier):
            raise ArchiveError(f"Invalid archive identifier: {identifier!r}")

        groups = list(data_groups) if data_groups else []
        for group in groups:
            if not isinstance(group, str) or not group.strip():
                raise ArchiveError(f"Invalid data group: {group!r}")

        self._identifier = identifier
        self.schedule = schedule
        self.data_groups = groups

        self._entries: Dict[str, Tuple[FileInfo, bytes]] = {}
        self._schemas: Dict[str, JsonSchema] = {}
        self._manifest: Optional[Dict[str, Any]] = None
        self._archive_data: Optional[bytes] = None

    @property
    def identifier(self) -> str:
        return self._identifier

    @property
    def files(self) -> List[str]:
        """Filenames of the data entries, in the order they were added."""
        return list(self._entries)

    @property
    def is_completed(self) -> bool:
        return self._archive_data is not None

    @property
    def manifest(self) -> Optional[Dict[str, Any]]:
        return self._manifest

    @property
    def archive_data(self) -> Optional[bytes]:
        return self._archive_data

    def file_info(self, filename: str) -> Optional[FileInfo]:
        entry = self._entries.get(filename)
        return entry[0] if entry else None

    def add_file(self, data: bytes, file_info: FileInfo, local_schema: Optional[JsonSchema] = None) -> None:
        """
        Add a data file to the archive.

        Args:
            data: File contents
            file_info: Manifest info for the file
            local_schema: Generated schema to ship alongside the file (if any)
        """
        if self.is_completed:
            raise ArchiveError(f"Archive {self.identifier} is already completed")
        filename = file_info.filename
        if filename == MANIFEST_FILENAME or filename in self._entries:
            raise ArchiveError(f"Duplicate file in archive {self.identifier}: {filename}")

        self._entries[filename] = (file_info, bytes(data))
        if local_schema is not None:
            self._schemas.setdefault(local_schema.id, local_schema)

    def complete_archive(self) -> bytes:
        """
        Write the manifest and seal the archive.

        Returns:
            The zip payload
        """
        if self.is_completed:
            raise ArchiveError(f"Archive {self.identifier} is already completed")

        manifest = self._build_manifest()
        buffer = io.BytesIO()
        with zipfile.ZipFile(buffer, mode="w", compression=zipfile.ZIP_DEFLATED) as archive:
            for filename, (_, data) in self._entries.items():
                archive.writestr(filename, data)
            for schema_id, schema in self._schemas.items():
                archive.writestr(schema_id, json.dumps(schema.to_json(), indent=2, sort_keys=True))
            archive.writestr(MANIFEST_FILENAME, json.dumps(manifest, indent=2, sort_keys=True))

        self._manifest = manifest
        self._archive_data = buffer.getvalue()
        logger.info("Completed archive %s with %d file(s)", self.identifier, len(self._entries))
        return self._archive_data

    def write_to(self, path: Path) -> Path:
        if not self.is_completed:
            raise ArchiveError(f"Archive {self.identifier} has not been completed")
        path = Path(path)
        path.write_bytes(self._archive_data)
        return path

    def _build_manifest(self) -> Dict[str, Any]:
        manifest: Dict[str, Any] = {
            "identifier": self.identifier,
            "format": FORMAT_VERSION,
            "createdOn": datetime.now(timezone.utc).isoformat(),
            "files": [file_info.manifest_entry() for file_info, _ in self._entries.values()],
        }
        if self._schemas:
            manifest["schemas"] = list(self._schemas)
        if self.data_groups:
            manifest["dataGroups"] = ",".join(self.data_groups)
        if self.schedule is not None:
            manifest.update(self.schedule.manifest_fields())
        return manifest
