"""
Archive Builder - packages a completed assessment result for upload.

Walks the result tree depth first (step history, then async results) and:
1. Adds the files produced by file-archivable results
2. Flattens answer results into a single answers.json document
3. Optionally adds the top-level assessmentResult.json
4. Seals the archive and hands it back to the caller
"""
import asyncio
import json
import logging
import shutil
from abc import ABC, abstractmethod
from datetime import datetime
from pathlib import Path
from typing import Any, Iterable, List, Optional, Union
from uuid import UUID

from ..config import settings
from ..models import (
    AssessmentResult,
    AssessmentScheduleInfo,
    BranchResult,
    ClientInfo,
    NodeKind,
    ResultData,
)
from .answers import AnswersCollector
from .data_archive import ArchiveError, StudyDataUploadArchive
from .policies import (
    AssessmentResultFileSerializer,
    ManifestMapper,
    PassThroughManifestMapper,
    ResultFileSerializer,
)

logger = logging.getLogger(__name__)

# Adherence records can't hold more than this in their client data.
ADHERENCE_DATA_LIMIT = 64 * 1024


class ArchiveBuilder(ABC):
    """Builds one archive for upload and cleans up after it."""

    @property
    @abstractmethod
    def uuid(self) -> UUID:
        """A unique identifier that can be used to track the build until it is complete."""

    @property
    @abstractmethod
    def identifier(self) -> str:
        """An identifier for logging."""

    @abstractmethod
    async def build_archive(self) -> StudyDataUploadArchive:
        ...

    @abstractmethod
    async def cleanup(self) -> None:
        ...


class ResultArchiveBuilder(ArchiveBuilder):
    """
    An archive builder that also exposes what an adherence record needs to
    match the upload to a scheduled session.
    """

    @property
    @abstractmethod
    def started_on(self) -> datetime:
        ...

    @property
    @abstractmethod
    def ended_on(self) -> datetime:
        ...

    @property
    @abstractmethod
    def adherence_data(self) -> Optional[Any]:
        """Data to add to the adherence record. Limited to 64kb."""


def _adherence_payload(adherence_data: Any, client_info: ClientInfo, identifier: str) -> Optional[Any]:
    if adherence_data is None:
        return None
    if isinstance(adherence_data, dict):
        adherence_data = client_info.appending_to(adherence_data)
    size = len(json.dumps(adherence_data, default=str).encode("utf-8"))
    if size > ADHERENCE_DATA_LIMIT:
        logger.warning(
            "Dropping adherence data for %s: %d bytes exceeds %d byte limit",
            identifier, size, ADHERENCE_DATA_LIMIT
        )
        return None
    return adherence_data


class AssessmentArchiveBuilder(ResultArchiveBuilder):
    """
    The archive builder to use with an assessment result.

    One instance builds exactly one archive. Call cleanup() afterwards whether
    or not the build succeeded.
    """

    def __init__(
        self,
        assessment_result: AssessmentResult,
        *,
        schedule: Optional[AssessmentScheduleInfo] = None,
        adherence_data: Any = None,
        output_directory: Optional[Union[str, Path]] = None,
        data_groups: Optional[Iterable[str]] = None,
        client_info: Optional[ClientInfo] = None,
        manifest_mapper: Optional[ManifestMapper] = None,
        result_serializer: Optional[ResultFileSerializer] = None
    ):
        """
        Args:
            assessment_result: The result to be processed for archive and upload
            schedule: Schedule the assessment was run for
            adherence_data: Data to attach to the adherence record
            output_directory: Directory where recorders wrote their files.
                It is deleted by cleanup().
            data_groups: Data groups of the participant
            client_info: Platform metadata (defaults to the configured settings)
            manifest_mapper: Decides the manifest info of each archived file
            result_serializer: Produces the top-level assessment result file

        Raises:
            ArchiveError: If an archive can't be created for this result
        """
        self.assessment_result = assessment_result
        self.output_directory = Path(output_directory) if output_directory is not None else None
        self.archive = StudyDataUploadArchive(
            assessment_result.identifier,
            schedule=schedule,
            data_groups=data_groups
        )
        self.manifest_mapper = manifest_mapper or PassThroughManifestMapper()
        self.result_serializer = result_serializer or AssessmentResultFileSerializer()
        self.answers = AnswersCollector()
        self._adherence_data = _adherence_payload(
            adherence_data,
            client_info or settings.client_info(),
            assessment_result.identifier
        )

    @classmethod
    def create(cls, assessment_result: AssessmentResult, **kwargs) -> Optional["AssessmentArchiveBuilder"]:
        """Create a builder, or return None if the archive can't be created."""
        try:
            return cls(assessment_result, **kwargs)
        except ArchiveError as e:
            logger.warning("Cannot create archive builder for %s: %s", assessment_result.identifier, e)
            return None

    @property
    def uuid(self) -> UUID:
        return self.assessment_result.task_run_uuid

    @property
    def identifier(self) -> str:
        return self.archive.identifier

    @property
    def started_on(self) -> datetime:
        return self.assessment_result.start_date

    @property
    def ended_on(self) -> datetime:
        return self.assessment_result.end_date

    @property
    def adherence_data(self) -> Optional[Any]:
        return self._adherence_data

    async def cleanup(self) -> None:
        if self.output_directory is None:
            return
        logger.debug("Removing output directory %s", self.output_directory)
        await asyncio.to_thread(shutil.rmtree, self.output_directory)

    async def build_archive(self) -> StudyDataUploadArchive:
        result = self.assessment_result

        # Add the archivable results and collect the answers.
        await self._add_branch_results(result)

        # answers.json is best-effort; the rest of the archive still gets sealed.
        if not self.answers.is_empty:
            try:
                data, file_info, schema = self.answers.build_file(result.identifier, result.end_date)
                self.archive.add_file(data, file_info, local_schema=schema)
            except Exception as e:
                logger.error("Failed to create answers file for %s: %s", result.identifier, e, exc_info=True)

        result_file = await asyncio.to_thread(self.result_serializer.serialize, result)
        if result_file is not None:
            data, file_info = result_file
            self.archive.add_file(data, file_info)

        await asyncio.to_thread(self.archive.complete_archive)
        return self.archive

    async def _add_branch_results(self, branch: Union[AssessmentResult, BranchResult], step_path: Optional[str] = None) -> None:
        await self._add_results(branch.step_history, step_path)
        if branch.async_results:
            await self._add_results(branch.async_results, step_path)

    async def _add_results(self, results: List[ResultData], step_path: Optional[str] = None) -> None:
        for result in results:
            await self._add_result(result, step_path)

    async def _add_result(self, result: ResultData, step_path: Optional[str] = None) -> None:
        path = f"{step_path}/{result.identifier}" if step_path is not None else result.identifier
        kind = getattr(result, "node_kind", NodeKind.OPAQUE)

        if kind == NodeKind.BRANCH:
            await self._add_branch_results(result, path)
        elif kind == NodeKind.COLLECTION:
            # Children are keyed under the collection's parent, not the collection.
            await self._add_results(result.children, step_path)
        elif kind == NodeKind.FILE_ARCHIVABLE:
            await self._add_file(result, step_path)
        elif kind == NodeKind.ANSWER:
            self.answers.record(path, result)

    async def _add_file(self, result: ResultData, step_path: Optional[str]) -> None:
        archivable = await result.build_archivable_file_data(step_path)
        if archivable is None:
            return
        file_info, data = archivable
        manifest_info = self.manifest_mapper.map(result, file_info)
        if manifest_info is None:
            logger.debug("Skipping %s for %s", file_info.filename, self.identifier)
            return
        self.archive.add_file(data, manifest_info)
