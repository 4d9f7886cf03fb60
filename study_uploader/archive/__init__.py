"""
Archive package - turns an assessment result tree into an upload archive.

Modules:
- answers: flattens answer results into answers.json
- data_archive: the sealed zip archive and its manifest
- policies: pluggable manifest mapping and result serialization
- builder: walks the result tree and fills the archive
"""
from .answers import AnswersCollector, flatten_answer
from .builder import ArchiveBuilder, AssessmentArchiveBuilder, ResultArchiveBuilder
from .data_archive import ArchiveError, StudyDataUploadArchive
from .policies import (
    AssessmentResultFileSerializer,
    FunctionManifestMapper,
    ManifestMapper,
    PassThroughManifestMapper,
    ResultFileSerializer,
)

__all__ = [
    "AnswersCollector",
    "flatten_answer",
    "ArchiveBuilder",
    "AssessmentArchiveBuilder",
    "ResultArchiveBuilder",
    "ArchiveError",
    "StudyDataUploadArchive",
    "AssessmentResultFileSerializer",
    "FunctionManifestMapper",
    "ManifestMapper",
    "PassThroughManifestMapper",
    "ResultFileSerializer",
]
