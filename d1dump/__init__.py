from .client import D1Client, Database
from .config import AppConfig, DatabaseBinding, ExportConfig, ServerConfig
from .download import fetch_artifact
from .errors import (
    ArtifactDownloadError,
    D1ExportError,
    DatabaseNotFoundError,
    ExportCancelledError,
    ExportTimeoutError,
    JobFailedError,
    TransportError,
)
from .export import (
    EXPORT_CHUNK_LIMIT,
    ArtifactHandle,
    ExportRequest,
    ProgressEvent,
    parse_job_status,
    renumber_progress,
    run_export,
)

__all__ = [
    "AppConfig",
    "ArtifactDownloadError",
    "ArtifactHandle",
    "D1Client",
    "D1ExportError",
    "Database",
    "DatabaseBinding",
    "DatabaseNotFoundError",
    "EXPORT_CHUNK_LIMIT",
    "ExportCancelledError",
    "ExportConfig",
    "ExportRequest",
    "ExportTimeoutError",
    "JobFailedError",
    "ProgressEvent",
    "ServerConfig",
    "TransportError",
    "fetch_artifact",
    "parse_job_status",
    "renumber_progress",
    "run_export",
]
