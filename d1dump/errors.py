from __future__ import annotations

from typing import Iterable, List, Optional

__all__ = [
    "D1ExportError",
    "TransportError",
    "JobFailedError",
    "ArtifactDownloadError",
    "DatabaseNotFoundError",
    "ExportTimeoutError",
    "ExportCancelledError",
]

class D1ExportError(Exception):
    pass

class TransportError(D1ExportError):
    """The export endpoint could not be reached or answered with a bad envelope."""

class JobFailedError(D1ExportError):
    def __init__(self, errors: Iterable[str]):
        self.errors: List[str] = [str(error) for error in errors]
        super().__init__("\n".join(self.errors) or "Export job failed")

class ArtifactDownloadError(D1ExportError, OSError):
    def __init__(self, message: str, *, signed_url: Optional[str] = None):
        super().__init__(message)
        self.signed_url = signed_url

class DatabaseNotFoundError(D1ExportError):
    def __init__(self, name: str):
        super().__init__(f"Couldn't find DB with name '{name}'")
        self.name = name

class ExportTimeoutError(D1ExportError, TimeoutError):
    pass

class ExportCancelledError(D1ExportError):
    pass
