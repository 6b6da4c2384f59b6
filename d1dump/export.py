"""Poll-to-completion driver for remote D1 export jobs.

The export endpoint is polled until the job reports ``complete`` or
``error``. Every request echoes the ``at_bookmark`` of the previous
response so the server can resume from where it left off.
"""
from __future__ import annotations

import logging, time
from dataclasses import dataclass, replace
from typing import Any, Annotated, Callable, Dict, List, Literal, Mapping, Optional, Protocol, Sequence, Tuple, Union
from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

from .errors import ExportCancelledError, ExportTimeoutError, JobFailedError, TransportError

logger = logging.getLogger(__name__)

EXPORT_CHUNK_LIMIT = 790000
PART_UPLOADED_PREFIX = "Uploaded part"

@dataclass(frozen=True)
class ExportRequest:
    database_id: str
    tables: Tuple[str, ...] = ()
    no_schema: Optional[bool] = None
    no_data: Optional[bool] = None

    def to_body(self, bookmark: Optional[str] = None) -> Dict[str, Any]:
        dump_options: Dict[str, Any] = {"tables": list(self.tables)}
        if self.no_schema is not None:
            dump_options["noSchema"] = self.no_schema
        if self.no_data is not None:
            dump_options["noData"] = self.no_data
        dump_options["limit"] = EXPORT_CHUNK_LIMIT

        body: Dict[str, Any] = {"outputFormat": "polling", "dumpOptions": dump_options}
        if bookmark is not None:
            body["currentBookmark"] = bookmark
        return body

class ArtifactHandle(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    filename: str
    signed_url: str = Field(..., alias="signedUrl")

class _StatusBase(BaseModel):
    type: str = "export"
    messages: List[str] = Field(default_factory=list)
    errors: List[str] = Field(default_factory=list)

class ActiveStatus(_StatusBase):
    status: Literal["active"]
    at_bookmark: str

class ErrorStatus(_StatusBase):
    status: Literal["error"]
    at_bookmark: Optional[str] = None

class CompleteStatus(_StatusBase):
    status: Literal["complete"]
    at_bookmark: Optional[str] = None
    result: ArtifactHandle

JobStatus = Annotated[Union[ActiveStatus, ErrorStatus, CompleteStatus], Field(discriminator="status")]

_JOB_STATUS_ADAPTER = TypeAdapter(JobStatus)

def parse_job_status(result: Any) -> Union[ActiveStatus, ErrorStatus, CompleteStatus]:
    try:
        return _JOB_STATUS_ADAPTER.validate_python(result)
    except ValidationError as exc:
        raise TransportError(f"Malformed export status in response: {exc}") from exc

@dataclass(frozen=True)
class ProgressEvent:
    message: str
    part: Optional[int] = None

    def __str__(self) -> str:
        if self.part is not None:
            return f"{PART_UPLOADED_PREFIX} {self.part}"
        return self.message

@dataclass(frozen=True)
class PollState:
    bookmark: Optional[str] = None
    parts_uploaded: int = 0
    polls: int = 0

def renumber_progress(messages: Sequence[str], parts_uploaded: int) -> Tuple[List[ProgressEvent], int]:
    """Turn server progress lines into events, renumbering uploaded parts.

    Parts can be reported complete out of order and their ids carry no
    meaning, so each one is numbered by arrival instead.
    """
    events = []
    for line in messages:
        if line.startswith(PART_UPLOADED_PREFIX):
            parts_uploaded += 1
            events.append(ProgressEvent(message=line, part=parts_uploaded))
        else:
            events.append(ProgressEvent(message=line))
    return events, parts_uploaded

class ExportTransport(Protocol):
    def request_export(self, database_id: str, body: Mapping[str, Any]) -> Any:
        ...

ProgressCallback = Callable[[ProgressEvent], None]

def run_export(
    transport: ExportTransport,
    request: ExportRequest,
    *,
    on_progress: Optional[ProgressCallback] = None,
    poll_interval: float = 0.0,
    timeout: Optional[float] = None,
    should_cancel: Optional[Callable[[], bool]] = None,
) -> ArtifactHandle:
    """Poll the export job until it finishes and return the artifact handle.

    ``poll_interval`` and ``timeout`` default to no delay and no bound.
    ``should_cancel`` is checked before every request.

    Raises:
        TransportError: the endpoint failed or returned a malformed status.
        JobFailedError: the job finished with status ``error``.
        ExportTimeoutError: ``timeout`` elapsed before the job finished.
        ExportCancelledError: ``should_cancel`` returned true.
    """
    deadline = (time.monotonic() + timeout) if timeout is not None else None
    state = PollState()

    while True:
        if should_cancel is not None and should_cancel():
            raise ExportCancelledError(
                f"Export of database {request.database_id} cancelled after {state.polls} polls"
            )
        if deadline is not None and time.monotonic() >= deadline:
            raise ExportTimeoutError(
                f"Export of database {request.database_id} did not complete within {timeout} seconds"
            )

        logger.debug(
            "Polling export of %s (poll %d, bookmark=%s)",
            request.database_id, state.polls + 1, state.bookmark,
        )
        result = transport.request_export(request.database_id, request.to_body(state.bookmark))
        status = parse_job_status(result)

        events, parts_uploaded = renumber_progress(status.messages, state.parts_uploaded)
        for event in events:
            if on_progress is not None:
                on_progress(event)
            else:
                logger.info("%s", event)
        state = replace(state, parts_uploaded=parts_uploaded, polls=state.polls + 1)

        if isinstance(status, CompleteStatus):
            logger.debug("Export of %s complete after %d polls", request.database_id, state.polls)
            return status.result
        if isinstance(status, ErrorStatus):
            raise JobFailedError(status.errors)

        state = replace(state, bookmark=status.at_bookmark)
        if poll_interval > 0:
            time.sleep(poll_interval)
