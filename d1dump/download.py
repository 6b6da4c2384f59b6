from __future__ import annotations

import logging, os, tempfile
from pathlib import Path
from typing import Optional, Union
import httpx

from .errors import ArtifactDownloadError
from .export import ArtifactHandle

logger = logging.getLogger(__name__)

SIGNED_URL_VALIDITY = "1 hour"

def fetch_artifact(
    handle: ArtifactHandle,
    destination: Union[str, Path],
    *,
    client: Optional[httpx.Client] = None,
    timeout: float = 300.0,
) -> Path:
    """Stream the artifact behind ``handle.signed_url`` into ``destination``.

    The body is written to a temporary file next to the destination and moved
    into place only once the download finished, so a failed download never
    leaves a partial file behind and never clobbers an existing one.

    The signed URL carries its own authentication: ``client`` must not add
    credentials to the request.
    """
    path = Path(destination).expanduser()
    owns_client = client is None
    http = client if client is not None else httpx.Client(timeout=timeout, follow_redirects=True)
    tmp_name: Optional[str] = None
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".part", dir=path.parent)
        written = 0
        with os.fdopen(fd, "wb") as handle_out:
            with http.stream("GET", handle.signed_url) as response:
                response.raise_for_status()
                for block in response.iter_bytes():
                    handle_out.write(block)
                    written += len(block)
        os.replace(tmp_name, path)
        tmp_name = None
        logger.debug("Wrote %d bytes from %s to %s", written, handle.filename, path)
        return path
    except httpx.HTTPError as exc:
        raise ArtifactDownloadError(
            f"Failed to download {handle.filename}: {exc}", signed_url=handle.signed_url
        ) from exc
    except OSError as exc:
        raise ArtifactDownloadError(
            f"Failed to write {handle.filename} to {path}: {exc}", signed_url=handle.signed_url
        ) from exc
    finally:
        if tmp_name is not None:
            try:
                os.unlink(tmp_name)
            except FileNotFoundError:
                pass
        if owns_client:
            http.close()
