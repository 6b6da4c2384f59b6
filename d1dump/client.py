from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, Mapping, Optional, Union
import httpx, logging

from .config import AppConfig, DatabaseBinding
from .download import SIGNED_URL_VALIDITY, fetch_artifact
from .errors import DatabaseNotFoundError, TransportError
from .export import ArtifactHandle, ExportRequest, ProgressCallback, run_export

logger = logging.getLogger(__name__)

@dataclass(frozen=True)
class Database:
    uuid: str
    name: str

class D1Client:
    def __init__(
        self,
        config: AppConfig,
        *,
        client: Optional[httpx.Client] = None,
        download_client: Optional[httpx.Client] = None,
    ):
        self._config = config
        self._client: Optional[httpx.Client] = client
        self._owns_client = client is None
        self._download_client = download_client

    def __enter__(self) -> "D1Client":
        self._ensure_client()
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    @classmethod
    def from_config(cls, path: str, overrides: Optional[Dict[str, Any]] = None):
        config = AppConfig.load(path, overrides=overrides)
        return cls(config=config)

    @classmethod
    def from_dict(cls, config_dict: Dict[str, Any]):
        config = AppConfig.model_validate(config_dict)
        return cls(config=config)

    @property
    def config(self) -> AppConfig:
        return self._config

    def close(self) -> None:
        if self._client is not None and self._owns_client:
            self._client.close()
        self._client = None

    def request_export(self, database_id: str, body: Mapping[str, Any]) -> Any:
        account_id = self._config.server.account_id
        path = f"/accounts/{account_id}/d1/database/{database_id}/export"
        return self._call("POST", path, json=dict(body))

    def resolve_database(
        self, name: str, bindings: Optional[Iterable[DatabaseBinding]] = None
    ) -> Database:
        if bindings is None:
            bindings = self._config.databases
        for binding in bindings:
            if name in (binding.binding, binding.database_name):
                return Database(uuid=binding.database_id, name=binding.database_name)

        account_id = self._config.server.account_id
        result = self._call("GET", f"/accounts/{account_id}/d1/database", params={"name": name})
        for entry in result or []:
            if isinstance(entry, dict) and entry.get("name") == name and entry.get("uuid"):
                return Database(uuid=str(entry["uuid"]), name=name)
        raise DatabaseNotFoundError(name)

    def run_export(
        self,
        request: ExportRequest,
        *,
        on_progress: Optional[ProgressCallback] = None,
        should_cancel: Optional[Callable[[], bool]] = None,
    ) -> ArtifactHandle:
        export_config = self._config.export
        return run_export(
            self,
            request,
            on_progress=on_progress,
            poll_interval=export_config.poll_interval,
            timeout=export_config.timeout,
            should_cancel=should_cancel,
        )

    def download_artifact(self, handle: ArtifactHandle, destination: Union[str, Path]) -> Path:
        return fetch_artifact(
            handle,
            destination,
            client=self._download_client,
            timeout=self._config.export.download_timeout,
        )

    def export_database(
        self,
        name: str,
        destination: Optional[Union[str, Path]] = None,
        *,
        on_progress: Optional[ProgressCallback] = None,
        should_cancel: Optional[Callable[[], bool]] = None,
    ) -> Path:
        destination = destination or self._config.export.output
        if not destination:
            raise ValueError("An output path is required to export a database")

        database = self.resolve_database(name)
        logger.info("Executing on remote database %s (%s)", database.name, database.uuid)
        logger.info("Creating export...")
        handle = self.run_export(
            self._config.export.to_request(database.uuid),
            on_progress=on_progress,
            should_cancel=should_cancel,
        )

        logger.info("Downloading SQL to %s...", destination)
        logger.info(
            "If this download fails, you can retry downloading the following URL manually. "
            "It is valid for %s: %s",
            SIGNED_URL_VALIDITY, handle.signed_url,
        )
        return self.download_artifact(handle, destination)

    def _call(self, method: str, path: str, **kwargs: Any) -> Any:
        try:
            response = self._ensure_client().request(method, path, **kwargs)
        except httpx.HTTPError as exc:
            raise TransportError(f"{method} {path} failed: {exc}") from exc

        try:
            envelope = response.json()
        except ValueError as exc:
            raise TransportError(
                f"{method} {path} returned a non-JSON response (HTTP {response.status_code})"
            ) from exc
        if not isinstance(envelope, dict):
            raise TransportError(f"{method} {path} returned an unexpected response envelope")

        if not envelope.get("success"):
            raise TransportError(self._envelope_error(envelope, response.status_code))
        if response.is_error:
            raise TransportError(f"{method} {path} failed with HTTP {response.status_code}")
        return envelope.get("result")

    @staticmethod
    def _envelope_error(envelope: Dict[str, Any], status_code: int) -> str:
        error = envelope.get("error")
        if isinstance(error, str) and error:
            return error
        messages = []
        for item in envelope.get("errors") or []:
            if isinstance(item, dict):
                message = item.get("message")
                code = item.get("code")
                if message and code is not None:
                    messages.append(f"{message} [code: {code}]")
                elif message:
                    messages.append(str(message))
            elif item:
                messages.append(str(item))
        return "\n".join(messages) or f"Request failed with HTTP {status_code}"

    def _ensure_client(self) -> httpx.Client:
        if self._client is None:
            server = self._config.server
            headers = self._build_headers()
            self._client = httpx.Client(
                base_url=str(server.base_url),
                timeout=server.request_timeout,
                headers=headers,
                verify=server.verify_tls,
            )
            self._owns_client = True
        return self._client

    def _build_headers(self) -> Dict[str, str]:
        headers = dict(self._config.server.headers)
        if self._config.server.api_token:
            headers.setdefault("Authorization", f"Bearer {self._config.server.api_token}")
        headers.setdefault("Accept", "application/json")
        return headers
