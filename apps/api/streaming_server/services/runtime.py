"""Runtime adapter for worker instances.

The controller only depends on :class:`RuntimeClient`. :class:`DockerRuntimeClient`
satisfies it against a local Docker daemon; tests substitute in-memory fakes.
"""
from __future__ import annotations

import asyncio
import enum
import logging
import math
from dataclasses import dataclass, field
from functools import partial
from typing import Any, Callable, Protocol, TypeVar

import docker
from docker.errors import APIError, DockerException, ImageNotFound, NotFound
from requests.exceptions import RequestException

logger = logging.getLogger(__name__)

T = TypeVar("T")


class InstanceState(str, enum.Enum):
    CREATED = "created"
    RUNNING = "running"
    EXITED = "exited"
    ABSENT = "absent"


@dataclass(slots=True, frozen=True)
class WorkerSpec:
    """Everything needed to create one worker instance."""

    name: str
    image: str
    environment: dict[str, str] = field(repr=False)
    bind_mounts: tuple[str, ...] = ()
    auto_remove: bool = True


@dataclass(slots=True, frozen=True)
class WorkerInstance:
    name: str
    image: str
    state: InstanceState


@dataclass(slots=True, frozen=True)
class InstanceHandle:
    id: str
    name: str


class RuntimeClientError(RuntimeError):
    """Raised when the runtime substrate rejects or fails an operation."""


class InstanceConflictError(RuntimeClientError):
    """An instance with the requested name already exists."""


class InstanceNotFoundError(RuntimeClientError):
    """The instance is absent, or the substrate is already removing it."""


class RuntimeClient(Protocol):
    async def list_instances(self, image: str) -> list[WorkerInstance]:
        ...

    async def create_instance(self, spec: WorkerSpec) -> InstanceHandle:
        ...

    async def start_instance(self, handle: InstanceHandle) -> None:
        ...

    async def remove_instance(self, name: str, *, force: bool = True) -> None:
        ...


def _map_state(value: str | None) -> InstanceState:
    lowered = (value or "").lower()
    if lowered in {"running", "restarting", "paused"}:
        return InstanceState.RUNNING
    if lowered == "created":
        return InstanceState.CREATED
    if lowered in {"exited", "dead", "removing"}:
        return InstanceState.EXITED
    return InstanceState.ABSENT


def _container_name(summary: dict[str, Any]) -> str:
    names = summary.get("Names") or []
    if names:
        return str(names[0]).lstrip("/")
    return str(summary.get("Id", ""))


class DockerRuntimeClient:
    """Docker daemon backed :class:`RuntimeClient`.

    The docker SDK is blocking, so every call runs in the default executor and
    is bounded by ``timeout`` seconds.
    """

    def __init__(
        self,
        base_url: str = "unix:///var/run/docker.sock",
        *,
        timeout: float = 30.0,
        client: Any | None = None,
    ) -> None:
        self._base_url = base_url
        self._timeout = timeout
        self._client = client

    def _connect(self) -> Any:
        return docker.DockerClient(base_url=self._base_url, timeout=math.ceil(self._timeout))

    async def _get_client(self) -> Any:
        """Connect lazily, off the event loop, so the app can import without a daemon."""

        if self._client is None:
            self._client = await self._run(self._connect)
        return self._client

    async def _run(self, func: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        loop = asyncio.get_running_loop()
        call = partial(func, *args, **kwargs)
        try:
            return await asyncio.wait_for(loop.run_in_executor(None, call), timeout=self._timeout)
        except asyncio.TimeoutError as exc:
            raise RuntimeClientError("Runtime call timed out") from exc

    async def list_instances(self, image: str) -> list[WorkerInstance]:
        """Return every container, in any state, created from exactly ``image``."""

        try:
            client = await self._get_client()
            summaries = await self._run(client.api.containers, all=True)
        except (DockerException, RequestException) as exc:
            raise RuntimeClientError(f"Could not list containers: {_describe(exc)}") from exc

        return [
            WorkerInstance(
                name=_container_name(summary),
                image=summary.get("Image", ""),
                state=_map_state(summary.get("State")),
            )
            for summary in summaries
            if summary.get("Image") == image
        ]

    async def create_instance(self, spec: WorkerSpec) -> InstanceHandle:
        try:
            client = await self._get_client()
            container = await self._run(
                client.containers.create,
                image=spec.image,
                name=spec.name,
                environment=dict(spec.environment),
                tty=False,
                auto_remove=spec.auto_remove,
                volumes=list(spec.bind_mounts),
            )
        except ImageNotFound as exc:
            raise RuntimeClientError(f"Worker image {spec.image} is not available") from exc
        except APIError as exc:
            if exc.status_code == 409:
                raise InstanceConflictError(f"Container {spec.name} already exists") from exc
            raise RuntimeClientError(f"Could not create container {spec.name}: {_describe(exc)}") from exc
        except (DockerException, RequestException) as exc:
            raise RuntimeClientError(f"Could not create container {spec.name}: {_describe(exc)}") from exc

        return InstanceHandle(id=container.id, name=spec.name)

    async def start_instance(self, handle: InstanceHandle) -> None:
        try:
            client = await self._get_client()
            await self._run(client.api.start, handle.id)
        except (DockerException, RequestException) as exc:
            raise RuntimeClientError(f"Could not start container {handle.name}: {_describe(exc)}") from exc

    async def remove_instance(self, name: str, *, force: bool = True) -> None:
        try:
            client = await self._get_client()
            await self._run(client.api.remove_container, name, force=force)
        except NotFound as exc:
            raise InstanceNotFoundError(f"Container {name} does not exist") from exc
        except APIError as exc:
            # Auto-remove already in flight for an exited worker.
            if exc.status_code == 409 and "already in progress" in _describe(exc):
                raise InstanceNotFoundError(f"Container {name} is already being removed") from exc
            raise RuntimeClientError(f"Could not remove container {name}: {_describe(exc)}") from exc
        except (DockerException, RequestException) as exc:
            raise RuntimeClientError(f"Could not remove container {name}: {_describe(exc)}") from exc


def _describe(exc: Exception) -> str:
    explanation = getattr(exc, "explanation", None)
    if explanation:
        return str(explanation)
    return type(exc).__name__
