"""Stream lifecycle controller.

Admits, provisions, and tears down one streaming worker per meeting. The
controller keeps no record of running workers: the runtime substrate is the
only source of truth, and the pool is re-read on every admission check.
"""
from __future__ import annotations

import asyncio
import logging
import re
from functools import lru_cache

from ..core.config import settings
from ..core.errors import (
    CapacityExceeded,
    ProvisioningError,
    StartError,
    TeardownError,
    ValidationError,
)
from ..schemas import streams as schemas
from .directory import MeetingCredential, MeetingDirectory, MeetingDirectoryClient
from .runtime import (
    DockerRuntimeClient,
    InstanceConflictError,
    InstanceHandle,
    InstanceNotFoundError,
    RuntimeClient,
    RuntimeClientError,
    WorkerSpec,
)

logger = logging.getLogger(__name__)

DEFAULT_WORKER_IMAGE = "bbb-stream:v1.0"
DEFAULT_NAME_PREFIX = "bbb-stream-"
DEFAULT_CONTROL_SOCKET = "/var/run/docker.sock"

_SAFE_MEETING_ID = re.compile(r"^[A-Za-z0-9_.-]+$")

MESSAGE_STARTED = "Stream started successfully"
MESSAGE_STOPPED = "Stream stopped successfully"


def derive_worker_name(meeting_id: str, prefix: str = DEFAULT_NAME_PREFIX) -> str:
    """Return the deterministic worker name for ``meeting_id``.

    Only ``[A-Za-z0-9_.-]`` is accepted so two meetings can never map onto the
    same name and the result is always a valid container name.
    """

    if not meeting_id:
        raise ValidationError("meetingId is required")
    if not _SAFE_MEETING_ID.match(meeting_id):
        raise ValidationError("meetingId may only contain letters, digits, '_', '.' and '-'")
    return f"{prefix}{meeting_id}"


def build_worker_environment(
    payload: schemas.StreamStartRequest,
    credential: MeetingCredential,
) -> dict[str, str]:
    """Map the request and fetched credential onto the worker's variables."""

    return {
        "MEETING_ID": payload.meeting_id,
        "ATTENDEE_PW": credential.attendee_password,
        "HIDE_PRESENTATION": "true" if payload.hide_presentation else "false",
        "RTMP_URL": payload.rtmp_url,
    }


class StreamController:
    """Start and stop streaming workers against a capacity limit."""

    def __init__(
        self,
        directory: MeetingDirectory,
        runtime: RuntimeClient,
        *,
        max_concurrent_streams: int,
        worker_image: str = DEFAULT_WORKER_IMAGE,
        worker_name_prefix: str = DEFAULT_NAME_PREFIX,
        control_socket_path: str = DEFAULT_CONTROL_SOCKET,
        remove_on_start_failure: bool = False,
    ) -> None:
        if max_concurrent_streams < 0:
            raise ValueError("max_concurrent_streams must be >= 0")

        self.directory = directory
        self.runtime = runtime
        self.max_concurrent_streams = max_concurrent_streams
        self.worker_image = worker_image
        self.worker_name_prefix = worker_name_prefix
        self.control_socket_path = control_socket_path
        self.remove_on_start_failure = remove_on_start_failure
        self._admission_lock = asyncio.Lock()

    async def current_load(self) -> int:
        """Count worker-image instances, including exited ones still listed."""

        try:
            instances = await self.runtime.list_instances(self.worker_image)
        except RuntimeClientError as exc:
            raise ProvisioningError("Could not inspect running workers") from exc
        return len(instances)

    async def start(self, payload: schemas.StreamStartRequest) -> schemas.StreamAck:
        """Admit and launch a worker for the requested meeting."""

        if not payload.meeting_id:
            raise ValidationError("meetingId is required")
        if not payload.rtmp_url:
            raise ValidationError("rtmpUrl is required")
        name = derive_worker_name(payload.meeting_id, self.worker_name_prefix)

        credential = await self.directory.get_meeting_info(payload.meeting_id)
        spec = WorkerSpec(
            name=name,
            image=self.worker_image,
            environment=build_worker_environment(payload, credential),
            bind_mounts=(f"{self.control_socket_path}:{self.control_socket_path}",),
            auto_remove=True,
        )

        async with self._admission_lock:
            load = await self.current_load()
            if load >= self.max_concurrent_streams:
                logger.warning(
                    "Rejecting stream for meeting %s: %s/%s workers running",
                    payload.meeting_id,
                    load,
                    self.max_concurrent_streams,
                )
                raise CapacityExceeded("Too many streams: the stream limit is reached. Try again later.")

            handle = await self._create(spec)

        await self._start(handle)
        logger.info("Stream started for meeting %s as %s", payload.meeting_id, name)
        return schemas.StreamAck(message=MESSAGE_STARTED)

    async def stop(self, meeting_id: str) -> schemas.StreamAck:
        """Force-remove the meeting's worker; an absent worker counts as stopped."""

        name = derive_worker_name(meeting_id, self.worker_name_prefix)
        try:
            await self.runtime.remove_instance(name, force=True)
        except InstanceNotFoundError:
            logger.info("Worker %s already gone", name)
        except RuntimeClientError as exc:
            logger.warning("Failed to remove worker %s: %s", name, exc)
            raise TeardownError(f"Could not stop stream for meeting {meeting_id}") from exc
        else:
            logger.info("Stream stopped for meeting %s", meeting_id)
        return schemas.StreamAck(message=MESSAGE_STOPPED)

    async def _create(self, spec: WorkerSpec) -> InstanceHandle:
        try:
            return await self.runtime.create_instance(spec)
        except InstanceConflictError as exc:
            logger.warning("Worker %s already exists", spec.name)
            raise ProvisioningError("A stream for this meeting is already running") from exc
        except RuntimeClientError as exc:
            logger.warning("Failed to create worker %s: %s", spec.name, exc)
            raise ProvisioningError("Could not create the stream worker") from exc

    async def _start(self, handle: InstanceHandle) -> None:
        try:
            await self.runtime.start_instance(handle)
        except RuntimeClientError as exc:
            logger.warning("Failed to start worker %s: %s", handle.name, exc)
            if self.remove_on_start_failure:
                await self._discard(handle)
            raise StartError("The stream worker was created but did not start") from exc

    async def _discard(self, handle: InstanceHandle) -> None:
        try:
            await self.runtime.remove_instance(handle.name, force=True)
        except InstanceNotFoundError:
            pass
        except RuntimeClientError as exc:
            logger.error("Could not remove unstarted worker %s: %s", handle.name, exc)


@lru_cache
def get_stream_controller() -> StreamController:
    """Return the process-wide controller built from settings."""

    directory = MeetingDirectoryClient(
        settings.bbb_url,
        settings.bbb_secret,
        algorithm=settings.bbb_checksum_algorithm,
        timeout=settings.directory_timeout_seconds,
    )
    runtime = DockerRuntimeClient(settings.docker_base_url, timeout=settings.runtime_timeout_seconds)
    return StreamController(
        directory,
        runtime,
        max_concurrent_streams=settings.max_concurrent_streams,
        worker_image=settings.worker_image,
        worker_name_prefix=settings.worker_name_prefix,
        control_socket_path=settings.docker_socket_path,
        remove_on_start_failure=settings.remove_on_start_failure,
    )
