"""In-memory collaborators for controller and API tests."""
from __future__ import annotations

import asyncio

import pytest

from streaming_server.services.directory import MeetingCredential
from streaming_server.services.runtime import (
    InstanceConflictError,
    InstanceHandle,
    InstanceNotFoundError,
    InstanceState,
    WorkerInstance,
    WorkerSpec,
)
from streaming_server.services.streams import StreamController

WORKER_IMAGE = "bbb-stream:v1.0"


class FakeDirectory:
    def __init__(self, passwords: dict[str, str] | None = None) -> None:
        self.passwords = passwords or {}
        self.default_password = "attendee-secret"
        self.error: Exception | None = None
        self.calls: list[str] = []

    async def get_meeting_info(self, meeting_id: str) -> MeetingCredential:
        self.calls.append(meeting_id)
        if self.error is not None:
            raise self.error
        return MeetingCredential(attendee_password=self.passwords.get(meeting_id, self.default_password))


class FakeRuntime:
    """Mimics the docker daemon: unique names, auto-removed workers vanish on remove."""

    def __init__(self) -> None:
        self.instances: dict[str, WorkerInstance] = {}
        self.created: list[WorkerSpec] = []
        self.started: list[str] = []
        self.removed: list[str] = []
        self.fail_create: Exception | None = None
        self.fail_start: Exception | None = None
        self.fail_remove: Exception | None = None

    def add_instance(self, name: str, image: str = WORKER_IMAGE, state: InstanceState = InstanceState.RUNNING) -> None:
        self.instances[name] = WorkerInstance(name=name, image=image, state=state)

    async def list_instances(self, image: str) -> list[WorkerInstance]:
        await asyncio.sleep(0)
        return [instance for instance in self.instances.values() if instance.image == image]

    async def create_instance(self, spec: WorkerSpec) -> InstanceHandle:
        await asyncio.sleep(0)
        if self.fail_create is not None:
            raise self.fail_create
        if spec.name in self.instances:
            raise InstanceConflictError(f"Container {spec.name} already exists")
        self.created.append(spec)
        self.instances[spec.name] = WorkerInstance(name=spec.name, image=spec.image, state=InstanceState.CREATED)
        return InstanceHandle(id=f"id-{spec.name}", name=spec.name)

    async def start_instance(self, handle: InstanceHandle) -> None:
        if self.fail_start is not None:
            raise self.fail_start
        self.started.append(handle.name)
        instance = self.instances[handle.name]
        self.instances[handle.name] = WorkerInstance(
            name=instance.name, image=instance.image, state=InstanceState.RUNNING
        )

    async def remove_instance(self, name: str, *, force: bool = True) -> None:
        if self.fail_remove is not None:
            raise self.fail_remove
        if name not in self.instances:
            raise InstanceNotFoundError(f"Container {name} does not exist")
        self.removed.append(name)
        del self.instances[name]


@pytest.fixture
def directory() -> FakeDirectory:
    return FakeDirectory()


@pytest.fixture
def runtime() -> FakeRuntime:
    return FakeRuntime()


@pytest.fixture
def make_controller(directory: FakeDirectory, runtime: FakeRuntime):
    def _make(max_concurrent_streams: int = 5, **kwargs) -> StreamController:
        return StreamController(
            directory,
            runtime,
            max_concurrent_streams=max_concurrent_streams,
            worker_image=WORKER_IMAGE,
            **kwargs,
        )

    return _make
