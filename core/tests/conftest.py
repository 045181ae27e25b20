"""Shared fixtures for lessonflow tests."""

import pytest
import pytest_asyncio

from lessonflow.graph.channels import Channel, append, merge_by_key
from lessonflow.graph.state import StateSchema
from lessonflow.storage.checkpoint_store import FileCheckpointStore, InMemoryCheckpointStore
from lessonflow.storage.sqlite_store import SQLiteCheckpointStore


@pytest.fixture
def schema():
    return StateSchema(
        Channel("log", list[str], reducer=append, default=list),
        Channel("approved", bool | None),
        Channel("answer", str | None),
        Channel("topics", list[dict], reducer=merge_by_key("topic"), default=list),
        Channel("count", int, default=0),
    )


@pytest.fixture
def memory_store():
    return InMemoryCheckpointStore()


@pytest.fixture
def file_store(tmp_path):
    return FileCheckpointStore(tmp_path / "checkpoints")


@pytest_asyncio.fixture
async def sqlite_store(tmp_path):
    store = SQLiteCheckpointStore(tmp_path / "checkpoints.db")
    yield store
    await store.close()


@pytest_asyncio.fixture(params=["memory", "file", "sqlite"])
async def any_store(request, tmp_path):
    if request.param == "memory":
        yield InMemoryCheckpointStore()
    elif request.param == "file":
        yield FileCheckpointStore(tmp_path / "checkpoints")
    else:
        store = SQLiteCheckpointStore(tmp_path / "checkpoints.db")
        yield store
        await store.close()
