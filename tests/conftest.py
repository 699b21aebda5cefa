import itertools
import os
import tempfile

# keep logs, backups and the default queue file out of the user's data dir
os.environ.setdefault("FIELDSYNC_DATA_DIR", tempfile.mkdtemp(prefix="fieldsync-tests-"))

import pytest
from sqlmodel import Session, SQLModel, create_engine

import models.queued_operation  # noqa: F401
from services.operation_queue import OperationQueue


@pytest.fixture()
def engine():
    engine = create_engine("sqlite:///:memory:")
    SQLModel.metadata.create_all(engine)
    return engine


@pytest.fixture()
def session_factory(engine):
    def factory():
        return Session(engine)

    return factory


class FakeClock:
    """Hands out scripted timestamps, then keeps counting up."""

    def __init__(self, *values: int):
        self._scripted = list(values)
        self._counter = itertools.count(10_000)

    def __call__(self) -> int:
        if self._scripted:
            return self._scripted.pop(0)
        return next(self._counter)


@pytest.fixture()
def clock():
    return FakeClock()


@pytest.fixture()
def queue(session_factory, clock):
    return OperationQueue(session_factory=session_factory, clock=clock)
