"""
Shared pytest fixtures: in-memory SQLite, a fixed clock, template-only missions
"""

import os

# Must be set before config/database are imported
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["OPENAI_API_KEY"] = ""
os.environ["AI_ENABLED"] = "false"

import random
from datetime import datetime

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from database import Base
from mission_generator import MissionTextGenerator, TemplateMissionStrategy
from progress_store import SqlProgressStore
from progression_service import ProgressionService
from challenge_service import ChallengeService

NOW = datetime(2024, 5, 10, 12, 0, 0)


class FlakyStore(SqlProgressStore):
    """
    SqlProgressStore whose writes fail while `down` is set, and whose reads
    named in `failing_reads` fail once each.
    """

    def __init__(self, session_factory):
        super().__init__(session_factory)
        self.down = False
        self.failing_reads = set()

    def _read(self, action, fn):
        if action in self.failing_reads:
            self.failing_reads.discard(action)

            def fn(db):
                raise OperationalError("SELECT", {}, Exception("database unavailable"))
        return super()._read(action, fn)

    def _write(self, action, fn):
        if self.down:
            def fn(db):
                raise OperationalError("COMMIT", {}, Exception("database unavailable"))
        return super()._write(action, fn)


@pytest.fixture
def session_factory():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield sessionmaker(autocommit=False, autoflush=False, bind=engine)
    engine.dispose()


@pytest.fixture
def store(session_factory):
    return FlakyStore(session_factory)


@pytest.fixture
def generator():
    return MissionTextGenerator([TemplateMissionStrategy(random.Random(7))])


@pytest.fixture
def service(store, generator):
    return ProgressionService(store, generator, clock=lambda: NOW)


@pytest.fixture
def challenge_service(store, generator):
    return ChallengeService(store, generator, clock=lambda: NOW)


@pytest.fixture
def client(service, challenge_service):
    from main import app, get_service, get_challenge_service

    app.dependency_overrides[get_service] = lambda: service
    app.dependency_overrides[get_challenge_service] = lambda: challenge_service
    yield TestClient(app)
    app.dependency_overrides.clear()
