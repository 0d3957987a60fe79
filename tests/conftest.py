"""Pytest configuration for global fixtures and logging setup."""
from __future__ import annotations

import os
from typing import Iterator

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

os.environ["ANTHROPIC_API_KEY"] = os.environ.get("ANTHROPIC_API_KEY") or "test-anthropic-key"
os.environ["DATABASE_URL"] = "sqlite:///:memory:"

from workout_insight.logging_config import configure_logging

configure_logging()

from workout_insight.config import Settings
from workout_insight.database import Base, get_db
from workout_insight.main import app
from workout_insight.models import database_models  # noqa: F401
from workout_insight.models.schemas import ActivitySummary, UserProfile, WorkoutSample
from workout_insight.routers.analysis import get_generation_client


class FakeGenerator:
    """Stand-in for GenerationClient that records prompts and replays scripted outcomes."""

    def __init__(self, *outcomes) -> None:
        self.outcomes = list(outcomes) or ["## SUMMARY\nSolid aerobic session."]
        self.prompts: list[str] = []

    @property
    def calls(self) -> int:
        return len(self.prompts)

    async def generate(self, prompt: str) -> str:
        self.prompts.append(prompt)
        outcome = self.outcomes[0] if len(self.outcomes) == 1 else self.outcomes.pop(0)
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome


@pytest.fixture
def settings() -> Settings:
    """Settings with the production defaults and no .env influence."""

    return Settings(_env_file=None, anthropic_api_key="test-key")


@pytest.fixture
def session_factory():
    """Shared in-memory SQLite database (one connection so every session sees it)."""

    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    factory = sessionmaker(bind=engine, autoflush=False, autocommit=False)
    yield factory
    engine.dispose()


@pytest.fixture
def db_session(session_factory) -> Iterator[Session]:
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def make_generator():
    """Factory for generators with scripted outcomes (text or exceptions)."""

    return FakeGenerator


@pytest.fixture
def fake_generator() -> FakeGenerator:
    return FakeGenerator()


@pytest.fixture
def test_client(session_factory, fake_generator) -> Iterator[TestClient]:
    """FastAPI test client wired to the in-memory database and the fake generator."""

    def override_get_db():
        db = session_factory()
        try:
            yield db
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_generation_client] = lambda: fake_generator
    with TestClient(app) as client:
        yield client
    app.dependency_overrides.clear()


@pytest.fixture
def profile() -> UserProfile:
    return UserProfile(age=30, weight=70.0, height=175, resting_heart_rate=60)


@pytest.fixture
def run_activity() -> ActivitySummary:
    return ActivitySummary(
        id=9001,
        name="Morning Run",
        type="Run",
        sport_type="Run",
        moving_time=3000,
        elapsed_time=3120,
        distance=10000.0,
        total_elevation_gain=45.0,
        elev_high=120.0,
        elev_low=80.0,
        max_heartrate=178,
        max_speed=4.6,
        gear_name="Pegasus 40",
    )


@pytest.fixture
def steady_samples() -> list[WorkoutSample]:
    """120 samples: speed fades from 3.5 to 3.2 m/s while HR drifts from 140 to 150."""

    samples = []
    for index in range(120):
        first_half = index < 60
        samples.append(
            WorkoutSample(
                time=index * 25,
                distance=index * 83.0,
                heartrate=140 if first_half else 150,
                speed=3.5 if first_half else 3.2,
                cadence=170,
            )
        )
    return samples
