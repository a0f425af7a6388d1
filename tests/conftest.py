"""
Pytest configuration and fixtures for MediaGen API tests.
"""
import asyncio
import base64
import json
import time

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.config import Settings
from app.database import Base
from app.limiter import limiter
from app.main import create_app
from app.worker.bedrock_client import PollResult

# Disable rate limiting for tests
limiter.enabled = False

# Use in-memory SQLite for tests with shared connection
SQLALCHEMY_DATABASE_URL = "sqlite:///:memory:"

engine = create_engine(
    SQLALCHEMY_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# 1x1 transparent PNG
PNG_BYTES = base64.b64decode(
    "iVBORw0KGgoAAAANSUhEUgAAAAEAAAABCAYAAAAfFcSJAAAADUlEQVR42mNkYPhfDwAChwGA60e6kgAAAABJRU5ErkJggg=="
)
VIDEO_BYTES = b"\x00\x00\x00\x18ftypmp42" + b"\x00" * 64
INVOCATION_ARN = "arn:aws:bedrock:us-east-1:123456789012:async-invoke/abc123"


class FakeProvider:
    """In-process stand-in for BedrockClient.

    poll_results is consumed one per poll; the last entry repeats. An empty
    list means the job stays pending forever.
    """

    def __init__(self):
        self.poll_results = []
        self.image_bytes = PNG_BYTES
        self.video_chunks = [VIDEO_BYTES[:10], VIDEO_BYTES[10:]]
        self.invoke_error = None
        self.start_error = None
        self.download_error = None
        self.poll_delay = 0
        self.chunk_delay = 0
        self.on_poll = None
        self.invoked = []
        self.started = []
        self.opened = []
        self.polls = 0

    async def validate_credentials(self):
        return True

    async def invoke_model(self, model_id, payload):
        self.invoked.append((model_id, payload))
        if self.invoke_error:
            raise self.invoke_error
        return json.dumps({"images": [base64.b64encode(self.image_bytes).decode("ascii")]}).encode()

    async def start_async_invoke(self, model_id, model_input, output_s3_uri):
        self.started.append((model_id, model_input, output_s3_uri))
        if self.start_error:
            raise self.start_error
        return INVOCATION_ARN

    async def get_async_invoke_status(self, invocation_arn):
        self.polls += 1
        if self.on_poll:
            self.on_poll(self.polls)
        if self.poll_delay:
            await asyncio.sleep(self.poll_delay)
        if not self.poll_results:
            return PollResult(status="pending")
        if len(self.poll_results) > 1:
            return self.poll_results.pop(0)
        return self.poll_results[0]

    def open_object(self, bucket, key):
        self.opened.append((bucket, key))
        for i, chunk in enumerate(self.video_chunks):
            if i and self.chunk_delay:
                time.sleep(self.chunk_delay)
            yield chunk
        if self.download_error:
            raise self.download_error


def completed_after(pending_polls: int):
    """Poll script: pending N times, then completed."""
    return [PollResult(status="pending")] * pending_polls + [
        PollResult(status="completed", result_location="s3://nova-reel-output-videos/abc123/output.mp4")
    ]


def make_settings(tmp_path, **overrides) -> Settings:
    values = dict(
        debug=True,
        environment="test",
        media_path=str(tmp_path / "media"),
        database_url=SQLALCHEMY_DATABASE_URL,
        poll_interval_seconds=0,
        generation_timeout_seconds=30,
        job_sweep_interval_seconds=3600,
    )
    values.update(overrides)
    return Settings(**values)


@pytest.fixture(scope="function")
def settings(tmp_path):
    return make_settings(tmp_path)


@pytest.fixture(scope="function")
def provider():
    return FakeProvider()


@pytest.fixture(scope="function")
def db():
    """Create a fresh database for each test."""
    Base.metadata.create_all(bind=engine)
    session = TestingSessionLocal()

    yield session

    session.close()
    Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def app(settings, provider, db):
    return create_app(settings=settings, provider=provider, session_factory=TestingSessionLocal)


@pytest.fixture(scope="function")
def client(app):
    """Create a test client."""
    with TestClient(app) as c:
        yield c
