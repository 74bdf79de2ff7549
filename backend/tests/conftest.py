import os
from datetime import datetime, timedelta, timezone

# Credenciales falsas: ningun test debe poder hablar con AWS real.
os.environ.setdefault("AWS_ACCESS_KEY_ID", "testing")
os.environ.setdefault("AWS_SECRET_ACCESS_KEY", "testing")
os.environ.setdefault("AWS_DEFAULT_REGION", "us-east-1")

import boto3
import pytest
from fastapi.testclient import TestClient
from moto import mock_aws

from todo_api.config import settings
from todo_api.main import create_app
from todo_api.models.schemas import Credential, FilterSettings, UsagePlan
from todo_api.services.auth_gate import AuthGate
from todo_api.services.filter_chain import build_filter_chain
from todo_api.services.item_store import ItemStore
from todo_api.services.rate_limiter import RateLimiter

API_KEY = "test-api-key"
DISABLED_KEY = "retired-api-key"
ORIGIN = "http://localhost:5173"


class FakeClock:
    """Reloj controlable: monotono (segundos) y de pared (UTC)."""

    def __init__(self, start=datetime(2024, 3, 15, 12, 0, tzinfo=timezone.utc)):
        self.seconds = 1000.0
        self.wall = start

    def monotonic(self):
        return self.seconds

    def now(self):
        return self.wall

    def advance(self, seconds):
        self.seconds += seconds
        self.wall += timedelta(seconds=seconds)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def dynamodb():
    """Provide a mocked DynamoDB resource."""
    with mock_aws():
        yield boto3.resource("dynamodb", region_name=settings.AWS_REGION)


@pytest.fixture
def store(dynamodb):
    store = ItemStore(resource=dynamodb, table_name="todo-items-test")
    store.create_table()
    return store


@pytest.fixture
def make_client(store, clock):
    """Construye un TestClient con el plan y los filtros indicados."""

    def _make(plan=None, filters=None):
        plan = plan or UsagePlan(rate=100, burst=100, quota_limit=10_000)
        credentials = [
            Credential(id="frontend", secret=API_KEY),
            Credential(id="retired", secret=DISABLED_KEY, enabled=False),
        ]
        app = create_app(
            item_store=store,
            auth_gate=AuthGate(credentials),
            rate_limiter=RateLimiter(
                {"default": plan},
                {credential.id: credential.plan for credential in credentials},
                monotonic=clock.monotonic,
                clock=clock.now,
            ),
            filter_chain=build_filter_chain(filters or FilterSettings()),
        )
        return TestClient(app)

    return _make


@pytest.fixture
def client(make_client):
    return make_client()
