import json
import os
import sys
import uuid
from copy import deepcopy
from pathlib import Path

import pytest

ROOT_DIR = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT_DIR))

TEST_DB_PATH = ROOT_DIR / "test_campaign_studio.db"

os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("DATABASE_URL", f"sqlite:///{TEST_DB_PATH}")
os.environ.setdefault("SUPABASE_JWT_SECRET", "test-jwt-secret-with-enough-length-for-hs256")
os.environ.setdefault("LANGFUSE_ENABLED", "false")
os.environ.setdefault("RATE_LIMIT_DEFAULT_TIER", "pro")
os.environ.setdefault("APP_BASE_URL", "https://app.example.test")

from alembic import command
from alembic.config import Config
from fastapi.testclient import TestClient
from sqlalchemy import event
from sqlalchemy.orm import sessionmaker

from app.auth.dependencies import AuthContext, get_current_user
from app.db.base import engine
from app.db.deps import get_session
from app.llm.client import LLMCompletion
from app.main import app
from app.routers.ai import get_llm_client


SAMPLE_CAMPAIGN = {
    "campaignName": "Spring Launch",
    "campaignType": "one-time",
    "recommendedSegment": "active_users",
    "strategy": {"goal": "Drive trial signups", "keyMessage": "Ship faster with less effort"},
    "design": {"template": "launch-announcement", "ctaColor": "#7c3aed", "accentColor": "#a78bfa"},
    "emails": [
        {
            "subject": "Your new workflow is here",
            "previewText": "Everything you asked for, in one release",
            "blocks": [
                {
                    "id": "logo-1",
                    "type": "logo",
                    "position": 0,
                    "content": {"imageUrl": "https://cdn.example.com/logo.png", "altText": "Acme"},
                    "settings": {"width": 140, "align": "center"},
                },
                {
                    "id": "hero-1",
                    "type": "layouts",
                    "layoutVariation": "hero-center",
                    "position": 1,
                    "content": {
                        "heading": "Meet Acme Flow",
                        "body": "Automate the busywork and focus on what matters.",
                    },
                    "settings": {},
                },
                {
                    "id": "features-1",
                    "type": "layouts",
                    "layoutVariation": "three-column-equal",
                    "position": 2,
                    "content": {
                        "columns": [
                            {"icon": "rocket", "heading": "Fast", "body": "Set up in minutes."},
                            {"icon": "shield", "heading": "Secure", "body": "SOC 2 from day one."},
                            {"icon": "world", "heading": "Global", "body": "Runs in every region."},
                        ]
                    },
                    "settings": {},
                },
                {
                    "id": "text-1",
                    "type": "text",
                    "position": 3,
                    "content": {"text": "Hi {{first_name}}, we built this for you."},
                    "settings": {"fontSize": 17},
                },
                {
                    "id": "cta-1",
                    "type": "button",
                    "position": 4,
                    "content": {"text": "Start free trial", "url": "{{base_url}}/signup"},
                    "settings": {"buttonColor": "#7c3aed"},
                },
                {
                    "id": "footer-1",
                    "type": "footer",
                    "position": 5,
                    "content": {"companyName": "Acme Inc"},
                    "settings": {},
                },
            ],
            "globalSettings": {
                "backgroundColor": "#f9fafb",
                "contentBackgroundColor": "#ffffff",
                "maxWidth": 600,
                "fontFamily": "system-ui, -apple-system, sans-serif",
            },
        }
    ],
    "sendTimeSuggestion": "Tuesday 10am local",
    "successMetrics": "Open rate above 30%",
}


class FakeLLMClient:
    """Stands in for LLMClient; returns canned JSON and records every call."""

    def __init__(self, content: str | None = None, error: Exception | None = None) -> None:
        self.content = content if content is not None else json.dumps(SAMPLE_CAMPAIGN)
        self.error = error
        self.calls: list[dict] = []

    def generate_json(self, system_prompt, user_prompt, params=None) -> LLMCompletion:
        self.calls.append({"system_prompt": system_prompt, "user_prompt": user_prompt, "params": params})
        if self.error is not None:
            raise self.error
        return LLMCompletion(
            content=self.content,
            provider="gemini",
            model="gemini-2.5-flash",
            prompt_tokens=1200,
            completion_tokens=3400,
            tokens_used=4600,
            cost_usd=0.00111,
            generation_time_ms=850,
        )


@pytest.fixture(scope="session", autouse=True)
def apply_migrations() -> None:
    if TEST_DB_PATH.exists():
        TEST_DB_PATH.unlink()
    alembic_cfg = Config(str(ROOT_DIR / "alembic.ini"))
    alembic_cfg.set_main_option("script_location", str(ROOT_DIR / "alembic"))
    command.upgrade(alembic_cfg, "head")


@pytest.fixture()
def db_session():
    connection = engine.connect()
    transaction = connection.begin()
    TestingSessionLocal = sessionmaker(
        bind=connection,
        autocommit=False,
        autoflush=False,
        future=True,
    )
    session = TestingSessionLocal()

    session.begin_nested()

    @event.listens_for(session, "after_transaction_end")
    def restart_savepoint(sess, trans):
        if trans.nested and not trans._parent.nested:
            sess.begin_nested()

    try:
        yield session
    finally:
        session.close()
        transaction.rollback()
        connection.close()


@pytest.fixture()
def auth_context() -> AuthContext:
    # A fresh user per test keeps per-user counts independent of other tests.
    return AuthContext(user_id=str(uuid.uuid4()), email="owner@example.com")


@pytest.fixture()
def campaign_payload() -> dict:
    return deepcopy(SAMPLE_CAMPAIGN)


@pytest.fixture()
def fake_llm_client() -> FakeLLMClient:
    return FakeLLMClient()


@pytest.fixture()
def override_dependencies(db_session, auth_context, fake_llm_client):
    def get_session_override():
        try:
            yield db_session
        finally:
            pass

    def get_user_override():
        return auth_context

    def get_llm_client_override():
        return fake_llm_client

    app.dependency_overrides[get_session] = get_session_override
    app.dependency_overrides[get_current_user] = get_user_override
    app.dependency_overrides[get_llm_client] = get_llm_client_override
    try:
        yield
    finally:
        app.dependency_overrides.clear()


@pytest.fixture()
def api_client(override_dependencies):
    with TestClient(app) as client:
        yield client


@pytest.fixture()
def anonymous_client(db_session):
    def get_session_override():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_session] = get_session_override
    try:
        with TestClient(app) as client:
            yield client
    finally:
        app.dependency_overrides.clear()
