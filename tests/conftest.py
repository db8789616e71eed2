"""
Shared fixtures.

Environment is pinned before any application module is imported so module
level config (TORTOISE_CONFIG, scheduler flags) picks up test values.
"""
import os

os.environ["DATABASE_URL"] = "sqlite://:memory:"
os.environ["DB_GENERATE_SCHEMAS"] = "true"
os.environ["SCHEDULER_ENABLED"] = "false"
os.environ.setdefault("JWT_SECRET", "test-secret")
os.environ.setdefault("META_APP_ID", "global-app")
os.environ.setdefault("META_APP_SECRET", "global-secret")

from datetime import datetime, timezone

import pytest
import pytest_asyncio
from tortoise import Tortoise

from helpers.tortoise_config import MODEL_MODULES
from models.auth import User
from models.facebook import FacebookApp, FacebookForm


@pytest_asyncio.fixture
async def db():
    await Tortoise.init(
        db_url="sqlite://:memory:",
        modules={"models": MODEL_MODULES},
        use_tz=True,
        timezone="UTC",
    )
    await Tortoise.generate_schemas()
    yield
    await Tortoise.close_connections()


@pytest_asyncio.fixture
async def user(db):
    return await User.create(name="Test User", email="test@example.com", password="hashed")


@pytest_asyncio.fixture
async def app_credential(user):
    return await FacebookApp.create(
        user=user,
        app_id="1234567890",
        app_name="Main App",
        access_token="EAAB-main-token",
    )


@pytest_asyncio.fixture
async def form(user, app_credential):
    return await FacebookForm.create(
        user=user,
        form_id="form_1",
        form_name="Spring Promo",
        page_id="page_1",
        page_name="Acme Page",
        facebook_app=app_credential,
    )


def graph_time(dt: datetime) -> str:
    """Format like Graph does: 2024-01-15T10:30:00+0000"""
    return dt.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S+0000")


def raw_lead(lead_id: str, created: datetime, name="Jane Doe", email="Jane@Example.com", phone="+15550001111"):
    return {
        "id": lead_id,
        "created_time": graph_time(created),
        "field_data": [
            {"name": "full_name", "values": [name]},
            {"name": "EMAIL", "values": [email]},
            {"name": "phone_number", "values": [phone]},
        ],
        "form_id": "form_1",
        "platform": "fb",
        "campaign_name": "Spring",
        "adset_name": "Adset A",
        "ad_name": "Ad 1",
        "ad_id": "ad_1",
    }


def leads_page(leads, after=None):
    body = {"data": leads}
    if after:
        body["paging"] = {
            "cursors": {"before": "b", "after": after},
            "next": f"https://graph.facebook.com/v19.0/form_1/leads?after={after}",
        }
    return body
