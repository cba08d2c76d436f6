import os

os.environ.setdefault("ENVIRONMENT", "testing")
os.environ.setdefault("LOG_LEVEL", "WARNING")
os.environ.setdefault("SECRET_KEY", "test-secret-key-that-is-long-enough-for-hs256")

import httpx
import pytest
from fastapi.testclient import TestClient

from leadcrm.client import ApiClient, Session
from leadcrm.core.config import Settings
from leadcrm.main import create_app
from leadcrm.middleware.auth import issue_token
from leadcrm.models.user import Principal, Role
from leadcrm.services.container import build_container
from leadcrm.services.store import LeadStore

PUSHER_KEY = "test-key"
PUSHER_SECRET = "test-secret"

# Provider ids follow list order: 1 Alice, 2 Bob, 3 Carol, 4 Dave, 5 Eve
SEED = {
    "plans": [
        {"name": "Basic", "stripe_price_id": "price_basic", "price": "49.00"},
    ],
    "providers": [
        {
            "name": "Alice Roofing",
            "email": "alice@example.com",
            "address": "100 Congress Ave, Austin, TX 78701",
            "subscription": {"status": "active", "plan_id": 1},
        },
        {
            "name": "Bob Builders",
            "email": "bob@example.com",
            "address": "2 Oltorf St, Austin, TX 78745",
            "subscription": {"status": "active", "plan_id": 1},
        },
        {
            "name": "Carol Contracting",
            "email": "carol@example.com",
            "address": "9 Elm St, Dallas, TX 75201",
            "subscription": {"status": "active", "plan_id": 1},
        },
        {
            "name": "Dave Drywall",
            "email": "dave@example.com",
            "address": "1 Lamar Blvd, Austin, TX 78704",
            "subscription": {"status": "canceled", "plan_id": 1},
        },
        {
            "name": "Eve Electric",
            "email": "eve@example.com",
            "is_active": False,
            "subscription": {"status": "active", "plan_id": 1},
        },
    ],
    "locations": [
        {"name": "Austin", "slug": "austin", "assignment_algorithm": "round_robin", "provider_ids": [1, 2, 3, 4, 5]},
        {"name": "Dallas", "slug": "dallas", "assignment_algorithm": "manual", "provider_ids": [3]},
        {"name": "Houston", "slug": "houston", "assignment_algorithm": "load_balance", "provider_ids": []},
        {"name": "Central Texas", "slug": "central", "assignment_algorithm": "geographic", "provider_ids": [1, 2, 3]},
    ],
}


@pytest.fixture
def settings():
    return Settings(
        ENVIRONMENT="testing",
        PUSHER_ENABLED=True,
        PUSHER_APP_ID="1",
        PUSHER_APP_KEY=PUSHER_KEY,
        PUSHER_APP_SECRET=PUSHER_SECRET,
        PUSHER_WS_URL="ws://testserver",
    )


@pytest.fixture
def store():
    store = LeadStore()
    store.load_seed(SEED)
    return store


@pytest.fixture
def container(settings, store):
    return build_container(settings, store=store)


@pytest.fixture
def app(settings, container):
    return create_app(settings, container)


@pytest.fixture
def client(app):
    # One portal for HTTP and websocket traffic so events reach open sockets
    with TestClient(app) as client:
        yield client


@pytest.fixture
def admin_principal():
    return Principal(role=Role.ADMIN, user_id=1, name="Ada Admin")


@pytest.fixture
def admin_token(admin_principal):
    return issue_token(admin_principal)


@pytest.fixture
def provider_principal():
    def _principal(provider_id):
        return Principal(role=Role.PROVIDER, provider_id=provider_id, name=f"Provider {provider_id}")
    return _principal


@pytest.fixture
def provider_token(provider_principal):
    def _token(provider_id):
        return issue_token(provider_principal(provider_id))
    return _token


@pytest.fixture
def admin_headers(admin_token):
    return {"Authorization": f"Bearer {admin_token}"}


@pytest.fixture
def provider_headers(provider_token):
    def _headers(provider_id):
        return {"Authorization": f"Bearer {provider_token(provider_id)}"}
    return _headers


@pytest.fixture
def lead_payload():
    def _payload(**overrides):
        payload = {
            "location_slug": "austin",
            "name": "Jane Homeowner",
            "phone": "(512) 555-0100",
            "email": "jane@example.com",
            "zip_code": "78745",
            "project_type": "residential",
            "timing": "immediate",
            "notes": "Roof leak over the kitchen",
        }
        payload.update(overrides)
        return payload
    return _payload


@pytest.fixture
def make_api(app):
    """ApiClient factory talking to the app in-process."""
    def _make(audience=Role.ADMIN, token=None, provider_id=None, transport=None):
        session = Session(audience, token=token, provider_id=provider_id)
        return ApiClient(
            session,
            base_url="http://testserver/api",
            transport=transport or httpx.ASGITransport(app=app),
        )
    return _make
