# tests/conftest.py
import json
import time
import uuid

import httpx
import pytest
from httpx import ASGITransport, AsyncClient
from jose import jwt

from app.config import Settings
from app.crud import RecordStore
from app.database import create_db_engine, create_session_factory, create_tables
from app.main import create_app
from app.security import HostedIdentityProvider, VerifiedIdentity
from app.services.pricing import fixed_consultation_cost
from app.services.profile_service import ProfileManager

JWT_SECRET = "test-project-jwt-secret-0123456789abcdef"
IDENTITY_URL = "http://identity.test"


def make_token(user_id, email=None, secret=JWT_SECRET, audience="authenticated", expires_in=3600):
    now = int(time.time())
    claims = {"sub": user_id, "aud": audience, "role": "authenticated", "iat": now, "exp": now + expires_in}
    if email:
        claims["email"] = email
    return jwt.encode(claims, secret, algorithm="HS256")


def auth_headers(user_id):
    return {"Authorization": f"Bearer {make_token(user_id)}"}


class FakeAuthService:
    """In-memory stand-in for the hosted auth service's admin API."""

    def __init__(self):
        self.users = {}
        self.requests = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.method == "POST" and request.url.path == "/auth/v1/admin/users":
            body = json.loads(request.content)
            if any(user["email"] == body["email"] for user in self.users.values()):
                return httpx.Response(422, json={"msg": "A user with this email address has already been registered"})
            user = {
                "id": str(uuid.uuid4()),
                "email": body["email"],
                "user_metadata": body.get("user_metadata", {}),
                "email_confirmed_at": "2025-01-01T00:00:00Z" if body.get("email_confirm") else None,
            }
            self.users[user["id"]] = user
            return httpx.Response(200, json=user)
        return httpx.Response(404, json={"msg": "Not found"})


@pytest.fixture
def settings(tmp_path):
    return Settings(
        database_url=f"sqlite:///{tmp_path / 'test.db'}",
        identity_provider_url=IDENTITY_URL,
        identity_service_key="service-role-key",
        identity_jwt_secret=JWT_SECRET,
        log_level="WARNING",
    )


@pytest.fixture
def auth_service():
    return FakeAuthService()


@pytest.fixture
def identity_provider(settings, auth_service):
    client = httpx.Client(base_url=IDENTITY_URL, transport=httpx.MockTransport(auth_service.handler))
    provider = HostedIdentityProvider(settings, client=client)
    yield provider
    provider.close()


@pytest.fixture
def app(settings, identity_provider):
    application = create_app(settings, identity_provider=identity_provider, pricing_policy=fixed_consultation_cost(7))
    # ASGITransport does not run lifespan events
    create_tables(application.state.engine)
    yield application
    application.state.engine.dispose()


@pytest.fixture
async def async_client(app):
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


@pytest.fixture
def register(async_client):
    """Sign a user up through the API and return ``(user_id, headers)``."""

    async def _register(email, user_type="patient", name=None, additional_info=None):
        response = await async_client.post(
            "/api/v1/signup",
            json={
                "email": email,
                "password": "s3cret-pass",
                "name": name or email.split("@")[0].title(),
                "userType": user_type,
                "additionalInfo": additional_info or {},
            },
        )
        assert response.status_code == 200, response.text
        user_id = response.json()["user"]["id"]
        return user_id, auth_headers(user_id)

    return _register


@pytest.fixture
def db_session(settings):
    engine = create_db_engine(settings)
    create_tables(engine)
    session = create_session_factory(engine)()
    yield session
    session.close()
    engine.dispose()


@pytest.fixture
def store(db_session):
    return RecordStore(db_session)


@pytest.fixture
def profile_manager(store):
    return ProfileManager(store)


@pytest.fixture
def make_user(profile_manager):
    """Create a profile directly through the manager and return its identity."""

    def _make_user(user_type="patient", name=None, **additional_info):
        identity = VerifiedIdentity(user_id=str(uuid.uuid4()))
        profile_manager.create_profile(
            identity,
            name=name or f"{user_type.title()} {identity.user_id[:4]}",
            email=f"{identity.user_id[:8]}@example.com",
            user_type=user_type,
            additional_info=additional_info,
        )
        return identity

    return _make_user
