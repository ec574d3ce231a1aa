import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from ticketmate.accounts.infrastructure import SQLAlchemyUserRepository
from ticketmate.config import Role, Settings
from ticketmate.infrastructure.llm import MockLLMClient
from ticketmate.infrastructure.mail import MockEmailService
from ticketmate.main import create_app

API = "/api"
SIGNING_KEY = "test-signing-key"
EVENT_KEY = "test-event-key"


def bearer(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def settings(tmp_path):
    """Isolated settings: file-backed SQLite per test, no poller, mock LLM."""
    return Settings(
        _env_file=None,
        environment="test",
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'test.db'}",
        access_token_secret="test-secret",
        llm_provider="mock",
        workflow_poll_interval_seconds=0,
        workflow_signing_key=SIGNING_KEY,
        workflow_event_key=EVENT_KEY,
        triage_config_path=tmp_path / "triage_config.yaml",
        frontend_url="http://frontend.test",
        public_base_url="http://api.test",
    )


@pytest.fixture
def llm_client():
    return MockLLMClient()


@pytest.fixture
def mailer():
    return MockEmailService()


@pytest.fixture
def oauth_providers():
    return {}


@pytest.fixture
def app(settings, llm_client, mailer, oauth_providers):
    return create_app(
        settings,
        llm_client=llm_client,
        email_service=mailer,
        oauth_providers=oauth_providers,
        configure_logging=False,
    )


@pytest_asyncio.fixture
async def client(app):
    """HTTP client with the application lifespan running."""
    async with app.router.lifespan_context(app):
        transport = ASGITransport(app=app)
        async with AsyncClient(transport=transport, base_url="http://test") as ac:
            yield ac


@pytest_asyncio.fixture
async def engine(app, client):
    return app.state.workflow_engine


@pytest_asyncio.fixture
async def signup(client):
    """Sign up an account; returns (user json, token)."""

    async def _signup(email, password="secret123", role=None, skills=None):
        body = {"email": email, "password": password}
        if role is not None:
            body["role"] = role
        if skills is not None:
            body["skills"] = skills
        response = await client.post(f"{API}/auth/signup", json=body)
        assert response.status_code == 201, response.text
        data = response.json()
        return data["user"], data["token"]

    return _signup


@pytest_asyncio.fixture
async def promote(app, client):
    """Set an account's role directly in the store (there is no admin signup)."""

    async def _promote(email, role=Role.ADMIN):
        async with app.state.database.session() as session:
            user = await SQLAlchemyUserRepository(session).get_by_email(email)
            user.role = role

    return _promote


@pytest_asyncio.fixture
async def admin(signup, promote):
    user, token = await signup("admin@example.com")
    await promote("admin@example.com", Role.ADMIN)
    return user, token
