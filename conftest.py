import io
import os

# Point the app's default engine at a throwaway in-memory database before it is imported
os.environ.setdefault("DATABASE_URL", "sqlite://")

import pytest
from fastapi.testclient import TestClient
from PIL import Image
from sqlalchemy.orm import sessionmaker

from mosquito_alert.api import deps
from mosquito_alert.domain.models import Role
from mosquito_alert.domain.services.auth_service import auth_service
from mosquito_alert.domain.services.security import hash_password
from mosquito_alert.domain.services.transitions import CreationPolicy
from mosquito_alert.infrastructure.ai_client import Classification, FailurePolicy
from mosquito_alert.infrastructure.database import Base, create_db_engine, get_db
from mosquito_alert.infrastructure.models import Account
from mosquito_alert.main import app

TEST_PASSWORD = "secret123"


class FakeClassifier:
    """Stands in for RoboflowClassifier; returns a fixed result or raises a fixed error."""

    def __init__(self, result=None, error=None):
        self.result = result or Classification(
            is_valid=True,
            confidence=91,
            verdict="VALID",
            reasoning=["Detected 1 potential breeding site(s)"],
            detections=[{"class": "standing water", "confidence": 91, "bounding_box": None}],
        )
        self.error = error
        self.calls = 0

    async def classify(self, image_bytes):
        self.calls += 1
        if self.error is not None:
            raise self.error
        return self.result


class FakeStorage:
    """Records uploads and deletions instead of talking to the image host."""

    def __init__(self):
        self.uploaded = []
        self.deleted = []

    async def upload_image(self, content, filename, content_type, user_id):
        public_id = f"test/{user_id}_{len(self.uploaded)}"
        self.uploaded.append(public_id)
        return f"https://images.test/{public_id}.png", public_id

    async def delete_image(self, public_id):
        self.deleted.append(public_id)
        return True


@pytest.fixture
def password():
    """Plain-text password shared by every account made with make_account."""
    return TEST_PASSWORD


@pytest.fixture(scope="session")
def password_hash():
    """bcrypt is slow on purpose; hash the shared test password once."""
    return hash_password(TEST_PASSWORD)


@pytest.fixture(scope="function")
def test_engine():
    """Fresh in-memory SQLite database per test."""
    engine = create_db_engine("sqlite://")
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture(scope="function")
def test_db(test_engine):
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=test_engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture
def make_account(test_db, password_hash):
    def _make(name="Reporter", email=None, role=Role.USER.value, points=0):
        account = Account(
            name=name,
            email=email or f"{name.lower().replace(' ', '.')}@example.com",
            password_hash=password_hash,
            role=role,
            points=points,
        )
        test_db.add(account)
        test_db.commit()
        test_db.refresh(account)
        return account
    return _make


@pytest.fixture
def reporter(make_account):
    return make_account(name="Reporter")


@pytest.fixture
def other_reporter(make_account):
    return make_account(name="Neighbour")


@pytest.fixture
def admin(make_account):
    return make_account(name="Admin", role=Role.ADMIN.value)


@pytest.fixture
def auth_headers():
    def _headers(account):
        return {"Authorization": f"Bearer {auth_service.create_token(account)}"}
    return _headers


@pytest.fixture
def png_bytes():
    buffer = io.BytesIO()
    Image.new("RGB", (8, 8), color=(30, 120, 200)).save(buffer, format="PNG")
    return buffer.getvalue()


@pytest.fixture
def classifier():
    return FakeClassifier()


@pytest.fixture
def storage():
    return FakeStorage()


@pytest.fixture(autouse=True)
def reset_rate_limits():
    deps._rate_limit_store.clear()
    yield
    deps._rate_limit_store.clear()


@pytest.fixture(scope="function")
def client(test_db, classifier, storage):
    """
    Test client wired to the per-test database and fake collaborators.

    Defaults to the AI-gated variant with the reject failure policy; tests
    switch variants by overriding get_creation_policy / get_failure_policy_dep.
    """
    def override_get_db():
        try:
            yield test_db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[deps.get_classifier_dep] = lambda: classifier
    app.dependency_overrides[deps.get_storage] = lambda: storage
    app.dependency_overrides[deps.get_creation_policy] = lambda: CreationPolicy.AI_GATED
    app.dependency_overrides[deps.get_failure_policy_dep] = lambda: FailurePolicy.REJECT
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture(scope="function")
def client_no_db():
    """Test client without database override for endpoints that never touch it."""
    with TestClient(app, raise_server_exceptions=False) as test_client:
        yield test_client
