import os

os.environ.setdefault("SQLITE_URL", "sqlite://")

from collections.abc import Generator  # noqa: E402
from datetime import timedelta  # noqa: E402

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402
from sqlmodel import Session, SQLModel, create_engine  # noqa: E402

from app import crud  # noqa: E402
from app.api.deps import get_db  # noqa: E402
from app.core.security import create_access_token  # noqa: E402
from app.main import app  # noqa: E402
from app.models import Property, Report, User, UserCreate  # noqa: E402
from app.storage import StorageError, get_storage  # noqa: E402


class FakeStorage:
    """In-memory stand-in for the bucket client, keyed by (bucket, path)."""

    def __init__(self):
        self.objects: dict[tuple[str, str], bytes] = {}
        self.removed: list[tuple[str, str]] = []

    def upload(self, bucket, path, data, content_type=None):
        self.objects[(bucket, path)] = data
        return path

    def download(self, bucket, path):
        try:
            return self.objects[(bucket, path)]
        except KeyError:
            raise StorageError(f"Object not found: {path}")

    def remove(self, bucket, paths):
        for path in paths:
            self.objects.pop((bucket, path), None)
            self.removed.append((bucket, path))

    def public_url(self, bucket, path):
        return f"https://storage.test/{bucket}/{path}"


@pytest.fixture
def engine():
    test_engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(test_engine)
    yield test_engine
    SQLModel.metadata.drop_all(test_engine)


@pytest.fixture
def session(engine) -> Generator[Session, None, None]:
    with Session(engine) as db_session:
        yield db_session


@pytest.fixture
def storage() -> FakeStorage:
    return FakeStorage()


@pytest.fixture
def client(session, storage) -> Generator[TestClient, None, None]:
    app.dependency_overrides[get_db] = lambda: session
    app.dependency_overrides[get_storage] = lambda: storage
    # Not used as a context manager so the lifespan hook never touches the real database
    yield TestClient(app)
    app.dependency_overrides.clear()


def make_user(session: Session, email: str = "owner@example.com") -> User:
    return crud.create_user(
        session=session,
        user_create=UserCreate(email=email, password="supersecret1"),
    )


def auth_headers(user: User) -> dict[str, str]:
    token = create_access_token(user.id, expires_delta=timedelta(minutes=30))
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def user(session) -> User:
    return make_user(session)


@pytest.fixture
def headers(user) -> dict[str, str]:
    return auth_headers(user)


@pytest.fixture
def subscribed_user(session, user) -> User:
    crud.upsert_subscription(
        session=session,
        user_id=user.id,
        stripe_customer_id="cus_test",
        stripe_subscription_id="sub_test",
        plan_tier="foundational",
        billing_cycle="monthly",
        property_slots=2,
        status="active",
    )
    return user


@pytest.fixture
def property_(session, user) -> Property:
    db_property = Property(
        name="Maple Court",
        address="12 Maple St",
        city="Austin",
        state="TX",
        units=48,
        user_id=user.id,
    )
    session.add(db_property)
    session.commit()
    session.refresh(db_property)
    return db_property


@pytest.fixture
def report(session, user, property_) -> Report:
    db_report = Report(
        property_id=property_.id,
        user_id=user.id,
        month=9,
        year=2026,
    )
    session.add(db_report)
    session.commit()
    session.refresh(db_report)
    return db_report
