import os
from decimal import Decimal
from typing import Generator

# Override settings for tests before importing marketplace modules
TEST_DATABASE_URL = "sqlite:///:memory:"
os.environ["DATABASE_URL"] = TEST_DATABASE_URL
os.environ["JWT_SECRET"] = "test-secret-key-for-testing-only"
os.environ["PAYHERE_MERCHANT_ID"] = "1211149"
os.environ["PAYHERE_SECRET_KEY"] = "test-payhere-secret"
os.environ["PAYHERE_CURRENCY"] = "LKR"

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from marketplace.main import app
from marketplace.models import Base, Category, Product, Role, User, get_db

MERCHANT_ID = "1211149"
MERCHANT_SECRET = "test-payhere-secret"
TEST_PASSWORD = "testpassword123"

# Create test database engine
test_engine = create_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=test_engine)


@pytest.fixture(scope="function")
def db() -> Generator[Session, None, None]:
    """Create a fresh database for each test."""
    Base.metadata.create_all(bind=test_engine)
    db_session = TestSessionLocal()
    try:
        yield db_session
    finally:
        db_session.close()
        Base.metadata.drop_all(bind=test_engine)


@pytest.fixture(scope="function")
def client(db: Session) -> Generator[TestClient, None, None]:
    """Create a test client with database override."""

    def override_get_db():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


def _make_user(db: Session, email: str, name: str, role: Role) -> User:
    from marketplace.api.auth import get_password_hash

    user = User(
        name=name,
        email=email,
        hashed_password=get_password_hash(TEST_PASSWORD),
        role=role.value,
        phone="+94770000000",
        is_active=True,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def _login(client: TestClient, email: str) -> dict[str, str]:
    response = client.post("/api/auth/login", json={"email": email, "password": TEST_PASSWORD})
    assert response.status_code == 200
    return {"Authorization": f"Bearer {response.json()['access_token']}"}


@pytest.fixture
def test_user(db: Session) -> User:
    """Create an activated buyer."""
    return _make_user(db, "buyer@example.com", "Test Buyer", Role.USER)


@pytest.fixture
def test_user2(db: Session) -> User:
    """Create a second activated buyer."""
    return _make_user(db, "buyer2@example.com", "Other Buyer", Role.USER)


@pytest.fixture
def test_creator(db: Session) -> User:
    return _make_user(db, "creator@example.com", "Test Creator", Role.CREATOR)


@pytest.fixture
def test_admin(db: Session) -> User:
    return _make_user(db, "admin@example.com", "Test Admin", Role.ADMIN)


@pytest.fixture
def test_category(db: Session) -> Category:
    category = Category(name="Pottery", description="Hand-thrown ceramics")
    db.add(category)
    db.commit()
    db.refresh(category)
    return category


@pytest.fixture
def test_product(db: Session, test_category: Category, test_creator: User) -> Product:
    """Active product with 5 units in stock."""
    product = Product(
        title="Clay Vase",
        description="Glazed stoneware vase",
        price=Decimal("1500.00"),
        stock=5,
        category_id=test_category.id,
        creator_id=test_creator.id,
        is_active=True,
    )
    db.add(product)
    db.commit()
    db.refresh(product)
    return product


@pytest.fixture
def test_product_inactive(db: Session, test_category: Category, test_creator: User) -> Product:
    product = Product(
        title="Retired Bowl",
        price=Decimal("800.00"),
        stock=3,
        category_id=test_category.id,
        creator_id=test_creator.id,
        is_active=False,
    )
    db.add(product)
    db.commit()
    db.refresh(product)
    return product


@pytest.fixture
def auth_headers(client: TestClient, test_user: User) -> dict[str, str]:
    """Get auth headers for the buyer."""
    return _login(client, test_user.email)


@pytest.fixture
def user2_headers(client: TestClient, test_user2: User) -> dict[str, str]:
    return _login(client, test_user2.email)


@pytest.fixture
def creator_headers(client: TestClient, test_creator: User) -> dict[str, str]:
    return _login(client, test_creator.email)


@pytest.fixture
def admin_headers(client: TestClient, test_admin: User) -> dict[str, str]:
    return _login(client, test_admin.email)
