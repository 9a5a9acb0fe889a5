"""
Pytest configuration and fixtures for tests.

This file is automatically loaded by pytest and provides shared fixtures
and configuration for all tests.
"""

import os
import sys

# Environment must be set before config is imported anywhere
os.environ.setdefault("RUNTIME_ENVIRONMENT", "TEST")
os.environ["DB_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ.setdefault("TOKEN", "123456:ABC-DEF1234ghIkl-zyx57W2v1u123ew11")
os.environ["PUSH_FUNCTION_SECRET"] = ""

# Add parent directory to Python path so tests can import modules
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

import pytest
import pytest_asyncio
from fakeredis import FakeAsyncRedis, FakeServer
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import StaticPool

import db
import redis_instance
from enums.user_role import UserRole
from models.base import Base
from models.product import ProductDTO
from models.user import UserDTO
from models.vendor import VendorDTO
from repositories.order import OrderRepository
from repositories.product import ProductRepository
from repositories.user import UserRepository
from repositories.vendor import VendorRepository
from services.notice import NoticeService
from services.session import SessionService


# ============================================================================
# Database Fixtures
# ============================================================================

@pytest_asyncio.fixture
async def test_engine(monkeypatch):
    """
    In-memory SQLite shared by every session of the test.

    Repositories open their own sessions through db.get_db_session(), so
    the module-level session maker is swapped for one bound to this engine.
    """
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False}
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    monkeypatch.setattr(db, "engine", engine)
    monkeypatch.setattr(db, "session_maker", async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False))

    yield engine

    await engine.dispose()


# ============================================================================
# Redis Fixtures
# ============================================================================

@pytest.fixture(autouse=True)
def redis_client(monkeypatch):
    """Fake Redis behind redis_instance.get_redis() (no real Redis server needed)."""
    client = FakeAsyncRedis(server=FakeServer(), decode_responses=True)
    monkeypatch.setattr(redis_instance, "_redis_instance", client)
    return client


@pytest.fixture(autouse=True)
def reset_order_schema_flag(monkeypatch):
    monkeypatch.setattr(OrderRepository, "delivery_columns_supported", True)


# ============================================================================
# Session Fixtures
# ============================================================================

def make_session(user_id: int, role: UserRole = UserRole.CUSTOMER) -> SessionService:
    """Signed-in session without touching the store."""
    session = SessionService()
    session.auth_user_id = f"auth-{user_id}"
    session.profile = UserDTO(id=user_id, auth_user_id=f"auth-{user_id}", role=role)
    return session


@pytest.fixture
def session_factory():
    return make_session


@pytest.fixture
def notices():
    return NoticeService()


@pytest.fixture
def anonymous_session():
    return SessionService()


# ============================================================================
# Seed Data
# ============================================================================

@pytest_asyncio.fixture
async def marketplace(test_engine):
    """
    Two stores and one customer:
    - customer (user 1)
    - Aling Nena's store owned by user 2: pandesal (stock 10), t-shirt (sizes S/M, untracked stock)
    - Mang Jose's store owned by user 3: rice 1kg (stock 5)
    """
    customer = await UserRepository.create(UserDTO(auth_user_id="auth-customer", full_name="Juan Dela Cruz"))
    nena = await UserRepository.create(UserDTO(auth_user_id="auth-nena", role=UserRole.VENDOR))
    jose = await UserRepository.create(UserDTO(auth_user_id="auth-jose", role=UserRole.VENDOR))

    nena_store = await VendorRepository.create(VendorDTO(owner_user_id=nena.id, store_name="Aling Nena's"))
    jose_store = await VendorRepository.create(VendorDTO(owner_user_id=jose.id, store_name="Mang Jose's"))

    pandesal = await ProductRepository.create(ProductDTO(vendor_id=nena_store.id, name="Pandesal", price=5.0, stock=10))
    shirt = await ProductRepository.create(ProductDTO(vendor_id=nena_store.id, name="T-Shirt", price=150.0,
                                                      size_options=["S", "M"]))
    rice = await ProductRepository.create(ProductDTO(vendor_id=jose_store.id, name="Rice 1kg", price=55.0, stock=5))

    return {
        "customer": customer,
        "nena": nena,
        "jose": jose,
        "nena_store": nena_store,
        "jose_store": jose_store,
        "pandesal": pandesal,
        "shirt": shirt,
        "rice": rice,
    }


@pytest.fixture
def customer_session(marketplace):
    return make_session(marketplace["customer"].id)
