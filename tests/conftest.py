"""Pytest configuration and shared fixtures."""

from datetime import date
from decimal import Decimal
from typing import AsyncGenerator, Optional
from uuid import UUID, uuid4

import pytest
import pytest_asyncio
from sqlalchemy import event
from sqlalchemy.engine import Engine
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from cadence.core.database import Base
from cadence.models import Account, AccountType, Transaction, User
from cadence.repositories.memory_store import (
    InMemoryRecurringRecordStore,
    InMemoryTransactionStore,
)
from cadence.schemas.transaction import TransactionRecord

# StaticPool so in-memory SQLite shares one connection
# (a new connection per checkout would lose all tables)
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@event.listens_for(Engine, "connect")
def set_sqlite_pragma(dbapi_conn, connection_record):
    """Enable foreign keys for SQLite."""
    if hasattr(dbapi_conn, "execute"):
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


@pytest_asyncio.fixture(scope="function")
async def test_engine():
    """Create a test database engine."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def db_session(test_engine) -> AsyncGenerator[AsyncSession, None]:
    """Create a test database session."""
    async_session = async_sessionmaker(
        test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )

    async with async_session() as session:
        yield session
        await session.rollback()


@pytest_asyncio.fixture
async def test_user(db_session: AsyncSession) -> User:
    """Create a test user."""
    user = User(id=uuid4(), email="test@example.com")
    db_session.add(user)
    await db_session.commit()
    await db_session.refresh(user)
    return user


@pytest_asyncio.fixture
async def checking_account(db_session: AsyncSession, test_user: User) -> Account:
    """Create a checking account with the usual sign convention."""
    account = Account(
        id=uuid4(),
        user_id=test_user.id,
        name="Everyday Checking",
        account_type=AccountType.DEPOSITORY,
        account_subtype="checking",
        invert_transactions=False,
    )
    db_session.add(account)
    await db_session.commit()
    await db_session.refresh(account)
    return account


@pytest_asyncio.fixture
async def credit_card_account(db_session: AsyncSession, test_user: User) -> Account:
    """Create a credit card account."""
    account = Account(
        id=uuid4(),
        user_id=test_user.id,
        name="Rewards Card",
        account_type=AccountType.CREDIT,
        account_subtype="credit card",
        invert_transactions=False,
    )
    db_session.add(account)
    await db_session.commit()
    await db_session.refresh(account)
    return account


@pytest_asyncio.fixture
async def inverted_account(db_session: AsyncSession, test_user: User) -> Account:
    """Create a savings account whose institution reports amounts with the sign reversed."""
    account = Account(
        id=uuid4(),
        user_id=test_user.id,
        name="High Yield Savings",
        account_type=AccountType.DEPOSITORY,
        account_subtype="savings",
        invert_transactions=True,
    )
    db_session.add(account)
    await db_session.commit()
    await db_session.refresh(account)
    return account


@pytest.fixture
def add_transaction(db_session: AsyncSession):
    """Factory that inserts a transaction and commits it."""

    async def _add(
        account: Account,
        txn_date: Optional[date],
        amount: str,
        name: str,
        merchant_name: Optional[str] = None,
        category: Optional[str] = None,
    ) -> Transaction:
        txn = Transaction(
            id=uuid4(),
            account_id=account.id,
            date=txn_date,
            amount=Decimal(amount),
            name=name,
            merchant_name=merchant_name,
            category=category,
        )
        db_session.add(txn)
        await db_session.commit()
        return txn

    return _add


@pytest.fixture
def user_id() -> UUID:
    return uuid4()


@pytest.fixture
def transaction_store() -> InMemoryTransactionStore:
    return InMemoryTransactionStore()


@pytest.fixture
def record_store() -> InMemoryRecurringRecordStore:
    return InMemoryRecurringRecordStore()


def make_transaction(
    txn_date: Optional[date],
    amount: str,
    name: Optional[str] = None,
    merchant_name: Optional[str] = None,
    category: Optional[str] = None,
    inverted: bool = False,
    account_id: Optional[UUID] = None,
) -> TransactionRecord:
    """Build a transaction record for in-memory stores and pure pipeline tests."""
    return TransactionRecord(
        id=uuid4(),
        account_id=account_id or uuid4(),
        date=txn_date,
        name=name,
        merchant_name=merchant_name,
        category=category,
        amount=Decimal(amount),
        account_polarity_inverted=inverted,
    )


@pytest.fixture
def make_txn():
    """Factory for transaction records."""
    return make_transaction
