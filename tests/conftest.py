"""Pytest configuration and fixtures."""

import os
from datetime import date
from decimal import Decimal
from typing import AsyncGenerator, Iterable, Optional

# Set test env vars before any budgetly import
os.environ.setdefault("POSTGRES_USER", "test")
os.environ.setdefault("POSTGRES_PASSWORD", "test")
os.environ.setdefault("LEDGER_RETRY_BACKOFF_SECONDS", "0")

import pytest
import pytest_asyncio
from sqlalchemy import insert
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from budgetly.models import Base
from budgetly.models.account import Account
from budgetly.models.category import Category
from budgetly.models.tag import Tag, transaction_tags
from budgetly.models.transaction import Transaction, TransactionType
from budgetly.models.user import User
from budgetly.services.goal_ledger import GoalLedgerService
from budgetly.services.goal_matcher import GoalMatcher
from budgetly.services.notification_service import NotificationService
from budgetly.services.recurrence import RecurrenceService

# Postgres exercises the real row locks; SQLite keeps the suite self-contained
TEST_DATABASE_URL = os.environ.get("TEST_DATABASE_URL", "sqlite+aiosqlite:///:memory:")

TODAY = date(2024, 1, 15)


def _create_engine():
    if TEST_DATABASE_URL.startswith("sqlite"):
        return create_async_engine(
            TEST_DATABASE_URL,
            echo=False,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    return create_async_engine(TEST_DATABASE_URL, echo=False)


@pytest_asyncio.fixture(scope="function")
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """Create a fresh database session for each test."""
    test_engine = _create_engine()
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    TestSessionLocal = sessionmaker(
        test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autocommit=False,
        autoflush=False,
    )
    async with TestSessionLocal() as session:
        yield session

    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await test_engine.dispose()


@pytest.fixture
def today() -> date:
    return TODAY


@pytest.fixture
def notifier() -> NotificationService:
    return NotificationService()


@pytest.fixture
def ledger(notifier) -> GoalLedgerService:
    """Ledger pinned to a fixed calendar day."""
    return GoalLedgerService(today=lambda: TODAY, notifier=notifier)


@pytest.fixture
def matcher(ledger) -> GoalMatcher:
    return GoalMatcher(ledger=ledger)


@pytest.fixture
def recurrence(matcher, notifier) -> RecurrenceService:
    return RecurrenceService(today=lambda: TODAY, matcher=matcher, notifier=notifier)


@pytest_asyncio.fixture
async def user(db_session: AsyncSession) -> User:
    """Create a regular user for testing."""
    user = User(email="user@test.com", first_name="Regular", last_name="User")
    db_session.add(user)
    await db_session.commit()
    await db_session.refresh(user)
    return user


@pytest_asyncio.fixture
async def other_user(db_session: AsyncSession) -> User:
    user = User(email="other@test.com", first_name="Other", last_name="User")
    db_session.add(user)
    await db_session.commit()
    await db_session.refresh(user)
    return user


@pytest_asyncio.fixture
async def salary_category(db_session: AsyncSession, user: User) -> Category:
    category = Category(user_id=user.id, name="Salary", category_type=TransactionType.INCOME)
    db_session.add(category)
    await db_session.commit()
    await db_session.refresh(category)
    return category


@pytest_asyncio.fixture
async def rent_category(db_session: AsyncSession, user: User) -> Category:
    category = Category(user_id=user.id, name="Rent", category_type=TransactionType.EXPENSE)
    db_session.add(category)
    await db_session.commit()
    await db_session.refresh(category)
    return category


@pytest_asyncio.fixture
async def savings_tag(db_session: AsyncSession, user: User) -> Tag:
    tag = Tag(user_id=user.id, name="savings")
    db_session.add(tag)
    await db_session.commit()
    await db_session.refresh(tag)
    return tag


@pytest_asyncio.fixture
async def checking_account(db_session: AsyncSession, user: User) -> Account:
    account = Account(user_id=user.id, name="Checking")
    db_session.add(account)
    await db_session.commit()
    await db_session.refresh(account)
    return account


@pytest.fixture
def make_transaction(db_session: AsyncSession, user: User):
    """Factory inserting a committed transaction, optionally tagged."""

    async def _make(
        category: Category,
        amount,
        transaction_type: TransactionType = TransactionType.INCOME,
        transaction_date: date = date(2024, 1, 10),
        account: Optional[Account] = None,
        tags: Iterable[Tag] = (),
        owner: Optional[User] = None,
    ) -> Transaction:
        transaction = Transaction(
            user_id=(owner or user).id,
            category_id=category.id,
            account_id=account.id if account is not None else None,
            title="Test transaction",
            amount=Decimal(str(amount)),
            transaction_type=transaction_type,
            transaction_date=transaction_date,
        )
        db_session.add(transaction)
        await db_session.flush()
        if tags:
            await db_session.execute(
                insert(transaction_tags),
                [{"transaction_id": transaction.id, "tag_id": tag.id} for tag in tags],
            )
        await db_session.commit()
        await db_session.refresh(transaction)
        return transaction

    return _make
