import os

os.environ.setdefault("LEDGER_DATABASE_URL", "sqlite://")

from datetime import date
from decimal import Decimal
from types import SimpleNamespace

import pytest

import models  # noqa: F401
from database import Base, build_engine, make_sessionmaker
from models import TransactionType
from schemas import AccountIn, CategoryIn, TransactionIn, UserIn
from services import AccountService, CategoryService, TransactionService, UserService


@pytest.fixture
def session_factory(tmp_path):
    engine = build_engine(f"sqlite:///{tmp_path / 'ledger.db'}")
    Base.metadata.create_all(engine)
    yield make_sessionmaker(engine)
    engine.dispose()


@pytest.fixture
def demo_ledger(session_factory):
    """Demo user with the October 2025 ledger from the seed data."""
    with session_factory() as session:
        user = UserService(session).create(
            UserIn(email="demo1@example.com", password_hash="b0", name="Demo User One")
        )
        other = UserService(session).create(
            UserIn(email="demo2@example.com", password_hash="b0", name="Demo User Two")
        )
        account = AccountService(session, user.id).create(
            AccountIn(name="Everyday Checking", institution="Demo Bank")
        )
        categories = CategoryService(session)
        cats = {
            name: categories.create(CategoryIn(name=name, type=kind))
            for name, kind in [
                ("Salary", TransactionType.income),
                ("Rent", TransactionType.expense),
                ("Groceries", TransactionType.expense),
                ("Dining", TransactionType.expense),
                ("Transport", TransactionType.expense),
            ]
        }
        txns = TransactionService(session, user.id)
        for day, description, amount, category in [
            (2, "Monthly Salary", "5000.00", "Salary"),
            (3, "Apartment Rent", "-1800.00", "Rent"),
            (6, "Wholefoods Market", "-125.47", "Groceries"),
            (9, "Sushi Night", "-48.90", "Dining"),
            (10, "Uber Rides", "-23.15", "Transport"),
        ]:
            txns.create(
                TransactionIn(
                    date=date(2025, 10, day),
                    description=description,
                    amount=Decimal(amount),
                    account_id=account.id,
                    category_id=cats[category].id,
                )
            )
    return SimpleNamespace(user=user, other=other, account=account, categories=cats)
