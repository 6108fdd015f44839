from __future__ import annotations

import uuid
from typing import Callable, Optional

from sqlalchemy import select, update
from sqlalchemy.orm import Session, joinedload

from models import Account, Category, Transaction, User
from schemas import AccountIn, CategoryIn, TransactionIn, UserIn


LedgerHook = Callable[[], None]


class UserService:
    def __init__(self, session: Session) -> None:
        self.session = session

    def get(self, user_id: uuid.UUID) -> User:
        user = self.session.get(User, user_id)
        if not user:
            raise ValueError("User not found")
        return user

    def create(self, data: UserIn) -> User:
        email = data.email.strip().lower()
        existing = self.session.scalar(select(User).where(User.email == email))
        if existing:
            raise ValueError("User with this email already exists")
        user = User(email=email, password_hash=data.password_hash, name=data.name)
        self.session.add(user)
        self.session.commit()
        self.session.refresh(user)
        return user

    def delete(self, user_id: uuid.UUID) -> None:
        user = self.get(user_id)
        self.session.delete(user)
        self.session.commit()


class AccountService:
    def __init__(self, session: Session, user_id: uuid.UUID) -> None:
        self.session = session
        self.user_id = user_id

    def get(self, account_id: uuid.UUID) -> Account:
        account = self.session.get(Account, account_id)
        if not account or account.user_id != self.user_id:
            raise ValueError("Account not found")
        return account

    def create(self, data: AccountIn) -> Account:
        account = Account(
            user_id=self.user_id,
            name=data.name.strip(),
            institution=data.institution,
            type=data.type,
            masked_number=data.masked_number,
            currency=data.currency,
            balance=data.balance,
        )
        self.session.add(account)
        self.session.commit()
        self.session.refresh(account)
        return account

    def delete(self, account_id: uuid.UUID) -> None:
        account = self.get(account_id)
        self.session.execute(
            update(Transaction)
            .where(Transaction.account_id == account.id)
            .values(account_id=None)
        )
        self.session.delete(account)
        self.session.commit()


class CategoryService:
    """Categories are global: shared by every user."""

    def __init__(self, session: Session, on_change: Optional[LedgerHook] = None) -> None:
        self.session = session
        self.on_change = on_change

    def list_all(self) -> list[Category]:
        stmt = select(Category).order_by(Category.type, Category.name)
        return self.session.scalars(stmt).all()

    def get(self, category_id: int) -> Category:
        category = self.session.get(Category, category_id)
        if not category:
            raise ValueError("Category not found")
        return category

    def create(self, data: CategoryIn) -> Category:
        name = data.name.strip()
        existing = self.session.scalar(select(Category).where(Category.name == name))
        if existing:
            raise ValueError("Category with this name already exists")
        category = Category(name=name, type=data.type, color=data.color)
        self.session.add(category)
        self.session.commit()
        self.session.refresh(category)
        return category

    def delete(self, category_id: int) -> None:
        category = self.get(category_id)
        # Transactions outlive their category; they just lose the tag.
        self.session.execute(
            update(Transaction)
            .where(Transaction.category_id == category.id)
            .values(category_id=None)
        )
        self.session.delete(category)
        self.session.commit()
        if self.on_change:
            self.on_change()


class TransactionService:
    def __init__(
        self,
        session: Session,
        user_id: uuid.UUID,
        on_change: Optional[LedgerHook] = None,
    ) -> None:
        self.session = session
        self.user_id = user_id
        self.on_change = on_change

    def _check_refs(self, data: TransactionIn) -> None:
        if data.category_id is not None and not self.session.get(
            Category, data.category_id
        ):
            raise ValueError("Category not found")
        if data.account_id is not None:
            account = self.session.get(Account, data.account_id)
            if not account or account.user_id != self.user_id:
                raise ValueError("Account not found")

    def _changed(self) -> None:
        if self.on_change:
            self.on_change()

    def create(self, data: TransactionIn) -> Transaction:
        if not self.session.get(User, self.user_id):
            raise ValueError("User not found")
        self._check_refs(data)
        txn = Transaction(
            user_id=self.user_id,
            account_id=data.account_id,
            date=data.date,
            description=data.description,
            amount=data.amount,
            currency=data.currency,
            category_id=data.category_id,
            is_transfer=data.is_transfer,
            meta=data.metadata,
        )
        self.session.add(txn)
        self.session.commit()
        self.session.refresh(txn)
        self._changed()
        return txn

    def get(self, transaction_id: uuid.UUID) -> Transaction:
        stmt = (
            select(Transaction)
            .options(joinedload(Transaction.category))
            .where(
                Transaction.user_id == self.user_id, Transaction.id == transaction_id
            )
        )
        txn = self.session.scalar(stmt)
        if not txn:
            raise ValueError("Transaction not found")
        return txn

    def update(self, transaction_id: uuid.UUID, data: TransactionIn) -> Transaction:
        txn = self.get(transaction_id)
        self._check_refs(data)
        txn.account_id = data.account_id
        txn.date = data.date
        txn.description = data.description
        txn.amount = data.amount
        txn.currency = data.currency
        txn.category_id = data.category_id
        txn.is_transfer = data.is_transfer
        txn.meta = data.metadata
        self.session.commit()
        self.session.refresh(txn)
        self._changed()
        return txn

    def delete(self, transaction_id: uuid.UUID) -> None:
        txn = self.get(transaction_id)
        self.session.delete(txn)
        self.session.commit()
        self._changed()
