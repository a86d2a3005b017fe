# backend/beautonomi/repositories/wallet_repository.py
"""Wallet balance persistence with atomic self-debit."""

from decimal import Decimal
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from ..models.wallet import Wallet, WalletTransaction
from .base_repository import BaseRepository


class WalletRepository(BaseRepository[Wallet]):
    def __init__(self, db: Session):
        super().__init__(db, Wallet)

    def get_for_user(self, user_id: str) -> Optional[Wallet]:
        return self.find_one_by(user_id=user_id)

    def get_balance(self, user_id: str) -> Decimal:
        """Current balance read straight from the row, bypassing the identity map."""
        balance = self.db.execute(select(Wallet.balance).where(Wallet.user_id == user_id)).scalar()
        return Decimal(str(balance)) if balance is not None else Decimal("0")

    def debit(
        self,
        *,
        user_id: str,
        amount: Decimal,
        description: str,
        reference_id: Optional[str],
        reference_type: Optional[str],
    ) -> Optional[WalletTransaction]:
        """Spend from the wallet in one conditional UPDATE; None on insufficient funds."""
        result = self.db.execute(
            update(Wallet)
            .where(Wallet.user_id == user_id, Wallet.balance >= amount)
            .values(balance=Wallet.balance - amount)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            return None
        return self._record(user_id, -amount, "debit", description, reference_id, reference_type)

    def credit(
        self,
        *,
        user_id: str,
        amount: Decimal,
        description: str,
        reference_id: Optional[str],
        reference_type: Optional[str],
    ) -> Optional[WalletTransaction]:
        result = self.db.execute(
            update(Wallet)
            .where(Wallet.user_id == user_id)
            .values(balance=Wallet.balance + amount)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            return None
        return self._record(user_id, amount, "refund", description, reference_id, reference_type)

    def _record(
        self,
        user_id: str,
        amount: Decimal,
        transaction_type: str,
        description: str,
        reference_id: Optional[str],
        reference_type: Optional[str],
    ) -> WalletTransaction:
        wallet = self.get_for_user(user_id)
        row = WalletTransaction(
            wallet_id=wallet.id,
            amount=amount,
            transaction_type=transaction_type,
            description=description,
            reference_id=reference_id,
            reference_type=reference_type,
        )
        self.db.add(row)
        self.db.flush()
        return row
