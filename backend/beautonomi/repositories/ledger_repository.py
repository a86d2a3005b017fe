# backend/beautonomi/repositories/ledger_repository.py
"""Append-only writers for payments and the internal finance ledger."""

from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy.orm import Session

from ..models.payment import FinanceTransaction, Payment, PaymentTransaction, SavedPaymentMethod
from .base_repository import BaseRepository


class LedgerRepository(BaseRepository[PaymentTransaction]):
    def __init__(self, db: Session):
        super().__init__(db, PaymentTransaction)

    def add_payment_transaction(self, **fields: Any) -> PaymentTransaction:
        row = PaymentTransaction(**fields)
        self.db.add(row)
        self.db.flush()
        return row

    def add_finance_transactions(self, rows: Sequence[Dict[str, Any]]) -> List[FinanceTransaction]:
        entries = [FinanceTransaction(**row) for row in rows]
        self.db.add_all(entries)
        self.db.flush()
        return entries

    def add_payment(self, **fields: Any) -> Payment:
        row = Payment(**fields)
        self.db.add(row)
        self.db.flush()
        return row

    def get_saved_payment_method(
        self, method_id: str, user_id: str, provider: str
    ) -> Optional[SavedPaymentMethod]:
        return (
            self.db.query(SavedPaymentMethod)
            .filter(
                SavedPaymentMethod.id == method_id,
                SavedPaymentMethod.user_id == user_id,
                SavedPaymentMethod.provider == provider,
                SavedPaymentMethod.is_active.is_(True),
            )
            .first()
        )
