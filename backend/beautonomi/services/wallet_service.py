# backend/beautonomi/services/wallet_service.py
"""Customer wallet balance and atomic self-debit."""

from decimal import Decimal
from typing import Optional

from sqlalchemy.orm import Session

from ..core.exceptions import WalletException
from ..models.wallet import WalletTransaction
from ..repositories.factory import RepositoryFactory
from ..repositories.wallet_repository import WalletRepository
from .base import BaseService
from .pricing_policy import ZERO, round_money


class WalletService(BaseService):
    def __init__(self, db: Session, repository: Optional[WalletRepository] = None):
        super().__init__(db)
        self.repository = repository or RepositoryFactory.create_wallet_repository(db)

    def balance(self, user_id: str) -> Decimal:
        return round_money(self.repository.get_balance(user_id))

    @BaseService.measure_operation("wallet_debit")
    def debit_self(
        self,
        user_id: str,
        amount: Decimal,
        description: str,
        reference_id: Optional[str] = None,
        reference_type: Optional[str] = None,
    ) -> WalletTransaction:
        """
        Spend ``amount`` from the user's own wallet.

        Raises:
            WalletException: non-positive amount or insufficient funds
        """
        amount = round_money(amount)
        if amount <= ZERO:
            raise WalletException("Wallet debit amount must be positive", code="WALLET_INVALID_AMOUNT")
        with self.transaction():
            entry = self.repository.debit(
                user_id=user_id,
                amount=amount,
                description=description,
                reference_id=reference_id,
                reference_type=reference_type,
            )
            if entry is None:
                raise WalletException(
                    "Insufficient wallet balance", code="WALLET_INSUFFICIENT_FUNDS"
                )
        return entry

    @BaseService.measure_operation("wallet_refund")
    def refund(
        self,
        user_id: str,
        amount: Decimal,
        description: str,
        reference_id: Optional[str] = None,
        reference_type: Optional[str] = None,
    ) -> WalletTransaction:
        with self.transaction():
            entry = self.repository.credit(
                user_id=user_id,
                amount=round_money(amount),
                description=description,
                reference_id=reference_id,
                reference_type=reference_type,
            )
            if entry is None:
                raise WalletException("Wallet not found for refund", code="WALLET_NOT_FOUND")
        return entry
