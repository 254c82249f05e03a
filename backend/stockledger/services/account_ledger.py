# Overview: Sole writer of Customer/Supplier balances; applies signed amount deltas.

from __future__ import annotations

import logging

from ..enums import CounterpartyRole, LedgerKind
from ..errors import CreditLimitExceededError
from ..models import LedgerPosting
from ..money import Money
from .repository import LedgerRepository

logger = logging.getLogger(__name__)


class AccountLedger:
    """
    Counterparty balance ledger.

    Customer balance: what the customer owes the business.
    Supplier balance: what the business owes the supplier.

    Balances have no lower bound (overpayment leaves a credit). The tenant
    credit_limit, when set, caps customer balances for increasing deltas
    only, so payments and credit returns are always accepted.
    """

    def __init__(self, repository: LedgerRepository):
        self.repository = repository

    def apply_delta(
        self,
        tenant_id: int,
        counterparty_id: int,
        role: CounterpartyRole,
        signed_amount,
        reason: str,
        *,
        event_key: str,
    ) -> Money:
        role = CounterpartyRole(role)
        delta = Money.of(signed_amount)
        counterparty = self.repository.get_counterparty(tenant_id, role, counterparty_id, lock=True)
        subject_key = f"{role.value}:{event_key}"

        if self.repository.find_posting(tenant_id, LedgerKind.ACCOUNT, counterparty.id, subject_key) is not None:
            logger.info("Account delta already applied: %s %s event=%s", role.value, counterparty.id, event_key)
            return counterparty.balance

        current = counterparty.balance
        new_balance = current + delta

        if role == CounterpartyRole.CUSTOMER and delta.is_positive:
            tenant = self.repository.get_tenant(tenant_id)
            if tenant.credit_limit is not None and new_balance > tenant.credit_limit:
                raise CreditLimitExceededError(
                    counterparty_id=counterparty.id,
                    current_balance=current,
                    requested_delta=delta,
                    credit_limit=tenant.credit_limit,
                )

        counterparty.balance = new_balance
        self.repository.stage(
            LedgerPosting(
                tenant_id=tenant_id,
                ledger=LedgerKind.ACCOUNT.value,
                role=role.value,
                subject_id=counterparty.id,
                event_key=subject_key,
                amount_delta=delta,
                balance_after=new_balance,
                reason=reason,
            )
        )
        logger.debug("Account delta staged: %s %s delta=%s after=%s", role.value, counterparty.id, delta, new_balance)
        return new_balance
