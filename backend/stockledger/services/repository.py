# Overview: Persistence boundary for the ledger core (abstract interface + SQLAlchemy implementation).

"""
Repository interface

The ledgers, the return processor and the coordinator only talk to a
LedgerRepository. Every lookup is scoped by tenant_id: a row that exists but
belongs to another tenant is reported exactly like a missing one.

Mutations are staged on the repository and become durable together in
commit_unit_of_work(). rollback() discards everything staged since begin().
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod

from sqlalchemy import func, text

from ..enums import CounterpartyRole, LedgerKind
from ..errors import ReferenceNotFoundError
from ..models import (
    Customer,
    CustomerReturn,
    IdempotencyRecord,
    Item,
    LedgerPosting,
    Purchase,
    PurchaseItem,
    Sale,
    SaleItem,
    Supplier,
    SupplierReturn,
    Tenant,
)
from ..money import Quantity
from .concurrency import lock_for_update

logger = logging.getLogger(__name__)


class LedgerRepository(ABC):
    """Tenant-scoped reads plus a single atomic commit."""

    @abstractmethod
    def begin(self) -> None:
        """Open the unit of work (takes the write lock where the backend needs it)."""

    @abstractmethod
    def get_tenant(self, tenant_id: int) -> Tenant: ...

    @abstractmethod
    def get_item(self, tenant_id: int, item_id: int, *, lock: bool = False) -> Item: ...

    @abstractmethod
    def get_customer(self, tenant_id: int, customer_id: int, *, lock: bool = False) -> Customer: ...

    @abstractmethod
    def get_supplier(self, tenant_id: int, supplier_id: int, *, lock: bool = False) -> Supplier: ...

    def get_counterparty(self, tenant_id: int, role: CounterpartyRole, counterparty_id: int, *, lock: bool = False):
        if role == CounterpartyRole.CUSTOMER:
            return self.get_customer(tenant_id, counterparty_id, lock=lock)
        return self.get_supplier(tenant_id, counterparty_id, lock=lock)

    @abstractmethod
    def get_sale_line(self, tenant_id: int, sale_id: int, sale_item_id: int) -> tuple[Sale, SaleItem]: ...

    @abstractmethod
    def get_purchase_line(
        self, tenant_id: int, purchase_id: int, purchase_item_id: int
    ) -> tuple[Purchase, PurchaseItem]: ...

    @abstractmethod
    def get_prior_returns_for_line(self, tenant_id: int, role: CounterpartyRole, line_id: int) -> Quantity:
        """Total quantity already returned against one sale/purchase line."""

    @abstractmethod
    def find_posting(
        self, tenant_id: int, ledger: LedgerKind, subject_id: int, event_key: str
    ) -> LedgerPosting | None: ...

    @abstractmethod
    def find_idempotency_record(self, tenant_id: int, idempotency_key: str) -> IdempotencyRecord | None: ...

    @abstractmethod
    def stage(self, *records) -> None:
        """Queue new records for the current unit of work."""

    @abstractmethod
    def flush(self) -> None:
        """Assign primary keys to staged records without committing."""

    @abstractmethod
    def commit_unit_of_work(self, records=()) -> None:
        """Stage any remaining records and make everything durable, or nothing."""

    @abstractmethod
    def rollback(self) -> None: ...


class SqlAlchemyLedgerRepository(LedgerRepository):
    """LedgerRepository over a (Flask-)SQLAlchemy session."""

    def __init__(self, session):
        self.session = session

    # -- transaction control -------------------------------------------------

    def begin(self) -> None:
        bind = self.session.get_bind()
        if bind.dialect.name == "sqlite":
            # SQLite ignores FOR UPDATE; take the write lock up front instead
            self.session.execute(text("BEGIN IMMEDIATE"))

    def stage(self, *records) -> None:
        self.session.add_all(records)

    def flush(self) -> None:
        self.session.flush()

    def commit_unit_of_work(self, records=()) -> None:
        if records:
            self.session.add_all(list(records))
        self.session.flush()
        self.session.commit()

    def rollback(self) -> None:
        self.session.rollback()

    # -- tenant-scoped lookups -------------------------------------------------

    def _scoped(self, model, tenant_id: int, row_id: int, label: str, *, lock: bool = False):
        query = self.session.query(model).filter(model.id == row_id)
        if lock:
            # reload the locked row; another writer may have committed since it was cached
            query = lock_for_update(query).populate_existing()
        row = query.one_or_none()
        if row is None:
            raise ReferenceNotFoundError(
                f"{label} not found or does not belong to your tenant",
                details={"entity": label, "id": row_id},
            )
        if row.tenant_id != tenant_id:
            logger.warning(
                "Cross-tenant reference denied: %s %s requested by tenant %s",
                label, row_id, tenant_id,
            )
            raise ReferenceNotFoundError(
                f"{label} not found or does not belong to your tenant",
                details={"entity": label, "id": row_id},
            )
        return row

    def get_tenant(self, tenant_id: int) -> Tenant:
        tenant = self.session.get(Tenant, tenant_id)
        if tenant is None:
            raise ReferenceNotFoundError("Tenant not found", details={"entity": "Tenant", "id": tenant_id})
        return tenant

    def get_item(self, tenant_id: int, item_id: int, *, lock: bool = False) -> Item:
        return self._scoped(Item, tenant_id, item_id, "Item", lock=lock)

    def get_customer(self, tenant_id: int, customer_id: int, *, lock: bool = False) -> Customer:
        return self._scoped(Customer, tenant_id, customer_id, "Customer", lock=lock)

    def get_supplier(self, tenant_id: int, supplier_id: int, *, lock: bool = False) -> Supplier:
        return self._scoped(Supplier, tenant_id, supplier_id, "Supplier", lock=lock)

    def get_sale_line(self, tenant_id: int, sale_id: int, sale_item_id: int) -> tuple[Sale, SaleItem]:
        sale = self._scoped(Sale, tenant_id, sale_id, "Sale")
        line = self.session.get(SaleItem, sale_item_id)
        if line is None or line.sale_id != sale.id:
            raise ReferenceNotFoundError(
                "Sale item not found on this sale",
                details={"sale_id": sale_id, "sale_item_id": sale_item_id},
            )
        return sale, line

    def get_purchase_line(
        self, tenant_id: int, purchase_id: int, purchase_item_id: int
    ) -> tuple[Purchase, PurchaseItem]:
        purchase = self._scoped(Purchase, tenant_id, purchase_id, "Purchase")
        line = self.session.get(PurchaseItem, purchase_item_id)
        if line is None or line.purchase_id != purchase.id:
            raise ReferenceNotFoundError(
                "Purchase item not found on this purchase",
                details={"purchase_id": purchase_id, "purchase_item_id": purchase_item_id},
            )
        return purchase, line

    def get_prior_returns_for_line(self, tenant_id: int, role: CounterpartyRole, line_id: int) -> Quantity:
        if role == CounterpartyRole.CUSTOMER:
            model, column = CustomerReturn, CustomerReturn.sale_item_id
        else:
            model, column = SupplierReturn, SupplierReturn.purchase_item_id
        total = (
            self.session.query(func.coalesce(func.sum(model.quantity), 0))
            .filter(model.tenant_id == tenant_id, column == line_id)
            .scalar()
        )
        return Quantity.of(int(total or 0))

    def find_posting(
        self, tenant_id: int, ledger: LedgerKind, subject_id: int, event_key: str
    ) -> LedgerPosting | None:
        return (
            self.session.query(LedgerPosting)
            .filter_by(
                tenant_id=tenant_id,
                ledger=LedgerKind(ledger).value,
                subject_id=subject_id,
                event_key=event_key,
            )
            .one_or_none()
        )

    def find_idempotency_record(self, tenant_id: int, idempotency_key: str) -> IdempotencyRecord | None:
        return (
            self.session.query(IdempotencyRecord)
            .filter_by(tenant_id=tenant_id, idempotency_key=idempotency_key)
            .one_or_none()
        )
