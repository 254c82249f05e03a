"""
ORM-level append-only protection.

Every transaction record family is create-only. Corrections are modeled as
new compensating records (a return, a stock adjustment), never as edits.
The mapper listeners below reject UPDATE and DELETE flushes for them.
"""

from sqlalchemy import event

from ..errors import ImmutableRecordError
from .audit import AuditLog, IdempotencyRecord, LedgerPosting
from .returns import BalanceAdjustment, CustomerReturn, StockAdjustment, SupplierReturn
from .transactions import (
    CustomerPayment,
    Purchase,
    PurchaseItem,
    Sale,
    SaleItem,
    SupplierPayment,
)

IMMUTABLE_MODELS = (
    Sale,
    SaleItem,
    Purchase,
    PurchaseItem,
    CustomerPayment,
    SupplierPayment,
    CustomerReturn,
    SupplierReturn,
    StockAdjustment,
    BalanceAdjustment,
    AuditLog,
    LedgerPosting,
    IdempotencyRecord,
)


def _prevent_update(mapper, connection, target):
    raise ImmutableRecordError(
        f"{type(target).__name__} records are immutable - cannot modify",
        details={"entity": type(target).__name__, "entity_id": target.id},
    )


def _prevent_delete(mapper, connection, target):
    raise ImmutableRecordError(
        f"{type(target).__name__} records are immutable - cannot delete; record a compensating entry instead",
        details={"entity": type(target).__name__, "entity_id": target.id},
    )


for _model in IMMUTABLE_MODELS:
    event.listen(_model, "before_update", _prevent_update)
    event.listen(_model, "before_delete", _prevent_delete)
