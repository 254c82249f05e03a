# Overview: Orchestrates every mutating business event as one atomic, idempotent unit of work.

"""
TransactionCoordinator

Each public operation runs the same pipeline:

    Validate -> ComputeDeltas -> ApplyAtomically -> Commit (dispatch event)
    (any step may end in Rejected instead)

- Structural validation happens before any database work.
- Everything else runs inside run_with_retry(): the session is rolled back
  on every failure, so a rejected or failed request leaves no trace.
- Lock order is always items (ascending id) then counterparties (ascending id).
- The AuditLog entry and the IdempotencyRecord are committed in the same
  transaction as the ledger deltas.
- A repeated idempotency key replays the first committed summary
  (replayed=True) without touching any ledger or emitting an event.
- Events are dispatched only after commit.
"""

from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass

from flask import current_app

from ..enums import CounterpartyRole, PaymentMethod, PaymentType, ReturnType, StockAdjustmentType, parse_enum
from ..errors import ValidationError
from ..extensions import db
from ..models import (
    BalanceAdjustment,
    CustomerPayment,
    CustomerReturn,
    IdempotencyRecord,
    Purchase,
    PurchaseItem,
    Sale,
    SaleItem,
    StockAdjustment,
    SupplierPayment,
    SupplierReturn,
)
from ..money import Money, Quantity, ValueOutOfRange
from .account_ledger import AccountLedger
from .audit_service import build_audit_entry
from .concurrency import Deadline, run_with_retry
from .events import (
    BalanceAdjusted,
    BalanceReminder,
    EventDispatcher,
    PaymentRecorded,
    PurchaseRecorded,
    ReturnRecorded,
    SaleRecorded,
    StockAdjusted,
)
from .inventory_ledger import InventoryLedger
from .payment_allocator import allocate, allocate_payment
from .pricing import resolve_cost_price, resolve_sale_price
from .repository import LedgerRepository, SqlAlchemyLedgerRepository
from .requests import (
    MAX_BULK_ROWS,
    BalanceAdjustmentLine,
    BalanceAdjustmentRequest,
    BulkStockAdjustmentRequest,
    PaymentRequest,
    PurchaseRequest,
    RecordResult,
    ReturnRequest,
    SaleRequest,
    StockAdjustmentLine,
    StockAdjustmentRequest,
    normalize_idempotency_key,
)
from .return_processor import ReturnProcessor

logger = logging.getLogger(__name__)


@dataclass
class _Outcome:
    result: RecordResult
    events: tuple
    entity: str
    entity_id: int | None


def _to_quantity(quantity, label: str) -> Quantity:
    try:
        return Quantity.of(quantity)
    except (TypeError, ValueError) as exc:
        raise ValidationError(f"{label} must be a whole number within range", details={"error": str(exc)})


def _require_positive_quantity(quantity, label: str = "Quantity") -> Quantity:
    quantity = _to_quantity(quantity, label)
    if not quantity.is_positive:
        raise ValidationError(f"{label} must be positive", details={"quantity": int(quantity)})
    return quantity


def _checked_adjustment_line(line: StockAdjustmentLine) -> StockAdjustmentLine:
    adjustment_type = parse_enum(StockAdjustmentType, line.type, "type")
    if adjustment_type == StockAdjustmentType.SET:
        quantity = _to_quantity(line.quantity, "Counted quantity")
        if quantity.is_negative:
            raise ValidationError("Counted quantity cannot be negative", details={"quantity": int(quantity)})
    else:
        quantity = _require_positive_quantity(line.quantity)
    reason = (line.reason or "").strip()
    if not reason:
        raise ValidationError("Reason is required for stock adjustments")
    return StockAdjustmentLine(line.item_id, adjustment_type, quantity, reason)


def _checked_balance_line(line: BalanceAdjustmentLine) -> BalanceAdjustmentLine:
    try:
        balance = Money.of(line.balance)
    except (TypeError, ValueError) as exc:
        raise ValidationError("balance must be a number within range", details={"error": str(exc)})
    if balance.is_negative:
        raise ValidationError("balance must be a non-negative number")
    return BalanceAdjustmentLine(line.counterparty_id, balance, line.reason)


def _checked_rows(rows, check) -> tuple:
    if not rows:
        raise ValidationError("At least one adjustment is required")
    if len(rows) > MAX_BULK_ROWS:
        raise ValidationError(f"Maximum {MAX_BULK_ROWS} adjustments per request")
    checked = []
    for row_no, row in enumerate(rows, start=1):
        try:
            checked.append(check(row))
        except ValidationError as e:
            if len(rows) == 1:
                raise
            raise ValidationError(f"Row {row_no}: {e.message}", details={"row": row_no, **e.details})
    return tuple(checked)


class TransactionCoordinator:
    def __init__(
        self,
        repository: LedgerRepository,
        dispatcher: EventDispatcher | None = None,
        *,
        retry_attempts: int = 3,
        backoff_seconds: float = 0.1,
        deadline_seconds: float | None = 10.0,
        sleep=time.sleep,
    ):
        self.repository = repository
        self.dispatcher = dispatcher if dispatcher is not None else EventDispatcher()
        self.retry_attempts = retry_attempts
        self.backoff_seconds = backoff_seconds
        self.deadline_seconds = deadline_seconds
        self._sleep = sleep

        self.inventory = InventoryLedger(repository)
        self.accounts = AccountLedger(repository)
        self.returns = ReturnProcessor(repository)

    @classmethod
    def from_app(cls, app=None) -> TransactionCoordinator:
        """Coordinator bound to the app's db.session, settings and event dispatcher."""
        app = app or current_app
        return cls(
            SqlAlchemyLedgerRepository(db.session),
            app.extensions.get("ledger_events"),
            retry_attempts=app.config["LEDGER_RETRY_ATTEMPTS"],
            backoff_seconds=app.config["LEDGER_RETRY_BACKOFF_SECONDS"],
            deadline_seconds=app.config["LEDGER_DEADLINE_SECONDS"],
        )

    # -- pipeline --------------------------------------------------------------

    def _active_tenant(self, tenant_id: int):
        tenant = self.repository.get_tenant(tenant_id)
        if tenant.is_suspended:
            raise ValidationError("Tenant is suspended", details={"tenant_id": tenant_id})
        return tenant

    def _execute(self, operation: str, tenant_id: int, idempotency_key, user_id: str | None, work) -> RecordResult:
        key = normalize_idempotency_key(idempotency_key)
        deadline = Deadline(self.deadline_seconds)
        attempts = 0

        def unit_of_work():
            nonlocal attempts
            attempts += 1
            self.repository.begin()

            existing = self.repository.find_idempotency_record(tenant_id, key)
            if existing is not None:
                if existing.operation != operation:
                    raise ValidationError(
                        "Idempotency key was already used for a different operation",
                        details={"idempotency_key": key, "operation": existing.operation},
                    )
                replay = RecordResult.from_dict(json.loads(existing.response), replayed=True)
                self.repository.rollback()
                return replay, None

            tenant = self._active_tenant(tenant_id)
            try:
                outcome = work(tenant, key)
            except ValueOutOfRange as exc:
                # computed totals and balances can overflow even when every input is in range
                raise ValidationError("Amount or quantity is out of range", details={"error": str(exc)})
            summary = outcome.result.to_dict()
            self.repository.stage(
                build_audit_entry(
                    tenant_id=tenant_id,
                    action="CREATE",
                    entity=outcome.entity,
                    entity_id=outcome.entity_id,
                    user_id=user_id,
                    idempotency_key=key,
                    payload=summary,
                ),
                IdempotencyRecord(
                    tenant_id=tenant_id,
                    idempotency_key=key,
                    operation=operation,
                    response=json.dumps(summary, sort_keys=True),
                ),
            )
            deadline.check(attempts=attempts)
            self.repository.commit_unit_of_work()
            return outcome.result, outcome.events

        result, events = run_with_retry(
            unit_of_work,
            attempts=self.retry_attempts,
            backoff_base=self.backoff_seconds,
            rollback=self.repository.rollback,
            deadline=deadline,
            sleep=self._sleep,
        )

        if result.replayed:
            logger.info("Replayed %s for tenant %s (key=%s)", operation, tenant_id, key)
        else:
            logger.info(
                "Recorded %s for tenant %s: record=%s attempts=%s",
                operation, tenant_id, result.record_id, attempts,
            )
            for event in events or ():
                self.dispatcher.publish(event)
        return result

    def _lock_items(self, tenant_id: int, item_ids) -> dict:
        return {
            item_id: self.repository.get_item(tenant_id, item_id, lock=True)
            for item_id in sorted(set(item_ids))
        }

    # -- operations ------------------------------------------------------------

    def record_sale(self, request: SaleRequest, idempotency_key) -> RecordResult:
        if not request.lines:
            raise ValidationError("At least one item is required")
        for line in request.lines:
            _require_positive_quantity(line.quantity)
        payment_type = parse_enum(PaymentType, request.payment_type, "payment_type")
        if payment_type == PaymentType.CREDIT and request.customer_id is None:
            raise ValidationError("Customer is required for credit sales")

        def work(tenant, key):
            items = self._lock_items(tenant.id, [line.item_id for line in request.lines])
            customer = None
            if request.customer_id is not None:
                customer = self.repository.get_customer(tenant.id, request.customer_id, lock=True)

            priced = [
                (line_no, line, resolve_sale_price(tenant, items[line.item_id], line.price, line.price_tier))
                for line_no, line in enumerate(request.lines, start=1)
            ]
            total = sum((Quantity.of(line.quantity) * price for _, line, price in priced), Money.zero())
            if request.paid_amount is not None:
                paid = request.paid_amount
            else:
                paid = total if payment_type == PaymentType.CASH else Money.zero()
            allocation = allocate(total, paid, payment_type)

            sale = Sale(
                tenant_id=tenant.id,
                customer_id=customer.id if customer is not None else None,
                user_id=request.user_id,
                total_amount=total,
                paid_amount=allocation.immediate_cash,
                payment_type=payment_type.value,
            )
            self.repository.stage(sale)
            self.repository.flush()

            quantities = {}
            for line_no, line, price in priced:
                self.repository.stage(
                    SaleItem(sale_id=sale.id, item_id=line.item_id, line_no=line_no, quantity=line.quantity, price=price)
                )
                quantities[line.item_id] = self.inventory.apply_delta(
                    tenant.id,
                    line.item_id,
                    -Quantity.of(line.quantity),
                    f"Sale {sale.id} line {line_no}",
                    event_key=f"{key}:sale:{line_no}",
                )

            balance = None
            if customer is not None:
                if allocation.balance_delta.is_zero:
                    balance = customer.balance
                else:
                    balance = self.accounts.apply_delta(
                        tenant.id,
                        customer.id,
                        CounterpartyRole.CUSTOMER,
                        allocation.balance_delta,
                        f"Credit sale {sale.id}",
                        event_key=f"{key}:sale",
                    )

            result = RecordResult(
                operation="record_sale",
                tenant_id=tenant.id,
                record_id=sale.id,
                quantities=quantities,
                balance=balance,
                counterparty_id=sale.customer_id,
                role=CounterpartyRole.CUSTOMER if customer is not None else None,
            )
            event = SaleRecorded(
                tenant_id=tenant.id,
                sale_id=sale.id,
                customer_id=sale.customer_id,
                total_amount=total,
                paid_amount=allocation.immediate_cash,
                balance=balance,
            )
            return _Outcome(result, (event,), "Sale", sale.id)

        return self._execute("record_sale", request.tenant_id, idempotency_key, request.user_id, work)

    def record_purchase(self, request: PurchaseRequest, idempotency_key) -> RecordResult:
        if not request.lines:
            raise ValidationError("At least one item is required")
        for line in request.lines:
            _require_positive_quantity(line.quantity)
        payment_type = parse_enum(PaymentType, request.payment_type, "payment_type")

        def work(tenant, key):
            items = self._lock_items(tenant.id, [line.item_id for line in request.lines])
            supplier = self.repository.get_supplier(tenant.id, request.supplier_id)

            priced = [
                (line_no, line, resolve_cost_price(items[line.item_id], line.cost_price))
                for line_no, line in enumerate(request.lines, start=1)
            ]
            total = sum((Quantity.of(line.quantity) * cost for _, line, cost in priced), Money.zero())
            if request.paid_amount is not None:
                paid = request.paid_amount
            else:
                paid = total if payment_type == PaymentType.CASH else Money.zero()
            allocation = allocate(total, paid, payment_type)

            purchase = Purchase(
                tenant_id=tenant.id,
                supplier_id=supplier.id,
                user_id=request.user_id,
                total_amount=total,
                paid_amount=allocation.immediate_cash,
                payment_type=payment_type.value,
            )
            self.repository.stage(purchase)
            self.repository.flush()

            quantities = {}
            for line_no, line, cost in priced:
                self.repository.stage(
                    PurchaseItem(
                        purchase_id=purchase.id,
                        item_id=line.item_id,
                        line_no=line_no,
                        quantity=line.quantity,
                        cost_price=cost,
                    )
                )
                quantities[line.item_id] = self.inventory.apply_delta(
                    tenant.id,
                    line.item_id,
                    line.quantity,
                    f"Purchase {purchase.id} line {line_no}",
                    event_key=f"{key}:purchase:{line_no}",
                )

            if allocation.balance_delta.is_zero:
                balance = supplier.balance
            else:
                balance = self.accounts.apply_delta(
                    tenant.id,
                    supplier.id,
                    CounterpartyRole.SUPPLIER,
                    allocation.balance_delta,
                    f"Credit purchase {purchase.id}",
                    event_key=f"{key}:purchase",
                )

            result = RecordResult(
                operation="record_purchase",
                tenant_id=tenant.id,
                record_id=purchase.id,
                quantities=quantities,
                balance=balance,
                counterparty_id=supplier.id,
                role=CounterpartyRole.SUPPLIER,
            )
            event = PurchaseRecorded(
                tenant_id=tenant.id,
                purchase_id=purchase.id,
                supplier_id=supplier.id,
                total_amount=total,
                paid_amount=allocation.immediate_cash,
                balance=balance,
            )
            return _Outcome(result, (event,), "Purchase", purchase.id)

        return self._execute("record_purchase", request.tenant_id, idempotency_key, request.user_id, work)

    def record_payment(self, request: PaymentRequest, idempotency_key) -> RecordResult:
        role = parse_enum(CounterpartyRole, request.role, "role")
        allocation = allocate_payment(request.amount)
        method = parse_enum(PaymentMethod, request.method, "method")
        operation = "record_customer_payment" if role == CounterpartyRole.CUSTOMER else "record_supplier_payment"

        def work(tenant, key):
            counterparty = self.repository.get_counterparty(tenant.id, role, request.counterparty_id)
            if role == CounterpartyRole.CUSTOMER:
                payment = CustomerPayment(customer_id=counterparty.id)
                entity = "CustomerPayment"
            else:
                payment = SupplierPayment(supplier_id=counterparty.id)
                entity = "SupplierPayment"
            payment.tenant_id = tenant.id
            payment.user_id = request.user_id
            payment.amount = allocation.immediate_cash
            payment.method = method.value
            payment.reference = request.reference
            self.repository.stage(payment)
            self.repository.flush()

            balance = self.accounts.apply_delta(
                tenant.id,
                counterparty.id,
                role,
                allocation.balance_delta,
                f"{entity} {payment.id}",
                event_key=f"{key}:payment",
            )
            result = RecordResult(
                operation=operation,
                tenant_id=tenant.id,
                record_id=payment.id,
                balance=balance,
                counterparty_id=counterparty.id,
                role=role,
            )
            event = PaymentRecorded(
                tenant_id=tenant.id,
                payment_id=payment.id,
                role=role,
                counterparty_id=counterparty.id,
                amount=allocation.immediate_cash,
                balance=balance,
            )
            return _Outcome(result, (event,), entity, payment.id)

        return self._execute(operation, request.tenant_id, idempotency_key, request.user_id, work)

    def record_return(self, request: ReturnRequest, idempotency_key) -> RecordResult:
        role = parse_enum(CounterpartyRole, request.role, "role")
        _require_positive_quantity(request.quantity, "Return quantity")
        return_type = parse_enum(ReturnType, request.type, "type")
        operation = "record_customer_return" if role == CounterpartyRole.CUSTOMER else "record_supplier_return"

        def work(tenant, key):
            # Item lock first: serializes concurrent returns against the same line
            self.repository.get_item(tenant.id, request.item_id, lock=True)
            if role == CounterpartyRole.CUSTOMER:
                source, line = self.repository.get_sale_line(tenant.id, request.source_id, request.line_id)
                counterparty_id = source.customer_id
            else:
                source, line = self.repository.get_purchase_line(tenant.id, request.source_id, request.line_id)
                counterparty_id = source.supplier_id

            effect = self.returns.process(request, line)
            if not effect.balance_delta.is_zero and counterparty_id is None:
                raise ValidationError(
                    "Credit returns require a sale with a customer",
                    details={"sale_id": source.id},
                )

            common = dict(
                tenant_id=tenant.id,
                item_id=line.item_id,
                user_id=request.user_id,
                quantity=Quantity.of(request.quantity),
                type=return_type.value,
                amount=Money.of(request.amount),
                reason=request.reason,
            )
            if role == CounterpartyRole.CUSTOMER:
                record = CustomerReturn(sale_id=source.id, sale_item_id=line.id, **common)
                entity = "CustomerReturn"
            else:
                record = SupplierReturn(purchase_id=source.id, purchase_item_id=line.id, **common)
                entity = "SupplierReturn"
            self.repository.stage(record)
            self.repository.flush()

            quantities = {
                line.item_id: self.inventory.apply_delta(
                    tenant.id,
                    line.item_id,
                    effect.inventory_delta,
                    f"{entity} {record.id}",
                    event_key=f"{key}:return",
                )
            }

            balance = None
            if counterparty_id is not None:
                if effect.balance_delta.is_zero:
                    balance = self.repository.get_counterparty(tenant.id, role, counterparty_id).balance
                else:
                    balance = self.accounts.apply_delta(
                        tenant.id,
                        counterparty_id,
                        role,
                        effect.balance_delta,
                        f"{entity} {record.id}",
                        event_key=f"{key}:return",
                    )

            result = RecordResult(
                operation=operation,
                tenant_id=tenant.id,
                record_id=record.id,
                quantities=quantities,
                balance=balance,
                counterparty_id=counterparty_id,
                role=role,
            )
            event = ReturnRecorded(
                tenant_id=tenant.id,
                return_id=record.id,
                role=role,
                counterparty_id=counterparty_id,
                item_id=line.item_id,
                quantity=Quantity.of(request.quantity),
                return_type=return_type.value,
                amount=Money.of(request.amount),
                balance=balance,
            )
            return _Outcome(result, (event,), entity, record.id)

        return self._execute(operation, request.tenant_id, idempotency_key, request.user_id, work)

    def _adjust_stock(self, tenant, line: StockAdjustmentLine, user_id: str | None, event_key: str):
        item = self.repository.get_item(tenant.id, line.item_id, lock=True)
        if line.type == StockAdjustmentType.SET:
            delta = line.quantity - item.quantity
        elif line.type == StockAdjustmentType.INCREASE:
            delta = line.quantity
        else:
            delta = -line.quantity

        adjustment = StockAdjustment(
            tenant_id=tenant.id,
            item_id=item.id,
            user_id=user_id,
            type=line.type.value,
            quantity=line.quantity,
            quantity_delta=delta,
            reason=line.reason,
        )
        self.repository.stage(adjustment)
        self.repository.flush()

        if delta.is_zero:
            new_quantity = item.quantity
        else:
            new_quantity = self.inventory.apply_delta(
                tenant.id,
                item.id,
                delta,
                f"StockAdjustment {adjustment.id}: {adjustment.reason}"[:255],
                event_key=event_key,
            )
        event = StockAdjusted(
            tenant_id=tenant.id,
            adjustment_id=adjustment.id,
            item_id=item.id,
            adjustment_type=line.type.value,
            quantity=line.quantity,
            new_quantity=new_quantity,
        )
        return adjustment, new_quantity, event

    def record_stock_adjustment(self, request: StockAdjustmentRequest, idempotency_key) -> RecordResult:
        line = _checked_adjustment_line(request.line)

        def work(tenant, key):
            adjustment, new_quantity, event = self._adjust_stock(tenant, line, request.user_id, f"{key}:adjustment")
            result = RecordResult(
                operation="record_stock_adjustment",
                tenant_id=tenant.id,
                record_id=adjustment.id,
                quantities={line.item_id: new_quantity},
            )
            return _Outcome(result, (event,), "StockAdjustment", adjustment.id)

        return self._execute("record_stock_adjustment", request.tenant_id, idempotency_key, request.user_id, work)

    def record_bulk_stock_adjustment(self, request: BulkStockAdjustmentRequest, idempotency_key) -> RecordResult:
        """
        Apply many stock corrections in one unit of work.

        Rows are applied in order, so a SET after an INCREASE of the same item
        sees the increased quantity. One failing row rejects the whole request.
        """
        lines = _checked_rows(request.lines, _checked_adjustment_line)

        def work(tenant, key):
            self._lock_items(tenant.id, [line.item_id for line in lines])
            quantities, record_ids, events = {}, [], []
            for row_no, line in enumerate(lines, start=1):
                adjustment, new_quantity, event = self._adjust_stock(
                    tenant, line, request.user_id, f"{key}:adjustment:{row_no}"
                )
                quantities[line.item_id] = new_quantity
                record_ids.append(adjustment.id)
                events.append(event)

            result = RecordResult(
                operation="record_bulk_stock_adjustment",
                tenant_id=tenant.id,
                record_id=None,
                quantities=quantities,
                record_ids=record_ids,
            )
            return _Outcome(result, tuple(events), "StockAdjustment", None)

        return self._execute("record_bulk_stock_adjustment", request.tenant_id, idempotency_key, request.user_id, work)

    def record_balance_adjustment(self, request: BalanceAdjustmentRequest, idempotency_key) -> RecordResult:
        """
        Set customer (or supplier) balances to stated values.

        Each row records a BalanceAdjustment and posts the difference through
        AccountLedger, so the tenant credit limit still caps customer increases.
        A single-row request reports that counterparty's new balance.
        """
        role = parse_enum(CounterpartyRole, request.role, "role")
        lines = _checked_rows(request.lines, _checked_balance_line)
        operation = f"record_{role.value.lower()}_balance_adjustment"

        def work(tenant, key):
            for counterparty_id in sorted({line.counterparty_id for line in lines}):
                self.repository.get_counterparty(tenant.id, role, counterparty_id, lock=True)

            record_ids, events = [], []
            balance = None
            for row_no, line in enumerate(lines, start=1):
                counterparty = self.repository.get_counterparty(tenant.id, role, line.counterparty_id)
                previous = counterparty.balance
                delta = line.balance - previous
                adjustment = BalanceAdjustment(
                    tenant_id=tenant.id,
                    role=role.value,
                    counterparty_id=counterparty.id,
                    user_id=request.user_id,
                    previous_balance=previous,
                    new_balance=line.balance,
                    amount_delta=delta,
                    reason=line.reason,
                )
                self.repository.stage(adjustment)
                self.repository.flush()

                if delta.is_zero:
                    balance = previous
                else:
                    balance = self.accounts.apply_delta(
                        tenant.id,
                        counterparty.id,
                        role,
                        delta,
                        f"BalanceAdjustment {adjustment.id}: {line.reason or 'manual'}"[:255],
                        event_key=f"{key}:balance:{row_no}",
                    )
                record_ids.append(adjustment.id)
                events.append(
                    BalanceAdjusted(
                        tenant_id=tenant.id,
                        adjustment_id=adjustment.id,
                        role=role,
                        counterparty_id=counterparty.id,
                        previous_balance=previous,
                        new_balance=balance,
                        reason=line.reason,
                    )
                )

            single = len(lines) == 1
            result = RecordResult(
                operation=operation,
                tenant_id=tenant.id,
                record_id=record_ids[0] if single else None,
                balance=balance if single else None,
                counterparty_id=lines[0].counterparty_id if single else None,
                role=role,
                record_ids=record_ids,
            )
            return _Outcome(result, tuple(events), "BalanceAdjustment", result.record_id)

        return self._execute(operation, request.tenant_id, idempotency_key, request.user_id, work)

    def request_balance_reminder(self, tenant_id: int, customer_id: int, user_id: str | None = None) -> BalanceReminder:
        """
        Emit a BalanceReminder for a customer who owes money.

        Delivery (SMS, templating) belongs to whoever subscribes to the event.
        The request itself is audited as REMIND_Customer.
        """

        def unit_of_work():
            self.repository.begin()
            self._active_tenant(tenant_id)
            customer = self.repository.get_customer(tenant_id, customer_id)
            if not customer.balance.is_positive:
                raise ValidationError(
                    "Customer has no outstanding balance",
                    details={"customer_id": customer.id, "balance": str(customer.balance)},
                )
            reminder = BalanceReminder(
                tenant_id=tenant_id,
                customer_id=customer.id,
                customer_name=customer.name,
                phone=customer.phone,
                balance=customer.balance,
            )
            self.repository.commit_unit_of_work(
                [
                    build_audit_entry(
                        tenant_id=tenant_id,
                        action="REMIND",
                        entity="Customer",
                        entity_id=customer.id,
                        user_id=user_id,
                        payload={"balance": str(customer.balance)},
                    )
                ]
            )
            return reminder

        reminder = run_with_retry(
            unit_of_work,
            attempts=self.retry_attempts,
            backoff_base=self.backoff_seconds,
            rollback=self.repository.rollback,
            deadline=Deadline(self.deadline_seconds),
            sleep=self._sleep,
        )
        logger.info("Balance reminder requested: tenant=%s customer=%s", tenant_id, customer_id)
        self.dispatcher.publish(reminder)
        return reminder
