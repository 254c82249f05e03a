# Overview: Pytest coverage for TransactionCoordinator operations, atomicity and idempotency.

"""
TransactionCoordinator Tests

Covers every business event end to end against the database:
- sales / purchases (cash and credit), payments, returns, stock adjustments
- all-or-nothing behavior under policy refusals and injected faults
- idempotent replay and bounded retry of transient conflicts
- reconciliation of stored quantities and balances against history
"""

import json

import pytest
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from stockledger.enums import (
    CounterpartyRole,
    PaymentMethod,
    PaymentType,
    PriceTier,
    ReturnType,
    StockAdjustmentType,
    TenantStatus,
)
from stockledger.errors import (
    CreditLimitExceededError,
    InsufficientStockError,
    OverReturnError,
    ReferenceNotFoundError,
    TransientFailure,
    ValidationError,
)
from stockledger.models import (
    AuditLog,
    BalanceAdjustment,
    Customer,
    CustomerReturn,
    IdempotencyRecord,
    Item,
    LedgerPosting,
    PurchaseItem,
    Sale,
    SaleItem,
    StockAdjustment,
    Supplier,
    SupplierReturn,
)
from stockledger.money import MAX_UNITS, Money, Quantity
from stockledger.services.coordinator import TransactionCoordinator
from stockledger.services.events import (
    BalanceAdjusted,
    BalanceReminder,
    PaymentRecorded,
    ReturnRecorded,
    SaleRecorded,
    StockAdjusted,
)
from stockledger.services.reconciliation import verify_tenant
from stockledger.services.requests import (
    BalanceAdjustmentLine,
    BalanceAdjustmentRequest,
    BulkStockAdjustmentRequest,
    PaymentRequest,
    PurchaseLine,
    PurchaseRequest,
    ReturnRequest,
    SaleLine,
    SaleRequest,
    StockAdjustmentLine,
    StockAdjustmentRequest,
)


def sale(tenant, *lines, payment_type=PaymentType.CASH, paid=None, customer=None, user_id="cashier-1"):
    return SaleRequest(
        tenant_id=tenant.id,
        lines=tuple(SaleLine(item_id=i.id, quantity=Quantity(q)) for i, q in lines),
        payment_type=payment_type,
        paid_amount=Money(paid) if paid is not None else None,
        customer_id=customer.id if customer is not None else None,
        user_id=user_id,
    )


def purchase(tenant, supplier, *lines, payment_type=PaymentType.CASH, paid=None):
    return PurchaseRequest(
        tenant_id=tenant.id,
        supplier_id=supplier.id,
        lines=tuple(PurchaseLine(item_id=i.id, quantity=Quantity(q)) for i, q in lines),
        payment_type=payment_type,
        paid_amount=Money(paid) if paid is not None else None,
    )


def payment(tenant, counterparty, amount, role=CounterpartyRole.CUSTOMER):
    return PaymentRequest(
        tenant_id=tenant.id,
        role=role,
        counterparty_id=counterparty.id,
        amount=Money(amount),
        method=PaymentMethod.MOMO,
    )


def customer_return(tenant, sale_id, line, quantity, type=ReturnType.CASH, amount="0"):
    return ReturnRequest(
        tenant_id=tenant.id,
        role=CounterpartyRole.CUSTOMER,
        source_id=sale_id,
        line_id=line.id,
        item_id=line.item_id,
        quantity=Quantity(quantity),
        type=type,
        amount=Money(amount),
        reason="Customer changed mind",
    )


def supplier_return(tenant, purchase_id, line, quantity, type=ReturnType.CASH, amount="0"):
    return ReturnRequest(
        tenant_id=tenant.id,
        role=CounterpartyRole.SUPPLIER,
        source_id=purchase_id,
        line_id=line.id,
        item_id=line.item_id,
        quantity=Quantity(quantity),
        type=type,
        amount=Money(amount),
        reason="Wrong delivery",
    )


def quantity_of(db_session, item):
    return db_session.get(Item, item.id).quantity


def balance_of(db_session, model, row):
    return db_session.get(model, row.id).balance


class TestSales:
    def test_credit_sale_then_partial_payment(self, db_session, coordinator, tenant, item, customer, new_key):
        result = coordinator.record_sale(
            sale(tenant, (item, 3), payment_type=PaymentType.CREDIT, paid="10.00", customer=customer),
            new_key(),
        )
        assert result.quantities == {item.id: Quantity(7)}
        assert result.balance == Money("20.00")
        assert result.counterparty_id == customer.id
        assert not result.replayed

        paid = coordinator.record_payment(payment(tenant, customer, "15.00"), new_key())
        assert paid.balance == Money("5.00")

        assert quantity_of(db_session, item) == Quantity(7)
        assert balance_of(db_session, Customer, customer) == Money("5.00")
        recorded = db_session.get(Sale, result.record_id)
        assert recorded.total_amount == Money("30.00")
        assert recorded.paid_amount == Money("10.00")
        assert recorded.payment_type == "CREDIT"
        assert verify_tenant(tenant.id) == []

    def test_anonymous_cash_sale(self, db_session, coordinator, tenant, item, other_item, events, new_key):
        result = coordinator.record_sale(sale(tenant, (item, 2), (other_item, 1)), new_key())

        assert result.balance is None
        assert result.quantities == {item.id: Quantity(8), other_item.id: Quantity(1)}
        recorded = db_session.get(Sale, result.record_id)
        assert recorded.total_amount == Money("25.00")
        assert recorded.paid_amount == Money("25.00")
        assert [line.line_no for line in recorded.items] == [1, 2]

        sale_events = [e for e in events if isinstance(e, SaleRecorded)]
        assert len(sale_events) == 1
        assert sale_events[0].customer_id is None
        assert sale_events[0].paid_amount == Money("25.00")

    def test_cash_sale_with_known_customer_leaves_balance(self, db_session, coordinator, tenant, item, customer, new_key):
        result = coordinator.record_sale(sale(tenant, (item, 1), customer=customer), new_key())

        assert result.balance == Money.zero()
        assert db_session.query(LedgerPosting).filter_by(ledger="ACCOUNT").count() == 0

    def test_duplicate_item_lines_are_separate_deltas(self, db_session, coordinator, tenant, item, new_key):
        result = coordinator.record_sale(sale(tenant, (item, 2), (item, 3)), new_key())

        assert result.quantities == {item.id: Quantity(5)}
        assert db_session.query(LedgerPosting).filter_by(ledger="INVENTORY").count() == 2
        assert db_session.query(SaleItem).count() == 2

    def test_credit_sale_requires_customer(self, db_session, coordinator, tenant, item, new_key):
        with pytest.raises(ValidationError, match="Customer is required"):
            coordinator.record_sale(sale(tenant, (item, 1), payment_type=PaymentType.CREDIT), new_key())
        assert db_session.query(Sale).count() == 0

    def test_cash_sale_must_be_paid_in_full(self, db_session, coordinator, tenant, item, new_key):
        with pytest.raises(ValidationError):
            coordinator.record_sale(sale(tenant, (item, 1), paid="9.00"), new_key())
        assert db_session.query(Sale).count() == 0
        assert quantity_of(db_session, item) == Quantity(10)

    def test_credit_overpayment_rejected(self, db_session, coordinator, tenant, item, customer, new_key):
        with pytest.raises(ValidationError):
            coordinator.record_sale(
                sale(tenant, (item, 1), payment_type=PaymentType.CREDIT, paid="10.01", customer=customer),
                new_key(),
            )
        assert db_session.query(Sale).count() == 0

    def test_insufficient_stock_rejects_whole_sale(self, db_session, coordinator, tenant, item, other_item, events, new_key):
        with pytest.raises(InsufficientStockError) as exc_info:
            coordinator.record_sale(sale(tenant, (item, 4), (other_item, 3)), new_key())

        assert exc_info.value.details["item_id"] == other_item.id
        assert exc_info.value.details["current_quantity"] == 2
        assert exc_info.value.details["requested_delta"] == -3
        assert quantity_of(db_session, item) == Quantity(10)
        assert quantity_of(db_session, other_item) == Quantity(2)
        assert db_session.query(Sale).count() == 0
        assert db_session.query(SaleItem).count() == 0
        assert db_session.query(AuditLog).count() == 0
        assert db_session.query(LedgerPosting).count() == 0
        assert events == []

    def test_credit_limit_rejects_whole_sale(self, db_session, coordinator, tenant, item, customer, new_key):
        tenant.credit_limit = Money("25.00")
        db_session.commit()

        with pytest.raises(CreditLimitExceededError):
            coordinator.record_sale(
                sale(tenant, (item, 3), payment_type=PaymentType.CREDIT, customer=customer), new_key()
            )

        assert quantity_of(db_session, item) == Quantity(10)
        assert balance_of(db_session, Customer, customer) == Money.zero()
        assert db_session.query(Sale).count() == 0

    def test_wholesale_tier_price(self, db_session, coordinator, tenant, make_item, new_key):
        tenant.enable_wholesale_price = True
        db_session.commit()
        flour = make_item(tenant, "Flour 50kg", price="200.00", wholesale_price=Money("180.00"))

        request = SaleRequest(
            tenant_id=tenant.id,
            lines=(SaleLine(item_id=flour.id, quantity=Quantity(2), price_tier=PriceTier.WHOLESALE),),
        )
        result = coordinator.record_sale(request, new_key())

        assert db_session.get(Sale, result.record_id).total_amount == Money("360.00")

    def test_disabled_tier_rejected(self, db_session, coordinator, tenant, item, new_key):
        request = SaleRequest(
            tenant_id=tenant.id,
            lines=(SaleLine(item_id=item.id, quantity=Quantity(1), price_tier=PriceTier.PROMO),),
        )
        with pytest.raises(ValidationError, match="not enabled"):
            coordinator.record_sale(request, new_key())

    def test_explicit_price_wins(self, db_session, coordinator, tenant, item, new_key):
        request = SaleRequest(
            tenant_id=tenant.id,
            lines=(SaleLine(item_id=item.id, quantity=Quantity(3), price=Money("9.99")),),
        )
        result = coordinator.record_sale(request, new_key())
        assert db_session.get(Sale, result.record_id).total_amount == Money("29.97")

    def test_suspended_tenant_rejected(self, db_session, coordinator, tenant, item, new_key):
        tenant.status = TenantStatus.SUSPENDED.value
        db_session.commit()

        with pytest.raises(ValidationError, match="suspended"):
            coordinator.record_sale(sale(tenant, (item, 1)), new_key())
        assert quantity_of(db_session, item) == Quantity(10)

    def test_audit_entry_committed_with_sale(self, db_session, coordinator, tenant, item, new_key):
        key = new_key()
        result = coordinator.record_sale(sale(tenant, (item, 1), user_id="cashier-7"), key)

        entry = db_session.query(AuditLog).one()
        assert entry.action == "CREATE_Sale"
        assert entry.entity == "Sale"
        assert entry.entity_id == result.record_id
        assert entry.user_id == "cashier-7"
        assert entry.idempotency_key == key
        assert json.loads(entry.payload)["quantities"] == {str(item.id): 9}
    def test_raw_string_payment_type_accepted(self, db_session, coordinator, tenant, item, customer, new_key):
        result = coordinator.record_sale(sale(tenant, (item, 1), payment_type="credit", customer=customer), new_key())

        assert result.balance == Money("10.00")
        assert db_session.get(Sale, result.record_id).payment_type == "CREDIT"

    def test_unknown_payment_type_rejected(self, db_session, coordinator, tenant, item, new_key):
        with pytest.raises(ValidationError, match="Invalid payment_type"):
            coordinator.record_sale(sale(tenant, (item, 1), payment_type="BARTER"), new_key())
        assert db_session.query(Sale).count() == 0

    def test_total_beyond_storage_rejected(self, db_session, coordinator, tenant, item, new_key):
        with pytest.raises(ValidationError, match="out of range"):
            coordinator.record_sale(sale(tenant, (item, MAX_UNITS)), new_key())

        assert db_session.query(Sale).count() == 0
        assert quantity_of(db_session, item) == Quantity(10)


class TestPurchases:
    def test_credit_purchase_increases_stock_and_supplier_balance(self, db_session, coordinator, tenant, item, supplier, new_key):
        result = coordinator.record_purchase(
            purchase(tenant, supplier, (item, 10), payment_type=PaymentType.CREDIT, paid="20.00"),
            new_key(),
        )

        assert result.quantities == {item.id: Quantity(20)}
        assert result.balance == Money("40.00")
        assert balance_of(db_session, Supplier, supplier) == Money("40.00")

        coordinator.record_payment(payment(tenant, supplier, "40.00", role=CounterpartyRole.SUPPLIER), new_key())
        assert balance_of(db_session, Supplier, supplier) == Money.zero()
        assert verify_tenant(tenant.id) == []

    def test_cash_purchase_leaves_supplier_balance(self, db_session, coordinator, tenant, item, supplier, new_key):
        result = coordinator.record_purchase(purchase(tenant, supplier, (item, 5)), new_key())

        assert result.balance == Money.zero()
        assert quantity_of(db_session, item) == Quantity(15)


class TestPayments:
    def test_overpayment_creates_credit(self, db_session, coordinator, tenant, customer, events, new_key):
        result = coordinator.record_payment(payment(tenant, customer, "12.00"), new_key())

        assert result.balance == Money("-12.00")
        [event] = [e for e in events if isinstance(e, PaymentRecorded)]
        assert event.customer_id == customer.id
        assert event.amount == Money("12.00")
        assert event.balance == Money("-12.00")

    def test_zero_payment_rejected(self, coordinator, tenant, customer, new_key):
        with pytest.raises(ValidationError):
            coordinator.record_payment(payment(tenant, customer, "0.00"), new_key())
    def test_unknown_method_rejected(self, db_session, coordinator, tenant, customer, new_key):
        request = PaymentRequest(tenant.id, CounterpartyRole.CUSTOMER, customer.id, Money("5.00"), method="CHEQUE")
        with pytest.raises(ValidationError, match="Invalid method"):
            coordinator.record_payment(request, new_key())
        assert balance_of(db_session, Customer, customer) == Money("0.00")

    def test_raw_string_role_accepted(self, coordinator, tenant, supplier, new_key):
        request = PaymentRequest(tenant.id, "supplier", supplier.id, Money("5.00"), method="bank")
        result = coordinator.record_payment(request, new_key())

        assert result.operation == "record_supplier_payment"
        assert result.role == CounterpartyRole.SUPPLIER
        assert result.balance == Money("-5.00")


class TestReturns:
    def _credit_sale(self, coordinator, tenant, item, customer, key, quantity=3):
        result = coordinator.record_sale(
            sale(tenant, (item, quantity), payment_type=PaymentType.CREDIT, customer=customer), key
        )
        return result.record_id

    def test_credit_return_restocks_and_reduces_balance(self, db_session, coordinator, tenant, item, customer, new_key):
        sale_id = self._credit_sale(coordinator, tenant, item, customer, new_key())
        line = db_session.query(SaleItem).filter_by(sale_id=sale_id).one()

        result = coordinator.record_return(
            customer_return(tenant, sale_id, line, 1, type=ReturnType.CREDIT, amount="10.00"), new_key()
        )

        assert result.quantities == {item.id: Quantity(8)}
        assert result.balance == Money("20.00")
        assert verify_tenant(tenant.id) == []

    def test_cash_return_leaves_balance(self, db_session, coordinator, tenant, item, customer, new_key):
        sale_id = self._credit_sale(coordinator, tenant, item, customer, new_key())
        line = db_session.query(SaleItem).filter_by(sale_id=sale_id).one()

        result = coordinator.record_return(
            customer_return(tenant, sale_id, line, 2, type=ReturnType.CASH, amount="20.00"), new_key()
        )

        assert result.balance == Money("30.00")
        assert quantity_of(db_session, item) == Quantity(9)

    def test_over_return_rejected_across_requests(self, db_session, coordinator, tenant, item, customer, new_key):
        sale_id = self._credit_sale(coordinator, tenant, item, customer, new_key())
        line = db_session.query(SaleItem).filter_by(sale_id=sale_id).one()
        coordinator.record_return(customer_return(tenant, sale_id, line, 2), new_key())

        with pytest.raises(OverReturnError) as exc_info:
            coordinator.record_return(customer_return(tenant, sale_id, line, 2), new_key())

        assert exc_info.value.details["available"] == 1
        assert db_session.query(CustomerReturn).count() == 1
        assert quantity_of(db_session, item) == Quantity(9)

    def test_line_must_belong_to_sale(self, db_session, coordinator, tenant, item, customer, new_key):
        first = self._credit_sale(coordinator, tenant, item, customer, new_key(), quantity=1)
        second = self._credit_sale(coordinator, tenant, item, customer, new_key(), quantity=1)
        foreign_line = db_session.query(SaleItem).filter_by(sale_id=second).one()

        with pytest.raises(ValidationError):
            coordinator.record_return(customer_return(tenant, first, foreign_line, 1), new_key())

    def test_credit_return_on_anonymous_sale_rejected(self, db_session, coordinator, tenant, item, new_key):
        sale_id = coordinator.record_sale(sale(tenant, (item, 1)), new_key()).record_id
        line = db_session.query(SaleItem).filter_by(sale_id=sale_id).one()

        with pytest.raises(ValidationError, match="require a sale with a customer"):
            coordinator.record_return(
                customer_return(tenant, sale_id, line, 1, type=ReturnType.CREDIT, amount="10.00"), new_key()
            )
        assert quantity_of(db_session, item) == Quantity(9)

    def test_supplier_credit_return(self, db_session, coordinator, tenant, item, supplier, new_key):
        purchase_id = coordinator.record_purchase(
            purchase(tenant, supplier, (item, 10), payment_type=PaymentType.CREDIT), new_key()
        ).record_id
        line = db_session.query(PurchaseItem).filter_by(purchase_id=purchase_id).one()

        result = coordinator.record_return(
            ReturnRequest(
                tenant_id=tenant.id,
                role=CounterpartyRole.SUPPLIER,
                source_id=purchase_id,
                line_id=line.id,
                item_id=item.id,
                quantity=Quantity(2),
                type=ReturnType.CREDIT,
                amount=Money("12.00"),
            ),
            new_key(),
        )

        assert result.quantities == {item.id: Quantity(18)}
        assert result.balance == Money("48.00")
        assert verify_tenant(tenant.id) == []
    def test_exchange_return_then_replacement_sale(self, db_session, coordinator, tenant, item, customer, events, new_key):
        sale_id = self._credit_sale(coordinator, tenant, item, customer, new_key())
        line = db_session.query(SaleItem).filter_by(sale_id=sale_id).one()

        result = coordinator.record_return(
            customer_return(tenant, sale_id, line, 1, type=ReturnType.EXCHANGE, amount="10.00"), new_key()
        )

        assert result.quantities == {item.id: Quantity(8)}
        assert result.balance == Money("30.00")
        assert db_session.get(CustomerReturn, result.record_id).type == "EXCHANGE"
        assert [e.return_type for e in events if isinstance(e, ReturnRecorded)] == ["EXCHANGE"]

        replacement = coordinator.record_sale(sale(tenant, (item, 1), customer=customer), new_key())
        assert replacement.quantities == {item.id: Quantity(7)}
        assert balance_of(db_session, Customer, customer) == Money("30.00")
        assert verify_tenant(tenant.id) == []

    def test_unknown_return_type_rejected(self, db_session, coordinator, tenant, item, customer, new_key):
        sale_id = self._credit_sale(coordinator, tenant, item, customer, new_key())
        line = db_session.query(SaleItem).filter_by(sale_id=sale_id).one()

        with pytest.raises(ValidationError, match="Invalid type"):
            coordinator.record_return(customer_return(tenant, sale_id, line, 1, type="STORE_CREDIT"), new_key())
        assert db_session.query(CustomerReturn).count() == 0

    def test_supplier_return_refused_when_stock_already_sold(self, db_session, coordinator, tenant, item, supplier, new_key):
        purchase_id = coordinator.record_purchase(
            purchase(tenant, supplier, (item, 10), payment_type=PaymentType.CREDIT), new_key()
        ).record_id
        coordinator.record_sale(sale(tenant, (item, 15)), new_key())
        line = db_session.query(PurchaseItem).filter_by(purchase_id=purchase_id).one()

        with pytest.raises(InsufficientStockError) as exc_info:
            coordinator.record_return(
                supplier_return(tenant, purchase_id, line, 8, type=ReturnType.CREDIT, amount="48.00"), new_key()
            )

        assert exc_info.value.details["current_quantity"] == 5
        assert exc_info.value.details["requested_delta"] == -8
        assert db_session.query(SupplierReturn).count() == 0
        assert quantity_of(db_session, item) == Quantity(5)
        assert balance_of(db_session, Supplier, supplier) == Money("60.00")

    def test_supplier_cash_return_leaves_balance(self, db_session, coordinator, tenant, item, supplier, new_key):
        purchase_id = coordinator.record_purchase(
            purchase(tenant, supplier, (item, 10), payment_type=PaymentType.CREDIT), new_key()
        ).record_id
        line = db_session.query(PurchaseItem).filter_by(purchase_id=purchase_id).one()

        result = coordinator.record_return(
            supplier_return(tenant, purchase_id, line, 2, type=ReturnType.CASH, amount="12.00"), new_key()
        )

        assert result.quantities == {item.id: Quantity(18)}
        assert result.balance == Money("60.00")
        assert result.role == CounterpartyRole.SUPPLIER
        assert db_session.get(SupplierReturn, result.record_id).type == "CASH"
        assert verify_tenant(tenant.id) == []


class TestStockAdjustments:
    def test_increase_and_decrease(self, db_session, coordinator, tenant, item, new_key):
        up = StockAdjustmentRequest(tenant.id, item.id, StockAdjustmentType.INCREASE, Quantity(5), "Found in back room")
        down = StockAdjustmentRequest(tenant.id, item.id, StockAdjustmentType.DECREASE, Quantity(3), "Damaged")

        assert coordinator.record_stock_adjustment(up, new_key()).quantities == {item.id: Quantity(15)}
        assert coordinator.record_stock_adjustment(down, new_key()).quantities == {item.id: Quantity(12)}
        assert verify_tenant(tenant.id) == []

    def test_decrease_beyond_stock_rejected(self, db_session, coordinator, tenant, item, new_key):
        down = StockAdjustmentRequest(tenant.id, item.id, StockAdjustmentType.DECREASE, Quantity(11), "Shrinkage")
        with pytest.raises(InsufficientStockError):
            coordinator.record_stock_adjustment(down, new_key())
        assert quantity_of(db_session, item) == Quantity(10)

    def test_reason_required(self, coordinator, tenant, item, new_key):
        request = StockAdjustmentRequest(tenant.id, item.id, StockAdjustmentType.INCREASE, Quantity(1), "  ")
        with pytest.raises(ValidationError):
            coordinator.record_stock_adjustment(request, new_key())
    def test_set_posts_difference_to_counted_quantity(self, db_session, coordinator, tenant, item, events, new_key):
        counted = StockAdjustmentRequest(tenant.id, item.id, StockAdjustmentType.SET, Quantity(4), "Stock count")
        result = coordinator.record_stock_adjustment(counted, new_key())

        assert result.quantities == {item.id: Quantity(4)}
        adjustment = db_session.get(StockAdjustment, result.record_id)
        assert adjustment.quantity == Quantity(4)
        assert adjustment.quantity_delta == Quantity(-6)
        posting = db_session.query(LedgerPosting).filter_by(ledger="INVENTORY", subject_id=item.id).one()
        assert posting.quantity_delta == Quantity(-6)
        assert [e.new_quantity for e in events if isinstance(e, StockAdjusted)] == [Quantity(4)]
        assert verify_tenant(tenant.id) == []

    def test_set_to_current_quantity_records_without_posting(self, db_session, coordinator, tenant, item, new_key):
        counted = StockAdjustmentRequest(tenant.id, item.id, StockAdjustmentType.SET, Quantity(10), "Count matches")
        result = coordinator.record_stock_adjustment(counted, new_key())

        assert result.quantities == {item.id: Quantity(10)}
        assert db_session.get(StockAdjustment, result.record_id).quantity_delta == Quantity(0)
        assert db_session.query(LedgerPosting).count() == 0

    def test_set_to_zero_allowed_but_not_below(self, db_session, coordinator, tenant, item, new_key):
        written_off = StockAdjustmentRequest(tenant.id, item.id, StockAdjustmentType.SET, Quantity(0), "Flood damage")
        assert coordinator.record_stock_adjustment(written_off, new_key()).quantities == {item.id: Quantity(0)}

        negative = StockAdjustmentRequest(tenant.id, item.id, StockAdjustmentType.SET, Quantity(-1), "Typo")
        with pytest.raises(ValidationError, match="cannot be negative"):
            coordinator.record_stock_adjustment(negative, new_key())

    def test_raw_string_type(self, db_session, coordinator, tenant, item, new_key):
        found = StockAdjustmentRequest(tenant.id, item.id, "increase", Quantity(2), "Found")
        assert coordinator.record_stock_adjustment(found, new_key()).quantities == {item.id: Quantity(12)}

        unknown = StockAdjustmentRequest(tenant.id, item.id, "MISPLACED", Quantity(2), "Lost")
        with pytest.raises(ValidationError, match="Invalid type"):
            coordinator.record_stock_adjustment(unknown, new_key())


class TestBulkStockAdjustments:
    def test_rows_apply_in_order(self, db_session, coordinator, tenant, item, other_item, events, new_key):
        request = BulkStockAdjustmentRequest(
            tenant.id,
            (
                StockAdjustmentLine(item.id, StockAdjustmentType.INCREASE, Quantity(5), "Delivery found"),
                StockAdjustmentLine(other_item.id, StockAdjustmentType.DECREASE, Quantity(1), "Expired"),
                StockAdjustmentLine(item.id, StockAdjustmentType.SET, Quantity(12), "Stock count"),
            ),
            user_id="manager-1",
        )
        result = coordinator.record_bulk_stock_adjustment(request, new_key())

        assert result.operation == "record_bulk_stock_adjustment"
        assert result.record_id is None
        assert result.quantities == {item.id: Quantity(12), other_item.id: Quantity(1)}
        deltas = [db_session.get(StockAdjustment, record_id).quantity_delta for record_id in result.record_ids]
        assert deltas == [Quantity(5), Quantity(-1), Quantity(-3)]
        assert len([e for e in events if isinstance(e, StockAdjusted)]) == 3
        assert db_session.query(AuditLog).filter_by(action="CREATE_StockAdjustment").count() == 1
        assert verify_tenant(tenant.id) == []

    def test_one_failing_row_rejects_all(self, db_session, coordinator, tenant, item, other_item, new_key):
        request = BulkStockAdjustmentRequest(
            tenant.id,
            (
                StockAdjustmentLine(item.id, StockAdjustmentType.INCREASE, Quantity(5), "Delivery found"),
                StockAdjustmentLine(other_item.id, StockAdjustmentType.DECREASE, Quantity(3), "Broken"),
            ),
        )
        with pytest.raises(InsufficientStockError):
            coordinator.record_bulk_stock_adjustment(request, new_key())

        assert quantity_of(db_session, item) == Quantity(10)
        assert quantity_of(db_session, other_item) == Quantity(2)
        assert db_session.query(StockAdjustment).count() == 0

    def test_row_errors_name_the_row(self, coordinator, tenant, item, new_key):
        request = BulkStockAdjustmentRequest(
            tenant.id,
            (
                StockAdjustmentLine(item.id, StockAdjustmentType.INCREASE, Quantity(1), "Found"),
                StockAdjustmentLine(item.id, StockAdjustmentType.DECREASE, Quantity(1), " "),
            ),
        )
        with pytest.raises(ValidationError, match="Row 2: Reason is required") as exc_info:
            coordinator.record_bulk_stock_adjustment(request, new_key())
        assert exc_info.value.details["row"] == 2

    def test_replay_returns_every_record(self, db_session, coordinator, tenant, item, other_item, new_key):
        key = new_key()
        request = BulkStockAdjustmentRequest(
            tenant.id,
            (
                StockAdjustmentLine(item.id, StockAdjustmentType.INCREASE, Quantity(1), "Found"),
                StockAdjustmentLine(other_item.id, StockAdjustmentType.INCREASE, Quantity(1), "Found"),
            ),
        )
        first = coordinator.record_bulk_stock_adjustment(request, key)
        second = coordinator.record_bulk_stock_adjustment(request, key)

        assert second.replayed
        assert second.record_ids == first.record_ids
        assert db_session.query(StockAdjustment).count() == 2
        assert quantity_of(db_session, item) == Quantity(11)


class TestBalanceAdjustments:
    def _customers(self, db_session, tenant, *balances):
        rows = [
            Customer(tenant_id=tenant.id, name=f"Imported customer {n}", balance=Money(b))
            for n, b in enumerate(balances, start=1)
        ]
        db_session.add_all(rows)
        db_session.commit()
        return rows

    def _adjust(self, tenant, *lines, role=CounterpartyRole.CUSTOMER, user_id="manager-1"):
        return BalanceAdjustmentRequest(
            tenant_id=tenant.id,
            role=role,
            lines=tuple(BalanceAdjustmentLine(row.id, Money(balance), reason) for row, balance, reason in lines),
            user_id=user_id,
        )

    def test_single_adjustment_sets_balance(self, db_session, coordinator, tenant, item, customer, events, new_key):
        coordinator.record_sale(
            sale(tenant, (item, 3), payment_type=PaymentType.CREDIT, customer=customer), new_key()
        )

        result = coordinator.record_balance_adjustment(
            self._adjust(tenant, (customer, "12.50", "Agreed settlement")), new_key()
        )

        assert result.operation == "record_customer_balance_adjustment"
        assert result.balance == Money("12.50")
        assert result.counterparty_id == customer.id
        assert result.record_ids == [result.record_id]
        adjustment = db_session.get(BalanceAdjustment, result.record_id)
        assert adjustment.previous_balance == Money("30.00")
        assert adjustment.new_balance == Money("12.50")
        assert adjustment.amount_delta == Money("-17.50")
        assert adjustment.user_id == "manager-1"

        entry = db_session.query(AuditLog).filter_by(entity="BalanceAdjustment").one()
        assert entry.action == "CREATE_BalanceAdjustment"
        assert entry.entity_id == adjustment.id
        adjusted = [e for e in events if isinstance(e, BalanceAdjusted)]
        assert [(e.previous_balance, e.new_balance) for e in adjusted] == [(Money("30.00"), Money("12.50"))]
        assert balance_of(db_session, Customer, customer) == Money("12.50")
        assert verify_tenant(tenant.id) == []

    def test_bulk_adjustment_applies_every_row(self, db_session, coordinator, tenant, new_key):
        first, second = self._customers(db_session, tenant, "40.00", "5.00")

        result = coordinator.record_balance_adjustment(
            self._adjust(tenant, (second, "0.00", "Written off"), (first, "55.00", "Missed invoice")), new_key()
        )

        assert result.record_id is None
        assert result.balance is None
        assert len(result.record_ids) == 2
        assert balance_of(db_session, Customer, first) == Money("55.00")
        assert balance_of(db_session, Customer, second) == Money("0.00")
        assert verify_tenant(tenant.id) == []

    def test_credit_limit_rejects_whole_bulk(self, db_session, coordinator, tenant, new_key):
        tenant.credit_limit = Money("50.00")
        db_session.commit()
        first, second = self._customers(db_session, tenant, "10.00", "10.00")

        with pytest.raises(CreditLimitExceededError):
            coordinator.record_balance_adjustment(
                self._adjust(tenant, (first, "20.00", None), (second, "80.00", None)), new_key()
            )

        assert db_session.query(BalanceAdjustment).count() == 0
        assert balance_of(db_session, Customer, first) == Money("10.00")
        assert balance_of(db_session, Customer, second) == Money("10.00")

    def test_unchanged_balance_records_without_posting(self, db_session, coordinator, tenant, customer, new_key):
        result = coordinator.record_balance_adjustment(self._adjust(tenant, (customer, "0.00", "Audit")), new_key())

        assert result.balance == Money("0.00")
        assert db_session.get(BalanceAdjustment, result.record_id).amount_delta == Money("0.00")
        assert db_session.query(LedgerPosting).count() == 0

    def test_supplier_adjustment(self, db_session, coordinator, tenant, supplier, new_key):
        result = coordinator.record_balance_adjustment(
            self._adjust(tenant, (supplier, "250.00", "Opening invoices"), role="SUPPLIER"), new_key()
        )

        assert result.operation == "record_supplier_balance_adjustment"
        assert result.role == CounterpartyRole.SUPPLIER
        assert result.balance == Money("250.00")
        assert verify_tenant(tenant.id) == []

    def test_negative_balance_rejected(self, coordinator, tenant, customer, new_key):
        with pytest.raises(ValidationError, match="non-negative"):
            coordinator.record_balance_adjustment(self._adjust(tenant, (customer, "-1.00", None)), new_key())

    def test_foreign_customer_rejected(self, db_session, coordinator, tenant, customer_b, new_key):
        with pytest.raises(ReferenceNotFoundError):
            coordinator.record_balance_adjustment(self._adjust(tenant, (customer_b, "5.00", None)), new_key())
        assert db_session.query(BalanceAdjustment).count() == 0


class TestIdempotency:
    def test_retried_request_replays_first_result(self, db_session, coordinator, tenant, item, customer, events, new_key):
        key = new_key()
        request = sale(tenant, (item, 2), payment_type=PaymentType.CREDIT, customer=customer)

        first = coordinator.record_sale(request, key)
        second = coordinator.record_sale(request, key)

        assert second.replayed
        assert second.record_id == first.record_id
        assert second.quantities == first.quantities
        assert second.balance == first.balance
        assert db_session.query(Sale).count() == 1
        assert db_session.query(IdempotencyRecord).count() == 1
        assert quantity_of(db_session, item) == Quantity(8)
        assert balance_of(db_session, Customer, customer) == Money("20.00")
        assert len([e for e in events if isinstance(e, SaleRecorded)]) == 1

    def test_key_reuse_for_other_operation_rejected(self, coordinator, tenant, item, customer, new_key):
        key = new_key()
        coordinator.record_sale(sale(tenant, (item, 1)), key)

        with pytest.raises(ValidationError, match="different operation"):
            coordinator.record_payment(payment(tenant, customer, "5.00"), key)

    def test_keys_are_scoped_per_tenant(self, db_session, coordinator, tenant, tenant_b, item, item_b):
        first = coordinator.record_sale(sale(tenant, (item, 1)), "shared-key")
        second = coordinator.record_sale(sale(tenant_b, (item_b, 1)), "shared-key")

        assert not second.replayed
        assert second.record_id != first.record_id

    def test_missing_key_rejected(self, coordinator, tenant, item):
        with pytest.raises(ValidationError):
            coordinator.record_sale(sale(tenant, (item, 1)), "  ")


class TestAtomicity:
    def test_fault_after_inventory_rolls_everything_back(self, db_session, coordinator, tenant, item, customer, monkeypatch, new_key):
        def boom(*args, **kwargs):
            raise RuntimeError("account store unavailable")

        monkeypatch.setattr(coordinator.accounts, "apply_delta", boom)

        with pytest.raises(RuntimeError):
            coordinator.record_sale(
                sale(tenant, (item, 3), payment_type=PaymentType.CREDIT, customer=customer), new_key()
            )

        assert quantity_of(db_session, item) == Quantity(10)
        assert balance_of(db_session, Customer, customer) == Money.zero()
        assert db_session.query(Sale).count() == 0
        assert db_session.query(SaleItem).count() == 0
        assert db_session.query(LedgerPosting).count() == 0
        assert db_session.query(AuditLog).count() == 0

    def test_persistent_conflict_surfaces_transient_failure(self, db_session, coordinator, tenant, item, monkeypatch, new_key):
        calls = []

        def locked(records=()):
            calls.append(1)
            raise OperationalError("COMMIT", {}, Exception("database is locked"))

        monkeypatch.setattr(coordinator.repository, "commit_unit_of_work", locked)

        with pytest.raises(TransientFailure) as exc_info:
            coordinator.record_sale(sale(tenant, (item, 1)), new_key())

        assert exc_info.value.attempts == 3
        assert exc_info.value.applied is False
        assert len(calls) == 3
        assert quantity_of(db_session, item) == Quantity(10)
        assert db_session.query(Sale).count() == 0

    def test_conflict_then_success_applies_once(self, db_session, coordinator, tenant, item, monkeypatch, new_key):
        original = coordinator.repository.commit_unit_of_work
        calls = []

        def stale_once(records=()):
            calls.append(1)
            if len(calls) == 1:
                raise StaleDataError("version mismatch")
            return original(records)

        monkeypatch.setattr(coordinator.repository, "commit_unit_of_work", stale_once)

        result = coordinator.record_sale(sale(tenant, (item, 4)), new_key())

        assert len(calls) == 2
        assert result.quantities == {item.id: Quantity(6)}
        assert quantity_of(db_session, item) == Quantity(6)
        assert db_session.query(Sale).count() == 1
        assert db_session.query(LedgerPosting).count() == 1

    def test_expired_deadline_applies_nothing(self, db_session, app, repository, tenant, item, new_key):
        coordinator = TransactionCoordinator(repository, app.extensions["ledger_events"], deadline_seconds=0)

        with pytest.raises(TransientFailure) as exc_info:
            coordinator.record_sale(sale(tenant, (item, 1)), new_key())

        assert exc_info.value.applied is False
        assert quantity_of(db_session, item) == Quantity(10)

    def test_failing_subscriber_does_not_undo_commit(self, db_session, app, coordinator, tenant, item, new_key):
        def broken(event):
            raise RuntimeError("printer offline")

        dispatcher = app.extensions["ledger_events"]
        dispatcher.subscribe(broken)
        try:
            result = coordinator.record_sale(sale(tenant, (item, 1)), new_key())
        finally:
            dispatcher.unsubscribe(broken)

        assert db_session.get(Sale, result.record_id) is not None
        assert quantity_of(db_session, item) == Quantity(9)


class TestReminders:
    def test_reminder_for_customer_who_owes(self, db_session, coordinator, tenant, item, customer, events, new_key):
        coordinator.record_sale(sale(tenant, (item, 2), payment_type=PaymentType.CREDIT, customer=customer), new_key())

        reminder = coordinator.request_balance_reminder(tenant.id, customer.id, user_id="manager-1")

        assert reminder.balance == Money("20.00")
        assert reminder.phone == "0241234567"
        assert reminder in [e for e in events if isinstance(e, BalanceReminder)]
        assert db_session.query(AuditLog).filter_by(action="REMIND_Customer").count() == 1

    def test_no_reminder_without_balance(self, coordinator, tenant, customer):
        with pytest.raises(ValidationError, match="no outstanding balance"):
            coordinator.request_balance_reminder(tenant.id, customer.id)


class TestInvariants:
    def test_mixed_history_reconciles(self, db_session, coordinator, tenant, item, other_item, customer, supplier, new_key):
        coordinator.record_purchase(
            purchase(tenant, supplier, (item, 20), (other_item, 8), payment_type=PaymentType.CREDIT, paid="50.00"),
            new_key(),
        )
        sale_id = coordinator.record_sale(
            sale(tenant, (item, 5), (other_item, 2), payment_type=PaymentType.CREDIT, paid="15.00", customer=customer),
            new_key(),
        ).record_id
        coordinator.record_sale(sale(tenant, (item, 1), customer=customer), new_key())
        coordinator.record_payment(payment(tenant, customer, "20.00"), new_key())
        line = db_session.query(SaleItem).filter_by(sale_id=sale_id, item_id=other_item.id).one()
        coordinator.record_return(
            customer_return(tenant, sale_id, line, 1, type=ReturnType.CREDIT, amount="5.00"), new_key()
        )
        coordinator.record_stock_adjustment(
            StockAdjustmentRequest(tenant.id, item.id, StockAdjustmentType.DECREASE, Quantity(2), "Expired"),
            new_key(),
        )
        coordinator.record_payment(payment(tenant, supplier, "100.00", role=CounterpartyRole.SUPPLIER), new_key())

        # 10 + 20 - 5 - 1 - 2 ; 2 + 8 - 2 + 1
        assert quantity_of(db_session, item) == Quantity(22)
        assert quantity_of(db_session, other_item) == Quantity(9)
        # 50 + 10 - 15 - 20 - 5
        assert balance_of(db_session, Customer, customer) == Money("20.00")
        # 20*6 + 8*3 - 50 - 100
        assert balance_of(db_session, Supplier, supplier) == Money("-6.00")
        assert verify_tenant(tenant.id) == []
