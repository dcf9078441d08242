"""
Unit tests for the simulated order lifecycle against a seeded store.

cli-1 (risk 7) holds 1120 VTI and 150,000 cash; cli-3 (risk 3) cannot buy QQQ.
"""

from datetime import timedelta

import pytest

from wealthdesk.engine import business_logic
from wealthdesk.engine.orders import cancel_order, create_order, execute_order, orders_for_client
from wealthdesk.models.errors import NotFoundError, OrderRejected, ValidationError

VTI = "ins-1"


def _vti_holding(store):
    portfolio = store.get_portfolio_for_client("cli-1")
    return next((h for h in store.holdings_for_portfolio(portfolio.id) if h.instrument_id == VTI), None)


class TestCreateOrder:

    def test_seed_position(self, store):
        assert store.get_portfolio_for_client("cli-1").cash == pytest.approx(150_000)
        assert _vti_holding(store).quantity == 1120

    def test_creates_pending_order_and_audits(self, store, now):
        order = create_order(store, "adv-1", "cli-1", VTI, "BUY", "MARKET", 10, now=now)

        assert order.status == "PENDING"
        assert order.portfolio_id == "port-cli-1"
        assert store.orders.get(order.id).instrument_id == VTI
        [event] = store.audit_events.all()
        assert event.type == "ORDER_CREATED"
        assert event.details == {"order_id": order.id, "instrument": "VTI", "quantity": 10, "side": "BUY"}

    def test_idempotency_key_returns_existing_order(self, store, now):
        first = create_order(store, "adv-1", "cli-1", VTI, "BUY", "MARKET", 10, idempotency_key="k-1", now=now)
        again = create_order(store, "adv-1", "cli-1", VTI, "BUY", "MARKET", 99, idempotency_key="k-1", now=now)

        assert again.id == first.id
        assert again.quantity == 10
        assert len(store.orders.all()) == 1

    def test_idempotency_key_is_per_portfolio(self, store, now):
        # cli-5 (risk 6, adv-2) reuses a key cli-1 already spent
        first = create_order(store, "adv-1", "cli-1", VTI, "BUY", "MARKET", 10, idempotency_key="k-1", now=now)
        other = create_order(store, "adv-2", "cli-5", VTI, "BUY", "MARKET", 2, idempotency_key="k-1", now=now)

        assert other.id != first.id
        assert other.portfolio_id == "port-cli-5"
        assert other.quantity == 2
        assert [o.id for o in orders_for_client(store, "cli-5")] == [other.id]
        assert len(store.orders.all()) == 2

    @pytest.mark.parametrize("client_id,instrument_id,qty,check", [
        ("cli-1", "ins-404", 10, "instrument"),
        ("cli-1", VTI, 0, "quantity"),
        ("cli-3", "ins-8", 1, "suitability"),
        ("cli-1", VTI, 1000, "cash"),
    ])
    def test_rejections(self, store, now, client_id, instrument_id, qty, check):
        with pytest.raises(OrderRejected) as exc:
            create_order(store, "adv-1", client_id, instrument_id, "BUY", "MARKET", qty, now=now)
        assert exc.value.check == check
        assert store.orders.all() == []

    def test_concentration_rejection(self, store, now, monkeypatch):
        monkeypatch.setattr(business_logic, "CONCENTRATION_LIMIT", 20)
        with pytest.raises(OrderRejected) as exc:
            create_order(store, "adv-1", "cli-1", VTI, "BUY", "MARKET", 10, now=now)
        assert exc.value.check == "concentration"
        assert "(limit 20%)" in exc.value.reason

    def test_limit_price_used_for_cash_check(self, store, now):
        # 700 x 245.50 would exceed the cash; 700 x 200 does not
        with pytest.raises(OrderRejected):
            create_order(store, "adv-1", "cli-1", VTI, "BUY", "MARKET", 700, now=now)
        order = create_order(store, "adv-1", "cli-1", VTI, "BUY", "LIMIT", 700, limit_price=200, now=now)
        assert order.limit_price == 200

    def test_sell_skips_cash_check(self, store, now):
        order = create_order(store, "adv-1", "cli-1", VTI, "SELL", "MARKET", 5000, now=now)
        assert order.status == "PENDING"

    def test_unknown_client(self, store, now):
        with pytest.raises(NotFoundError):
            create_order(store, "adv-1", "cli-404", VTI, "BUY", "MARKET", 1, now=now)


class TestExecuteOrder:

    def test_buy_merges_holding_with_weighted_cost(self, store, now):
        before = _vti_holding(store)
        order = create_order(store, "adv-1", "cli-1", VTI, "BUY", "LIMIT", 80, limit_price=200, now=now)

        executed = execute_order(store, order.id, now=now)

        assert executed.status == "EXECUTED"
        assert executed.executed_price == 200
        after = _vti_holding(store)
        assert after.quantity == before.quantity + 80
        expected_cost = (before.quantity * before.average_cost + 80 * 200) / (before.quantity + 80)
        assert after.average_cost == pytest.approx(expected_cost)

        portfolio = store.get_portfolio_for_client("cli-1")
        assert portfolio.cash == pytest.approx(150_000 - 16_000)
        holdings_value = sum(
            h.quantity * store.instruments.get(h.instrument_id).current_price
            for h in store.holdings_for_portfolio(portfolio.id)
        )
        assert portfolio.total_value == pytest.approx(portfolio.cash + holdings_value)

        txn = store.transactions.find(lambda t: t.order_id == order.id)
        assert txn.amount == pytest.approx(16_000)
        assert [e.type for e in store.audit_events.all()] == ["ORDER_CREATED", "ORDER_EXECUTED"]

    def test_buy_new_instrument_opens_holding(self, store, now):
        order = create_order(store, "adv-1", "cli-1", "ins-10", "BUY", "MARKET", 10, now=now)
        execute_order(store, order.id, now=now)

        portfolio = store.get_portfolio_for_client("cli-1")
        gld = [h for h in store.holdings_for_portfolio(portfolio.id) if h.instrument_id == "ins-10"]
        assert len(gld) == 1
        assert gld[0].average_cost == pytest.approx(185.20)

    def test_sell_everything_removes_holding(self, store, now):
        order = create_order(store, "adv-1", "cli-1", VTI, "SELL", "MARKET", 1120, now=now)
        execute_order(store, order.id, now=now)

        assert _vti_holding(store) is None
        assert store.get_portfolio_for_client("cli-1").cash == pytest.approx(150_000 + 1120 * 245.50)

    def test_oversell_fails(self, store, now):
        order = create_order(store, "adv-1", "cli-1", VTI, "SELL", "MARKET", 5000, now=now)

        failed = execute_order(store, order.id, now=now)

        assert failed.status == "FAILED"
        assert "only 1120 held" in failed.failure_reason
        assert _vti_holding(store).quantity == 1120
        assert store.audit_events.all()[-1].type == "ORDER_FAILED"

    def test_only_pending_orders_execute(self, store, now):
        order = create_order(store, "adv-1", "cli-1", VTI, "BUY", "MARKET", 1, now=now)
        execute_order(store, order.id, now=now)
        with pytest.raises(ValidationError):
            execute_order(store, order.id, now=now)

    def test_unknown_order(self, store, now):
        with pytest.raises(NotFoundError):
            execute_order(store, "order-404", now=now)


class TestCancelOrder:

    def test_cancel_pending(self, store, now):
        order = create_order(store, "adv-1", "cli-1", VTI, "BUY", "MARKET", 1, now=now)
        cancelled = cancel_order(store, order.id, now=now)

        assert cancelled.status == "CANCELLED"
        assert store.orders.get(order.id).status == "CANCELLED"
        with pytest.raises(ValidationError):
            cancel_order(store, order.id, now=now)
        with pytest.raises(ValidationError):
            execute_order(store, order.id, now=now)

    def test_orders_newest_first(self, store, now):
        older = create_order(store, "adv-1", "cli-1", VTI, "BUY", "MARKET", 1, now=now)
        newer = create_order(store, "adv-1", "cli-1", VTI, "BUY", "MARKET", 2, now=now + timedelta(minutes=1))
        assert [o.id for o in orders_for_client(store, "cli-1")] == [newer.id, older.id]
