"""
WealthDesk — Simulated Order Lifecycle

    PENDING ──execute──▶ EXECUTED
       │           └───▶ FAILED     (unknown instrument, oversell)
       └──cancel───▶ CANCELLED

Nothing leaves the process: execution fills immediately at the limit price
(LIMIT) or the instrument's current price (MARKET) and rewrites cash,
holdings, transactions and the portfolio's total value in the store.
"""

import logging
from datetime import datetime
from typing import List, Optional

from wealthdesk.data.store import DataStore
from wealthdesk.engine.business_logic import (
    check_cash_sufficiency, check_concentration, check_suitability, holding_value,
)
from wealthdesk.engine.timeutils import isoformat, utcnow
from wealthdesk.models.errors import NotFoundError, OrderRejected, ValidationError
from wealthdesk.models.types import Holding, Order, Portfolio, Transaction

logger = logging.getLogger(__name__)

ORDER_SIDES = ("BUY", "SELL")
ORDER_TYPES = ("MARKET", "LIMIT")


def _ms(now: datetime) -> int:
    return int(now.timestamp() * 1000)


def _instrument_or_none(store: DataStore, instrument_id: str):
    return store.instruments.find(lambda i: i.id == instrument_id)


def create_order(
    store: DataStore,
    actor_id: str,
    client_id: str,
    instrument_id: str,
    side: str,
    order_type: str,
    quantity: float,
    limit_price: Optional[float] = None,
    idempotency_key: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Order:
    """
    Validate and record a PENDING order.

    Checks run in order and the first failure raises OrderRejected:
        instrument -> quantity -> suitability -> (BUY) cash -> (BUY) concentration
    """
    now = utcnow(now)
    if side not in ORDER_SIDES:
        raise ValidationError(f"Unknown order side '{side}'")
    if order_type not in ORDER_TYPES:
        raise ValidationError(f"Unknown order type '{order_type}'")

    portfolio = store.get_portfolio_for_client(client_id)
    risk_profile = store.get_risk_profile(client_id)

    if idempotency_key:
        # keys are scoped to the portfolio they were issued against
        existing = store.orders.find(
            lambda o: o.portfolio_id == portfolio.id and o.idempotency_key == idempotency_key
        )
        if existing is not None:
            logger.info("Idempotent replay of %s for key %s", existing.id, idempotency_key)
            return existing

    instrument = _instrument_or_none(store, instrument_id)
    if instrument is None:
        raise OrderRejected("instrument", "Invalid instrument")

    if quantity is None or quantity <= 0:
        raise OrderRejected("quantity", "Invalid quantity")

    suitability = check_suitability(instrument, risk_profile)
    if not suitability.suitable:
        raise OrderRejected("suitability", suitability.reason)

    if order_type == "LIMIT" and limit_price is not None and limit_price <= 0:
        raise OrderRejected("limit_price", "Invalid limit price")
    if order_type != "LIMIT":
        limit_price = None

    if side == "BUY":
        price = limit_price if limit_price else instrument.current_price
        estimated_cost = quantity * price
        cash = check_cash_sufficiency(portfolio, estimated_cost)
        if not cash.sufficient:
            raise OrderRejected(
                "cash",
                f"Insufficient Cash. Required: ${estimated_cost:,.2f}, Available: ${cash.available:,.2f}",
            )

        holdings = store.holdings_for_portfolio(portfolio.id)
        concentration = check_concentration(
            holdings, store.instruments.all(), portfolio, instrument_id, quantity,
        )
        if not concentration.acceptable:
            raise OrderRejected(
                "concentration",
                f"This order would result in {concentration.resulting_percentage:.1f}% "
                f"concentration (limit {concentration.limit:g}%)",
            )

    order = Order(
        id=f"order-{_ms(now)}-{len(store.orders.all())}",
        portfolio_id=portfolio.id,
        instrument_id=instrument_id,
        side=side,
        order_type=order_type,
        quantity=quantity,
        limit_price=limit_price,
        status="PENDING",
        created_by=actor_id,
        created_at=isoformat(now),
        idempotency_key=idempotency_key or f"{portfolio.id}-{instrument_id}-{_ms(now)}",
    )
    store.orders.append(order)
    store.record_audit_event(
        "ORDER_CREATED", actor_id, client_id,
        {"order_id": order.id, "instrument": instrument.symbol, "quantity": quantity, "side": side},
        now=now,
    )
    logger.info("Order %s created: %s %s x %s", order.id, side, instrument.symbol, quantity)
    return order


def _pending(store: DataStore, order_id: str) -> Order:
    order = store.orders.get(order_id)
    if order.status != "PENDING":
        raise ValidationError(f"Order '{order_id}' is {order.status}, not PENDING")
    return order


def _portfolio_by_id(store: DataStore, portfolio_id: str) -> Portfolio:
    return store.portfolios.get(portfolio_id)


def revalue_portfolio(store: DataStore, portfolio: Portfolio, now: Optional[datetime] = None) -> Portfolio:
    """Recompute total value as cash plus holdings at current instrument prices."""
    instruments = {i.id: i for i in store.instruments.all()}
    invested = sum(
        holding_value(h, instruments[h.instrument_id])
        for h in store.holdings_for_portfolio(portfolio.id)
        if h.instrument_id in instruments
    )
    portfolio.total_value = portfolio.cash + invested
    portfolio.last_updated = isoformat(utcnow(now))
    return portfolio


def _fail(store: DataStore, order: Order, reason: str, client_id: Optional[str], now: datetime) -> Order:
    order.status = "FAILED"
    order.failure_reason = reason
    store.orders.upsert(order)
    store.record_audit_event(
        "ORDER_FAILED", order.created_by, client_id,
        {"order_id": order.id, "reason": reason},
        now=now,
    )
    logger.warning("Order %s failed: %s", order.id, reason)
    return order


def _apply_fill(holdings: List[Holding], order: Order, price: float, portfolio_id: str, now: datetime) -> List[Holding]:
    """Merge a fill into the portfolio's holdings list."""
    stamp = isoformat(now)
    existing = next((h for h in holdings if h.instrument_id == order.instrument_id), None)

    if order.side == "BUY":
        if existing is None:
            return holdings + [Holding(
                id=f"hold-{_ms(now)}-{order.instrument_id}",
                portfolio_id=portfolio_id,
                instrument_id=order.instrument_id,
                quantity=order.quantity,
                average_cost=price,
                current_price=price,
                last_updated=stamp,
            )]
        new_qty = existing.quantity + order.quantity
        existing.average_cost = (existing.quantity * existing.average_cost + order.quantity * price) / new_qty
        existing.quantity = new_qty
        existing.current_price = price
        existing.last_updated = stamp
        return holdings

    existing.quantity -= order.quantity
    existing.last_updated = stamp
    if existing.quantity <= 0:
        return [h for h in holdings if h.id != existing.id]
    return holdings


def execute_order(store: DataStore, order_id: str, now: Optional[datetime] = None) -> Order:
    now = utcnow(now)
    order = _pending(store, order_id)
    portfolio = _portfolio_by_id(store, order.portfolio_id)
    client_id = portfolio.client_id

    instrument = _instrument_or_none(store, order.instrument_id)
    if instrument is None:
        return _fail(store, order, "Instrument not found", client_id, now)

    holdings = store.holdings_for_portfolio(portfolio.id)
    if order.side == "SELL":
        held = sum(h.quantity for h in holdings if h.instrument_id == order.instrument_id)
        if order.quantity > held:
            return _fail(
                store, order,
                f"Cannot sell {order.quantity:g} {instrument.symbol}; only {held:g} held",
                client_id, now,
            )

    price = order.limit_price if order.order_type == "LIMIT" and order.limit_price else instrument.current_price
    amount = order.quantity * price
    portfolio.cash += -amount if order.side == "BUY" else amount

    updated = _apply_fill(holdings, order, price, portfolio.id, now)
    others = store.holdings.filter(lambda h: h.portfolio_id != portfolio.id)
    store.holdings.replace(others + updated)

    store.transactions.append(Transaction(
        id=f"txn-{_ms(now)}-{order.id}",
        portfolio_id=portfolio.id,
        instrument_id=order.instrument_id,
        type=order.side,
        quantity=order.quantity,
        price=price,
        amount=amount,
        timestamp=isoformat(now),
        order_id=order.id,
    ))

    store.portfolios.upsert(revalue_portfolio(store, portfolio, now))

    order.status = "EXECUTED"
    order.executed_at = isoformat(now)
    order.executed_price = price
    store.orders.upsert(order)
    store.record_audit_event(
        "ORDER_EXECUTED", order.created_by, client_id,
        {"order_id": order.id, "instrument": instrument.symbol, "quantity": order.quantity,
         "side": order.side, "price": price},
        now=now,
    )
    logger.info("Order %s executed: %s x %s at %.2f", order.id, instrument.symbol, order.quantity, price)
    return order


def cancel_order(store: DataStore, order_id: str, now: Optional[datetime] = None) -> Order:
    now = utcnow(now)
    order = _pending(store, order_id)
    order.status = "CANCELLED"
    store.orders.upsert(order)

    portfolio = store.portfolios.find(lambda p: p.id == order.portfolio_id)
    store.record_audit_event(
        "ORDER_CANCELLED", order.created_by, portfolio.client_id if portfolio else None,
        {"order_id": order.id},
        now=now,
    )
    return order


def orders_for_client(store: DataStore, client_id: str) -> List[Order]:
    """Client's orders, newest first."""
    try:
        portfolio = store.get_portfolio_for_client(client_id)
    except NotFoundError:
        return []
    return sorted(store.orders_for_portfolio(portfolio.id), key=lambda o: o.created_at, reverse=True)
