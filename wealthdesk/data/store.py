"""
WealthDesk — Key-Value Data Store

Every collection lives under one key as a JSON list. The store is in-memory;
with a `path` it is mirrored to a JSON file on each write and reloaded on
start. There are no persistence guarantees beyond that.

A `data_version` key that differs from DATA_VERSION reseeds all seed
collections, so stale demo data never survives a schema bump.
"""

import copy
import json
import logging
import os
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Type, TypeVar

from wealthdesk.config.seed_data import (
    SEED_CLIENT_PROFILES, SEED_GOALS, SEED_INSTRUMENTS, SEED_MODEL_PORTFOLIOS,
    SEED_RISK_PROFILES, SEED_USERS, generate_seed_data,
)
from wealthdesk.config.settings import DATA_VERSION, SEED
from wealthdesk.engine.timeutils import isoformat, utcnow
from wealthdesk.models.errors import NotFoundError
from wealthdesk.models.types import (
    AiInteraction, AuditEvent, ClientProfile, Goal, GoalNotification, Holding, Instrument,
    ModelPortfolio, NextBestAction, Order, Portfolio, Record, RiskProfile,
    Transaction, User,
)

logger = logging.getLogger(__name__)

R = TypeVar("R", bound=Record)


class KVStore:
    """Minimal JSON key-value store."""

    def __init__(self, path: Optional[str] = None):
        self._path = path
        self._data: Dict[str, Any] = {}
        if path and os.path.exists(path):
            with open(path, "r", encoding="utf-8") as fh:
                self._data = json.load(fh)
            logger.info("Loaded %d keys from %s", len(self._data), path)

    def get(self, key: str, default: Any = None) -> Any:
        if key not in self._data:
            return copy.deepcopy(default)
        return copy.deepcopy(self._data[key])

    def set(self, key: str, value: Any) -> None:
        self._data[key] = copy.deepcopy(value)
        self._flush()

    def keys(self) -> List[str]:
        return list(self._data)

    def __contains__(self, key: str) -> bool:
        return key in self._data

    def _flush(self) -> None:
        if not self._path:
            return
        os.makedirs(os.path.dirname(os.path.abspath(self._path)), exist_ok=True)
        tmp = self._path + ".tmp"
        with open(tmp, "w", encoding="utf-8") as fh:
            json.dump(self._data, fh, indent=2)
        os.replace(tmp, self._path)


class Collection:
    """Typed view of one KV key holding a list of records."""

    def __init__(self, kv: KVStore, key: str, record_type: Type[R], seed: Callable[[], List[R]]):
        self._kv = kv
        self.key = key
        self.record_type = record_type
        self._seed = seed
        if key not in kv:
            self.reset()

    def all(self) -> List[R]:
        return [self.record_type.from_dict(d) for d in self._kv.get(self.key, [])]

    def replace(self, records: List[R]) -> None:
        self._kv.set(self.key, [r.to_dict() for r in records])

    def reset(self) -> None:
        self.replace(self._seed())

    def find(self, predicate: Callable[[R], bool]) -> Optional[R]:
        return next((r for r in self.all() if predicate(r)), None)

    def filter(self, predicate: Callable[[R], bool]) -> List[R]:
        return [r for r in self.all() if predicate(r)]

    def get(self, record_id: str) -> R:
        record = self.find(lambda r: r.id == record_id)
        if record is None:
            raise NotFoundError(self.record_type.__name__, record_id)
        return record

    def append(self, record: R) -> R:
        self._kv.set(self.key, self._kv.get(self.key, []) + [record.to_dict()])
        return record

    def upsert(self, record: R, key: Callable[[R], Any] = lambda r: r.id) -> R:
        records = self.all()
        for i, existing in enumerate(records):
            if key(existing) == key(record):
                records[i] = record
                break
        else:
            records.append(record)
        self.replace(records)
        return record

    def remove(self, record_id: str) -> None:
        self.replace([r for r in self.all() if r.id != record_id])


class DataStore:
    """
    The demo object graph.

    Seeded collections (users ... transactions) are rebuilt on a data
    version change; the activity logs (orders, actions, audit, AI
    interactions, notifications) start empty and are never reseeded.
    """

    def __init__(self, kv: Optional[KVStore] = None, seed: int = SEED, now: Optional[datetime] = None):
        self.kv = kv if kv is not None else KVStore()
        self._seed = seed
        self._now = now
        self._generated: Optional[dict] = None

        self.users = Collection(self.kv, "users", User, lambda: list(SEED_USERS))
        self.client_profiles = Collection(self.kv, "client_profiles", ClientProfile, lambda: list(SEED_CLIENT_PROFILES))
        self.risk_profiles = Collection(self.kv, "risk_profiles", RiskProfile, lambda: list(SEED_RISK_PROFILES))
        self.goals = Collection(self.kv, "goals", Goal, lambda: list(SEED_GOALS))
        self.instruments = Collection(self.kv, "instruments", Instrument, lambda: list(SEED_INSTRUMENTS))
        self.model_portfolios = Collection(self.kv, "model_portfolios", ModelPortfolio, lambda: list(SEED_MODEL_PORTFOLIOS))
        self.portfolios = Collection(self.kv, "portfolios", Portfolio, lambda: self._generated_data()["portfolios"])
        self.holdings = Collection(self.kv, "holdings", Holding, lambda: self._generated_data()["holdings"])
        self.transactions = Collection(self.kv, "transactions", Transaction, lambda: self._generated_data()["transactions"])

        self.orders = Collection(self.kv, "orders", Order, list)
        self.next_best_actions = Collection(self.kv, "next_best_actions", NextBestAction, list)
        self.audit_events = Collection(self.kv, "audit_events", AuditEvent, list)
        self.ai_interactions = Collection(self.kv, "ai_interactions", AiInteraction, list)
        self.goal_notifications = Collection(self.kv, "goal_notifications", GoalNotification, list)

        self._check_version()

    def _generated_data(self) -> dict:
        if self._generated is None:
            self._generated = generate_seed_data(seed=self._seed, now=self._now)
        return self._generated

    def _check_version(self) -> None:
        version = self.kv.get("data_version")
        if version == DATA_VERSION:
            return
        if version is not None:
            logger.info("Data version %s != %s, reseeding demo data", version, DATA_VERSION)
            self._generated = None
            for collection in self.seeded_collections():
                collection.reset()
        self.kv.set("data_version", DATA_VERSION)

    def seeded_collections(self) -> List[Collection]:
        return [
            self.users, self.client_profiles, self.risk_profiles, self.goals,
            self.instruments, self.model_portfolios,
            self.portfolios, self.holdings, self.transactions,
        ]

    # ─────────────────────────────────────────────────────────────────
    # Lookups
    # ─────────────────────────────────────────────────────────────────

    def get_client(self, client_id: str) -> User:
        user = self.users.find(lambda u: u.id == client_id and u.role == "CLIENT")
        if user is None:
            raise NotFoundError("Client", client_id)
        return user

    def clients_for_advisor(self, advisor_id: str) -> List[User]:
        return self.users.filter(lambda u: u.role == "CLIENT" and u.advisor_id == advisor_id)

    def get_client_profile(self, client_id: str) -> ClientProfile:
        profile = self.client_profiles.find(lambda p: p.user_id == client_id)
        if profile is None:
            raise NotFoundError("ClientProfile", client_id)
        return profile

    def get_risk_profile(self, client_id: str) -> RiskProfile:
        rp = self.risk_profiles.find(lambda r: r.client_id == client_id)
        if rp is None:
            raise NotFoundError("RiskProfile", client_id)
        return rp

    def get_portfolio_for_client(self, client_id: str) -> Portfolio:
        portfolio = self.portfolios.find(lambda p: p.client_id == client_id)
        if portfolio is None:
            raise NotFoundError("Portfolio", client_id)
        return portfolio

    def holdings_for_portfolio(self, portfolio_id: str) -> List[Holding]:
        self.portfolios.get(portfolio_id)
        return self.holdings.filter(lambda h: h.portfolio_id == portfolio_id)

    def goals_for_client(self, client_id: str) -> List[Goal]:
        self.get_client(client_id)
        return self.goals.filter(lambda g: g.client_id == client_id)

    def orders_for_portfolio(self, portfolio_id: str) -> List[Order]:
        self.portfolios.get(portfolio_id)
        return self.orders.filter(lambda o: o.portfolio_id == portfolio_id)

    # ─────────────────────────────────────────────────────────────────
    # Activity logs
    # ─────────────────────────────────────────────────────────────────

    def record_audit_event(
        self,
        event_type: str,
        actor_user_id: str,
        client_id: Optional[str] = None,
        details: Optional[dict] = None,
        now: Optional[datetime] = None,
    ) -> AuditEvent:
        now = utcnow(now)
        event = AuditEvent(
            id=f"audit-{int(now.timestamp() * 1000)}-{len(self.kv.get(self.audit_events.key, []))}",
            type=event_type,
            actor_user_id=actor_user_id,
            client_id=client_id,
            timestamp=isoformat(now),
            details=details or {},
        )
        logger.info("Audit %s by %s (client=%s)", event_type, actor_user_id, client_id)
        return self.audit_events.append(event)

    def record_ai_interaction(self, interaction: AiInteraction) -> AiInteraction:
        return self.ai_interactions.append(interaction)

    def save_next_best_actions(self, client_id: str, actions: List[NextBestAction]) -> None:
        """Replace the stored actions for one client."""
        kept = self.next_best_actions.filter(lambda a: a.client_id != client_id)
        self.next_best_actions.replace(kept + list(actions))
