"""
Tests for the key-value store, typed collections and seeding.
"""

import json

import pytest

from wealthdesk.config.settings import ASSET_CLASSES, DATA_VERSION, RISK_CATEGORIES
from wealthdesk.data.store import DataStore, KVStore
from wealthdesk.models.errors import NotFoundError
from wealthdesk.models.types import Goal, NextBestAction


class TestKVStore:

    def test_get_returns_copies(self):
        kv = KVStore()
        kv.set("k", {"a": [1, 2]})
        value = kv.get("k")
        value["a"].append(3)
        assert kv.get("k") == {"a": [1, 2]}

    def test_missing_key_default(self):
        assert KVStore().get("nope", []) == []
        assert "nope" not in KVStore()

    def test_mirrors_to_json_file(self, tmp_path):
        path = tmp_path / "db" / "store.json"
        KVStore(str(path)).set("k", [1, 2, 3])

        assert json.loads(path.read_text())["k"] == [1, 2, 3]
        assert KVStore(str(path)).get("k") == [1, 2, 3]


class TestSeeding:

    def test_counts(self, store):
        assert len(store.users.all()) == 15
        assert len(store.instruments.all()) == 15
        assert len(store.model_portfolios.all()) == 6
        assert len(store.portfolios.all()) == 12
        assert len(store.goals.all()) == 4

    def test_seed_vocabulary(self, store):
        assert {i.asset_class for i in store.instruments.all()} <= set(ASSET_CLASSES)
        assert {r.category for r in store.risk_profiles.all()} <= set(RISK_CATEGORIES)
        for model in store.model_portfolios.all():
            assert sum(a.target_percentage for a in model.allocations) == pytest.approx(100)

    def test_activity_logs_start_empty(self, store):
        for collection in (store.orders, store.next_best_actions, store.audit_events,
                           store.ai_interactions, store.goal_notifications):
            assert collection.all() == []

    def test_generation_is_deterministic(self, now):
        a = DataStore(KVStore(), seed=42, now=now)
        b = DataStore(KVStore(), seed=42, now=now)
        c = DataStore(KVStore(), seed=7, now=now)

        assert [p.to_dict() for p in a.portfolios.all()] == [p.to_dict() for p in b.portfolios.all()]
        assert [h.to_dict() for h in a.holdings.all()] == [h.to_dict() for h in b.holdings.all()]
        # cli-4 has no fixed base value, so its size comes from the RNG
        assert a.get_portfolio_for_client("cli-4").cash != c.get_portfolio_for_client("cli-4").cash

    def test_fixed_portfolios(self, store):
        cli1 = store.get_portfolio_for_client("cli-1")
        assert cli1.cash == pytest.approx(150_000)
        assert cli1.total_value == pytest.approx(1_250_000, rel=0.01)

        cli3 = store.get_portfolio_for_client("cli-3")
        qqq = next(h for h in store.holdings_for_portfolio(cli3.id) if h.instrument_id == "ins-8")
        assert qqq.quantity * 425.75 / cli3.total_value > 0.40

    def test_goals_round_trip_nested_records(self, store):
        goal = store.goals.get("goal-1")
        assert isinstance(goal, Goal)
        assert [s.current_amount for s in goal.progress_history] == [780_000, 800_000, 825_000, 850_000]
        assert Goal.from_dict(goal.to_dict()) == goal


class TestVersioning:

    def test_version_mismatch_reseeds(self, tmp_path, now):
        path = str(tmp_path / "store.json")
        store = DataStore(KVStore(path), now=now)
        store.users.replace([])
        store.record_audit_event("ORDER_CREATED", "adv-1", "cli-1", now=now)
        store.kv.set("data_version", "0.0")

        reloaded = DataStore(KVStore(path), now=now)

        assert len(reloaded.users.all()) == 15
        assert len(reloaded.audit_events.all()) == 1
        assert reloaded.kv.get("data_version") == DATA_VERSION

    def test_same_version_keeps_edits(self, tmp_path, now):
        path = str(tmp_path / "store.json")
        store = DataStore(KVStore(path), now=now)
        goal = store.goals.get("goal-2")
        goal.current_amount = 160_000
        store.goals.upsert(goal)

        reloaded = DataStore(KVStore(path), now=now)

        assert reloaded.goals.get("goal-2").current_amount == 160_000


class TestLookups:

    def test_clients_for_advisor(self, store):
        ids = [c.id for c in store.clients_for_advisor("adv-1")]
        assert ids == ["cli-1", "cli-2", "cli-3", "cli-4"]

    def test_get_client_rejects_advisors(self, store):
        with pytest.raises(NotFoundError) as exc:
            store.get_client("adv-1")
        assert exc.value.kind == "Client"

    @pytest.mark.parametrize("lookup", [
        "get_client", "get_client_profile", "get_risk_profile", "get_portfolio_for_client",
    ])
    def test_unknown_client(self, store, lookup):
        with pytest.raises(NotFoundError):
            getattr(store, lookup)("cli-404")

    @pytest.mark.parametrize("lookup,record_id,kind", [
        ("holdings_for_portfolio", "port-404", "Portfolio"),
        ("orders_for_portfolio", "port-404", "Portfolio"),
        ("goals_for_client", "cli-404", "Client"),
    ])
    def test_list_lookups_reject_unknown_owner(self, store, lookup, record_id, kind):
        with pytest.raises(NotFoundError) as exc:
            getattr(store, lookup)(record_id)
        assert exc.value.kind == kind

    def test_list_lookups_for_known_owner_without_records(self, store):
        assert store.orders_for_portfolio("port-cli-1") == []
        assert store.goals_for_client("cli-4") == []

    def test_collection_get_unknown(self, store):
        with pytest.raises(NotFoundError) as exc:
            store.goals.get("goal-404")
        assert str(exc.value) == "Goal 'goal-404' not found"

    def test_upsert_and_remove(self, store):
        goal = store.goals.get("goal-1")
        goal.name = "Retire early"
        store.goals.upsert(goal)
        assert store.goals.get("goal-1").name == "Retire early"
        assert len(store.goals.all()) == 4

        store.goals.remove("goal-1")
        assert [g.id for g in store.goals_for_client("cli-1")] == ["goal-2"]


class TestActivityLogs:

    def test_audit_events_get_unique_ids(self, store, now):
        first = store.record_audit_event("ORDER_CREATED", "adv-1", "cli-1", {"order_id": "o-1"}, now=now)
        second = store.record_audit_event("ORDER_EXECUTED", "adv-1", "cli-1", now=now)

        assert first.id != second.id
        assert second.details == {}
        assert [e.type for e in store.audit_events.all()] == ["ORDER_CREATED", "ORDER_EXECUTED"]

    def test_save_next_best_actions_replaces_per_client(self, store, now):
        def nba(action_id, client_id):
            return NextBestAction(
                id=action_id, client_id=client_id, type="REBALANCE", priority="HIGH",
                title="t", description="d", created_at=now.isoformat(),
            )

        store.save_next_best_actions("cli-1", [nba("a1", "cli-1"), nba("a2", "cli-1")])
        store.save_next_best_actions("cli-2", [nba("b1", "cli-2")])
        store.save_next_best_actions("cli-1", [nba("a3", "cli-1")])

        assert sorted(a.id for a in store.next_best_actions.all()) == ["a3", "b1"]
