"""
Goal templates and currency helpers.
"""

import json
import logging

import pytest

from wealthdesk.data.currency import (
    CURRENCY_DATABASE, convert_currency, format_currency_with_code, get_currency_name,
    get_currency_symbol, get_default_exchange_rates, get_exchange_rates,
)
from wealthdesk.data.goal_templates import (
    GOAL_TEMPLATES, get_most_popular_templates, get_template_by_id, get_templates_by_type,
    goal_from_template,
)
from wealthdesk.models.errors import NotFoundError, ValidationError


class TestGoalTemplates:

    def test_catalogue(self):
        assert len(GOAL_TEMPLATES) == 12
        assert sorted(t.popularity_rank for t in GOAL_TEMPLATES) == list(range(1, 13))
        for t in GOAL_TEMPLATES:
            assert t.min_amount <= t.suggested_amount <= t.max_amount
            assert t.min_years <= t.suggested_years <= t.max_years

    def test_by_type_sorted_by_popularity(self):
        assert [t.id for t in get_templates_by_type("HOUSE")] == [
            "house-downpayment", "house-upgrade", "vacation-home",
        ]
        assert len(get_templates_by_type()) == 12
        with pytest.raises(ValidationError):
            get_templates_by_type("BOAT")

    def test_lookup(self):
        assert get_template_by_id("wedding").name == "Wedding"
        assert get_template_by_id("nope") is None
        assert [t.popularity_rank for t in get_most_popular_templates()] == [1, 2, 3, 4, 5, 6]

    def test_goal_from_template_defaults(self, now):
        goal = goal_from_template("house-downpayment", "cli-2", now=now)

        assert goal.type == "HOUSE"
        assert goal.name == "Home Down Payment"
        assert goal.target_amount == 100_000
        assert goal.target_date.startswith("2030-01-15")
        assert goal.progress_history == []

    def test_goal_from_template_overrides(self, now):
        goal = goal_from_template(
            "wedding", "cli-2", target_amount=40_000, years=3, monthly_contribution=800,
            name="Our wedding", now=now,
        )
        assert goal.name == "Our wedding"
        assert goal.monthly_contribution == 800
        assert goal.target_date.startswith("2028-01-15")

    @pytest.mark.parametrize("kwargs", [{"target_amount": 5_000}, {"years": 10}])
    def test_goal_from_template_bounds(self, now, kwargs):
        with pytest.raises(ValidationError):
            goal_from_template("wedding", "cli-2", now=now, **kwargs)

    def test_goal_ids_distinct_within_one_instant(self, now):
        first = goal_from_template("wedding", "cli-2", now=now, sequence=4)
        second = goal_from_template("wedding", "cli-2", now=now, sequence=5)

        assert first.id == f"goal-{int(now.timestamp() * 1000)}-4"
        assert first.id != second.id

    def test_negative_current_amount(self, now):
        with pytest.raises(ValidationError):
            goal_from_template("wedding", "cli-2", current_amount=-1, now=now)

    def test_unknown_template(self, now):
        with pytest.raises(NotFoundError):
            goal_from_template("yacht", "cli-2", now=now)


class TestCurrency:

    def test_defaults_rebased(self):
        usd = get_default_exchange_rates("USD")
        eur = get_default_exchange_rates("EUR")

        assert set(usd) == set(CURRENCY_DATABASE)
        assert eur["EUR"] == pytest.approx(1.0)
        assert eur["USD"] == pytest.approx(1 / 0.92)

    def test_llm_rates(self):
        rates = get_exchange_rates("USD", llm=lambda prompt: json.dumps({"EUR": 0.9, "GBP": 0.8}))
        assert rates == {"EUR": 0.9, "GBP": 0.8, "USD": 1.0}

    @pytest.mark.parametrize("reply", ["not json", "[1, 2]", '{"EUR": -1}'])
    def test_bad_llm_rates_fall_back(self, reply):
        assert get_exchange_rates("GBP", llm=lambda prompt: reply) == get_default_exchange_rates("GBP")

    def test_llm_exception_falls_back(self, caplog):
        def boom(prompt):
            raise RuntimeError("down")
        with caplog.at_level(logging.WARNING, logger="wealthdesk.data.currency"):
            assert get_exchange_rates("USD", llm=boom) == get_default_exchange_rates("USD")

        [record] = [r for r in caplog.records if r.levelno == logging.WARNING]
        assert record.msg == "Exchange rate lookup failed (%s), using default rates"
        assert record.getMessage() == "Exchange rate lookup failed (down), using default rates"

    def test_convert(self):
        rates = get_default_exchange_rates("USD")
        assert convert_currency(100, "USD", "USD", rates) == 100
        assert convert_currency(100, "USD", "EUR", rates) == pytest.approx(92)
        assert convert_currency(92, "EUR", "USD", rates) == pytest.approx(100)

    def test_formatting(self):
        assert format_currency_with_code(1234.5, "EUR") == "€1,234.50 EUR"
        assert format_currency_with_code(1234.5, "EUR", show_code=False) == "€1,234.50"
        assert format_currency_with_code(10, "XYZ") == "XYZ10.00"
        assert get_currency_symbol("JPY") == "¥"
        assert get_currency_name("XYZ") == "XYZ"
