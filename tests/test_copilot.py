"""
Unit tests for the grounded copilot and the personalised insights report.

LLM calls are plain callables here; nothing leaves the process.
"""

import pytest

from wealthdesk.engine.business_logic import SuitabilityResult, generate_next_best_actions
from wealthdesk.llm.copilot import (
    OFFLINE_PREFIX, PORTFOLIO_EXPLANATION_QUESTION, anthropic_llm, build_client_facts_packet,
    build_grounded_prompt, call_ai, create_ai_interaction_record, extract_sources,
    generate_advisor_brief, generate_order_note, generate_portfolio_explanation, llm_model_name,
)
from wealthdesk.llm.insights import (
    build_comprehensive_facts_packet, generate_personalized_insights, insight_sources,
)
from wealthdesk.models.types import Order


class FakeLLM:
    """Records prompts and answers with a canned reply."""

    model_name = "fake-model"

    def __init__(self, reply="Grounded answer."):
        self.reply = reply
        self.prompts = []

    def __call__(self, prompt):
        self.prompts.append(prompt)
        return self.reply


def _boom(prompt):
    raise RuntimeError("upstream down")


@pytest.fixture
def cli1(store):
    client = store.get_client("cli-1")
    portfolio = store.get_portfolio_for_client("cli-1")
    return {
        "client": client,
        "profile": store.get_client_profile("cli-1"),
        "risk_profile": store.get_risk_profile("cli-1"),
        "portfolio": portfolio,
        "goals": store.goals_for_client("cli-1"),
        "holdings": store.holdings_for_portfolio(portfolio.id),
        "instruments": store.instruments.all(),
        "models": store.model_portfolios.all(),
    }


def _brief(cli1, now, llm=None, question="How is Robert doing?"):
    return generate_advisor_brief(
        question, cli1["client"], cli1["profile"], cli1["risk_profile"], cli1["portfolio"],
        cli1["goals"], cli1["holdings"], llm=llm, now=now,
    )


class TestFactsPacket:

    def test_client_packet(self, cli1, now):
        facts = build_client_facts_packet(
            cli1["client"], cli1["profile"], cli1["risk_profile"], cli1["portfolio"],
            cli1["goals"], cli1["holdings"], now,
        )

        assert facts["client"] == {
            "name": "Robert Chen", "age": 49, "segment": "High Net Worth",
            "onboarding_date": "2020-01-15",
        }
        assert facts["risk_profile"]["days_old"] == 61
        assert facts["portfolio"]["holdings_count"] == 4
        assert facts["portfolio"]["cash_percentage"] == pytest.approx(12.0, abs=0.1)
        assert [g["gap"] for g in facts["goals"]] == [2_150_000, 80_000]

    def test_sources(self, cli1, now):
        facts = build_client_facts_packet(
            cli1["client"], cli1["profile"], cli1["risk_profile"], cli1["portfolio"],
            cli1["goals"], None, now,
        )
        sources = extract_sources(facts)

        assert sources[0] == "Client: Robert Chen, Age 49, High Net Worth"
        assert sources[1] == "Risk Profile: Score 7 (GROWTH)"
        assert sources[3] == "Goals: 2 active goal(s)"

    def test_grounded_prompt_embeds_facts_and_question(self):
        prompt = build_grounded_prompt("SYSTEM", "What is the cash?", {"portfolio": {"cash": 1234}})
        assert prompt.startswith("SYSTEM")
        assert '"cash": 1234' in prompt
        assert "USER QUESTION:\nWhat is the cash?" in prompt


class TestCallAi:

    def test_offline_without_llm(self, cli1, now):
        response = _brief(cli1, now)

        assert response.offline_mode is True
        assert response.model == "offline-demo"
        assert response.content.startswith(OFFLINE_PREFIX)
        assert "Client Robert Chen is 49 years old" in response.content
        assert "Not financial advice." in response.content

    def test_llm_response(self, cli1, now):
        llm = FakeLLM()
        response = _brief(cli1, now, llm=llm)

        assert response.offline_mode is False
        assert response.content == "Grounded answer."
        assert response.model == "fake-model"
        assert "How is Robert doing?" in llm.prompts[0]
        assert '"name": "Robert Chen"' in llm.prompts[0]

    def test_llm_failure_falls_back(self, cli1, now):
        response = _brief(cli1, now, llm=_boom)
        assert response.offline_mode is True
        assert response.content.startswith(OFFLINE_PREFIX)

    def test_plain_function_uses_default_model_name(self):
        response = call_ai("sys", "q", {}, llm=lambda prompt: "ok")
        assert response.model == llm_model_name(lambda p: p)
        assert response.sources == []

    def test_no_api_key_means_no_llm(self):
        assert anthropic_llm(api_key="") is None

    def test_portfolio_explanation(self, cli1):
        llm = FakeLLM()
        response = generate_portfolio_explanation(
            cli1["client"], cli1["risk_profile"], cli1["portfolio"], cli1["holdings"],
            cli1["instruments"], cli1["models"], llm=llm,
        )

        assert PORTFOLIO_EXPLANATION_QUESTION in llm.prompts[0]
        assert "Recommended Model: Growth" in response.sources

        offline = generate_portfolio_explanation(
            cli1["client"], cli1["risk_profile"], cli1["portfolio"], cli1["holdings"],
            cli1["instruments"], cli1["models"],
        )
        assert "Their recommended model is Growth" in offline.content

    def test_order_note(self, store, now):
        instrument = store.instruments.get("ins-1")
        order = Order(
            id="order-1", portfolio_id="port-cli-1", instrument_id="ins-1", side="BUY",
            order_type="LIMIT", quantity=10, status="PENDING", created_by="adv-1",
            created_at=now.isoformat(), idempotency_key="k", limit_price=240,
        )
        llm = FakeLLM("Buying VTI adds broad exposure.")

        response = generate_order_note(
            order, instrument, SuitabilityResult(suitable=True),
            store.get_portfolio_for_client("cli-1"), llm,
        )

        assert response.content == "Buying VTI adds broad exposure."
        assert "BUY order for 10 shares of VTI at limit price $240. Suitability: Approved" in llm.prompts[0]


class TestInteractionRecord:

    def test_record_fields(self, cli1, now):
        response = _brief(cli1, now)
        record = create_ai_interaction_record("adv-1", "cli-1", "/api/copilot/brief", "q?", response, now)

        assert record.id == f"ai-{int(now.timestamp() * 1000)}-api-copilot-brief"
        assert record.response == response.content
        assert record.offline_mode is True
        assert record.metadata == {"sources": response.sources}


class TestInsights:

    def _facts(self, cli1, now):
        actions = generate_next_best_actions(
            cli1["client"].id, cli1["portfolio"], cli1["holdings"], cli1["instruments"],
            cli1["risk_profile"], cli1["goals"], cli1["models"], now,
        )
        return build_comprehensive_facts_packet(
            cli1["client"], cli1["profile"], cli1["risk_profile"], cli1["portfolio"], cli1["goals"],
            cli1["holdings"], cli1["instruments"], cli1["models"], actions, now,
        ), actions

    def test_comprehensive_packet(self, cli1, now):
        facts, actions = self._facts(cli1, now)

        assert facts["model_portfolio"]["name"] == "Growth"
        assert facts["risk_profile"]["is_stale"] is False
        assert len(facts["holdings"]) == 4
        assert len(facts["next_best_actions"]) == len(actions)
        assert 0 <= facts["health_metrics"]["portfolio_health_score"] <= 100
        assert len(insight_sources(facts)) == 6

    def test_offline_report(self, cli1, now):
        facts, actions = self._facts(cli1, now)
        response = generate_personalized_insights(
            cli1["client"], cli1["profile"], cli1["risk_profile"], cli1["portfolio"], cli1["goals"],
            cli1["holdings"], cli1["instruments"], cli1["models"], actions, now=now,
        )

        assert response.offline_mode is True
        assert response.content.startswith("# Personalized Financial Insights for Robert Chen")
        assert "**Retirement at 65 (RETIREMENT)**" in response.content
        assert "- Target: $3,000,000 by 3/15/2034" in response.content
        assert "### Top Holdings" in response.content
        assert "**Disclaimer:**" in response.content
        assert response.sources == insight_sources(facts)[:5]

    def test_llm_report(self, cli1, now):
        _, actions = self._facts(cli1, now)
        llm = FakeLLM("## Your report")
        response = generate_personalized_insights(
            cli1["client"], cli1["profile"], cli1["risk_profile"], cli1["portfolio"], cli1["goals"],
            cli1["holdings"], cli1["instruments"], cli1["models"], actions, llm=llm, now=now,
        )

        assert response.content == "## Your report"
        assert len(response.sources) == 6
        assert "FACTS PROVIDED" in llm.prompts[0]
