"""
WealthDesk — AI Copilot

Grounded question answering for advisors and clients. Every number the model
sees comes from a facts packet built by the engine; the model only restates.

The LLM is an injected callable `llm(prompt) -> str`. With no callable, or
if it raises, a deterministic offline response is built from the same facts.
"""

import json
import logging
import math
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Callable, List, Optional

from wealthdesk.config.settings import (
    ANTHROPIC_API_KEY, DAYS_PER_YEAR, LLM_MAX_TOKENS, LLM_MODEL, OFFLINE_MODEL_NAME,
)
from wealthdesk.engine.business_logic import (
    SuitabilityResult, calculate_drift, calculate_portfolio_allocations, cash_percentage,
    format_amount, get_recommended_model, holding_value, risk_profile_age_days,
)
from wealthdesk.engine.timeutils import days_between, isoformat, utcnow
from wealthdesk.models.types import (
    AiInteraction, ClientProfile, Goal, Holding, Instrument, ModelPortfolio, Order,
    Portfolio, RiskProfile, User,
)

logger = logging.getLogger(__name__)

LLMFn = Callable[[str], str]

OFFLINE_PREFIX = "[DEMO OFFLINE RESPONSE]"
OFFLINE_DISCLAIMER = (
    "DISCLAIMER: This is a demo response generated in offline mode using "
    "deterministic logic. Not financial advice."
)

ADVISOR_BRIEF_SYSTEM_PROMPT = """You are an AI assistant helping a wealth management advisor prepare for a client meeting.
Provide concise, professional briefings based solely on the data provided.
Your tone should be professional and advisor-focused."""

PORTFOLIO_EXPLANATION_SYSTEM_PROMPT = """You are an AI assistant helping a client understand their investment portfolio.
Explain their allocation, how it compares to their recommended model, and key considerations.
Use plain language that a non-expert can understand. Be encouraging and educational."""

ORDER_NOTE_SYSTEM_PROMPT = """You are an AI assistant helping explain a proposed trade to a client.
Describe what the order would do and how it fits their portfolio strategy.
Be clear and educational."""

PORTFOLIO_EXPLANATION_QUESTION = "Please explain my portfolio allocation and how it aligns with my risk profile."


@dataclass
class AiResponse:
    content: str
    sources: List[str] = field(default_factory=list)
    model: str = OFFLINE_MODEL_NAME
    offline_mode: bool = True

    def to_dict(self) -> dict:
        return asdict(self)


# ─────────────────────────────────────────────────────────────────────
# LLM backend
# ─────────────────────────────────────────────────────────────────────

def anthropic_llm(
    api_key: str = ANTHROPIC_API_KEY,
    model: str = LLM_MODEL,
    max_tokens: int = LLM_MAX_TOKENS,
) -> Optional[LLMFn]:
    """Callable backed by the Anthropic Messages API; None without an API key."""
    if not api_key:
        return None
    import anthropic
    client = anthropic.Anthropic(api_key=api_key)

    def _call(prompt: str) -> str:
        response = client.messages.create(
            model=model,
            max_tokens=max_tokens,
            messages=[{"role": "user", "content": prompt}],
        )
        return response.content[0].text

    _call.model_name = model
    return _call


def llm_model_name(llm: LLMFn) -> str:
    return getattr(llm, "model_name", LLM_MODEL)


# ─────────────────────────────────────────────────────────────────────
# Facts packets
# ─────────────────────────────────────────────────────────────────────

def client_age(profile: ClientProfile, now: Optional[datetime] = None) -> int:
    return math.floor(days_between(profile.date_of_birth, utcnow(now)) / DAYS_PER_YEAR)


def _portfolio_facts(portfolio: Portfolio, holdings_count: int) -> dict:
    return {
        "total_value": portfolio.total_value,
        "cash": portfolio.cash,
        "cash_percentage": cash_percentage(portfolio),
        "holdings_count": holdings_count,
    }


def build_client_facts_packet(
    client: User,
    profile: ClientProfile,
    risk_profile: RiskProfile,
    portfolio: Portfolio,
    goals: List[Goal],
    holdings: Optional[List[Holding]] = None,
    now: Optional[datetime] = None,
) -> dict:
    now = utcnow(now)
    return {
        "client": {
            "name": client.name,
            "age": client_age(profile, now),
            "segment": profile.segment,
            "onboarding_date": profile.onboarding_date,
        },
        "risk_profile": {
            "score": risk_profile.score,
            "category": risk_profile.category,
            "last_updated": risk_profile.last_updated,
            "days_old": math.floor(risk_profile_age_days(risk_profile, now)),
        },
        "portfolio": _portfolio_facts(portfolio, len(holdings or [])),
        "goals": [
            {
                "type": g.type,
                "name": g.name,
                "target_amount": g.target_amount,
                "current_amount": g.current_amount,
                "gap": g.target_amount - g.current_amount,
                "target_date": g.target_date,
                "monthly_contribution": g.monthly_contribution,
            }
            for g in goals
        ],
    }


def holding_details(holdings: List[Holding], instruments: List[Instrument], portfolio: Portfolio) -> List[dict]:
    """Per-position value, weight and unrealised gain; unknown instruments skipped."""
    by_id = {i.id: i for i in instruments}
    total = portfolio.total_value or 1
    rows = []
    for h in holdings:
        instrument = by_id.get(h.instrument_id)
        if instrument is None:
            continue
        value = holding_value(h, instrument)
        cost = h.quantity * h.average_cost
        rows.append({
            "symbol": instrument.symbol,
            "name": instrument.name,
            "asset_class": instrument.asset_class,
            "quantity": h.quantity,
            "value": value,
            "percentage": value / total * 100,
            "gain": value - cost,
            "gain_percentage": (
                (instrument.current_price - h.average_cost) / h.average_cost * 100
                if h.average_cost else 0.0
            ),
        })
    return rows


def build_portfolio_facts_packet(
    client: User,
    risk_profile: RiskProfile,
    portfolio: Portfolio,
    holdings: List[Holding],
    instruments: List[Instrument],
    model_portfolios: List[ModelPortfolio],
) -> dict:
    allocations = calculate_portfolio_allocations(holdings, instruments, portfolio)
    model = get_recommended_model(risk_profile.score, model_portfolios)
    drift = calculate_drift(allocations, model) if model else 0.0

    facts = {
        "client": {"name": client.name},
        "risk_profile": {"score": risk_profile.score, "category": risk_profile.category,
                         "last_updated": risk_profile.last_updated},
        "portfolio": _portfolio_facts(portfolio, len(holdings)),
        "allocations": [a.to_dict() for a in allocations],
        "drift": drift,
        "holdings": [
            {k: row[k] for k in ("symbol", "name", "quantity", "value", "percentage")}
            for row in holding_details(holdings, instruments, portfolio)
        ],
    }
    if model:
        facts["model"] = {"name": model.name, "description": model.description}
    return facts


# ─────────────────────────────────────────────────────────────────────
# Prompting
# ─────────────────────────────────────────────────────────────────────

def build_grounded_prompt(system_prompt: str, user_prompt: str, facts: dict) -> str:
    return f"""{system_prompt}

FACTS PROVIDED (You must ONLY use these facts in your response):
{json.dumps(facts, indent=2, default=str)}

USER QUESTION:
{user_prompt}

INSTRUCTIONS:
- Only reference data from the FACTS PROVIDED section above
- If information is not in the facts, say "Not available in demo data"
- Be concise and professional
- Always include a disclaimer that this is demo data and not financial advice
- Cite specific numbers from the facts to ground your response"""


def extract_sources(facts: dict) -> List[str]:
    sources = []
    client = facts.get("client")
    if client:
        if "age" in client:
            sources.append(f"Client: {client['name']}, Age {client['age']}, {client.get('segment', '')}")
        else:
            sources.append(f"Client: {client['name']}")
    if facts.get("risk_profile"):
        rp = facts["risk_profile"]
        sources.append(f"Risk Profile: Score {rp['score']} ({rp['category']})")
    if facts.get("portfolio"):
        sources.append(f"Portfolio: ${format_amount(facts['portfolio']['total_value'])} total value")
    if facts.get("goals"):
        sources.append(f"Goals: {len(facts['goals'])} active goal(s)")
    if facts.get("holdings"):
        sources.append(f"Holdings: {len(facts['holdings'])} position(s)")
    if facts.get("model"):
        sources.append(f"Recommended Model: {facts['model']['name']}")
    return sources


def offline_response(facts: dict) -> AiResponse:
    """Deterministic answer assembled from the facts packet."""
    parts = []
    client = facts.get("client")
    if client and "age" in client:
        parts.append(f"Client {client['name']} is {client['age']} years old in the {client['segment']} segment.")
    elif client:
        parts.append(f"Client {client['name']}.")
    if facts.get("risk_profile"):
        rp = facts["risk_profile"]
        parts.append(f"They have a risk score of {rp['score']} ({rp['category']}).")
    if facts.get("portfolio"):
        p = facts["portfolio"]
        parts.append(
            f"Their portfolio has a total value of ${format_amount(p['total_value'])} with "
            f"${format_amount(p['cash'])} in cash ({p['cash_percentage']:.1f}%)."
        )
    if facts.get("model"):
        parts.append(
            f"Their recommended model is {facts['model']['name']}, with a current drift of "
            f"{facts.get('drift', 0.0):.1f}%."
        )
    if facts.get("goals"):
        parts.append(f"They have {len(facts['goals'])} active goal(s).")
    if facts.get("holdings") and not client:
        h = facts["holdings"][0]
        parts.append(f"The order covers {h['quantity']:g} units of {h['symbol']} worth about ${format_amount(round(h['value'], 2))}.")

    content = f"{OFFLINE_PREFIX}\n\n{' '.join(parts)}\n\n{OFFLINE_DISCLAIMER}"
    return AiResponse(content=content, sources=extract_sources(facts), model=OFFLINE_MODEL_NAME, offline_mode=True)


def call_ai(system_prompt: str, user_prompt: str, facts: dict, llm: Optional[LLMFn] = None) -> AiResponse:
    """
    Ask the LLM with the facts embedded in the prompt.
    Falls back to the offline response if no LLM is configured or the call fails.
    """
    if llm is not None:
        try:
            content = llm(build_grounded_prompt(system_prompt, user_prompt, facts))
            return AiResponse(
                content=content,
                sources=extract_sources(facts),
                model=llm_model_name(llm),
                offline_mode=False,
            )
        except Exception as e:
            logger.warning("LLM API call failed: %s, using offline response", e)

    return offline_response(facts)


# ─────────────────────────────────────────────────────────────────────
# Use cases
# ─────────────────────────────────────────────────────────────────────

def generate_advisor_brief(
    question: str,
    client: User,
    profile: ClientProfile,
    risk_profile: RiskProfile,
    portfolio: Portfolio,
    goals: List[Goal],
    holdings: Optional[List[Holding]] = None,
    llm: Optional[LLMFn] = None,
    now: Optional[datetime] = None,
) -> AiResponse:
    facts = build_client_facts_packet(client, profile, risk_profile, portfolio, goals, holdings, now)
    return call_ai(ADVISOR_BRIEF_SYSTEM_PROMPT, question, facts, llm)


def generate_portfolio_explanation(
    client: User,
    risk_profile: RiskProfile,
    portfolio: Portfolio,
    holdings: List[Holding],
    instruments: List[Instrument],
    model_portfolios: List[ModelPortfolio],
    llm: Optional[LLMFn] = None,
) -> AiResponse:
    facts = build_portfolio_facts_packet(client, risk_profile, portfolio, holdings, instruments, model_portfolios)
    return call_ai(PORTFOLIO_EXPLANATION_SYSTEM_PROMPT, PORTFOLIO_EXPLANATION_QUESTION, facts, llm)


def order_note_prompt(order: Order, instrument: Instrument, suitability: SuitabilityResult) -> str:
    if order.order_type == "MARKET":
        price = "market price"
    else:
        price = f"limit price ${format_amount(order.limit_price or 0)}"
    verdict = "Approved" if suitability.suitable else suitability.reason
    return (
        f"Generate a brief note explaining a {order.side} order for {order.quantity:g} shares of "
        f"{instrument.symbol} at {price}. Suitability: {verdict}"
    )


def generate_order_note(
    order: Order,
    instrument: Instrument,
    suitability: SuitabilityResult,
    portfolio: Portfolio,
    llm: Optional[LLMFn] = None,
) -> AiResponse:
    facts = {
        "portfolio": _portfolio_facts(portfolio, 0),
        "holdings": [{
            "symbol": instrument.symbol,
            "name": instrument.name,
            "quantity": order.quantity,
            "value": order.quantity * instrument.current_price,
            "percentage": 0.0,
        }],
    }
    return call_ai(ORDER_NOTE_SYSTEM_PROMPT, order_note_prompt(order, instrument, suitability), facts, llm)


def create_ai_interaction_record(
    actor_user_id: str,
    client_id: Optional[str],
    endpoint: str,
    prompt: str,
    response: AiResponse,
    now: Optional[datetime] = None,
) -> AiInteraction:
    now = utcnow(now)
    return AiInteraction(
        id=f"ai-{int(now.timestamp() * 1000)}-{endpoint.strip('/').replace('/', '-')}",
        actor_user_id=actor_user_id,
        client_id=client_id,
        endpoint=endpoint,
        prompt=prompt,
        response=response.content,
        model=response.model,
        created_at=isoformat(now),
        offline_mode=response.offline_mode,
        metadata={"sources": response.sources},
    )
