"""
WealthDesk — Personalised Insights

One comprehensive facts packet per client (holdings with gains, goals with
required contribution and shortfall, open actions, health metrics) and a
Markdown report built from it, either by the LLM or offline.
"""

import json
import logging
import math
from datetime import datetime
from typing import List, Optional

from wealthdesk.engine.business_logic import (
    calculate_drift, calculate_goal_gap, calculate_portfolio_allocations,
    calculate_portfolio_health, calculate_required_monthly_contribution, cash_percentage,
    format_amount, get_recommended_model, goal_progress, is_risk_profile_stale,
    risk_profile_age_days,
)
from wealthdesk.config.settings import (
    CASH_INVEST_THRESHOLD, CONTRIBUTION_SHORTFALL_THRESHOLD, DRIFT_REBALANCE_THRESHOLD,
    OFFLINE_MODEL_NAME,
)
from wealthdesk.engine.timeutils import display_date, utcnow
from wealthdesk.llm.copilot import AiResponse, LLMFn, llm_model_name, client_age, holding_details
from wealthdesk.models.types import (
    ClientProfile, Goal, Holding, Instrument, ModelPortfolio, NextBestAction, Portfolio,
    RiskProfile, User,
)

logger = logging.getLogger(__name__)

INSIGHTS_PROMPT = """You are an AI financial analyst helping a client understand their complete financial picture.

Analyze the provided data comprehensively and generate personalized insights that:
1. Assess their overall financial health
2. Explain their portfolio allocation and how it aligns with their risk profile
3. Review their progress toward financial goals
4. Highlight priority actions they should take
5. Provide specific, actionable recommendations

Use a friendly, encouraging tone. Be specific with numbers from the data. Structure your response clearly with headings.

CRITICAL: Only use data from the FACTS PROVIDED below. If something is not in the facts, do not mention it.

FACTS PROVIDED (You must ONLY use these facts):
{facts}

Generate a comprehensive financial insights report for this client. Focus on what matters most based on their health score, goals status, and priority actions. Be specific and cite actual numbers from the facts.

Always end with a disclaimer that this is for educational purposes and not financial advice."""

INSIGHTS_DISCLAIMER = (
    "**Disclaimer:** This analysis is for educational purposes only and does not constitute "
    "financial advice. All data is from a demonstration system. Please consult with a qualified "
    "financial advisor for personalized recommendations."
)


def build_comprehensive_facts_packet(
    client: User,
    profile: ClientProfile,
    risk_profile: RiskProfile,
    portfolio: Portfolio,
    goals: List[Goal],
    holdings: List[Holding],
    instruments: List[Instrument],
    model_portfolios: List[ModelPortfolio],
    actions: List[NextBestAction],
    now: Optional[datetime] = None,
) -> dict:
    now = utcnow(now)
    allocations = calculate_portfolio_allocations(holdings, instruments, portfolio)
    model = get_recommended_model(risk_profile.score, model_portfolios)
    drift = calculate_drift(allocations, model) if model else 0.0
    health = calculate_portfolio_health(risk_profile, portfolio, drift, goals, actions, now)

    goal_rows = []
    for g in goals:
        required = calculate_required_monthly_contribution(g, now)
        goal_rows.append({
            "type": g.type,
            "name": g.name,
            "target_amount": g.target_amount,
            "current_amount": g.current_amount,
            "progress": goal_progress(g),
            "gap": calculate_goal_gap(g),
            "target_date": g.target_date,
            "monthly_contribution": g.monthly_contribution,
            "required_monthly": required,
            "shortfall": max(0.0, required - g.monthly_contribution),
        })

    facts = {
        "client": {
            "name": client.name,
            "age": client_age(profile, now),
            "segment": profile.segment,
            "member_since": profile.onboarding_date,
        },
        "risk_profile": {
            "score": risk_profile.score,
            "category": risk_profile.category,
            "last_updated": risk_profile.last_updated,
            "days_old": math.floor(risk_profile_age_days(risk_profile, now)),
            "is_stale": is_risk_profile_stale(risk_profile, now),
        },
        "portfolio": {
            "total_value": portfolio.total_value,
            "cash": portfolio.cash,
            "cash_percentage": cash_percentage(portfolio),
            "holdings_count": len(holdings),
        },
        "allocations": [a.to_dict() for a in allocations],
        "drift": drift,
        "goals": goal_rows,
        "holdings": holding_details(holdings, instruments, portfolio),
        "next_best_actions": [
            {"type": a.type, "priority": a.priority, "title": a.title, "description": a.description}
            for a in actions
        ],
        "health_metrics": {
            "portfolio_health_score": health.score,
            "goals_on_track": health.goals_on_track,
            "goals_needing_attention": health.goals_needing_attention,
            "goals_critical": health.goals_critical,
            "high_priority_actions": health.high_priority_actions,
            "medium_priority_actions": health.medium_priority_actions,
        },
    }
    if model:
        facts["model_portfolio"] = {
            "name": model.name,
            "description": model.description,
            "target_allocations": [a.to_dict() for a in model.allocations],
        }
    return facts


def insight_sources(facts: dict) -> List[str]:
    return [
        f"Portfolio: ${format_amount(facts['portfolio']['total_value'])}",
        f"Risk Profile: {facts['risk_profile']['score']}/10 ({facts['risk_profile']['category']})",
        f"Goals: {len(facts['goals'])} active",
        f"Holdings: {len(facts['holdings'])} positions",
        f"Actions: {len(facts['next_best_actions'])} recommendations",
        f"Health Score: {facts['health_metrics']['portfolio_health_score']:g}/100",
    ]


def _money(value: float) -> str:
    return f"${format_amount(round(value, 2))}"


def render_offline_insights(facts: dict) -> str:
    """Markdown report assembled from the facts packet without an LLM."""
    health = facts["health_metrics"]
    score = health["portfolio_health_score"]
    rp = facts["risk_profile"]
    portfolio = facts["portfolio"]

    lines = [f"# Personalized Financial Insights for {facts['client']['name']}", ""]
    lines += [f"## Portfolio Health: {score:g}/100", ""]
    if score >= 80:
        lines.append("Your portfolio is in excellent shape! You're well-positioned with strong "
                     "alignment to your financial goals and risk profile.")
    elif score >= 60:
        lines.append("Your portfolio is generally healthy, but there are some areas where "
                     "adjustments could improve your financial position.")
    else:
        lines.append("Your portfolio needs attention. There are several important actions you "
                     "should consider to get back on track.")
    lines += ["", "## Key Insights", ""]

    lines.append("### Risk Profile")
    lines.append(f"- Current risk score: {rp['score']}/10 ({rp['category']})")
    if rp["is_stale"]:
        lines.append(f"- ⚠️ Your risk profile was last updated {rp['days_old']} days ago. Consider "
                     f"refreshing it to ensure your investments match your current situation.")
    else:
        lines.append("- ✓ Your risk profile is current and up-to-date.")
    lines.append("")

    lines.append("### Portfolio Allocation")
    lines.append(f"- Total value: {_money(portfolio['total_value'])}")
    lines.append(f"- Cash position: {_money(portfolio['cash'])} ({portfolio['cash_percentage']:.1f}%)")
    model = facts.get("model_portfolio")
    if model:
        lines.append(f"- Recommended model: {model['name']}")
        lines.append(f"- Current drift: {facts['drift']:.1f}%")
        lines.append("")
        if facts["drift"] > DRIFT_REBALANCE_THRESHOLD:
            lines.append("⚠️ Your portfolio has drifted significantly from your target allocation. "
                         "Consider rebalancing to maintain your desired risk level.")
            lines.append("")
    lines.append("Your current allocation:")
    for a in facts["allocations"]:
        lines.append(f"- {a['asset_class']}: {_money(a['value'])} ({a['percentage']:.1f}%)")
    lines.append("")
    if portfolio["cash_percentage"] > CASH_INVEST_THRESHOLD:
        lines.append(f"💡 You have {portfolio['cash_percentage']:.1f}% in cash. Consider investing this "
                     f"according to your target allocation to maximize potential returns.")
        lines.append("")

    lines.append("### Goals Progress")
    goals = facts["goals"]
    if not goals:
        lines.append("You haven't set any financial goals yet. Consider adding goals to help guide "
                     "your investment strategy.")
        lines.append("")
    else:
        lines.append(f"You have {len(goals)} active goal(s):")
        lines.append("")
        for g in goals:
            lines.append(f"**{g['name']} ({g['type']})**")
            lines.append(f"- Target: {_money(g['target_amount'])} by {display_date(g['target_date'])}")
            lines.append(f"- Current: {_money(g['current_amount'])} ({g['progress']:.1f}% complete)")
            lines.append(f"- Gap: {_money(g['gap'])}")
            lines.append(f"- Monthly contribution: {_money(g['monthly_contribution'])}")
            if g["shortfall"] > CONTRIBUTION_SHORTFALL_THRESHOLD:
                lines.append(f"- ⚠️ Consider increasing by ${math.floor(g['shortfall']):,}/month to stay on track")
            else:
                lines.append("- ✓ On track to meet your goal")
            lines.append("")

    actions = facts["next_best_actions"]
    lines.append(f"### Priority Actions ({len(actions)} total)")
    lines.append("")
    for label, priority in (("High", "HIGH"), ("Medium", "MEDIUM")):
        matching = [a for a in actions if a["priority"] == priority]
        if matching:
            lines.append(f"**{label} Priority ({len(matching)}):**")
            lines += [f"{i}. {a['title']}: {a['description']}" for i, a in enumerate(matching, start=1)]
            lines.append("")
    if not actions:
        lines.append("✓ No urgent actions needed. You're managing your finances well!")
        lines.append("")

    lines.append("### Top Holdings")
    top = sorted(facts["holdings"], key=lambda h: h["value"], reverse=True)[:5]
    for i, h in enumerate(top, start=1):
        sign = "+" if h["gain_percentage"] >= 0 else ""
        lines.append(f"{i}. {h['symbol']} ({h['name']}): {_money(h['value'])} "
                     f"({h['percentage']:.1f}%) - {sign}{h['gain_percentage']:.1f}%")
    lines += ["", "---", "", INSIGHTS_DISCLAIMER]
    return "\n".join(lines)


def generate_personalized_insights(
    client: User,
    profile: ClientProfile,
    risk_profile: RiskProfile,
    portfolio: Portfolio,
    goals: List[Goal],
    holdings: List[Holding],
    instruments: List[Instrument],
    model_portfolios: List[ModelPortfolio],
    actions: List[NextBestAction],
    llm: Optional[LLMFn] = None,
    now: Optional[datetime] = None,
) -> AiResponse:
    facts = build_comprehensive_facts_packet(
        client, profile, risk_profile, portfolio, goals, holdings,
        instruments, model_portfolios, actions, now,
    )
    if llm is not None:
        try:
            content = llm(INSIGHTS_PROMPT.format(facts=json.dumps(facts, indent=2, default=str)))
            return AiResponse(content=content, sources=insight_sources(facts),
                              model=llm_model_name(llm), offline_mode=False)
        except Exception as e:
            logger.warning("Insights LLM call failed: %s, using offline report", e)

    return AiResponse(
        content=render_offline_insights(facts),
        sources=insight_sources(facts)[:5],
        model=OFFLINE_MODEL_NAME,
        offline_mode=True,
    )
