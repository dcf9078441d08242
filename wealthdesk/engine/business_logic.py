"""
WealthDesk — Portfolio Analytics & Recommendation Engine

Pure functions over the in-memory object graph:
    - Allocation aggregation by asset class
    - Model-portfolio selection by risk score and drift against it
    - Pre-trade suitability / cash / concentration checks
    - Goal funding gap and required contribution
    - Next-best-action generation from threshold checks

Nothing here touches the data store. Division by zero is guarded with defaults.
"""

import logging
import math
from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Dict, List, Optional

import numpy as np
import pandas as pd

from wealthdesk.config.settings import (
    CASH_INVEST_THRESHOLD, CASH_MEDIUM_PRIORITY, CONCENTRATION_LIMIT,
    CONTRIBUTION_SHORTFALL_THRESHOLD, DAYS_PER_MONTH,
    DRIFT_HIGH_PRIORITY, DRIFT_REBALANCE_THRESHOLD, GOAL_GAP_ACTION_THRESHOLD,
    GOAL_GAP_HIGH_PRIORITY, RISK_PROFILE_STALE_DAYS, SNAPSHOT_AMOUNT_DELTA,
    SNAPSHOT_CONTRIBUTION_DELTA,
)
from wealthdesk.engine.timeutils import add_months, days_between, isoformat, utcnow
from wealthdesk.models.types import (
    Goal, GoalProgressSnapshot, Holding, Instrument, ModelPortfolio,
    NextBestAction, Portfolio, RiskProfile,
)

logger = logging.getLogger(__name__)


@dataclass
class AllocationBreakdown:
    asset_class: str
    value: float
    percentage: float

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class SuitabilityResult:
    suitable: bool
    reason: Optional[str] = None


@dataclass
class CashCheck:
    sufficient: bool
    available: float
    required: float


@dataclass
class ConcentrationCheck:
    acceptable: bool
    resulting_percentage: float
    limit: float


@dataclass
class PortfolioHealth:
    score: float
    goals_on_track: int
    goals_needing_attention: int
    goals_critical: int
    high_priority_actions: int
    medium_priority_actions: int

    def to_dict(self) -> dict:
        return asdict(self)


def format_amount(amount: float) -> str:
    """Thousands-separated amount; cents only when present."""
    if float(amount).is_integer():
        return f"{amount:,.0f}"
    return f"{amount:,.2f}"


def _instrument_index(instruments: List[Instrument]) -> Dict[str, Instrument]:
    return {i.id: i for i in instruments}


def cash_percentage(portfolio: Portfolio) -> float:
    if not portfolio.total_value:
        return 0.0
    return portfolio.cash / portfolio.total_value * 100


def holding_value(holding: Holding, instrument: Instrument) -> float:
    return holding.quantity * instrument.current_price


# ─────────────────────────────────────────────────────────────────────
# Allocation & drift
# ─────────────────────────────────────────────────────────────────────

def calculate_portfolio_allocations(
    holdings: List[Holding],
    instruments: List[Instrument],
    portfolio: Portfolio,
) -> List[AllocationBreakdown]:
    """
    Aggregate market value per asset class.

    Holdings whose instrument is unknown are skipped. Positive cash is added
    to the CASH class. Percentages are against `portfolio.total_value`
    (treated as 1 when zero), so they need not sum to exactly 100.
    """
    by_id = _instrument_index(instruments)
    rows = []
    for h in holdings:
        instrument = by_id.get(h.instrument_id)
        if instrument is None:
            continue
        rows.append({"asset_class": instrument.asset_class, "value": holding_value(h, instrument)})

    if portfolio.cash > 0:
        rows.append({"asset_class": "CASH", "value": portfolio.cash})

    if not rows:
        return []

    # sort=False keeps first-seen order of asset classes
    grouped = pd.DataFrame(rows).groupby("asset_class", sort=False)["value"].sum()
    total_value = portfolio.total_value or 1

    return [
        AllocationBreakdown(asset_class=cls, value=float(value), percentage=float(value / total_value * 100))
        for cls, value in grouped.items()
    ]


def get_recommended_model(
    risk_score: int,
    model_portfolios: List[ModelPortfolio],
) -> Optional[ModelPortfolio]:
    """First model whose risk band contains the score (bands may overlap)."""
    for mp in model_portfolios:
        if mp.min_risk_score <= risk_score <= mp.max_risk_score:
            return mp
    return None


def calculate_drift(
    current_allocations: List[AllocationBreakdown],
    target_model: ModelPortfolio,
) -> float:
    """
    Half the sum of absolute percentage-point differences over the model's
    asset classes. Classes held but absent from the model are ignored.
    """
    if not target_model.allocations:
        return 0.0
    current = {a.asset_class: a.percentage for a in current_allocations}
    current_pct = np.array([current.get(t.asset_class, 0.0) for t in target_model.allocations])
    target_pct = np.array([t.target_percentage for t in target_model.allocations])
    return float(np.abs(current_pct - target_pct).sum() / 2)


# ─────────────────────────────────────────────────────────────────────
# Risk profile & goals
# ─────────────────────────────────────────────────────────────────────

def risk_profile_age_days(risk_profile: RiskProfile, now: Optional[datetime] = None) -> float:
    return days_between(risk_profile.last_updated, utcnow(now))


def is_risk_profile_stale(risk_profile: RiskProfile, now: Optional[datetime] = None) -> bool:
    return risk_profile_age_days(risk_profile, now) > RISK_PROFILE_STALE_DAYS


def calculate_goal_gap(goal: Goal) -> float:
    return max(0.0, goal.target_amount - goal.current_amount)


def months_remaining(goal: Goal, now: Optional[datetime] = None) -> float:
    """Fractional 30-day months until the target date, floored at 1."""
    return max(1.0, days_between(utcnow(now), goal.target_date) / DAYS_PER_MONTH)


def calculate_required_monthly_contribution(goal: Goal, now: Optional[datetime] = None) -> float:
    return calculate_goal_gap(goal) / months_remaining(goal, now)


def goal_progress(goal: Goal) -> float:
    """Percent complete; 0 for a zero target."""
    if not goal.target_amount:
        return 0.0
    return goal.current_amount / goal.target_amount * 100


# ─────────────────────────────────────────────────────────────────────
# Next best actions
# ─────────────────────────────────────────────────────────────────────

def generate_next_best_actions(
    client_id: str,
    portfolio: Portfolio,
    holdings: List[Holding],
    instruments: List[Instrument],
    risk_profile: RiskProfile,
    goals: List[Goal],
    model_portfolios: List[ModelPortfolio],
    now: Optional[datetime] = None,
) -> List[NextBestAction]:
    """Run every threshold check and return the triggered recommendations."""
    now = utcnow(now)
    created_at = isoformat(now)
    actions: List[NextBestAction] = []

    if is_risk_profile_stale(risk_profile, now):
        days_old = math.floor(risk_profile_age_days(risk_profile, now))
        actions.append(NextBestAction(
            id=f"action-{client_id}-risk",
            client_id=client_id,
            type="REFRESH_RISK_PROFILE",
            title="Refresh Risk Profile",
            description=f"Risk profile is {days_old} days old. Consider updating.",
            priority="HIGH",
            created_at=created_at,
        ))

    for goal in goals:
        gap = calculate_goal_gap(goal)
        if gap <= GOAL_GAP_ACTION_THRESHOLD:
            continue
        required = calculate_required_monthly_contribution(goal, now)
        shortfall = required - goal.monthly_contribution
        if shortfall > CONTRIBUTION_SHORTFALL_THRESHOLD:
            actions.append(NextBestAction(
                id=f"action-{client_id}-goal-{goal.id}",
                client_id=client_id,
                type="INCREASE_CONTRIBUTION",
                title=f"Increase {goal.name} Contribution",
                description=(
                    f"Current monthly contribution of ${format_amount(goal.monthly_contribution)} "
                    f"falls short by ${math.floor(shortfall):,}/month to meet target."
                ),
                priority="HIGH" if gap > GOAL_GAP_HIGH_PRIORITY else "MEDIUM",
                created_at=created_at,
                metadata={"goal_id": goal.id, "required_increase": shortfall},
            ))

    model = get_recommended_model(risk_profile.score, model_portfolios)
    if model is not None:
        allocations = calculate_portfolio_allocations(holdings, instruments, portfolio)
        drift = calculate_drift(allocations, model)
        if drift > DRIFT_REBALANCE_THRESHOLD:
            actions.append(NextBestAction(
                id=f"action-{client_id}-rebalance",
                client_id=client_id,
                type="REBALANCE_PORTFOLIO",
                title="Rebalance Portfolio",
                description=f"Portfolio has drifted {drift:.1f}% from target {model.name} model allocation.",
                priority="HIGH" if drift > DRIFT_HIGH_PRIORITY else "MEDIUM",
                created_at=created_at,
                metadata={"drift": drift, "model_id": model.id},
            ))
    else:
        logger.debug("No model portfolio covers risk score %s", risk_profile.score)

    cash_pct = cash_percentage(portfolio)
    if cash_pct > CASH_INVEST_THRESHOLD:
        actions.append(NextBestAction(
            id=f"action-{client_id}-invest-cash",
            client_id=client_id,
            type="INVEST_CASH",
            title="Invest Excess Cash",
            description=f"{cash_pct:.1f}% of portfolio is in cash. Consider investing according to target allocation.",
            priority="MEDIUM" if cash_pct > CASH_MEDIUM_PRIORITY else "LOW",
            created_at=created_at,
            metadata={"cash_percentage": cash_pct, "cash_amount": portfolio.cash},
        ))

    by_id = _instrument_index(instruments)
    for h in holdings:
        instrument = by_id.get(h.instrument_id)
        if instrument is None or not portfolio.total_value:
            continue
        pct = holding_value(h, instrument) / portfolio.total_value * 100
        if pct > CONCENTRATION_LIMIT:
            actions.append(NextBestAction(
                id=f"action-{client_id}-concentration-{instrument.id}",
                client_id=client_id,
                type="REBALANCE_PORTFOLIO",
                title="Reduce Concentration Risk",
                description=(
                    f"{instrument.symbol} represents {pct:.1f}% of portfolio, "
                    f"exceeding {CONCENTRATION_LIMIT:g}% threshold."
                ),
                priority="HIGH",
                created_at=created_at,
                metadata={"instrument_id": instrument.id, "percentage": pct},
            ))

    return actions


# ─────────────────────────────────────────────────────────────────────
# Pre-trade checks
# ─────────────────────────────────────────────────────────────────────

def check_suitability(instrument: Instrument, risk_profile: RiskProfile) -> SuitabilityResult:
    if risk_profile.score < instrument.suitability_min_risk:
        return SuitabilityResult(
            suitable=False,
            reason=(
                f"{instrument.name} requires minimum risk score of {instrument.suitability_min_risk}. "
                f"Client risk score is {risk_profile.score}."
            ),
        )
    if risk_profile.score > instrument.suitability_max_risk:
        return SuitabilityResult(
            suitable=False,
            reason=(
                f"{instrument.name} is not suitable for risk score {risk_profile.score} "
                f"(max {instrument.suitability_max_risk})."
            ),
        )
    return SuitabilityResult(suitable=True)


def check_cash_sufficiency(portfolio: Portfolio, amount: float) -> CashCheck:
    return CashCheck(sufficient=portfolio.cash >= amount, available=portfolio.cash, required=amount)


def check_concentration(
    holdings: List[Holding],
    instruments: List[Instrument],
    portfolio: Portfolio,
    new_instrument_id: str,
    new_quantity: float,
) -> ConcentrationCheck:
    """Resulting single-instrument weight if `new_quantity` more units were held."""
    instrument = _instrument_index(instruments).get(new_instrument_id)
    if instrument is None:
        return ConcentrationCheck(acceptable=True, resulting_percentage=0.0, limit=CONCENTRATION_LIMIT)

    existing_qty = next((h.quantity for h in holdings if h.instrument_id == new_instrument_id), 0)
    value = (existing_qty + new_quantity) * instrument.current_price
    pct = value / (portfolio.total_value or 1) * 100

    return ConcentrationCheck(
        acceptable=pct <= CONCENTRATION_LIMIT,
        resulting_percentage=pct,
        limit=CONCENTRATION_LIMIT,
    )


# ─────────────────────────────────────────────────────────────────────
# Goal progress history
# ─────────────────────────────────────────────────────────────────────

def capture_goal_progress_snapshot(goal: Goal, now: Optional[datetime] = None) -> GoalProgressSnapshot:
    now = utcnow(now)
    remaining = goal.target_amount - goal.current_amount

    projected_completion = goal.target_date
    if goal.monthly_contribution > 0 and remaining > 0:
        months_to_completion = math.ceil(remaining / goal.monthly_contribution)
        projected_completion = isoformat(add_months(now, months_to_completion))

    return GoalProgressSnapshot(
        id=f"snapshot_{int(now.timestamp() * 1000)}",
        goal_id=goal.id,
        timestamp=isoformat(now),
        current_amount=goal.current_amount,
        target_amount=goal.target_amount,
        monthly_contribution=goal.monthly_contribution,
        projected_completion=projected_completion,
    )


def add_progress_snapshot_to_goal(goal: Goal, now: Optional[datetime] = None) -> Goal:
    """
    Return the goal with a fresh snapshot appended, or the goal unchanged when
    nothing material moved since the last snapshot.
    """
    snapshot = capture_goal_progress_snapshot(goal, now)
    history = goal.progress_history
    last = history[-1] if history else None

    should_add = (
        last is None
        or abs(last.current_amount - snapshot.current_amount) > SNAPSHOT_AMOUNT_DELTA
        or abs(last.monthly_contribution - snapshot.monthly_contribution) > SNAPSHOT_CONTRIBUTION_DELTA
    )
    if not should_add:
        return goal

    return Goal.from_dict({**goal.to_dict(), "progress_history": [s.to_dict() for s in history] + [snapshot.to_dict()]})


# ─────────────────────────────────────────────────────────────────────
# Health score
# ─────────────────────────────────────────────────────────────────────

def calculate_portfolio_health(
    risk_profile: RiskProfile,
    portfolio: Portfolio,
    drift: float,
    goals: List[Goal],
    actions: List[NextBestAction],
    now: Optional[datetime] = None,
) -> PortfolioHealth:
    """Single 0-100 health score plus goal status counts."""
    score = 100.0
    if is_risk_profile_stale(risk_profile, now):
        score -= 20
    if drift > DRIFT_REBALANCE_THRESHOLD:
        score -= min(30.0, drift * 2)
    if cash_percentage(portfolio) > CASH_INVEST_THRESHOLD:
        score -= 10
    high = sum(1 for a in actions if a.priority == "HIGH")
    medium = sum(1 for a in actions if a.priority == "MEDIUM")
    if high > 0:
        score -= 15

    on_track = critical = 0
    for g in goals:
        gap = calculate_goal_gap(g)
        shortfall = max(0.0, calculate_required_monthly_contribution(g, now) - g.monthly_contribution)
        if shortfall < CONTRIBUTION_SHORTFALL_THRESHOLD:
            on_track += 1
        elif gap > GOAL_GAP_HIGH_PRIORITY or shortfall > 1000:
            critical += 1

    return PortfolioHealth(
        score=max(0.0, score),
        goals_on_track=on_track,
        goals_needing_attention=len(goals) - on_track - critical,
        goals_critical=critical,
        high_priority_actions=high,
        medium_priority_actions=medium,
    )
