"""
WealthDesk — Goal Optimisation Layer

Turns a goal's funding position into concrete suggestions, ranks a client's
goals against each other, and analyses the relationships, sharing and
progress history attached to a goal.

All thresholds are simple comparisons; the numbers in each suggestion are
computed here so any narrative built on top only has to restate them.
"""

import logging
import math
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Dict, List, Optional

import numpy as np
import pandas as pd

from wealthdesk.config.settings import DAYS_PER_MONTH, GOAL_TYPE_SCORES, MILESTONES, RANK_WEIGHTS
from wealthdesk.engine.business_logic import format_amount, goal_progress
from wealthdesk.engine.timeutils import (
    add_months, calendar_months_between, days_between, display_date, isoformat, utcnow,
)
from wealthdesk.models.errors import ValidationError
from wealthdesk.models.types import (
    Goal, GoalDependency, GoalFeedback, GoalNotification, GoalOptimization, GoalPriority,
)

logger = logging.getLogger(__name__)

RELATIONSHIP_TYPES = ("BLOCKS", "ENABLES", "RELATED")

NOTIFICATION_TYPES = ("MILESTONE", "CONTRIBUTION", "SHARED_FEEDBACK", "OPTIMIZATION", "PRIORITY_CHANGE")


def _whole_months_remaining(goal: Goal, now: datetime) -> int:
    """Whole 30-day months until the target date, at least 1."""
    return max(1, math.floor(days_between(now, goal.target_date) / DAYS_PER_MONTH))


def _stamp_id(prefix: str, now: datetime) -> str:
    return f"{prefix}-{int(now.timestamp() * 1000)}"


# ─────────────────────────────────────────────────────────────────────
# Optimisation suggestions
# ─────────────────────────────────────────────────────────────────────

def generate_goal_optimizations(
    goal: Goal,
    client_age: int,
    risk_score: int,
    now: Optional[datetime] = None,
) -> List[GoalOptimization]:
    """
    Up to four suggestions for one goal:
        - contribution increase when below the required monthly amount
        - timeline extension when badly behind with under a year left
        - growth allocation for under-funded retirement goals of risk-tolerant clients
        - early completion when well ahead with over two years left
    """
    now = utcnow(now)
    created_at = isoformat(now)
    stamp = _stamp_id("opt", now)

    gap = goal.target_amount - goal.current_amount
    months = _whole_months_remaining(goal, now)
    required = gap / months
    progress = goal_progress(goal)

    optimizations: List[GoalOptimization] = []

    if goal.monthly_contribution < required:
        shortfall = required - goal.monthly_contribution
        optimizations.append(GoalOptimization(
            id=f"{stamp}-1",
            goal_id=goal.id,
            type="CONTRIBUTION_INCREASE",
            title="Increase Monthly Contribution",
            description=(
                f"You're currently contributing ${format_amount(goal.monthly_contribution)}/month, "
                f"but need ${math.ceil(required):,}/month to reach your target."
            ),
            current_monthly=goal.monthly_contribution,
            suggested_monthly=math.ceil(required),
            potential_gain=shortfall * months,
            reasoning=(
                f"Based on {months} months remaining to {display_date(goal.target_date)}, "
                f"increasing your contribution by ${math.ceil(shortfall):,}/month will keep you on track "
                f"to meet your ${format_amount(goal.target_amount)} goal."
            ),
            priority="HIGH" if shortfall > 500 else "MEDIUM" if shortfall > 200 else "LOW",
            created_at=created_at,
        ))

    if progress < 25 and months < 12 and goal.monthly_contribution < required * 0.8:
        extended = math.ceil(gap / (months + 12))
        optimizations.append(GoalOptimization(
            id=f"{stamp}-2",
            goal_id=goal.id,
            type="TIMELINE_ADJUSTMENT",
            title="Extend Goal Timeline",
            description="Consider extending your target date by 12-18 months to make monthly contributions more manageable.",
            current_monthly=goal.monthly_contribution,
            suggested_monthly=extended,
            potential_gain=0,
            reasoning=(
                f"With less than a year remaining and only {progress:.0f}% progress, extending the timeline "
                f"could reduce required monthly contributions from ${math.ceil(required):,} to ${extended:,}/month."
            ),
            priority="MEDIUM",
            created_at=created_at,
        ))

    if risk_score >= 6 and goal.type == "RETIREMENT" and progress < 50:
        optimizations.append(GoalOptimization(
            id=f"{stamp}-3",
            goal_id=goal.id,
            type="RISK_ALIGNMENT",
            title="Leverage Growth-Oriented Allocation",
            description=(
                f"Your risk profile ({risk_score}/10) suggests you can tolerate higher growth "
                f"investments for this long-term goal."
            ),
            current_monthly=goal.monthly_contribution,
            suggested_monthly=goal.monthly_contribution,
            potential_gain=gap * 0.07,
            reasoning=(
                f"With a moderate-to-high risk tolerance and {client_age} years old, allocating this "
                f"retirement goal to more growth-focused investments could potentially accelerate "
                f"progress through market returns."
            ),
            priority="MEDIUM",
            created_at=created_at,
        ))

    if progress >= 75 and months > 24:
        optimizations.append(GoalOptimization(
            id=f"{stamp}-4",
            goal_id=goal.id,
            type="CONTRIBUTION_INCREASE",
            title="Early Goal Completion",
            description=(
                "You're ahead of schedule! Consider increasing contributions to finish early "
                "and redirect funds to other goals."
            ),
            current_monthly=goal.monthly_contribution,
            suggested_monthly=math.ceil(goal.monthly_contribution * 1.25),
            potential_gain=goal.monthly_contribution * 0.25 * 12,
            reasoning=(
                f"At {progress:.0f}% complete with {months} months remaining, a 25% increase could help "
                f"you reach this goal 8-12 months early, freeing up funds for other priorities."
            ),
            priority="LOW",
            created_at=created_at,
        ))

    return optimizations


# ─────────────────────────────────────────────────────────────────────
# Ranking
# ─────────────────────────────────────────────────────────────────────

def score_goals(goals: List[Goal], now: Optional[datetime] = None) -> pd.DataFrame:
    """Per-goal urgency / progress / type / gap scores and the weighted total."""
    now = utcnow(now)
    rows = []
    for g in goals:
        months = _whole_months_remaining(g, now)
        gap = g.target_amount - g.current_amount
        rows.append({
            "goal_id": g.id,
            "months_remaining": months,
            "progress": goal_progress(g),
            "urgency_score": 1000 / months,
            "progress_score": 100 - goal_progress(g),
            "type_score": GOAL_TYPE_SCORES.get(g.type, GOAL_TYPE_SCORES["OTHER"]),
            "gap_score": gap / 1000,
        })
    df = pd.DataFrame(rows, columns=[
        "goal_id", "months_remaining", "progress",
        "urgency_score", "progress_score", "type_score", "gap_score",
    ])
    df["total_score"] = (
        df["urgency_score"] * RANK_WEIGHTS["urgency"]
        + df["progress_score"] * RANK_WEIGHTS["progress"]
        + df["type_score"] * RANK_WEIGHTS["type"]
        + df["gap_score"] * RANK_WEIGHTS["gap"]
    )
    # stable sort keeps input order for ties
    return df.sort_values("total_score", ascending=False, kind="mergesort").reset_index(drop=True)


def _rank_reasoning(goal: Goal, months: int, progress: float) -> str:
    if months < 12:
        return f"High priority due to imminent {display_date(goal.target_date)} deadline ({months} months)."
    if progress < 25:
        return f"Needs attention - only {progress:.0f}% complete with limited progress."
    if goal.type == "RETIREMENT":
        return "Long-term retirement planning prioritized for financial security."
    if progress >= 75:
        return f"Strong progress ({progress:.0f}%) - maintain momentum to completion."
    return "Balanced priority based on timeline, progress, and goal type."


def auto_rank_goals(goals: List[Goal], now: Optional[datetime] = None) -> Dict[str, GoalPriority]:
    """Rank goals 1..n by weighted score; returned in rank order."""
    now = utcnow(now)
    by_id = {g.id: g for g in goals}
    scored = score_goals(goals, now)

    ranked: Dict[str, GoalPriority] = {}
    for rank, row in enumerate(scored.itertuples(index=False), start=1):
        goal = by_id[row.goal_id]
        ranked[goal.id] = GoalPriority(
            goal_id=goal.id,
            rank=rank,
            auto_ranked=True,
            reasoning=_rank_reasoning(goal, int(row.months_remaining), float(row.progress)),
            last_updated=isoformat(now),
        )
    logger.info("Ranked %d goals: %s", len(ranked), ", ".join(ranked))
    return ranked


def create_goal_notification(
    goal_id: str,
    user_id: str,
    notification_type: str,
    title: str,
    message: str,
    action_url: Optional[str] = None,
    now: Optional[datetime] = None,
) -> GoalNotification:
    if notification_type not in NOTIFICATION_TYPES:
        raise ValidationError(f"Unknown notification type '{notification_type}'")
    now = utcnow(now)
    return GoalNotification(
        id=f"{_stamp_id('notif', now)}-{goal_id}",
        goal_id=goal_id,
        user_id=user_id,
        type=notification_type,
        title=title,
        message=message,
        read=False,
        action_url=action_url,
        created_at=isoformat(now),
    )


# ─────────────────────────────────────────────────────────────────────
# Dependencies
# ─────────────────────────────────────────────────────────────────────

@dataclass
class GoalInsight:
    type: str                      # warning / success / info / positive / neutral
    text: str


def _default_dependency_description(relationship: str, other_name: str) -> str:
    return {
        "BLOCKS": f"Must complete {other_name} first to maintain financial stability",
        "ENABLES": f"Success with {other_name} will accelerate progress on this goal",
        "RELATED": f"Coordinating with {other_name} for better financial planning",
    }.get(relationship, "")


def _is_complete(goal: Goal) -> bool:
    return goal_progress(goal) >= 100


def add_goal_dependency(
    goal: Goal,
    depends_on: Goal,
    relationship_type: str = "RELATED",
    description: str = "",
    now: Optional[datetime] = None,
) -> Goal:
    if relationship_type not in RELATIONSHIP_TYPES:
        raise ValidationError(f"Unknown relationship type '{relationship_type}'")
    if depends_on.id == goal.id:
        raise ValidationError("A goal cannot depend on itself")
    if any(d.depends_on_goal_id == depends_on.id for d in goal.dependencies):
        raise ValidationError(f"Goal '{goal.id}' already depends on '{depends_on.id}'")

    dependency = GoalDependency(
        id=f"{_stamp_id('dep', utcnow(now))}-{depends_on.id}",
        goal_id=goal.id,
        depends_on_goal_id=depends_on.id,
        relationship_type=relationship_type,
        description=description or _default_dependency_description(relationship_type, depends_on.name),
    )
    goal.dependencies = goal.dependencies + [dependency]
    logger.info("Goal %s now %s %s", goal.id, relationship_type, depends_on.id)
    return goal


def remove_goal_dependency(goal: Goal, dependency_id: str) -> Goal:
    goal.dependencies = [d for d in goal.dependencies if d.id != dependency_id]
    return goal


def analyze_goal_dependencies(goal: Goal, all_goals: List[Goal]) -> List[GoalInsight]:
    """Blocked / unlocked / part-of-a-plan observations for one goal."""
    by_id = {g.id: g for g in all_goals if g.id != goal.id}
    insights: List[GoalInsight] = []

    blocking = [
        by_id[d.depends_on_goal_id] for d in goal.dependencies
        if d.relationship_type == "BLOCKS" and d.depends_on_goal_id in by_id
        and not _is_complete(by_id[d.depends_on_goal_id])
    ]
    if blocking:
        insights.append(GoalInsight(
            "warning", f'Blocked: Complete "{blocking[0].name}" first to maintain financial stability',
        ))

    enabling = [
        by_id[d.depends_on_goal_id] for d in goal.dependencies
        if d.relationship_type == "ENABLES" and d.depends_on_goal_id in by_id
        and _is_complete(by_id[d.depends_on_goal_id])
    ]
    if enabling:
        insights.append(GoalInsight(
            "success", f'Unlocked: "{enabling[0].name}" is complete! You can now accelerate this goal',
        ))

    related = [d for d in goal.dependencies if d.relationship_type == "RELATED"]
    if len(related) >= 2:
        insights.append(GoalInsight(
            "info", f"Part of a larger financial plan with {len(related)} related goals",
        ))

    return insights


def blocked_count(goal: Goal, all_goals: List[Goal]) -> int:
    by_id = {g.id: g for g in all_goals}
    return sum(
        1 for d in goal.dependencies
        if d.relationship_type == "BLOCKS" and d.depends_on_goal_id in by_id
        and not _is_complete(by_id[d.depends_on_goal_id])
    )


# ─────────────────────────────────────────────────────────────────────
# Sharing
# ─────────────────────────────────────────────────────────────────────

def share_goal(goal: Goal, name: str, email: str, now: Optional[datetime] = None) -> GoalFeedback:
    if not name or not email:
        raise ValidationError("Please provide both name and email")
    if "@" not in email:
        raise ValidationError("Please provide a valid email address")

    now = utcnow(now)
    feedback = GoalFeedback(
        id=f"feedback_{int(now.timestamp() * 1000)}_{len(goal.shared_with)}",
        goal_id=goal.id,
        shared_with_email=email,
        shared_with_name=name,
        created_at=isoformat(now),
        sentiment="NEUTRAL",
    )
    goal.shared_with = goal.shared_with + [feedback]
    return feedback


def _find_feedback(goal: Goal, feedback_id: str) -> GoalFeedback:
    for f in goal.shared_with:
        if f.id == feedback_id:
            return f
    raise ValidationError(f"Goal '{goal.id}' has no share '{feedback_id}'")


def record_goal_feedback(
    goal: Goal,
    feedback_id: str,
    message: str,
    sentiment: str = "SUPPORTIVE",
) -> GoalFeedback:
    feedback = _find_feedback(goal, feedback_id)
    feedback.message = message
    feedback.sentiment = sentiment
    return feedback


def mark_feedback_read(goal: Goal, feedback_id: str, now: Optional[datetime] = None) -> GoalFeedback:
    feedback = _find_feedback(goal, feedback_id)
    if not feedback.read_at:
        feedback.read_at = isoformat(utcnow(now))
    return feedback


def unread_feedback_count(goal: Goal) -> int:
    return sum(1 for f in goal.shared_with if f.message and not f.read_at)


# ─────────────────────────────────────────────────────────────────────
# Progress history analytics
# ─────────────────────────────────────────────────────────────────────

@dataclass
class GoalTrend:
    avg_monthly_growth: float
    total_growth: float
    is_accelerating: bool
    recent_growth_rate: float
    insights: List[GoalInsight] = field(default_factory=list)

    def to_dict(self) -> dict:
        return asdict(self)


def _history_frame(goal: Goal) -> pd.DataFrame:
    df = pd.DataFrame(
        [{"timestamp": s.timestamp, "current": s.current_amount} for s in goal.progress_history],
        columns=["timestamp", "current"],
    )
    return df.sort_values("timestamp", kind="mergesort").reset_index(drop=True)


def analyze_goal_trend(goal: Goal, now: Optional[datetime] = None) -> Optional[GoalTrend]:
    """
    Average monthly growth over the last six snapshots. None with fewer than
    two snapshots.
    """
    history = _history_frame(goal)
    if len(history) < 2:
        return None
    now = utcnow(now)

    recent = history.tail(6).reset_index(drop=True)
    rates = []
    for prev, point in zip(recent.itertuples(), recent.iloc[1:].itertuples()):
        months = calendar_months_between(prev.timestamp, point.timestamp)
        rates.append(0.0 if months == 0 else (point.current - prev.current) / months)

    avg = float(np.mean(rates))
    trend = GoalTrend(
        avg_monthly_growth=avg,
        total_growth=float(recent["current"].iloc[-1] - recent["current"].iloc[0]),
        is_accelerating=rates[-1] > avg,
        recent_growth_rate=float(rates[-1]),
    )

    progress = goal_progress(goal)
    months_left = calendar_months_between(now, goal.target_date)
    required = (goal.target_amount - goal.current_amount) / months_left if months_left > 0 else 0.0

    if trend.is_accelerating:
        trend.insights.append(GoalInsight(
            "positive",
            f"Your savings rate is accelerating! Recent growth is "
            f"${abs(trend.recent_growth_rate - avg):,.0f}/mo above average.",
        ))
    if avg > required:
        ahead = round((avg - required) / required * 100) if required else 100
        trend.insights.append(GoalInsight(
            "positive",
            f"You're ahead of schedule! Current pace is {ahead}% faster than needed to reach your goal on time.",
        ))
    elif required > avg:
        trend.insights.append(GoalInsight(
            "warning",
            f"Consider increasing contributions by ${required - avg:,.0f}/mo to stay on track.",
        ))

    if 25 <= progress < 50:
        trend.insights.append(GoalInsight(
            "neutral", "Quarter way there! You've built strong momentum in the first 25% of your goal.",
        ))
    elif 50 <= progress < 75:
        trend.insights.append(GoalInsight(
            "positive", "Halfway milestone reached! The finish line is coming into view.",
        ))
    elif progress >= 75:
        trend.insights.append(GoalInsight(
            "positive", "Final stretch! You're in the last quarter of your journey to this goal.",
        ))

    return trend


def project_goal_progress(goal: Goal, now: Optional[datetime] = None, horizon: int = 24) -> List[dict]:
    """
    Month-by-month projection at the average historical growth rate, capped at
    the target amount and at `horizon` months (or the target date if sooner).
    """
    now = utcnow(now)
    trend = analyze_goal_trend(goal, now)
    history = _history_frame(goal)
    if trend is None or history.empty:
        return []

    months = min(calendar_months_between(now, goal.target_date), horizon)
    amount = float(history["current"].iloc[-1])
    points = []
    for i in range(1, months + 1):
        amount += trend.avg_monthly_growth
        points.append({
            "date": isoformat(add_months(now, i)),
            "projected": min(amount, goal.target_amount),
            "target": goal.target_amount,
        })
    return points


def goal_milestone(goal: Goal) -> Optional[int]:
    """Highest milestone percentage reached, or None below the first one."""
    progress = goal_progress(goal)
    reached = [m for m in MILESTONES if progress >= m]
    return reached[-1] if reached else None


def milestone_crossed(before: Goal, after: Goal) -> Optional[int]:
    """Milestone newly reached by an update, if any."""
    old, new = goal_milestone(before), goal_milestone(after)
    if new is not None and (old is None or new > old):
        return new
    return None
