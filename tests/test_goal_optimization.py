"""
Unit tests for goal optimisation, ranking, dependencies, sharing and trend analytics.
"""

from datetime import timedelta

import pytest

from wealthdesk.config.seed_data import SEED_GOALS
from wealthdesk.engine.goal_optimization import (
    add_goal_dependency, analyze_goal_dependencies, analyze_goal_trend, auto_rank_goals,
    blocked_count, create_goal_notification, generate_goal_optimizations, goal_milestone,
    mark_feedback_read, milestone_crossed, project_goal_progress, record_goal_feedback,
    remove_goal_dependency, share_goal, unread_feedback_count,
)
from wealthdesk.engine.timeutils import isoformat
from wealthdesk.models.errors import ValidationError
from wealthdesk.models.types import Goal, GoalProgressSnapshot


def _goal(now, target, current, days, monthly, goal_type="OTHER", goal_id="g-1"):
    return Goal(
        id=goal_id, client_id="cli-x", type=goal_type, name=f"Goal {goal_id}",
        target_amount=target, current_amount=current,
        target_date=isoformat(now + timedelta(days=days)),
        monthly_contribution=monthly, created_at="2024-01-01", updated_at="2024-01-01",
    )


def _seed_goal(goal_id):
    goal = next(g for g in SEED_GOALS if g.id == goal_id)
    return Goal.from_dict(goal.to_dict())


class TestOptimizations:

    def test_contribution_increase(self, now):
        goal = _goal(now, 130_000, 10_000, 1200, 2000)
        [opt] = generate_goal_optimizations(goal, client_age=45, risk_score=5, now=now)

        assert opt.type == "CONTRIBUTION_INCREASE"
        assert opt.suggested_monthly == 3000
        assert opt.potential_gain == pytest.approx(1000 * 40)
        assert opt.priority == "HIGH"
        assert "40 months remaining" in opt.reasoning

    @pytest.mark.parametrize("monthly,priority", [(400, "HIGH"), (700, "MEDIUM"), (900, "LOW")])
    def test_contribution_priority_by_shortfall(self, now, monthly, priority):
        goal = _goal(now, 10_000, 0, 300, monthly)
        opts = [o for o in generate_goal_optimizations(goal, 40, 5, now) if o.type == "CONTRIBUTION_INCREASE"]
        assert opts[0].priority == priority

    def test_timeline_extension(self, now):
        goal = _goal(now, 100_000, 10_000, 300, 1000)
        opts = {o.type: o for o in generate_goal_optimizations(goal, 40, 5, now)}

        assert set(opts) == {"CONTRIBUTION_INCREASE", "TIMELINE_ADJUSTMENT"}
        assert opts["TIMELINE_ADJUSTMENT"].suggested_monthly == 4091
        assert opts["TIMELINE_ADJUSTMENT"].priority == "MEDIUM"

    def test_risk_alignment_for_growth_retirement(self, now):
        goal = _goal(now, 1_000_000, 200_000, 3600, 10_000, goal_type="RETIREMENT")
        [opt] = generate_goal_optimizations(goal, 50, 7, now)

        assert opt.type == "RISK_ALIGNMENT"
        assert opt.potential_gain == pytest.approx(800_000 * 0.07)
        assert "50 years old" in opt.reasoning

    def test_no_risk_alignment_for_cautious_client(self, now):
        goal = _goal(now, 1_000_000, 200_000, 3600, 10_000, goal_type="RETIREMENT")
        assert generate_goal_optimizations(goal, 50, 5, now) == []

    def test_early_completion(self, now):
        goal = _goal(now, 100_000, 80_000, 900, 1000)
        [opt] = generate_goal_optimizations(goal, 40, 5, now)

        assert opt.title == "Early Goal Completion"
        assert opt.suggested_monthly == 1250
        assert opt.potential_gain == pytest.approx(3000)
        assert opt.priority == "LOW"


class TestRanking:

    def test_weighted_ranking(self, now):
        near = _goal(now, 20_000, 5_000, 180, 0, goal_id="near")
        retirement = _goal(now, 1_000_000, 500_000, 7200, 0, goal_type="RETIREMENT", goal_id="ret")
        education = _goal(now, 100_000, 80_000, 1800, 0, goal_type="EDUCATION", goal_id="edu")

        ranking = auto_rank_goals([education, retirement, near], now)

        assert list(ranking) == ["near", "ret", "edu"]
        assert [p.rank for p in ranking.values()] == [1, 2, 3]
        assert all(p.auto_ranked for p in ranking.values())
        assert ranking["near"].reasoning == "High priority due to imminent 7/14/2025 deadline (6 months)."
        assert ranking["ret"].reasoning == "Long-term retirement planning prioritized for financial security."
        assert ranking["edu"].reasoning == "Strong progress (80%) - maintain momentum to completion."

    def test_empty(self, now):
        assert auto_rank_goals([], now) == {}


class TestNotifications:

    def test_create(self, now):
        n = create_goal_notification("goal-1", "cli-1", "MILESTONE", "50%!", "Halfway", now=now)
        assert n.goal_id == "goal-1" and not n.read
        assert n.created_at == isoformat(now)

    def test_unknown_type(self, now):
        with pytest.raises(ValidationError):
            create_goal_notification("goal-1", "cli-1", "BIRTHDAY", "x", "y", now=now)


class TestDependencies:

    @pytest.fixture
    def goals(self, now):
        done = _goal(now, 10_000, 10_000, 900, 0, goal_id="done")
        open_ = _goal(now, 10_000, 2_000, 900, 0, goal_id="open")
        main = _goal(now, 50_000, 5_000, 900, 0, goal_id="main")
        return done, open_, main

    def test_self_dependency_rejected(self, goals):
        _, open_, _ = goals
        with pytest.raises(ValidationError):
            add_goal_dependency(open_, open_)

    def test_duplicate_and_unknown_type_rejected(self, goals):
        done, _, main = goals
        add_goal_dependency(main, done, "ENABLES")
        with pytest.raises(ValidationError):
            add_goal_dependency(main, done, "RELATED")
        with pytest.raises(ValidationError):
            add_goal_dependency(main, done, "REQUIRES")

    def test_blocked_and_unlocked(self, goals):
        done, open_, main = goals
        add_goal_dependency(main, open_, "BLOCKS")
        add_goal_dependency(main, done, "ENABLES")

        insights = analyze_goal_dependencies(main, list(goals))

        assert [i.type for i in insights] == ["warning", "success"]
        assert 'Complete "Goal open" first' in insights[0].text
        assert '"Goal done" is complete' in insights[1].text
        assert blocked_count(main, list(goals)) == 1
        assert main.dependencies[0].description.startswith("Must complete Goal open first")

    def test_related_plan(self, goals):
        done, open_, main = goals
        add_goal_dependency(main, open_, "RELATED")
        add_goal_dependency(main, done, "RELATED")

        [insight] = analyze_goal_dependencies(main, list(goals))

        assert insight.type == "info"
        assert "2 related goals" in insight.text

    def test_remove(self, goals):
        done, _, main = goals
        dep = add_goal_dependency(main, done, "ENABLES").dependencies[0]
        assert remove_goal_dependency(main, dep.id).dependencies == []


class TestSharing:

    def test_requires_valid_email(self, now):
        goal = _goal(now, 10_000, 0, 900, 0)
        with pytest.raises(ValidationError):
            share_goal(goal, "Ann", "ann.example.com", now)
        with pytest.raises(ValidationError):
            share_goal(goal, "", "ann@example.com", now)

    def test_feedback_lifecycle(self, now):
        goal = _goal(now, 10_000, 0, 900, 0)
        share = share_goal(goal, "Ann", "ann@example.com", now)
        assert share.sentiment == "NEUTRAL"
        assert unread_feedback_count(goal) == 0

        record_goal_feedback(goal, share.id, "Go for it!", "SUPPORTIVE")
        assert unread_feedback_count(goal) == 1

        read = mark_feedback_read(goal, share.id, now)
        assert read.read_at == isoformat(now)
        assert unread_feedback_count(goal) == 0

    def test_unknown_share(self, now):
        with pytest.raises(ValidationError):
            mark_feedback_read(_goal(now, 10_000, 0, 900, 0), "feedback_nope", now)


class TestTrendAnalytics:

    def test_trend_from_seed_history(self, now):
        trend = analyze_goal_trend(_seed_goal("goal-1"), now)

        # +20k, +25k, +25k over 2-month gaps
        assert trend.avg_monthly_growth == pytest.approx(35_000 / 3)
        assert trend.recent_growth_rate == pytest.approx(12_500)
        assert trend.total_growth == pytest.approx(70_000)
        assert trend.is_accelerating
        assert [i.type for i in trend.insights] == ["positive", "warning", "neutral"]
        assert "$7,879/mo" in trend.insights[1].text

    def test_needs_two_snapshots(self, now):
        goal = _goal(now, 10_000, 0, 900, 0)
        assert analyze_goal_trend(goal, now) is None
        assert project_goal_progress(goal, now) == []

    def test_projection_capped_at_24_months(self, now):
        points = project_goal_progress(_seed_goal("goal-1"), now)

        assert len(points) == 24
        assert points[0]["date"].startswith("2025-02-15")
        assert points[0]["projected"] == pytest.approx(850_000 + 35_000 / 3)

    def test_projection_capped_at_target(self, now):
        goal = _goal(now, 100_000, 99_000, 900, 0)
        goal.progress_history = [
            GoalProgressSnapshot("s1", "g-1", "2024-11-01", 90_000, 100_000, 0, ""),
            GoalProgressSnapshot("s2", "g-1", "2024-12-01", 99_000, 100_000, 0, ""),
        ]
        points = project_goal_progress(goal, now)
        assert max(p["projected"] for p in points) == 100_000
        assert points[-1]["projected"] == 100_000

    @pytest.mark.parametrize("current,milestone", [(10, None), (30, 25), (75, 75), (100, 100)])
    def test_milestone(self, now, current, milestone):
        assert goal_milestone(_goal(now, 100, current, 900, 0)) == milestone

    def test_milestone_crossed(self, now):
        before = _goal(now, 100, 60, 900, 0)
        after = _goal(now, 100, 80, 900, 0)
        assert milestone_crossed(before, after) == 75
        assert milestone_crossed(after, after) is None
