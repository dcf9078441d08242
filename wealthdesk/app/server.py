"""
WealthDesk — FastAPI Backend

Serves portfolio analytics, goals, simulated orders and copilot answers to
the advisor/client UI. The data store is built once at startup; every
request reads and writes it in-process.
"""

import logging
from dataclasses import dataclass
from typing import Callable, List, Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from wealthdesk.config.settings import DEFAULT_CURRENCY, GOAL_TYPES, STORE_PATH
from wealthdesk.data.currency import CURRENCY_DATABASE, convert_currency, get_exchange_rates
from wealthdesk.data.goal_templates import (
    get_most_popular_templates, get_templates_by_type, goal_from_template,
)
from wealthdesk.data.store import DataStore, KVStore
from wealthdesk.engine.business_logic import (
    add_progress_snapshot_to_goal, calculate_drift, calculate_goal_gap,
    calculate_portfolio_allocations, calculate_portfolio_health,
    calculate_required_monthly_contribution, cash_percentage, check_suitability,
    generate_next_best_actions, get_recommended_model, goal_progress, is_risk_profile_stale,
)
from wealthdesk.engine.goal_optimization import (
    add_goal_dependency, analyze_goal_dependencies, analyze_goal_trend, auto_rank_goals,
    blocked_count, create_goal_notification, generate_goal_optimizations, goal_milestone,
    mark_feedback_read, milestone_crossed, project_goal_progress, record_goal_feedback,
    remove_goal_dependency, share_goal, unread_feedback_count,
)
from wealthdesk.engine.orders import cancel_order, create_order, execute_order, orders_for_client
from wealthdesk.engine.timeutils import isoformat, parse_date, utcnow
from wealthdesk.llm.copilot import (
    PORTFOLIO_EXPLANATION_QUESTION, anthropic_llm, client_age, create_ai_interaction_record,
    generate_advisor_brief, generate_order_note, generate_portfolio_explanation, holding_details,
)
from wealthdesk.llm.insights import generate_personalized_insights
from wealthdesk.models.errors import NotFoundError, OrderRejected, ValidationError
from wealthdesk.models.types import (
    ClientProfile, Goal, Holding, Instrument, ModelPortfolio, Portfolio, RiskProfile, User,
)

logging.basicConfig(level=logging.INFO, format="%(asctime)s [%(levelname)s] %(message)s")
logger = logging.getLogger(__name__)

app = FastAPI(title="WealthDesk", version="1.0.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ─────────────────────────────────────────────────────────────────────
# Global State (built once at startup)
# ─────────────────────────────────────────────────────────────────────

STATE = {
    "store": None,
    "llm": None,
    "ready": False,
}


def init_state(store: DataStore, llm: Optional[Callable[[str], str]] = None) -> None:
    STATE["store"] = store
    STATE["llm"] = llm
    STATE["ready"] = True


@app.on_event("startup")
async def startup_event():
    if STATE["ready"]:
        return
    logger.info("=" * 60)
    logger.info("WealthDesk starting up...")
    try:
        store = DataStore(KVStore(STORE_PATH or None))
        llm = anthropic_llm()
        init_state(store, llm)
        logger.info("WealthDesk ready! %d clients, LLM %s",
                    len(store.users.filter(lambda u: u.role == "CLIENT")),
                    "online" if llm else "offline")
    except Exception as e:
        logger.error("Startup failed: %s", e, exc_info=True)
        STATE["ready"] = False
    logger.info("=" * 60)


def _store() -> DataStore:
    if not STATE["ready"]:
        raise HTTPException(503, "System still loading")
    return STATE["store"]


# ─────────────────────────────────────────────────────────────────────
# Domain errors -> HTTP
# ─────────────────────────────────────────────────────────────────────

@app.exception_handler(NotFoundError)
async def not_found_handler(request: Request, exc: NotFoundError):
    return JSONResponse(status_code=404, content={"detail": str(exc)})


@app.exception_handler(OrderRejected)
async def order_rejected_handler(request: Request, exc: OrderRejected):
    return JSONResponse(status_code=422, content={"detail": exc.reason, "check": exc.check})


@app.exception_handler(ValidationError)
async def validation_error_handler(request: Request, exc: ValidationError):
    return JSONResponse(status_code=400, content={"detail": str(exc)})


# ─────────────────────────────────────────────────────────────────────
# Client context
# ─────────────────────────────────────────────────────────────────────

@dataclass
class ClientContext:
    client: User
    profile: ClientProfile
    risk_profile: RiskProfile
    portfolio: Portfolio
    holdings: List[Holding]
    goals: List[Goal]
    instruments: List[Instrument]
    model_portfolios: List[ModelPortfolio]


def _context(store: DataStore, client_id: str) -> ClientContext:
    client = store.get_client(client_id)
    portfolio = store.get_portfolio_for_client(client_id)
    return ClientContext(
        client=client,
        profile=store.get_client_profile(client_id),
        risk_profile=store.get_risk_profile(client_id),
        portfolio=portfolio,
        holdings=store.holdings_for_portfolio(portfolio.id),
        goals=store.goals_for_client(client_id),
        instruments=store.instruments.all(),
        model_portfolios=store.model_portfolios.all(),
    )


def _actions(store: DataStore, ctx: ClientContext):
    actions = generate_next_best_actions(
        ctx.client.id, ctx.portfolio, ctx.holdings, ctx.instruments,
        ctx.risk_profile, ctx.goals, ctx.model_portfolios,
    )
    store.save_next_best_actions(ctx.client.id, actions)
    return actions


def _client_goal(store: DataStore, client_id: str, goal_id: str) -> Goal:
    store.get_client(client_id)
    goal = store.goals.get(goal_id)
    if goal.client_id != client_id:
        raise NotFoundError("Goal", goal_id)
    return goal


def _check_goal_fields(fields: dict) -> None:
    """Reject goal values the planning maths cannot work with, before anything is saved."""
    if fields.get("target_amount") is not None and fields["target_amount"] <= 0:
        raise ValidationError("Target amount must be positive")
    for key in ("current_amount", "monthly_contribution"):
        if fields.get(key) is not None and fields[key] < 0:
            raise ValidationError(f"{key.replace('_', ' ').capitalize()} cannot be negative")
    if "target_date" in fields:
        value = fields["target_date"]
        try:
            if not str(value).strip():
                raise ValueError("empty date")
            parse_date(value)
        except (ValueError, OverflowError):
            raise ValidationError(f"Invalid target date '{value}'")


def _goal_summary(goal: Goal, all_goals: List[Goal]) -> dict:
    trend = analyze_goal_trend(goal)
    return {
        **goal.to_dict(),
        "progress": goal_progress(goal),
        "gap": calculate_goal_gap(goal),
        "required_monthly": calculate_required_monthly_contribution(goal),
        "milestone": goal_milestone(goal),
        "trend": trend.to_dict() if trend else None,
        "dependency_insights": [vars(i) for i in analyze_goal_dependencies(goal, all_goals)],
        "blocked_by": blocked_count(goal, all_goals),
        "unread_feedback": unread_feedback_count(goal),
    }


# ─────────────────────────────────────────────────────────────────────
# Request models
# ─────────────────────────────────────────────────────────────────────

class GoalCreateRequest(BaseModel):
    template_id: Optional[str] = None
    type: str = "OTHER"
    name: Optional[str] = None
    target_amount: Optional[float] = None
    current_amount: float = 0.0
    target_date: Optional[str] = None
    years: Optional[int] = None
    monthly_contribution: float = 0.0


class GoalUpdateRequest(BaseModel):
    actor_id: Optional[str] = None
    name: Optional[str] = None
    target_amount: Optional[float] = None
    current_amount: Optional[float] = None
    target_date: Optional[str] = None
    monthly_contribution: Optional[float] = None


class DependencyRequest(BaseModel):
    depends_on_goal_id: str
    relationship_type: str = "RELATED"
    description: str = ""


class ShareRequest(BaseModel):
    name: str
    email: str


class FeedbackRequest(BaseModel):
    message: str
    sentiment: str = "SUPPORTIVE"


class OrderRequest(BaseModel):
    actor_id: str
    instrument_id: str
    side: str
    order_type: str = "MARKET"
    quantity: float
    limit_price: Optional[float] = None
    idempotency_key: Optional[str] = None
    with_note: bool = False


class BriefRequest(BaseModel):
    actor_id: str
    client_id: str
    question: str


# ─────────────────────────────────────────────────────────────────────
# API Endpoints
# ─────────────────────────────────────────────────────────────────────

@app.get("/api/health")
def health():
    store = STATE["store"]
    return {
        "status": "ready" if STATE["ready"] else "loading",
        "llm": "online" if STATE["llm"] else "offline",
        "data_version": store.kv.get("data_version") if store else None,
    }


@app.get("/api/dashboard")
def dashboard(advisor_id: Optional[str] = None):
    """Book overview: every client (or one advisor's) with value, drift and open actions."""
    store = _store()
    if advisor_id:
        clients = store.clients_for_advisor(advisor_id)
    else:
        clients = store.users.filter(lambda u: u.role == "CLIENT")

    summaries = []
    for client in clients:
        ctx = _context(store, client.id)
        actions = _actions(store, ctx)
        model = get_recommended_model(ctx.risk_profile.score, ctx.model_portfolios)
        allocations = calculate_portfolio_allocations(ctx.holdings, ctx.instruments, ctx.portfolio)
        summaries.append({
            "client_id": client.id,
            "name": client.name,
            "segment": ctx.profile.segment,
            "total_value": ctx.portfolio.total_value,
            "cash_percentage": cash_percentage(ctx.portfolio),
            "risk_score": ctx.risk_profile.score,
            "risk_category": ctx.risk_profile.category,
            "risk_profile_stale": is_risk_profile_stale(ctx.risk_profile),
            "model": model.name if model else None,
            "drift": calculate_drift(allocations, model) if model else 0.0,
            "n_actions": len(actions),
            "n_high_priority": sum(1 for a in actions if a.priority == "HIGH"),
            "n_goals": len(ctx.goals),
        })

    return {
        "advisor_id": advisor_id,
        "total_aum": sum(s["total_value"] for s in summaries),
        "clients": summaries,
    }


@app.get("/api/clients/{client_id}")
def client_detail(client_id: str):
    store = _store()
    client = store.get_client(client_id)
    profile = store.get_client_profile(client_id)
    risk = store.get_risk_profile(client_id)
    return {
        "client": client.to_dict(),
        "profile": profile.to_dict(),
        "age": client_age(profile),
        "risk_profile": risk.to_dict(),
        "risk_profile_stale": is_risk_profile_stale(risk),
    }


@app.get("/api/clients/{client_id}/portfolio")
def client_portfolio(client_id: str):
    store = _store()
    ctx = _context(store, client_id)
    allocations = calculate_portfolio_allocations(ctx.holdings, ctx.instruments, ctx.portfolio)
    model = get_recommended_model(ctx.risk_profile.score, ctx.model_portfolios)
    drift = calculate_drift(allocations, model) if model else 0.0
    actions = _actions(store, ctx)
    health = calculate_portfolio_health(ctx.risk_profile, ctx.portfolio, drift, ctx.goals, actions)
    return {
        "portfolio": ctx.portfolio.to_dict(),
        "holdings": holding_details(ctx.holdings, ctx.instruments, ctx.portfolio),
        "allocations": [a.to_dict() for a in allocations],
        "model": model.to_dict() if model else None,
        "drift": drift,
        "health": health.to_dict(),
    }


@app.get("/api/clients/{client_id}/actions")
def client_actions(client_id: str):
    store = _store()
    return [a.to_dict() for a in _actions(store, _context(store, client_id))]


# ── Goals ────────────────────────────────────────────────────────────

@app.get("/api/clients/{client_id}/goals")
def client_goals(client_id: str):
    store = _store()
    store.get_client(client_id)
    goals = store.goals_for_client(client_id)
    ordered = sorted(goals, key=lambda g: g.priority.rank if g.priority else len(goals) + 1)
    return [_goal_summary(g, goals) for g in ordered]


@app.post("/api/clients/{client_id}/goals")
def create_goal(client_id: str, req: GoalCreateRequest):
    store = _store()
    store.get_client(client_id)
    # count suffix keeps ids unique within one millisecond
    sequence = len(store.goals.all())
    if req.template_id:
        _check_goal_fields({"monthly_contribution": req.monthly_contribution})
        goal = goal_from_template(
            req.template_id, client_id,
            target_amount=req.target_amount, years=req.years,
            monthly_contribution=req.monthly_contribution,
            current_amount=req.current_amount, name=req.name,
            sequence=sequence,
        )
    else:
        if req.type not in GOAL_TYPES:
            raise ValidationError(f"Unknown goal type '{req.type}'")
        if not req.name or req.target_amount is None or not req.target_date:
            raise ValidationError("Custom goals need a name, target amount and target date")
        _check_goal_fields(req.model_dump(exclude_none=True))
        now = utcnow()
        stamp = isoformat(now)
        goal = Goal(
            id=f"goal-{int(now.timestamp() * 1000)}-{sequence}",
            client_id=client_id,
            type=req.type,
            name=req.name,
            target_amount=req.target_amount,
            current_amount=req.current_amount,
            target_date=req.target_date,
            monthly_contribution=req.monthly_contribution,
            created_at=stamp,
            updated_at=stamp,
        )
    goal = add_progress_snapshot_to_goal(goal)
    store.goals.append(goal)
    store.record_audit_event("GOAL_CREATED", client_id, client_id, {"goal_id": goal.id, "name": goal.name})
    return _goal_summary(goal, store.goals_for_client(client_id))


@app.patch("/api/clients/{client_id}/goals/{goal_id}")
def update_goal(client_id: str, goal_id: str, req: GoalUpdateRequest):
    """Apply edits, snapshot material changes and raise milestone notifications."""
    store = _store()
    before = _client_goal(store, client_id, goal_id)

    changes = req.model_dump(exclude_none=True)
    actor_id = changes.pop("actor_id", client_id)
    _check_goal_fields(changes)
    after = Goal.from_dict({**before.to_dict(), **changes, "updated_at": isoformat(utcnow())})
    after = add_progress_snapshot_to_goal(after)
    store.goals.upsert(after)

    notification = None
    reached = milestone_crossed(before, after)
    if reached is not None:
        notification = create_goal_notification(
            goal_id, client_id, "MILESTONE",
            f"{reached}% milestone reached!",
            f"{after.name} is now {goal_progress(after):.0f}% funded.",
            action_url=f"/goals/{goal_id}",
        )
        store.goal_notifications.append(notification)

    store.record_audit_event("GOAL_UPDATED", actor_id, client_id, {"goal_id": goal_id, "changes": changes})
    return {
        "goal": _goal_summary(after, store.goals_for_client(client_id)),
        "notification": notification.to_dict() if notification else None,
    }


@app.post("/api/clients/{client_id}/goals/{goal_id}/snapshot")
def snapshot_goal(client_id: str, goal_id: str):
    store = _store()
    goal = add_progress_snapshot_to_goal(_client_goal(store, client_id, goal_id))
    store.goals.upsert(goal)
    return {"snapshots": len(goal.progress_history), "latest": goal.progress_history[-1].to_dict()}


@app.get("/api/clients/{client_id}/goals/{goal_id}/optimizations")
def goal_optimizations(client_id: str, goal_id: str):
    store = _store()
    goal = _client_goal(store, client_id, goal_id)
    age = client_age(store.get_client_profile(client_id))
    risk = store.get_risk_profile(client_id)
    return [o.to_dict() for o in generate_goal_optimizations(goal, age, risk.score)]


@app.get("/api/clients/{client_id}/goals/{goal_id}/analytics")
def goal_analytics(client_id: str, goal_id: str):
    store = _store()
    goal = _client_goal(store, client_id, goal_id)
    trend = analyze_goal_trend(goal)
    return {
        "goal_id": goal.id,
        "progress": goal_progress(goal),
        "milestone": goal_milestone(goal),
        "snapshots": [s.to_dict() for s in goal.progress_history],
        "trend": trend.to_dict() if trend else None,
        "projection": project_goal_progress(goal),
    }


@app.post("/api/clients/{client_id}/goals/ranking")
def rank_goals(client_id: str):
    store = _store()
    store.get_client(client_id)
    goals = store.goals_for_client(client_id)
    ranking = auto_rank_goals(goals)
    for goal in goals:
        goal.priority = ranking[goal.id]
        store.goals.upsert(goal)
    return [p.to_dict() for p in ranking.values()]


@app.post("/api/clients/{client_id}/goals/{goal_id}/dependencies")
def add_dependency(client_id: str, goal_id: str, req: DependencyRequest):
    store = _store()
    goal = _client_goal(store, client_id, goal_id)
    if req.depends_on_goal_id == goal_id:
        raise ValidationError("A goal cannot depend on itself")
    other = _client_goal(store, client_id, req.depends_on_goal_id)
    goal = add_goal_dependency(goal, other, req.relationship_type, req.description)
    store.goals.upsert(goal)
    return {
        "dependencies": [d.to_dict() for d in goal.dependencies],
        "insights": [vars(i) for i in analyze_goal_dependencies(goal, store.goals_for_client(client_id))],
    }


@app.delete("/api/clients/{client_id}/goals/{goal_id}/dependencies/{dependency_id}")
def delete_dependency(client_id: str, goal_id: str, dependency_id: str):
    store = _store()
    goal = remove_goal_dependency(_client_goal(store, client_id, goal_id), dependency_id)
    store.goals.upsert(goal)
    return {"dependencies": [d.to_dict() for d in goal.dependencies]}


@app.post("/api/clients/{client_id}/goals/{goal_id}/share")
def share(client_id: str, goal_id: str, req: ShareRequest):
    store = _store()
    goal = _client_goal(store, client_id, goal_id)
    feedback = share_goal(goal, req.name, req.email)
    store.goals.upsert(goal)
    store.record_audit_event("GOAL_SHARED", client_id, client_id, {"goal_id": goal_id, "email": req.email})
    return feedback.to_dict()


@app.post("/api/clients/{client_id}/goals/{goal_id}/share/{feedback_id}/feedback")
def feedback(client_id: str, goal_id: str, feedback_id: str, req: FeedbackRequest):
    store = _store()
    goal = _client_goal(store, client_id, goal_id)
    record = record_goal_feedback(goal, feedback_id, req.message, req.sentiment)
    store.goals.upsert(goal)
    store.goal_notifications.append(create_goal_notification(
        goal_id, client_id, "SHARED_FEEDBACK",
        f"New feedback from {record.shared_with_name}", req.message,
    ))
    return record.to_dict()


@app.post("/api/clients/{client_id}/goals/{goal_id}/share/{feedback_id}/read")
def read_feedback(client_id: str, goal_id: str, feedback_id: str):
    store = _store()
    goal = _client_goal(store, client_id, goal_id)
    record = mark_feedback_read(goal, feedback_id)
    store.goals.upsert(goal)
    return record.to_dict()


@app.get("/api/clients/{client_id}/notifications")
def notifications(client_id: str):
    store = _store()
    store.get_client(client_id)
    return [n.to_dict() for n in store.goal_notifications.filter(lambda n: n.user_id == client_id)]


@app.get("/api/goal-templates")
def goal_templates(type: Optional[str] = None, popular: bool = False, limit: int = 6):
    templates = get_most_popular_templates(limit) if popular else get_templates_by_type(type)
    return [t.to_dict() for t in templates]


@app.get("/api/currencies")
def currencies(base: str = DEFAULT_CURRENCY, amount: Optional[float] = None, to: Optional[str] = None):
    if base not in CURRENCY_DATABASE:
        raise HTTPException(404, f"Currency '{base}' not found")
    rates = get_exchange_rates(base, STATE["llm"])
    result = {"base": base, "currencies": list(CURRENCY_DATABASE.values()), "rates": rates}
    if amount is not None and to:
        result["converted"] = convert_currency(amount, base, to, rates)
    return result


# ── Orders ───────────────────────────────────────────────────────────

@app.get("/api/clients/{client_id}/orders")
def list_orders(client_id: str):
    store = _store()
    store.get_client(client_id)
    return [o.to_dict() for o in orders_for_client(store, client_id)]


@app.post("/api/clients/{client_id}/orders")
def submit_order(client_id: str, req: OrderRequest):
    store = _store()
    store.get_client(client_id)
    order = create_order(
        store, req.actor_id, client_id, req.instrument_id, req.side, req.order_type,
        req.quantity, limit_price=req.limit_price, idempotency_key=req.idempotency_key,
    )
    result = {"order": order.to_dict()}
    if req.with_note:
        instrument = store.instruments.get(order.instrument_id)
        suitability = check_suitability(instrument, store.get_risk_profile(client_id))
        note = generate_order_note(
            order, instrument, suitability, store.get_portfolio_for_client(client_id), STATE["llm"],
        )
        store.record_ai_interaction(create_ai_interaction_record(
            req.actor_id, client_id, "/api/orders/note", order.id, note,
        ))
        result["note"] = note.to_dict()
    return result


@app.post("/api/orders/{order_id}/execute")
def execute(order_id: str):
    return execute_order(_store(), order_id).to_dict()


@app.post("/api/orders/{order_id}/cancel")
def cancel(order_id: str):
    return cancel_order(_store(), order_id).to_dict()


@app.get("/api/audit-events")
def audit_events(client_id: Optional[str] = None):
    store = _store()
    events = store.audit_events.filter(lambda e: client_id is None or e.client_id == client_id)
    return [e.to_dict() for e in events]


# ── Copilot ──────────────────────────────────────────────────────────

@app.post("/api/copilot/brief")
def copilot_brief(req: BriefRequest):
    store = _store()
    ctx = _context(store, req.client_id)
    response = generate_advisor_brief(
        req.question, ctx.client, ctx.profile, ctx.risk_profile, ctx.portfolio,
        ctx.goals, ctx.holdings, llm=STATE["llm"],
    )
    store.record_ai_interaction(create_ai_interaction_record(
        req.actor_id, req.client_id, "/api/copilot/brief", req.question, response,
    ))
    return response.to_dict()


@app.post("/api/clients/{client_id}/portfolio/explain")
def explain_portfolio(client_id: str, actor_id: Optional[str] = None):
    store = _store()
    ctx = _context(store, client_id)
    response = generate_portfolio_explanation(
        ctx.client, ctx.risk_profile, ctx.portfolio, ctx.holdings,
        ctx.instruments, ctx.model_portfolios, llm=STATE["llm"],
    )
    store.record_ai_interaction(create_ai_interaction_record(
        actor_id or client_id, client_id, "/api/portfolio/explain",
        PORTFOLIO_EXPLANATION_QUESTION, response,
    ))
    return response.to_dict()


@app.get("/api/clients/{client_id}/insights")
def insights(client_id: str):
    store = _store()
    ctx = _context(store, client_id)
    actions = _actions(store, ctx)
    response = generate_personalized_insights(
        ctx.client, ctx.profile, ctx.risk_profile, ctx.portfolio, ctx.goals,
        ctx.holdings, ctx.instruments, ctx.model_portfolios, actions, llm=STATE["llm"],
    )
    store.record_ai_interaction(create_ai_interaction_record(
        client_id, client_id, "/api/insights", "personalized insights", response,
    ))
    return response.to_dict()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
