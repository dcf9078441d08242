"""
WealthDesk — Domain Records

Plain dataclasses for the demo object graph. Every record round-trips through
`to_dict` / `from_dict` so the key-value store only ever holds JSON.
Dates are ISO-8601 strings.
"""
from dataclasses import asdict, dataclass, field, fields
from typing import Any, Dict, List, Optional


class Record:
    """Mixin giving dataclasses a JSON-friendly dict form."""

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict):
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in data.items() if k in known})


# ─────────────────────────────────────────────────────────────────────
# People
# ─────────────────────────────────────────────────────────────────────

@dataclass
class User(Record):
    id: str
    email: str
    name: str
    role: str                              # ADVISOR / CLIENT
    advisor_id: Optional[str] = None


@dataclass
class ClientProfile(Record):
    id: str
    user_id: str
    advisor_id: str
    date_of_birth: str
    phone: str
    address: str
    segment: str                           # High Net Worth / Mass Affluent / ...
    onboarding_date: str


@dataclass
class RiskProfile(Record):
    id: str
    client_id: str
    score: int                             # 1-10
    category: str                          # CONSERVATIVE ... AGGRESSIVE
    last_updated: str
    questionnaire_version: str = "2.1"


# ─────────────────────────────────────────────────────────────────────
# Goals
# ─────────────────────────────────────────────────────────────────────

@dataclass
class GoalProgressSnapshot(Record):
    id: str
    goal_id: str
    timestamp: str
    current_amount: float
    target_amount: float
    monthly_contribution: float
    projected_completion: str


@dataclass
class GoalDependency(Record):
    id: str
    goal_id: str
    depends_on_goal_id: str
    relationship_type: str                 # BLOCKS / ENABLES / RELATED
    description: str = ""


@dataclass
class GoalFeedback(Record):
    id: str
    goal_id: str
    shared_with_email: str
    shared_with_name: str
    created_at: str
    message: Optional[str] = None
    sentiment: str = "NEUTRAL"             # SUPPORTIVE / NEUTRAL / CONCERNED
    read_at: Optional[str] = None


@dataclass
class GoalPriority(Record):
    goal_id: str
    rank: int
    auto_ranked: bool
    reasoning: str
    last_updated: str


@dataclass
class Goal(Record):
    id: str
    client_id: str
    type: str                              # RETIREMENT / HOUSE / EDUCATION / OTHER
    name: str
    target_amount: float
    current_amount: float
    target_date: str
    monthly_contribution: float
    created_at: str
    updated_at: str
    progress_history: List[GoalProgressSnapshot] = field(default_factory=list)
    dependencies: List[GoalDependency] = field(default_factory=list)
    shared_with: List[GoalFeedback] = field(default_factory=list)
    priority: Optional[GoalPriority] = None

    @classmethod
    def from_dict(cls, data: dict) -> "Goal":
        data = dict(data)
        data["progress_history"] = [
            GoalProgressSnapshot.from_dict(s) for s in data.get("progress_history") or []
        ]
        data["dependencies"] = [GoalDependency.from_dict(d) for d in data.get("dependencies") or []]
        data["shared_with"] = [GoalFeedback.from_dict(f) for f in data.get("shared_with") or []]
        if data.get("priority"):
            data["priority"] = GoalPriority.from_dict(data["priority"])
        return super().from_dict(data)


@dataclass
class GoalOptimization(Record):
    id: str
    goal_id: str
    type: str                              # CONTRIBUTION_INCREASE / TIMELINE_ADJUSTMENT / RISK_ALIGNMENT
    title: str
    description: str
    current_monthly: float
    suggested_monthly: float
    potential_gain: float
    reasoning: str
    priority: str
    created_at: str


@dataclass
class GoalNotification(Record):
    id: str
    goal_id: str
    user_id: str
    type: str                              # MILESTONE / CONTRIBUTION / SHARED_FEEDBACK / OPTIMIZATION / PRIORITY_CHANGE
    title: str
    message: str
    created_at: str
    read: bool = False
    action_url: Optional[str] = None


# ─────────────────────────────────────────────────────────────────────
# Portfolios & instruments
# ─────────────────────────────────────────────────────────────────────

@dataclass
class Portfolio(Record):
    id: str
    client_id: str
    cash: float
    total_value: float
    last_updated: str


@dataclass
class Holding(Record):
    id: str
    portfolio_id: str
    instrument_id: str
    quantity: float
    average_cost: float
    current_price: float
    last_updated: str


@dataclass
class Instrument(Record):
    id: str
    symbol: str
    name: str
    asset_class: str
    current_price: float
    suitability_min_risk: int
    suitability_max_risk: int
    description: str = ""


@dataclass
class ModelAllocation(Record):
    asset_class: str
    target_percentage: float


@dataclass
class ModelPortfolio(Record):
    id: str
    name: str
    description: str
    min_risk_score: int
    max_risk_score: int
    allocations: List[ModelAllocation] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict) -> "ModelPortfolio":
        data = dict(data)
        data["allocations"] = [ModelAllocation.from_dict(a) for a in data.get("allocations") or []]
        return super().from_dict(data)


# ─────────────────────────────────────────────────────────────────────
# Orders, transactions, actions, audit
# ─────────────────────────────────────────────────────────────────────

@dataclass
class Order(Record):
    id: str
    portfolio_id: str
    instrument_id: str
    side: str                              # BUY / SELL
    order_type: str                        # MARKET / LIMIT
    quantity: float
    status: str
    created_by: str
    created_at: str
    idempotency_key: str
    limit_price: Optional[float] = None
    executed_at: Optional[str] = None
    executed_price: Optional[float] = None
    failure_reason: Optional[str] = None


@dataclass
class Transaction(Record):
    id: str
    portfolio_id: str
    instrument_id: str
    type: str                              # BUY / SELL / DIVIDEND / FEE
    quantity: float
    price: float
    amount: float
    timestamp: str
    order_id: Optional[str] = None


@dataclass
class NextBestAction(Record):
    id: str
    client_id: str
    type: str
    title: str
    description: str
    priority: str                          # HIGH / MEDIUM / LOW
    created_at: str
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class AuditEvent(Record):
    id: str
    type: str
    actor_user_id: str
    timestamp: str
    client_id: Optional[str] = None
    details: Dict[str, Any] = field(default_factory=dict)


@dataclass
class AiInteraction(Record):
    id: str
    actor_user_id: str
    endpoint: str
    prompt: str
    response: str
    model: str
    created_at: str
    offline_mode: bool
    client_id: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
