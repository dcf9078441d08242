"""
WealthDesk — Goal Templates

Starter goals offered when a client creates a new goal. Amount and year
ranges bound what the template dialog allows; popularity_rank orders them.
"""

import logging
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import List, Optional

from wealthdesk.config.settings import GOAL_TYPES
from wealthdesk.engine.timeutils import add_months, isoformat, utcnow
from wealthdesk.models.errors import NotFoundError, ValidationError
from wealthdesk.models.types import Goal

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GoalTemplate:
    id: str
    name: str
    type: str
    description: str
    icon: str
    suggested_amount: float
    min_amount: float
    max_amount: float
    suggested_years: int
    min_years: int
    max_years: int
    popularity_rank: int
    tips: List[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return asdict(self)


GOAL_TEMPLATES: List[GoalTemplate] = [
    GoalTemplate(
        "retirement-comfortable", "Comfortable Retirement", "RETIREMENT",
        "Build a nest egg for a comfortable retirement lifestyle", "🏖️",
        1_000_000, 500_000, 3_000_000, 25, 10, 40, 1,
        ["Start early to benefit from compound growth",
         "Consider maxing out tax-advantaged accounts first",
         "Adjust contributions as your income grows"],
    ),
    GoalTemplate(
        "retirement-early", "Early Retirement", "RETIREMENT",
        "Retire before traditional retirement age with financial independence", "🌴",
        1_500_000, 800_000, 5_000_000, 15, 5, 25, 3,
        ["Higher savings rate needed for early retirement",
         "Plan for healthcare costs before Medicare eligibility",
         "Consider the 4% withdrawal rule for sustainability"],
    ),
    GoalTemplate(
        "house-downpayment", "Home Down Payment", "HOUSE",
        "Save for a 20% down payment on your dream home", "🏡",
        100_000, 20_000, 500_000, 5, 2, 10, 2,
        ["20% down payment avoids PMI insurance",
         "Factor in closing costs (2-5% of home price)",
         "Keep funds accessible in lower-risk investments"],
    ),
    GoalTemplate(
        "house-upgrade", "Home Upgrade", "HOUSE",
        "Move up to a larger home or better neighborhood", "🏘️",
        200_000, 50_000, 750_000, 7, 3, 12, 6,
        ["Account for selling costs of current home",
         "Consider appreciation of current property",
         "Factor in higher property taxes and maintenance"],
    ),
    GoalTemplate(
        "education-college", "College Education", "EDUCATION",
        "Fund four years of college education for your child", "🎓",
        150_000, 50_000, 400_000, 15, 5, 18, 4,
        ["Consider 529 plans for tax-advantaged growth",
         "Costs vary significantly by institution type",
         "Factor in scholarships and financial aid"],
    ),
    GoalTemplate(
        "education-private", "Private School", "EDUCATION",
        "Cover private school tuition for K-12 education", "📚",
        200_000, 75_000, 500_000, 10, 5, 15, 8,
        ["Annual costs can range from $10k-$50k+",
         "Some schools offer multi-year discounts",
         "Consider mix of public and private years"],
    ),
    GoalTemplate(
        "wedding", "Wedding", "OTHER",
        "Plan and pay for a memorable wedding celebration", "💒",
        30_000, 10_000, 100_000, 2, 1, 5, 7,
        ["Average wedding costs vary by location",
         "Guest count is the biggest cost driver",
         "Consider which elements matter most to you"],
    ),
    GoalTemplate(
        "emergency-fund", "Emergency Fund", "OTHER",
        "Build 6 months of living expenses for unexpected situations", "🛡️",
        25_000, 10_000, 75_000, 2, 1, 3, 5,
        ["Keep in highly liquid, low-risk accounts",
         "Aim for 3-6 months of expenses",
         "Adjust based on job security and dependents"],
    ),
    GoalTemplate(
        "business-startup", "Start a Business", "OTHER",
        "Save capital to launch your own business venture", "🚀",
        75_000, 25_000, 500_000, 3, 2, 7, 9,
        ["Research typical startup costs in your industry",
         "Plan for 6-12 months of personal expenses",
         "Consider keeping day job while building"],
    ),
    GoalTemplate(
        "vacation-home", "Vacation Property", "HOUSE",
        "Purchase a second home or vacation retreat", "⛰️",
        150_000, 50_000, 1_000_000, 10, 5, 20, 11,
        ["Factor in maintenance and property management",
         "Consider rental income potential",
         "Property taxes may be higher for second homes"],
    ),
    GoalTemplate(
        "car-purchase", "New Vehicle", "OTHER",
        "Buy a new car without taking on debt", "🚗",
        35_000, 15_000, 100_000, 3, 1, 5, 10,
        ["Avoid depreciation by buying slightly used",
         "Factor in insurance, registration, and taxes",
         "Consider total cost of ownership"],
    ),
    GoalTemplate(
        "world-travel", "Dream Vacation", "OTHER",
        "Fund an extended trip or bucket-list travel experience", "✈️",
        15_000, 5_000, 50_000, 2, 1, 5, 12,
        ["Book in advance for better prices",
         "Consider travel rewards credit cards",
         "Off-season travel can reduce costs significantly"],
    ),
]


def get_templates_by_type(goal_type: Optional[str] = None) -> List[GoalTemplate]:
    """Templates of one goal type (all when None), most popular first."""
    if goal_type is not None and goal_type not in GOAL_TYPES:
        raise ValidationError(f"Unknown goal type '{goal_type}'")
    templates = [t for t in GOAL_TEMPLATES if goal_type is None or t.type == goal_type]
    return sorted(templates, key=lambda t: t.popularity_rank)


def get_template_by_id(template_id: str) -> Optional[GoalTemplate]:
    return next((t for t in GOAL_TEMPLATES if t.id == template_id), None)


def get_most_popular_templates(limit: int = 6) -> List[GoalTemplate]:
    return sorted(GOAL_TEMPLATES, key=lambda t: t.popularity_rank)[:limit]


def goal_from_template(
    template_id: str,
    client_id: str,
    target_amount: Optional[float] = None,
    years: Optional[int] = None,
    monthly_contribution: float = 0.0,
    current_amount: float = 0.0,
    name: Optional[str] = None,
    now: Optional[datetime] = None,
    sequence: int = 0,
) -> Goal:
    """
    New goal from a template. Amount and years default to the template's
    suggestions and must stay within its bounds. `sequence` is appended to
    the id so goals created in the same millisecond stay distinct.
    """
    template = get_template_by_id(template_id)
    if template is None:
        raise NotFoundError("GoalTemplate", template_id)

    amount = template.suggested_amount if target_amount is None else target_amount
    horizon = template.suggested_years if years is None else years
    if not template.min_amount <= amount <= template.max_amount:
        raise ValidationError(
            f"Target for '{template.name}' must be between "
            f"${template.min_amount:,.0f} and ${template.max_amount:,.0f}"
        )
    if not template.min_years <= horizon <= template.max_years:
        raise ValidationError(
            f"Timeline for '{template.name}' must be {template.min_years}-{template.max_years} years"
        )
    if current_amount < 0:
        raise ValidationError("Current amount cannot be negative")
    now = utcnow(now)
    stamp = isoformat(now)
    logger.info("New %s goal for %s from template %s", template.type, client_id, template.id)
    return Goal(
        id=f"goal-{int(now.timestamp() * 1000)}-{sequence}",
        client_id=client_id,
        type=template.type,
        name=name or template.name,
        target_amount=amount,
        current_amount=current_amount,
        target_date=isoformat(add_months(now, horizon * 12)),
        monthly_contribution=monthly_contribution,
        created_at=stamp,
        updated_at=stamp,
    )
