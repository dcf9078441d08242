"""
WealthDesk — Demo Seed Data
Three advisors with four clients each, their risk profiles and goals, the
instrument universe, and the model portfolios. Portfolios and holdings are
generated from a seeded numpy generator, so the demo is reproducible.
"""
import math
from datetime import datetime, timedelta
from typing import Dict, List, Optional

import numpy as np

from wealthdesk.config.settings import SEED
from wealthdesk.engine.timeutils import isoformat, utcnow
from wealthdesk.models.types import (
    ClientProfile, Goal, GoalProgressSnapshot, Holding, Instrument,
    ModelAllocation, ModelPortfolio, Portfolio, RiskProfile, Transaction, User,
)


# ─────────────────────────────────────────────────────────────────────
# Users & profiles
# ─────────────────────────────────────────────────────────────────────

SEED_USERS: List[User] = [
    User("adv-1", "sarah.chen@wealthdemo.com", "Sarah Chen", "ADVISOR"),
    User("adv-2", "marcus.williams@wealthdemo.com", "Marcus Williams", "ADVISOR"),
    User("adv-3", "elena.rodriguez@wealthdemo.com", "Elena Rodriguez", "ADVISOR"),

    User("cli-1", "robert.chen@example.com", "Robert Chen", "CLIENT", "adv-1"),
    User("cli-2", "jennifer.martinez@example.com", "Jennifer Martinez", "CLIENT", "adv-1"),
    User("cli-3", "david.wilson@example.com", "David Wilson", "CLIENT", "adv-1"),
    User("cli-4", "lisa.anderson@example.com", "Lisa Anderson", "CLIENT", "adv-1"),

    User("cli-5", "michael.brown@example.com", "Michael Brown", "CLIENT", "adv-2"),
    User("cli-6", "patricia.davis@example.com", "Patricia Davis", "CLIENT", "adv-2"),
    User("cli-7", "james.miller@example.com", "James Miller", "CLIENT", "adv-2"),
    User("cli-8", "mary.johnson@example.com", "Mary Johnson", "CLIENT", "adv-2"),

    User("cli-9", "william.garcia@example.com", "William Garcia", "CLIENT", "adv-3"),
    User("cli-10", "barbara.rodriguez@example.com", "Barbara Rodriguez", "CLIENT", "adv-3"),
    User("cli-11", "richard.lee@example.com", "Richard Lee", "CLIENT", "adv-3"),
    User("cli-12", "susan.taylor@example.com", "Susan Taylor", "CLIENT", "adv-3"),
]

SEED_CLIENT_PROFILES: List[ClientProfile] = [
    ClientProfile("cp-1", "cli-1", "adv-1", "1975-03-15", "555-0101", "123 Market St, San Francisco, CA", "High Net Worth", "2020-01-15"),
    ClientProfile("cp-2", "cli-2", "adv-1", "1982-07-22", "555-0102", "456 Oak Ave, Seattle, WA", "Mass Affluent", "2021-03-20"),
    ClientProfile("cp-3", "cli-3", "adv-1", "1968-11-30", "555-0103", "789 Pine Rd, Portland, OR", "High Net Worth", "2019-06-10"),
    ClientProfile("cp-4", "cli-4", "adv-1", "1990-05-18", "555-0104", "321 Elm St, Austin, TX", "Emerging Wealth", "2022-09-05"),

    ClientProfile("cp-5", "cli-5", "adv-2", "1978-09-12", "555-0105", "654 Maple Dr, Boston, MA", "High Net Worth", "2020-11-22"),
    ClientProfile("cp-6", "cli-6", "adv-2", "1985-02-28", "555-0106", "987 Birch Ln, Denver, CO", "Mass Affluent", "2021-07-14"),
    ClientProfile("cp-7", "cli-7", "adv-2", "1972-12-05", "555-0107", "147 Cedar Ct, Chicago, IL", "Ultra High Net Worth", "2018-04-30"),
    ClientProfile("cp-8", "cli-8", "adv-2", "1988-08-19", "555-0108", "258 Willow Way, Miami, FL", "Mass Affluent", "2022-02-18"),

    ClientProfile("cp-9", "cli-9", "adv-3", "1980-04-07", "555-0109", "369 Spruce Ave, Phoenix, AZ", "High Net Worth", "2020-08-25"),
    ClientProfile("cp-10", "cli-10", "adv-3", "1976-10-14", "555-0110", "741 Ash Blvd, Atlanta, GA", "High Net Worth", "2019-12-03"),
    ClientProfile("cp-11", "cli-11", "adv-3", "1983-06-21", "555-0111", "852 Poplar St, Dallas, TX", "Mass Affluent", "2021-05-17"),
    ClientProfile("cp-12", "cli-12", "adv-3", "1992-01-09", "555-0112", "963 Fir Pl, Nashville, TN", "Emerging Wealth", "2023-01-10"),
]

SEED_RISK_PROFILES: List[RiskProfile] = [
    RiskProfile("rp-1", "cli-1", 7, "GROWTH", "2024-11-15", "2.1"),
    RiskProfile("rp-2", "cli-2", 5, "BALANCED", "2024-10-20", "2.1"),
    RiskProfile("rp-3", "cli-3", 3, "CONSERVATIVE", "2024-05-10", "2.0"),
    RiskProfile("rp-4", "cli-4", 8, "AGGRESSIVE", "2024-12-01", "2.1"),

    RiskProfile("rp-5", "cli-5", 6, "GROWTH", "2024-09-18", "2.1"),
    RiskProfile("rp-6", "cli-6", 4, "MODERATE", "2024-11-22", "2.1"),
    RiskProfile("rp-7", "cli-7", 2, "CONSERVATIVE", "2024-10-05", "2.1"),
    RiskProfile("rp-8", "cli-8", 9, "AGGRESSIVE", "2024-12-10", "2.1"),

    RiskProfile("rp-9", "cli-9", 5, "BALANCED", "2024-08-30", "2.1"),
    RiskProfile("rp-10", "cli-10", 4, "MODERATE", "2024-11-28", "2.1"),
    RiskProfile("rp-11", "cli-11", 6, "GROWTH", "2024-10-12", "2.1"),
    RiskProfile("rp-12", "cli-12", 10, "AGGRESSIVE", "2024-12-05", "2.1"),
]


# ─────────────────────────────────────────────────────────────────────
# Instruments & model portfolios
# ─────────────────────────────────────────────────────────────────────

SEED_INSTRUMENTS: List[Instrument] = [
    Instrument("ins-1", "VTI", "Vanguard Total Stock Market ETF", "EQUITY", 245.50, 5, 10, "Broad US equity market exposure"),
    Instrument("ins-2", "BND", "Vanguard Total Bond Market ETF", "FIXED_INCOME", 76.20, 1, 7, "Broad US bond market exposure"),
    Instrument("ins-3", "VEA", "Vanguard FTSE Developed Markets ETF", "EQUITY", 52.80, 5, 10, "International developed markets equity"),
    Instrument("ins-4", "VWO", "Vanguard FTSE Emerging Markets ETF", "EQUITY", 44.30, 7, 10, "Emerging markets equity"),
    Instrument("ins-5", "CASH", "Cash & Money Market", "CASH", 1.00, 1, 10, "Liquid cash holdings"),

    Instrument("ins-6", "AGG", "iShares Core US Aggregate Bond ETF", "FIXED_INCOME", 101.50, 1, 6, "Investment-grade US bonds"),
    Instrument("ins-7", "VNQ", "Vanguard Real Estate ETF", "REAL_ESTATE", 88.90, 4, 9, "US real estate investment trusts"),
    Instrument("ins-8", "QQQ", "Invesco QQQ Trust", "EQUITY", 425.75, 7, 10, "Nasdaq-100 technology stocks"),
    Instrument("ins-9", "TLT", "iShares 20+ Year Treasury Bond ETF", "FIXED_INCOME", 92.40, 1, 5, "Long-term US Treasury bonds"),
    Instrument("ins-10", "GLD", "SPDR Gold Shares", "ALTERNATIVE", 185.20, 3, 10, "Physical gold holdings"),

    Instrument("ins-11", "VTV", "Vanguard Value ETF", "EQUITY", 156.30, 5, 9, "US large-cap value stocks"),
    Instrument("ins-12", "VUG", "Vanguard Growth ETF", "EQUITY", 325.60, 6, 10, "US large-cap growth stocks"),
    Instrument("ins-13", "VIG", "Vanguard Dividend Appreciation ETF", "EQUITY", 178.90, 4, 8, "Dividend growth stocks"),
    Instrument("ins-14", "VCIT", "Vanguard Intermediate-Term Corp Bond ETF", "FIXED_INCOME", 85.70, 2, 7, "Investment-grade corporate bonds"),
    Instrument("ins-15", "VXUS", "Vanguard Total International Stock ETF", "EQUITY", 63.40, 5, 10, "Total international equity"),
]


def _model(mp_id: str, name: str, description: str, lo: int, hi: int, targets: Dict[str, float]) -> ModelPortfolio:
    return ModelPortfolio(
        id=mp_id, name=name, description=description,
        min_risk_score=lo, max_risk_score=hi,
        allocations=[ModelAllocation(cls, pct) for cls, pct in targets.items()],
    )


SEED_MODEL_PORTFOLIOS: List[ModelPortfolio] = [
    _model("mp-1", "Conservative", "Capital preservation with modest growth", 1, 3,
           {"EQUITY": 20, "FIXED_INCOME": 65, "CASH": 10, "ALTERNATIVE": 5}),
    _model("mp-2", "Moderate", "Balanced approach with stability focus", 4, 4,
           {"EQUITY": 40, "FIXED_INCOME": 50, "CASH": 5, "ALTERNATIVE": 5}),
    _model("mp-3", "Balanced", "Equal emphasis on growth and stability", 5, 5,
           {"EQUITY": 60, "FIXED_INCOME": 30, "CASH": 5, "ALTERNATIVE": 5}),
    _model("mp-4", "Growth", "Growth-oriented with measured risk", 6, 7,
           {"EQUITY": 75, "FIXED_INCOME": 15, "CASH": 5, "ALTERNATIVE": 5}),
    _model("mp-5", "Aggressive", "Maximum growth potential", 8, 10,
           {"EQUITY": 90, "FIXED_INCOME": 5, "CASH": 2, "ALTERNATIVE": 3}),
    # Overlaps the bands above; only reached when listed first
    _model("mp-6", "Income Focus", "Dividend and interest income generation", 3, 6,
           {"EQUITY": 35, "FIXED_INCOME": 50, "REAL_ESTATE": 10, "CASH": 5}),
]


# ─────────────────────────────────────────────────────────────────────
# Goals
# ─────────────────────────────────────────────────────────────────────

def _snapshots(goal_id: str, target: float, rows) -> List[GoalProgressSnapshot]:
    n = goal_id.split("-")[1]
    return [
        GoalProgressSnapshot(
            id=f"snap-{n}-{i}", goal_id=goal_id, timestamp=ts,
            current_amount=amount, target_amount=target,
            monthly_contribution=contribution, projected_completion=projected,
        )
        for i, (ts, amount, contribution, projected) in enumerate(rows, start=1)
    ]


SEED_GOALS: List[Goal] = [
    Goal(
        id="goal-1", client_id="cli-1", type="RETIREMENT", name="Retirement at 65",
        target_amount=3_000_000, current_amount=850_000, target_date="2034-03-15",
        monthly_contribution=5000, created_at="2020-01-15T10:00:00Z", updated_at="2024-12-01T10:00:00Z",
        progress_history=_snapshots("goal-1", 3_000_000, [
            ("2024-06-01T00:00:00Z", 780_000, 5000, "2034-03-15"),
            ("2024-08-01T00:00:00Z", 800_000, 5000, "2034-02-10"),
            ("2024-10-01T00:00:00Z", 825_000, 5000, "2034-01-20"),
            ("2024-12-01T00:00:00Z", 850_000, 5000, "2034-01-01"),
        ]),
    ),
    Goal(
        id="goal-2", client_id="cli-1", type="EDUCATION", name="Children's College Fund",
        target_amount=200_000, current_amount=120_000, target_date="2030-09-01",
        monthly_contribution=1500, created_at="2020-06-10T10:00:00Z", updated_at="2024-12-01T10:00:00Z",
        progress_history=_snapshots("goal-2", 200_000, [
            ("2024-06-01T00:00:00Z", 108_000, 1500, "2030-09-01"),
            ("2024-08-01T00:00:00Z", 112_000, 1500, "2030-08-15"),
            ("2024-10-01T00:00:00Z", 116_000, 1500, "2030-08-01"),
            ("2024-12-01T00:00:00Z", 120_000, 1500, "2030-07-15"),
        ]),
    ),
    Goal(
        id="goal-3", client_id="cli-2", type="HOUSE", name="Vacation Home Down Payment",
        target_amount=150_000, current_amount=45_000, target_date="2027-06-01",
        monthly_contribution=3000, created_at="2021-03-20T10:00:00Z", updated_at="2024-12-01T10:00:00Z",
        progress_history=_snapshots("goal-3", 150_000, [
            ("2024-06-01T00:00:00Z", 30_000, 2500, "2027-08-01"),
            ("2024-08-01T00:00:00Z", 35_000, 2500, "2027-07-15"),
            ("2024-10-01T00:00:00Z", 40_000, 3000, "2027-06-20"),
            ("2024-12-01T00:00:00Z", 45_000, 3000, "2027-06-01"),
        ]),
    ),
    Goal(
        id="goal-4", client_id="cli-3", type="RETIREMENT", name="Early Retirement",
        target_amount=2_500_000, current_amount=450_000, target_date="2028-11-30",
        monthly_contribution=8000, created_at="2019-06-10T10:00:00Z", updated_at="2024-12-01T10:00:00Z",
        progress_history=_snapshots("goal-4", 2_500_000, [
            ("2024-06-01T00:00:00Z", 402_000, 8000, "2029-01-15"),
            ("2024-08-01T00:00:00Z", 418_000, 8000, "2028-12-20"),
            ("2024-10-01T00:00:00Z", 434_000, 8000, "2028-12-10"),
            ("2024-12-01T00:00:00Z", 450_000, 8000, "2028-11-30"),
        ]),
    ),
]


# ─────────────────────────────────────────────────────────────────────
# Generated portfolios
# ─────────────────────────────────────────────────────────────────────

FIXED_BASE_VALUES: Dict[str, float] = {
    "cli-1": 1_250_000,
    "cli-2": 850_000,
    "cli-3": 450_000,
    "cli-7": 3_500_000,
    "cli-10": 725_000,
}

CASH_SHARES: Dict[str, float] = {"cli-1": 0.12, "cli-5": 0.15}
DEFAULT_CASH_SHARE = 0.05

CONCENTRATED_CLIENT = "cli-3"
CONCENTRATED_INSTRUMENT = "ins-8"
CONCENTRATED_SHARE = 0.45


def _primary_instruments(risk_score: int) -> List[str]:
    if risk_score >= 8:
        return ["ins-1", "ins-8", "ins-12", "ins-4"]
    if risk_score >= 6:
        return ["ins-1", "ins-3", "ins-11", "ins-13"]
    if risk_score >= 4:
        return ["ins-1", "ins-2", "ins-6", "ins-13"]
    return ["ins-2", "ins-6", "ins-9", "ins-13"]


def generate_portfolio_holdings(
    client_id: str,
    risk_score: int,
    rng: np.random.Generator,
    now: datetime,
) -> dict:
    """Build one client's portfolio, holdings and purchase history."""
    instruments = {i.id: i for i in SEED_INSTRUMENTS}
    stamp = isoformat(now)

    base_value = FIXED_BASE_VALUES.get(client_id)
    if base_value is None:
        base_value = math.floor(rng.random() * 800_000) + 300_000
    cash = base_value * CASH_SHARES.get(client_id, DEFAULT_CASH_SHARE)
    invested = base_value - cash

    portfolio_id = f"port-{client_id}"
    holdings: List[Holding] = []
    transactions: List[Transaction] = []
    accumulated = 0.0

    primary = _primary_instruments(risk_score)

    if client_id == CONCENTRATED_CLIENT:
        conc = instruments[CONCENTRATED_INSTRUMENT]
        qty = math.floor(invested * CONCENTRATED_SHARE / conc.current_price)
        holdings.append(Holding(
            id=f"hold-{portfolio_id}-conc", portfolio_id=portfolio_id, instrument_id=conc.id,
            quantity=qty, average_cost=conc.current_price * 0.92,
            current_price=conc.current_price, last_updated=stamp,
        ))
        accumulated += qty * conc.current_price
        transactions.append(Transaction(
            id=f"txn-{portfolio_id}-conc", portfolio_id=portfolio_id, instrument_id=conc.id,
            type="BUY", quantity=qty, price=conc.current_price * 0.92,
            amount=qty * conc.current_price * 0.92, timestamp="2024-03-15T10:30:00Z",
        ))

    for idx, ins_id in enumerate(primary):
        instrument = instruments[ins_id]
        if client_id == CONCENTRATED_CLIENT:
            allocation = (invested - accumulated) / (len(primary) - 1)
        else:
            allocation = invested / len(primary)
        qty = math.floor(allocation / instrument.current_price)
        if qty <= 0:
            continue

        holdings.append(Holding(
            id=f"hold-{portfolio_id}-{idx}", portfolio_id=portfolio_id, instrument_id=ins_id,
            quantity=qty, average_cost=instrument.current_price * (0.88 + rng.random() * 0.15),
            current_price=instrument.current_price, last_updated=stamp,
        ))

        first_lot = math.floor(qty * 0.6)
        for lot, (lot_qty, price_factor, max_age_days) in enumerate(
            [(first_lot, 0.90, 90), (qty - first_lot, 0.95, 30)], start=1
        ):
            transactions.append(Transaction(
                id=f"txn-{portfolio_id}-{idx}-{lot}", portfolio_id=portfolio_id, instrument_id=ins_id,
                type="BUY", quantity=lot_qty, price=instrument.current_price * price_factor,
                amount=lot_qty * instrument.current_price * price_factor,
                timestamp=isoformat(now - timedelta(days=float(rng.random() * max_age_days))),
            ))

    total_value = cash + sum(h.quantity * instruments[h.instrument_id].current_price for h in holdings)

    return {
        "portfolio": Portfolio(
            id=portfolio_id, client_id=client_id, cash=cash,
            total_value=total_value, last_updated=stamp,
        ),
        "holdings": holdings,
        "transactions": transactions,
    }


def generate_seed_data(seed: int = SEED, now: Optional[datetime] = None) -> dict:
    """Portfolios, holdings and transactions for every client with a risk profile."""
    rng = np.random.default_rng(seed)
    now = utcnow(now)

    portfolios: List[Portfolio] = []
    holdings: List[Holding] = []
    transactions: List[Transaction] = []

    for rp in SEED_RISK_PROFILES:
        generated = generate_portfolio_holdings(rp.client_id, rp.score, rng, now)
        portfolios.append(generated["portfolio"])
        holdings.extend(generated["holdings"])
        transactions.extend(generated["transactions"])

    return {"portfolios": portfolios, "holdings": holdings, "transactions": transactions}
