"""
WealthDesk — Central Configuration
Single source of truth for all parameters. Change here, nowhere else.
"""
from typing import Dict, List
import os
from dotenv import load_dotenv

load_dotenv()

# ─────────────────────────────────────────────────────────────────────
# Domain vocabulary
# ─────────────────────────────────────────────────────────────────────
ASSET_CLASSES: List[str] = ["EQUITY", "FIXED_INCOME", "CASH", "ALTERNATIVE", "REAL_ESTATE"]

RISK_CATEGORIES: List[str] = ["CONSERVATIVE", "MODERATE", "BALANCED", "GROWTH", "AGGRESSIVE"]

GOAL_TYPES: List[str] = ["RETIREMENT", "HOUSE", "EDUCATION", "OTHER"]

# ─────────────────────────────────────────────────────────────────────
# Next-best-action thresholds
# ─────────────────────────────────────────────────────────────────────
RISK_PROFILE_STALE_DAYS = int(os.getenv("RISK_PROFILE_STALE_DAYS", "180"))

GOAL_GAP_ACTION_THRESHOLD = 50_000       # gap above which contribution shortfalls are checked
GOAL_GAP_HIGH_PRIORITY = 100_000
CONTRIBUTION_SHORTFALL_THRESHOLD = 100   # $/month

DRIFT_REBALANCE_THRESHOLD = float(os.getenv("DRIFT_REBALANCE_THRESHOLD", "8"))
DRIFT_HIGH_PRIORITY = 15.0

CASH_INVEST_THRESHOLD = 10.0             # % of portfolio
CASH_MEDIUM_PRIORITY = 15.0

CONCENTRATION_LIMIT = float(os.getenv("CONCENTRATION_LIMIT", "40"))

# Day-count conventions
DAYS_PER_MONTH = 30
DAYS_PER_YEAR = 365.25

# Snapshots are only recorded on a material change
SNAPSHOT_AMOUNT_DELTA = 100
SNAPSHOT_CONTRIBUTION_DELTA = 10

# ─────────────────────────────────────────────────────────────────────
# Goal ranking weights
# ─────────────────────────────────────────────────────────────────────
GOAL_TYPE_SCORES: Dict[str, float] = {
    "RETIREMENT": 30,
    "EDUCATION": 25,
    "HOUSE": 20,
    "OTHER": 10,
}

RANK_WEIGHTS: Dict[str, float] = {
    "urgency": 0.4,
    "progress": 0.2,
    "type": 0.3,
    "gap": 0.1,
}

MILESTONES: List[int] = [25, 50, 75, 100]

# ─────────────────────────────────────────────────────────────────────
# Data store
# ─────────────────────────────────────────────────────────────────────
DATA_VERSION = "1.2"

STORE_PATH = os.getenv("WEALTHDESK_STORE_PATH", "")   # empty -> in-memory only

SEED = int(os.getenv("WEALTHDESK_SEED", "42"))

# ─────────────────────────────────────────────────────────────────────
# LLM
# ─────────────────────────────────────────────────────────────────────
ANTHROPIC_API_KEY = os.getenv("ANTHROPIC_API_KEY", "")
LLM_MODEL = os.getenv("WEALTHDESK_LLM_MODEL", "claude-sonnet-4-20250514")
LLM_MAX_TOKENS = int(os.getenv("WEALTHDESK_LLM_MAX_TOKENS", "800"))
OFFLINE_MODEL_NAME = "offline-demo"

DEFAULT_CURRENCY = os.getenv("WEALTHDESK_CURRENCY", "USD")
