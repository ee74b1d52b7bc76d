# risk score factors (days / currency thresholds, highest first)
MISSING_DAYS_SENTINEL = 999

RECENCY_THRESHOLDS = [(90, 30), (60, 20), (30, 10)]
FREQUENCY_THRESHOLDS = [(60, 25), (30, 15), (14, 5)]
UNSUBSCRIBED_POINTS = 20
OPEN_RATE_THRESHOLDS = [(0.1, 15), (0.2, 10), (0.3, 5)]
ORDER_VALUE_THRESHOLDS = [(50, 15), (100, 10), (200, 5)]
TENURE_THRESHOLDS = [(30, 10), (90, 5)]

# risk bands / LTV tiers
RISK_BAND_HIGH = 70
RISK_BAND_MEDIUM = 40

LTV_TIER_VIP = 5000
LTV_TIER_GOLD = 2000
LTV_TIER_SILVER = 500

# customer status
CHURNED_INACTIVE_DAYS = 90
CHURNED_RISK_SCORE = 70
DORMANT_INACTIVE_DAYS = 60

# loyalty / engagement heuristics
LOYALTY_WEIGHTS = {
    "orders": 10.0,
    "revenue_per_point": 50.0,
    "age_days_per_point": 10.0,
    "open_rate": 30.0,
}
ENGAGEMENT_WEIGHTS = {
    "open_rate": 40.0,
    "click_rate": 60.0,
    "orders": 5.0,
}
SCORE_JITTER = 0.0
SEED_SCORE_JITTER = 10.0

# next-best-action scoring
RISK_BAND_MULTIPLIERS = {"High": 1.5, "Medium": 1.2, "Low": 1.0}
LTV_TIER_MULTIPLIERS = {"VIP": 1.3, "Gold": 1.1}
COST_PENALTY = 0.5

# "legacy" enforces the four historical clause patterns and ignores every
# other clause; "expression" evaluates the whole rule
ELIGIBILITY_MODE = "legacy"

# segments
# previously-high-value-likely-churn has two historical risk cut-offs;
# the trigger route used 50, an alternate revision used 60.
HIGH_VALUE_CHURN_RISK_THRESHOLD_TRIGGER = 50
HIGH_VALUE_CHURN_RISK_THRESHOLD_ALT = 60
HIGH_VALUE_CHURN_RISK_THRESHOLD = HIGH_VALUE_CHURN_RISK_THRESHOLD_TRIGGER

# experiment simulation
AVG_ORDER_VALUE_ASSUMPTION = 150.0
UPLIFT_JITTER_PCT_POINTS = 0.15
MAX_SIMULATED_P_VALUE = 0.1
SIGNIFICANCE_ALPHA = 0.05
MIN_WINNING_UPLIFT_PCT = 5.0
DEFAULT_EXPERIMENT_SEGMENT_SIZE = 1000

# repositories
DEFAULT_PAGE_SIZE = 50
ACTIVITY_LOG_MAX_EVENTS = 100

# KPI multipliers on total revenue
RETAINED_REVENUE_SHARE = 0.30
UNCLAIMED_REVENUE_SHARE = 0.40

# synthetic population
N_SEED_CUSTOMERS = 1000
RANDOM_STATE = 42
