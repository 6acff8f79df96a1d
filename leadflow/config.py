"""
Centralized configuration — env vars, CRM constants, automation defaults.
"""
import os


# ── Logging ──────────────────────────────────────────────────────────────────
LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO')
LOG_FORMAT = os.getenv('LOG_FORMAT', 'text')

# ── Redis ─────────────────────────────────────────────────────────────────────
REDIS_URL = os.getenv('REDIS_URL', 'redis://localhost:6379/0')

# ── PostgreSQL ────────────────────────────────────────────────────────────────
DATABASE_URL = os.getenv('DATABASE_URL', 'sqlite:///local.db')

# ── Email (SendGrid) ─────────────────────────────────────────────────────────
SENDGRID_API_KEY = os.getenv('SENDGRID_API_KEY')
EMAIL_FROM = os.getenv('EMAIL_FROM', 'crm@venio.paris')
APP_NAME = os.getenv('APP_NAME', 'Venio')
CRM_URL = os.getenv('CRM_URL', 'http://localhost:5501/admin/crm')

# ── Slack notifications ──────────────────────────────────────────────────────
SLACK_WEBHOOK_URL = os.getenv('SLACK_WEBHOOK_URL')

# ── Scheduler ────────────────────────────────────────────────────────────────
SCHEDULER_ENABLED = os.getenv('SCHEDULER_ENABLED', 'false').lower() in ('1', 'true', 'yes')
SCHEDULER_TICK_SECONDS = int(os.getenv('SCHEDULER_TICK_SECONDS', '60'))
SCHEDULER_MARKER_BACKEND = os.getenv('SCHEDULER_MARKER_BACKEND', 'memory')  # memory | redis
ACTIVATION_WINDOW_MINUTES = 5

# ── Lead funnel ───────────────────────────────────────────────────────────────
LEAD_STATUSES = [
    'LEAD',
    'QUALIFIED',
    'CONTACTED',
    'DEMO',
    'PROPOSAL',
    'WON',
    'LOST',
]
TERMINAL_STATUSES = ('WON', 'LOST')

LEAD_PRIORITIES = ['BASSE', 'NORMALE', 'HAUTE', 'URGENTE']
LEAD_TEMPERATURES = ['COLD', 'WARM', 'HOT']

# ── Users ─────────────────────────────────────────────────────────────────────
USER_ROLES = ['CLIENT', 'SUPER_ADMIN', 'ADMIN', 'VIEWER']
ADMIN_ROLES = ('SUPER_ADMIN', 'ADMIN', 'VIEWER')

# ── Escalation ────────────────────────────────────────────────────────────────
ESCALATION_ACTIONS = ['NOTIFY_MANAGER', 'REASSIGN', 'BOTH']

# ── Lead scoring: weight key → default points ────────────────────────────────
DEFAULT_SCORING_WEIGHTS = {
    'budgetHigh':     30,   # budget > 10000
    'budgetMedium':   15,   # budget 1000-10000
    'budgetLow':       5,   # 0 < budget < 1000
    'sourceReferral': 25,
    'sourceAds':      15,
    'sourceOther':    10,
    'priorityUrgent': 20,
    'priorityHigh':   15,
    'priorityNormal':  5,
    'hasEmail':       10,
    'hasPhone':       10,
}

# ── Duplicate detection ──────────────────────────────────────────────────────
DUPLICATE_RESULT_LIMIT = 10
PHONE_MIN_DIGITS = 8
