"""
Application constants
"""

# Reserved identity the AI assistant acts under
AI_USER_ID = "ai-assistant"

# Issues
ISSUE_STATUSES = ("open", "in_progress", "closed")
ISSUE_PRIORITIES = ("low", "medium", "high")
ISSUE_DEFAULT_STATUS = "open"
ISSUE_DEFAULT_PRIORITY = "medium"

# Todos
TODO_TITLE_MAX_LENGTH = 255

# Fields a pending toggle edit may patch on todos and issues
EDIT_PATCHABLE_FIELDS = frozenset({
    "title", "description", "completed", "due_date", "project_id", "assignee_id", "status", "priority",
})

# Mutations with more ids than this go through the background queue
BULK_SYNC_THRESHOLD = 10

# Plans
PLAN_FREE = "FREE"
PLAN_PRO = "PRO"
PLAN_PREFIXES = {
    PLAN_FREE: "free_message_limit",
    PLAN_PRO: "pro_message_limit",
}

# Rate limiting
MESSAGE_REFILL_INTERVAL_MS = 24 * 60 * 60 * 1000  # 1 day
REQUEST_LIMIT = 30
REQUEST_WINDOW_SECONDS = 60
REQUEST_LIMIT_PREFIX = "request_limit"

# Queue
QUEUE_DEDUP_WINDOW_SECONDS = 10 * 60
QUEUE_MAX_ATTEMPTS = 3
QUEUE_SECRET_HEADER = "x-queue-secret"

# OpenAI
OPENAI_DEFAULT_MODEL = "gpt-4o"
OPENAI_FALLBACK_MODEL = "gpt-4o-mini"
OPENAI_MAX_TOKENS = 1000
OPENAI_TEMPERATURE = 0.7
AI_MAX_STEPS = 5

# External APIs
QSTASH_API_BASE_URL = "https://qstash.upstash.io"
STRIPE_API_BASE_URL = "https://api.stripe.com"

# Retry configuration
MAX_RETRIES = 3
RETRY_DELAY = 1  # seconds

# Plan lookups are cached for this long
PLAN_CACHE_TTL_SECONDS = 5 * 60

# Logging
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
