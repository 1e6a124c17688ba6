"""
Centralized configuration — env vars, field defaults, AI actor identity.
"""
import os
from urllib.parse import quote_plus


def _first_env(*names, default=None):
    """Return the first non-empty env var among names."""
    for name in names:
        value = os.getenv(name)
        if value:
            return value
    return default


def _database_url_from_parts():
    """
    Assemble a Postgres URL from discrete host/user/password vars.

    Hosting platforms inject these under several naming schemes
    (POSTGRES_*, DB_*, DATABASE_*, POSTGRESQL_*). Returns None when any
    required part is missing.
    """
    host = _first_env('POSTGRES_HOST', 'DB_HOST', 'DATABASE_HOST', 'POSTGRESQL_HOST')
    port = _first_env('POSTGRES_PORT', 'DB_PORT', 'DATABASE_PORT', 'POSTGRESQL_PORT', default='5432')
    database = _first_env('POSTGRES_DATABASE', 'DB_NAME', 'DATABASE_NAME', 'POSTGRESQL_DATABASE', 'POSTGRES_DB')
    user = _first_env('POSTGRES_USER', 'DB_USER', 'DATABASE_USER', 'POSTGRESQL_USER', 'POSTGRES_USERNAME')
    password = _first_env('POSTGRES_PASSWORD', 'DB_PASSWORD', 'DATABASE_PASSWORD', 'POSTGRESQL_PASSWORD')
    if not (host and database and user and password):
        return None
    url = f'postgresql://{quote_plus(user)}:{quote_plus(password)}@{host}:{port}/{database}'
    ssl = _first_env('POSTGRES_SSL', 'DB_SSL', 'DATABASE_SSL', 'POSTGRESQL_SSL')
    if ssl == 'true':
        url += '?sslmode=require'
    return url


# ── PostgreSQL ────────────────────────────────────────────────────────────────
DATABASE_URL = os.getenv('DATABASE_URL') or _database_url_from_parts() or 'sqlite:///local.db'
DB_POOL_SIZE = int(os.getenv('DB_POOL_SIZE', '10'))
DB_MAX_OVERFLOW = int(os.getenv('DB_MAX_OVERFLOW', '5'))
DB_CONNECT_TIMEOUT = int(os.getenv('DB_CONNECT_TIMEOUT', '5'))  # seconds

# ── HTTP ─────────────────────────────────────────────────────────────────────
CORS_ORIGIN = os.getenv('CORS_ORIGIN', '*')
MAX_CONTENT_LENGTH = int(os.getenv('MAX_CONTENT_LENGTH', str(50 * 1024 * 1024)))

# ── AI assistant identity ────────────────────────────────────────────────────
AI_ACTOR_ID = os.getenv('AI_ACTOR_ID', 'ai-assistant')
AI_ACTOR_NAME = os.getenv('AI_ACTOR_NAME', 'AI 助理')
AI_LEADS_DEFAULT_LIMIT = int(os.getenv('AI_LEADS_DEFAULT_LIMIT', '20'))

# ── Lead mutation ────────────────────────────────────────────────────────────
CASE_CODE_PREFIX = os.getenv('CASE_CODE_PREFIX', 'aijob')
CASE_CODE_MAX_ATTEMPTS = int(os.getenv('CASE_CODE_MAX_ATTEMPTS', '10'))
APPEND_MAX_RETRIES = int(os.getenv('APPEND_MAX_RETRIES', '5'))

# ── Audit log ────────────────────────────────────────────────────────────────
AUDIT_LOG_LIMIT = 500

# ── Defaults applied when a lead is created ──────────────────────────────────
LEAD_DEFAULTS = {
    'platform': 'FB',
    'status': '待篩選',       # pending triage
    'decision': 'pending',
    'priority': 3,
    'contact_status': '未回覆',  # no reply
}

# Extra defaults for leads imported by the AI assistant
AI_IMPORT_DEFAULTS = {
    'platform': '其他',
    'platform_id': '未知',
    'budget_text': '待確認',
    'status': '待匯入',
}

DEFAULT_USER_ROLE = 'REVIEWER'

# ── Tables the service expects to find ───────────────────────────────────────
EXPECTED_TABLES = ['users', 'leads', 'audit_logs']
