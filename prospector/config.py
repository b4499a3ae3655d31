"""
Centralized configuration — env vars and shared constants.

LOG_LEVEL / LOG_FORMAT are read by logging_config.configure_logging().
"""
import os


def _csv(value):
    return [v.strip() for v in (value or '').split(',') if v.strip()]


# ── Logging ──────────────────────────────────────────────────────────────────
LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO')
LOG_FORMAT = os.getenv('LOG_FORMAT', 'text')

# ── Redis ─────────────────────────────────────────────────────────────────────
REDIS_URL = os.getenv('REDIS_URL', 'redis://localhost:6379/0')

# ── PostgreSQL ────────────────────────────────────────────────────────────────
DATABASE_URL = os.getenv('DATABASE_URL', 'sqlite:///local.db')

# ── Research providers ────────────────────────────────────────────────────────
GOOGLE_MAPS_API_KEY = os.getenv('GOOGLE_MAPS_API_KEY')
GOOGLE_MAPS_API_URL = os.getenv('GOOGLE_MAPS_API_URL', 'https://maps.googleapis.com/maps/api/place')

FIRECRAWL_API_KEY = os.getenv('FIRECRAWL_API_KEY')
FIRECRAWL_API_URL = os.getenv('FIRECRAWL_API_URL', 'https://api.firecrawl.dev/v1')

PERPLEXITY_API_KEY = os.getenv('PERPLEXITY_API_KEY')
PERPLEXITY_API_URL = os.getenv('PERPLEXITY_API_URL', 'https://api.perplexity.ai')
PERPLEXITY_MODEL = os.getenv('PERPLEXITY_MODEL', 'sonar')

# ── OpenAI ────────────────────────────────────────────────────────────────────
OPENAI_API_KEY = os.getenv('OPENAI_API_KEY')
OPENAI_MODEL = os.getenv('OPENAI_MODEL', 'gpt-4o-mini')

# ── Slack notifications ──────────────────────────────────────────────────────
SLACK_WEBHOOK_URL = os.getenv('SLACK_WEBHOOK_URL')

# ── Orchestration ─────────────────────────────────────────────────────────────
MAX_IN_FLIGHT_PASSES = int(os.getenv('MAX_IN_FLIGHT_PASSES', '3'))
ADAPTER_TIMEOUT_SECONDS = float(os.getenv('ADAPTER_TIMEOUT_SECONDS', '60'))
ATTEMPT_LOCK_TTL = int(os.getenv('ATTEMPT_LOCK_TTL', '900'))  # seconds
MOCK_PIPELINE = bool(os.getenv('MOCK_PIPELINE'))

# ── Qualification ─────────────────────────────────────────────────────────────
AUTO_QUALIFY_THRESHOLD = int(os.getenv('AUTO_QUALIFY_THRESHOLD', '70'))
SERVICE_AREA_CITIES = _csv(os.getenv(
    'SERVICE_AREA_CITIES', 'Denver,Colorado Springs,Aurora,Fort Collins,Boulder',
))
SERVICE_AREA_STATES = _csv(os.getenv('SERVICE_AREA_STATES', 'CO'))

# ── Industry values ──────────────────────────────────────────────────────────
INDUSTRIES = [
    'restaurants',
    'retail',
    'professional_services',
    'healthcare',
    'real_estate',
    'automotive',
    'home_services',
    'fitness',
    'beauty_salons',
    'legal_services',
    'other',
]
