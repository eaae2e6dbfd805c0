"""Portfolio service settings read from environment variables."""

import os

DEFAULT_CONCURRENCY = 4
MAX_CONCURRENCY = 6


def parse_concurrency(raw: str | None, default: int = DEFAULT_CONCURRENCY) -> int:
    """Parse a worker count and clamp it to [1, MAX_CONCURRENCY]."""
    try:
        value = int(raw) if raw is not None and raw.strip() else default
    except ValueError:
        value = default
    return max(1, min(MAX_CONCURRENCY, value))


def _flag(name: str) -> bool:
    return os.environ.get(name, '').strip().lower() in ('1', 'true', 'yes', 'on')


DATA_DIR: str = os.environ.get('DATA_DIR', 'data')
DATABASE_URL: str = os.environ.get('DATABASE_URL', f'sqlite:///{DATA_DIR}/portfolio.db')
DATABASE_ECHO: bool = _flag('DATABASE_ECHO')

# Object storage (S3-compatible, e.g. Cloudflare R2)
BUCKET_URL: str = os.environ.get('BUCKET_URL', '')
R2_ENDPOINT_URL: str | None = os.environ.get('R2_ENDPOINT_URL') or None
R2_ACCESS_KEY_ID: str = os.environ.get('R2_ACCESS_KEY_ID', '')
R2_SECRET_ACCESS_KEY: str = os.environ.get('R2_SECRET_ACCESS_KEY', '')
R2_BUCKET_NAME: str = os.environ.get('R2_BUCKET_NAME', '')

# AI providers (OpenAI or Azure OpenAI)
OPENAI_API_KEY: str = os.environ.get('OPENAI_API_KEY', '')
OPENAI_BASE_URL: str = os.environ.get('OPENAI_BASE_URL', 'https://api.openai.com/v1')
OPENAI_VISION_MODEL: str = os.environ.get('OPENAI_VISION_MODEL', 'gpt-4o-mini')
OPENAI_TRANSLATION_MODEL: str = os.environ.get(
    'OPENAI_TRANSLATION_MODEL', 'gpt-4o-mini'
)
AZURE_OPENAI_ENDPOINT: str = os.environ.get('AZURE_OPENAI_ENDPOINT', '')
AZURE_OPENAI_API_KEY: str = os.environ.get('AZURE_OPENAI_API_KEY', '')
AZURE_OPENAI_DEPLOYMENT: str = os.environ.get('AZURE_OPENAI_DEPLOYMENT', '')
AZURE_OPENAI_API_VERSION: str = os.environ.get(
    'AZURE_OPENAI_API_VERSION', '2024-02-15-preview'
)
AI_TIMEOUT_SECONDS: float = float(os.environ.get('AI_TIMEOUT_SECONDS', '30'))

# Enrichment worker pool size
PICTURE_JOB_CONCURRENCY: int = parse_concurrency(
    os.environ.get('PICTURE_JOB_CONCURRENCY')
)

GEOCODER_USER_AGENT: str = os.environ.get('GEOCODER_USER_AGENT', 'PortfolioAdmin/1.0')
