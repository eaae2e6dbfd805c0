"""Image analysis and translation over an OpenAI-compatible chat API.

Both clients talk to ``/chat/completions``, either on OpenAI (bearer token) or
on an Azure OpenAI deployment (``api-key`` header plus ``api-version`` query).
Any failure, including missing credentials, raises :class:`ProviderError`.
"""

import dataclasses
import logging
from typing import Any, Literal

import httpx

from .. import settings

logger = logging.getLogger(__name__)

AnalysisKind = Literal['title', 'subtitle', 'tags', 'description']

CURATOR_INSTRUCTIONS = (
    'You are a professional photography curator and copywriter. '
    'Keep outputs concise and usable.'
)
TRANSLATOR_INSTRUCTIONS = (
    'You are a professional translator. Preserve meaning, tone, and style. '
    'Return ONLY the translated text, with no quotes or extra commentary.'
)

PROMPTS: dict[str, str] = {
    'title': (
        'Generate a concise, evocative, and lyrical title for this photograph.\n'
        'Guidelines:\n'
        '1) Capture the core subject and atmosphere with imagery\n'
        '2) Prefer refined, poetic language; avoid cliches and generic words\n'
        '3) Keep it short: about 2-7 words\n'
        '4) No punctuation, no quotes, no extra commentary\n'
        'Return ONLY the title text.'
    ),
    'subtitle': (
        'Generate a poetic, atmospheric subtitle that complements the title.\n'
        'Guidelines:\n'
        '1) Add context: setting, time, style, or mood\n'
        '2) Refined and lyrical, avoid cliches; natural rhythm\n'
        '3) Keep length around 12-24 words\n'
        '4) No quotes\n'
        'Return ONLY the subtitle text.'
    ),
    'description': (
        'Analyze the photo and write a concise, elegant description for a '
        'photography portfolio (at most 120 words). Include the main subject '
        'and scene, style and mood, color and light qualities, overall feeling.\n'
        'Return ONLY the description text.'
    ),
    'tags': (
        'Generate tags for this photograph.\n'
        'Cover: subject category, style, color, and mood.\n'
        'Return a single comma-separated line with up to 10 English tags. '
        'No extra text.'
    ),
}

_LANGUAGE_NAMES = {
    'auto': 'auto-detected language',
    'en': 'English',
    'zh': 'Simplified Chinese',
}


class ProviderError(Exception):
    """An AI provider call failed or returned nothing usable."""


@dataclasses.dataclass(frozen=True)
class ProviderConfig:
    """Where and how to reach a chat completions endpoint."""

    api_key: str
    model: str
    base_url: str = 'https://api.openai.com/v1'
    azure_endpoint: str = ''
    azure_api_version: str = ''
    timeout: float = 30.0

    @property
    def is_azure(self) -> bool:
        return bool(self.azure_endpoint)

    @property
    def url(self) -> str:
        if self.is_azure:
            endpoint = self.azure_endpoint.rstrip('/')
            return f'{endpoint}/openai/deployments/{self.model}/chat/completions'
        return f'{self.base_url.rstrip("/")}/chat/completions'

    @property
    def headers(self) -> dict[str, str]:
        if self.is_azure:
            return {'api-key': self.api_key, 'content-type': 'application/json'}
        return {
            'Authorization': f'Bearer {self.api_key}',
            'content-type': 'application/json',
        }

    @property
    def params(self) -> dict[str, str]:
        if self.is_azure:
            return {'api-version': self.azure_api_version}
        return {}

    @classmethod
    def from_settings(cls, kind: Literal['vision', 'text']) -> 'ProviderConfig':
        """Build a config for the vision or text model from settings."""
        model = (
            settings.OPENAI_VISION_MODEL
            if kind == 'vision'
            else settings.OPENAI_TRANSLATION_MODEL
        )
        if settings.AZURE_OPENAI_ENDPOINT:
            return cls(
                api_key=settings.AZURE_OPENAI_API_KEY or settings.OPENAI_API_KEY,
                model=settings.AZURE_OPENAI_DEPLOYMENT or model,
                azure_endpoint=settings.AZURE_OPENAI_ENDPOINT,
                azure_api_version=settings.AZURE_OPENAI_API_VERSION,
                timeout=settings.AI_TIMEOUT_SECONDS,
            )
        return cls(
            api_key=settings.OPENAI_API_KEY,
            model=model,
            base_url=settings.OPENAI_BASE_URL,
            timeout=settings.AI_TIMEOUT_SECONDS,
        )


def _extract_text(data: Any) -> str:
    try:
        content = data['choices'][0]['message']['content']
    except (KeyError, IndexError, TypeError) as exc:
        raise ProviderError(f'Unexpected response shape: {exc!r}') from exc
    text = str(content or '').strip()
    if not text:
        raise ProviderError('Provider returned an empty completion')
    return text


async def complete(
    config: ProviderConfig,
    messages: list[dict[str, Any]],
    temperature: float | None = None,
) -> str:
    """Run one chat completion and return the stripped message text."""
    if not config.api_key:
        raise ProviderError('AI provider API key is not configured')

    body: dict[str, Any] = {'messages': messages}
    if not config.is_azure:
        body['model'] = config.model
    if temperature is not None:
        body['temperature'] = temperature

    try:
        async with httpx.AsyncClient() as client:
            response = await client.post(
                config.url,
                headers=config.headers,
                params=config.params,
                json=body,
                timeout=config.timeout,
            )
            response.raise_for_status()
            data = response.json()
    except httpx.HTTPError as exc:
        raise ProviderError(f'AI provider request failed: {exc}') from exc
    except ValueError as exc:
        raise ProviderError(f'AI provider returned invalid JSON: {exc}') from exc
    return _extract_text(data)


class ImageAnalyzer:
    """Generates titles, subtitles, descriptions and tags from an image URL."""

    def __init__(self, config: ProviderConfig) -> None:
        self.config = config

    @classmethod
    def from_settings(cls) -> 'ImageAnalyzer':
        return cls(ProviderConfig.from_settings('vision'))

    async def analyze(self, image_url: str, kind: AnalysisKind) -> str:
        """Return the model's text for ``kind``; raises ProviderError."""
        if kind not in PROMPTS:
            raise ValueError(f'Unknown analysis kind: {kind}')
        if not image_url:
            raise ProviderError('No image URL to analyze')
        messages = [
            {'role': 'system', 'content': CURATOR_INSTRUCTIONS},
            {
                'role': 'user',
                'content': [
                    {'type': 'text', 'text': PROMPTS[kind]},
                    {'type': 'image_url', 'image_url': {'url': image_url}},
                ],
            },
        ]
        text = await complete(self.config, messages)
        logger.debug('Analyzed %s for %s', kind, image_url)
        return text


class Translator:
    """Translates short texts between English and Chinese."""

    def __init__(self, config: ProviderConfig) -> None:
        self.config = config

    @classmethod
    def from_settings(cls) -> 'Translator':
        return cls(ProviderConfig.from_settings('text'))

    async def translate(self, text: str, target: str, source: str = 'auto') -> str:
        """Translate ``text`` into ``target``; raises ProviderError."""
        if not text.strip():
            return ''
        source_label = _LANGUAGE_NAMES.get(source, source)
        target_label = _LANGUAGE_NAMES.get(target, target)
        messages = [
            {'role': 'system', 'content': TRANSLATOR_INSTRUCTIONS},
            {
                'role': 'user',
                'content': (
                    f'Translate the following text from {source_label} '
                    f'to {target_label}:\n{text}'
                ),
            },
        ]
        return await complete(self.config, messages, temperature=0.2)
