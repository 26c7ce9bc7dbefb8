"""
Best-effort machine translation of plant text fields.

Providers: LibreTranslate (or any compatible endpoint), DeepL and Google
Translate v2, chosen by TRANSLATE_PROVIDER ("none" disables translation).
``Translator.translate`` fails closed: after three attempts it returns the
input text unchanged and never raises.

Results are kept in a TranslationCache, a bounded LRU owned by the caller and
passed in, so the FastAPI app and the worker each hold their own instance.
"""
import asyncio
import hashlib
import logging
import threading
from collections import OrderedDict
from typing import Any, Optional

import httpx

from app.core.config import settings
from app.core.errors import TranslationFailure
from app.schemas.plant import PlantRecord

logger = logging.getLogger(__name__)

_MAX_ATTEMPTS = 3

TRANSLATABLE_FIELDS: tuple[str, ...] = (
    "common_name",
    "growth_rate",
    "type",
    "foliage",
    "leaf",
    "flower",
    "ripen",
    "reproduction",
    "habitat",
    "habitat_range",
    "other_uses",
    "description",
    "soils",
    "preferences",
    "tolerances",
)


class TranslationCache:
    """Thread-safe LRU mapping of cache key -> translated text."""

    def __init__(self, max_entries: Optional[int] = None):
        self.max_entries = max_entries or settings.TRANSLATE_CACHE_SIZE
        self._entries: "OrderedDict[str, str]" = OrderedDict()
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            if key not in self._entries:
                return None
            self._entries.move_to_end(key)
            return self._entries[key]

    def put(self, key: str, value: str) -> None:
        with self._lock:
            self._entries[key] = value
            self._entries.move_to_end(key)
            while len(self._entries) > self.max_entries:
                self._entries.popitem(last=False)

    def __len__(self) -> int:
        return len(self._entries)


def cache_key(provider: str, target: str, text: str) -> str:
    digest = hashlib.sha256(text.encode("utf-8")).hexdigest()
    return f"{provider}|auto|{target}|{digest}"


class Translator:
    def __init__(
        self,
        cache: TranslationCache,
        provider: Optional[str] = None,
        target: Optional[str] = None,
        api_url: Optional[str] = None,
        api_key: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        retry_delay: float = 0.5,
    ):
        self.cache = cache
        self.provider = (provider if provider is not None else settings.TRANSLATE_PROVIDER).strip().lower()
        self.target = target or settings.TRANSLATE_TARGET
        self.api_url = api_url
        self.api_key = api_key if api_key is not None else settings.TRANSLATE_API_KEY
        self.retry_delay = retry_delay
        self._transport = transport

    @property
    def enabled(self) -> bool:
        return self.provider not in ("", "none")

    # ── Providers ────────────────────────────────────────────────────────────

    async def _libretranslate(self, client: httpx.AsyncClient, text: str, target: str) -> Optional[str]:
        payload: dict[str, Any] = {"q": text, "source": "auto", "target": target, "format": "text"}
        if self.api_key:
            payload["api_key"] = self.api_key
        response = await client.post(self.api_url or settings.TRANSLATE_API_URL, json=payload)
        self._check(response)
        body = response.json()
        return body.get("translatedText") or body.get("translated") or body.get("result")

    async def _deepl(self, client: httpx.AsyncClient, text: str, target: str) -> Optional[str]:
        response = await client.post(
            self.api_url or settings.DEEPL_API_URL,
            data={"auth_key": self.api_key, "text": text, "target_lang": target[:2].upper()},
        )
        self._check(response)
        translations = response.json().get("translations") or []
        return translations[0].get("text") if translations else None

    async def _google(self, client: httpx.AsyncClient, text: str, target: str) -> Optional[str]:
        response = await client.post(
            self.api_url or settings.GOOGLE_TRANSLATE_URL,
            params={"key": self.api_key},
            json={"q": text, "target": target, "format": "text"},
        )
        self._check(response)
        translations = (response.json().get("data") or {}).get("translations") or []
        return translations[0].get("translatedText") if translations else None

    def _check(self, response: httpx.Response) -> None:
        if response.status_code >= 400:
            raise TranslationFailure(f"{self.provider}: HTTP {response.status_code}: {response.text[:200]}")
        content_type = response.headers.get("content-type", "")
        if "json" not in content_type:
            raise TranslationFailure(f"{self.provider}: non-JSON body ({content_type or 'no content-type'})")

    async def _request(self, text: str, target: str) -> str:
        handlers = {
            "libretranslate": self._libretranslate,
            "deepl": self._deepl,
            "google": self._google,
        }
        handler = handlers.get(self.provider)
        if handler is None:
            raise TranslationFailure(f"unknown provider {self.provider!r}")
        async with httpx.AsyncClient(timeout=settings.SOURCE_TIMEOUT_SECONDS, transport=self._transport) as client:
            translated = await handler(client, text, target)
        if not translated:
            raise TranslationFailure(f"{self.provider}: empty translation")
        return translated

    # ── Public API ───────────────────────────────────────────────────────────

    async def translate(self, text: Optional[str], target: Optional[str] = None) -> Optional[str]:
        """Translate ``text``; on any failure return it unchanged."""
        if not self.enabled or text is None or not str(text).strip():
            return text
        target = target or self.target
        key = cache_key(self.provider, target, text)
        cached = self.cache.get(key)
        if cached is not None:
            return cached

        for attempt in range(1, _MAX_ATTEMPTS + 1):
            try:
                translated = await self._request(text, target)
            except (httpx.HTTPError, TranslationFailure, ValueError) as exc:
                if attempt < _MAX_ATTEMPTS:
                    logger.debug("translate: attempt %d/%d failed: %s", attempt, _MAX_ATTEMPTS, exc)
                    await asyncio.sleep(self.retry_delay * attempt)
                    continue
                logger.warning("translate: giving up after %d attempts: %s", _MAX_ATTEMPTS, exc)
                return text
            self.cache.put(key, translated)
            return translated
        return text

    async def translate_record(
        self,
        record: PlantRecord,
        fields: tuple[str, ...] = TRANSLATABLE_FIELDS,
        target: Optional[str] = None,
    ) -> PlantRecord:
        """Copy of ``record`` with ``fields`` translated. Lists are translated item by item."""
        if not self.enabled:
            return record

        async def _field(name: str) -> tuple[str, Any]:
            value = getattr(record, name)
            if isinstance(value, list):
                return name, list(await asyncio.gather(*(self.translate(item, target) for item in value)))
            return name, await self.translate(value, target)

        updates = dict(await asyncio.gather(*(_field(name) for name in fields)))
        return record.model_copy(update=updates)
