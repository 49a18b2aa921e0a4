"""
Provider clients used by the tools.

Every generative backend (image, video, music, speech) is reached through the same small
:class:`GenerationProvider` protocol, so tools and the fallback engine can swap providers by name.
The HTTP adapters talk to a provider gateway that exposes asynchronous generation jobs: a submit
call either returns the finished artifact or a job id that is polled until it completes.
"""

import asyncio
import logging
import time
from typing import (
    Any,
    Dict,
    List,
    Mapping,
    Protocol,
    Sequence,
)

import httpx
from pydantic import BaseModel

logger = logging.getLogger(__name__)

_TERMINAL_OK = {"succeeded", "completed", "done"}
_TERMINAL_FAILED = {"failed", "error", "cancelled", "canceled"}

# Aliases the model tends to use for provider names.
_PROVIDER_ALIASES: Mapping[str, str] = {
    "google": "gemini",
    "imagen": "gemini",
    "veo": "veo3",
    "veo-3": "veo3",
    "dall-e": "openai",
    "dalle": "openai",
    "gpt-image": "openai",
    "sora2": "sora",
    "sora-2": "sora",
    "xai": "grok",
    "replicate": "kling",
    "eleven": "elevenlabs",
    "eleven_labs": "elevenlabs",
}


def normalize_provider(name: str | None) -> str | None:
    """Lower-case *name* and map known aliases onto canonical provider keys."""
    if not name:
        return None
    key = name.strip().lower()
    return _PROVIDER_ALIASES.get(key, key) or None


class ProviderResult(BaseModel):
    """Outcome of one provider call."""

    url: str | None = None
    caption: str | None = None
    text: str | None = None
    provider: str | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None and bool(self.url or self.text)


class GenerationProvider(Protocol):
    """A backend able to turn a prompt into a media artifact."""

    name: str

    async def generate(self, prompt: str, **options: Any) -> ProviderResult: ...


class SearchProvider(Protocol):
    async def search(self, query: str, limit: int = 5) -> List[Dict[str, str]]: ...


class TranslationProvider(Protocol):
    async def translate(self, text: str, target_language: str) -> str: ...


# ---------------------------------------------------------------------------
# HTTP adapters
# ---------------------------------------------------------------------------
class HttpGenerationProvider:
    """
    Generation provider behind an HTTP gateway.

    ``POST {base_url}/v1/{kind}/{name}`` submits a job.  The response either carries the artifact
    (``url``) or a ``job_id`` that is polled at ``GET {base_url}/v1/jobs/{job_id}`` until its
    ``status`` is terminal or *max_wait* seconds have passed.
    """

    def __init__(
        self,
        name: str,
        kind: str,
        base_url: str,
        api_key: str | None = None,
        poll_interval: float = 2.0,
        max_wait: float = 300.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.name = name
        self.kind = kind
        self._base_url = base_url.rstrip("/")
        self._headers = {"Authorization": f"Bearer {api_key}"} if api_key else {}
        self._poll_interval = poll_interval
        self._max_wait = max_wait
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self._base_url,
            headers=self._headers,
            timeout=30.0,
            transport=self._transport,
        )

    def _to_result(self, body: Mapping[str, Any]) -> ProviderResult:
        return ProviderResult(
            url=body.get("url") or body.get(f"{self.kind}_url"),
            caption=body.get("caption") or body.get("description") or body.get("revised_prompt"),
            text=body.get("text"),
            provider=self.name,
            error=body.get("error"),
        )

    async def generate(self, prompt: str, **options: Any) -> ProviderResult:
        payload = {"prompt": prompt, **options}
        async with self._client() as client:
            try:
                resp = await client.post(f"/v1/{self.kind}/{self.name}", json=payload)
                resp.raise_for_status()
                body = resp.json()
                job_id = body.get("job_id")
                if not job_id:
                    return self._to_result(body)
                return await self._poll(client, job_id)
            except httpx.HTTPStatusError as exc:
                logger.warning("%s/%s rejected the request: %s", self.kind, self.name, exc)
                return ProviderResult(
                    provider=self.name,
                    error=f"{self.name} returned HTTP {exc.response.status_code}",
                )

    async def _poll(self, client: httpx.AsyncClient, job_id: str) -> ProviderResult:
        deadline = time.monotonic() + self._max_wait
        while True:
            resp = await client.get(f"/v1/jobs/{job_id}")
            resp.raise_for_status()
            body = resp.json()
            status = str(body.get("status", "")).lower()
            if status in _TERMINAL_OK:
                return self._to_result(body)
            if status in _TERMINAL_FAILED:
                return ProviderResult(
                    provider=self.name, error=body.get("error") or f"{self.name} job {status}"
                )
            if time.monotonic() >= deadline:
                return ProviderResult(
                    provider=self.name,
                    error=f"{self.name} did not finish within {self._max_wait:.0f}s",
                )
            logger.debug(
                "Job %s on %s is %s; polling again", job_id, self.name, status or "pending"
            )
            await asyncio.sleep(self._poll_interval)


class SerperSearchProvider:
    """Web search through the Serper API."""

    endpoint = "https://google.serper.dev/search"

    def __init__(self, api_key: str | None, transport: httpx.AsyncBaseTransport | None = None):
        self._api_key = api_key
        self._transport = transport

    async def search(self, query: str, limit: int = 5) -> List[Dict[str, str]]:
        if not self._api_key:
            raise RuntimeError("SERPER_API_KEY is not configured")
        async with httpx.AsyncClient(timeout=30.0, transport=self._transport) as client:
            resp = await client.post(
                self.endpoint,
                headers={"X-API-KEY": self._api_key},
                json={"q": query, "num": limit},
            )
            resp.raise_for_status()
            organic = resp.json().get("organic", [])
        return [
            {
                "title": item.get("title", ""),
                "link": item.get("link", ""),
                "snippet": item.get("snippet", ""),
            }
            for item in organic[:limit]
        ]


class GatewayTranslationProvider:
    """Translation through the provider gateway (``POST /v1/translate``)."""

    def __init__(
        self,
        base_url: str,
        api_key: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._headers = {"Authorization": f"Bearer {api_key}"} if api_key else {}
        self._transport = transport

    async def translate(self, text: str, target_language: str) -> str:
        async with httpx.AsyncClient(
            base_url=self._base_url, headers=self._headers, timeout=30.0, transport=self._transport
        ) as client:
            resp = await client.post(
                "/v1/translate", json={"text": text, "target_language": target_language}
            )
            resp.raise_for_status()
            return str(resp.json().get("text", ""))


# ---------------------------------------------------------------------------
# Provider sets
# ---------------------------------------------------------------------------
class ProviderSet:
    """
    Providers grouped by task type.  The first provider of each group is the primary one.
    """

    def __init__(
        self,
        image: Sequence[GenerationProvider] = (),
        video: Sequence[GenerationProvider] = (),
        audio: Sequence[GenerationProvider] = (),
        speech: GenerationProvider | None = None,
        search: SearchProvider | None = None,
        translation: TranslationProvider | None = None,
    ) -> None:
        self._groups: Dict[str, Dict[str, GenerationProvider]] = {
            "image": {p.name: p for p in image},
            "video": {p.name: p for p in video},
            "audio": {p.name: p for p in audio},
        }
        self.speech = speech
        self.search = search
        self.translation = translation

    def order(self, kind: str) -> List[str]:
        return list(self._groups.get(kind, {}))

    def get(self, kind: str, name: str | None = None) -> GenerationProvider | None:
        group = self._groups.get(kind, {})
        if name is None:
            return next(iter(group.values()), None)
        return group.get(normalize_provider(name) or "")

    def primary(self, kind: str) -> str | None:
        order = self.order(kind)
        return order[0] if order else None


def build_provider_set(settings: Any) -> ProviderSet:
    """Construct the HTTP-backed providers described by *settings*."""

    def http(kind: str, names: Sequence[str]) -> List[GenerationProvider]:
        return [
            HttpGenerationProvider(
                name=normalize_provider(name) or name,
                kind=kind,
                base_url=settings.PROVIDER_GATEWAY_URL,
                api_key=settings.PROVIDER_API_KEY,
                poll_interval=settings.PROVIDER_POLL_INTERVAL,
                max_wait=settings.PROVIDER_MAX_WAIT,
            )
            for name in names
        ]

    audio = http("audio", settings.AUDIO_PROVIDERS)
    speech = http("speech", settings.AUDIO_PROVIDERS[:1])
    return ProviderSet(
        image=http("image", settings.IMAGE_PROVIDERS),
        video=http("video", settings.VIDEO_PROVIDERS),
        audio=audio,
        speech=speech[0] if speech else None,
        search=SerperSearchProvider(settings.SERPER_API_KEY),
        translation=GatewayTranslationProvider(
            settings.PROVIDER_GATEWAY_URL, settings.PROVIDER_API_KEY
        ),
    )
