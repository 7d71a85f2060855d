"""Clients for the OpenAI-compatible chat and embedding endpoints.

Both clients share one httpx.AsyncClient whose lifetime is owned by the
caller (the API lifespan or the CLI command).
"""

import logging

import httpx

from .config import Settings

log = logging.getLogger("companion")


class CompletionError(RuntimeError):
    """The chat endpoint produced no usable reply."""


def _headers(settings: Settings) -> dict:
    headers = {
        "Authorization": f"Bearer {settings.api_key}",
        "content-type": "application/json",
    }
    # OpenRouter etiquette headers
    if settings.is_openrouter:
        headers["HTTP-Referer"] = settings.public_url
        headers["X-Title"] = settings.app_title
    return headers


class EmbeddingClient:
    """Batch text embedding. Never raises: failures become empty vectors."""

    def __init__(self, settings: Settings, http: httpx.AsyncClient):
        self.settings = settings
        self.http = http

    async def embed(self, texts: list[str]) -> list[list[float]]:
        if not texts:
            return []
        empty = [[] for _ in texts]
        if not self.settings.api_key:
            return empty

        try:
            resp = await self.http.post(
                f"{self.settings.base_url}/embeddings",
                headers=_headers(self.settings),
                json={"model": self.settings.embed_model, "input": texts},
            )
        except httpx.HTTPError as e:
            log.error("embedding request failed: %s", e)
            return empty

        if resp.status_code != 200:
            log.error(
                "embedding api returned %d: %s", resp.status_code, resp.text[:500]
            )
            return empty

        try:
            data = resp.json().get("data") or []
            data = sorted(data, key=lambda d: d.get("index", 0))
            vectors = [[float(x) for x in d["embedding"]] for d in data]
        except (ValueError, TypeError, KeyError, AttributeError) as e:
            log.error("embedding payload unreadable: %s", e)
            return empty

        if len(vectors) != len(texts):
            log.error(
                "embedding api returned %d vectors for %d inputs",
                len(vectors), len(texts),
            )
            return empty
        return vectors


class CompletionClient:
    """Single-shot chat completion: system prompt + one user message."""

    def __init__(self, settings: Settings, http: httpx.AsyncClient):
        self.settings = settings
        self.http = http

    async def complete(self, system: str, user: str) -> str:
        if not self.settings.api_key:
            raise CompletionError("no upstream credential configured")

        body = {
            "model": self.settings.chat_model,
            "messages": [
                {"role": "system", "content": system},
                {"role": "user", "content": user},
            ],
            "stream": False,
        }
        try:
            resp = await self.http.post(
                f"{self.settings.base_url}/chat/completions",
                headers=_headers(self.settings),
                json=body,
            )
        except httpx.HTTPError as e:
            log.error("chat request failed: %s", e)
            raise CompletionError(f"chat request failed: {e}") from e

        if resp.status_code != 200:
            log.error("chat api returned %d: %s", resp.status_code, resp.text[:500])
            raise CompletionError(f"chat api failed ({resp.status_code})")

        try:
            content = resp.json()["choices"][0]["message"]["content"]
        except (ValueError, TypeError, KeyError, IndexError):
            content = None
        if not content or not str(content).strip():
            log.error("chat api returned no content: %s", resp.text[:1000])
            raise CompletionError("chat api returned no content")
        return content
