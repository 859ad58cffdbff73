"""
Narration providers.

Each provider exposes the same capability: ``name``, ``is_available()``,
``probe()`` and ``request(prompt, ...)``. The chain holds them in a fixed
order; adding a provider means adding an entry, not a branch.

Order: local Ollama -> Groq -> OpenRouter.
"""

import asyncio
from abc import ABC, abstractmethod
from typing import Dict, List, Optional

from groq import APIError as GroqAPIError
from groq import AsyncGroq

from heatatlas.config import settings
from heatatlas.services.base import BaseService
from heatatlas.utils.exceptions import ExternalServiceError, NarrationProviderError
from heatatlas.utils.logger import get_logger

logger = get_logger(__name__)


class NarrationProvider(ABC):
    """One text-generation backend."""

    name: str = "provider"

    def __init__(self):
        self.available = False

    def is_available(self) -> bool:
        return self.available

    @abstractmethod
    async def probe(self) -> bool:
        """Decide availability once (reachability or credentials). Never raises."""

    @abstractmethod
    async def request(self, prompt: str, system: str, max_tokens: int, temperature: float) -> str:
        """
        Generate text.

        Raises:
            NarrationProviderError: the backend failed or returned nothing usable
        """

    async def close(self):
        pass


# ============================================================================
# OLLAMA (local)
# ============================================================================

class OllamaProvider(BaseService, NarrationProvider):
    """Local Ollama server; available when ``GET /api/tags`` answers within the probe timeout."""

    name = "ollama"

    def __init__(
        self,
        base_url: Optional[str] = None,
        model: Optional[str] = None,
        probe_timeout: Optional[float] = None,
    ):
        BaseService.__init__(
            self,
            base_url=base_url or settings.OLLAMA_URL,
            timeout=settings.NARRATION_TIMEOUT_SECONDS,
            max_retries=2,
        )
        NarrationProvider.__init__(self)
        self.model = model or settings.OLLAMA_MODEL
        self.probe_timeout = probe_timeout or settings.OLLAMA_PROBE_TIMEOUT_SECONDS

    async def health_check(self) -> bool:
        try:
            await self.get("/api/tags", timeout=self.probe_timeout, max_retries=1)
            return True
        except (ExternalServiceError, ValueError):
            return False

    async def probe(self) -> bool:
        self.available = await self.health_check()
        if self.available:
            logger.info("Ollama local model detected", model=self.model)
        else:
            logger.info("Ollama not reachable, relying on hosted providers", url=self.base_url)
        return self.available

    async def request(self, prompt: str, system: str, max_tokens: int, temperature: float) -> str:
        payload = {
            "model": self.model,
            "prompt": f"{system}\n\n{prompt}",
            "stream": False,
            "options": {"temperature": temperature, "num_predict": max_tokens},
        }
        try:
            data = await self.post("/api/generate", json_data=payload)
            return data["response"]
        except ExternalServiceError as e:
            raise NarrationProviderError(e.message, provider=self.name) from e
        except (KeyError, TypeError, ValueError) as e:
            raise NarrationProviderError("Malformed Ollama response", provider=self.name) from e


# ============================================================================
# GROQ (hosted, SDK)
# ============================================================================

class GroqProvider(NarrationProvider):
    """Groq chat completions through the official async client; available with an API key."""

    name = "groq"

    def __init__(self, api_key: Optional[str] = None, model: Optional[str] = None):
        super().__init__()
        self.api_key = api_key if api_key is not None else settings.GROQ_API_KEY
        self.model = model or settings.GROQ_MODEL
        self._client: Optional[AsyncGroq] = None

    @property
    def client(self) -> AsyncGroq:
        if self._client is None:
            self._client = AsyncGroq(api_key=self.api_key, timeout=settings.NARRATION_TIMEOUT_SECONDS)
        return self._client

    async def probe(self) -> bool:
        self.available = bool(self.api_key)
        return self.available

    async def request(self, prompt: str, system: str, max_tokens: int, temperature: float) -> str:
        try:
            response = await self.client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": system},
                    {"role": "user", "content": prompt},
                ],
                temperature=temperature,
                max_tokens=max_tokens,
            )
            return response.choices[0].message.content or ""
        except GroqAPIError as e:
            raise NarrationProviderError(f"Groq request failed: {e}", provider=self.name) from e
        except (IndexError, AttributeError) as e:
            raise NarrationProviderError("Malformed Groq response", provider=self.name) from e

    async def close(self):
        if self._client is not None:
            await self._client.close()


# ============================================================================
# OPENROUTER (hosted, HTTP)
# ============================================================================

class OpenRouterProvider(BaseService, NarrationProvider):
    """OpenRouter chat completions; available with an API key."""

    name = "openrouter"

    def __init__(self, api_key: Optional[str] = None, model: Optional[str] = None, base_url: Optional[str] = None):
        BaseService.__init__(
            self,
            base_url=base_url or settings.OPENROUTER_URL,
            api_key=api_key if api_key is not None else settings.OPENROUTER_API_KEY,
            timeout=settings.NARRATION_TIMEOUT_SECONDS,
            max_retries=2,
        )
        NarrationProvider.__init__(self)
        self.model = model or settings.OPENROUTER_MODEL

    async def health_check(self) -> bool:
        return bool(self.api_key)

    async def probe(self) -> bool:
        self.available = await self.health_check()
        return self.available

    async def request(self, prompt: str, system: str, max_tokens: int, temperature: float) -> str:
        payload = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": system},
                {"role": "user", "content": prompt},
            ],
            "max_tokens": max_tokens,
            "temperature": temperature,
        }
        try:
            data = await self.post("/chat/completions", json_data=payload)
            return data["choices"][0]["message"]["content"]
        except ExternalServiceError as e:
            raise NarrationProviderError(e.message, provider=self.name) from e
        except (KeyError, IndexError, TypeError, ValueError) as e:
            raise NarrationProviderError("Malformed OpenRouter response", provider=self.name) from e


# ============================================================================
# CHAIN
# ============================================================================

class ProviderChain:
    """Static ordered provider list."""

    def __init__(self, providers: Optional[List[NarrationProvider]] = None):
        self.providers = providers if providers is not None else [
            OllamaProvider(),
            GroqProvider(),
            OpenRouterProvider(),
        ]

    async def probe_all(self) -> Dict[str, bool]:
        """Probe every provider concurrently, once, at startup."""
        results = await asyncio.gather(*(p.probe() for p in self.providers))
        availability = {p.name: bool(r) for p, r in zip(self.providers, results)}
        logger.info("Narration providers probed", availability=availability)
        return availability

    def available(self) -> List[NarrationProvider]:
        return [p for p in self.providers if p.is_available()]

    def availability(self) -> Dict[str, bool]:
        return {p.name: p.is_available() for p in self.providers}

    async def close(self):
        for provider in self.providers:
            await provider.close()
