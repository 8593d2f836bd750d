"""
Model gateway: one ``generate(prompt, model, temperature)`` call over a
text-generation backend.

Two failures are kept apart so callers can word their errors:

    ModelCallFailed     the call itself errored (network, auth, quota)
    EmptyModelResponse  the call succeeded but produced no usable text

There is no retry here; a failed call is reported once.
"""

import logging
from typing import Dict, Optional, Protocol

from openai import AsyncOpenAI

from autotester import config

logger = logging.getLogger(__name__)


class ModelError(Exception):
    def __init__(self, model: str, message: str):
        super().__init__(message)
        self.model = model


class ModelCallFailed(ModelError):
    pass


class EmptyModelResponse(ModelError):
    def __init__(self, model: str):
        super().__init__(model, f"AI model {model} returned no response.")


class ModelGateway(Protocol):
    async def generate(self, prompt: str, model: str, temperature: float) -> str: ...


class OpenAIGateway:
    def __init__(self, client: Optional[AsyncOpenAI] = None):
        self._client = client

    def _get_client(self) -> AsyncOpenAI:
        if self._client is None:
            self._client = AsyncOpenAI(api_key=config.OPENAI_API_KEY)
        return self._client

    async def generate(self, prompt: str, model: str, temperature: float) -> str:
        try:
            resp = await self._get_client().chat.completions.create(
                model=model,
                temperature=temperature,
                messages=[{"role": "user", "content": prompt}],
            )
        except Exception as e:
            logger.error("Error calling OpenAI model %s: %s", model, e)
            raise ModelCallFailed(model, f"Failed to get response from AI model {model}") from e

        u = getattr(resp, "usage", None)
        if u:
            logger.info(
                "Model %s used %s prompt / %s completion tokens",
                model,
                getattr(u, "prompt_tokens", 0),
                getattr(u, "completion_tokens", 0),
            )
        text = resp.choices[0].message.content if resp.choices else None
        if not text or not text.strip():
            logger.warning("OpenAI model %s returned no text content", model)
            raise EmptyModelResponse(model)
        return text


class GeminiGateway:
    """Gemini through google-genai: Vertex AI when a project is set, else an AI Studio key."""

    def __init__(self, client=None):
        self._client = client

    def _get_client(self):
        if self._client is None:
            from google import genai

            if config.GOOGLE_CLOUD_PROJECT:
                self._client = genai.Client(
                    vertexai=True,
                    project=config.GOOGLE_CLOUD_PROJECT,
                    location=config.GOOGLE_CLOUD_LOCATION,
                )
            else:
                self._client = genai.Client(api_key=config.GEMINI_API_KEY)
        return self._client

    async def generate(self, prompt: str, model: str, temperature: float) -> str:
        from google.genai import types

        try:
            response = await self._get_client().aio.models.generate_content(
                model=model,
                contents=prompt,
                config=types.GenerateContentConfig(temperature=temperature),
            )
        except Exception as e:
            logger.error("Error calling Gemini model %s: %s", model, e)
            raise ModelCallFailed(model, f"Failed to get response from AI model {model}") from e

        usage = getattr(response, "usage_metadata", None)
        if usage:
            logger.info(
                "Model %s used %s prompt / %s completion tokens",
                model,
                getattr(usage, "prompt_token_count", 0),
                getattr(usage, "candidates_token_count", 0),
            )
        text = getattr(response, "text", None)
        if not text or not text.strip():
            logger.warning("Gemini model %s returned no text response parts", model)
            raise EmptyModelResponse(model)
        return text


class ModelRouter:
    """Dispatches to a backend by model id prefix; unknown prefixes go to OpenAI."""

    def __init__(self, backends: Dict[str, ModelGateway], default: ModelGateway):
        self.backends = backends
        self.default = default

    def backend_for(self, model: str) -> ModelGateway:
        for prefix, backend in self.backends.items():
            if model.lower().startswith(prefix):
                return backend
        return self.default

    async def generate(self, prompt: str, model: str, temperature: float) -> str:
        return await self.backend_for(model).generate(prompt, model, temperature)


_router: Optional[ModelRouter] = None


def get_model_gateway() -> ModelGateway:
    global _router
    if _router is None:
        _router = ModelRouter({"gemini": GeminiGateway()}, default=OpenAIGateway())
    return _router
