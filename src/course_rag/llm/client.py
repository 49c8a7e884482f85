from typing import Optional, Type, TypeVar

import httpx
from pydantic import BaseModel, ValidationError

from ..config import settings

T = TypeVar("T", bound=BaseModel)


class LLMError(RuntimeError):
    """Raised when the LLM call fails or returns output not matching the schema."""


class LLMClient:
    def __init__(
        self,
        api_key: str | None = None,
        model: str | None = None,
        base_url: str | None = None,
        timeout: float | None = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        fallback_key = settings.llm_api_key or settings.openai_api_key
        self.api_key = api_key or fallback_key.get_secret_value()
        self.model = model or settings.llm_model
        self.base_url = (base_url or settings.llm_base_url).rstrip("/")
        self.timeout = timeout if timeout is not None else settings.llm_timeout
        self._transport = transport

    async def generate_object(
        self,
        prompt: str,
        schema: Type[T],
        temperature: float = 0.7,
    ) -> T:
        """
        Ask an OpenAI-compatible chat endpoint for JSON matching ``schema``
        and return the parsed model instance, e.g.:

            await client.generate_object(prompt, QueryVariations)
            -> QueryVariations(variations=["...", "..."])
        """
        payload = {
            "model": self.model,
            "messages": [{"role": "user", "content": prompt}],
            "temperature": temperature,
            "response_format": {
                "type": "json_schema",
                "json_schema": {
                    "name": schema.__name__,
                    "schema": schema.model_json_schema(),
                },
            },
        }

        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            resp = await client.post(
                f"{self.base_url}/chat/completions",
                json=payload,
                headers={"Authorization": f"Bearer {self.api_key}"},
            )
        resp.raise_for_status()
        data = resp.json()

        try:
            content = data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as exc:
            raise LLMError("LLM response missing message content.") from exc

        if not content:
            raise LLMError("LLM returned an empty message.")

        try:
            return schema.model_validate_json(content)
        except ValidationError as exc:
            raise LLMError(f"LLM output does not match {schema.__name__}") from exc
