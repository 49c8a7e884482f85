import asyncio
import json
from unittest.mock import AsyncMock

import httpx
import pytest

from course_rag.llm.client import LLMClient, LLMError
from course_rag.retrieval.query_variations import (
    QueryVariationGenerator,
    QueryVariations,
)


def _chat_response(content):
    return httpx.Response(
        200,
        json={"choices": [{"message": {"role": "assistant", "content": content}}]},
    )


class TestLLMClient:
    @pytest.mark.asyncio
    async def test_generate_object_parses_schema(self):
        captured = {}

        def handler(request: httpx.Request) -> httpx.Response:
            captured["url"] = str(request.url)
            captured["body"] = json.loads(request.content)
            return _chat_response('{"variations": ["binary trees", "tree data structures"]}')

        client = LLMClient(
            api_key="test",
            model="test-model",
            base_url="https://llm.test/v1/",
            transport=httpx.MockTransport(handler),
        )

        output = await client.generate_object("prompt", QueryVariations)

        assert output.variations == ["binary trees", "tree data structures"]
        assert captured["url"] == "https://llm.test/v1/chat/completions"
        assert captured["body"]["model"] == "test-model"
        response_format = captured["body"]["response_format"]
        assert response_format["type"] == "json_schema"
        assert response_format["json_schema"]["name"] == "QueryVariations"
        assert "variations" in response_format["json_schema"]["schema"]["properties"]

    @pytest.mark.asyncio
    async def test_output_not_matching_schema_raises(self):
        client = LLMClient(
            api_key="test",
            transport=httpx.MockTransport(lambda r: _chat_response('{"variations": "nope"}')),
        )

        with pytest.raises(LLMError):
            await client.generate_object("prompt", QueryVariations)

    @pytest.mark.asyncio
    async def test_empty_message_raises(self):
        client = LLMClient(
            api_key="test",
            transport=httpx.MockTransport(lambda r: _chat_response(None)),
        )

        with pytest.raises(LLMError):
            await client.generate_object("prompt", QueryVariations)

    @pytest.mark.asyncio
    async def test_provider_error_raises(self):
        client = LLMClient(
            api_key="test",
            transport=httpx.MockTransport(lambda r: httpx.Response(503)),
        )

        with pytest.raises(httpx.HTTPStatusError):
            await client.generate_object("prompt", QueryVariations)


class TestQueryVariationGenerator:
    @pytest.mark.asyncio
    async def test_original_query_first_then_variations(self):
        llm = AsyncMock(spec=LLMClient)
        llm.generate_object.return_value = QueryVariations(
            variations=["what is recursion", "recursive functions in programming"]
        )

        queries = await QueryVariationGenerator(llm).generate("recursion")

        assert queries == [
            "recursion",
            "what is recursion",
            "recursive functions in programming",
        ]
        prompt, schema = llm.generate_object.await_args.args
        assert '"recursion"' in prompt
        assert schema is QueryVariations

    @pytest.mark.asyncio
    async def test_truncated_to_three_queries(self):
        llm = AsyncMock(spec=LLMClient)
        llm.generate_object.return_value = QueryVariations(variations=["a", "b", "c", "d"])

        queries = await QueryVariationGenerator(llm).generate("q")

        assert queries == ["q", "a", "b"]

    @pytest.mark.asyncio
    async def test_blank_variations_are_dropped(self):
        llm = AsyncMock(spec=LLMClient)
        llm.generate_object.return_value = QueryVariations(variations=["  ", "real one"])

        queries = await QueryVariationGenerator(llm).generate("q")

        assert queries == ["q", "real one"]

    @pytest.mark.asyncio
    async def test_llm_failure_falls_back_to_original(self):
        llm = AsyncMock(spec=LLMClient)
        llm.generate_object.side_effect = LLMError("malformed")

        assert await QueryVariationGenerator(llm).generate("q") == ["q"]

    @pytest.mark.asyncio
    async def test_timeout_falls_back_to_original(self):
        async def slow(*args, **kwargs):
            await asyncio.sleep(1)
            return QueryVariations(variations=["late"])

        llm = AsyncMock(spec=LLMClient)
        llm.generate_object.side_effect = slow

        queries = await QueryVariationGenerator(llm, timeout=0.01).generate("q")

        assert queries == ["q"]
