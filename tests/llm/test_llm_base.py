"""
Tests for LLM provider base class.
"""

import pytest
from pydantic import BaseModel

from chronograph.core.llm.base import LLMProvider


class MockLLM(LLMProvider):
    """Mock LLM that echoes its arguments."""

    def __init__(self):
        self.calls = []

    async def complete(
        self,
        prompt,
        response_format=None,
        max_tokens=2000,
        temperature=0.0,
        system_prompt=None,
        **kwargs,
    ):
        self.calls.append((prompt, max_tokens, temperature, system_prompt))
        if response_format:
            return response_format(answer=prompt, confidence=1.0)
        return f"echo: {prompt}"

    async def close(self):
        pass


class EchoResponse(BaseModel):
    answer: str
    confidence: float


@pytest.mark.unit
@pytest.mark.asyncio
class TestLLMProviderBase:
    """Test base LLMProvider functionality."""

    async def test_abstract_instantiation(self):
        with pytest.raises(TypeError, match="Can't instantiate abstract class"):
            LLMProvider()

    async def test_complete_interface(self):
        llm = MockLLM()
        assert await llm.complete("hi") == "echo: hi"

    async def test_complete_with_response_format(self):
        llm = MockLLM()

        result = await llm.complete("hi", response_format=EchoResponse)

        assert isinstance(result, EchoResponse)
        assert result.answer == "hi"

    async def test_complete_with_parameters(self):
        llm = MockLLM()

        await llm.complete("hi", max_tokens=10, temperature=0.5, system_prompt="sys")

        assert llm.calls == [("hi", 10, 0.5, "sys")]
