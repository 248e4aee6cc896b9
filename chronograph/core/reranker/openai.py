"""
OpenAI reranker: a boolean relevance classifier run per passage, ranked by
the probability of the "True" token.
"""

import asyncio
import math

import openai
from openai import AsyncOpenAI

from chronograph.core.reranker.base import Reranker
from chronograph.utils.exceptions import LLMError, TransientProviderError
from chronograph.utils.logger import get_logger

logger = get_logger(__name__)

SYSTEM_PROMPT = (
    "You are an expert tasked with determining whether the passage is relevant to the query"
)

USER_PROMPT = """Respond with "True" if PASSAGE is relevant to QUERY and "False" otherwise.
<PASSAGE>
{passage}
</PASSAGE>
<QUERY>
{query}
</QUERY>"""

TRANSIENT_OPENAI_ERRORS = (
    openai.APITimeoutError,
    openai.APIConnectionError,
    openai.RateLimitError,
    openai.InternalServerError,
)


class OpenAIReranker(Reranker):
    """Cross-encoder style reranker using chat completion logprobs."""

    def __init__(
        self,
        api_key: str,
        model: str = "gpt-4o-mini",
        base_url: str | None = None,
        timeout: float = 60.0,
    ):
        """
        Initialize OpenAI reranker.

        Args:
            api_key: OpenAI API key
            model: Chat model that supports logprobs
            base_url: Optional custom base URL
            timeout: Request timeout in seconds
        """
        self.model = model
        self.client = AsyncOpenAI(api_key=api_key, base_url=base_url, timeout=timeout, max_retries=0)

    async def _score(self, query: str, passage: str) -> float:
        try:
            response = await self.client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": SYSTEM_PROMPT},
                    {"role": "user", "content": USER_PROMPT.format(passage=passage, query=query)},
                ],
                temperature=0,
                max_tokens=1,
                logprobs=True,
                top_logprobs=2,
            )
        except TRANSIENT_OPENAI_ERRORS as e:
            raise TransientProviderError(f"OpenAI rerank transient error: {e}") from e
        except Exception as e:
            logger.bind(model=self.model).error(f"OpenAI rerank error: {e}")
            raise LLMError(f"OpenAI rerank error: {e}") from e

        return self._score_from_logprobs(response)

    @staticmethod
    def _score_from_logprobs(response) -> float:
        """Probability that the passage is relevant, from the top token logprob."""
        try:
            top = response.choices[0].logprobs.content[0].top_logprobs[0]
        except (AttributeError, IndexError, TypeError):
            logger.warning("Reranker response carried no logprobs, scoring 0.0")
            return 0.0

        probability = math.exp(top.logprob)
        if top.token.strip().lower().startswith("true"):
            return probability
        return 1.0 - probability

    async def rerank(self, query: str, candidates: list[str]) -> list[tuple[str, float]]:
        if not candidates:
            return []

        scores = await asyncio.gather(*(self._score(query, passage) for passage in candidates))
        ranked = list(zip(candidates, scores, strict=True))
        ranked.sort(key=lambda item: item[1], reverse=True)
        return ranked

    async def close(self):
        await self.client.close()
