"""
Chain-of-thought verifier.

Asks a chat model to re-derive an answer step by step and report
whether its own result matches the proposed one.
"""

import time
from typing import Awaitable, Callable, Optional

from mathgrader.ai.response_parser import parse_verification_response
from mathgrader.config.logging_config import get_logger
from mathgrader.core.exceptions import MathGraderError
from mathgrader.core.models import ChainOfThoughtResult, ProblemDifficulty, ProviderResponse
from mathgrader.prompts.verification import VERIFICATION_SYSTEM_PROMPT, select_verification_prompt

logger = get_logger(__name__)

# (prompt, system_prompt) -> response
ChatFunction = Callable[[str, Optional[str]], Awaitable[ProviderResponse]]

NOT_CONFIGURED_ERROR = "Chain-of-thought verifier not configured"
UNPARSEABLE_ERROR = "Verification response unparseable"


class ChainOfThoughtVerifier:
    """
    Re-derives answers with a chat model.

    The chat function is injected, usually bound to the provider manager
    (or to the provider that produced the grade).
    """

    def __init__(self, chat: Optional[ChatFunction] = None, enabled: bool = True):
        self.chat = chat
        self._enabled = enabled

    def is_available(self) -> bool:
        return self.chat is not None

    def is_enabled(self) -> bool:
        return self._enabled and self.is_available()

    async def verify(
        self,
        problem_text: str,
        proposed_answer: str,
        difficulty: ProblemDifficulty = ProblemDifficulty.MODERATE,
    ) -> ChainOfThoughtResult:
        """
        Verify one answer.

        Returns:
            ChainOfThoughtResult; a response that is not valid JSON gives
            success=False with an "unparseable" error
        """
        start_time = time.perf_counter()

        if not self.is_enabled():
            return ChainOfThoughtResult(success=False, error=NOT_CONFIGURED_ERROR)

        prompt = select_verification_prompt(problem_text, proposed_answer, difficulty)

        try:
            response = await self.chat(prompt, VERIFICATION_SYSTEM_PROMPT)
        except MathGraderError as e:
            response = ProviderResponse(success=False, error=e.message)
        except Exception as e:
            logger.warning(f"Verification chat call raised: {e!r}")
            response = ProviderResponse(success=False, error=str(e) or type(e).__name__)

        latency = (time.perf_counter() - start_time) * 1000

        if not response.success:
            return ChainOfThoughtResult(
                success=False,
                error=response.error or "Verification call failed",
                latency_ms=latency,
            )

        judgment = parse_verification_response(response.content)
        if judgment is None:
            logger.warning(f"Unparseable verification response for '{problem_text[:60]}'")
            return ChainOfThoughtResult(
                success=False,
                raw_content=response.content,
                error=UNPARSEABLE_ERROR,
                latency_ms=latency,
            )

        return ChainOfThoughtResult(
            success=True,
            judgment=judgment,
            raw_content=response.content,
            latency_ms=latency,
        )
