"""
Answer verification with difficulty-based routing.

Simple arithmetic is trusted as-is. Moderate problems are re-derived by a
chat model (chain of thought). Complex problems go to the symbolic solver
when one is configured, falling back to chain of thought when it fails.

Verification never blocks grading: when every method fails the original
answer is presumed correct with reduced confidence.
"""

import time
from collections import Counter
from typing import Iterable, List, Optional, Tuple

from mathgrader.ai.base_provider import SymbolicSolver
from mathgrader.ai.cot_verifier import UNPARSEABLE_ERROR, ChainOfThoughtVerifier
from mathgrader.config.constants import (
    CONFIDENCE_SIMPLE,
    CONFIDENCE_SKIPPED,
    CONFIDENCE_UNPARSEABLE,
    CONFIDENCE_UNVERIFIED,
    CONFIDENCE_WOLFRAM_CONFLICT,
    CONFIDENCE_WOLFRAM_MATCH,
    MIN_CONFLICT_CONFIDENCE,
)
from mathgrader.config.logging_config import get_logger
from mathgrader.core.models import (
    ClassificationResult,
    ProblemDifficulty,
    VerificationMethod,
    VerificationResult,
    VerificationStats,
)
from mathgrader.grading.classifier import classify_with_reason
from mathgrader.grading.comparator import compare_answers

logger = get_logger(__name__)


class VerificationService:
    """
    Verifies proposed answers against an independent method.

    Usage:
        service = VerificationService(solver=wolfram, cot_verifier=verifier)
        result = await service.verify_calculation("2x + 5 = 15", "5")
        if result.conflict:
            ...
    """

    def __init__(
        self,
        solver: Optional[SymbolicSolver] = None,
        cot_verifier: Optional[ChainOfThoughtVerifier] = None,
        tolerance: Optional[float] = None,
        conflict_threshold: float = MIN_CONFLICT_CONFIDENCE,
    ):
        """
        Args:
            solver: Symbolic solver used for complex problems
            cot_verifier: Chain-of-thought verifier for moderate problems
            tolerance: Numeric tolerance for comparing solver output
            conflict_threshold: Minimum model confidence for a CoT conflict
        """
        self.solver = solver
        self.cot_verifier = cot_verifier
        self.tolerance = tolerance
        self.conflict_threshold = conflict_threshold

    def solver_available(self) -> bool:
        return self.solver is not None and self.solver.is_enabled()

    def cot_available(self) -> bool:
        return self.cot_verifier is not None and self.cot_verifier.is_enabled()

    def select_method(
        self,
        difficulty: ProblemDifficulty,
        force_method: Optional[VerificationMethod] = None,
    ) -> VerificationMethod:
        if force_method is not None:
            return force_method
        if difficulty == ProblemDifficulty.COMPLEX and self.solver_available():
            return VerificationMethod.WOLFRAM
        return VerificationMethod.CHAIN_OF_THOUGHT

    async def verify_calculation(
        self,
        problem_text: str,
        proposed_answer: str,
        skip_verification: bool = False,
        force_method: Optional[VerificationMethod] = None,
    ) -> VerificationResult:
        """
        Verify one proposed answer.

        Args:
            problem_text: Problem as read from the homework
            proposed_answer: Answer to check (usually the model's own answer)
            skip_verification: Presume correct without checking
            force_method: Pin the method; disables cross-method fallback

        Returns:
            VerificationResult; never raises
        """
        start_time = time.perf_counter()
        classification = classify_with_reason(problem_text)

        result = await self._verify(
            problem_text, proposed_answer, classification, skip_verification, force_method
        )
        result = result.model_copy(update={"latency_ms": (time.perf_counter() - start_time) * 1000})

        if result.conflict:
            logger.warning(
                f"Verification conflict ({result.method.value}) on '{problem_text[:60]}': "
                f"proposed={proposed_answer}, verified={result.verification_answer}"
            )
        else:
            logger.debug(
                f"Verified '{problem_text[:60]}' via {result.method.value}: "
                f"matched={result.matched} confidence={result.confidence:.2f}"
            )
        return result

    async def _verify(
        self,
        problem_text: str,
        proposed_answer: str,
        classification: ClassificationResult,
        skip_verification: bool,
        force_method: Optional[VerificationMethod],
    ) -> VerificationResult:
        difficulty = classification.difficulty

        def unchecked(confidence: float, details: str) -> VerificationResult:
            return VerificationResult(
                method=VerificationMethod.NONE,
                difficulty=difficulty,
                difficulty_reason=classification.reason,
                original_answer=proposed_answer,
                matched=True,
                conflict=False,
                confidence=confidence,
                details=details,
            )

        if skip_verification:
            return unchecked(CONFIDENCE_SKIPPED, "Verification skipped by request")

        if difficulty == ProblemDifficulty.SIMPLE and force_method is None:
            return unchecked(CONFIDENCE_SIMPLE, "Simple arithmetic, no verification needed")

        method = self.select_method(difficulty, force_method)

        if method == VerificationMethod.NONE:
            return unchecked(CONFIDENCE_SIMPLE, "Verification method pinned to none")

        if method == VerificationMethod.WOLFRAM:
            result, solver_error, queried = await self._verify_with_solver(
                problem_text, proposed_answer, classification
            )
            if result is not None:
                return result

            if force_method is None and self.cot_available():
                fallback = await self._verify_with_cot(problem_text, proposed_answer, classification)
                return fallback.model_copy(update={
                    "details": f"Wolfram failed ({solver_error}), used CoT fallback. {fallback.details}",
                    "solver_queries": queried,
                })

            return self._degraded(
                VerificationMethod.WOLFRAM,
                proposed_answer,
                classification,
                f"Wolfram verification failed: {solver_error}",
                solver_queries=queried,
            )

        return await self._verify_with_cot(problem_text, proposed_answer, classification)

    def _degraded(
        self,
        method: VerificationMethod,
        proposed_answer: str,
        classification: ClassificationResult,
        details: str,
        confidence: float = CONFIDENCE_UNVERIFIED,
        solver_queries: int = 0,
    ) -> VerificationResult:
        logger.warning(f"{method.value} verification unavailable, presuming answer correct: {details}")
        return VerificationResult(
            method=method,
            difficulty=classification.difficulty,
            difficulty_reason=classification.reason,
            original_answer=proposed_answer,
            matched=True,
            conflict=False,
            confidence=confidence,
            details=details,
            solver_queries=solver_queries,
        )

    async def _verify_with_solver(
        self,
        problem_text: str,
        proposed_answer: str,
        classification: ClassificationResult,
    ) -> Tuple[Optional[VerificationResult], Optional[str], int]:
        """(verdict or None, error, queries made)."""
        if not self.solver_available():
            return None, "solver not configured", 0

        try:
            solved = await self.solver.solve(problem_text)
        except Exception as e:
            logger.warning(f"Solver raised on '{problem_text[:60]}': {e!r}")
            return None, str(e) or type(e).__name__, 1
        if not solved.success or not solved.result:
            return None, solved.error or "empty result", 1

        comparison = compare_answers(proposed_answer, solved.result, self.tolerance)
        if comparison.matched:
            details = f"Wolfram Alpha verified: {solved.result}"
            confidence = CONFIDENCE_WOLFRAM_MATCH
        else:
            details = f"CONFLICT: AI={proposed_answer}, Wolfram={solved.result}"
            confidence = CONFIDENCE_WOLFRAM_CONFLICT

        return VerificationResult(
            method=VerificationMethod.WOLFRAM,
            difficulty=classification.difficulty,
            difficulty_reason=classification.reason,
            original_answer=proposed_answer,
            verification_answer=solved.result,
            matched=comparison.matched,
            conflict=not comparison.matched,
            confidence=confidence,
            details=details,
            solver_queries=1,
        ), None, 1

    async def _verify_with_cot(
        self,
        problem_text: str,
        proposed_answer: str,
        classification: ClassificationResult,
    ) -> VerificationResult:
        method = VerificationMethod.CHAIN_OF_THOUGHT
        if not self.cot_available():
            return self._degraded(
                method, proposed_answer, classification,
                "No chain-of-thought verifier configured",
                confidence=CONFIDENCE_UNPARSEABLE,
            )

        try:
            outcome = await self.cot_verifier.verify(problem_text, proposed_answer, classification.difficulty)
        except Exception as e:
            return self._degraded(
                method, proposed_answer, classification,
                f"CoT verification failed: {str(e) or type(e).__name__}",
            )

        if not outcome.success or outcome.judgment is None:
            if outcome.error == UNPARSEABLE_ERROR:
                return self._degraded(
                    method, proposed_answer, classification,
                    "Could not parse verification response",
                    confidence=CONFIDENCE_UNPARSEABLE,
                )
            return self._degraded(
                method, proposed_answer, classification,
                f"CoT verification failed: {outcome.error}",
            )

        judgment = outcome.judgment
        conflict = not judgment.match and judgment.confidence >= self.conflict_threshold
        if judgment.match:
            details = f"CoT verified: {judgment.your_answer}"
        else:
            details = f"CONFLICT: AI={proposed_answer}, CoT={judgment.your_answer}"
            if judgment.discrepancy:
                details = f"{details} {judgment.discrepancy}"

        return VerificationResult(
            method=method,
            difficulty=classification.difficulty,
            difficulty_reason=classification.reason,
            original_answer=proposed_answer,
            verification_answer=judgment.your_answer or None,
            matched=judgment.match,
            conflict=conflict,
            confidence=judgment.confidence,
            details=details,
        )

    async def verify_batch(
        self,
        pairs: Iterable[Tuple[str, str]],
        skip_verification: bool = False,
    ) -> List[VerificationResult]:
        """Verify (problem_text, proposed_answer) pairs one at a time, in order."""
        results = []
        for problem_text, proposed_answer in pairs:
            results.append(
                await self.verify_calculation(problem_text, proposed_answer, skip_verification)
            )
        return results


def get_verification_stats(results: Iterable[VerificationResult]) -> VerificationStats:
    """Totals, conflicts, and per-method/per-difficulty counts."""
    results = list(results)
    if not results:
        return VerificationStats()

    by_method = Counter(r.method.value for r in results)
    by_difficulty = Counter(r.difficulty.value for r in results)
    return VerificationStats(
        total=len(results),
        verified=sum(1 for r in results if r.method != VerificationMethod.NONE),
        conflicts=sum(1 for r in results if r.conflict),
        by_method=dict(by_method),
        by_difficulty=dict(by_difficulty),
        average_confidence=sum(r.confidence for r in results) / len(results),
    )
