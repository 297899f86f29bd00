"""
Enhanced grading engine.

Grades one homework image end to end:

    received -> text extracted (OCR or vision) -> graded by model
             -> per-question verified -> aggregated -> returned

The model grades blind: it never sees the answer key and solves every
problem itself. The answer key, when present, is compared against the
model's answers afterwards and only annotates discrepancies.
"""

import asyncio
import math
import time
from typing import Dict, List, Optional, Tuple

from mathgrader.ai.base_provider import OcrProvider, SymbolicSolver
from mathgrader.ai.cot_verifier import ChainOfThoughtVerifier
from mathgrader.ai.provider_factory import create_ocr_provider, create_symbolic_solver
from mathgrader.ai.provider_manager import ProviderManager
from mathgrader.ai.response_parser import parse_feedback_response, parse_grading_response
from mathgrader.config.constants import READABILITY_REVIEW_THRESHOLD
from mathgrader.config.logging_config import get_logger
from mathgrader.config.providers import default_model_for
from mathgrader.config.settings import Settings, get_settings
from mathgrader.core.models import (
    AnswerKey,
    CostBreakdown,
    GradingOptions,
    GradingRequest,
    GradingResult,
    OcrResult,
    OcrSource,
    ProblemDifficulty,
    ProcessingMetrics,
    QuestionResult,
    VerificationMethod,
)
from mathgrader.grading.classifier import classify_difficulty, max_difficulty
from mathgrader.grading.comparator import compare_answers, matches_any
from mathgrader.grading.verification import VerificationService
from mathgrader.llm.pricing import estimate_submission_cost
from mathgrader.prompts.grading import (
    FEEDBACK_SYSTEM_PROMPT,
    GRADING_SYSTEM_PROMPT,
    build_batch_feedback_prompt,
    build_blind_grading_prompt,
    build_ocr_supplement,
)
from mathgrader.utils.resilience import Resilience

logger = get_logger(__name__)

PARSE_FAILED_ERROR = "Failed to parse AI response"


class EnhancedGradingService:
    """
    The core grading engine.

    Features:
    - Optional Mathpix OCR ahead of the vision call
    - Blind grading with provider fallback
    - Difficulty-routed verification (Wolfram or chain of thought)
    - Answer key discrepancy notes and point overrides
    - Advisory cost tracking and per-stage timings

    The service keeps no per-request state, so one instance can grade
    several submissions concurrently.
    """

    def __init__(
        self,
        provider_manager: ProviderManager,
        ocr_provider: Optional[OcrProvider] = None,
        solver: Optional[SymbolicSolver] = None,
        settings: Optional[Settings] = None,
        conflict_threshold: Optional[float] = None,
        tolerance: Optional[float] = None,
    ):
        """
        Initialize the grading service.

        Args:
            provider_manager: Chat providers with fallback
            ocr_provider: OCR provider (skipped when None or disabled)
            solver: Symbolic solver for complex problems
            settings: Settings for default toggles (default: get_settings())
            conflict_threshold: Minimum verification confidence that overrides
                the model's judgment (default: settings value)
            tolerance: Numeric tolerance for answer comparisons
        """
        self.settings = settings or get_settings()
        self.provider_manager = provider_manager
        self.ocr_provider = ocr_provider
        self.solver = solver
        self.tolerance = tolerance
        self.conflict_threshold = (
            self.settings.verification_conflict_threshold
            if conflict_threshold is None
            else conflict_threshold
        )

    @classmethod
    def from_settings(
        cls,
        settings: Optional[Settings] = None,
        resilience: Optional[Resilience] = None,
    ) -> "EnhancedGradingService":
        """Wire providers, OCR and solver from settings around one resilience facade."""
        settings = settings or get_settings()
        resilience = resilience or Resilience.from_settings(settings)
        return cls(
            provider_manager=ProviderManager.from_settings(settings, resilience),
            ocr_provider=create_ocr_provider(settings, resilience),
            solver=create_symbolic_solver(settings, resilience),
            settings=settings,
        )

    # ==================== ENTRY POINT ====================

    async def grade_submission_enhanced(
        self,
        request: GradingRequest,
        options: Optional[GradingOptions] = None,
    ) -> GradingResult:
        """
        Grade a submission.

        Args:
            request: Image, optional answer key and per-request options
            options: Overrides request.options when given

        Returns:
            GradingResult; failures come back as success=False with
            needs_review set. Never raises.
        """
        start_time = time.perf_counter()
        options = options or request.options
        try:
            return await self._grade(request, options, start_time)
        except Exception as e:
            logger.exception(f"Grading {request.submission_id} failed unexpectedly")
            return self._failed_result(
                request.submission_id,
                str(e) or type(e).__name__,
                start_time,
                provider=options.preferred_provider or self.provider_manager.get_primary_provider(),
                ocr_source=OcrSource.VISION,
            )

    async def _grade(
        self,
        request: GradingRequest,
        options: GradingOptions,
        start_time: float,
    ) -> GradingResult:
        stage_times: Dict[str, float] = {}

        # --- Text extraction ---
        stage_start = time.perf_counter()
        ocr = await self._extract_text(request, options)
        if ocr is not None:
            stage_times["ocr"] = _elapsed_ms(stage_start)
        ocr_source = OcrSource.MATHPIX if ocr is not None and ocr.success else OcrSource.VISION

        if self._resolve(options.require_ocr, self.settings.require_ocr) and ocr_source != OcrSource.MATHPIX:
            reason = ocr.error if ocr is not None else "OCR provider not available"
            return self._failed_result(
                request.submission_id,
                f"OCR required but failed: {reason}",
                start_time,
                provider=None,
                ocr_source=ocr_source,
            )

        # --- Grading call ---
        prompt = build_blind_grading_prompt(options.extract_student_name)
        if ocr_source == OcrSource.MATHPIX:
            prompt += "\n" + build_ocr_supplement(ocr.latex, ocr.text, ocr.confidence)

        stage_start = time.perf_counter()
        response = await self.provider_manager.analyze_image(
            request.image,
            prompt,
            GRADING_SYSTEM_PROMPT,
            options.preferred_provider,
        )
        stage_times["grading"] = _elapsed_ms(stage_start)

        if not response.success:
            return self._failed_result(
                request.submission_id,
                response.error or "Grading call failed",
                start_time,
                provider=response.provider,
                ocr_source=ocr_source,
            )

        parsed = parse_grading_response(response.content)
        if parsed is None:
            logger.warning(f"Unparseable grading response for {request.submission_id}")
            return self._failed_result(
                request.submission_id,
                PARSE_FAILED_ERROR,
                start_time,
                provider=response.provider,
                ocr_source=ocr_source,
            )

        # --- Per-question verification ---
        stage_start = time.perf_counter()
        verification = VerificationService(
            solver=self.solver,
            cot_verifier=ChainOfThoughtVerifier(self.provider_manager.chat_function(response.provider)),
            tolerance=self.tolerance,
            conflict_threshold=self.conflict_threshold,
        )
        enable_verification = self._resolve(options.enable_verification, self.settings.enable_verification)

        processed = await asyncio.gather(*(
            self._process_question(
                question,
                request.answer_key,
                verification if enable_verification else None,
                options.force_verification_method,
            )
            for question in parsed.questions
        ))
        questions = [question for question, _ in processed]
        solver_queries = sum(queries for _, queries in processed)
        stage_times["verification"] = _elapsed_ms(stage_start)

        # --- Feedback ---
        if options.generate_feedback and questions:
            stage_start = time.perf_counter()
            questions = await self._add_feedback(questions, response.provider)
            stage_times["feedback"] = _elapsed_ms(stage_start)

        # --- Aggregation ---
        score = sum(q.points_awarded for q in questions)
        max_score = sum(q.points_possible for q in questions)
        percentage = _percentage(score, max_score)

        conflicts = sum(1 for q in questions if q.verification_conflict)
        low_readability = [
            q.question_number for q in questions
            if q.readability_confidence < READABILITY_REVIEW_THRESHOLD
        ]
        needs_review = parsed.needs_review or conflicts > 0 or bool(low_readability)

        review_reason = parsed.review_reason
        if not review_reason and conflicts:
            review_reason = f"{conflicts} question(s) have verification conflicts"
        elif not review_reason and low_readability:
            review_reason = "Low readability on question(s) " + ", ".join(str(n) for n in low_readability)

        costs = estimate_submission_cost(
            ocr_succeeded=ocr_source == OcrSource.MATHPIX,
            chat_succeeded=True,
            wolfram_queries=solver_queries,
        )
        if self._resolve(options.track_costs, self.settings.track_api_costs):
            _log_costs(request.submission_id, costs)

        logger.info(
            f"Graded {request.submission_id} with {response.provider}: "
            f"{score:g}/{max_score:g} ({percentage}%), {conflicts} conflict(s)"
        )

        return GradingResult(
            submission_id=request.submission_id,
            success=True,
            questions=questions,
            score=score,
            max_score=max_score,
            percentage=percentage,
            detected_student_name=parsed.student_name,
            name_confidence=parsed.name_confidence,
            ocr_provider=ocr_source,
            ocr_confidence=ocr.confidence if ocr_source == OcrSource.MATHPIX else None,
            math_difficulty=max_difficulty(q.difficulty_level for q in questions),
            provider=response.provider,
            model=self.model_for_provider(response.provider),
            tokens_used=response.tokens_used.total if response.tokens_used else None,
            cost_breakdown=costs,
            processing_metrics=ProcessingMetrics(
                total_time_ms=_elapsed_ms(start_time),
                per_stage_time_ms=stage_times,
                ai_provider_used=response.provider,
                fallbacks_required=max(0, response.providers_attempted - 1),
            ),
            needs_review=needs_review,
            review_reason=review_reason,
        )

    # ==================== STAGES ====================

    async def _extract_text(self, request: GradingRequest, options: GradingOptions) -> Optional[OcrResult]:
        """OCR result, or None when OCR is off or the provider is missing."""
        if not self._resolve(options.use_ocr, self.settings.use_ocr):
            return None
        if self.ocr_provider is None or not self.ocr_provider.is_enabled():
            return None

        try:
            result = await self.ocr_provider.extract_math(request.image)
        except Exception as e:
            logger.warning(f"OCR raised for {request.submission_id}, using vision only: {e!r}")
            return OcrResult(success=False, error=str(e) or type(e).__name__)
        if not result.success:
            logger.warning(f"OCR failed for {request.submission_id}, using vision only: {result.error}")
        return result

    async def _process_question(
        self,
        question: QuestionResult,
        answer_key: Optional[AnswerKey],
        verification: Optional[VerificationService],
        force_method: Optional[VerificationMethod],
    ) -> Tuple[QuestionResult, int]:
        """Classify, verify and reconcile one question; returns (question, solver queries)."""
        updates = {
            "difficulty_level": classify_difficulty(question.problem_text),
            "correct_answer": question.ai_answer,
        }
        is_correct = question.is_correct
        points_possible = question.points_possible
        points_awarded = question.points_awarded
        confidence = question.confidence
        solver_queries = 0

        # Answer key: discrepancy note and point override
        entry = answer_key.find(question.question_number) if answer_key else None
        if entry is not None:
            updates["answer_key_value"] = entry.correct_answer
            if question.ai_answer and not matches_any(question.ai_answer, entry.accepted_answers, self.tolerance):
                updates["discrepancy"] = (
                    f'AI calculated "{question.ai_answer}" but answer key says "{entry.correct_answer}"'
                )
            key_points = answer_key.points_for(question.question_number)
            if key_points is not None:
                new_possible = max(1.0, key_points)
                points_awarded = points_awarded * new_possible / points_possible
                points_possible = new_possible

        # Verification and reconciliation
        needs_check = updates["difficulty_level"] != ProblemDifficulty.SIMPLE
        if verification is not None and needs_check and question.ai_answer:
            result = await verification.verify_calculation(
                question.problem_text,
                question.ai_answer,
                force_method=force_method,
            )
            updates["verification"] = result
            solver_queries = result.solver_queries

            if result.conflict and result.confidence >= self.conflict_threshold:
                if result.verification_answer:
                    is_correct = compare_answers(
                        question.student_answer, result.verification_answer, self.tolerance
                    ).matched
                    updates["correct_answer"] = result.verification_answer
                else:
                    is_correct = not is_correct
                points_awarded = points_possible if is_correct else 0.0
                confidence = min(confidence, result.confidence)

        updates.update({
            "is_correct": is_correct,
            "points_possible": points_possible,
            "points_awarded": min(max(points_awarded, 0.0), points_possible),
            "confidence": confidence,
        })
        return question.model_copy(update=updates), solver_queries

    async def _add_feedback(self, questions: List[QuestionResult], provider: Optional[str]) -> List[QuestionResult]:
        """One batched feedback call; questions come back unchanged on failure."""
        prompt = build_batch_feedback_prompt([
            {
                "question_number": q.question_number,
                "student_answer": q.student_answer,
                "correct_answer": q.correct_answer,
                "is_correct": q.is_correct,
            }
            for q in questions
        ])
        response = await self.provider_manager.analyze_text(prompt, FEEDBACK_SYSTEM_PROMPT, provider)
        if not response.success:
            logger.warning(f"Feedback generation failed: {response.error}")
            return questions

        feedback = parse_feedback_response(response.content)
        if feedback is None:
            logger.warning("Feedback response unparseable; skipping feedback")
            return questions

        return [
            q.model_copy(update={"feedback": feedback.messages[q.question_number]})
            if q.question_number in feedback.messages else q
            for q in questions
        ]

    # ==================== HELPERS ====================

    @staticmethod
    def _resolve(value: Optional[bool], default: bool) -> bool:
        return default if value is None else value

    def _failed_result(
        self,
        submission_id: str,
        error: str,
        start_time: float,
        provider: Optional[str],
        ocr_source: OcrSource,
    ) -> GradingResult:
        logger.error(f"Grading {submission_id} failed: {error}")
        return GradingResult(
            submission_id=submission_id,
            success=False,
            provider=provider,
            model=self.model_for_provider(provider) if provider else None,
            ocr_provider=ocr_source,
            processing_metrics=ProcessingMetrics(total_time_ms=_elapsed_ms(start_time), ai_provider_used=provider),
            needs_review=True,
            review_reason=error,
            error=error,
        )

    def model_for_provider(self, name: Optional[str]) -> Optional[str]:
        """Model a provider is configured with (registry default as fallback)."""
        provider = self.provider_manager.get_provider(name) if name else None
        if provider is not None and provider.model:
            return provider.model
        return default_model_for(name) if name else None

    def get_available_providers(self) -> List[str]:
        return self.provider_manager.get_available_providers()

    async def health_check(self) -> Dict[str, object]:
        """Chat provider health plus OCR and solver availability."""
        return {
            "providers": await self.provider_manager.health_check_all(),
            "mathpix": self.ocr_provider is not None and self.ocr_provider.is_enabled(),
            "wolfram": self.solver is not None and self.solver.is_enabled(),
        }


def _elapsed_ms(start: float) -> float:
    return (time.perf_counter() - start) * 1000


def _percentage(score: float, max_score: float) -> int:
    """Whole percent, halves rounded up (1/8 -> 13)."""
    if max_score <= 0:
        return 0
    return math.floor(100 * score / max_score + 0.5)


def _log_costs(submission_id: str, costs: CostBreakdown) -> None:
    logger.info(
        f"[COST] Grading {submission_id}: Mathpix=${costs.mathpix:.4f}, "
        f"Chat=${costs.chat_completion:.4f}, Wolfram=${costs.wolfram:.4f}, "
        f"Total=${costs.total:.4f}"
    )
