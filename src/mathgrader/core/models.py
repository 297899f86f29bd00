"""
Core data models for the math grading pipeline.

This module defines the Pydantic models exchanged between the comparator,
classifier, verification providers, provider manager, and grading service.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Literal, NamedTuple, Optional
import uuid

from pydantic import BaseModel, ConfigDict, Field, model_validator


class ProblemDifficulty(str, Enum):
    """Verification burden of a math problem."""
    SIMPLE = "simple"      # Single-operator whole-number arithmetic
    MODERATE = "moderate"  # Fractions, decimals, percentages, multi-step
    COMPLEX = "complex"    # Algebra, exponents, roots, inequalities, functions

    @property
    def rank(self) -> int:
        return _DIFFICULTY_RANK[self]


_DIFFICULTY_RANK = {
    ProblemDifficulty.SIMPLE: 0,
    ProblemDifficulty.MODERATE: 1,
    ProblemDifficulty.COMPLEX: 2,
}


class ComparisonMethod(str, Enum):
    """Which comparison rule established equivalence."""
    EXACT = "exact"
    NUMERIC = "numeric"
    FRACTION = "fraction"
    PERCENTAGE = "percentage"
    NONE = "none"


class VerificationMethod(str, Enum):
    """Strategy used to double-check a proposed answer."""
    NONE = "none"
    WOLFRAM = "wolfram"
    CHAIN_OF_THOUGHT = "chain_of_thought"


class OcrSource(str, Enum):
    """Where the text of a submission was read from."""
    MATHPIX = "mathpix"
    VISION = "vision"


class QueueStatus(str, Enum):
    """Lifecycle of a processing queue item."""
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


def generate_id() -> str:
    """Generate a unique ID."""
    return str(uuid.uuid4())


# ==================== COMPARISON / CLASSIFICATION ====================

class ParsedFraction(NamedTuple):
    """A fraction with mixed numbers folded into the numerator."""
    numerator: int
    denominator: int

    @property
    def value(self) -> float:
        return self.numerator / self.denominator


class AnswerComparisonResult(BaseModel):
    """Outcome of comparing two answer strings."""
    model_config = ConfigDict(frozen=True)

    matched: bool
    method: ComparisonMethod
    normalized_a: str = ""
    normalized_b: str = ""


class ClassificationResult(BaseModel):
    """Difficulty plus the rule that produced it."""
    model_config = ConfigDict(frozen=True)

    difficulty: ProblemDifficulty
    reason: str
    matched_pattern: Optional[str] = None


# ==================== VERIFICATION ====================

class VerificationResult(BaseModel):
    """
    Outcome of verifying one proposed answer.

    conflict is True only when a method other than NONE actively
    disagrees with the original answer above its confidence threshold.
    """
    method: VerificationMethod
    difficulty: ProblemDifficulty
    difficulty_reason: Optional[str] = None
    original_answer: str
    verification_answer: Optional[str] = None
    matched: bool
    conflict: bool = False
    confidence: float = Field(ge=0.0, le=1.0)
    details: str = ""
    latency_ms: float = 0.0
    solver_queries: int = 0  # billed symbolic-solver requests made


class VerificationStats(BaseModel):
    """Aggregate view over a batch of verification results."""
    total: int = 0
    verified: int = 0
    conflicts: int = 0
    by_method: Dict[str, int] = Field(default_factory=dict)
    by_difficulty: Dict[str, int] = Field(default_factory=dict)
    average_confidence: float = 0.0


# ==================== PROVIDER RESULTS ====================

class TokenUsage(BaseModel):
    input: int = 0
    output: int = 0
    total: int = 0


class ProviderResponse(BaseModel):
    """Result of a chat-completion call (single provider or with fallback)."""
    success: bool
    content: str = ""
    error: Optional[str] = None
    latency_ms: float = Field(default=0.0, ge=0.0)
    provider: Optional[str] = None
    tokens_used: Optional[TokenUsage] = None
    providers_attempted: int = 0


class OcrResult(BaseModel):
    """Result of extracting math text from an image."""
    success: bool
    latex: Optional[str] = None
    text: Optional[str] = None
    confidence: float = 0.0
    error: Optional[str] = None
    latency_ms: float = 0.0


class SolveResult(BaseModel):
    """Result of a symbolic solver query."""
    success: bool
    expression: str = ""
    result: Optional[str] = None
    error: Optional[str] = None
    latency_ms: float = 0.0


class ChainOfThoughtJudgment(BaseModel):
    """Structured self-report of a model re-deriving an answer."""
    your_answer: str = ""
    provided_answer: str = ""
    match: bool = False
    confidence: float = Field(default=0.8, ge=0.0, le=1.0)
    steps: Optional[Any] = None
    discrepancy: Optional[str] = None
    calculation: Optional[str] = None


class ChainOfThoughtResult(BaseModel):
    success: bool
    judgment: Optional[ChainOfThoughtJudgment] = None
    raw_content: str = ""
    error: Optional[str] = None
    latency_ms: float = 0.0


class ProviderCall(BaseModel):
    """
    Audit record of one chat provider call.

    Kept in each provider's call_history for token accounting.
    """
    call_id: str = Field(default_factory=generate_id)
    timestamp: datetime = Field(default_factory=datetime.now)
    provider: str
    model: Optional[str] = None
    success: bool = True
    duration_ms: Optional[float] = None
    prompt_tokens: Optional[int] = None
    completion_tokens: Optional[int] = None
    error: Optional[str] = None


# ==================== GRADING INPUT ====================

class ImageInput(BaseModel):
    """
    Opaque image handle passed to OCR and vision providers.

    The pipeline never decodes the image itself.
    """
    type: Literal["base64", "url"] = "base64"
    data: str
    mime_type: str = "image/jpeg"

    def as_data_url(self) -> str:
        """Render as a URL accepted by vision APIs."""
        if self.type == "url":
            return self.data
        clean = "".join(self.data.split())
        if clean.startswith("data:"):
            return clean
        return f"data:{self.mime_type};base64,{clean}"


class AnswerKeyEntry(BaseModel):
    question_number: int
    correct_answer: str
    alternate_answers: List[str] = Field(default_factory=list)
    points: Optional[float] = None

    @property
    def accepted_answers(self) -> List[str]:
        return [self.correct_answer, *self.alternate_answers]


class AnswerKey(BaseModel):
    """Teacher-provided answers, entered manually or extracted from a key image."""
    type: Literal["manual", "image", "pdf"] = "manual"
    total_questions: int = 0
    answers: List[AnswerKeyEntry] = Field(default_factory=list)
    points_per_question: Optional[float] = None

    def find(self, question_number: int) -> Optional[AnswerKeyEntry]:
        for entry in self.answers:
            if entry.question_number == question_number:
                return entry
        return None

    def points_for(self, question_number: int) -> Optional[float]:
        entry = self.find(question_number)
        if entry is not None and entry.points is not None:
            return entry.points
        return self.points_per_question


class GradingOptions(BaseModel):
    """
    Per-request grading options.

    Toggles left as None fall back to Settings.
    """
    generate_feedback: bool = False
    extract_student_name: bool = True
    use_ocr: Optional[bool] = None
    require_ocr: Optional[bool] = None
    enable_verification: Optional[bool] = None
    track_costs: Optional[bool] = None
    force_verification_method: Optional[VerificationMethod] = None
    preferred_provider: Optional[str] = None


class GradingRequest(BaseModel):
    submission_id: str
    image: ImageInput
    answer_key: Optional[AnswerKey] = None
    options: GradingOptions = Field(default_factory=GradingOptions)


# ==================== GRADING OUTPUT ====================

class QuestionResult(BaseModel):
    """Final per-question grade after verification reconciliation."""
    question_number: int
    problem_text: str = ""
    ai_calculation: Optional[str] = None
    ai_answer: Optional[str] = None
    student_answer: Optional[str] = None
    correct_answer: Optional[str] = None
    answer_key_value: Optional[str] = None
    is_correct: bool = False
    points_awarded: float = Field(default=0.0, ge=0.0)
    points_possible: float = Field(default=1.0, ge=0.0)
    confidence: float = Field(default=0.5, ge=0.0, le=1.0)
    readability_confidence: float = Field(default=1.0, ge=0.0, le=1.0)
    readability_issue: Optional[str] = None
    discrepancy: Optional[str] = None
    feedback: Optional[str] = None
    difficulty_level: ProblemDifficulty = ProblemDifficulty.SIMPLE
    verification: Optional[VerificationResult] = None

    @model_validator(mode="after")
    def check_points(self) -> "QuestionResult":
        if self.points_awarded > self.points_possible:
            raise ValueError(
                f"points_awarded ({self.points_awarded}) exceeds points_possible ({self.points_possible})"
            )
        return self

    @property
    def verification_method(self) -> VerificationMethod:
        return self.verification.method if self.verification else VerificationMethod.NONE

    @property
    def verification_conflict(self) -> bool:
        return bool(self.verification and self.verification.conflict)


class ParsedGradingResponse(BaseModel):
    """Grading call output after defaults and clamping."""
    student_name: Optional[str] = None
    name_confidence: float = 0.0
    questions: List[QuestionResult] = Field(default_factory=list)
    total_score: float = 0.0
    total_possible: float = 0.0
    needs_review: bool = False
    review_reason: Optional[str] = None


class ParsedFeedback(BaseModel):
    """Per-question feedback messages keyed by question number."""
    messages: Dict[int, str] = Field(default_factory=dict)
    overall_message: str = ""


class CostBreakdown(BaseModel):
    """Advisory cost estimate in USD."""
    mathpix: float = 0.0
    chat_completion: float = 0.0
    wolfram: float = 0.0
    total: float = 0.0


class ProcessingMetrics(BaseModel):
    total_time_ms: float = 0.0
    per_stage_time_ms: Dict[str, float] = Field(default_factory=dict)
    ai_provider_used: Optional[str] = None
    fallbacks_required: int = 0


class GradingResult(BaseModel):
    """
    Outcome of grading one submission.

    Immutable once returned; the caller decides persistence.
    """
    model_config = ConfigDict(frozen=True)

    submission_id: str
    success: bool
    questions: List[QuestionResult] = Field(default_factory=list)
    score: float = 0.0
    max_score: float = 0.0
    percentage: int = 0
    detected_student_name: Optional[str] = None
    name_confidence: Optional[float] = None
    ocr_provider: OcrSource = OcrSource.VISION
    ocr_confidence: Optional[float] = None
    math_difficulty: ProblemDifficulty = ProblemDifficulty.SIMPLE
    provider: Optional[str] = None
    model: Optional[str] = None
    tokens_used: Optional[int] = None
    cost_breakdown: CostBreakdown = Field(default_factory=CostBreakdown)
    processing_metrics: ProcessingMetrics = Field(default_factory=ProcessingMetrics)
    needs_review: bool = False
    review_reason: Optional[str] = None
    error: Optional[str] = None


# ==================== QUEUE ====================

class QueueItem(BaseModel):
    """A submission waiting for (or undergoing) grading."""
    id: str = Field(default_factory=generate_id)
    submission_id: str
    project_id: Optional[str] = None
    priority: int = 0
    status: QueueStatus = QueueStatus.PENDING
    attempts: int = 0
    created_at: datetime = Field(default_factory=datetime.now)
    locked_at: Optional[datetime] = None
    locked_by: Optional[str] = None
    error_message: Optional[str] = None
    result_id: Optional[str] = None
