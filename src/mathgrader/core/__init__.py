"""
Core module for the math grading pipeline.

Exports the data models and the exception hierarchy.
"""

from mathgrader.core.models import (
    AnswerComparisonResult,
    AnswerKey,
    AnswerKeyEntry,
    ChainOfThoughtJudgment,
    ChainOfThoughtResult,
    ClassificationResult,
    ComparisonMethod,
    CostBreakdown,
    GradingOptions,
    GradingRequest,
    GradingResult,
    ImageInput,
    OcrResult,
    OcrSource,
    ParsedFeedback,
    ParsedFraction,
    ParsedGradingResponse,
    ProblemDifficulty,
    ProcessingMetrics,
    ProviderCall,
    ProviderResponse,
    QuestionResult,
    QueueItem,
    QueueStatus,
    SolveResult,
    TokenUsage,
    VerificationMethod,
    VerificationResult,
    VerificationStats,
    generate_id,
)

from mathgrader.core.exceptions import (
    MathGraderError,
    ConfigurationError,
    MissingAPIKeyError,
    ProviderError,
    APIConnectionError,
    APITimeoutError,
    APIRateLimitError,
    APIResponseError,
    InputRejectedError,
    ParsingError,
    CircuitOpenError,
    QueueError,
)

__all__ = [
    # Models
    'AnswerComparisonResult',
    'AnswerKey',
    'AnswerKeyEntry',
    'ChainOfThoughtJudgment',
    'ChainOfThoughtResult',
    'ClassificationResult',
    'ComparisonMethod',
    'CostBreakdown',
    'GradingOptions',
    'GradingRequest',
    'GradingResult',
    'ImageInput',
    'OcrResult',
    'OcrSource',
    'ParsedFeedback',
    'ParsedFraction',
    'ParsedGradingResponse',
    'ProblemDifficulty',
    'ProcessingMetrics',
    'ProviderCall',
    'ProviderResponse',
    'QuestionResult',
    'QueueItem',
    'QueueStatus',
    'SolveResult',
    'TokenUsage',
    'VerificationMethod',
    'VerificationResult',
    'VerificationStats',
    'generate_id',
    # Exceptions
    'MathGraderError',
    'ConfigurationError',
    'MissingAPIKeyError',
    'ProviderError',
    'APIConnectionError',
    'APITimeoutError',
    'APIRateLimitError',
    'APIResponseError',
    'InputRejectedError',
    'ParsingError',
    'CircuitOpenError',
    'QueueError',
]
