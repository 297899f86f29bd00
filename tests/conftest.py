"""
Shared fixtures: stub providers, a zero-delay resilience facade, settings.
"""

import json
from typing import Callable, List, Optional, Tuple, Union

import pytest

from mathgrader.ai.base_provider import ChatProvider, OcrProvider, SymbolicSolver
from mathgrader.config.settings import Settings
from mathgrader.core.models import ImageInput, OcrResult, SolveResult, TokenUsage
from mathgrader.utils.resilience import Resilience
from mathgrader.utils.retry import RetryConfig

# (prompt, system_prompt, image) -> content
Responder = Callable[[str, Optional[str], Optional[ImageInput]], str]
Scripted = Union[str, Exception]


class StubChatProvider(ChatProvider):
    """
    Chat provider answering from a script.

    `script` is either a list consumed one entry per call (strings are
    returned, exceptions raised) or a responder function.
    """

    def __init__(
        self,
        name: str = "stub",
        script: Union[List[Scripted], Responder, None] = None,
        available: bool = True,
        model: str = "stub-model",
        resilience: Optional[Resilience] = None,
    ):
        super().__init__(resilience=resilience or make_resilience())
        self._name = name
        self.script = script if script is not None else []
        self.available = available
        self.model = model
        self.prompts: List[Tuple[str, Optional[str]]] = []

    @property
    def name(self) -> str:
        return self._name

    def is_available(self) -> bool:
        return self.available

    async def _complete(self, image, prompt, system_prompt):
        self.prompts.append((prompt, system_prompt))
        if callable(self.script):
            content = self.script(prompt, system_prompt, image)
        else:
            if not self.script:
                raise AssertionError(f"{self._name} received an unscripted call")
            content = self.script.pop(0)
        if isinstance(content, Exception):
            raise content
        return content, TokenUsage(input=100, output=50, total=150)

    @property
    def call_count(self) -> int:
        return len(self.prompts)


class StubSolver(SymbolicSolver):
    """Symbolic solver returning canned results per expression."""

    def __init__(
        self,
        results: Optional[dict] = None,
        error: Optional[str] = None,
        available: bool = True,
        raises: Optional[Exception] = None,
    ):
        super().__init__(resilience=make_resilience())
        self.results = results or {}
        self.error = error
        self.raises = raises
        self.available = available
        self.queries: List[str] = []

    @property
    def name(self) -> str:
        return "stub-solver"

    def is_available(self) -> bool:
        return self.available

    async def solve(self, expression: str) -> SolveResult:
        self.queries.append(expression)
        if self.raises is not None:
            raise self.raises
        if self.error:
            return SolveResult(success=False, expression=expression, error=self.error)
        return SolveResult(success=True, expression=expression, result=self.results.get(expression, ""))


class StubOcr(OcrProvider):
    """OCR provider returning a fixed result, or raising it when it is an exception."""

    def __init__(self, result: Union[OcrResult, Exception], available: bool = True):
        super().__init__(resilience=make_resilience())
        self.result = result
        self.available = available
        self.calls = 0

    @property
    def name(self) -> str:
        return "stub-ocr"

    def is_available(self) -> bool:
        return self.available

    async def extract_math(self, image: ImageInput) -> OcrResult:
        self.calls += 1
        if isinstance(self.result, Exception):
            raise self.result
        return self.result


def make_resilience(**kwargs) -> Resilience:
    """Resilience facade with two attempts and no backoff delay."""
    kwargs.setdefault("retry_config", RetryConfig(max_attempts=2, base_delay=0, jitter=False))
    kwargs.setdefault("default_timeout", 5.0)
    return Resilience(**kwargs)


def grading_json(questions: List[dict], **extra) -> str:
    payload = {
        "studentName": "Alex Kim",
        "nameConfidence": 0.9,
        "questions": questions,
        "needsReview": False,
        "reviewReason": None,
    }
    payload.update(extra)
    return json.dumps(payload)


def verification_json(your_answer: str, provided: str, match: bool, confidence: float = 0.9, **extra) -> str:
    payload = {
        "calculation": "worked out step by step",
        "yourAnswer": your_answer,
        "providedAnswer": provided,
        "match": match,
        "confidence": confidence,
    }
    payload.update(extra)
    return json.dumps(payload)


@pytest.fixture
def resilience():
    return make_resilience()


@pytest.fixture
def settings():
    """Settings isolated from the environment's .env file."""
    return Settings(_env_file=None, use_ocr=False, track_api_costs=False)


@pytest.fixture
def image():
    return ImageInput(type="base64", data="aGVsbG8=", mime_type="image/png")
