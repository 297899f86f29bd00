"""
Wolfram Alpha symbolic solver.

Uses the Short Answers API (plain-text result) as an independent oracle
for complex problems. Expressions are normalized from LaTeX/unicode into
the linear syntax Wolfram Alpha accepts before querying.
"""

import re
import time
from typing import Optional

import httpx

from mathgrader.ai.base_provider import SymbolicSolver
from mathgrader.config.constants import WOLFRAM_API_URL, WOLFRAM_DEFAULT_TIMEOUT
from mathgrader.config.logging_config import get_logger
from mathgrader.core.exceptions import (
    APIConnectionError,
    APIResponseError,
    APITimeoutError,
    InputRejectedError,
    MathGraderError,
)
from mathgrader.core.models import SolveResult
from mathgrader.utils.resilience import Resilience

logger = get_logger(__name__)

NOT_CONFIGURED_ERROR = "Wolfram Alpha API not configured (missing APP_ID)"
NOT_INTERPRETED_ERROR = "Wolfram Alpha could not interpret the expression"
TIMEOUT_ERROR = "Wolfram Alpha request timeout"

_LATEX_REWRITES = [
    (re.compile(r'\s*=\s*$'), ''),
    (re.compile(r'\\left|\\right'), ''),
    (re.compile(r'\\frac\{([^{}]+)\}\{([^{}]+)\}'), r'(\1)/(\2)'),
    (re.compile(r'\\times|\\cdot|×|·'), '*'),
    (re.compile(r'\\div|÷'), '/'),
    (re.compile(r'\\sqrt\{([^{}]+)\}'), r'sqrt(\1)'),
    (re.compile(r'√\s*(\d+(?:\.\d+)?|[a-zA-Z]\w*)'), r'sqrt(\1)'),
    (re.compile(r'√'), 'sqrt'),
    (re.compile(r'\^\{([^{}]+)\}'), r'^\1'),
    (re.compile(r'[−–]'), '-'),
    (re.compile(r'\s+'), ' '),
]


def normalize_expression(expression: str) -> str:
    """
    Rewrite LaTeX and unicode math into Wolfram Alpha's linear syntax.

    "\\frac{3}{4} \\times 8 =" becomes "(3)/(4) * 8".
    """
    normalized = expression.strip()
    for pattern, replacement in _LATEX_REWRITES:
        normalized = pattern.sub(replacement, normalized)
    return normalized.strip()


class WolframProvider(SymbolicSolver):
    """Symbolic solver backed by the Wolfram Alpha Short Answers API."""

    def __init__(
        self,
        app_id: str = "",
        timeout: float = WOLFRAM_DEFAULT_TIMEOUT,
        resilience: Optional[Resilience] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        enabled: bool = True,
    ):
        super().__init__(resilience=resilience, enabled=enabled)
        self.app_id = app_id
        self.timeout = timeout
        self._transport = transport

    @property
    def name(self) -> str:
        return "wolfram"

    def is_available(self) -> bool:
        return bool(self.app_id)

    async def _query(self, expression: str) -> str:
        params = {"appid": self.app_id, "i": expression}
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.get(WOLFRAM_API_URL, params=params)
        except httpx.TimeoutException as e:
            raise APITimeoutError(TIMEOUT_ERROR) from e
        except httpx.HTTPError as e:
            raise APIConnectionError(f"Wolfram Alpha connection error: {e}") from e

        status = response.status_code
        if status == 200:
            return response.text.strip()

        if status == 501 or (400 <= status < 500 and status != 429):
            raise InputRejectedError(NOT_INTERPRETED_ERROR)

        raise APIResponseError(
            f"Wolfram Alpha API error: {status} - {response.text.strip()[:200]}",
            status_code=status,
        )

    async def solve(self, expression: str) -> SolveResult:
        """
        Evaluate an expression.

        Results are cached per normalized expression. Transient failures
        (timeouts, 5xx, 429, transport errors) are retried by the
        resilience facade; interpretation failures are not.
        """
        start_time = time.perf_counter()

        if not self.is_available():
            return SolveResult(success=False, expression=expression, error=NOT_CONFIGURED_ERROR)

        normalized = normalize_expression(expression)

        try:
            result = await self.resilience.call(
                self.name,
                lambda: self._query(normalized),
                timeout=self.timeout,
                cache_key=normalized,
            )
        except APITimeoutError:
            error = TIMEOUT_ERROR
        except MathGraderError as e:
            error = e.message
        else:
            latency = (time.perf_counter() - start_time) * 1000
            logger.debug(f"Wolfram solved '{normalized}' -> '{result}' in {latency:.0f}ms")
            return SolveResult(success=True, expression=expression, result=result, latency_ms=latency)

        latency = (time.perf_counter() - start_time) * 1000
        logger.warning(f"Wolfram query failed for '{normalized}': {error}")
        return SolveResult(success=False, expression=expression, error=error, latency_ms=latency)
