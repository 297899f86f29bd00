"""
Mathpix OCR provider.

Reads handwritten and printed math into LaTeX and plain text through
the v3/text endpoint.
"""

import time
from typing import Any, Dict, Optional

import httpx

from mathgrader.ai.base_provider import OcrProvider
from mathgrader.config.constants import (
    DEFAULT_OCR_CONFIDENCE,
    MATHPIX_API_URL,
    MATHPIX_DEFAULT_TIMEOUT,
)
from mathgrader.config.logging_config import get_logger
from mathgrader.core.exceptions import (
    APIConnectionError,
    APIResponseError,
    APITimeoutError,
    InputRejectedError,
    MathGraderError,
    ParsingError,
)
from mathgrader.core.models import ImageInput, OcrResult
from mathgrader.utils.resilience import Resilience

logger = get_logger(__name__)

NOT_CONFIGURED_ERROR = "Mathpix API not configured (missing APP_ID or APP_KEY)"
TIMEOUT_ERROR = "Mathpix request timeout"


def _read_confidence(data: Dict[str, Any]) -> float:
    """Reported confidence (falling back to confidence_rate), clamped to [0, 1]."""
    confidence = data.get("confidence")
    if confidence is None:
        confidence = data.get("confidence_rate", DEFAULT_OCR_CONFIDENCE)
    try:
        return max(0.0, min(1.0, float(confidence)))
    except (TypeError, ValueError):
        return DEFAULT_OCR_CONFIDENCE


class MathpixProvider(OcrProvider):
    """OCR provider backed by the Mathpix v3/text API."""

    def __init__(
        self,
        app_id: str = "",
        app_key: str = "",
        timeout: float = MATHPIX_DEFAULT_TIMEOUT,
        resilience: Optional[Resilience] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        enabled: bool = True,
    ):
        super().__init__(resilience=resilience, enabled=enabled)
        self.app_id = app_id
        self.app_key = app_key
        self.timeout = timeout
        self._transport = transport

    @property
    def name(self) -> str:
        return "mathpix"

    def is_available(self) -> bool:
        return bool(self.app_id and self.app_key)

    def _build_payload(self, image: ImageInput) -> Dict[str, Any]:
        return {
            "src": image.as_data_url(),
            "formats": ["latex_styled", "text"],
            "data_options": {"include_detected_alphabets": True},
        }

    async def _request(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        headers = {
            "app_id": self.app_id,
            "app_key": self.app_key,
            "Content-Type": "application/json",
        }
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(MATHPIX_API_URL, json=payload, headers=headers)
        except httpx.TimeoutException as e:
            raise APITimeoutError(TIMEOUT_ERROR) from e
        except httpx.HTTPError as e:
            raise APIConnectionError(f"Mathpix connection error: {e}") from e

        if response.status_code != 200:
            raise APIResponseError(
                f"Mathpix API error: {response.status_code} - {response.text.strip()[:200]}",
                status_code=response.status_code,
            )

        try:
            data = response.json()
        except ValueError as e:
            raise ParsingError("Mathpix returned a non-JSON body") from e
        if not isinstance(data, dict):
            raise ParsingError("Mathpix returned an unexpected response shape")

        if data.get("error"):
            raise InputRejectedError(f"Mathpix error: {data['error']}")
        return data

    async def extract_math(self, image: ImageInput) -> OcrResult:
        """
        Extract math from an image.

        Returns:
            OcrResult with latex, text and confidence; failures are
            reported with success=False
        """
        start_time = time.perf_counter()

        if not self.is_available():
            return OcrResult(success=False, error=NOT_CONFIGURED_ERROR)

        payload = self._build_payload(image)

        try:
            data = await self.resilience.call(
                self.name,
                lambda: self._request(payload),
                timeout=self.timeout,
            )
        except APITimeoutError:
            error = TIMEOUT_ERROR
        except MathGraderError as e:
            error = e.message
        else:
            confidence = _read_confidence(data)
            latency = (time.perf_counter() - start_time) * 1000
            return OcrResult(
                success=True,
                latex=data.get("latex_styled") or data.get("latex"),
                text=data.get("text"),
                confidence=confidence,
                latency_ms=latency,
            )

        latency = (time.perf_counter() - start_time) * 1000
        logger.warning(f"Mathpix OCR failed: {error}")
        return OcrResult(success=False, error=error, latency_ms=latency)
