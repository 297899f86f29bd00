"""
Tests for the Mathpix OCR provider against a mocked HTTP transport.
"""

import json

import httpx
import pytest

from conftest import make_resilience
from mathgrader.ai.mathpix_provider import NOT_CONFIGURED_ERROR, TIMEOUT_ERROR, MathpixProvider
from mathgrader.core.models import ImageInput


def make_ocr(handler, app_id="pix-id", app_key="pix-key"):
    requests = []

    def recording_handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return handler(request)

    provider = MathpixProvider(
        app_id=app_id,
        app_key=app_key,
        timeout=2.0,
        resilience=make_resilience(),
        transport=httpx.MockTransport(recording_handler),
    )
    return provider, requests


@pytest.mark.asyncio
async def test_extract_math_success(image):
    provider, requests = make_ocr(lambda request: httpx.Response(200, json={
        "latex_styled": "\\frac{3}{4}+\\frac{1}{2}",
        "text": "3/4 + 1/2",
        "confidence": 0.93,
    }))

    result = await provider.extract_math(image)

    assert result.success
    assert result.latex == "\\frac{3}{4}+\\frac{1}{2}"
    assert result.text == "3/4 + 1/2"
    assert result.confidence == 0.93

    request = requests[0]
    assert request.headers["app_id"] == "pix-id"
    assert request.headers["app_key"] == "pix-key"
    body = json.loads(request.content)
    assert body["src"] == "data:image/png;base64,aGVsbG8="
    assert body["formats"] == ["latex_styled", "text"]


@pytest.mark.asyncio
async def test_url_images_are_sent_as_is():
    provider, requests = make_ocr(lambda request: httpx.Response(200, json={"text": "7"}))

    await provider.extract_math(ImageInput(type="url", data="https://example.com/hw.png"))

    assert json.loads(requests[0].content)["src"] == "https://example.com/hw.png"


@pytest.mark.asyncio
async def test_confidence_fallbacks(image):
    provider, _ = make_ocr(lambda request: httpx.Response(200, json={"latex": "x", "confidence_rate": 0.61}))
    result = await provider.extract_math(image)
    assert result.latex == "x"
    assert result.confidence == 0.61

    provider, _ = make_ocr(lambda request: httpx.Response(200, json={"text": "x"}))
    result = await provider.extract_math(image)
    assert result.confidence == 0.8


@pytest.mark.asyncio
async def test_error_field_is_reported_without_retry(image):
    provider, requests = make_ocr(lambda request: httpx.Response(200, json={"error": "Image too blurry"}))

    result = await provider.extract_math(image)

    assert not result.success
    assert result.error == "Mathpix error: Image too blurry"
    assert len(requests) == 1


@pytest.mark.asyncio
async def test_auth_failure_is_not_retried(image):
    provider, requests = make_ocr(lambda request: httpx.Response(401, text="bad credentials"))

    result = await provider.extract_math(image)

    assert not result.success
    assert result.error == "Mathpix API error: 401 - bad credentials"
    assert len(requests) == 1


@pytest.mark.asyncio
async def test_timeout(image):
    def handler(request):
        raise httpx.ConnectTimeout("timed out", request=request)

    provider, _ = make_ocr(handler)

    result = await provider.extract_math(image)

    assert not result.success
    assert result.error == TIMEOUT_ERROR


@pytest.mark.asyncio
async def test_missing_credentials(image):
    provider, requests = make_ocr(lambda request: httpx.Response(200, json={}), app_key="")

    result = await provider.extract_math(image)

    assert not result.success
    assert result.error == NOT_CONFIGURED_ERROR
    assert not provider.is_enabled()
    assert requests == []


@pytest.mark.asyncio
async def test_non_numeric_confidence_uses_default(image):
    provider, _ = make_ocr(lambda request: httpx.Response(200, json={"text": "7", "confidence": "high"}))

    result = await provider.extract_math(image)

    assert result.success
    assert result.confidence == 0.8


@pytest.mark.asyncio
async def test_unexpected_body_shape_is_reported(image):
    provider, _ = make_ocr(lambda request: httpx.Response(200, json=["not", "an", "object"]))

    result = await provider.extract_math(image)

    assert not result.success
    assert result.error == "Mathpix returned an unexpected response shape"
