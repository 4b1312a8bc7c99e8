import json

import httpx
import pytest

from app.core.exceptions import PhotoAnalysisError
from app.services.photo_analysis import PhotoAnalyzer, extract_metadata


def make_analyzer(handler, api_key="sk-test"):
    return PhotoAnalyzer(
        api_key=api_key,
        base_url="https://vision.test/v1",
        transport=httpx.MockTransport(handler),
    )


def completion(content, finish_reason="stop"):
    return httpx.Response(200, json={"choices": [{"message": {"content": content}, "finish_reason": finish_reason}]})


@pytest.mark.asyncio
async def test_analyze_sends_image_and_returns_prompt():
    seen = {}

    def handler(request):
        seen["path"] = request.url.path
        seen["body"] = json.loads(request.content)
        return completion("  A cinematic, moody portrait of a smiling person.  ")

    analyzer = make_analyzer(handler)
    analysis = await analyzer.analyze(b"jpeg-bytes", "detailed")
    await analyzer.aclose()

    assert seen["path"] == "/v1/chat/completions"
    image_part = seen["body"]["messages"][0]["content"][1]
    assert image_part["image_url"]["url"].startswith("data:image/jpeg;base64,")
    assert image_part["image_url"]["detail"] == "high"
    assert analysis.prompt == "A cinematic, moody portrait of a smiling person."
    assert analysis.metadata["suggested_styles"] == ["cinematic", "moody"]
    assert analysis.metadata["mood"] == "happy"
    assert analysis.metadata["confidence"] == 0.9


@pytest.mark.asyncio
@pytest.mark.parametrize("response, code, status_code", [
    (httpx.Response(429, json={"error": "slow down"}), "RATE_LIMITED", 429),
    (httpx.Response(400, json={"error": {"code": "content_policy_violation"}}), "CONTENT_RESTRICTED", 400),
    (httpx.Response(500, text="boom"), "ANALYSIS_FAILED", 502),
    (completion("   "), "ANALYSIS_FAILED", 502),
    (httpx.Response(200, json={"choices": []}), "ANALYSIS_FAILED", 502),
])
async def test_analyze_errors(response, code, status_code):
    analyzer = make_analyzer(lambda request: response)

    with pytest.raises(PhotoAnalysisError) as exc_info:
        await analyzer.analyze(b"jpeg-bytes")
    await analyzer.aclose()

    assert exc_info.value.code == code
    assert exc_info.value.status_code == status_code


@pytest.mark.asyncio
async def test_unconfigured_analyzer_is_unavailable():
    analyzer = make_analyzer(lambda request: completion("never called"), api_key="")

    with pytest.raises(PhotoAnalysisError) as exc_info:
        await analyzer.analyze(b"jpeg-bytes")
    await analyzer.aclose()

    assert exc_info.value.status_code == 503


def test_metadata_without_keywords_is_empty():
    assert extract_metadata("A person standing on a hill") == {}
