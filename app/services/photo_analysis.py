"""
Photo Analysis Service
Turns a camera photo into an avatar generation prompt with an
OpenAI-compatible vision model (chat/completions with an image part).
"""

import base64
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

import httpx

from app.core.config import settings
from app.core.exceptions import PhotoAnalysisError

logger = logging.getLogger(__name__)

MASTER_PROMPT = """
You are an AI avatar prompt specialist. Analyze the provided photo and create a prompt for avatar generation.

ANALYSIS FRAMEWORK:
1. Subject: Identify pose, expression, positioning of the person
2. Environment: Note setting, background, lighting conditions
3. Mood: Capture emotional tone and atmosphere
4. Visual Style: Identify colors, composition, artistic elements
5. Artistic Direction: Suggest rendering style that would work well for avatars

OUTPUT REQUIREMENTS:
- Length: 50-150 words
- Focus: Portrait/avatar suitable for AI generation
- Style: Include 2-3 artistic style keywords (e.g., "cinematic", "vintage", "minimalist")
- Person-focused: Center the description around creating an avatar of the person

FORBIDDEN:
- Real person names or identifiable information
- Inappropriate or NSFW content suggestions
- References to specific brands or copyrighted material

Generate a creative prompt that would create an engaging avatar inspired by this photo's mood, setting, and style.
"""

STYLE_KEYWORDS = (
    "cinematic", "vintage", "minimalist", "artistic", "dramatic",
    "warm", "cool", "bright", "moody", "elegant", "casual",
    "professional", "creative", "modern", "classic",
)

MOOD_KEYWORDS = {
    "happy": ("happy", "cheerful", "bright", "joyful", "smiling"),
    "serious": ("serious", "professional", "focused", "formal"),
    "relaxed": ("relaxed", "casual", "laid-back", "comfortable"),
    "dramatic": ("dramatic", "intense", "bold", "striking"),
}

ANALYSIS_TYPES = ("standard", "detailed")


@dataclass
class PhotoAnalysis:
    prompt: str
    metadata: Dict[str, Any] = field(default_factory=dict)


def extract_metadata(prompt: str) -> Dict[str, Any]:
    """Style keywords and the first matching mood found in the prompt text."""
    lowered = prompt.lower()
    metadata: Dict[str, Any] = {}

    styles = [style for style in STYLE_KEYWORDS if style in lowered]
    if styles:
        metadata["suggested_styles"] = styles

    for mood, keywords in MOOD_KEYWORDS.items():
        if any(keyword in lowered for keyword in keywords):
            metadata["mood"] = mood
            break

    return metadata


class PhotoAnalyzer:
    """Client for the vision model's chat/completions endpoint."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        model: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key if api_key is not None else settings.OPENAI_API_KEY
        self.model = model or settings.OPENAI_VISION_MODEL
        self._client = httpx.AsyncClient(
            base_url=(base_url or settings.OPENAI_BASE_URL).rstrip("/"),
            timeout=timeout or settings.OPENAI_TIMEOUT,
            headers={"Authorization": f"Bearer {self.api_key}"},
            transport=transport,
        )

    async def aclose(self):
        await self._client.aclose()

    async def analyze(self, image: bytes, analysis_type: str = "standard") -> PhotoAnalysis:
        """
        Describe a photo as an avatar prompt.

        Args:
            image: JPEG/PNG bytes
            analysis_type: "standard" (low image detail) or "detailed" (high)

        Raises:
            PhotoAnalysisError: CONTENT_RESTRICTED (400), RATE_LIMITED (429) or ANALYSIS_FAILED (502)
        """
        if not self.api_key:
            raise PhotoAnalysisError("Photo analysis is not configured", "ANALYSIS_UNAVAILABLE", 503)
        if analysis_type not in ANALYSIS_TYPES:
            raise PhotoAnalysisError(f"analysis_type must be one of {', '.join(ANALYSIS_TYPES)}", "VALIDATION_ERROR", 400)

        image_url = f"data:image/jpeg;base64,{base64.b64encode(image).decode()}"
        payload = {
            "model": self.model,
            "max_tokens": 300,
            "temperature": 0.8,
            "messages": [{
                "role": "user",
                "content": [
                    {"type": "text", "text": MASTER_PROMPT},
                    {
                        "type": "image_url",
                        "image_url": {"url": image_url, "detail": "high" if analysis_type == "detailed" else "low"},
                    },
                ],
            }],
        }

        try:
            response = await self._client.post("/chat/completions", json=payload)
        except httpx.TimeoutException as e:
            raise PhotoAnalysisError("Image analysis timed out. Please try again.") from e
        except httpx.HTTPError as e:
            raise PhotoAnalysisError(f"Image analysis failed: {e}") from e

        if response.status_code == 429:
            raise PhotoAnalysisError(
                "Analysis service is currently busy. Please try again in a few minutes.", "RATE_LIMITED", 429
            )
        if response.status_code >= 400:
            if "content_policy" in response.text or "content policy" in response.text:
                raise PhotoAnalysisError(
                    "This photo cannot be used for avatar generation. Please try a different photo.",
                    "CONTENT_RESTRICTED",
                    400,
                )
            logger.error(f"[Vision] Analysis failed: {response.status_code} - {response.text[:300]}")
            raise PhotoAnalysisError("Failed to analyze photo. Please try again.")

        try:
            choice = response.json()["choices"][0]
            prompt = (choice.get("message") or {}).get("content") or ""
        except (ValueError, KeyError, IndexError, TypeError, AttributeError) as e:
            raise PhotoAnalysisError("Vision model returned an unreadable response") from e

        prompt = prompt.strip()
        if not prompt:
            raise PhotoAnalysisError("No prompt generated from image analysis")

        metadata = extract_metadata(prompt)
        metadata["confidence"] = 0.9 if choice.get("finish_reason") == "stop" else 0.7
        logger.info(f"[Vision] Generated prompt ({len(prompt)} chars, mood={metadata.get('mood')})")
        return PhotoAnalysis(prompt=prompt, metadata=metadata)


__all__ = ["PhotoAnalyzer", "PhotoAnalysis", "extract_metadata"]
