"""
Remote Job Client
Thin async client for the character provider (302.AI Higgsfield endpoints).

Submit calls return an opaque task id; fetch_status returns the provider's raw
JSON so the poll evaluators decide what it means.
"""

import logging
import random
from typing import Any, Dict, List, Optional

import httpx

from app.core.config import settings
from app.core.exceptions import RemoteSubmissionError

logger = logging.getLogger(__name__)

TRAIN_PATH = "/higgsfield/character"
GENERATE_PATH = "/higgsfield/text2image_soul"
FETCH_PATH = "/higgsfield/task/{task_id}/fetch"


class RemoteJobClient:
    """
    Client for the provider's submit / fetch endpoints.

    Features:
    - One shared httpx.AsyncClient per instance
    - Submit failures raised as RemoteSubmissionError
    - Separate existence check for trained characters
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key if api_key is not None else settings.AI302_API_KEY
        self.base_url = (base_url or settings.AI302_BASE_URL).rstrip("/")
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout or settings.AI302_HTTP_TIMEOUT,
            headers={"Authorization": f"Bearer {self.api_key}"},
            transport=transport,
        )
        if not self.api_key:
            logger.warning("[302.AI] AI302_API_KEY is not set; provider calls will be rejected")

    async def aclose(self):
        await self._client.aclose()

    async def _submit(self, path: str, payload: Dict[str, Any], what: str) -> str:
        try:
            response = await self._client.post(path, json=payload)
        except httpx.HTTPError as e:
            raise RemoteSubmissionError(f"{what} submission failed: {e}") from e

        if response.status_code >= 400:
            raise RemoteSubmissionError(
                f"{what} submission failed: {response.status_code} - {response.text[:500]}"
            )

        try:
            result = response.json()
        except ValueError as e:
            raise RemoteSubmissionError(f"{what} submission returned invalid JSON") from e

        task_id = result.get("task_id") or result.get("id")
        if not task_id:
            raise RemoteSubmissionError(f"No task id returned from {what.lower()} submission")

        logger.info(f"[302.AI] {what} submitted, task_id={task_id}")
        return str(task_id)

    async def submit_training(self, display_name: str, image_urls: List[str]) -> str:
        """
        Submit a character training task.

        Args:
            display_name: Name shown for the character on the provider side
            image_urls: Publicly readable URLs of the training photos

        Returns:
            Provider task id
        """
        logger.info(f"[302.AI] Submitting training '{display_name}' with {len(image_urls)} images")
        return await self._submit(
            TRAIN_PATH,
            {"name": display_name, "input_images": image_urls},
            "Training",
        )

    async def submit_generation(
        self,
        prompt: str,
        style_id: str,
        character_id: Optional[str] = None,
        quality: str = "basic",
        aspect_ratio: str = "3:4",
        enhance_prompt: bool = True,
        negative_prompt: str = "",
        seed: Optional[int] = None,
    ) -> str:
        """Submit a text-to-image task, optionally conditioned on a trained character."""
        payload = {
            "prompt": prompt,
            "style_id": style_id,
            "quality": quality,
            "aspect_ratio": aspect_ratio,
            "enhance_prompt": enhance_prompt,
            "seed": seed if seed is not None else random.randint(0, 999_999),
            "negative_prompt": negative_prompt,
        }
        if character_id:
            payload["custom_reference_id"] = character_id

        return await self._submit(GENERATE_PATH, payload, "Generation")

    async def fetch_status(self, task_id: str) -> Dict[str, Any]:
        """
        Fetch the raw task status document.

        Raises httpx errors on transport failure or non-2xx; the poll loop
        treats those as "still pending".
        """
        response = await self._client.get(FETCH_PATH.format(task_id=task_id))
        response.raise_for_status()
        return response.json()

    async def character_exists(self, character_id: str) -> bool:
        """
        Check whether a trained character is still usable.

        Returns False when the provider does not know the id (404) or reports
        the training as failed. Transport errors propagate as RemoteSubmissionError.
        """
        try:
            response = await self._client.get(FETCH_PATH.format(task_id=character_id))
        except httpx.HTTPError as e:
            raise RemoteSubmissionError(f"Character check failed: {e}") from e

        if response.status_code == 404:
            return False
        if response.status_code >= 400:
            raise RemoteSubmissionError(
                f"Character check failed: {response.status_code} - {response.text[:200]}"
            )

        status = str(response.json().get("status") or "").lower()
        return status not in ("failed", "error")


__all__ = ["RemoteJobClient"]
