import base64
from typing import Optional

import httpx

from app.logging_config import get_logger

logger = get_logger("ocr_service")

VISION_ANNOTATE_URL = "https://vision.googleapis.com/v1/images:annotate"


class OcrError(Exception):
    """Text detection failed upstream."""


class OcrService:
    """Text detection through the Google Cloud Vision REST API."""

    def __init__(self, api_key: str, timeout_seconds: float = 20.0, url: str = VISION_ANNOTATE_URL):
        self.api_key = api_key
        self.timeout_seconds = timeout_seconds
        self.url = url

    async def detect_text(self, image: bytes) -> Optional[str]:
        """Return the text found in the image, or None when there is none."""
        if not self.api_key:
            raise OcrError("Vision API key is not configured")
        if not image:
            raise OcrError("Image is empty")

        payload = {
            "requests": [
                {
                    "image": {"content": base64.b64encode(image).decode("ascii")},
                    "features": [{"type": "TEXT_DETECTION"}],
                }
            ]
        }
        try:
            async with httpx.AsyncClient(timeout=self.timeout_seconds) as client:
                response = await client.post(self.url, params={"key": self.api_key}, json=payload)
        except httpx.HTTPError as exc:
            raise OcrError(f"Vision request failed: {exc}") from exc

        if response.status_code != 200:
            raise OcrError(f"Vision API error: {response.status_code} - {response.text[:200]}")

        try:
            annotation = (response.json().get("responses") or [{}])[0]
        except ValueError as exc:
            raise OcrError(f"Malformed Vision response: {exc}") from exc

        if annotation.get("error"):
            raise OcrError(f"Vision annotation error: {annotation['error'].get('message')}")

        text = (annotation.get("fullTextAnnotation") or {}).get("text")
        if not text:
            texts = annotation.get("textAnnotations") or []
            text = texts[0].get("description") if texts else None

        text = (text or "").strip()
        logger.debug(f"Vision detected {len(text)} chars")
        return text or None
