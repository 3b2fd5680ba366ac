"""Gemini client for announcement copy"""
import asyncio
from typing import Optional
import requests

from ..utils.logger import setup_logger

logger = setup_logger(__name__)

GEMINI_BASE_URL = "https://generativelanguage.googleapis.com/v1beta"


class GenerationError(Exception):
    """Raised when the text generator cannot produce a message"""


class GeminiClient:
    """Thin async wrapper around the Gemini generateContent endpoint"""

    def __init__(
        self,
        api_key: Optional[str],
        model: str = "gemini-2.0-flash",
        timeout: float = 20.0,
        base_url: str = GEMINI_BASE_URL
    ):
        """
        Initialize Gemini client

        Args:
            api_key: Google AI Studio key; generation fails fast without it
            model: Model name used in the request path
            timeout: Seconds before a request is abandoned
            base_url: API root, overridable for proxies
        """
        self.api_key = api_key
        self.model = model
        self.timeout = timeout
        self.base_url = base_url.rstrip("/")

    async def generate(self, prompt: str) -> str:
        """
        Generate text for a prompt

        Returns:
            Generated text, stripped

        Raises:
            GenerationError: On missing key, timeout, HTTP or payload errors
        """
        if not self.api_key:
            raise GenerationError("GEMINI_API_KEY is not configured")

        try:
            return await asyncio.wait_for(
                asyncio.to_thread(self._generate_sync, prompt),
                timeout=self.timeout + 5
            )
        except asyncio.TimeoutError as e:
            raise GenerationError(f"Gemini request timed out after {self.timeout}s") from e

    def _generate_sync(self, prompt: str) -> str:
        url = f"{self.base_url}/models/{self.model}:generateContent"
        payload = {
            "contents": [{"role": "user", "parts": [{"text": prompt}]}],
            "generationConfig": {"temperature": 0.9, "maxOutputTokens": 1024},
        }

        logger.debug(f"Requesting {self.model} completion ({len(prompt)} chars prompt)")
        try:
            response = requests.post(
                url,
                params={"key": self.api_key},
                json=payload,
                timeout=self.timeout
            )
            response.raise_for_status()
            data = response.json()
        except requests.RequestException as e:
            raise GenerationError(f"Gemini request failed: {e}") from e
        except ValueError as e:
            raise GenerationError(f"Gemini returned invalid JSON: {e}") from e

        text = self._extract_text(data)
        if not text:
            raise GenerationError("Gemini returned an empty message")
        return text

    def _extract_text(self, data) -> str:
        """Join the text parts of the first candidate"""
        if not isinstance(data, dict):
            raise GenerationError("Gemini response is not a JSON object")

        candidates = data.get("candidates") or []
        if not candidates:
            return ""

        content = (candidates[0] or {}).get("content") or {}
        parts = content.get("parts") or []
        texts = [
            str(part["text"]) for part in parts
            if isinstance(part, dict) and part.get("text")
        ]
        return "\n".join(texts).strip()
