"""
Recognition client - OCR on gauge snapshots through an external AI service

Supports:
- Gemini (Generative Language REST API, default)
- Ollama (local vision model)

The rest of the application only sees recognize(png) -> text.
"""

import base64
import logging
from dataclasses import dataclass
from typing import Optional

import httpx

from .errors import RecognitionRequestFailed


INSTRUCTION = (
    "Extract all numbers, values, and units of measurement from this image. "
    "Be precise and return only the extracted text. If multiple readings are "
    "present, separate them with a comma. If no text is clearly legible, "
    "respond with 'N/A'."
)

SYSTEM_INSTRUCTION = (
    "You are an AI assistant specialized in high-accuracy Optical Character "
    "Recognition (OCR) on images from industrial environments. Your task is to "
    "read text from gauges, digital readouts, and labels."
)

NO_READING = "N/A"

DEFAULT_BASE_URLS = {
    "gemini": "https://generativelanguage.googleapis.com",
    "ollama": "http://localhost:11434",
}

DEFAULT_MODELS = {
    "gemini": "gemini-2.5-flash",
    "ollama": "llava:7b",
}


@dataclass(frozen=True)
class RecognitionRequest:
    """One OCR request: base64 PNG plus the fixed instruction."""
    image: str
    instruction: str = INSTRUCTION

    @classmethod
    def from_png(cls, png: bytes) -> "RecognitionRequest":
        return cls(image=base64.b64encode(png).decode("ascii"))


class RecognitionClient:
    """
    Wrapper around the OCR provider.

    Every failure (transport, status, malformed body) is raised as
    RecognitionRequestFailed. Nothing is retried here.
    """

    def __init__(self, config: dict, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.logger = logging.getLogger("recognition")

        self.provider = config.get("provider", "gemini")
        if self.provider not in DEFAULT_BASE_URLS:
            raise ValueError(f"Unknown recognition provider: {self.provider}")

        self.model = config.get("model") or DEFAULT_MODELS[self.provider]
        self.base_url = config.get("base_url") or DEFAULT_BASE_URLS[self.provider]
        self.api_key = config.get("api_key")
        self.temperature = config.get("temperature", 0.0)
        self.timeout = config.get("timeout", 30.0)
        self.system_instruction = config.get("system_instruction", SYSTEM_INSTRUCTION)

        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def initialize(self):
        """Create the HTTP client."""
        if self.provider == "gemini" and not self.api_key:
            self.logger.error("Gemini API key not configured, OCR is disabled")
            return

        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self.timeout,
            transport=self._transport,
        )

        if self.provider == "ollama":
            try:
                response = await self._client.get("/api/tags")
                if response.status_code == 200:
                    self.logger.info(f"✅ Connected to Ollama ({self.model})")
                else:
                    self.logger.warning(f"Ollama status: {response.status_code}")
            except httpx.HTTPError as e:
                self.logger.error(f"Cannot connect to Ollama: {e}")
        else:
            self.logger.info(f"✅ Recognition via Gemini ({self.model})")

    async def cleanup(self):
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    @property
    def available(self) -> bool:
        return self._client is not None

    async def recognize(self, png: bytes) -> str:
        """OCR a PNG snapshot."""
        return await self.submit(RecognitionRequest.from_png(png))

    async def submit(self, request: RecognitionRequest) -> str:
        if not self._client:
            raise RecognitionRequestFailed("Recognition client is not initialized. Check API key.")

        if self.provider == "gemini":
            path = f"/v1beta/models/{self.model}:generateContent"
            headers = {"x-goog-api-key": self.api_key}
            body = self._gemini_body(request)
        else:
            path = "/api/chat"
            headers = {}
            body = self._ollama_body(request)

        try:
            response = await self._client.post(path, json=body, headers=headers)
        except httpx.TimeoutException:
            self.logger.error("Recognition timeout")
            raise RecognitionRequestFailed("Recognition request timed out.")
        except httpx.HTTPError as e:
            self.logger.error(f"Recognition transport error: {e}")
            raise RecognitionRequestFailed()

        if response.status_code != 200:
            self.logger.error(f"Recognition error: HTTP {response.status_code}")
            raise RecognitionRequestFailed()

        try:
            data = response.json()
            text = self._gemini_text(data) if self.provider == "gemini" else self._ollama_text(data)
            text = str(text or "").strip()
        except (ValueError, KeyError, IndexError, TypeError, AttributeError) as e:
            self.logger.error(f"Malformed recognition response: {e}")
            raise RecognitionRequestFailed("Malformed response from the AI model.")

        return text or NO_READING

    # ----------------------------------------
    # Provider payloads
    # ----------------------------------------

    def _gemini_body(self, request: RecognitionRequest) -> dict:
        return {
            "systemInstruction": {"parts": [{"text": self.system_instruction}]},
            "contents": [{
                "parts": [
                    {"inline_data": {"mime_type": "image/png", "data": request.image}},
                    {"text": request.instruction},
                ]
            }],
            "generationConfig": {"temperature": self.temperature},
        }

    @staticmethod
    def _gemini_text(data: dict) -> str:
        parts = data["candidates"][0]["content"]["parts"]
        return "".join(part.get("text", "") for part in parts)

    def _ollama_body(self, request: RecognitionRequest) -> dict:
        return {
            "model": self.model,
            "messages": [
                {"role": "system", "content": self.system_instruction},
                {"role": "user", "content": request.instruction, "images": [request.image]},
            ],
            "stream": False,
            "options": {"temperature": self.temperature},
        }

    @staticmethod
    def _ollama_text(data: dict) -> str:
        return data["message"]["content"]
