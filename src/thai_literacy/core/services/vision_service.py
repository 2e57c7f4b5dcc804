"""
Vision service for handwriting detection.

Sends a student's canvas image together with the target Thai character to the
Gemini ``generateContent`` endpoint and turns the reply into a raw verdict.
The verdict is *not* trusted here; ``handwriting_service`` applies the
trust-reduction policy on top of it.
"""

import json
import re
import time
import weakref
import httpx
from dataclasses import dataclass
from typing import Any, Dict, Optional, Protocol

from .logging import get_logging_service
from .settings_config_service import get_settings_service
from ..exceptions import (
    AIServiceError,
    ConfigurationError,
    VisionAuthError,
    VisionNetworkError,
    VisionQuotaError,
    VisionResponseError,
)


@dataclass
class RawVerdict:
    """Verdict exactly as reported by the vision model"""

    detected_text: str
    is_correct: bool
    confidence: int
    explanation: str


class VisionVerifier(Protocol):
    def detect(self, image_base64: str, target_word: str) -> RawVerdict: ...


def clamp_confidence(value: Any) -> int:
    """Coerce a reported confidence into an integer between 0 and 100"""
    try:
        number = int(float(value))
    except (TypeError, ValueError):
        return 0
    return min(100, max(0, number))


def _repair_json(text: str) -> str:
    """Best-effort cleanup of a possibly fenced or truncated JSON reply"""
    clean = text.replace("```json", "").replace("```", "").strip()
    start = clean.find("{")
    if start == -1:
        return clean
    clean = clean[start:]

    if not clean.endswith("}"):
        # Truncated reply (MAX_TOKENS): close a dangling string, then the braces
        if clean.count('"') % 2 == 1:
            clean += '"'
        missing = clean.count("{") - clean.count("}")
        clean += "}" * max(missing, 0)
    return clean


_FIELD_PATTERNS = {
    "detected": re.compile(r'"detected"\s*:\s*"([^"]*)"'),
    "isCorrect": re.compile(r'"isCorrect"\s*:\s*(true|false)'),
    "confidence": re.compile(r'"confidence"\s*:\s*(\d+)'),
    "explanation": re.compile(r'"explanation"\s*:\s*"([^"]*)"'),
}


def parse_vision_reply(text: str) -> Dict[str, Any]:
    """
    Parse the model's text reply into a field dictionary.

    Falls back to extracting the individual fields with regular expressions
    when the repaired text still is not valid JSON.

    Raises:
        VisionResponseError: If no recognizable field can be found
    """
    candidate = _repair_json(text)
    try:
        parsed = json.loads(candidate)
    except json.JSONDecodeError:
        parsed = None
    if isinstance(parsed, dict):
        return parsed

    fields: Dict[str, Any] = {}
    for key, pattern in _FIELD_PATTERNS.items():
        match = pattern.search(candidate)
        if match:
            fields[key] = match.group(1)
    if not fields:
        raise VisionResponseError(f"Failed to parse vision reply as JSON: {text[:200]!r}")
    if "isCorrect" in fields:
        fields["isCorrect"] = fields["isCorrect"] == "true"
    return fields


def verdict_from_fields(fields: Dict[str, Any]) -> RawVerdict:
    is_correct = fields.get("isCorrect")
    return RawVerdict(
        detected_text=str(fields.get("detected") or ""),
        is_correct=is_correct is True or is_correct == "true",
        confidence=clamp_confidence(fields.get("confidence")),
        explanation=str(fields.get("explanation") or ""),
    )


def build_prompt(target_word: str) -> str:
    """Evaluator prompt for one target character"""
    return f"""You are an expert Thai handwriting evaluator. Analyze the student's handwriting and determine if it matches the target character "{target_word}".

IMAGE ANALYSIS:
- GRAY DASHED LINE = Guide template (the correct character "{target_word}")
- BLUE LINE = Student's handwriting

EVALUATION CRITERIA (STRICT - FOLLOW EXACTLY):

1. **TRACING ACCURACY (MOST IMPORTANT - CHECK FIRST!)**:
   - Measure overlap: What % of gray guide line is covered by blue line?
   - Check quality: Is blue line a SINGLE CLEAN TRACE or messy scribbles?

   **REJECT IMMEDIATELY if:**
   - Messy scribbles/zig-zags -> isCorrect: false, confidence: 0-30%
   - Overlap < 80% -> isCorrect: false, confidence: 0-49%
   - Multiple random lines -> isCorrect: false, confidence: 0-20%
   - Written outside guide -> isCorrect: false, confidence: 0-15%

   **ACCEPT ONLY if:**
   - Overlap >= 80% AND
   - Single clean trace (not messy) AND
   - Follows guide shape closely AND
   - Character shape matches "{target_word}" exactly

2. **CHARACTER SHAPE MATCHING**:
   - Does blue line's shape match "{target_word}"?
   - Check Thai-specific features (head orientation, tail length, etc.)

3. **DECISION RULES**:
   - isCorrect: true ONLY if overlap >= 80% AND clean trace AND correct character
   - If messy scribbles -> isCorrect: false (NO EXCEPTIONS!)
   - If overlap < 80% -> isCorrect: false (even if character is correct!)

**CRITICAL: Messy scribbles = ALWAYS WRONG, no matter what!**

Response format (JSON only, no markdown):
{{
  "detected": "Character detected (e.g., '{target_word}', 'ก', 'ข')",
  "isCorrect": true/false (true ONLY if overlap >= 80% AND clean trace AND correct character),
  "confidence": 0-100 (based on overlap % and quality: 90-100% = perfect, 80-89% = good, <80% = poor),
  "explanation": "Brief feedback in Thai. If incorrect, mention: 'ลองเขียนให้ทับเส้นประให้มากขึ้น' (if overlap < 80%), 'ลองเขียนให้เป็นเส้นเดียวที่ชัดเจน' (if messy), 'เขียนได้ดีมาก!' (if correct)"
}}"""


class GeminiVisionVerifier:
    """Gemini-backed handwriting detector"""

    PROVIDER = "gemini"

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        self.config = config or get_settings_service().get_ai_config_defaults()
        self.model = self.config.get("model") or "gemini-2.5-flash"
        self.logging_service = get_logging_service()
        self.logger = self.logging_service.get_logger("vision")
        self._client: httpx.Client
        self._setup_client()

    def _setup_client(self):
        """Setup HTTP client with bounded timeouts"""
        timeout = httpx.Timeout(
            float(self.config.get("timeout_seconds", 30.0)),
            connect=float(self.config.get("connect_timeout_seconds", 10.0)),
        )
        self._client = httpx.Client(timeout=timeout)
        weakref.finalize(self, self._client.close)

    def close(self):
        self._client.close()

    @property
    def is_configured(self) -> bool:
        return bool(self.config.get("api_key"))

    def endpoint(self) -> str:
        base = str(self.config.get("url") or "https://generativelanguage.googleapis.com")
        # Newer models are served from v1
        api_version = "v1" if "2.5" in self.model else "v1beta"
        return f"{base.rstrip('/')}/{api_version}/models/{self.model}:generateContent"

    def build_request_body(self, image_base64: str, target_word: str) -> Dict[str, Any]:
        return {
            "contents": [
                {
                    "parts": [
                        {"text": build_prompt(target_word)},
                        {"inline_data": {"mime_type": "image/png", "data": image_base64}},
                    ]
                }
            ],
            "generationConfig": {
                "temperature": float(self.config.get("temperature", 0.1)),
                "topK": 40,
                "topP": 0.95,
                "maxOutputTokens": int(self.config.get("max_output_tokens", 2048)),
            },
        }

    def detect(self, image_base64: str, target_word: str) -> RawVerdict:
        """
        Ask the model which character the image shows.

        Args:
            image_base64: Base64 PNG payload, with or without a data URL header
            target_word: Character the student was asked to trace

        Returns:
            RawVerdict with confidence clamped to 0-100

        Raises:
            ConfigurationError: If no API key is configured
            VisionAuthError, VisionQuotaError, VisionNetworkError,
            VisionResponseError: Classified vision API failures
        """
        if not self.is_configured:
            raise ConfigurationError(
                "Gemini API key not configured. Set GEMINI_API_KEY or ai.gemini.api_key"
            )
        if "," in image_base64:
            image_base64 = image_base64.split(",", 1)[1]

        start = time.perf_counter()
        try:
            text = self._call_gemini(image_base64, target_word)
            verdict = verdict_from_fields(parse_vision_reply(text))
        except AIServiceError as e:
            self.logging_service.log_ai_operation(
                "handwriting_detect",
                self.PROVIDER,
                self.model,
                success=False,
                duration_ms=int((time.perf_counter() - start) * 1000),
                error_type=type(e).__name__,
                target_word=target_word,
            )
            raise

        self.logging_service.log_ai_operation(
            "handwriting_detect",
            self.PROVIDER,
            self.model,
            duration_ms=int((time.perf_counter() - start) * 1000),
            target_word=target_word,
            detected=verdict.detected_text,
            confidence=verdict.confidence,
        )
        return verdict

    def _call_gemini(self, image_base64: str, target_word: str) -> str:
        """POST the request and return the reply text"""
        self.logger.debug(f"Calling Gemini model={self.model} target={target_word}")
        try:
            response = self._client.post(
                self.endpoint(),
                params={"key": self.config["api_key"]},
                json=self.build_request_body(image_base64, target_word),
            )
        except httpx.TimeoutException as e:
            self.logger.error("Gemini request timed out")
            raise VisionNetworkError(f"Gemini request timed out: {e}") from e
        except httpx.TransportError as e:
            self.logger.error(f"Gemini connection failed: {e}")
            raise VisionNetworkError(f"Failed to connect to Gemini: {e}") from e

        if response.status_code >= 400:
            self._raise_for_status(response)

        try:
            data = response.json()
        except ValueError as e:
            raise VisionResponseError(f"Gemini returned a non-JSON body: {e}") from e

        try:
            candidate = data["candidates"][0]
            text = candidate["content"]["parts"][0]["text"]
        except (KeyError, IndexError, TypeError):
            text = ""
        if not text:
            raise VisionResponseError("No response text from Gemini API")

        if candidate.get("finishReason") == "MAX_TOKENS":
            self.logger.warning("Gemini reply was truncated (MAX_TOKENS), repairing")
        return text

    def _raise_for_status(self, response: httpx.Response):
        status = response.status_code
        detail = ""
        try:
            error_data = response.json()
            if isinstance(error_data, dict):
                err = error_data.get("error")
                if isinstance(err, dict):
                    detail = str(err.get("message") or "")
                elif err:
                    detail = str(err)
        except ValueError:
            detail = response.text[:200]
        message = f"Gemini API request failed ({status}): {detail}"
        self.logger.error(message)

        lowered = detail.lower()
        if status in (401, 403) or "api key" in lowered:
            raise VisionAuthError(message)
        if status == 429 or "quota" in lowered:
            raise VisionQuotaError(message)
        if status >= 500:
            raise VisionNetworkError(message)
        raise VisionResponseError(message)


# Global verifier instance
_verifier: Optional[GeminiVisionVerifier] = None


def get_vision_verifier() -> GeminiVisionVerifier:
    """Get the global vision verifier"""
    global _verifier
    if _verifier is None:
        _verifier = GeminiVisionVerifier()
    return _verifier


def reset_vision_verifier() -> None:
    """Close and drop the global verifier. Useful for testing."""
    global _verifier
    if _verifier is not None:
        _verifier.close()
    _verifier = None
