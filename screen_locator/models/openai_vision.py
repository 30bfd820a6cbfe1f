"""
OpenAI-backed grounding, validation and page-description models.

All three send one screenshot plus a short instruction to the chat
completions endpoint and expect a JSON object back.
"""

from __future__ import annotations

import json
import logging
import os
import time
from typing import Any, Dict, List, Optional, Sequence, Tuple

import requests
from PIL import Image

from screen_locator.common.cv_utils import encode_png_base64, scale_image
from screen_locator.common.geometry import CoordinateSpace, Region
from screen_locator.errors import ConfigurationError, ModelResponseError
from screen_locator.security.rate_limiter import RateLimiter

logger = logging.getLogger(__name__)

OPENAI_CHAT_URL = "https://api.openai.com/v1/chat/completions"
DEFAULT_MODEL = "gpt-4o"
LONGEST_ALLOWED_DIMENSION = 1568

GROUNDING_PROMPT = (
    "You locate UI elements on screenshots. Return every bounding box that contains the target "
    "element as JSON: {\"bounding_boxes\": [{\"x1\": int, \"y1\": int, \"x2\": int, \"y2\": int}]}. "
    "(x1, y1) is the top-left and (x2, y2) the bottom-right corner. "
    "Return an empty list if the element is not visible."
)
GROUNDING_NORMALIZED_HINT = " Coordinates are normalized to 0..1000 on both axes."

VALIDATION_PROMPT = (
    "The screenshot shows several labeled bounding boxes. Identify the single box that marks the "
    "target element. Respond with JSON: {\"success\": bool, \"bounding_box_id\": str, \"message\": str}. "
    "If no box marks the element, set success to false and bounding_box_id to \"\"."
)

PAGE_PROMPT = (
    "Describe the page or view shown on the screenshot in two or three sentences: its purpose, "
    "main sections and visible context. Respond with JSON: {\"page_description\": str}."
)


def _extract_json(text: str) -> Dict[str, Any]:
    t = str(text or "").strip()
    if not t:
        raise ValueError("Empty response")
    try:
        out = json.loads(t)
    except json.JSONDecodeError:
        start = t.find("{")
        end = t.rfind("}")
        if start < 0 or end <= start:
            raise
        out = json.loads(t[start : end + 1])
    if not isinstance(out, dict):
        raise ValueError("Response JSON is not an object")
    return out


def _openai_chat_completion(
    *,
    api_key: str,
    model: str,
    messages: List[Dict[str, Any]],
    timeout_s: float,
    temperature: float,
) -> Tuple[Dict[str, Any], float]:
    headers = {
        "Authorization": f"Bearer {api_key}",
        "Content-Type": "application/json",
    }
    payload = {
        "model": model,
        "messages": messages,
        "temperature": float(temperature),
        "response_format": {"type": "json_object"},
    }
    t0 = time.time()
    resp = requests.post(OPENAI_CHAT_URL, headers=headers, json=payload, timeout=float(max(timeout_s, 10.0)))
    latency = time.time() - t0
    if int(resp.status_code) != 200:
        raise ModelResponseError(f"OpenAI API error {resp.status_code}: {resp.text}")
    data = resp.json()
    if not isinstance(data, dict):
        raise ModelResponseError("OpenAI API returned non-JSON response")
    return data, float(latency)


def _fit_for_upload(image: Image.Image, max_dim: int = LONGEST_ALLOWED_DIMENSION) -> Tuple[Image.Image, float]:
    m = max(image.width, image.height)
    if m <= max_dim:
        return image, 1.0
    scale = float(max_dim) / float(m)
    return scale_image(image, scale), scale


class _OpenAIVisionModel:
    endpoint = "vision"

    def __init__(
        self,
        *,
        model: str = DEFAULT_MODEL,
        api_key: Optional[str] = None,
        temperature: float = 0.0,
        timeout_s: float = 60.0,
        rate_limiter: Optional[RateLimiter] = None,
    ):
        key = api_key or os.environ.get("OPENAI_API_KEY")
        if not key:
            raise ConfigurationError("OPENAI_API_KEY is not set", "api_key")
        self.api_key = key
        self.model = model
        self.temperature = float(temperature)
        self.timeout_s = float(timeout_s)
        self.rate_limiter = rate_limiter

    def _ask(self, system_prompt: str, user_text: str, image: Image.Image) -> Dict[str, Any]:
        if self.rate_limiter is not None:
            self.rate_limiter.check(self.endpoint)
        messages = [
            {"role": "system", "content": system_prompt},
            {
                "role": "user",
                "content": [
                    {"type": "text", "text": user_text},
                    {
                        "type": "image_url",
                        "image_url": {"url": f"data:image/png;base64,{encode_png_base64(image)}", "detail": "high"},
                    },
                ],
            },
        ]
        data, latency = _openai_chat_completion(
            api_key=self.api_key,
            model=self.model,
            messages=messages,
            timeout_s=self.timeout_s,
            temperature=self.temperature,
        )
        logger.debug("%s call to %s took %.2fs", self.endpoint, self.model, latency)
        try:
            content = data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as exc:
            raise ModelResponseError(f"Unexpected OpenAI response shape: {data}") from exc
        try:
            return _extract_json(content)
        except ValueError as exc:
            raise ModelResponseError(f"Unreadable {self.endpoint} answer: {exc}") from exc


class OpenAIGroundingModel(_OpenAIVisionModel):
    """Proposes bounding boxes for a described element."""

    endpoint = "grounding"

    def __init__(self, *, normalized: bool = True, temperature: float = 0.7, **kwargs: Any):
        super().__init__(temperature=temperature, **kwargs)
        self.normalized = bool(normalized)

    def propose_regions(self, description: str, image: Image.Image) -> List[Region]:
        upload, scale = _fit_for_upload(image)
        prompt = GROUNDING_PROMPT + (GROUNDING_NORMALIZED_HINT if self.normalized else "")
        out = self._ask(prompt, f"The target element: {description}", upload)
        boxes = out.get("bounding_boxes")
        if not isinstance(boxes, list):
            return []
        regions: List[Region] = []
        for b in boxes:
            try:
                coords = [float(b[k]) for k in ("x1", "y1", "x2", "y2")]
                if self.normalized:
                    regions.append(Region(*coords, space=CoordinateSpace.NORMALIZED))
                else:
                    regions.append(Region(*coords).scale(1.0 / scale))
            except (KeyError, TypeError, ValueError) as exc:
                logger.debug("Skipping malformed box %r: %s", b, exc)
        return regions


class OpenAIValidationModel(_OpenAIVisionModel):
    """Chooses the labeled box that marks the described element."""

    endpoint = "validation"

    def __init__(self, *, temperature: float = 0.7, **kwargs: Any):
        super().__init__(temperature=temperature, **kwargs)

    def choose_label(
        self, labeled_image: Image.Image, description: str, candidate_labels: Sequence[str]
    ) -> Optional[str]:
        upload, _ = _fit_for_upload(labeled_image)
        text = (
            f"The target element: {description}\n"
            f"Bounding box IDs: {', '.join(candidate_labels)}."
        )
        out = self._ask(VALIDATION_PROMPT, text, upload)
        if not out.get("success"):
            logger.debug("Validation model found no match: %s", out.get("message", ""))
            return None
        label = str(out.get("bounding_box_id") or "").strip()
        return label or None


class OpenAIPageDescriber(_OpenAIVisionModel):
    endpoint = "page_description"

    def describe_page(self, image: Image.Image) -> str:
        upload, _ = _fit_for_upload(image)
        out = self._ask(PAGE_PROMPT, "Describe this screen.", upload)
        return str(out.get("page_description") or "").strip()
