"""Story generator using DashScope qwen chat models.

The model is asked for a single narrative piece about the listener's current
surroundings, shaped by the movement-dependent prompt hints. The first line of
the answer is the title, the rest is the body.
"""

from __future__ import annotations

import os
from typing import Optional

from errors import AUTH_FAILED, GENERATION_FAILED, NETWORK_ERROR, StoryGenerationError
from models import Interest, PromptHints, Story

try:
    import dashscope
except Exception:  # pragma: no cover
    dashscope = None  # type: ignore

_LENGTH_WORDS = {"short": 120, "medium": 250, "long": 450}

SYSTEM_PROMPT = (
    "You are a local storyteller narrating to someone on the move. "
    "Answer with a title on the first line, then the narration as plain prose "
    "suitable for text-to-speech."
)


class DashscopeStoryGenerator:
    def __init__(
        self,
        api_key: str,
        model: str = "qwen-plus",
        request_timeout_s: float = 20.0,
    ) -> None:
        self._api_key = api_key
        self._model = model
        self._request_timeout_s = request_timeout_s

    def generate_story(
        self,
        latitude: float,
        longitude: float,
        interests: list[Interest],
        hints: PromptHints,
    ) -> Optional[Story]:
        if dashscope is None:
            raise StoryGenerationError(GENERATION_FAILED, "dashscope is not installed")

        api_key = self._api_key or os.getenv("DASHSCOPE_API_KEY", "")
        if not api_key:
            raise StoryGenerationError(AUTH_FAILED, "No API key configured")

        try:
            response = dashscope.Generation.call(
                api_key=api_key,
                model=self._model,
                messages=[
                    {"role": "system", "content": SYSTEM_PROMPT},
                    {"role": "user", "content": build_user_prompt(latitude, longitude, interests, hints)},
                ],
                result_format="message",
                timeout=self._request_timeout_s,
            )
        except Exception as exc:
            raise self._to_error(exc) from exc

        status = _get(response, "status_code")
        if status is not None and status != 200:
            message = str(_get(response, "message") or f"status {status}")
            raise self._to_error(Exception(f"{status} {message}"))

        text = self._extract_text(response)
        if not text.strip():
            return None
        return parse_story(text)

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _extract_text(self, response: object) -> str:
        """Pull the assistant message out of a DashScope response dict."""
        output = _get(response, "output") or {}
        choices = _get(output, "choices") or []
        if choices:
            message = _get(choices[0], "message") or {}
            content = _get(message, "content")
            if isinstance(content, str):
                return content
            if isinstance(content, list) and content:
                return str(_get(content[0], "text") or "")
            return ""
        # text result_format
        return str(_get(output, "text") or "")

    def _to_error(self, exc: Exception) -> StoryGenerationError:
        """Map an SDK/network exception to a coded generation error."""
        message = str(exc)
        low = message.lower()
        if "401" in low or "auth" in low or "api key" in low:
            return StoryGenerationError(AUTH_FAILED, message, retryable=False)
        if "timeout" in low or "network" in low or "connection" in low:
            return StoryGenerationError(NETWORK_ERROR, message, retryable=True)
        return StoryGenerationError(GENERATION_FAILED, message, retryable=True)


def build_user_prompt(
    latitude: float,
    longitude: float,
    interests: list[Interest],
    hints: PromptHints,
) -> str:
    topics = ", ".join(i["name"] for i in hints.interests) or ", ".join(i.name for i in interests)
    words = _LENGTH_WORDS.get(hints.content_length, 250)
    return (
        f"Location: {latitude:.5f}, {longitude:.5f}.\n"
        f"{hints.context_prompt}\n"
        f"Write a {hints.content_type} of about {words} words"
        f"{' touching on ' + topics if topics else ''}."
    )


def parse_story(text: str) -> Story:
    lines = [line.strip() for line in text.strip().splitlines()]
    title = lines[0].lstrip("#").strip().strip("*").strip() if lines else ""
    if title.lower().startswith("title:"):
        title = title[len("title:"):].strip()
    body = "\n".join(lines[1:]).strip()
    if not body:
        body, title = title, title[:60]
    return Story(title=title, body=body)


def _get(obj: object, key: str) -> object:
    if isinstance(obj, dict):
        return obj.get(key)
    return getattr(obj, key, None)
