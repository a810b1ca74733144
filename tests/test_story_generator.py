"""Tests for DashscopeStoryGenerator."""

from __future__ import annotations

from unittest.mock import MagicMock, patch

import pytest

from errors import AUTH_FAILED, GENERATION_FAILED, NETWORK_ERROR, StoryGenerationError
from models import EnvironmentType, Interest, MovementMode, PromptHints
from story_generator import DashscopeStoryGenerator, build_user_prompt, parse_story

INTERESTS = [Interest(id="1", name="History", category="history", weight=0.8)]


def _hints() -> PromptHints:
    return PromptHints(
        movement_mode=MovementMode.WALKING,
        speed=5.0,
        environment=EnvironmentType.URBAN,
        content_length="medium",
        content_type="history",
        context_prompt="The listener is walking through the area at 5.0 km/h.",
        interests=[{"name": "History", "category": "history"}],
    )


def _response(content: object, status_code: int = 200) -> dict:
    return {
        "status_code": status_code,
        "output": {"choices": [{"message": {"role": "assistant", "content": content}}]},
    }


def _generate(generator: DashscopeStoryGenerator):  # noqa: ANN202
    return generator.generate_story(59.91, 10.75, INTERESTS, _hints())


# ---------------------------------------------------------------
# generate_story
# ---------------------------------------------------------------

@patch("story_generator.dashscope")
def test_successful_generation_parses_title_and_body(mock_ds: MagicMock) -> None:
    mock_ds.Generation.call.return_value = _response("The Old Bridge\nBuilt in 1650, it survived three floods.")

    story = _generate(DashscopeStoryGenerator(api_key="sk-test", model="qwen-turbo"))

    assert story is not None
    assert story.title == "The Old Bridge"
    assert story.body == "Built in 1650, it survived three floods."
    kwargs = mock_ds.Generation.call.call_args.kwargs
    assert kwargs["model"] == "qwen-turbo"
    assert kwargs["api_key"] == "sk-test"
    assert kwargs["result_format"] == "message"
    assert "History" in kwargs["messages"][1]["content"]


@patch("story_generator.dashscope")
def test_list_content_is_supported(mock_ds: MagicMock) -> None:
    mock_ds.Generation.call.return_value = _response([{"text": "Title: Harbour\nShips came and went."}])

    story = _generate(DashscopeStoryGenerator(api_key="sk-test"))

    assert story is not None
    assert story.title == "Harbour"


@patch("story_generator.dashscope", MagicMock())
@patch.dict("os.environ", {"DASHSCOPE_API_KEY": ""}, clear=False)
def test_missing_api_key_raises_auth_error() -> None:
    with pytest.raises(StoryGenerationError) as info:
        _generate(DashscopeStoryGenerator(api_key=""))

    assert info.value.code == AUTH_FAILED


@patch("story_generator.dashscope")
@patch.dict("os.environ", {"DASHSCOPE_API_KEY": "sk-env"}, clear=False)
def test_api_key_falls_back_to_environment(mock_ds: MagicMock) -> None:
    mock_ds.Generation.call.return_value = _response("Title\nBody")

    _generate(DashscopeStoryGenerator(api_key=""))

    assert mock_ds.Generation.call.call_args.kwargs["api_key"] == "sk-env"


@patch("story_generator.dashscope", None)
def test_missing_sdk_raises_generation_failed() -> None:
    with pytest.raises(StoryGenerationError) as info:
        _generate(DashscopeStoryGenerator(api_key="sk-test"))

    assert info.value.code == GENERATION_FAILED


@pytest.mark.parametrize(
    ("message", "code", "retryable"),
    [
        ("Connection reset by peer", NETWORK_ERROR, True),
        ("Invalid API key provided", AUTH_FAILED, False),
        ("model overloaded", GENERATION_FAILED, True),
    ],
)
@patch("story_generator.dashscope")
def test_sdk_exceptions_are_mapped(mock_ds: MagicMock, message: str, code: str, retryable: bool) -> None:
    mock_ds.Generation.call.side_effect = RuntimeError(message)

    with pytest.raises(StoryGenerationError) as info:
        _generate(DashscopeStoryGenerator(api_key="sk-test"))

    assert info.value.code == code
    assert info.value.retryable is retryable


@patch("story_generator.dashscope")
def test_non_200_status_is_an_error(mock_ds: MagicMock) -> None:
    response = _response("ignored", status_code=401)
    response["message"] = "Unauthorized"
    mock_ds.Generation.call.return_value = response

    with pytest.raises(StoryGenerationError) as info:
        _generate(DashscopeStoryGenerator(api_key="sk-test"))

    assert info.value.code == AUTH_FAILED


@patch("story_generator.dashscope")
def test_empty_answer_returns_none(mock_ds: MagicMock) -> None:
    mock_ds.Generation.call.return_value = _response("   ")

    assert _generate(DashscopeStoryGenerator(api_key="sk-test")) is None


# ---------------------------------------------------------------
# Prompt and parsing helpers
# ---------------------------------------------------------------

def test_user_prompt_contains_location_and_shape() -> None:
    prompt = build_user_prompt(59.91, 10.75, INTERESTS, _hints())

    assert "59.91000, 10.75000" in prompt
    assert "walking" in prompt
    assert "history of about 250 words" in prompt


def test_parse_story_strips_markdown_title() -> None:
    story = parse_story("## **The Mill**\n\nFlour was ground here.\nFor centuries.")

    assert story.title == "The Mill"
    assert story.body == "Flour was ground here.\nFor centuries."


def test_parse_story_single_line() -> None:
    text = "A single long line " * 10

    story = parse_story(text)

    assert story.body == text.strip()
    assert len(story.title) == 60
