"""Per-movement-mode content strategies and prompt hint construction."""

from __future__ import annotations

from typing import Mapping, Optional

from models import (
    ContentStrategy,
    EnvironmentType,
    Interest,
    LocationContext,
    MovementMode,
    PromptHints,
)

# Stationary listeners get the longest pieces and the slowest refresh;
# moving listeners get short pieces on a tighter cadence.
DEFAULT_STRATEGIES: dict[MovementMode, ContentStrategy] = {
    MovementMode.STATIONARY: ContentStrategy(
        movement_mode=MovementMode.STATIONARY,
        content_length="long",
        content_type="story",
        refresh_interval=300.0,
        priority=0.9,
    ),
    MovementMode.WALKING: ContentStrategy(
        movement_mode=MovementMode.WALKING,
        content_length="medium",
        content_type="history",
        refresh_interval=120.0,
        priority=0.8,
    ),
    MovementMode.CYCLING: ContentStrategy(
        movement_mode=MovementMode.CYCLING,
        content_length="short",
        content_type="fact",
        refresh_interval=60.0,
        priority=0.6,
    ),
    MovementMode.DRIVING: ContentStrategy(
        movement_mode=MovementMode.DRIVING,
        content_length="short",
        content_type="legend",
        refresh_interval=45.0,
        priority=0.7,
    ),
}

_ENVIRONMENT_HINTS = {
    EnvironmentType.NATURE: " They are in a natural area.",
    EnvironmentType.HISTORIC: " They are in a historic area.",
    EnvironmentType.URBAN: " They are in an urban area.",
}


def strategy_for(
    mode: MovementMode,
    strategies: Optional[Mapping[MovementMode, ContentStrategy]] = None,
) -> ContentStrategy:
    table = strategies or DEFAULT_STRATEGIES
    return table.get(mode, DEFAULT_STRATEGIES[mode])


def build_prompt_hints(
    context: LocationContext,
    interests: list[Interest],
    strategy: ContentStrategy,
) -> PromptHints:
    mode = context.movement_mode
    speed = context.speed

    if mode == MovementMode.STATIONARY:
        prompt = (
            f"The listener has stopped here for {context.stationary_duration:.0f} minutes. "
            "They have time for a detailed story or a deep look at the area."
        )
    elif mode == MovementMode.WALKING:
        prompt = (
            f"The listener is walking through the area at {speed:.1f} km/h. "
            "They can follow a medium-length story while moving."
        )
    elif mode == MovementMode.CYCLING:
        prompt = (
            f"The listener is cycling through the area at {speed:.1f} km/h. "
            "Keep it short and engaging; their focus is on the road."
        )
    else:
        prompt = (
            f"The listener is driving through the area at {speed:.1f} km/h. "
            "Keep it short and gripping without drawing attention from driving."
        )
    prompt += _ENVIRONMENT_HINTS.get(context.environment, "")

    return PromptHints(
        movement_mode=mode,
        speed=speed,
        environment=context.environment,
        content_length=strategy.content_length,
        content_type=strategy.content_type,
        context_prompt=prompt,
        interests=[{"name": i.name, "category": i.category} for i in interests],
    )
