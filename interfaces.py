"""Protocol interfaces used by TrailController and ContentPipeline."""

from __future__ import annotations

from typing import Callable, Optional, Protocol

from models import (
    GeneratedContent,
    Interest,
    LocationContext,
    MovementMode,
    MovementPattern,
    PlaybackState,
    PromptHints,
    Story,
    TrailEvent,
)

LocationCallback = Callable[[LocationContext], None]
ModeChangeCallback = Callable[[MovementMode, LocationContext], None]
PlaybackStateCallback = Callable[[PlaybackState], None]
ContentCompleteCallback = Callable[[str], None]
PlaybackErrorCallback = Callable[[str], None]
EventListener = Callable[[TrailEvent], None]


class LocationTracker(Protocol):
    def start_tracking(
        self,
        interests: list[Interest],
        on_update: LocationCallback,
        on_mode_change: ModeChangeCallback,
    ) -> None: ...

    def stop_tracking(self) -> None: ...

    def movement_pattern(self) -> MovementPattern: ...


class StoryGenerator(Protocol):
    def generate_story(
        self,
        latitude: float,
        longitude: float,
        interests: list[Interest],
        hints: PromptHints,
    ) -> Optional[Story]: ...


class PlaybackService(Protocol):
    def enqueue(self, content: GeneratedContent) -> None: ...

    def clear_queue(self) -> None: ...

    def queue_size(self) -> int: ...

    def current_content(self) -> Optional[GeneratedContent]: ...

    def pause(self) -> None: ...

    def resume(self) -> None: ...

    def stop(self) -> None: ...

    def skip_to_next(self) -> bool: ...

    def update_settings(
        self,
        quality: Optional[str] = None,
        autoplay: Optional[bool] = None,
        background: Optional[bool] = None,
    ) -> None: ...

    def set_callbacks(
        self,
        on_state_change: PlaybackStateCallback,
        on_content_complete: ContentCompleteCallback,
        on_error: PlaybackErrorCallback,
    ) -> None: ...


class ConfigStore(Protocol):
    def get_item(self, key: str) -> Optional[str]: ...

    def set_item(self, key: str, value: str) -> None: ...

    def remove_item(self, key: str) -> None: ...
