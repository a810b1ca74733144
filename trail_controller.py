"""State-machine based orchestration of tracking, generation and playback."""

from __future__ import annotations

import dataclasses
import logging
import threading
import time
from typing import Any, Callable, Optional

from config import load_user_configuration, save_user_configuration
from content_pipeline import ContentPipeline
from errors import ERROR_MESSAGES, GENERATION_FAILED, PLAYBACK_ERROR, STORAGE_ERROR, TRACKING_FAILED
from interfaces import ConfigStore, EventListener, LocationTracker, PlaybackService
from models import (
    AudioQuality,
    ContentRequest,
    GeneratedContent,
    InteractionState,
    LocationContext,
    MovementMode,
    OperatingMode,
    PlaybackState,
    Settings,
    TrailEvent,
    TrailEventKind,
    TrailStatus,
    UsageStats,
    UserProfile,
)

logger = logging.getLogger(__name__)

DISCOVERY_INTERVAL_S = 45.0
PASSIVE_INTERVAL_S = 120.0

_INTERACTION_FOR_PLAYBACK = {
    PlaybackState.PLAYING: InteractionState.PLAYING,
    PlaybackState.LOADING: InteractionState.GENERATING,
    PlaybackState.IDLE: InteractionState.IDLE,
    PlaybackState.PAUSED: InteractionState.WAITING,
}


class TrailController:
    def __init__(
        self,
        location_tracker: LocationTracker,
        pipeline: ContentPipeline,
        playback: PlaybackService,
        config_store: ConfigStore,
        clock: Callable[[], float] = time.time,
        on_event: Optional[EventListener] = None,
    ) -> None:
        self._tracker = location_tracker
        self._pipeline = pipeline
        self._playback = playback
        self._store = config_store
        self._clock = clock
        self._listeners: list[EventListener] = [on_event] if on_event else []

        self._lock = threading.RLock()
        self._mode = OperatingMode.PAUSED
        self._interaction = InteractionState.IDLE
        self._active = False
        self._last_context: Optional[LocationContext] = None
        self._last_content_generation = 0.0
        self._generations_in_flight = 0

        config = load_user_configuration(config_store)
        self._profile: UserProfile = config.profile
        self._settings: Settings = config.settings
        self._stats: UsageStats = config.stats
        self._pipeline.set_error_callback(self._emit_error)

    # ------------------------------------------------------------------
    # Read-only views
    # ------------------------------------------------------------------

    @property
    def mode(self) -> OperatingMode:
        return self._mode

    @property
    def interaction_state(self) -> InteractionState:
        return self._interaction

    @property
    def active(self) -> bool:
        return self._active

    @property
    def profile(self) -> UserProfile:
        return dataclasses.replace(self._profile, interests=list(self._profile.interests))

    @property
    def settings(self) -> Settings:
        return dataclasses.replace(self._settings)

    @property
    def stats(self) -> UsageStats:
        return dataclasses.replace(self._stats)

    def status(self) -> TrailStatus:
        return TrailStatus(
            mode=self._mode,
            interaction_state=self._interaction,
            last_context=self._last_context,
            current_content=self._playback.current_content(),
            queue_size=self._playback.queue_size(),
            active=self._active,
            battery_optimized=self._settings.battery_optimization,
        )

    def add_listener(self, listener: EventListener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: EventListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    def start(self) -> bool:
        with self._lock:
            if self._active:
                return True
            logger.info("Starting trail controller")
            try:
                self._tracker.start_tracking(
                    self._profile.interests,
                    self._handle_location_update,
                    self._handle_movement_mode_change,
                )
                self._playback.set_callbacks(
                    on_state_change=self._handle_playback_state,
                    on_content_complete=self._handle_content_complete,
                    on_error=self._handle_playback_error,
                )
                self._playback.update_settings(
                    quality=_audio_quality(self._profile.audio_quality),
                    autoplay=self._settings.mode != OperatingMode.PASSIVE,
                    background=self._settings.background_enabled,
                )
            except Exception as exc:
                logger.error("Failed to start: %s", exc)
                self._emit_error(TRACKING_FAILED, str(exc))
                return False

            self._mode = self._settings.mode
            self._active = True
            self._interaction = InteractionState.IDLE
            self._stats.sessions_started += 1
            self._save_configuration()
            self._notify_status()
            logger.info("Started in %s mode", self._mode.value)
            return True

    def stop(self) -> None:
        with self._lock:
            logger.info("Stopping trail controller")
            self._active = False
            self._mode = OperatingMode.PAUSED
            self._interaction = InteractionState.IDLE
            self._safe_call(self._tracker.stop_tracking, "stop tracking")
            self._safe_call(self._playback.stop, "stop playback")
            self._save_configuration()
            self._notify_status()

    def set_mode(self, mode: OperatingMode) -> None:
        with self._lock:
            if self._mode == mode:
                return
            previous = self._mode
            self._mode = mode
            logger.info("Mode changed: %s -> %s", previous.value, mode.value)

            if mode == OperatingMode.DISCOVERY:
                self._settings.content_generation_interval = DISCOVERY_INTERVAL_S
                self._safe_call(lambda: self._playback.update_settings(autoplay=True), "enter discovery")
            elif mode == OperatingMode.PASSIVE:
                self._settings.content_generation_interval = PASSIVE_INTERVAL_S
                self._safe_call(lambda: self._playback.update_settings(autoplay=False), "enter passive")
            elif mode == OperatingMode.FOCUSED:
                self._safe_call(
                    lambda: self._playback.update_settings(quality=AudioQuality.HIGH.value, autoplay=True),
                    "enter focused",
                )
            elif mode == OperatingMode.PAUSED:
                self._safe_call(self._playback.pause, "pause playback")
                self._safe_call(self._playback.clear_queue, "clear playback queue")

            self._settings.mode = mode
            self._save_configuration()
            self._emit(TrailEvent(kind=TrailEventKind.MODE_CHANGE, mode=mode))
            self._notify_status()

    def update_profile(self, **changes: Any) -> None:
        with self._lock:
            self._profile = _replace_checked(self._profile, changes)
            self._save_configuration()
            if "interests" in changes and self._active:
                self._safe_call(self._tracker.stop_tracking, "stop tracking")
                self._safe_call(
                    lambda: self._tracker.start_tracking(
                        self._profile.interests,
                        self._handle_location_update,
                        self._handle_movement_mode_change,
                    ),
                    "restart tracking",
                )
            if "audio_quality" in changes:
                self._safe_call(
                    lambda: self._playback.update_settings(quality=_audio_quality(self._profile.audio_quality)),
                    "update audio quality",
                )
            logger.info("User profile updated: %s", sorted(changes))

    def update_settings(self, **changes: Any) -> None:
        with self._lock:
            self._settings = _replace_checked(self._settings, changes)
            self._save_configuration()
            if "background_enabled" in changes:
                self._safe_call(
                    lambda: self._playback.update_settings(background=self._settings.background_enabled),
                    "update background playback",
                )
            logger.info("Settings updated: %s", sorted(changes))

    def generate_now(self) -> Optional[GeneratedContent]:
        context = self._last_context
        if context is None:
            logger.warning("No location available for content generation")
            return None
        return self._generate_content(context, force_refresh=True)

    def pause_audio(self) -> None:
        self._playback.pause()

    def resume_audio(self) -> None:
        self._playback.resume()

    def skip_to_next(self) -> bool:
        return self._playback.skip_to_next()

    def clear_content(self) -> None:
        self._pipeline.clear_all()
        self._playback.clear_queue()
        self._notify_status()

    # ------------------------------------------------------------------
    # Collaborator callbacks
    # ------------------------------------------------------------------

    def _handle_location_update(self, context: LocationContext) -> None:
        with self._lock:
            self._last_context = context
            try:
                self._stats.total_distance_km = self._tracker.movement_pattern().total_distance_km
            except Exception as exc:
                logger.debug("Movement pattern unavailable: %s", exc)

        self._evaluate_content_generation(context)
        self._emit(TrailEvent(kind=TrailEventKind.LOCATION_UPDATE, context=context))
        self._notify_status()

    def _handle_movement_mode_change(self, mode: MovementMode, context: LocationContext) -> None:
        logger.info("Movement mode changed to %s", mode.value)
        if mode == MovementMode.STATIONARY:
            if context.stationary_duration >= self._settings.minimum_stationary_time:
                self._generate_content(context, force_refresh=False)
        elif mode == MovementMode.WALKING:
            self._generate_content(context, force_refresh=False)
        # Cycling and driving wait for the interval-gated path.

    def _handle_playback_state(self, state: PlaybackState) -> None:
        with self._lock:
            self._interaction = _INTERACTION_FOR_PLAYBACK.get(state, self._interaction)
            self._notify_status()

    def _handle_content_complete(self, content_id: str) -> None:
        with self._lock:
            self._stats.content_consumed += 1
            finished = next((c for c in self._pipeline.history if c.id == content_id), None)
            if finished is not None:
                self._stats.total_listening_time_s += finished.duration
            self._pipeline.mark_played(content_id)
            context = self._last_context

        if context is not None and self._pipeline.queued_for(context.movement_mode) < 2:
            self._generate_content(context, force_refresh=False)

    def _handle_playback_error(self, message: str) -> None:
        logger.error("Audio error: %s", message)
        self._emit_error(PLAYBACK_ERROR, message)

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _evaluate_content_generation(self, context: LocationContext) -> None:
        with self._lock:
            if self._generations_in_flight or not self._active or self._mode == OperatingMode.PAUSED:
                return
            elapsed = self._clock() - self._last_content_generation
            if elapsed < self._settings.content_generation_interval:
                return
            request = self._build_request(context, force_refresh=False)

        if self._pipeline.should_generate(request):
            self._generate_content(context, force_refresh=False)

    def _build_request(self, context: LocationContext, force_refresh: bool) -> ContentRequest:
        return ContentRequest(
            context=context,
            interests=list(self._profile.interests),
            current_content=self._playback.current_content(),
            force_refresh=force_refresh,
        )

    def _generate_content(self, context: LocationContext, force_refresh: bool) -> Optional[GeneratedContent]:
        with self._lock:
            if not force_refresh and (self._generations_in_flight or self._mode == OperatingMode.PAUSED):
                return None
            self._generations_in_flight += 1
            self._interaction = InteractionState.GENERATING
            request = self._build_request(context, force_refresh)
            self._notify_status()
            generated_before = self._pipeline.last_generation_time

        content: Optional[GeneratedContent] = None
        try:
            # The lock is not held here so mode changes are never blocked.
            content = self._pipeline.generate(request)
        except Exception as exc:
            logger.exception("Content generation failed")
            self._emit_error(GENERATION_FAILED, str(exc))
            content = None

        fresh = content is not None and self._pipeline.last_generation_time != generated_before
        if content is None:
            # Degrade to the best queued item, never counted as new content.
            content = self._pipeline.next_content(context.movement_mode)

        with self._lock:
            self._generations_in_flight -= 1
            if self._generations_in_flight == 0:
                self._interaction = InteractionState.IDLE

            if self._mode == OperatingMode.PAUSED:
                self._safe_call(self._playback.clear_queue, "clear playback queue")
            elif content is not None:
                self._safe_call(lambda: self._playback.enqueue(content), "enqueue content")

            if fresh:
                self._last_content_generation = self._clock()
                self._stats.content_generated += 1
                logger.info("Content ready: %s", content.title)
                self._emit(TrailEvent(kind=TrailEventKind.CONTENT_READY, content=content))
            self._notify_status()
        return content

    def _save_configuration(self) -> None:
        if not save_user_configuration(self._store, self._profile, self._settings, self._stats):
            self._emit_error(STORAGE_ERROR, ERROR_MESSAGES[STORAGE_ERROR])

    def _notify_status(self) -> None:
        self._emit(TrailEvent(kind=TrailEventKind.STATUS, status=self.status()))

    def _emit_error(self, code: str, message: str) -> None:
        self._emit(TrailEvent(kind=TrailEventKind.ERROR, code=code, message=message))

    def _emit(self, event: TrailEvent) -> None:
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                logger.exception("Listener failed on %s event", event.kind.value)

    def _safe_call(self, action: Callable[[], Any], what: str) -> None:
        try:
            action()
        except Exception as exc:
            logger.error("Failed to %s: %s", what, exc)


def _audio_quality(preference: str) -> str:
    try:
        return AudioQuality(preference.upper()).value
    except ValueError:
        return AudioQuality.AUTO.value


def _replace_checked(obj: Any, changes: dict[str, Any]) -> Any:
    known = {f.name for f in dataclasses.fields(obj)}
    unknown = set(changes) - known
    if unknown:
        raise ValueError(f"unknown field(s): {', '.join(sorted(unknown))}")
    return dataclasses.replace(obj, **changes)
