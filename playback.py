"""In-memory playback queue that reports state and completion events."""

from __future__ import annotations

import logging
import threading
import time
from typing import Any, Callable, Optional

from errors import PLAYBACK_ERROR
from interfaces import ContentCompleteCallback, PlaybackErrorCallback, PlaybackStateCallback
from models import AudioQuality, GeneratedContent, PlaybackState

logger = logging.getLogger(__name__)

Speaker = Callable[[GeneratedContent], None]


class QueuedPlaybackService:
    """Plays content in order; a piece completes once its duration has elapsed.

    Actual audio output is delegated to ``speaker``. Completion is driven by
    ``tick()`` (elapsed estimated duration) or ``finish_current()``.

    Callbacks are collected while the lock is held and fired only after it is
    released, so a callback may take its own locks or call back into this object.
    """

    def __init__(
        self,
        speaker: Optional[Speaker] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._speaker = speaker
        self._clock = clock
        self._lock = threading.RLock()
        self._queue: list[GeneratedContent] = []
        self._current: Optional[GeneratedContent] = None
        self._state = PlaybackState.IDLE
        self._remaining_s = 0.0
        self._started_at = 0.0
        self._pending: list[tuple[Callable[[Any], None], Any]] = []

        self.quality = AudioQuality.AUTO
        self.autoplay = True
        self.background = True

        self._on_state_change: Optional[PlaybackStateCallback] = None
        self._on_content_complete: Optional[ContentCompleteCallback] = None
        self._on_error: Optional[PlaybackErrorCallback] = None

    @property
    def state(self) -> PlaybackState:
        return self._state

    def set_callbacks(
        self,
        on_state_change: PlaybackStateCallback,
        on_content_complete: ContentCompleteCallback,
        on_error: PlaybackErrorCallback,
    ) -> None:
        self._on_state_change = on_state_change
        self._on_content_complete = on_content_complete
        self._on_error = on_error

    def update_settings(
        self,
        quality: Optional[str] = None,
        autoplay: Optional[bool] = None,
        background: Optional[bool] = None,
    ) -> None:
        with self._lock:
            if quality is not None:
                self.quality = AudioQuality(quality.upper())
            if autoplay is not None:
                self.autoplay = autoplay
            if background is not None:
                self.background = background
            if self.autoplay and self._state == PlaybackState.IDLE:
                self._play_next()
        self._fire_pending()

    def enqueue(self, content: GeneratedContent) -> None:
        with self._lock:
            if self._current is not None and self._current.id == content.id:
                return
            if any(c.id == content.id for c in self._queue):
                return
            self._queue.append(content)
            if self.autoplay and self._state == PlaybackState.IDLE:
                self._play_next()
        self._fire_pending()

    def clear_queue(self) -> None:
        with self._lock:
            self._queue = []

    def queue_size(self) -> int:
        with self._lock:
            return len(self._queue)

    def queued(self) -> list[GeneratedContent]:
        with self._lock:
            return list(self._queue)

    def current_content(self) -> Optional[GeneratedContent]:
        return self._current

    def pause(self) -> None:
        with self._lock:
            if self._state == PlaybackState.PLAYING:
                self._remaining_s = max(0.0, self._remaining_s - (self._clock() - self._started_at))
                self._set_state(PlaybackState.PAUSED)
        self._fire_pending()

    def resume(self) -> None:
        with self._lock:
            if self._state == PlaybackState.PAUSED:
                self._started_at = self._clock()
                self._set_state(PlaybackState.PLAYING)
        self._fire_pending()

    def stop(self) -> None:
        with self._lock:
            if self._current is not None:
                self._current.is_playing = False
            self._current = None
            self._set_state(PlaybackState.IDLE)
        self._fire_pending()

    def skip_to_next(self) -> bool:
        with self._lock:
            if self._current is not None:
                self._current.is_playing = False
                self._current = None
            if self._queue:
                self._play_next()
                skipped = True
            else:
                self._set_state(PlaybackState.IDLE)
                skipped = False
        self._fire_pending()
        return skipped

    def tick(self) -> None:
        with self._lock:
            if self._state == PlaybackState.PLAYING and self._clock() - self._started_at >= self._remaining_s:
                self._finish_current()
        self._fire_pending()

    def finish_current(self) -> None:
        with self._lock:
            self._finish_current()
        self._fire_pending()

    # ------------------------------------------------------------------
    # Internal (callers hold the lock)
    # ------------------------------------------------------------------

    def _finish_current(self) -> None:
        finished = self._current
        if finished is None:
            return
        finished.is_playing = False
        self._current = None
        self._set_state(PlaybackState.IDLE)
        if self._on_content_complete:
            self._pending.append((self._on_content_complete, finished.id))
        if self.autoplay and self._state == PlaybackState.IDLE:
            self._play_next()

    def _play_next(self) -> None:
        if not self._queue:
            return
        content = self._queue.pop(0)
        self._set_state(PlaybackState.LOADING)
        try:
            if self._speaker:
                self._speaker(content)
        except Exception as exc:
            logger.error("Playback failed for %s: %s", content.id, exc)
            if self._on_error:
                self._pending.append((self._on_error, f"{PLAYBACK_ERROR}: {exc}"))
            self._set_state(PlaybackState.IDLE)
            return
        content.is_playing = True
        self._current = content
        self._remaining_s = float(content.duration)
        self._started_at = self._clock()
        self._set_state(PlaybackState.PLAYING)

    def _set_state(self, state: PlaybackState) -> None:
        if self._state == state:
            return
        self._state = state
        if self._on_state_change:
            self._pending.append((self._on_state_change, state))

    def _fire_pending(self) -> None:
        with self._lock:
            pending, self._pending = self._pending, []
        for callback, arg in pending:
            callback(arg)
