"""Gated, single-flight narrative content generation with a bounded queue.

The pipeline decides whether a new piece of content is warranted for the
current movement context, asks a story generator for it, scores it, and keeps
it in a bounded queue (what is ready to play) and a bounded history (what was
produced recently, used for duplicate suppression and persisted).
"""

from __future__ import annotations

import functools
import json
import logging
import math
import threading
import time
import uuid
from typing import Callable, Mapping, Optional

from config import HISTORY_KEY
from content_strategy import build_prompt_hints, strategy_for
from errors import GENERATION_FAILED, GENERATION_TIMEOUT, StoryGenerationError
from geo import haversine_m
from interfaces import ConfigStore, StoryGenerator
from models import (
    ContentRequest,
    ContentStrategy,
    GeneratedContent,
    Interest,
    LocationContext,
    MovementMode,
    PromptHints,
    Story,
)

logger = logging.getLogger(__name__)

WORDS_PER_MINUTE = 150
PERSISTED_HISTORY = 20
DUPLICATE_RADIUS_M = 100.0
DUPLICATE_WINDOW_S = 24 * 60 * 60

# Content produced for a calmer mode is still fine at the busier one.
_COMPATIBLE_MODES = {
    MovementMode.WALKING: {MovementMode.STATIONARY},
    MovementMode.CYCLING: {MovementMode.WALKING},
}

ErrorCallback = Callable[[str, str], None]


class ContentPipeline:
    def __init__(
        self,
        generator: StoryGenerator,
        store: Optional[ConfigStore] = None,
        strategies: Optional[Mapping[MovementMode, ContentStrategy]] = None,
        max_queue_size: int = 10,
        max_history_size: int = 50,
        generation_timeout_s: float = 30.0,
        clock: Callable[[], float] = time.time,
        on_error: Optional[ErrorCallback] = None,
    ) -> None:
        self._generator = generator
        self._store = store
        self._strategies = strategies
        self._max_queue_size = max_queue_size
        self._max_history_size = max_history_size
        self._generation_timeout_s = generation_timeout_s
        self._clock = clock
        self._on_error = on_error

        self._lock = threading.RLock()
        self._generation_slot = threading.Lock()
        self._abandoned_worker: Optional[threading.Thread] = None
        self._queue: list[GeneratedContent] = []
        self._history: list[GeneratedContent] = []
        self._last_generation_time = 0.0
        self._current_strategy: Optional[ContentStrategy] = None
        self._load_history()

    @property
    def queue(self) -> list[GeneratedContent]:
        with self._lock:
            return list(self._queue)

    @property
    def history(self) -> list[GeneratedContent]:
        with self._lock:
            return list(self._history)

    @property
    def last_generation_time(self) -> float:
        return self._last_generation_time

    @property
    def current_strategy(self) -> Optional[ContentStrategy]:
        return self._current_strategy

    @property
    def is_generating(self) -> bool:
        return self._generation_slot.locked() or self._worker_still_running()

    def set_error_callback(self, on_error: Optional[ErrorCallback]) -> None:
        self._on_error = on_error

    def queued_for(self, mode: MovementMode) -> int:
        with self._lock:
            return sum(1 for c in self._queue if c.movement_mode == mode)

    def should_generate(self, request: ContentRequest) -> bool:
        if request.force_refresh:
            return True

        context = request.context
        strategy = strategy_for(context.movement_mode, self._strategies)
        elapsed = self._clock() - self._last_generation_time
        if elapsed < strategy.refresh_interval:
            return False

        current = request.current_content
        if current is not None and current.movement_mode != context.movement_mode:
            return True

        if context.movement_mode == MovementMode.STATIONARY and context.stationary_duration > 5:
            return True

        return self.queued_for(context.movement_mode) < 2

    def generate(self, request: ContentRequest) -> Optional[GeneratedContent]:
        """Generate new content if warranted, else serve the best queued item.

        Never blocks on another generation: while one is in flight, callers get
        the best queued content instead. Returns None when generation fails.
        """
        context = request.context
        strategy = strategy_for(context.movement_mode, self._strategies)
        self._current_strategy = strategy

        if not self.should_generate(request):
            return self.next_content(context.movement_mode)

        if not self._generation_slot.acquire(blocking=False):
            logger.debug("Generation already in flight, serving queue")
            return self.next_content(context.movement_mode)

        try:
            if self._worker_still_running():
                logger.debug("Timed-out generation still running, serving queue")
                return self.next_content(context.movement_mode)
            content = self._create_content(context, request.interests, strategy)
            if content is None:
                return None
            with self._lock:
                self._queue.append(content)
                self._history.append(content)
                del self._queue[: max(0, len(self._queue) - self._max_queue_size)]
                del self._history[: max(0, len(self._history) - self._max_history_size)]
                self._last_generation_time = self._clock()
            self._save_history()
            logger.info("Generated content: %s (%s)", content.title, content.movement_mode.value)
            return content
        finally:
            self._generation_slot.release()

    def next_content(self, mode: MovementMode) -> Optional[GeneratedContent]:
        with self._lock:
            if not self._queue:
                return None
            accepted = {mode} | _COMPATIBLE_MODES.get(mode, set())
            suitable = [c for c in self._queue if c.movement_mode in accepted]
            if not suitable:
                return max(self._queue, key=lambda c: c.priority)
        return rank_content(suitable)[0]

    def mark_played(self, content_id: str) -> None:
        with self._lock:
            self._queue = [c for c in self._queue if c.id != content_id]
            for item in self._history:
                if item.id == content_id:
                    item.is_playing = False
        logger.info("Content marked as played: %s", content_id)

    def clear_all(self) -> None:
        with self._lock:
            self._queue = []
            self._history = []
            self._last_generation_time = 0.0
        if self._store is not None:
            try:
                self._store.remove_item(HISTORY_KEY)
            except Exception as exc:
                logger.warning("Failed to remove stored content history: %s", exc)
        logger.info("All content cleared")

    def calculate_priority(
        self,
        context: LocationContext,
        interests: list[Interest],
        strategy: ContentStrategy,
    ) -> float:
        priority = strategy.priority

        if any(i.weight > 0.7 for i in interests):
            priority += 0.1

        if context.movement_mode == MovementMode.STATIONARY and context.stationary_duration > 2:
            priority += 0.1

        now = self._clock()
        with self._lock:
            seen_nearby = any(
                now - item.created_at < DUPLICATE_WINDOW_S
                and haversine_m(item.latitude, item.longitude, context.latitude, context.longitude)
                < DUPLICATE_RADIUS_M
                for item in self._history
            )
        if seen_nearby:
            priority *= 0.7

        return min(1.0, max(0.0, priority))

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _create_content(
        self,
        context: LocationContext,
        interests: list[Interest],
        strategy: ContentStrategy,
    ) -> Optional[GeneratedContent]:
        hints = build_prompt_hints(context, interests, strategy)
        try:
            story = self._call_generator(context, interests, hints)
        except StoryGenerationError as exc:
            logger.error("Content generation failed [%s]: %s", exc.code, exc.message)
            self._emit_error(exc.code, exc.message)
            return None
        except Exception as exc:
            logger.exception("Content generation failed")
            self._emit_error(GENERATION_FAILED, str(exc))
            return None

        if story is None or not story.body.strip():
            logger.warning("Story generator returned no story")
            return None

        word_count = len(story.body.split())
        return GeneratedContent(
            id=f"content_{uuid.uuid4().hex[:12]}",
            title=story.title,
            body=story.body,
            duration=math.ceil(word_count / WORDS_PER_MINUTE * 60),
            movement_mode=context.movement_mode,
            latitude=context.latitude,
            longitude=context.longitude,
            interests=[i.name for i in interests],
            created_at=self._clock(),
            priority=self.calculate_priority(context, interests, strategy),
        )

    def _call_generator(
        self,
        context: LocationContext,
        interests: list[Interest],
        hints: PromptHints,
    ) -> Optional[Story]:
        """Run the generator on its own thread and wait at most the timeout."""
        done = threading.Event()
        outcome: dict[str, object] = {}

        def _worker() -> None:
            try:
                outcome["story"] = self._generator.generate_story(
                    context.latitude, context.longitude, interests, hints
                )
            except Exception as exc:
                outcome["error"] = exc
            finally:
                done.set()

        worker = threading.Thread(target=_worker, daemon=True)
        worker.start()
        if not done.wait(timeout=self._generation_timeout_s):
            self._abandoned_worker = worker
            raise StoryGenerationError(
                GENERATION_TIMEOUT,
                f"no story after {self._generation_timeout_s:.1f}s",
                retryable=True,
            )
        if "error" in outcome:
            raise outcome["error"]  # type: ignore[misc]
        return outcome.get("story")  # type: ignore[return-value]

    def _worker_still_running(self) -> bool:
        worker = self._abandoned_worker
        return worker is not None and worker.is_alive()

    def _emit_error(self, code: str, message: str) -> None:
        if self._on_error:
            self._on_error(code, message)

    def _save_history(self) -> None:
        if self._store is None:
            return
        with self._lock:
            payload = [c.to_dict() for c in self._history[-PERSISTED_HISTORY:]]
        try:
            self._store.set_item(HISTORY_KEY, json.dumps(payload, ensure_ascii=False))
        except Exception as exc:
            logger.warning("Failed to save content history: %s", exc)

    def _load_history(self) -> None:
        if self._store is None:
            return
        try:
            raw = self._store.get_item(HISTORY_KEY)
            if not raw:
                return
            items = json.loads(raw)
            history = [GeneratedContent.from_dict(item) for item in items]
        except Exception as exc:
            logger.warning("Failed to load content history: %s", exc)
            return
        self._history = history[-self._max_history_size:]


def rank_content(items: list[GeneratedContent]) -> list[GeneratedContent]:
    """Sort for playback: higher priority first; within 0.1 of each other, newer first."""
    return sorted(items, key=functools.cmp_to_key(_compare_rank))


def _compare_rank(a: GeneratedContent, b: GeneratedContent) -> float:
    diff = b.priority - a.priority
    if abs(diff) > 0.1:
        return diff
    return b.created_at - a.created_at
