"""Location tracker adapter that classifies incoming GPS fixes.

Raw fixes arrive through ``submit()`` (from a GPS provider callback or a
replay source) and are processed in order on a worker thread. Each fix is
turned into a ``LocationContext``; a callback fires whenever the committed
movement mode changes.
"""

from __future__ import annotations

import logging
import threading
from collections import Counter, deque
from queue import Empty, Full, Queue
from typing import Optional

import numpy as np

from geo import bearing_deg, haversine_km, is_valid_coordinate
from interfaces import LocationCallback, ModeChangeCallback
from models import (
    EnvironmentType,
    GpsFix,
    Interest,
    LocationContext,
    MovementMode,
    MovementPattern,
)
from movement_classifier import MovementClassifier

logger = logging.getLogger(__name__)


class ClassifyingLocationTracker:
    def __init__(
        self,
        classifier: Optional[MovementClassifier] = None,
        max_history: int = 50,
        queue_maxsize: int = 100,
    ) -> None:
        self._classifier = classifier or MovementClassifier()
        self._fixes: Queue[GpsFix | None] = Queue(maxsize=queue_maxsize)
        self._points: deque[GpsFix] = deque(maxlen=max_history)
        self._modes: deque[MovementMode] = deque(maxlen=max_history)
        self._speeds: deque[float] = deque(maxlen=max_history)
        self._total_distance_km = 0.0
        self._last_mode: Optional[MovementMode] = None
        self._interests: list[Interest] = []
        self._on_update: Optional[LocationCallback] = None
        self._on_mode_change: Optional[ModeChangeCallback] = None
        self._thread: Optional[threading.Thread] = None
        self._stop_event = threading.Event()
        self._lock = threading.Lock()
        self.dropped_fixes = 0

    @property
    def interests(self) -> list[Interest]:
        return list(self._interests)

    def start_tracking(
        self,
        interests: list[Interest],
        on_update: LocationCallback,
        on_mode_change: ModeChangeCallback,
    ) -> None:
        self._interests = list(interests)
        self._on_update = on_update
        self._on_mode_change = on_mode_change
        if self._thread and self._thread.is_alive():
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._worker, daemon=True)
        self._thread.start()
        logger.info("Location tracking started")

    def stop_tracking(self) -> None:
        self._stop_event.set()
        try:
            self._fixes.put_nowait(None)
        except Full:
            pass
        if self._thread and self._thread.is_alive():
            self._thread.join(timeout=0.5)
        self._thread = None
        logger.info("Location tracking stopped")

    def submit(self, fix: GpsFix) -> None:
        try:
            self._fixes.put_nowait(fix)
        except Full:
            self.dropped_fixes += 1

    def process_fix(self, fix: GpsFix) -> LocationContext:
        """Classify one fix and notify callbacks synchronously."""
        with self._lock:
            analysis = self._classifier.analyze(fix)
            previous = self._points[-1] if self._points else None
            valid = is_valid_coordinate(fix.latitude, fix.longitude)
            if valid:
                if previous is not None:
                    self._total_distance_km += haversine_km(
                        previous.latitude, previous.longitude, fix.latitude, fix.longitude
                    )
                self._points.append(fix)
                self._speeds.append(analysis.current_speed)
                self._modes.append(analysis.movement_mode)

            context = LocationContext(
                latitude=fix.latitude if valid else (previous.latitude if previous else 0.0),
                longitude=fix.longitude if valid else (previous.longitude if previous else 0.0),
                analysis=analysis,
                environment=self._environment_for(fix.accuracy),
                direction=self._direction(),
                accuracy=fix.accuracy if valid else 0.0,
                timestamp=fix.timestamp,
            )
            mode_changed = self._last_mode is not None and self._last_mode != analysis.movement_mode
            self._last_mode = analysis.movement_mode

        if self._on_update:
            self._on_update(context)
        if mode_changed and self._on_mode_change:
            logger.info("Movement mode changed to %s", analysis.movement_mode.value)
            self._on_mode_change(analysis.movement_mode, context)
        return context

    def movement_pattern(self) -> MovementPattern:
        with self._lock:
            if len(self._points) < 2:
                return MovementPattern(total_distance_km=self._total_distance_km)
            moving = [s for s in self._speeds if s > 0]
            counts = Counter(self._modes)
            dominant = max(MovementMode, key=lambda m: counts.get(m, 0))
            return MovementPattern(
                average_speed=float(np.mean(moving)) if moving else 0.0,
                dominant_mode=dominant,
                stationary_percentage=counts.get(MovementMode.STATIONARY, 0) / len(self._modes) * 100,
                total_distance_km=self._total_distance_km,
            )

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _worker(self) -> None:
        while not self._stop_event.is_set():
            try:
                fix = self._fixes.get(timeout=0.2)
            except Empty:
                continue
            if fix is None:  # Wake-up from stop_tracking
                continue
            try:
                self.process_fix(fix)
            except Exception:
                logger.exception("Failed to process fix %s", fix)

    @staticmethod
    def _environment_for(accuracy: float) -> EnvironmentType:
        # Poor GPS accuracy usually means open terrain or tree cover.
        if accuracy is None or accuracy > 50:
            return EnvironmentType.NATURE
        return EnvironmentType.URBAN

    def _direction(self) -> float:
        if len(self._points) < 2:
            return 0.0
        a, b = self._points[-2], self._points[-1]
        return bearing_deg(a.latitude, a.longitude, b.latitude, b.longitude)
