"""Speed estimation and hysteresis-gated movement mode detection.

Each GPS fix is turned into a speed sample (Haversine distance over elapsed
time), pushed into a fixed-size ring buffer, and classified by average speed.
A per-mode vote counter with decay keeps a single noisy sample from flipping
the committed mode.
"""

from __future__ import annotations

import logging
import math
from collections import deque
from dataclasses import dataclass
from typing import Any

import numpy as np

from geo import haversine_m, is_valid_coordinate
from models import GpsFix, LocationReading, MovementAnalysis, MovementMode, SpeedTrend

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ClassifierConfig:
    history_size: int = 10
    average_window: int = 5
    vote_threshold: int = 3
    vote_decay: float = 0.8
    min_interval_s: float = 1.5
    max_speed_kmh: float = 200.0
    walking_kmh: float = 2.0
    cycling_kmh: float = 15.0
    driving_kmh: float = 35.0
    clear_driving_kmh: float = 25.0
    clear_stationary_kmh: float = 1.0
    default_accuracy_m: float = 50.0
    trend_delta_kmh: float = 2.0


class MovementClassifier:
    def __init__(self, config: ClassifierConfig | None = None) -> None:
        self._config = config or ClassifierConfig()
        self._history: deque[LocationReading] = deque(maxlen=self._config.history_size)
        self._committed = MovementMode.STATIONARY
        self._votes = self._empty_votes()

    @property
    def committed_mode(self) -> MovementMode:
        return self._committed

    def analyze(self, fix: GpsFix) -> MovementAnalysis:
        if not self._is_usable(fix):
            logger.debug("Discarding malformed fix: %s", fix)
            return self._neutral_analysis()

        reading = LocationReading(
            latitude=float(fix.latitude),
            longitude=float(fix.longitude),
            timestamp=float(fix.timestamp),
            speed=self._calculate_speed(fix),
            accuracy=self._sanitize_accuracy(fix.accuracy),
        )
        self._history.append(reading)
        mode = self._detect_mode()

        return MovementAnalysis(
            current_speed=reading.speed,
            average_speed=self._average_speed(),
            movement_mode=mode,
            confidence=self._confidence(mode),
            stationary_duration=self._stationary_duration(),
            trend=self._trend(),
        )

    def reset(self) -> None:
        self._history.clear()
        self._committed = MovementMode.STATIONARY
        self._votes = self._empty_votes()

    def movement_stats(self) -> dict[str, Any]:
        speeds = [r.speed for r in self._history]
        return {
            "total_readings": len(speeds),
            "average_speed": self._average_speed(),
            "max_speed": max(speeds, default=0.0),
            "current_mode": self._committed,
            "votes": dict(self._votes),
        }

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    @staticmethod
    def _empty_votes() -> dict[MovementMode, float]:
        return {mode: 0.0 for mode in MovementMode}

    @staticmethod
    def _is_usable(fix: GpsFix) -> bool:
        if not is_valid_coordinate(fix.latitude, fix.longitude):
            return False
        try:
            return math.isfinite(float(fix.timestamp))
        except (TypeError, ValueError):
            return False

    def _sanitize_accuracy(self, accuracy: float) -> float:
        try:
            value = float(accuracy)
        except (TypeError, ValueError):
            return self._config.default_accuracy_m
        if not math.isfinite(value) or value <= 0:
            return self._config.default_accuracy_m
        return value

    def _neutral_analysis(self) -> MovementAnalysis:
        return MovementAnalysis(
            current_speed=0.0,
            average_speed=self._average_speed(),
            movement_mode=self._committed,
            confidence=self._confidence(self._committed) if self._history else 0.0,
            stationary_duration=self._stationary_duration(),
            trend=self._trend(),
        )

    def _calculate_speed(self, fix: GpsFix) -> float:
        if not self._history:
            return 0.0
        last = self._history[-1]
        elapsed = float(fix.timestamp) - last.timestamp
        if elapsed <= 0 or elapsed < self._config.min_interval_s:
            return last.speed

        distance = haversine_m(last.latitude, last.longitude, fix.latitude, fix.longitude)
        speed_kmh = distance / elapsed * 3.6
        if speed_kmh > self._config.max_speed_kmh:
            logger.debug("Rejecting implausible speed %.1f km/h", speed_kmh)
            return last.speed
        return max(0.0, speed_kmh)

    def _recent_speeds(self) -> list[float]:
        return [r.speed for r in list(self._history)[-self._config.average_window:]]

    def _average_speed(self) -> float:
        speeds = self._recent_speeds()
        if not speeds:
            return 0.0
        return float(np.mean(speeds))

    def _mode_for_speed(self, speed: float) -> MovementMode:
        cfg = self._config
        if speed < cfg.walking_kmh:
            return MovementMode.STATIONARY
        if speed < cfg.cycling_kmh:
            return MovementMode.WALKING
        if speed < cfg.driving_kmh:
            return MovementMode.CYCLING
        return MovementMode.DRIVING

    def _detect_mode(self) -> MovementMode:
        if len(self._history) < 2:
            return self._committed

        cfg = self._config
        average = self._average_speed()
        detected = self._mode_for_speed(average)

        self._votes[detected] += 1
        for mode in self._votes:
            if mode != detected:
                self._votes[mode] = max(0.0, self._votes[mode] * cfg.vote_decay)

        if (
            self._votes[detected] >= cfg.vote_threshold
            or detected == self._committed
            or (detected == MovementMode.DRIVING and average > cfg.clear_driving_kmh)
            or (detected == MovementMode.STATIONARY and average < cfg.clear_stationary_kmh)
        ):
            if detected != self._committed:
                logger.info("Movement mode committed: %s -> %s", self._committed.value, detected.value)
            self._committed = detected
        return self._committed

    def _confidence(self, mode: MovementMode) -> float:
        if not self._history:
            return 0.0

        cfg = self._config
        votes = self._votes[mode]
        confidence = min(votes / cfg.vote_threshold, 1.0)

        speeds = self._recent_speeds()
        if len(speeds) > 1:
            variance = float(np.var(speeds))
            if variance < 4:
                confidence = min(1.0, confidence * 1.3)
            elif variance > 15:
                confidence *= 0.7

        recent_accuracy = float(np.mean([r.accuracy for r in list(self._history)[-3:]]))
        if recent_accuracy > 30:
            confidence *= 0.6
        elif recent_accuracy > 20:
            confidence *= 0.8

        if votes >= cfg.vote_threshold:
            confidence = max(confidence, 0.7)
        elif len(self._history) >= 3:
            confidence = max(confidence, 0.3)

        return max(0.0, min(1.0, confidence))

    def _stationary_duration(self) -> float:
        if len(self._history) < 2 or self._committed != MovementMode.STATIONARY:
            return 0.0

        run: list[LocationReading] = []
        for reading in reversed(self._history):
            if reading.speed >= self._config.walking_kmh:
                break
            run.append(reading)

        if len(run) < 2:
            return 0.0
        # run is newest-first
        return max(0.0, (run[0].timestamp - run[-1].timestamp) / 60.0)

    def _trend(self) -> SpeedTrend:
        if len(self._history) < 4:
            return SpeedTrend.STABLE
        speeds = [r.speed for r in list(self._history)[-4:]]
        diff = float(np.mean(speeds[2:]) - np.mean(speeds[:2]))
        if abs(diff) < self._config.trend_delta_kmh:
            return SpeedTrend.STABLE
        return SpeedTrend.ACCELERATING if diff > 0 else SpeedTrend.DECELERATING
