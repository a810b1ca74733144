from __future__ import annotations

import math
import threading

import pytest

from geo import EARTH_RADIUS_M
from location_tracker import ClassifyingLocationTracker
from models import (
    EnvironmentType,
    GpsFix,
    Interest,
    LocationContext,
    MovementMode,
)

START_LAT = 59.91
START_LON = 10.75


def _north(metres: float) -> float:
    return START_LAT + math.degrees(metres / EARTH_RADIUS_M)


def _walk(tracker: ClassifyingLocationTracker, steps: int, *, step_m: float = 5.0, accuracy: float = 5.0) -> None:
    """One fix every 4 s; 5 m per step is 4.5 km/h."""
    for i in range(steps):
        tracker.process_fix(GpsFix(_north(i * step_m), START_LON, 1_000.0 + i * 4.0, accuracy))


class Callbacks:
    def __init__(self) -> None:
        self.updates: list[LocationContext] = []
        self.mode_changes: list[MovementMode] = []
        self.received = threading.Event()

    def on_update(self, context: LocationContext) -> None:
        self.updates.append(context)
        self.received.set()

    def on_mode_change(self, mode: MovementMode, context: LocationContext) -> None:
        self.mode_changes.append(mode)


def _tracker() -> tuple[ClassifyingLocationTracker, Callbacks]:
    tracker = ClassifyingLocationTracker()
    callbacks = Callbacks()
    tracker.start_tracking(
        [Interest(id="1", name="History", category="history", weight=0.8)],
        callbacks.on_update,
        callbacks.on_mode_change,
    )
    return tracker, callbacks


def test_process_fix_builds_context() -> None:
    tracker, callbacks = _tracker()
    try:
        _walk(tracker, 2)
    finally:
        tracker.stop_tracking()

    context = callbacks.updates[-1]
    assert context.latitude == pytest.approx(_north(5.0))
    assert context.longitude == START_LON
    assert context.accuracy == 5.0
    assert context.environment == EnvironmentType.URBAN
    assert context.direction == pytest.approx(0.0, abs=1e-6)
    assert tracker.interests[0].name == "History"


def test_poor_accuracy_is_nature() -> None:
    tracker, callbacks = _tracker()
    try:
        tracker.process_fix(GpsFix(START_LAT, START_LON, 1_000.0, 80.0))
    finally:
        tracker.stop_tracking()

    assert callbacks.updates[0].environment == EnvironmentType.NATURE


def test_mode_change_fires_only_on_transition() -> None:
    tracker, callbacks = _tracker()
    try:
        _walk(tracker, 8)
    finally:
        tracker.stop_tracking()

    assert callbacks.mode_changes == [MovementMode.WALKING]
    assert len(callbacks.updates) == 8


def test_movement_pattern_accumulates_distance() -> None:
    tracker, _ = _tracker()
    try:
        _walk(tracker, 11)
    finally:
        tracker.stop_tracking()

    pattern = tracker.movement_pattern()
    assert pattern.total_distance_km == pytest.approx(0.05, rel=1e-3)
    assert pattern.dominant_mode == MovementMode.WALKING
    assert 0.0 < pattern.stationary_percentage < 50.0
    assert pattern.average_speed == pytest.approx(4.5, rel=0.05)


def test_invalid_fix_keeps_last_position() -> None:
    tracker, callbacks = _tracker()
    try:
        _walk(tracker, 2)
        tracker.process_fix(GpsFix(float("nan"), float("nan"), 1_100.0, 5.0))
    finally:
        tracker.stop_tracking()

    context = callbacks.updates[-1]
    assert context.latitude == pytest.approx(_north(5.0))
    assert context.accuracy == 0.0
    assert tracker.movement_pattern().total_distance_km == pytest.approx(0.005, rel=1e-3)


def test_submitted_fixes_are_processed_on_worker() -> None:
    tracker, callbacks = _tracker()
    try:
        tracker.submit(GpsFix(START_LAT, START_LON, 1_000.0, 5.0))
        assert callbacks.received.wait(timeout=2.0)
    finally:
        tracker.stop_tracking()

    assert callbacks.updates[0].latitude == START_LAT


def test_submit_drops_when_queue_full() -> None:
    tracker = ClassifyingLocationTracker(queue_maxsize=2)

    for i in range(5):
        tracker.submit(GpsFix(START_LAT, START_LON, 1_000.0 + i * 4.0, 5.0))

    assert tracker.dropped_fixes == 3


def test_restart_after_stop_processes_again() -> None:
    tracker, callbacks = _tracker()
    tracker.stop_tracking()

    tracker.start_tracking([], callbacks.on_update, callbacks.on_mode_change)
    try:
        tracker.submit(GpsFix(START_LAT, START_LON, 1_000.0, 5.0))
        assert callbacks.received.wait(timeout=2.0)
    finally:
        tracker.stop_tracking()
