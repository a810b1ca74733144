from __future__ import annotations

from typing import Optional

from models import AudioQuality, GeneratedContent, MovementMode, PlaybackState
from playback import QueuedPlaybackService


class FakeClock:
    def __init__(self, now: float = 0.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


class Recorder:
    def __init__(self) -> None:
        self.states: list[PlaybackState] = []
        self.completed: list[str] = []
        self.errors: list[str] = []
        self.spoken: list[str] = []
        self.fail_on: Optional[str] = None

    def speak(self, content: GeneratedContent) -> None:
        if content.id == self.fail_on:
            raise OSError("audio device busy")
        self.spoken.append(content.id)


def _content(content_id: str, duration: int = 30) -> GeneratedContent:
    return GeneratedContent(
        id=content_id,
        title=content_id,
        body="words " * 10,
        duration=duration,
        movement_mode=MovementMode.WALKING,
        latitude=0.0,
        longitude=0.0,
    )


def _service(autoplay: bool = True) -> tuple[QueuedPlaybackService, Recorder, FakeClock]:
    recorder = Recorder()
    clock = FakeClock()
    service = QueuedPlaybackService(speaker=recorder.speak, clock=clock)
    service.set_callbacks(
        on_state_change=recorder.states.append,
        on_content_complete=recorder.completed.append,
        on_error=recorder.errors.append,
    )
    service.update_settings(autoplay=autoplay)
    return service, recorder, clock


def test_enqueue_autoplays_first_item() -> None:
    service, recorder, _ = _service()

    service.enqueue(_content("a"))
    service.enqueue(_content("b"))

    assert recorder.spoken == ["a"]
    assert recorder.states == [PlaybackState.LOADING, PlaybackState.PLAYING]
    assert service.current_content().id == "a"
    assert service.current_content().is_playing is True
    assert service.queue_size() == 1


def test_enqueue_without_autoplay_waits() -> None:
    service, recorder, _ = _service(autoplay=False)

    service.enqueue(_content("a"))

    assert recorder.spoken == []
    assert service.state == PlaybackState.IDLE
    assert service.queue_size() == 1

    service.update_settings(autoplay=True)
    assert recorder.spoken == ["a"]


def test_duplicate_ids_are_ignored() -> None:
    service, _, _ = _service()
    first = _content("a")

    service.enqueue(first)
    service.enqueue(_content("b"))
    service.enqueue(first)
    service.enqueue(_content("b"))

    assert [c.id for c in service.queued()] == ["b"]


def test_tick_completes_after_duration_and_plays_next() -> None:
    service, recorder, clock = _service()
    service.enqueue(_content("a", duration=30))
    service.enqueue(_content("b", duration=30))

    clock.now = 29.0
    service.tick()
    assert recorder.completed == []

    clock.now = 30.0
    service.tick()
    assert recorder.completed == ["a"]
    assert recorder.spoken == ["a", "b"]
    assert service.current_content().id == "b"


def test_pause_keeps_remaining_time() -> None:
    service, recorder, clock = _service()
    service.enqueue(_content("a", duration=30))

    clock.now = 10.0
    service.pause()
    assert service.state == PlaybackState.PAUSED

    clock.now = 100.0
    service.tick()
    assert recorder.completed == []

    service.resume()
    clock.now = 119.0
    service.tick()
    assert recorder.completed == []

    clock.now = 120.0
    service.tick()
    assert recorder.completed == ["a"]
    assert service.state == PlaybackState.IDLE


def test_skip_to_next() -> None:
    service, recorder, _ = _service()
    service.enqueue(_content("a"))
    service.enqueue(_content("b"))

    assert service.skip_to_next() is True
    assert recorder.spoken == ["a", "b"]
    assert recorder.completed == []

    assert service.skip_to_next() is False
    assert service.current_content() is None
    assert service.state == PlaybackState.IDLE


def test_speaker_failure_reports_error_and_goes_idle() -> None:
    service, recorder, _ = _service()
    recorder.fail_on = "bad"

    service.enqueue(_content("bad"))

    assert recorder.errors and "audio device busy" in recorder.errors[0]
    assert service.state == PlaybackState.IDLE
    assert service.current_content() is None


def test_stop_and_clear() -> None:
    service, _, _ = _service()
    service.enqueue(_content("a"))
    service.enqueue(_content("b"))

    service.clear_queue()
    service.stop()

    assert service.queue_size() == 0
    assert service.current_content() is None
    assert service.state == PlaybackState.IDLE


def test_update_quality() -> None:
    service, _, _ = _service()

    service.update_settings(quality="high", background=False)

    assert service.quality == AudioQuality.HIGH
    assert service.background is False
