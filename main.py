"""Application entrypoint.

Replays recorded GPS fixes (JSON lines or CSV with latitude, longitude,
timestamp and accuracy columns) through the tracker and controller, narrating
content as it becomes ready.
"""

from __future__ import annotations

import argparse
import csv
import json
import logging
import sys
import time
from pathlib import Path
from typing import Iterator

from config import JsonConfigStore, load_user_configuration
from errors import ERROR_MESSAGES
from content_pipeline import ContentPipeline
from location_tracker import ClassifyingLocationTracker
from models import GeneratedContent, GpsFix, OperatingMode, TrailEvent, TrailEventKind
from playback import QueuedPlaybackService
from story_generator import DashscopeStoryGenerator
from trail_controller import TrailController

logger = logging.getLogger("trail_narrator")


def load_fixes(path: Path) -> Iterator[GpsFix]:
    if path.suffix.lower() == ".csv":
        with path.open(newline="", encoding="utf-8") as fh:
            for row in csv.DictReader(fh):
                yield _fix_from_mapping(row)
        return
    with path.open(encoding="utf-8") as fh:
        for line in fh:
            line = line.strip()
            if line:
                yield _fix_from_mapping(json.loads(line))


def _fix_from_mapping(row: dict) -> GpsFix:
    return GpsFix(
        latitude=float(row["latitude"]),
        longitude=float(row["longitude"]),
        timestamp=float(row["timestamp"]),
        accuracy=float(row.get("accuracy") or 50.0),
    )


class ReplayClock:
    """Clock that follows the timestamps of the replayed fixes."""

    def __init__(self) -> None:
        self.now = time.time()

    def __call__(self) -> float:
        return self.now


def _speak(content: GeneratedContent) -> None:
    logger.info("Now playing: %s (%ss)\n%s", content.title, content.duration, content.body)


def _log_event(event: TrailEvent) -> None:
    if event.kind == TrailEventKind.ERROR:
        logger.warning("%s %s (%s)", ERROR_MESSAGES.get(event.code, "Error:"), event.message, event.code)
    elif event.kind == TrailEventKind.MODE_CHANGE and event.mode is not None:
        logger.info("Operating mode: %s", event.mode.value)
    elif event.kind == TrailEventKind.LOCATION_UPDATE and event.context is not None:
        a = event.context.analysis
        logger.debug(
            "%.1f km/h %s (confidence %.2f, %s)",
            a.current_speed,
            a.movement_mode.value,
            a.confidence,
            a.trend.value,
        )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Movement-aware narrated trail content")
    parser.add_argument("fixes", type=Path, help="JSON-lines or CSV file of GPS fixes")
    parser.add_argument("--config", type=Path, default=None, help="config file path")
    parser.add_argument("--api-key", default="", help="DashScope API key (else config/env)")
    parser.add_argument("--model", default="qwen-plus")
    parser.add_argument(
        "--mode",
        choices=[m.value.lower() for m in OperatingMode if m != OperatingMode.PAUSED],
        default=None,
    )
    parser.add_argument("--realtime", action="store_true", help="sleep between fixes")
    parser.add_argument("-v", "--verbose", action="store_true")
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    store = JsonConfigStore(path=args.config)
    settings = load_user_configuration(store).settings
    api_key = args.api_key or store.get_item("api_key") or ""
    clock = ReplayClock()

    tracker = ClassifyingLocationTracker()
    pipeline = ContentPipeline(
        generator=DashscopeStoryGenerator(api_key=api_key, model=args.model),
        store=store,
        max_queue_size=settings.max_queue_size,
        clock=clock,
    )
    playback = QueuedPlaybackService(speaker=_speak, clock=clock)
    controller = TrailController(
        location_tracker=tracker,
        pipeline=pipeline,
        playback=playback,
        config_store=store,
        clock=clock,
        on_event=_log_event,
    )

    if not controller.start():
        return 1
    if args.mode:
        controller.set_mode(OperatingMode(args.mode.upper()))

    previous_ts: float | None = None
    try:
        for fix in load_fixes(args.fixes):
            if args.realtime and previous_ts is not None:
                time.sleep(max(0.0, fix.timestamp - previous_ts))
            previous_ts = fix.timestamp
            clock.now = fix.timestamp
            tracker.process_fix(fix)
            playback.tick()
    except (OSError, ValueError, KeyError) as exc:
        logger.error("Failed to read fixes from %s: %s", args.fixes, exc)
        return 1
    except KeyboardInterrupt:
        pass
    finally:
        controller.stop()

    stats = controller.stats
    logger.info(
        "Done: %.2f km, %d generated, %d consumed",
        stats.total_distance_km,
        stats.content_generated,
        stats.content_consumed,
    )
    return 0


if __name__ == "__main__":
    raise SystemExit(main(sys.argv[1:]))
