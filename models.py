"""Core data models for the app."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional


class MovementMode(str, Enum):
    STATIONARY = "STATIONARY"
    WALKING = "WALKING"
    CYCLING = "CYCLING"
    DRIVING = "DRIVING"


class SpeedTrend(str, Enum):
    ACCELERATING = "ACCELERATING"
    DECELERATING = "DECELERATING"
    STABLE = "STABLE"


class EnvironmentType(str, Enum):
    URBAN = "URBAN"
    NATURE = "NATURE"
    HISTORIC = "HISTORIC"
    RESIDENTIAL = "RESIDENTIAL"


class OperatingMode(str, Enum):
    DISCOVERY = "DISCOVERY"
    PASSIVE = "PASSIVE"
    FOCUSED = "FOCUSED"
    PAUSED = "PAUSED"


class InteractionState(str, Enum):
    IDLE = "IDLE"
    LISTENING = "LISTENING"
    GENERATING = "GENERATING"
    PLAYING = "PLAYING"
    WAITING = "WAITING"


class PlaybackState(str, Enum):
    IDLE = "IDLE"
    LOADING = "LOADING"
    PLAYING = "PLAYING"
    PAUSED = "PAUSED"


class AudioQuality(str, Enum):
    HIGH = "HIGH"
    STANDARD = "STANDARD"
    AUTO = "AUTO"


class TrailEventKind(str, Enum):
    STATUS = "status"
    CONTENT_READY = "content_ready"
    LOCATION_UPDATE = "location_update"
    MODE_CHANGE = "mode_change"
    ERROR = "error"


@dataclass
class GpsFix:
    latitude: float
    longitude: float
    timestamp: float  # epoch seconds
    accuracy: float = 50.0  # metres


@dataclass
class LocationReading:
    latitude: float
    longitude: float
    timestamp: float
    speed: float  # km/h
    accuracy: float


@dataclass
class MovementAnalysis:
    current_speed: float = 0.0  # km/h
    average_speed: float = 0.0  # km/h over the last 5 readings
    movement_mode: MovementMode = MovementMode.STATIONARY
    confidence: float = 0.0
    stationary_duration: float = 0.0  # minutes
    trend: SpeedTrend = SpeedTrend.STABLE


@dataclass
class LocationContext:
    latitude: float
    longitude: float
    analysis: MovementAnalysis
    environment: EnvironmentType = EnvironmentType.URBAN
    direction: float = 0.0  # degrees
    accuracy: float = 0.0
    timestamp: float = 0.0

    @property
    def movement_mode(self) -> MovementMode:
        return self.analysis.movement_mode

    @property
    def speed(self) -> float:
        return self.analysis.current_speed

    @property
    def stationary_duration(self) -> float:
        return self.analysis.stationary_duration


@dataclass
class MovementPattern:
    average_speed: float = 0.0
    dominant_mode: MovementMode = MovementMode.STATIONARY
    stationary_percentage: float = 100.0
    total_distance_km: float = 0.0


@dataclass
class Interest:
    id: str
    name: str
    category: str
    weight: float  # 0-1 preference strength


@dataclass(frozen=True)
class ContentStrategy:
    movement_mode: MovementMode
    content_length: str  # short | medium | long
    content_type: str  # story | history | fact | legend
    refresh_interval: float  # seconds
    priority: float


@dataclass
class PromptHints:
    movement_mode: MovementMode
    speed: float
    environment: EnvironmentType
    content_length: str
    content_type: str
    context_prompt: str
    interests: list[dict[str, str]] = field(default_factory=list)


@dataclass
class Story:
    title: str
    body: str


@dataclass
class GeneratedContent:
    id: str
    title: str
    body: str
    duration: int  # seconds
    movement_mode: MovementMode
    latitude: float
    longitude: float
    interests: list[str] = field(default_factory=list)
    created_at: float = 0.0  # epoch seconds
    priority: float = 0.0
    is_playing: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "body": self.body,
            "duration": self.duration,
            "movement_mode": self.movement_mode.value,
            "latitude": self.latitude,
            "longitude": self.longitude,
            "interests": list(self.interests),
            "created_at": self.created_at,
            "priority": self.priority,
            "is_playing": self.is_playing,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "GeneratedContent":
        return cls(
            id=str(data["id"]),
            title=str(data.get("title", "")),
            body=str(data.get("body", "")),
            duration=int(data.get("duration", 0)),
            movement_mode=MovementMode(data["movement_mode"]),
            latitude=float(data["latitude"]),
            longitude=float(data["longitude"]),
            interests=[str(i) for i in data.get("interests", [])],
            created_at=float(data.get("created_at", 0.0)),
            priority=float(data.get("priority", 0.0)),
            is_playing=bool(data.get("is_playing", False)),
        )


@dataclass
class ContentRequest:
    context: LocationContext
    interests: list[Interest]
    current_content: Optional[GeneratedContent] = None
    force_refresh: bool = False


@dataclass
class UserProfile:
    interests: list[Interest] = field(default_factory=list)
    preferred_content_length: str = "adaptive"  # short | medium | long | adaptive
    audio_quality: str = "auto"  # high | standard | auto
    activity_level: str = "medium"  # low | medium | high
    discovery_radius_km: float = 2.0
    privacy_mode: bool = False


@dataclass
class Settings:
    mode: OperatingMode = OperatingMode.DISCOVERY
    auto_start: bool = True
    background_enabled: bool = True
    minimum_stationary_time: float = 2.0  # minutes before stationary content
    content_generation_interval: float = 60.0  # seconds
    max_queue_size: int = 10
    battery_optimization: bool = True
    data_usage_optimization: bool = True


@dataclass
class UsageStats:
    total_distance_km: float = 0.0
    total_listening_time_s: float = 0.0
    content_consumed: int = 0
    content_generated: int = 0
    sessions_started: int = 0


@dataclass
class TrailStatus:
    mode: OperatingMode
    interaction_state: InteractionState
    last_context: Optional[LocationContext]
    current_content: Optional[GeneratedContent]
    queue_size: int
    active: bool
    battery_optimized: bool = True


@dataclass
class TrailEvent:
    kind: TrailEventKind
    status: Optional[TrailStatus] = None
    content: Optional[GeneratedContent] = None
    context: Optional[LocationContext] = None
    mode: Optional[OperatingMode] = None
    code: str = ""
    message: str = ""
