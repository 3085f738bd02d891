# src/navsight/__init__.py
"""NavSight package – re-export the announcement core."""
from .announcer import AnnouncementScheduler, SchedulerState    # noqa: F401
from .common import (                                            # noqa: F401
    AnnouncementRequest, BoundingBox, DetectedObject, Position,
    Priority, SpeechOptions, Verbosity,
)
from .config_loader import NavigationSettings                    # noqa: F401
from .geometry import classify_detections                        # noqa: F401
from .memory import DetectionMemory, TrackedObject               # noqa: F401
from .policy import NavigationPolicy                             # noqa: F401
from .timers import TimerLoop                                    # noqa: F401
