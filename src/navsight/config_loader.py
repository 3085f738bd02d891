import json
import logging
import os
from dataclasses import dataclass
from typing import Optional

from .common import Verbosity

logger = logging.getLogger(__name__)

CONFIG_PATH = os.path.join(os.getcwd(), "config.json")

DEFAULT_CONFIG = {
    "speech_enabled": True,
    "verbosity": "medium",
    "announce_all_mode": True,
    "confidence_threshold": 0.6,
    "process_interval": 0.5,
    "speech_rate": 1.1,
    "speech_pitch": 1.0,
    "speech_volume": 1.0,
    "camera_index": 0,
    "frame_width": 640,
    "frame_height": 480,
    "show_subtitles": True,
}


@dataclass
class NavigationSettings:
    """Live, user-controlled switches. Read on every tick, never cached."""
    speech_enabled: bool = True
    verbosity: Verbosity = Verbosity.MEDIUM
    announce_all_mode: bool = True

    @classmethod
    def from_config(cls, config: dict) -> "NavigationSettings":
        return cls(
            speech_enabled=bool(config.get("speech_enabled", True)),
            verbosity=Verbosity.parse(config.get("verbosity", "medium")),
            announce_all_mode=bool(config.get("announce_all_mode", True)),
        )

    def to_config(self) -> dict:
        return {
            "speech_enabled": self.speech_enabled,
            "verbosity": self.verbosity.value,
            "announce_all_mode": self.announce_all_mode,
        }


def load_config(path: Optional[str] = None) -> dict:
    path = path or CONFIG_PATH
    if not os.path.exists(path):
        logger.warning("%s not found. Creating default config...", path)
        config = dict(DEFAULT_CONFIG)
        save_config(config, path)
        return config

    try:
        with open(path, "r") as f:
            loaded = json.load(f)
    except json.JSONDecodeError:
        logger.error("%s is corrupted - resetting to default...", path)
        config = dict(DEFAULT_CONFIG)
        save_config(config, path)
        return config

    if not isinstance(loaded, dict):
        logger.error("%s does not hold an object - resetting to default...", path)
        config = dict(DEFAULT_CONFIG)
        save_config(config, path)
        return config

    config = dict(DEFAULT_CONFIG)
    config.update(loaded)
    return config


def save_config(data, path: Optional[str] = None):
    with open(path or CONFIG_PATH, "w") as f:
        json.dump(data, f, indent=4)
