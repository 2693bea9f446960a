"""Configuration for the canvas engine and its host."""

import json
import logging
import os
from dataclasses import dataclass, field, asdict
from pathlib import Path
from typing import Optional, List

logger = logging.getLogger(__name__)

API_KEY_ENV = "OPENROUTER_API_KEY"


def get_data_dir() -> Path:
    """Get the application data directory."""
    data_dir = Path.home() / ".local" / "share" / "infinitecanvas"
    data_dir.mkdir(parents=True, exist_ok=True)
    (data_dir / "exports").mkdir(exist_ok=True)
    return data_dir


def get_config_path() -> Path:
    """Get the settings file path."""
    return get_data_dir() / "settings.json"


@dataclass
class CanvasConfig:
    """Tunables for geometry, interaction, timing and idea generation.

    One instance is built by the host and handed to every component that
    needs it; nothing in the engine reads settings from anywhere else.
    """
    # Node geometry
    min_node_width: float = 100.0
    min_node_height: float = 60.0
    text_node_width: float = 250.0
    text_node_height: float = 120.0
    file_node_width: float = 400.0
    file_node_height: float = 400.0

    # Viewport
    min_scale: float = 0.1
    max_scale: float = 5.0
    zoom_in_factor: float = 1.1
    zoom_out_factor: float = 0.9

    # Hit testing (graph units unless noted)
    connection_point_radius: float = 16.0
    connection_hit_tolerance: float = 8.0
    handle_size: float = 8.0
    drag_threshold: float = 2.0  # screen pixels

    # Input
    scroll_speed: float = 0.5
    vertical_dominance: float = 2.0
    paste_offset: float = 20.0
    drop_stack_offset: float = 30.0

    # Rendering
    grid_size: float = 50.0
    show_grid: bool = True

    # Timing (seconds)
    content_load_timeout: float = 5.0
    autosave_delay: float = 0.5

    # Idea generation
    models: List[str] = field(default_factory=lambda: ["openai/gpt-4o-mini"])
    api_key: Optional[str] = None
    base_url: str = "https://openrouter.ai/api/v1"
    temperature: float = 0.7
    max_tokens: int = 150
    generation_timeout: float = 60.0

    def to_json(self) -> str:
        return json.dumps(asdict(self), indent=2)

    @classmethod
    def from_json(cls, data: Optional[str]) -> "CanvasConfig":
        if not data:
            return cls()
        try:
            d = json.loads(data)
            if not isinstance(d, dict):
                return cls()
            # Filter to only known fields to handle schema evolution
            known = {f.name for f in cls.__dataclass_fields__.values()}
            return cls(**{k: v for k, v in d.items() if k in known})
        except (json.JSONDecodeError, TypeError):
            return cls()


def load_config(path: Optional[Path] = None) -> CanvasConfig:
    """Load settings from disk, applying environment overrides."""
    path = path or get_config_path()
    config = CanvasConfig()
    if path.exists():
        try:
            config = CanvasConfig.from_json(path.read_text(encoding="utf-8"))
        except OSError as exc:
            logger.warning("Could not read settings %s: %s", path, exc)
    else:
        # Seed a file with the defaults for the user to edit
        try:
            path.write_text(config.to_json(), encoding="utf-8")
        except OSError as exc:
            logger.warning("Could not write default settings %s: %s", path, exc)

    env_key = os.environ.get(API_KEY_ENV)
    if env_key:
        config.api_key = env_key
    return config
