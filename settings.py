"""
settings.py

Persistent settings management for EmojiArt.

Handles cross-platform settings storage using TOML format with platformdirs
for proper user config directory detection.

Settings file location:
    - Windows: %APPDATA%/emojiart/settings.toml
    - macOS: ~/Library/Application Support/emojiart/settings.toml
    - Linux: ~/.config/emojiart/settings.toml

Default values are documented in comments throughout this file.
If settings.toml is corrupted, these defaults will be used.
"""

from __future__ import annotations

import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

import platformdirs

# TOML reading - use tomllib for Python 3.11+, tomli for earlier versions
if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib

import tomli_w

APP_NAME = "emojiart"

DEFAULT_EMOJI_SIZE = 40
DEFAULT_PALETTE = "⭐️🌨🍎🌏🥨⚾️"

# Global settings manager instance (singleton)
_settings_manager: Optional["SettingsManager"] = None


def get_settings() -> "SettingsManager":
    """Get the global settings manager instance.

    Returns:
        The singleton SettingsManager instance.
    """
    global _settings_manager
    if _settings_manager is None:
        _settings_manager = SettingsManager()
    return _settings_manager


# =============================================================================
# Canvas Settings
# =============================================================================

@dataclass
class CanvasSettings:
    """Canvas rendering and gesture settings.

    Defaults:
        default_emoji_size: 40
        selected_opacity: 0.5
        wheel_factor: 1.15
        long_press_ms: 1000
        drag_threshold: 4.0
    """
    default_emoji_size: int = DEFAULT_EMOJI_SIZE  # Default: 40 points at zoom 1.0
    selected_opacity: float = 0.5      # Default: 0.5
    wheel_factor: float = 1.15         # Default: 1.15 (15% per scroll step)
    long_press_ms: int = 1000          # Default: 1000 ms
    drag_threshold: float = 4.0        # Default: 4.0 pixels before a press becomes a drag


# =============================================================================
# Background Settings
# =============================================================================

@dataclass
class BackgroundSettings:
    """Background image fetch settings.

    Defaults:
        timeout_seconds: 15.0
    """
    timeout_seconds: float = 15.0  # Default: 15.0 seconds per request


# =============================================================================
# Session Settings
# =============================================================================

@dataclass
class SessionSettings:
    """Editing session settings.

    Defaults:
        persist_transform: False
    """
    # Store steady pan/zoom in the document snapshot so it survives restarts
    persist_transform: bool = False  # Default: False


# =============================================================================
# Storage Settings
# =============================================================================

@dataclass
class StorageSettings:
    """Document storage settings.

    Defaults:
        autosave_delay_ms: 500
        documents_dir: ""
    """
    autosave_delay_ms: int = 500  # Default: 500 ms after the last change
    documents_dir: str = ""       # Default: "" (platform user data dir)


@dataclass
class PaletteSettings:
    """Emoji palette offered by the editor.

    Defaults:
        emojis: DEFAULT_PALETTE
    """
    emojis: str = DEFAULT_PALETTE


# =============================================================================
# Main App Settings
# =============================================================================

@dataclass
class AppSettings:
    """Application settings with default values.

    Attributes:
        canvas: Canvas rendering and gesture settings.
        background: Background fetch settings.
        session: Editing session settings.
        storage: Document storage settings.
        palette: Emoji palette.
    """
    canvas: CanvasSettings = field(default_factory=CanvasSettings)
    background: BackgroundSettings = field(default_factory=BackgroundSettings)
    session: SessionSettings = field(default_factory=SessionSettings)
    storage: StorageSettings = field(default_factory=StorageSettings)
    palette: PaletteSettings = field(default_factory=PaletteSettings)


# =============================================================================
# Settings Manager
# =============================================================================

class SettingsManager:
    """Manages loading, saving, and accessing application settings.

    Settings are stored in a TOML file at the platform-appropriate location.
    If the settings file doesn't exist, defaults are used and the file is
    created on first save.

    Args:
        app_name: Application name used for the config directory.
        settings_dir: Override for the config directory (used by tests).
    """

    def __init__(self, app_name: str = APP_NAME, settings_dir: Optional[Path] = None):
        self.app_name = app_name
        self.settings_dir = Path(settings_dir) if settings_dir else Path(platformdirs.user_config_dir(app_name))
        self.settings_file = self.settings_dir / "settings.toml"
        self.settings = self.load()
        self._needs_save = not self.settings_file.exists()

    def ensure_file_complete(self) -> None:
        """Ensure settings file exists with all sections. Call once at startup."""
        if self._needs_save or not self.settings_file.exists():
            self.save()
            self._needs_save = False

    def load(self) -> AppSettings:
        """Load settings from the TOML file.

        Returns:
            AppSettings instance with values from file or defaults if file
            doesn't exist or is invalid.
        """
        if not self.settings_file.exists():
            return AppSettings()

        try:
            with open(self.settings_file, "rb") as f:
                data = tomllib.load(f)

            return self._parse_toml(data)
        except (OSError, tomllib.TOMLDecodeError):
            # If file is corrupted or invalid, return defaults
            return AppSettings()

    def _parse_toml(self, data: Dict[str, Any]) -> AppSettings:
        """Parse TOML data into AppSettings.

        Args:
            data: Parsed TOML dictionary.

        Returns:
            AppSettings instance populated from TOML data.
        """
        settings = AppSettings()

        canvas = data.get("canvas", {})
        settings.canvas.default_emoji_size = canvas.get("default_emoji_size", settings.canvas.default_emoji_size)
        settings.canvas.selected_opacity = canvas.get("selected_opacity", settings.canvas.selected_opacity)
        settings.canvas.wheel_factor = canvas.get("wheel_factor", settings.canvas.wheel_factor)
        settings.canvas.long_press_ms = canvas.get("long_press_ms", settings.canvas.long_press_ms)
        settings.canvas.drag_threshold = canvas.get("drag_threshold", settings.canvas.drag_threshold)

        background = data.get("background", {})
        settings.background.timeout_seconds = background.get("timeout_seconds", settings.background.timeout_seconds)

        session = data.get("session", {})
        settings.session.persist_transform = session.get("persist_transform", settings.session.persist_transform)

        storage = data.get("storage", {})
        settings.storage.autosave_delay_ms = storage.get("autosave_delay_ms", settings.storage.autosave_delay_ms)
        settings.storage.documents_dir = storage.get("documents_dir", settings.storage.documents_dir)

        palette = data.get("palette", {})
        settings.palette.emojis = palette.get("emojis", settings.palette.emojis)

        return settings

    def save(self) -> None:
        """Save current settings to the TOML file.

        Creates the settings directory if it doesn't exist.
        """
        self.settings_dir.mkdir(parents=True, exist_ok=True)

        data = self._to_toml_dict()

        with open(self.settings_file, "wb") as f:
            tomli_w.dump(data, f)

    def _to_toml_dict(self) -> Dict[str, Any]:
        """Convert settings to a TOML-compatible dictionary structure.

        Returns:
            Dictionary organized by TOML sections.
        """
        s = self.settings
        return {
            "canvas": {
                "default_emoji_size": s.canvas.default_emoji_size,
                "selected_opacity": s.canvas.selected_opacity,
                "wheel_factor": s.canvas.wheel_factor,
                "long_press_ms": s.canvas.long_press_ms,
                "drag_threshold": s.canvas.drag_threshold,
            },
            "background": {
                "timeout_seconds": s.background.timeout_seconds,
            },
            "session": {
                "persist_transform": s.session.persist_transform,
            },
            "storage": {
                "autosave_delay_ms": s.storage.autosave_delay_ms,
                "documents_dir": s.storage.documents_dir,
            },
            "palette": {
                "emojis": s.palette.emojis,
            },
        }

    def to_toml(self) -> str:
        """Convert current settings to a TOML-formatted string.

        Returns:
            TOML representation of the current settings.
        """
        return tomli_w.dumps(self._to_toml_dict())

    def get_documents_dir(self) -> Path:
        """Get the resolved document storage directory.

        Returns:
            Path to the documents directory. Falls back to the platform user
            data dir when the documents_dir setting is empty.
        """
        if self.settings.storage.documents_dir:
            return Path(self.settings.storage.documents_dir)
        return Path(platformdirs.user_data_dir(self.app_name)) / "documents"

    def get_settings_path(self) -> Path:
        """Get the path to the settings file.

        Returns:
            Path object pointing to the settings file location.
        """
        return self.settings_file
