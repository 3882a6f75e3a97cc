"""Runtime configuration for equanimity."""

from __future__ import annotations

import dataclasses
import os
from pathlib import Path
from typing import Any


def _env_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "y", "on"}:
        return True
    if normalized in {"0", "false", "no", "n", "off"}:
        return False
    return default


def default_paint_root() -> Path:
    """Return the simulator's paint folder under the user's documents."""
    return Path.home() / "Documents" / "iRacing" / "paint"


@dataclasses.dataclass(frozen=True)
class EquanimityConfig:
    """Process-level settings that are not part of the option side file.

    Parameters
    ----------
    paint_root : Path
        Folder holding one sub-folder per car path plus the global
        ``common`` pool for helmets and suits.
    options_path : Path
        Location of the flat ``Key=Value`` option file.
    settle_delay : float
        Seconds to wait after a new session is detected before
        provisioning, so the simulator can finish loading the session.
    reload_throttle : float
        Seconds to wait before each reload request is sent.
    poll_interval : float
        Seconds between telemetry polls on the adapter thread.
    log_dir : Path
        Folder for per-run log files when ``LogToFile`` is on.
    lock_path : Path
        Single-instance lock file.
    random_per_driver : bool
        Re-stage random assets for every newly observed participant
        instead of once per connection.
    skip_cleanup : bool
        Skip the cleanup step on shutdown.
    """

    paint_root: Path = dataclasses.field(default_factory=default_paint_root)
    options_path: Path = Path("equanimity.ini")
    settle_delay: float = 1.5
    reload_throttle: float = 0.2
    poll_interval: float = 0.1
    log_dir: Path = Path("logs")
    lock_path: Path = dataclasses.field(
        default_factory=lambda: Path(os.environ.get("TMPDIR", "/tmp")) / "equanimity.lock"
    )
    random_per_driver: bool = False
    skip_cleanup: bool = False

    @classmethod
    def from_env(cls, **overrides: Any) -> EquanimityConfig:
        """Create configuration from ``EQUANIMITY_*`` environment variables.

        Explicit keyword arguments override environment values.
        """
        env = os.environ

        _ENV_PATH_MAP = {
            "EQUANIMITY_PAINT_ROOT": "paint_root",
            "EQUANIMITY_OPTIONS": "options_path",
            "EQUANIMITY_LOG_DIR": "log_dir",
            "EQUANIMITY_LOCK_FILE": "lock_path",
        }
        config_kwargs: dict[str, Any] = {}
        for env_key, field_name in _ENV_PATH_MAP.items():
            val = env.get(env_key)
            if val is not None and field_name not in overrides:
                config_kwargs[field_name] = Path(val).expanduser()

        _ENV_FLOAT_MAP = {
            "EQUANIMITY_SETTLE_DELAY": "settle_delay",
            "EQUANIMITY_RELOAD_THROTTLE": "reload_throttle",
            "EQUANIMITY_POLL_INTERVAL": "poll_interval",
        }
        for env_key, field_name in _ENV_FLOAT_MAP.items():
            val = env.get(env_key)
            if val is not None and field_name not in overrides:
                config_kwargs[field_name] = float(val)

        if "random_per_driver" not in overrides:
            config_kwargs["random_per_driver"] = _env_bool(env.get("EQUANIMITY_RANDOM_PER_DRIVER"), False)

        config_kwargs.update(overrides)

        return cls(**config_kwargs)
