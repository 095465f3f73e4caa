from __future__ import annotations

import os
from pathlib import Path


def default_vrcd_dir() -> Path:
    override = os.environ.get("VRCD_HOME")
    if override:
        return Path(override)
    return Path.home() / ".vrcd"


def default_config_path() -> Path:
    return default_vrcd_dir() / "vrcd.toml"


def default_state_path() -> Path:
    return default_vrcd_dir() / "state.toml"


def default_tls_dir() -> Path:
    return default_vrcd_dir() / "tls"


def ensure_private_dir(path: Path) -> None:
    path.mkdir(parents=True, exist_ok=True)
    try:
        # Best-effort tightening; may fail on some filesystems.
        os.chmod(path, 0o700)
    except OSError:
        pass
