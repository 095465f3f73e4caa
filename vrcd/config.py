from __future__ import annotations

from dataclasses import asdict, dataclass, field, replace

from .constants import DEMO_DEVICE_ID, DEMO_PASSWORD, DEMO_USERNAME


@dataclass(frozen=True)
class ControlPlaneConfig:
    config_path: str | None = None
    state_path: str | None = None
    listen_host: str = "0.0.0.0"
    listen_port: int = 8443
    tls_cert_path: str | None = None
    tls_key_path: str | None = None
    tls_hostname: str = "localhost"
    seed_demo_user: bool = True
    demo_username: str = DEMO_USERNAME
    demo_password: str = DEMO_PASSWORD
    demo_device_id: str = DEMO_DEVICE_ID
    log_level: str = "INFO"
    log_console: bool = True
    log_file: str | None = None
    log_format: str = "%(asctime)s %(levelname)s %(name)s[%(threadName)s]: %(message)s"
    log_datefmt: str | None = None
    # Logger name -> level, e.g. {"vrcd.server": "DEBUG"}.
    log_levels: dict[str, str] = field(default_factory=dict)


# Table name -> {file key -> config field}
_TABLE_KEYS: dict[str, dict[str, str]] = {
    "server": {
        "host": "listen_host",
        "port": "listen_port",
        "state_path": "state_path",
    },
    "tls": {
        "cert": "tls_cert_path",
        "key": "tls_key_path",
        "hostname": "tls_hostname",
    },
    "demo": {
        "enabled": "seed_demo_user",
        "username": "demo_username",
        "password": "demo_password",
        "device_id": "demo_device_id",
    },
    "logging": {
        "level": "log_level",
        "console": "log_console",
        "file": "log_file",
        "format": "log_format",
        "datefmt": "log_datefmt",
        "levels": "log_levels",
    },
}

_OPTIONAL_STRINGS = ("state_path", "tls_cert_path", "tls_key_path", "log_file", "log_datefmt")


def load_toml(path: str) -> dict:
    import tomllib

    with open(path, "rb") as f:
        data = tomllib.load(f)
    return data if isinstance(data, dict) else {}


def apply_config_data(base: ControlPlaneConfig, data: dict) -> ControlPlaneConfig:
    if not isinstance(data, dict):
        return base

    flat: dict[str, object] = {k: v for k, v in data.items() if not isinstance(v, dict)}
    for table_name, mapping in _TABLE_KEYS.items():
        table = data.get(table_name)
        if not isinstance(table, dict):
            continue
        for file_key, field_name in mapping.items():
            if file_key in table:
                flat[field_name] = table[file_key]

    allowed = set(asdict(base).keys())
    # This identifies where the file was read from; do not let the file override it.
    allowed.discard("config_path")
    updates = {k: v for k, v in flat.items() if k in allowed}

    for key in _OPTIONAL_STRINGS:
        if key in updates and updates[key] == "":
            updates[key] = None

    if "listen_port" in updates:
        updates["listen_port"] = int(updates["listen_port"])  # type: ignore[arg-type]
    if "log_levels" in updates:
        levels = updates["log_levels"]
        if isinstance(levels, dict):
            updates["log_levels"] = {str(k): str(v) for k, v in levels.items()}
        else:
            del updates["log_levels"]
    for key in ("seed_demo_user", "log_console"):
        if key in updates:
            updates[key] = bool(updates[key])

    return replace(base, **updates) if updates else base
