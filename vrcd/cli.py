from __future__ import annotations

import argparse
import logging
import os
import signal
import sys
import threading
from dataclasses import replace
from pathlib import Path

import tomlkit

from .config import ControlPlaneConfig, apply_config_data, load_toml
from .errors import ControlPlaneError, CorruptState
from .logging_config import configure_logging
from .paths import (
    default_config_path,
    default_state_path,
    default_tls_dir,
    ensure_private_dir,
)
from .server import ControlPlaneServer
from .service import ControlPlaneService
from .tls import ensure_material, server_ssl_context

log = logging.getLogger("vrcd.cli")


def _toml_str(value: str) -> str:
    return tomlkit.string(value).as_string()


def _write_default_config(config_path: str) -> None:
    cfg_dir = os.path.dirname(config_path)
    if cfg_dir:
        ensure_private_dir(Path(cfg_dir))

    state_path = _toml_str(str(default_state_path()))
    tls_dir = default_tls_dir()
    cert_path = _toml_str(str(tls_dir / "cert.pem"))
    key_path = _toml_str(str(tls_dir / "key.pem"))

    content = f"""# vrcd configuration (TOML)
#
# This file was created on first run.
# Edit it, then start vrcd again.

[server]

# Listen address for the HTTPS control plane.
host = "0.0.0.0"
port = 8443

# Durable control-plane state (users, device tokens, rooms).
# Leave empty to run purely in memory.
state_path = {state_path}

[tls]

# Certificate and key served by the listener. When either file is missing a
# self-signed pair for `hostname` is generated at startup; clients must then
# trust that certificate explicitly. Use a certificate from a trusted
# authority in production.
cert = {cert_path}
key = {key_path}
hostname = "localhost"

[demo]

# Seed a demo account when the user store is empty.
enabled = true
username = "gamer"
password = "password123"
device_id = "demo-device"

[logging]

# Log level for vrcd itself.
level = "INFO"

# Log to stderr (systemd/journald friendly).
console = true

# Optional file path for logs (leave empty to disable).
file = ""

# Log format and optional date format.
format = "%(asctime)s %(levelname)s %(name)s[%(threadName)s]: %(message)s"
datefmt = ""

# Per-component levels, for example request lines from the listener:
# [logging.levels]
# "vrcd.server" = "DEBUG"
"""

    with open(config_path, "w", encoding="utf-8") as f:
        f.write(content)
    try:
        os.chmod(config_path, 0o600)
    except OSError:
        pass


def _build_arg_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="vrcd", description="Run the VPN room control plane")

    p.add_argument(
        "--config",
        default=str(default_config_path()),
        help="Path to a TOML config file (created on first run)",
    )
    p.add_argument(
        "--state",
        default=None,
        help="Path to the persisted state file (empty runs in memory only)",
    )
    p.add_argument("--host", default=None, help="Listen address")
    p.add_argument("--port", type=int, default=None, help="Listen port")
    p.add_argument("--tls-cert", default=None, help="TLS certificate (PEM)")
    p.add_argument("--tls-key", default=None, help="TLS private key (PEM)")
    p.add_argument(
        "--no-demo-user",
        action="store_true",
        help="Do not seed the demo account into an empty user store",
    )
    p.add_argument(
        "--log-level",
        default=None,
        help="Logging level override (DEBUG, INFO, WARNING, ERROR). Default comes from config.",
    )
    p.add_argument(
        "--log-file",
        default=None,
        help="Log file path override (empty disables file logging). Default comes from config.",
    )

    return p


def build_config(args: argparse.Namespace) -> ControlPlaneConfig:
    config_path = str(args.config)
    cfg = ControlPlaneConfig(config_path=config_path)
    if config_path and os.path.exists(config_path):
        cfg = apply_config_data(cfg, load_toml(config_path))

    if args.state is not None:
        cfg = replace(cfg, state_path=str(args.state) or None)
    if args.host is not None:
        cfg = replace(cfg, listen_host=str(args.host))
    if args.port is not None:
        cfg = replace(cfg, listen_port=int(args.port))
    if args.tls_cert is not None:
        cfg = replace(cfg, tls_cert_path=str(args.tls_cert))
    if args.tls_key is not None:
        cfg = replace(cfg, tls_key_path=str(args.tls_key))
    if args.no_demo_user:
        cfg = replace(cfg, seed_demo_user=False)
    if args.log_level is not None:
        cfg = replace(cfg, log_level=str(args.log_level))
    if args.log_file is not None:
        cfg = replace(cfg, log_file=str(args.log_file) if str(args.log_file) else None)
    return cfg


def main(argv: list[str] | None = None) -> None:
    args = _build_arg_parser().parse_args(sys.argv[1:] if argv is None else argv)

    config_path = str(args.config)
    if not os.path.exists(config_path):
        _write_default_config(config_path)
        print(
            "Created default vrcd config. Edit it before starting:\n"
            f"- Config: {config_path}\n"
            "\nThen re-run vrcd.",
            file=sys.stderr,
        )
        raise SystemExit(0)

    cfg = build_config(args)
    configure_logging(cfg, override_level=args.log_level, override_file=args.log_file)

    tls_dir = default_tls_dir()
    cert_path = cfg.tls_cert_path or str(tls_dir / "cert.pem")
    key_path = cfg.tls_key_path or str(tls_dir / "key.pem")
    ensure_material(cert_path, key_path, cfg.tls_hostname)

    try:
        svc = ControlPlaneService(cfg)
    except CorruptState as e:
        log.critical("Refusing to start with corrupt state: %s", e.message)
        raise SystemExit(2) from e
    except ControlPlaneError as e:
        log.critical("Startup failed: %s", e.message)
        raise SystemExit(1) from e

    server = ControlPlaneServer(
        svc,
        host=cfg.listen_host,
        port=cfg.listen_port,
        ssl_context=server_ssl_context(cert_path, key_path),
    )

    shutdown = threading.Event()
    signal.signal(signal.SIGINT, lambda *_: shutdown.set())
    signal.signal(signal.SIGTERM, lambda *_: shutdown.set())

    server.start()
    while not shutdown.is_set():
        shutdown.wait(0.25)

    log.info("Shutdown signal received, stopping")
    server.stop()
    log.info("%s", svc.format_stats())


if __name__ == "__main__":
    main()
