from __future__ import annotations

import os
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from dotenv import load_dotenv

from garage_alerts.transport.http_transport import DEFAULT_TIMEOUT_S

CONFIG_ENV_VAR = "GARAGE_ALERTS_CONFIG"


@dataclass(frozen=True)
class PushConfigData:
    """Push provider settings (credential + throughput floor)."""
    api_key: str = "YOUR_PUSHSAFER_KEY"
    api_url: str = "https://www.pushsafer.com/api"
    device: str = "a"
    min_interval_s: float = 0.0


@dataclass(frozen=True)
class TelemetryConfigData:
    """Telemetry backend settings (channel, credentials, write interval)."""
    channel_id: int = 0
    write_key: str = "YOUR_THINGSPEAK_WRITE_KEY"
    read_key: str = ""
    server: str = "https://api.thingspeak.com"
    min_interval_s: float = 30.0


@dataclass(frozen=True)
class DispatchConfig:
    """Dispatcher + transport settings."""
    parallel: bool = False
    timeout_s: float = DEFAULT_TIMEOUT_S
    verify_tls: bool = True


@dataclass(frozen=True)
class AppConfig:
    """
    Root configuration loaded from YAML.

    Credentials may also come from the environment (or a ``.env`` file next
    to the executable), which keeps secrets out of ``config.yaml``.
    """
    push: PushConfigData
    telemetry: TelemetryConfigData
    dispatch: DispatchConfig


def _read_yaml(path: Path) -> Dict[str, Any]:
    with path.open("r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError("config.yaml must contain a YAML mapping at the root")
    return data


def _resolve_default_config_path() -> Path:
    """
    Resolve config.yaml location.

    Priority:
    1) GARAGE_ALERTS_CONFIG env var if provided
    2) config.yaml next to the executable
    3) ./config.yaml in current working directory
    """
    env = os.getenv(CONFIG_ENV_VAR)
    if env:
        return Path(env).expanduser().resolve()

    exe_dir = Path(sys.executable).resolve().parent
    candidate = exe_dir / "config.yaml"
    if candidate.exists():
        return candidate

    return Path("config.yaml").resolve()


def _section(raw: Dict[str, Any], name: str) -> Dict[str, Any]:
    value = raw.get(name) or {}
    if not isinstance(value, dict):
        raise ValueError(f"'{name}' must be a mapping")
    return value


def load_app_config(path: Optional[str] = None, env_file: Optional[str] = None) -> AppConfig:
    """
    Load configuration from YAML and convert into typed config objects.

    Environment variables ``PUSHSAFER_KEY``, ``THINGSPEAK_WRITE_KEY``,
    ``THINGSPEAK_READ_KEY`` and ``THINGSPEAK_CHANNEL_ID`` override the YAML
    values.

    Parameters
    ----------
    path
        Explicit path to config.yaml. If None, uses default resolution.
    env_file
        Optional ``.env`` file to load before reading the environment.
        Defaults to ``.env`` next to the config file.

    Returns
    -------
    AppConfig
        Parsed and validated configuration.

    Raises
    ------
    FileNotFoundError
        If config file does not exist.
    ValueError
        If fields are invalid.
    """
    cfg_path = Path(path).expanduser().resolve() if path else _resolve_default_config_path()
    if not cfg_path.exists():
        raise FileNotFoundError(f"Config not found: {cfg_path}")

    load_dotenv(Path(env_file) if env_file else cfg_path.parent / ".env")
    raw = _read_yaml(cfg_path)

    # ---- push ----
    p = _section(raw, "push")
    push = PushConfigData(
        api_key=str(os.getenv("PUSHSAFER_KEY") or p.get("api_key", PushConfigData.api_key)),
        api_url=str(p.get("api_url", PushConfigData.api_url)),
        device=str(p.get("device", "a")),
        min_interval_s=float(p.get("min_interval_s", 0.0)),
    )

    # ---- telemetry ----
    t = _section(raw, "telemetry")
    telemetry = TelemetryConfigData(
        channel_id=int(os.getenv("THINGSPEAK_CHANNEL_ID") or t.get("channel_id", 0)),
        write_key=str(os.getenv("THINGSPEAK_WRITE_KEY") or t.get("write_key", TelemetryConfigData.write_key)),
        read_key=str(os.getenv("THINGSPEAK_READ_KEY") or t.get("read_key", "")),
        server=str(t.get("server", TelemetryConfigData.server)).rstrip("/"),
        min_interval_s=float(t.get("min_interval_s", 30.0)),
    )
    if telemetry.min_interval_s < 15.0:
        raise ValueError("telemetry.min_interval_s must be >= 15 (backend write limit)")
    if push.min_interval_s < 0:
        raise ValueError("push.min_interval_s must be >= 0")

    # ---- dispatch ----
    d = _section(raw, "dispatch")
    dispatch = DispatchConfig(
        parallel=bool(d.get("parallel", False)),
        timeout_s=float(d.get("timeout_s", DEFAULT_TIMEOUT_S)),
        verify_tls=bool(d.get("verify_tls", True)),
    )
    if dispatch.timeout_s <= 0:
        raise ValueError("dispatch.timeout_s must be > 0")

    return AppConfig(push=push, telemetry=telemetry, dispatch=dispatch)
