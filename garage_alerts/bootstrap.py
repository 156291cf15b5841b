from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from garage_alerts.core.config.yaml_config import AppConfig, load_app_config
from garage_alerts.core.rate_limiter import RateLimiter
from garage_alerts.notification.base import Clock, Connectivity, always_connected, monotonic_clock
from garage_alerts.notification.push_channel import PushChannel, PushConfig
from garage_alerts.notification.telemetry_channel import TelemetryChannel, TelemetryConfig
from garage_alerts.services.dispatcher import AlertDispatcher
from garage_alerts.transport.http_transport import RequestsTransport, Transport


@dataclass(frozen=True)
class AlertWiring:
    """Everything the control layer needs to report events."""
    config: AppConfig
    transport: Transport
    limiter: RateLimiter
    push: PushChannel
    telemetry: TelemetryChannel
    dispatcher: AlertDispatcher


def build_transport(cfg: AppConfig) -> RequestsTransport:
    return RequestsTransport(timeout_s=cfg.dispatch.timeout_s, verify_tls=cfg.dispatch.verify_tls)


def build_alert_system(
    config_path: Optional[str] = None,
    cfg: Optional[AppConfig] = None,
    transport: Optional[Transport] = None,
    clock: Clock = monotonic_clock,
    connectivity: Connectivity = always_connected,
) -> AlertWiring:
    cfg = cfg or load_app_config(config_path)
    transport = transport or build_transport(cfg)

    # --- RATE LIMITS ---
    limiter = RateLimiter()

    # --- CHANNELS ---
    push = PushChannel(
        PushConfig(
            api_key=cfg.push.api_key,
            api_url=cfg.push.api_url,
            device=cfg.push.device,
            min_interval_s=cfg.push.min_interval_s,
        ),
        transport=transport,
        limiter=limiter,
        clock=clock,
        connectivity=connectivity,
    )
    telemetry = TelemetryChannel(
        TelemetryConfig(
            channel_id=cfg.telemetry.channel_id,
            write_key=cfg.telemetry.write_key,
            read_key=cfg.telemetry.read_key,
            server=cfg.telemetry.server,
            min_interval_s=cfg.telemetry.min_interval_s,
        ),
        transport=transport,
        limiter=limiter,
        clock=clock,
        connectivity=connectivity,
    )

    # --- DISPATCHER ---
    dispatcher = AlertDispatcher(push=push, telemetry=telemetry, parallel=cfg.dispatch.parallel)

    return AlertWiring(
        config=cfg,
        transport=transport,
        limiter=limiter,
        push=push,
        telemetry=telemetry,
        dispatcher=dispatcher,
    )
