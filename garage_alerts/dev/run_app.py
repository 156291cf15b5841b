from __future__ import annotations

import argparse
import logging
from typing import List, Optional

from garage_alerts.bootstrap import build_alert_system
from garage_alerts.domain.events import Event
from garage_alerts.domain.models import EventKind


def _parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Log a system start and optionally dispatch test events.",
    )
    parser.add_argument("--config", default=None, help="Path to config.yaml")
    parser.add_argument(
        "--event",
        action="append",
        default=[],
        choices=[k.value for k in EventKind],
        help="Event kind to dispatch (repeatable)",
    )
    parser.add_argument("--reason", default="manual", help="Reason text attached to events")
    parser.add_argument("--log-level", default="INFO", help="Logging level")
    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> None:
    """
    Wire the alert system and exercise both channels.

    Notes
    -----
    - Loads configuration from `config.yaml` by default.
    - Example:
        python -m garage_alerts.dev.run_app --event TEST --event DOOR_OPEN
    """
    args = _parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, str(args.log_level).upper(), logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )

    wiring = build_alert_system(config_path=args.config)
    print(f"push ready: {wiring.push.is_ready()}  telemetry ready: {wiring.telemetry.is_ready()}")

    boot = wiring.telemetry.log_system_start()
    print(f"system start logged: {boot.delivered} ({boot.outcome.value})")

    try:
        for kind in args.event:
            result = wiring.dispatcher.dispatch(Event(kind=EventKind(kind), reason=args.reason, source="cli"))
            print(
                f"{kind}: push={result.push.outcome.value} "
                f"telemetry={result.telemetry.outcome.value}"
            )
    finally:
        wiring.dispatcher.close()
        close = getattr(wiring.transport, "close", None)
        if close is not None:
            close()

    print(f"next telemetry update allowed in {wiring.telemetry.seconds_until_next_update():.0f}s")


if __name__ == "__main__":
    main()
