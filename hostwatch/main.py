from __future__ import annotations

import argparse
import json
import logging

from hostwatch.config import AppConfig, load_config
from hostwatch.hub import BroadcastHub, Subscription, SubscriptionClosed
from hostwatch.local import get_static_info
from hostwatch.logging_utils import configure_logging, resolve_log_level
from hostwatch.models import RealtimeData
from hostwatch.mqtt_client import MqttPublisher
from hostwatch.orchestrator import CycleOrchestrator
from hostwatch.schema import validate_payload

logger = logging.getLogger("hostwatch")

CONNECT_WAIT_S = 5.0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="hostwatch host telemetry agent")
    parser.add_argument(
        "--config",
        default="config/hostwatch.cfg",
        help="Path to CFG configuration file (defaults are used if it is missing)",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        help="Logging level (TRACE, DEBUG, INFO, WARNING, ERROR)",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="count",
        default=0,
        help="Enable debug logging (-v) or trace logging (-vv)",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Log snapshots without publishing to MQTT",
    )
    parser.add_argument(
        "--once",
        action="store_true",
        help="Collect and publish a single snapshot, then exit",
    )
    parser.add_argument(
        "--dump-json",
        help="Write the latest snapshot to a file (overwritten every cycle)",
    )
    parser.add_argument(
        "--publish-status",
        metavar="STATUS",
        help="Publish a status (e.g., 'sleeping', 'online') to the availability topic and exit. "
             "Useful for system sleep/wake hooks.",
    )
    parser.add_argument(
        "--static-info",
        action="store_true",
        help="Print static host information as JSON and exit",
    )
    return parser


class SnapshotRelay:
    """Validates, serializes and forwards snapshots taken from a subscription."""

    def __init__(
        self,
        publisher: MqttPublisher | None,
        dump_path: str | None = None,
        pretty: bool = False,
    ) -> None:
        self.publisher = publisher
        self.dump_path = dump_path
        self.pretty = pretty
        self.logger = logging.getLogger(self.__class__.__name__)

    def relay(self, snapshot: RealtimeData) -> str:
        payload = snapshot.to_dict()
        schema_errors = validate_payload(payload)
        if schema_errors:
            self.logger.warning("Schema validation failed with %s errors.", len(schema_errors))
            self.logger.debug("Schema errors: %s", schema_errors)
        payload_json = json.dumps(payload, indent=2) if self.pretty else json.dumps(payload)
        if self.dump_path:
            with open(self.dump_path, "w", encoding="utf-8") as handle:
                handle.write(payload_json)
        if self.publisher is None:
            self.logger.debug("Snapshot: %s", payload_json)
        else:
            self.publisher.publish(payload_json)
        return payload_json

    def drain(self, subscription: Subscription, poll_s: float = 1.0) -> None:
        """Relay until the subscription closes, always skipping to the newest snapshot."""
        while not subscription.closed:
            try:
                snapshot = subscription.get(timeout=poll_s)
            except SubscriptionClosed:
                return
            if snapshot is None:
                continue
            newer = subscription.latest()
            if newer is not None:
                self.logger.debug("Relay fell behind; skipping to the newest snapshot.")
                snapshot = newer
            self.relay(snapshot)


def publish_status(config: AppConfig, status: str, wait_s: float = CONNECT_WAIT_S) -> bool:
    """Connect, set the availability topic to ``status`` and disconnect."""
    publisher = MqttPublisher(config.mqtt)
    publisher.connect()
    ok = False
    if publisher.wait_until_connected(wait_s):
        ok = publisher.publish_status(status) and publisher.flush(wait_s)
    # Keep the status just written instead of replacing it with "offline"
    publisher.disconnect(announce=False)
    return ok


def main() -> None:
    parser = build_parser()
    args = parser.parse_args()

    level = resolve_log_level(args.verbose, args.log_level)
    configure_logging(level)

    if args.static_info:
        print(json.dumps(get_static_info().to_dict(), indent=2))
        return

    config = load_config(args.config)

    if args.publish_status:
        publish_status(config, args.publish_status)
        return

    publisher = None
    if not args.dry_run:
        publisher = MqttPublisher(config.mqtt, static_info=get_static_info())
        publisher.connect()
    else:
        logger.info("Dry run enabled; skipping MQTT publish.")

    hub = BroadcastHub(config.publish.hub_capacity)
    orchestrator = CycleOrchestrator(config, hub)
    relay = SnapshotRelay(publisher, args.dump_json, pretty=level <= logging.DEBUG)
    subscription = hub.subscribe()

    try:
        if args.once:
            orchestrator.collect_once()
            snapshot = subscription.get(timeout=0)
            if publisher is not None:
                publisher.wait_until_connected(CONNECT_WAIT_S)
            if snapshot is not None:
                relay.relay(snapshot)
            if publisher is not None:
                publisher.flush(CONNECT_WAIT_S)
            logger.info("Single-run mode enabled; exiting after one snapshot.")
            return

        orchestrator.start()
        logger.info("hostwatch started. Publishing every %s seconds.", orchestrator.interval)
        relay.drain(subscription)
    except KeyboardInterrupt:
        logger.info("hostwatch stopped.")
    finally:
        orchestrator.stop()
        subscription.close()
        if publisher is not None:
            publisher.disconnect()


if __name__ == "__main__":
    main()
