import argparse
import asyncio

from rxsocketmode import HandlerRegistry, SocketModeClient, SocketModeConfig
from rxsocketmode.telemetry import (
    CLIENT_NAME_ATTRIBUTE,
    configure_metrics,
    configure_telemetry,
)

CLIENT_NAME = "EchoBot"


def build_parser(subparsers: argparse._SubParsersAction):
    parser = subparsers.add_parser(
        "socketmode", help="connect to a Socket Mode URL and echo messages."
    )
    parser.add_argument("--url", type=str, required=True)
    parser.add_argument("--ping-interval", type=float, default=30.0)
    parser.add_argument("--max-burst", type=int, default=5)
    parser.add_argument("--log-format", choices=["text", "json"], default="text")
    parser.add_argument(
        "--metrics-interval",
        type=float,
        default=None,
        help="print client metrics to stdout every N seconds.",
    )
    parser.set_defaults(func=task)


def build_client(parsed_args: argparse.Namespace, connector=None) -> SocketModeClient:
    tracer_provider, logger_provider = configure_telemetry(
        service_name="socketmode-echo",
        log_format=parsed_args.log_format,
        attributes={CLIENT_NAME_ATTRIBUTE: CLIENT_NAME},
    )
    meter_provider = (
        configure_metrics(
            service_name="socketmode-echo",
            export_interval_ms=int(parsed_args.metrics_interval * 1000),
            attributes={CLIENT_NAME_ATTRIBUTE: CLIENT_NAME},
        )
        if parsed_args.metrics_interval
        else None
    )
    registry = HandlerRegistry()
    client = SocketModeClient(
        parsed_args.url,
        config=SocketModeConfig(
            ping_interval=parsed_args.ping_interval,
            max_burst=parsed_args.max_burst,
        ),
        registry=registry,
        connector=connector,
        name=CLIENT_NAME,
        tracer_provider=tracer_provider,
        logger_provider=logger_provider,
        meter_provider=meter_provider,
    )

    @registry.on("message")
    async def echo(payload):
        event = payload.get("event", {}) if isinstance(payload, dict) else {}
        # skip our own echoes
        if event.get("bot_id") or not event.get("channel"):
            return
        await client.send(event["channel"], f"echo: {event.get('text', '')}")

    client.errors.subscribe(print)
    return client


def task(parsed_args: argparse.Namespace):
    client = build_client(parsed_args)
    try:
        asyncio.run(client.run())
    except KeyboardInterrupt:
        print("\nKeyboard Interrupt.")
