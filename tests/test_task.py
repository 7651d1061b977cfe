"""Tests for the echo task script under tasks/."""

import argparse
import asyncio
import importlib.util
from pathlib import Path
from unittest.mock import MagicMock

from conftest import HELLO, FakeConnector, FakeTransport, event_frame

TASK_PATH = Path(__file__).resolve().parent.parent / "tasks" / "task_socketmode.py"


def load_task():
    spec = importlib.util.spec_from_file_location("task_socketmode", TASK_PATH)
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


def parse(module, *argv):
    parser = argparse.ArgumentParser()
    module.build_parser(parser.add_subparsers())
    return parser.parse_args(["socketmode", *argv])


def test_parser_defaults():
    module = load_task()
    args = parse(module, "--url", "wss://socketmode.test/link")

    assert args.url == "wss://socketmode.test/link"
    assert args.max_burst == 5
    assert args.metrics_interval is None
    assert args.func is module.task


def test_echo_handler_replies_to_channel():
    module = load_task()
    args = parse(module, "--url", "wss://socketmode.test/link")
    ws = FakeTransport(
        [
            HELLO,
            event_frame("e1", "message", channel="C1", text="hi"),
            event_frame("e2", "message", channel="C1", text="echo: hi", bot_id="B1"),
        ]
    )
    client = module.build_client(args, connector=FakeConnector([ws]))

    async def scenario():
        runner = asyncio.create_task(client.run())
        while len(ws.acks()) < 2:
            await asyncio.sleep(0.01)
        await client.close()
        await runner

    asyncio.run(scenario())

    assert ws.messages() == [{"type": "message", "channel": "C1", "text": "echo: hi"}]


def test_metrics_interval_configures_meter_provider(monkeypatch):
    module = load_task()
    args = parse(
        module, "--url", "wss://socketmode.test/link", "--metrics-interval", "5"
    )
    provider = MagicMock()
    configure = MagicMock(return_value=provider)
    monkeypatch.setattr(module, "configure_metrics", configure)

    module.build_client(args, connector=FakeConnector([]))

    assert args.metrics_interval == 5.0
    configure.assert_called_once_with(
        service_name="socketmode-echo",
        export_interval_ms=5000,
        attributes={"socketmode.client.name": "EchoBot"},
    )
    provider.get_meter.assert_called_once_with("rxsocketmode")


def test_no_metrics_interval_leaves_metrics_off(monkeypatch):
    module = load_task()
    args = parse(module, "--url", "wss://socketmode.test/link")
    configure = MagicMock()
    monkeypatch.setattr(module, "configure_metrics", configure)

    module.build_client(args, connector=FakeConnector([]))

    configure.assert_not_called()
