"""End-to-end tests: MCP client <-> dispatcher over in-memory streams."""
from __future__ import annotations

import asyncio
import sys

import anyio
import pytest
from mcp import ClientSession
from mcp.shared.memory import create_client_server_memory_streams

import server
from whatsappmcp.automation import SEND_OK, WhatsAppAutomation
from whatsappmcp.config import AutomationTimings
from whatsappmcp.error_log import ErrorLog
from whatsappmcp.errors import AutomationExecutionError, TransportError
from whatsappmcp.implementations import CONTACTS_LIMITATION_TEXT, RUNNING_TEXT


class FakeOsascript:
    def __init__(self):
        self.scripts: list[str] = []
        self.fail_next = False

    async def __call__(self, script: str) -> str:
        self.scripts.append(script)
        if self.fail_next:
            self.fail_next = False
            raise AutomationExecutionError("Failed to execute AppleScript: exit status 1: execution error")
        if "exists process" in script:
            return "true"
        return SEND_OK


@pytest.fixture
def osascript():
    return FakeOsascript()


@pytest.fixture
def error_log(tmp_path):
    return ErrorLog(str(tmp_path / "error.log"))


@pytest.fixture
def dispatcher(osascript, error_log):
    automation = WhatsAppAutomation(osascript, timings=AutomationTimings.zero())
    return server.create_dispatcher(automation, error_log)


def test_create_dispatcher_registers_all_tools(dispatcher):
    assert list(dispatcher.tools) == [
        "send-whatsapp-message",
        "check-whatsapp-status",
        "list-recent-contacts",
    ]
    assert dispatcher.name == "WhatsApp-Helper"
    assert dispatcher.version == "1.0.0"


@pytest.mark.asyncio
async def test_client_round_trip(dispatcher, osascript):
    async with create_client_server_memory_streams() as (client_streams, server_streams):
        async with anyio.create_task_group() as tg:
            tg.start_soon(dispatcher.connect, *server_streams)

            async with ClientSession(*client_streams) as session:
                await session.initialize()

                listed = await session.list_tools()
                assert [t.name for t in listed.tools] == list(dispatcher.tools)

                sent = await session.call_tool(
                    "send-whatsapp-message",
                    {"contactName": "O'Brien", "message": "Line one\nLine two"},
                )
                assert not sent.isError
                assert sent.content[0].text == 'Message sent to O\'Brien: "Line one\nLine two"'

                status = await session.call_tool("check-whatsapp-status", {})
                assert status.content[0].text == RUNNING_TEXT

                contacts = await session.call_tool("list-recent-contacts", {})
                assert contacts.content[0].text == CONTACTS_LIMITATION_TEXT

                osascript.fail_next = True
                failed = await session.call_tool("send-whatsapp-message", {"contactName": "Alice", "message": "hi"})
                assert failed.isError
                assert "execution error" in failed.content[0].text

                invalid = await session.call_tool("send-whatsapp-message", {"contactName": "", "message": "hi"})
                assert invalid.isError
                assert invalid.content[0].text.startswith("Input validation error")

            tg.cancel_scope.cancel()

    # two sends and one status check; the invalid call never reached osascript
    assert len(osascript.scripts) == 3


@pytest.mark.asyncio
async def test_registration_frozen_after_connect(dispatcher):
    async with create_client_server_memory_streams() as (_, server_streams):
        async with anyio.create_task_group() as tg:
            tg.start_soon(dispatcher.connect, *server_streams)
            await anyio.sleep(0.01)
            with pytest.raises(RuntimeError):
                dispatcher.register("late", "late", {"type": "object"}, None)
            tg.cancel_scope.cancel()


# ---------------------------------------------------------------------------
# main()
# ---------------------------------------------------------------------------

@pytest.fixture
def quick_exit(monkeypatch, tmp_path):
    monkeypatch.setenv("HOME", str(tmp_path))
    monkeypatch.setenv("WHATSAPP_MCP_LOG_DIR", str(tmp_path / "logs"))
    monkeypatch.setattr(server.time, "sleep", lambda seconds: None)
    return tmp_path / "logs" / "error.log"


def test_main_exits_1_on_bad_config(monkeypatch, quick_exit):
    monkeypatch.setenv("WHATSAPP_MCP_SELECTION", "telepathy")
    with pytest.raises(SystemExit) as exc_info:
        server.main()
    assert exc_info.value.code == 1


def test_main_exits_1_on_fatal_transport_error(monkeypatch, quick_exit):
    async def broken_run(config, error_log):
        raise TransportError("stdin closed unexpectedly")

    monkeypatch.setattr(server, "run", broken_run)
    with pytest.raises(SystemExit) as exc_info:
        server.main()
    assert exc_info.value.code == 1
    assert "Fatal error in main" in quick_exit.read_text(encoding="utf-8")


def test_main_returns_normally_when_channel_closes(monkeypatch, quick_exit):
    seen = []

    async def finished_run(config, error_log):
        seen.append(config.log_dir)

    monkeypatch.setattr(server, "run", finished_run)
    server.main()
    assert seen == [str(quick_exit.parent)]
    assert not quick_exit.exists()


def test_exception_hooks_route_to_error_log(monkeypatch, error_log):
    monkeypatch.setattr(sys, "excepthook", sys.excepthook)
    loop = asyncio.new_event_loop()
    try:
        server.install_exception_hooks(error_log, loop)
        sys.excepthook(ValueError, ValueError("top level"), None)
        loop.call_exception_handler({"message": "Task exception was never retrieved", "exception": KeyError("k")})
    finally:
        loop.close()

    with open(error_log.path, encoding="utf-8") as f:
        lines = f.read().splitlines()
    assert "Uncaught exception" in lines[0]
    assert "Unhandled rejection: Task exception was never retrieved" in lines[1]
