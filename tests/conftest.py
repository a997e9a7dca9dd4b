"""Shared fixtures: isolated data dir, fake HTTP backend and fake server process."""

import asyncio
import json
import subprocess
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional
from urllib.parse import urlsplit

import pytest

from livevision import transport
from livevision.db import dispatch_logs
from livevision.db.settings import init_settings_table, set_setting
from livevision.dispatch import reset_engine
from livevision.errors import TransportError
from livevision.providers import reset_providers
from livevision.storage.history import history_storage
from livevision.supervisor import reset_supervisor
from livevision.supervisor import manager


def json_response(data: Any, status: int = 200) -> transport.HttpResponse:
    return transport.HttpResponse(status=status, body=json.dumps(data).encode())


def text_response(text: str, status: int = 200) -> transport.HttpResponse:
    return transport.HttpResponse(status=status, body=text.encode())


@dataclass
class Call:
    method: str
    url: str
    path: str
    json_body: Any = None
    headers: Dict[str, str] = field(default_factory=dict)
    timeout: Optional[float] = None


class FakeBackend:
    """
    Stand-in for transport.request.

    Routes map (method, path) to an HttpResponse, an exception to raise, or a
    callable taking the JSON body. Unrouted requests fail like a refused
    connection.
    """

    def __init__(self):
        self.routes: Dict[tuple, Any] = {}
        self.calls: List[Call] = []

    def route(self, method: str, path: str, response: Any) -> None:
        self.routes[(method, path)] = response

    def count(self, method: str, path: str) -> int:
        return sum(1 for c in self.calls if c.method == method and c.path == path)

    def last(self, method: str, path: str) -> Call:
        return [c for c in self.calls if c.method == method and c.path == path][-1]

    async def request(self, method, url, *, json_body=None, headers=None, timeout=30.0):
        path = urlsplit(url).path
        self.calls.append(Call(method, url, path, json_body, dict(headers or {}), timeout))

        handler = self.routes.get((method, path))
        if handler is None:
            raise TransportError(f"{method} {url} failed: [Errno 111] Connection refused")
        if isinstance(handler, BaseException):
            raise handler
        if callable(handler):
            result = handler(json_body)
            if asyncio.iscoroutine(result):
                result = await result
            return result
        return handler


class FakeProcess:
    """Minimal subprocess.Popen stand-in."""

    next_pid = 4000

    def __init__(self, args, env=None, stdout=None, stderr=None, stdin=None, ignore_terminate=False):
        FakeProcess.next_pid += 1
        self.pid = FakeProcess.next_pid
        self.args = args
        self.env = env
        self.returncode = None
        self.ignore_terminate = ignore_terminate
        self.terminated = False
        self.killed = False

    def poll(self):
        return self.returncode

    def terminate(self):
        self.terminated = True
        if not self.ignore_terminate:
            self.returncode = -15

    def kill(self):
        self.killed = True
        self.returncode = -9

    def wait(self, timeout=None):
        if self.returncode is None:
            raise subprocess.TimeoutExpired(self.args, timeout)
        return self.returncode


class FakePopenFactory:
    def __init__(self):
        self.processes: List[FakeProcess] = []
        self.ignore_terminate = False
        self.error: Optional[OSError] = None

    def __call__(self, args, **kwargs):
        if self.error is not None:
            raise self.error
        proc = FakeProcess(args, ignore_terminate=self.ignore_terminate, **kwargs)
        self.processes.append(proc)
        return proc


@pytest.fixture(autouse=True)
def data_dir(tmp_path, monkeypatch):
    """Point all persistent state at a temporary directory."""
    monkeypatch.setenv("LIVEVISION_DATA_DIR", str(tmp_path))
    for name in ("MOONDREAM_API_KEY", "MOONDREAM_BASE_URL", "LIVEVISION_LOCAL_HOST"):
        monkeypatch.delenv(name, raising=False)

    history_storage.reset()
    reset_supervisor()
    reset_providers()
    reset_engine()

    init_settings_table()
    dispatch_logs.ensure_table()
    set_setting("auto_start_local_server", "false")

    yield tmp_path

    reset_supervisor()
    reset_providers()
    reset_engine()
    history_storage.reset()


@pytest.fixture
def backend(monkeypatch) -> FakeBackend:
    fake = FakeBackend()
    monkeypatch.setattr(transport, "request", fake.request)
    return fake


@pytest.fixture
def fake_popen(monkeypatch) -> FakePopenFactory:
    factory = FakePopenFactory()
    monkeypatch.setattr(manager.subprocess, "Popen", factory)
    return factory


@pytest.fixture
def server_dir(tmp_path):
    """Server directory with the binary already installed."""
    path = tmp_path / "ollama"
    (path / "bin").mkdir(parents=True)
    binary = path / "bin" / "ollama"
    binary.write_bytes(b"#!/bin/sh\n")
    binary.chmod(0o755)
    return path
