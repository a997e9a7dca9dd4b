"""Tests for local server binary acquisition, lifecycle and model provisioning."""

import asyncio
import os

import pytest

from livevision import transport
from livevision.errors import ModelPullError, StartupError, TransportError
from livevision.supervisor import LocalServerSupervisor, ServerState, check_status
from livevision.supervisor.binary import ensure_binary, release_url

from conftest import json_response, text_response


def make_supervisor(server_dir, **kwargs) -> LocalServerSupervisor:
    return LocalServerSupervisor(server_dir=server_dir, host="127.0.0.1:11434", settle_seconds=0, **kwargs)


# Binary acquisition

@pytest.mark.parametrize(
    "system,machine,asset",
    [
        ("Linux", "x86_64", "ollama-linux-amd64"),
        ("Linux", "aarch64", "ollama-linux-arm64"),
        ("Darwin", "arm64", "ollama-darwin"),
        ("Windows", "AMD64", "ollama-windows-amd64.exe"),
    ],
)
def test_release_url_by_platform(system, machine, asset):
    url = release_url(system, machine, version="v0.4.7")
    assert url.endswith(f"/v0.4.7/{asset}")


def test_release_url_unknown_platform():
    with pytest.raises(StartupError):
        release_url("plan9", "mips")


@pytest.mark.asyncio
async def test_ensure_binary_downloads_once(tmp_path, monkeypatch):
    downloads = []

    async def fake_download(url, dest, timeout=600.0):
        downloads.append(url)
        dest.write_bytes(b"binary")
        return 6

    monkeypatch.setattr(transport, "download", fake_download)
    server_dir = tmp_path / "srv"

    path = await ensure_binary(server_dir, url="https://example.invalid/ollama")
    again = await ensure_binary(server_dir, url="https://example.invalid/ollama")

    assert path == again == server_dir / "bin" / "ollama"
    assert downloads == ["https://example.invalid/ollama"]
    if os.name == "posix":
        assert os.access(path, os.X_OK)


@pytest.mark.asyncio
async def test_ensure_binary_download_failure(tmp_path, monkeypatch):
    async def failing_download(url, dest, timeout=600.0):
        raise TransportError("network unreachable")

    monkeypatch.setattr(transport, "download", failing_download)

    with pytest.raises(StartupError):
        await ensure_binary(tmp_path / "srv", url="https://example.invalid/ollama")


# Lifecycle

@pytest.mark.asyncio
async def test_start_adopts_external_server(backend, fake_popen, server_dir):
    backend.route("GET", "/api/version", json_response({"version": "0.4.7"}))
    supervisor = make_supervisor(server_dir)

    state = await supervisor.start()

    assert state == ServerState.EXTERNAL
    assert fake_popen.processes == []
    assert supervisor.handle is None


@pytest.mark.asyncio
async def test_start_spawns_exactly_once(backend, fake_popen, server_dir):
    supervisor = make_supervisor(server_dir)

    first = await supervisor.start()
    second = await supervisor.start()

    assert first == second == ServerState.RUNNING
    assert len(fake_popen.processes) == 1

    proc = fake_popen.processes[0]
    assert proc.args == [str(server_dir / "bin" / "ollama"), "serve"]
    assert proc.env["OLLAMA_MODELS"] == str(server_dir / "models")
    assert proc.env["OLLAMA_HOST"] == "127.0.0.1:11434"
    assert (server_dir / "models").is_dir()
    assert supervisor.handle.pid == proc.pid
    # Liveness was probed only on the first start
    assert backend.count("GET", "/api/version") == 1


@pytest.mark.asyncio
async def test_concurrent_starts_spawn_once(backend, fake_popen, server_dir):
    supervisor = make_supervisor(server_dir)

    await asyncio.gather(supervisor.start(), supervisor.start(), supervisor.start())

    assert len(fake_popen.processes) == 1


@pytest.mark.asyncio
async def test_start_respawns_after_exit(backend, fake_popen, server_dir):
    supervisor = make_supervisor(server_dir)
    await supervisor.start()

    fake_popen.processes[0].returncode = 1
    assert supervisor.state == ServerState.EXITED

    await supervisor.start()

    assert len(fake_popen.processes) == 2
    assert supervisor.state == ServerState.RUNNING


@pytest.mark.asyncio
async def test_start_spawn_failure(backend, fake_popen, server_dir):
    fake_popen.error = OSError("exec format error")
    supervisor = make_supervisor(server_dir)

    with pytest.raises(StartupError):
        await supervisor.start()
    assert supervisor.handle is None


@pytest.mark.asyncio
async def test_stop_terminates_and_is_repeatable(backend, fake_popen, server_dir):
    supervisor = make_supervisor(server_dir)
    await supervisor.start()
    proc = fake_popen.processes[0]

    await supervisor.stop()
    await supervisor.stop()

    assert proc.terminated
    assert not proc.killed
    assert supervisor.handle is None
    assert supervisor.state == ServerState.STOPPED


@pytest.mark.asyncio
async def test_stop_kills_unresponsive_process(backend, fake_popen, server_dir):
    fake_popen.ignore_terminate = True
    supervisor = make_supervisor(server_dir)
    await supervisor.start()
    proc = fake_popen.processes[0]

    await supervisor.stop()

    assert proc.terminated
    assert proc.killed


@pytest.mark.asyncio
async def test_stop_after_process_already_exited(backend, fake_popen, server_dir):
    supervisor = make_supervisor(server_dir)
    await supervisor.start()
    fake_popen.processes[0].returncode = 0

    await supervisor.stop()

    assert supervisor.handle is None
    assert not fake_popen.processes[0].terminated


@pytest.mark.asyncio
async def test_stop_without_start():
    supervisor = LocalServerSupervisor(settle_seconds=0)
    await supervisor.stop()
    supervisor.close()


@pytest.mark.asyncio
async def test_context_manager_stops_on_error(backend, fake_popen, server_dir):
    with pytest.raises(RuntimeError):
        async with make_supervisor(server_dir) as supervisor:
            await supervisor.start()
            raise RuntimeError("caller failed")

    assert fake_popen.processes[0].terminated


@pytest.mark.asyncio
async def test_status_not_blocked_by_held_lock(backend, server_dir):
    backend.route("GET", "/api/tags", json_response({"models": [{"name": "llava:7b"}]}))
    supervisor = make_supervisor(server_dir)

    async with supervisor._lock:
        status = await asyncio.wait_for(check_status(supervisor.base_url), timeout=1.0)

    assert status.model_ready is True


def test_describe_without_io(server_dir):
    info = make_supervisor(server_dir).describe()
    assert info["state"] == "stopped"
    assert info["pid"] is None
    assert info["base_url"] == "http://127.0.0.1:11434"


# Model provisioning

@pytest.mark.parametrize(
    "name,parts",
    [
        ("llava:7b", ("library", "llava", "7b")),
        ("llava", ("library", "llava", "latest")),
        ("someone/vision:q4", ("someone", "vision", "q4")),
    ],
)
def test_manifest_path(server_dir, name, parts):
    path = make_supervisor(server_dir).manifest_path(name)
    assert path == server_dir.joinpath("models", "manifests", "registry.ollama.ai", *parts)


@pytest.mark.asyncio
async def test_pull_skipped_when_manifest_present(backend, server_dir):
    supervisor = make_supervisor(server_dir)
    manifest = supervisor.manifest_path("llava:7b")
    manifest.parent.mkdir(parents=True)
    manifest.write_text("{}")

    assert await supervisor.pull_model("llava:7b") is False
    assert backend.calls == []


@pytest.mark.asyncio
async def test_pull_is_idempotent(backend, server_dir):
    supervisor = make_supervisor(server_dir)

    def pull(body):
        manifest = supervisor.manifest_path(body["name"])
        manifest.parent.mkdir(parents=True, exist_ok=True)
        manifest.write_text("{}")
        return json_response({"status": "success"})

    backend.route("POST", "/api/pull", pull)

    assert await supervisor.pull_model("llava:7b") is True
    assert await supervisor.pull_model("llava:7b") is False
    assert backend.count("POST", "/api/pull") == 1
    assert backend.last("POST", "/api/pull").json_body == {"name": "llava:7b", "stream": False}


@pytest.mark.asyncio
async def test_pull_rejected(backend, server_dir):
    backend.route("POST", "/api/pull", text_response("pull model manifest: file does not exist", status=500))
    supervisor = make_supervisor(server_dir)

    with pytest.raises(ModelPullError) as exc_info:
        await supervisor.pull_model("nonexistent:1b")

    assert exc_info.value.status == 500
    assert exc_info.value.model == "nonexistent:1b"
    assert backend.count("POST", "/api/pull") == 1


@pytest.mark.asyncio
async def test_pull_unreachable(backend, server_dir):
    supervisor = make_supervisor(server_dir)

    with pytest.raises(ModelPullError) as exc_info:
        await supervisor.pull_model("llava:7b")

    assert exc_info.value.status is None


@pytest.mark.asyncio
async def test_preload_model(backend, server_dir):
    supervisor = make_supervisor(server_dir)
    assert await supervisor.preload_model("llava:7b") is False

    backend.route("POST", "/api/generate", json_response({"done": True}))
    assert await supervisor.preload_model("llava:7b", keep_alive="10m") is True
    assert backend.last("POST", "/api/generate").json_body == {"model": "llava:7b", "keep_alive": "10m"}


@pytest.mark.asyncio
async def test_bootstrap_runs_full_sequence(backend, fake_popen, server_dir):
    supervisor = make_supervisor(server_dir)

    def pull(body):
        manifest = supervisor.manifest_path(body["name"])
        manifest.parent.mkdir(parents=True, exist_ok=True)
        manifest.write_text("{}")
        return json_response({"status": "success"})

    backend.route("POST", "/api/pull", pull)
    backend.route("POST", "/api/generate", json_response({"done": True}))
    backend.route("GET", "/api/tags", json_response({"models": [{"name": "llava:7b"}]}))

    status = await supervisor.bootstrap("llava:7b")

    assert status.running and status.model_ready
    assert len(fake_popen.processes) == 1
    assert [c.path for c in backend.calls] == ["/api/version", "/api/pull", "/api/generate", "/api/tags"]
