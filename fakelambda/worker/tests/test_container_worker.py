"""
Tests for ContainerWorker and the CLI container engine

The engine is replaced with an in-memory fake and the emulator endpoint is
mocked with respx, so no container engine is needed.
"""

import asyncio
import sys
from pathlib import Path

import httpx
import pytest
import respx

from fakelambda.worker.core.exceptions import (
    BootstrapError,
    SpawnError,
    TransportError,
    UnsupportedRuntimeError,
)
from fakelambda.worker.services.container_engine import CliContainerEngine, build_args, run_args
from fakelambda.worker.services import container_worker
from fakelambda.worker.services.container_worker import INVOCATION_PATH, ContainerWorker, next_port

PORT = 9321


class FakeEngine:
    def __init__(self, build_code=0, gate=None):
        self.build_code = build_code
        self.gate = gate
        self.calls = []

    def names(self):
        return [call[0] for call in self.calls]

    async def build(self, context_dir, tag):
        self.calls.append(("build", context_dir, tag))
        if self.gate is not None:
            await self.gate.wait()
        return self.build_code

    async def run(self, image, name, ports, env):
        self.calls.append(("run", image, name, dict(ports), dict(env)))

    async def stop(self, name):
        self.calls.append(("stop", name))
        return 0

    async def inspect(self, name):
        self.calls.append(("inspect", name))
        return {"State": {"Status": "running"}}


@pytest.fixture
def entry(tmp_path):
    src = tmp_path / "src"
    src.mkdir()
    (src / "hello.js").write_text("exports.handler = async () => ({ ok: true })\n")
    return str(src / "hello.js")


@pytest.fixture
def make_worker(entry, tmp_path, worker_config, sinks):
    stdout, stderr = sinks

    def _make(engine=None, **kwargs):
        return ContainerWorker(
            entry=entry,
            env=kwargs.pop("env", {"TEST_GREETER": "TEST_ENV_1"}),
            id="hello_image",
            port=PORT,
            tmp=str(tmp_path / "build"),
            stdout=stdout,
            stderr=stderr,
            engine=engine or FakeEngine(),
            config=worker_config,
            **kwargs,
        )

    return _make


def mock_readiness():
    return respx.route(method="GET", host="localhost", port=PORT).mock(
        return_value=httpx.Response(404)
    )


def mock_invocation():
    return respx.post(f"http://localhost:{PORT}{INVOCATION_PATH}")


class TestBootstrap:
    @pytest.mark.asyncio
    @respx.mock
    async def test_builds_and_runs_once(self, make_worker, tmp_path):
        readiness = mock_readiness()
        engine = FakeEngine()
        worker = make_worker(engine)

        await worker.ready
        await worker.start()

        build_dir = Path(worker.tmp)
        assert (build_dir / "hello.js").exists()
        dockerfile = (build_dir / "Dockerfile").read_text()
        assert "FROM public.ecr.aws/lambda/nodejs:12" in dockerfile
        assert "COPY * ${LAMBDA_TASK_ROOT}/" in dockerfile
        assert 'CMD [ "hello.handler" ]' in dockerfile

        assert engine.names() == ["build", "run"]
        assert engine.calls[0] == ("build", str(build_dir), "hello_image")
        _, image, name, ports, env = engine.calls[1]
        assert image == "hello_image"
        assert name.startswith("name_")
        assert ports == {PORT: 8080}
        assert env == {"TEST_GREETER": "TEST_ENV_1"}

        assert readiness.called
        assert worker.instance.ready is True
        assert worker.ready is worker.start()

        await worker.close()

    @pytest.mark.asyncio
    async def test_build_failure_rejects_ready_and_requests(self, make_worker):
        engine = FakeEngine(build_code=1)
        worker = make_worker(engine)

        with pytest.raises(BootstrapError) as exc:
            await worker.ready
        assert exc.value.exit_code == 1

        with pytest.raises(BootstrapError):
            await worker.request("1", {})

        assert engine.names() == ["build"]
        assert worker.instance is None
        await worker.close()

    @pytest.mark.asyncio
    async def test_close_during_build_skips_run(self, make_worker):
        gate = asyncio.Event()
        engine = FakeEngine(gate=gate)
        worker = make_worker(engine)

        task = worker.start()
        while "build" not in engine.names():
            await asyncio.sleep(0)
        await worker.close()
        gate.set()
        await task

        assert engine.names() == ["build"]
        assert worker.instance is None

    @pytest.mark.asyncio
    @respx.mock
    async def test_readiness_timeout_is_not_fatal(self, make_worker):
        readiness = respx.route(method="GET", host="localhost", port=PORT).mock(
            side_effect=httpx.ConnectError("connection refused")
        )
        engine = FakeEngine()
        worker = make_worker(engine)

        await worker.ready

        assert readiness.call_count >= 1
        assert worker.instance.ready is False
        assert engine.names() == ["build", "run", "inspect"]
        await worker.close()


class TestRequest:
    @pytest.mark.asyncio
    @respx.mock
    async def test_returns_decoded_body(self, make_worker):
        mock_readiness()
        invoke = mock_invocation().mock(return_value=httpx.Response(200, json={"ok": True}))
        worker = make_worker()

        result = await worker.request("1", {"greeter": "James"})

        assert result == {"ok": True}
        assert invoke.call_count == 1
        sent = invoke.calls.last.request
        assert sent.headers["Content-Type"] == "application/json"
        assert sent.content == b'{"greeter": "James"}'
        await worker.close()

    @pytest.mark.asyncio
    @respx.mock
    async def test_retries_until_emulator_answers(self, make_worker):
        mock_readiness()
        invoke = mock_invocation().mock(
            side_effect=[
                httpx.ConnectError("connection refused"),
                httpx.ConnectError("connection refused"),
                httpx.Response(200, json={"ok": True}),
            ]
        )
        worker = make_worker()

        result = await worker.request("1", {})

        assert result == {"ok": True}
        assert invoke.call_count == 3
        await worker.close()

    @pytest.mark.asyncio
    @respx.mock
    async def test_undecodable_body_is_retried(self, make_worker):
        mock_readiness()
        invoke = mock_invocation().mock(
            side_effect=[
                httpx.Response(200, text="not json"),
                httpx.Response(200, json={"ok": True}),
            ]
        )
        worker = make_worker()

        assert await worker.request("1", {}) == {"ok": True}
        assert invoke.call_count == 2
        await worker.close()

    @pytest.mark.asyncio
    @respx.mock
    async def test_gives_up_after_max_attempts(self, make_worker, worker_config):
        mock_readiness()
        invoke = mock_invocation().mock(side_effect=httpx.ConnectError("connection refused"))
        worker = make_worker()

        with pytest.raises(TransportError) as exc:
            await worker.request("1", {})

        assert invoke.call_count == worker_config.INVOKE_MAX_ATTEMPTS
        assert exc.value.attempts == worker_config.INVOKE_MAX_ATTEMPTS
        assert isinstance(exc.value.__cause__, httpx.ConnectError)
        await worker.close()

    @pytest.mark.asyncio
    @respx.mock
    async def test_error_status_is_returned_as_is(self, make_worker):
        mock_readiness()
        mock_invocation().mock(
            return_value=httpx.Response(500, json={"errorType": "Error", "errorMessage": "x"})
        )
        worker = make_worker()

        result = await worker.request("1", {})

        assert result == {"errorType": "Error", "errorMessage": "x"}
        await worker.close()


class TestLifecycle:
    @pytest.mark.asyncio
    @respx.mock
    async def test_close_stops_container(self, make_worker):
        mock_readiness()
        engine = FakeEngine()
        worker = make_worker(engine)
        await worker.ready
        name = worker.instance.container_name

        await worker.close()

        assert engine.calls[-1] == ("stop", name)
        assert worker.closed is True
        assert worker.instance.ready is False

    def test_unsupported_runtime(self, entry, worker_config):
        with pytest.raises(UnsupportedRuntimeError):
            ContainerWorker(entry=entry, runtime="python3.9", config=worker_config)

    @pytest.mark.asyncio
    async def test_defaults(self, entry, worker_config):
        first = ContainerWorker(entry=entry, engine=FakeEngine(), config=worker_config)
        second = ContainerWorker(entry=entry, engine=FakeEngine(), config=worker_config)

        assert first.id.startswith("docker_")
        assert first.tmp.endswith(first.id)
        assert first.handler_entrypoint() == "hello.handler"
        assert first.port != second.port
        assert first.invocation_url == (
            f"http://localhost:{first.port}/2015-03-31/functions/function/invocations"
        )

        await first.close()
        await second.close()

    @pytest.mark.asyncio
    async def test_port_range_follows_config(self, entry, worker_config, monkeypatch):
        monkeypatch.setattr(container_worker, "_port_counter", None)
        config = worker_config.model_copy(
            update={"PORT_RANGE_START": 20000, "PORT_RANGE_SPAN": 1}
        )

        worker = ContainerWorker(entry=entry, engine=FakeEngine(), config=config)

        assert worker.port == 20000
        assert next_port(config) == 20001
        await worker.close()


class TestCliContainerEngine:
    def test_build_args(self):
        assert build_args("/tmp/ctx", "img") == ["build", "/tmp/ctx", "-t", "img"]

    def test_run_args_put_image_last(self):
        args = run_args("img", "name_1", {9000: 8080}, {"A": "1", "B": "two words"})
        assert args == [
            "run",
            "-p",
            "9000:8080",
            "--name",
            "name_1",
            "--env",
            "A=1",
            "--env",
            "B=two words",
            "img",
        ]

    @pytest.mark.asyncio
    async def test_build_forwards_output_and_exit_code(self, tmp_path, sinks):
        stdout, stderr = sinks
        # The interpreter treats "build" as a script path that does not exist.
        engine = CliContainerEngine(bin=sys.executable, stdout=stdout, stderr=stderr)

        exit_code = await engine.build(str(tmp_path), "img")

        assert exit_code != 0
        assert "build" in stderr.getvalue()

    @pytest.mark.asyncio
    async def test_inspect_failure_returns_none(self):
        engine = CliContainerEngine(bin=sys.executable)
        assert await engine.inspect("missing") is None

    @pytest.mark.asyncio
    async def test_missing_binary(self, tmp_path):
        engine = CliContainerEngine(bin="/nonexistent/docker")
        with pytest.raises(SpawnError):
            await engine.build(str(tmp_path), "img")
