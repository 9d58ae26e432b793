"""
Container Worker

Builds an image from the handler's directory on top of the Lambda base image,
runs it once and forwards every invocation to the Runtime Interface Emulator
inside the container.
"""

import asyncio
import itertools
import json
import logging
import os
import random
import shutil
import sys
import tempfile
import time
from typing import Any, Dict, Iterator, Mapping, Optional, TextIO

import httpx

from fakelambda.common.core.http_client import HttpClientFactory

from ..config import WorkerConfig, config as default_config
from ..core.exceptions import BootstrapError, TransportError, UnsupportedRuntimeError
from ..core.runtimes import NODEJS, base_image_tag, runtime_family
from ..models.container import ContainerInstance
from .container_engine import CliContainerEngine, ContainerEngine

logger = logging.getLogger("worker.container_worker")

INVOCATION_PATH = "/2015-03-31/functions/function/invocations"

# Shared by every worker in the process. Seeded at random on first use so concurrent
# test runs rarely hand out the same ports.
_port_counter: Optional[Iterator[int]] = None


def next_port(config: WorkerConfig = default_config) -> int:
    """Next host port to publish. The range comes from the first config that asks."""
    global _port_counter
    if _port_counter is None:
        start = config.PORT_RANGE_START + random.random() * config.PORT_RANGE_SPAN
        _port_counter = itertools.count(int(start))
    return next(_port_counter)


def create_dockerfile(base_image: str, handler: str) -> str:
    return f"""
FROM {base_image}

# Copy function code
COPY * ${{LAMBDA_TASK_ROOT}}/

# Set the CMD to your handler
CMD [ "{handler}" ]
"""


class ContainerWorker:
    """
    One long-lived container per handler definition.

    - start() / ready: copy, build, run and wait for the container (once)
    - request(): POST the event to the emulator, retrying transport failures
    - close(): kill the container
    """

    def __init__(
        self,
        entry: str,
        env: Optional[Mapping[str, str]] = None,
        handler: str = "handler",
        runtime: str = "nodejs:12.x",
        bin: Optional[str] = None,
        path: Optional[str] = None,
        id: Optional[str] = None,
        port: Optional[int] = None,
        tmp: Optional[str] = None,
        stdout: Optional[TextIO] = None,
        stderr: Optional[TextIO] = None,
        engine: Optional[ContainerEngine] = None,
        client: Optional[httpx.AsyncClient] = None,
        config: Optional[WorkerConfig] = None,
    ):
        if runtime_family(runtime) != NODEJS:
            raise UnsupportedRuntimeError(runtime, f"{NODEJS}*")

        self.config = config or default_config
        self.bin = bin or self.config.CONTAINER_ENGINE
        self.path = path
        self.entry = entry
        self.env: Dict[str, str] = dict(env or {})
        self.handler = handler or "handler"
        self.runtime = runtime
        self.id = id or f"docker_{int(time.time() * 1000)}"
        self.tmp = tmp or os.path.join(tempfile.gettempdir(), self.id)
        self.port = port if port is not None else next_port(self.config)
        self.stdout = stdout or sys.stdout
        self.stderr = stderr or sys.stderr
        self.engine: ContainerEngine = engine or CliContainerEngine(
            self.bin, stdout=self.stdout, stderr=self.stderr
        )

        self._owns_client = client is None
        self.client = client or HttpClientFactory(self.config).create_async_client(
            timeout=self.config.INVOKE_TIMEOUT
        )

        self.instance: Optional[ContainerInstance] = None
        self.closed = False
        self._bootstrap: Optional[asyncio.Task] = None

    @property
    def base_url(self) -> str:
        return f"http://{self.config.CONTAINER_HOST}:{self.port}"

    @property
    def invocation_url(self) -> str:
        return f"{self.base_url}{INVOCATION_PATH}"

    @property
    def ready(self) -> asyncio.Task:
        return self.start()

    def start(self) -> asyncio.Task:
        """Schedule the bootstrap on first use and return its task."""
        if self._bootstrap is None:
            self._bootstrap = asyncio.create_task(self._run_bootstrap())
        return self._bootstrap

    def handler_entrypoint(self) -> str:
        """`<module basename>.<handler>` as the Lambda base image expects it."""
        module = os.path.splitext(os.path.basename(self.entry))[0]
        return f"{module}.{self.handler}"

    async def _run_bootstrap(self) -> None:
        source_dir = os.path.dirname(os.path.abspath(self.entry))
        await asyncio.to_thread(shutil.copytree, source_dir, self.tmp, dirs_exist_ok=True)
        base_image = f"{self.config.BASE_IMAGE_REPO}/{base_image_tag(self.runtime)}"
        dockerfile = create_dockerfile(base_image, self.handler_entrypoint())
        await asyncio.to_thread(self._write_dockerfile, dockerfile)

        exit_code = await self.engine.build(self.tmp, self.id)
        if exit_code:
            logger.error(f"Image build failed for {self.id} (exit code {exit_code})")
            raise BootstrapError(self.id, exit_code)

        if self.closed:
            logger.info(f"Worker {self.id} closed during build; not starting a container")
            return

        name = f"name_{int(time.time() * 1000)}"
        self.instance = ContainerInstance(image_id=self.id, container_name=name, host_port=self.port)
        await self.engine.run(
            image=self.id,
            name=name,
            ports={self.port: self.config.LAMBDA_PORT},
            env=self.env,
        )

        await self._wait_for_readiness()

    def _write_dockerfile(self, content: str) -> None:
        with open(os.path.join(self.tmp, "Dockerfile"), "w", encoding="utf-8") as f:
            f.write(content)

    async def _wait_for_readiness(self) -> None:
        """
        Poll the published port until anything answers.

        Running out of budget is not an error: the first invocation then relies
        on its own retries.
        """
        assert self.instance is not None
        deadline = time.monotonic() + self.config.READINESS_TIMEOUT
        while time.monotonic() < deadline:
            if self.closed:
                return
            try:
                await self.client.get(self.base_url)
            except httpx.TransportError:
                await asyncio.sleep(self.config.READINESS_POLL_INTERVAL)
                continue
            await asyncio.sleep(self.config.READINESS_SETTLE_DELAY)
            self.instance.ready = True
            logger.info(f"Container {self.instance.container_name} ready on port {self.port}")
            return

        state = await self.engine.inspect(self.instance.container_name)
        status = (state or {}).get("State", {}).get("Status", "unknown")
        logger.warning(
            f"Container {self.instance.container_name} did not become ready in "
            f"{self.config.READINESS_TIMEOUT}s (status: {status})"
        )

    async def request(self, request_id: str, event_object: Any) -> Any:
        """
        Invoke the handler through the emulator.

        Returns:
            The decoded JSON response body, not validated

        Raises:
            BootstrapError: The image could not be built
            TransportError: Every attempt failed; chained to the last error
        """
        await self.start()

        payload = json.dumps(event_object)
        last_error: Optional[Exception] = None
        attempts = self.config.INVOKE_MAX_ATTEMPTS
        for attempt in range(1, attempts + 1):
            try:
                response = await self.client.post(
                    self.invocation_url,
                    content=payload,
                    headers={"Content-Type": "application/json"},
                )
                return json.loads(response.text)
            except (httpx.TransportError, ValueError) as e:
                last_error = e
                logger.debug(
                    f"Invocation attempt {attempt}/{attempts} failed",
                    extra={"aws_request_id": request_id, "error_detail": str(e)},
                )
                if attempt < attempts:
                    await asyncio.sleep(self.config.INVOKE_RETRY_BACKOFF)

        logger.error(
            f"Invocation failed for {self.id}",
            extra={
                "aws_request_id": request_id,
                "target_url": self.invocation_url,
                "error_type": type(last_error).__name__,
                "error_detail": str(last_error),
            },
        )
        raise TransportError(self.invocation_url, attempts, last_error) from last_error

    async def close(self) -> None:
        self.closed = True

        if self.instance is not None:
            exit_code = await self.engine.stop(self.instance.container_name)
            if exit_code:
                logger.warning(
                    f"Stopping {self.instance.container_name} exited with code {exit_code}"
                )
            self.instance.ready = False

        if self._owns_client:
            await self.client.aclose()
