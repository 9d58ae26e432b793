"""
Container engine abstraction.

ContainerWorker only needs four operations from an engine, so the docker (or
podman/nerdctl) CLI sits behind a narrow protocol that tests can replace.
"""

import asyncio
import json
import logging
import shlex
import sys
from typing import Any, Dict, List, Mapping, Optional, Protocol, Set, TextIO

from ..core.exceptions import SpawnError

logger = logging.getLogger("worker.container_engine")

CHUNK_SIZE = 8192


class ContainerEngine(Protocol):
    async def build(self, context_dir: str, tag: str) -> int: ...

    async def run(
        self, image: str, name: str, ports: Mapping[int, int], env: Mapping[str, str]
    ) -> None: ...

    async def stop(self, name: str) -> int: ...

    async def inspect(self, name: str) -> Optional[Dict[str, Any]]: ...


def build_args(context_dir: str, tag: str) -> List[str]:
    return ["build", context_dir, "-t", tag]


def run_args(
    image: str, name: str, ports: Mapping[int, int], env: Mapping[str, str]
) -> List[str]:
    """
    Arguments for `<engine> run`.

    The image must be the very last argument; anything after it is handed to
    the Lambda entrypoint, which then complains the handler is not first.
    """
    args = ["run"]
    for host_port, container_port in ports.items():
        args.extend(["-p", f"{host_port}:{container_port}"])
    args.extend(["--name", name])
    for key, value in env.items():
        args.extend(["--env", f"{key}={value}"])
    args.append(image)
    return args


class CliContainerEngine:
    """ContainerEngine implementation that shells out to the engine binary."""

    def __init__(
        self,
        bin: str = "docker",
        stdout: Optional[TextIO] = None,
        stderr: Optional[TextIO] = None,
    ):
        self.bin = bin
        self.stdout = stdout or sys.stdout
        self.stderr = stderr or sys.stderr
        self._running: Dict[str, asyncio.subprocess.Process] = {}
        self._pumps: Set[asyncio.Task] = set()

    async def build(self, context_dir: str, tag: str) -> int:
        proc = await self._spawn(build_args(context_dir, tag))
        await self._forward_output(proc)
        return await proc.wait()

    async def run(
        self, image: str, name: str, ports: Mapping[int, int], env: Mapping[str, str]
    ) -> None:
        """Start the container in the foreground; its output keeps streaming to the sinks."""
        proc = await self._spawn(run_args(image, name, ports, env))
        self._running[name] = proc
        task = asyncio.create_task(self._forward_output(proc))
        self._pumps.add(task)
        task.add_done_callback(self._pumps.discard)

    async def stop(self, name: str) -> int:
        proc = await self._spawn(["kill", name])
        await self._forward_output(proc)
        exit_code = await proc.wait()
        running = self._running.pop(name, None)
        if running is not None and exit_code == 0:
            # `run` returns once the killed container is gone.
            await running.wait()
        return exit_code

    async def inspect(self, name: str) -> Optional[Dict[str, Any]]:
        command = [self.bin, "inspect", name]
        try:
            proc = await asyncio.create_subprocess_exec(
                *command,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.DEVNULL,
            )
        except OSError as e:
            raise SpawnError(self.bin, e) from e
        out, _ = await proc.communicate()
        if proc.returncode != 0:
            return None
        try:
            described = json.loads(out.decode("utf-8", errors="replace"))
        except ValueError:
            logger.warning(f"Unreadable inspect output for {name}")
            return None
        if isinstance(described, list):
            return described[0] if described else None
        return described

    async def _spawn(self, args: List[str]) -> asyncio.subprocess.Process:
        command = [self.bin, *args]
        logger.info("> %s", shlex.join(command))
        try:
            return await asyncio.create_subprocess_exec(
                *command,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            logger.error(f"Failed to start {self.bin}: {e}")
            raise SpawnError(self.bin, e) from e

    async def _forward_output(self, proc: asyncio.subprocess.Process) -> None:
        await asyncio.gather(
            self._pipe(proc.stdout, self.stdout),
            self._pipe(proc.stderr, self.stderr),
        )

    @staticmethod
    async def _pipe(source: Optional[asyncio.StreamReader], sink: TextIO) -> None:
        if source is None:
            return
        while True:
            chunk = await source.read(CHUNK_SIZE)
            if not chunk:
                break
            sink.write(chunk.decode("utf-8", errors="replace"))
