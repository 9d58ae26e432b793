"""
Process Worker

Runs every invocation in a fresh interpreter process. The bootstrap program
loads the handler, reads the event from stdin and prints the result between
sentinels on stdout; everything else the handler prints is forwarded as
Lambda-style log lines.
"""

import asyncio
import codecs
import logging
import sys
from typing import Any, Dict, List, Mapping, Optional, Set, TextIO

from fakelambda.common.core import request_context

from ..config import WorkerConfig, config as default_config
from ..core.bootstrap import ensure_bootstrap_staged
from ..core.exceptions import (
    MessageParseError,
    ProcessExitError,
    ResultValidationError,
    SpawnError,
    UnsupportedRuntimeError,
)
from ..core.lambda_log import InvocationLog, build_lambda_error
from ..core.runtimes import FAMILIES, NODEJS, runtime_family
from ..core.stream_parser import StreamMessageParser
from ..models.protocol import EventMessage, ResultMessage, parse_protocol_message
from ..models.result import validate_result

logger = logging.getLogger("worker.process_worker")

CHUNK_SIZE = 8192


class ProcessWorker:
    """
    One OS process per invocation.

    - request(): spawn, send the event, settle on the result message or on exit
    - close(): kill every process still running
    """

    def __init__(
        self,
        entry: str,
        handler: str = "handler",
        env: Optional[Mapping[str, str]] = None,
        runtime: str = "python3.9",
        stdout: Optional[TextIO] = None,
        stderr: Optional[TextIO] = None,
        config: Optional[WorkerConfig] = None,
    ):
        family = runtime_family(runtime)
        if family is None:
            raise UnsupportedRuntimeError(runtime, ", ".join(f"{f}*" for f in FAMILIES))

        self.config = config or default_config
        self.entry = entry
        self.handler = handler or "handler"
        self.env: Optional[Dict[str, str]] = dict(env) if env is not None else None
        self.runtime = runtime
        self.family = family
        self.stdout = stdout or sys.stdout
        self.stderr = stderr or sys.stderr

        self.bootstrap = ensure_bootstrap_staged(self.config.BOOTSTRAP_DIR)

        # Processes spawned by this worker that have not been reaped yet.
        self.procs: Set[asyncio.subprocess.Process] = set()
        self._supervisors: Set[asyncio.Task] = set()

    def command(self) -> List[str]:
        """Command line that runs the bootstrap program for this handler."""
        if self.family == NODEJS:
            interpreter = self.config.NODE_EXECUTABLE
        else:
            interpreter = self.config.PYTHON_EXECUTABLE
        return [interpreter, str(self.bootstrap.for_family(self.family)), self.entry, self.handler]

    async def request(self, request_id: str, event_object: Any) -> Dict[str, Any]:
        """
        Invoke the handler once.

        Returns:
            The handler's ResultEnvelope, exactly as the handler produced it

        Raises:
            SpawnError: The interpreter could not be started
            MessageParseError: The embedded message was not valid JSON
            ResultValidationError: The message was not a well-formed result
            ProcessExitError: The process exited before producing a result
            PydanticSerializationError: The event cannot be encoded as JSON
        """
        line = EventMessage(id=request_id, eventObject=event_object).model_dump_json() + "\n"

        invocation = InvocationLog(request_id, self.stdout, self.stderr)
        token = request_context.set_request_id(request_id)
        try:
            invocation.start()
            proc = await self._spawn()
            self.procs.add(proc)

            outcome: asyncio.Future = asyncio.get_running_loop().create_future()
            supervisor = asyncio.create_task(self._supervise(proc, invocation, outcome))
            self._supervisors.add(supervisor)
            supervisor.add_done_callback(self._supervisors.discard)

            await self._send_event(proc, line)
            try:
                return await outcome
            except asyncio.CancelledError:
                self._kill(proc)
                raise
        finally:
            request_context.reset_request_id(token)

    async def close(self) -> None:
        """Force-kill every tracked process. Meant for tearing down the whole handler."""
        if self.procs:
            logger.info(f"Killing {len(self.procs)} process(es) for {self.entry}")
        for proc in list(self.procs):
            self._kill(proc)
        self.procs.clear()

    async def _spawn(self) -> asyncio.subprocess.Process:
        command = self.command()
        logger.debug("Spawning %s", " ".join(command))
        try:
            return await asyncio.create_subprocess_exec(
                *command,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                env=self.env,
            )
        except OSError as e:
            logger.error(f"Failed to spawn {command[0]}: {e}")
            raise SpawnError(command[0], e) from e

    async def _send_event(self, proc: asyncio.subprocess.Process, line: str) -> None:
        assert proc.stdin is not None
        try:
            proc.stdin.write(line.encode("utf-8"))
            await proc.stdin.drain()
        except (BrokenPipeError, ConnectionResetError) as e:
            # The child is already gone; its exit settles the invocation.
            logger.debug(f"Child exited before reading the event: {e}")
        finally:
            proc.stdin.close()

    async def _supervise(
        self,
        proc: asyncio.subprocess.Process,
        invocation: InvocationLog,
        outcome: asyncio.Future,
    ) -> None:
        """Pump the child's output and settle the outcome exactly once."""
        error_string = ""

        def on_message(raw: Any) -> None:
            if outcome.done():
                return
            try:
                result = self._handle_message(raw, invocation)
            except ResultValidationError as e:
                logger.error(f"Rejected message from child process: {e.detail}")
                outcome.set_exception(e)
            else:
                outcome.set_result(result)
            self._kill(proc)

        parser = StreamMessageParser(on_log=invocation.info, on_message=on_message)

        async def pump_stdout() -> None:
            assert proc.stdout is not None
            try:
                while True:
                    chunk = await proc.stdout.read(CHUNK_SIZE)
                    if not chunk:
                        break
                    parser.feed(chunk)
                parser.feed_eof()
            except MessageParseError as e:
                logger.error(f"Malformed message from child process: {e}")
                if not outcome.done():
                    outcome.set_exception(e)
                self._kill(proc)

        async def pump_stderr() -> None:
            assert proc.stderr is not None
            decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")

            def forward(text: str) -> None:
                nonlocal error_string
                if not text:
                    return
                if not error_string:
                    error_string = text
                invocation.err(text)

            while True:
                chunk = await proc.stderr.read(CHUNK_SIZE)
                if not chunk:
                    break
                forward(decoder.decode(chunk))
            forward(decoder.decode(b"", final=True))

        try:
            await asyncio.gather(pump_stdout(), pump_stderr())
            exit_code = await proc.wait()
        except Exception as e:
            logger.error(f"Lost track of child process {proc.pid}: {e}", exc_info=True)
            if not outcome.done():
                outcome.set_exception(e)
            return
        finally:
            self.procs.discard(proc)

        if outcome.done():
            return

        if exit_code != 0:
            lambda_error = build_lambda_error(error_string)
            invocation.error(lambda_error)
            outcome.set_exception(ProcessExitError(exit_code, error_string, lambda_error))
        else:
            logger.warning(f"Process {proc.pid} exited without producing a result")
            outcome.set_exception(ProcessExitError(exit_code, error_string))

    def _handle_message(self, raw: Any, invocation: InvocationLog) -> Dict[str, Any]:
        message = parse_protocol_message(raw)
        if not isinstance(message, ResultMessage):
            raise ResultValidationError(
                f"incorrect type field from child process: {message.message}", raw
            )

        validation = validate_result(message.result)
        if not validation.ok:
            raise ResultValidationError(validation.error or "invalid result", raw)

        invocation.report(message.memory)
        return message.result

    @staticmethod
    def _kill(proc: asyncio.subprocess.Process) -> None:
        if proc.returncode is not None:
            return
        try:
            proc.kill()
        except ProcessLookupError:
            pass
