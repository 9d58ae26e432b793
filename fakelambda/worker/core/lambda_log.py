"""
Lambda-style log framing for a single invocation.

Mirrors the lines the Lambda platform writes around an invocation so test
output reads like CloudWatch:

    START\tRequestId:1\tVersion:$LATEST
    2024-01-01T00:00:00.000Z 1 INFO hello
    END\tRequestId: 1
    REPORT\tRequestId: 1\tInitDuration: 0 ms\tDuration: 12 ms\t...
"""

import json
import time
from datetime import datetime, timezone
from typing import Any, Dict, Optional, TextIO

BYTES_PER_MB = 1024 * 1024


def iso_timestamp(epoch: Optional[float] = None) -> str:
    """UTC timestamp with millisecond precision and a trailing Z."""
    moment = datetime.fromtimestamp(time.time() if epoch is None else epoch, tz=timezone.utc)
    return moment.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def build_lambda_error(error_string: str) -> Dict[str, Any]:
    """Platform-style error payload for a handler that crashed."""
    return {
        "errorType": "Error",
        "errorMessage": "Error",
        "stack": error_string.split("\n"),
    }


class InvocationLog:
    """
    Log context of one invocation.

    Each request() owns its own instance, so interleaved output of concurrent
    invocations is always attributed to the right id.
    """

    def __init__(self, request_id: str, stdout: TextIO, stderr: TextIO):
        self.request_id = request_id
        self.stdout = stdout
        self.stderr = stderr
        self.started_at = time.time()
        self._started_monotonic = time.monotonic()

    def elapsed_ms(self) -> float:
        return (time.monotonic() - self._started_monotonic) * 1000

    def start(self) -> None:
        self.started_at = time.time()
        self._started_monotonic = time.monotonic()
        self.stdout.write(f"START\tRequestId:{self.request_id}\tVersion:$LATEST\n")

    def log_line(self, output: TextIO, fragment: str, level: str) -> None:
        """Forward a fragment of handler output with a `timestamp id LEVEL` prefix."""
        if not fragment.strip("\n"):
            return
        output.write(f"{iso_timestamp()} {self.request_id} {level} {fragment}")

    def info(self, fragment: str) -> None:
        self.log_line(self.stdout, fragment, "INFO")

    def err(self, fragment: str) -> None:
        self.log_line(self.stderr, fragment, "ERR")

    def report(self, memory_bytes: float, duration_ms: Optional[float] = None) -> None:
        """Write the END and REPORT lines for a completed invocation."""
        duration = self.elapsed_ms() if duration_ms is None else duration_ms
        self.stdout.write(
            f"END\tRequestId: {self.request_id}\n"
            f"REPORT\tRequestId: {self.request_id}\t"
            "InitDuration: 0 ms\t"
            f"Duration: {int(duration)} ms\t"
            f"BilledDuration: {round(duration)} ms\t"
            f"Memory Size: NaN MB MaxMemoryUsed {round(memory_bytes / BYTES_PER_MB)} MB\n"
        )

    def error(self, lambda_error: Dict[str, Any]) -> None:
        """Write the ERROR line for a crashed invocation, stamped with its start time."""
        payload = json.dumps(lambda_error, separators=(",", ":"))
        self.stdout.write(f"{iso_timestamp(self.started_at)}\tundefined\tERROR\t{payload}\n")
