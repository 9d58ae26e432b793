"""
Worker configuration definition.

Loads configuration from environment variables and provides a Pydantic model.
Uses pydantic-settings for type safety and defaults.
"""

import os
import sys
import tempfile

from pydantic import Field
from fakelambda.common.core.config import BaseAppConfig


class WorkerConfig(BaseAppConfig):
    """
    Configuration for the process and container workers.
    """

    # Process worker
    NODE_EXECUTABLE: str = Field(default="node", description="Interpreter for nodejs runtimes")
    PYTHON_EXECUTABLE: str = Field(
        default=sys.executable or "python3", description="Interpreter for python runtimes"
    )
    BOOTSTRAP_DIR: str = Field(
        default=os.path.join(tempfile.gettempdir(), "fake-api-gateway-lambda"),
        description="Shared directory the bootstrap programs are staged into",
    )

    # Container worker
    CONTAINER_ENGINE: str = Field(default="docker", description="Container engine executable")
    CONTAINER_HOST: str = Field(default="localhost", description="Host publishing container ports")
    BASE_IMAGE_REPO: str = Field(
        default="public.ecr.aws/lambda", description="Repository of the Lambda base images"
    )
    PORT_RANGE_START: int = Field(default=9000, description="Lowest host port handed out")
    PORT_RANGE_SPAN: int = Field(
        default=10000, description="Width of the random window the port counter starts in"
    )
    READINESS_POLL_INTERVAL: float = Field(
        default=0.2, description="Interval between readiness probes (seconds)"
    )
    READINESS_SETTLE_DELAY: float = Field(
        default=0.05, description="Pause after the first successful probe (seconds)"
    )
    INVOKE_MAX_ATTEMPTS: int = Field(default=10, ge=1, description="Invocation attempts per request")
    INVOKE_RETRY_BACKOFF: float = Field(
        default=0.1, description="Fixed wait between invocation attempts (seconds)"
    )
    INVOKE_TIMEOUT: float = Field(default=30.0, description="Per-attempt HTTP timeout (seconds)")


# Load config as a singleton.
# pydantic-settings reads environment variables during instantiation.
config = WorkerConfig()
