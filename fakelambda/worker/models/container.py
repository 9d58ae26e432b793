from dataclasses import dataclass


@dataclass
class ContainerInstance:
    """
    The single long-lived container a ContainerWorker serves invocations from.
    """

    image_id: str  # Tag the handler image was built under
    container_name: str  # Name passed to the engine (name_{epoch ms})
    host_port: int  # Host port published to the RIE port
    ready: bool = False  # Whether a readiness probe succeeded
