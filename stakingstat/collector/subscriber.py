"""
ZeroMQ subscription to the node's new-block-hash notifications.
"""

from typing import Optional

import structlog
import zmq
import zmq.asyncio

from stakingstat.core.exceptions import TransportError


logger = structlog.get_logger(__name__)

HASHBLOCK_TOPIC = b"hashblock"


class BlockHashSubscriber:
    """
    SUB socket on the node's zmqpubhashblock endpoint.

    Messages are multipart: [topic, 32-byte block hash, sequence number].
    """

    def __init__(self, endpoint: str, context: Optional[zmq.asyncio.Context] = None):
        self.endpoint = endpoint
        self._context = context
        self._socket: Optional[zmq.asyncio.Socket] = None
        self.logger = logger.bind(service="block_subscriber", endpoint=endpoint)

    def connect(self) -> None:
        try:
            if self._context is None:
                self._context = zmq.asyncio.Context()
            self._socket = self._context.socket(zmq.SUB)
            self._socket.connect(self.endpoint)
            self._socket.setsockopt(zmq.SUBSCRIBE, HASHBLOCK_TOPIC)
        except zmq.ZMQError as e:
            self.logger.error("ZMQ subscription setup failed", error=str(e))
            raise TransportError(
                f"ZMQ subscription to {self.endpoint} failed: {e}",
                {"endpoint": self.endpoint}
            )
        self.logger.info("Subscribed to block notifications", topic=HASHBLOCK_TOPIC.decode())

    async def receive(self) -> bytes:
        """
        Block until the next hashblock notification and return the raw hash.

        Raises:
            TransportError: if the socket is not connected or receiving fails
        """
        if self._socket is None:
            raise TransportError("Subscriber is not connected", {"endpoint": self.endpoint})

        while True:
            try:
                frames = await self._socket.recv_multipart()
            except zmq.ZMQError as e:
                raise TransportError(
                    f"ZMQ receive failed: {e}",
                    {"endpoint": self.endpoint}
                )

            if len(frames) < 2 or frames[0] != HASHBLOCK_TOPIC:
                self.logger.debug("Ignoring notification", frames=len(frames))
                continue
            return frames[1]

    def close(self) -> None:
        if self._socket is not None:
            self._socket.close(linger=0)
            self._socket = None
        if self._context is not None:
            self._context.term()
            self._context = None
