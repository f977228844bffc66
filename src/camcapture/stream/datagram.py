"""
Datagram
========

Ephemeral unit received from the datagram transport.

A Datagram lives for exactly one iteration of the receive loop. The
transport guarantees neither ordering nor delivery, so nothing about a
datagram's position in the stream is recorded here.
"""

from dataclasses import dataclass
from typing import Optional, Tuple


@dataclass(frozen=True, slots=True)
class Datagram:
    """
    One received datagram.

    Attributes:
        payload: Payload bytes (possibly empty)
        source: (host, port) of the sender, None when the transport
            dropped an oversized datagram without reporting its sender
        truncated: True if the payload exceeded the receive buffer
    """

    payload: bytes
    source: Optional[Tuple[str, int]]
    truncated: bool = False

    def __len__(self) -> int:
        return len(self.payload)

    @property
    def sender(self) -> str:
        if self.source is None:
            return "unknown"
        return f"{self.source[0]}:{self.source[1]}"

    def __repr__(self) -> str:
        """Compact repr that doesn't dump the payload."""
        return (
            f"Datagram(size={len(self.payload)}, "
            f"source={self.sender}, "
            f"truncated={self.truncated})"
        )
