"""OracleInstruction: Binary layout of the oracle "update price" instruction.

The oracle program reads a fixed little-endian layout:

    [instruction: u8][price: i64 (x1e8)][confidence: u64 (x1e4)][status: u32]

Field order, widths and scaling factors must match the consuming program
exactly.

.. code-block:: python

    >>> data = encode_update(101.5, 0.25, PriceStatus.VALID)
    >>> len(data)
    21
    >>> decode_update(data)
    UpdateInstruction(price=10150000000, confidence=2500, status=1)
"""

from __future__ import annotations

import struct
from dataclasses import dataclass
from enum import IntEnum

# Discriminator of the "update price" instruction.
UPDATE_INSTRUCTION = 0

PRICE_SCALE = 100_000_000
CONFIDENCE_SCALE = 10_000

_UPDATE_LAYOUT = struct.Struct("<BqQI")


class InvalidInstruction(ValueError):
    """Raised when an instruction buffer cannot be decoded."""


class PriceStatus(IntEnum):
    """Status flag stored alongside the price in the oracle account."""

    INVALID = 0
    VALID = 1


@dataclass(frozen=True)
class UpdateInstruction:
    """Decoded update instruction with raw on-chain integer values.

    :ivar price: Price scaled by 1e8.
    :ivar confidence: Confidence scaled by 1e4.
    :ivar status: Raw status value.
    """

    price: int
    confidence: int
    status: int

    @property
    def price_value(self) -> float:
        return self.price / PRICE_SCALE

    @property
    def confidence_value(self) -> float:
        return self.confidence / CONFIDENCE_SCALE


def encode_update(price: float, confidence: float, status: int) -> bytes:
    """Encode an update instruction.

    :param price: Price in quote units (may be zero or negative).
    :param confidence: Confidence interval in quote units.
    :param status: Price status (see :class:`PriceStatus`).
    :returns: 21-byte instruction data.
    :raises ValueError: If a scaled value does not fit its field.
    """
    try:
        return _UPDATE_LAYOUT.pack(
            UPDATE_INSTRUCTION,
            round(price * PRICE_SCALE),
            round(confidence * CONFIDENCE_SCALE),
            int(status),
        )
    except struct.error as e:
        raise ValueError(
            f"Cannot encode update (price={price}, confidence={confidence}, "
            f"status={status}): {e}"
        ) from e


def decode_update(data: bytes) -> UpdateInstruction:
    """Decode an update instruction.

    Trailing bytes after the status field are ignored, as the program does.

    :param data: Instruction data.
    :returns: Decoded instruction.
    :raises InvalidInstruction: If the buffer is empty, too short or carries
        an unknown discriminator.
    """
    if not data:
        raise InvalidInstruction("Empty instruction data")
    if data[0] != UPDATE_INSTRUCTION:
        raise InvalidInstruction(f"Unknown instruction discriminator {data[0]}")
    if len(data) < _UPDATE_LAYOUT.size:
        raise InvalidInstruction(
            f"Instruction data too short: {len(data)} < {_UPDATE_LAYOUT.size} bytes"
        )

    _, price, confidence, status = _UPDATE_LAYOUT.unpack_from(data)
    return UpdateInstruction(price=price, confidence=confidence, status=status)
