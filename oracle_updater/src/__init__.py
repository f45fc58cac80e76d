"""
Oracle Updater - On-chain price publishing module

This module pushes an off-chain price to an on-chain oracle contract:
- OracleInstruction: Fixed binary layout of the update instruction
- UpdatePolicy: When to publish and when to disable a stale oracle
- TransactionSender: Broadcast/rebroadcast/confirm delivery of one transaction
- OracleUpdater: Main orchestrator for the observation loop
- fetchers: Modular venue quote fetchers
"""

from .BroadcastChannel import BroadcastChannel
from .ObservationSource import ObservationSource, VenueObservationSource
from .OracleConfig import ConfigError, OracleConfig
from .OracleInstruction import (
    InvalidInstruction,
    PriceStatus,
    UpdateInstruction,
    decode_update,
    encode_update,
)
from .OracleUpdater import OracleUpdater, UpdaterStatus
from .TransactionSender import DeliveryResult, TransactionSender
from .UpdatePolicy import OracleState, PriceObservation, PublishDecision, UpdatePolicy

__all__ = [
    "BroadcastChannel",
    "ConfigError",
    "DeliveryResult",
    "InvalidInstruction",
    "ObservationSource",
    "OracleConfig",
    "OracleState",
    "OracleUpdater",
    "PriceObservation",
    "PriceStatus",
    "PublishDecision",
    "TransactionSender",
    "UpdateInstruction",
    "UpdatePolicy",
    "UpdaterStatus",
    "VenueObservationSource",
    "decode_update",
    "encode_update",
]
