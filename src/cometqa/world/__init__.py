"""Systems under test: an in-memory market and a JSON-RPC snapshot primitive."""

from cometqa.world.rpc import JsonRpcClient, JsonRpcRestorer, JsonRpcSnapshotter
from cometqa.world.simulated import (
    ACTORS,
    COMET,
    PAUSE_FLAGS,
    LedgerState,
    SimulatedChain,
    SimulatedCometContext,
    SimulatedRestorer,
)
from cometqa.world.snapshot import ForkingWorld, SnapshotWorld

__all__ = [
    "ACTORS",
    "COMET",
    "ForkingWorld",
    "JsonRpcClient",
    "JsonRpcRestorer",
    "JsonRpcSnapshotter",
    "LedgerState",
    "PAUSE_FLAGS",
    "SimulatedChain",
    "SimulatedCometContext",
    "SimulatedRestorer",
    "SnapshotWorld",
]
