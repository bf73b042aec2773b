"""
Price Feed Updater - Block-driven oracle update module

This module pushes an off-chain price to an on-chain oracle:
- UpdateState: Loop state and the scoped transaction slot
- UpdateGate: Per-block decision (skip or attempt)
- TransactionPipeline: Gas estimation, submission and confirmation
- Scheduler: Bootstrap, block subscription and shutdown
- LedgerClient / Web3LedgerClient: Ledger access
- BlockNotifier: Polling block notifications
- fetchers: HTTP price sources
"""

from .BlockNotifier import BlockNotifier
from .LedgerClient import (
    EstimationFailed,
    LedgerClient,
    LedgerError,
    OracleReading,
    Receipt,
    ReceiptStatus,
    SubmissionFailed,
)
from .Scheduler import BootstrapFailed, Scheduler
from .TransactionPipeline import (
    PRICE_DECIMALS,
    Confirmed,
    Failed,
    TransactionPipeline,
    to_fixed_point,
)
from .UpdateGate import Attempt, Skip, SkipReason, UpdateGate
from .UpdateState import TransactionInProgressError, UpdateState

__all__ = [
    "Attempt",
    "BlockNotifier",
    "BootstrapFailed",
    "Confirmed",
    "EstimationFailed",
    "Failed",
    "LedgerClient",
    "LedgerError",
    "OracleReading",
    "PRICE_DECIMALS",
    "Receipt",
    "ReceiptStatus",
    "Scheduler",
    "Skip",
    "SkipReason",
    "SubmissionFailed",
    "TransactionInProgressError",
    "TransactionPipeline",
    "UpdateGate",
    "UpdateState",
    "to_fixed_point",
]
