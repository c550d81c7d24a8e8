"""Chain executors: submit on-chain operations and await confirmation."""

from txtchain.execution.base import (
    ChainAction,
    ChainExecutor,
    ChainOperation,
    TxReceipt,
)
from txtchain.execution.factory import create_chain_executor

__all__ = [
    "ChainAction",
    "ChainExecutor",
    "ChainOperation",
    "TxReceipt",
    "create_chain_executor",
]
