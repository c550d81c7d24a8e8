"""Per-address locks for transaction submission.

Nonce lookup, signing and broadcast for one sending address never
interleave. The lock covers submission only; confirmation waits run
outside it.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Optional

logger = logging.getLogger(__name__)

# Global lock registry: lowercase address -> asyncio.Lock
_address_locks: dict[str, asyncio.Lock] = {}


class LockTimeoutError(Exception):
    """Raised when a lock cannot be acquired within the timeout period."""

    pass


def get_address_lock(address: str) -> asyncio.Lock:
    """Get or create the lock for an address.

    No await between lookup and insert.
    """
    key = address.lower()
    lock = _address_locks.get(key)
    if lock is None:
        lock = asyncio.Lock()
        _address_locks[key] = lock
    return lock


@asynccontextmanager
async def address_lock(
    address: str,
    timeout: Optional[float] = 30.0,
    operation: str = "submit",
):
    """Hold exclusive submission rights for an address.

    Args:
        address: Sending address
        timeout: Maximum time to wait for the lock (None = wait forever)
        operation: Description for logging

    Example:
        async with address_lock(account.address, operation="mint"):
            nonce = await get_nonce(account.address)
            ...
    """
    lock = get_address_lock(address)

    try:
        if timeout:
            await asyncio.wait_for(lock.acquire(), timeout=timeout)
        else:
            await lock.acquire()
    except asyncio.TimeoutError:
        logger.warning(f"Lock timeout for {address} after {timeout}s: {operation}")
        raise LockTimeoutError(f"Could not acquire lock for {address} within {timeout}s")

    logger.debug(f"Lock acquired for {address}: {operation}")
    try:
        yield
    finally:
        lock.release()
        logger.debug(f"Lock released for {address}: {operation}")


def clear_address_locks() -> None:
    """Clear all address locks (useful for testing)."""
    _address_locks.clear()
