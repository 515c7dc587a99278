"""
Transaction confirmation polling

After a transaction is submitted its receipt is requested once per poll
interval until it appears or the synchronization timeout elapses.

Design Notes:
- States: SUBMITTED -> PENDING -> CONFIRMED | TIMED_OUT, any -> FAILED
- Client errors are not retried; they move the transaction to FAILED and
  propagate unchanged
- An error from send_transaction itself propagates from submit_transaction
  before any PendingTransaction exists, so there is no FAILED object to
  inspect in that case
- A timeout of 0 waits indefinitely
"""

import asyncio
import logging
import time
from enum import Enum
from typing import Any, Callable, Dict, Optional

from .exceptions import TransactionTimeoutError

LOG = logging.getLogger(__name__)

DEFAULT_SYNCHRONIZATION_TIMEOUT = 240.0
DEFAULT_POLL_INTERVAL = 1.0


class TransactionState(Enum):
    SUBMITTED = "submitted"
    PENDING = "pending"
    CONFIRMED = "confirmed"
    TIMED_OUT = "timed-out"
    FAILED = "failed"


class PendingTransaction:
    """
    Tracks one submitted transaction until its receipt appears.

    The client only needs an async get_transaction_receipt(tx_hash) that
    returns None while the transaction is unmined.
    """

    def __init__(
        self,
        client: Any,
        tx_hash: str,
        timeout: float = DEFAULT_SYNCHRONIZATION_TIMEOUT,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        clock: Callable[[], float] = time.monotonic
    ):
        self.client = client
        self.tx_hash = tx_hash
        self.timeout = timeout
        self.poll_interval = poll_interval
        self.state = TransactionState.SUBMITTED
        self.receipt: Optional[Dict[str, Any]] = None
        self.attempts = 0
        self.error: Optional[BaseException] = None
        self._clock = clock

    @property
    def done(self) -> bool:
        return self.state in (
            TransactionState.CONFIRMED,
            TransactionState.TIMED_OUT,
            TransactionState.FAILED,
        )

    async def wait(self) -> Dict[str, Any]:
        """
        Poll until the receipt is available.

        Returns:
            The transaction receipt

        Raises:
            TransactionTimeoutError: No receipt within the timeout
            Exception: Any client error, unchanged
        """
        if self.state is TransactionState.CONFIRMED:
            return self.receipt

        start = self._clock()
        LOG.info(f"Waiting for transaction receipt: {self.tx_hash}")

        while True:
            self.attempts += 1
            try:
                receipt = await self.client.get_transaction_receipt(self.tx_hash)
            except Exception as e:
                self.state = TransactionState.FAILED
                self.error = e
                LOG.error(f"Receipt lookup for {self.tx_hash} failed: {e}")
                raise

            if receipt is not None:
                self.state = TransactionState.CONFIRMED
                self.receipt = receipt
                LOG.info(f"Transaction {self.tx_hash} confirmed in block "
                         f"{receipt.get('blockNumber')} after {self.attempts} attempts")
                return receipt

            self.state = TransactionState.PENDING

            if self.timeout > 0 and self._clock() - start > self.timeout:
                self.state = TransactionState.TIMED_OUT
                seconds = f"{self.timeout:g}"
                self.error = TransactionTimeoutError(
                    f"Transaction {self.tx_hash} wasn't processed in {seconds} seconds!",
                    tx_hash=self.tx_hash,
                    timeout=self.timeout,
                )
                LOG.error(self.error.message)
                raise self.error

            await asyncio.sleep(self.poll_interval)


async def wait_for_receipt(
    client: Any,
    tx_hash: str,
    timeout: float = DEFAULT_SYNCHRONIZATION_TIMEOUT,
    poll_interval: float = DEFAULT_POLL_INTERVAL
) -> Dict[str, Any]:
    """Convenience wrapper around PendingTransaction.wait()"""
    return await PendingTransaction(client, tx_hash, timeout, poll_interval).wait()


async def submit_transaction(
    client: Any,
    tx: Dict[str, Any],
    timeout: float = DEFAULT_SYNCHRONIZATION_TIMEOUT,
    poll_interval: float = DEFAULT_POLL_INTERVAL
) -> PendingTransaction:
    """Send tx through the client and return its PendingTransaction"""
    tx_hash = await client.send_transaction(tx)
    LOG.info(f"Submitted transaction {tx_hash}")
    return PendingTransaction(client, tx_hash, timeout, poll_interval)
