import asyncio
import logging
from typing import Callable, Optional, Tuple

from . import digest as digest_mod
from .block import Block, meets_difficulty, payload_prefix

logger = logging.getLogger(__name__)

YIELD_EVERY = 1000
MAX_DIFFICULTY = digest_mod.HASH_HEX_LEN


class MiningCancelled(Exception):
    pass


def _check_difficulty(difficulty: int) -> None:
    if difficulty < 0 or difficulty > MAX_DIFFICULTY:
        raise ValueError(f"difficulty must be between 0 and {MAX_DIFFICULTY}")


def mine(
    block: Block,
    difficulty: int,
    digest: Optional[digest_mod.Digest] = None,
) -> Tuple[int, str]:
    """Return the smallest nonce (and its hash) whose hash has ``difficulty``
    leading hex zeros. Only index, previous hash, timestamp and transactions
    of ``block`` are used.
    """
    _check_difficulty(difficulty)
    digest = digest or digest_mod.get_digest()
    prefix = payload_prefix(block.index, block.previous_hash, block.timestamp, block.transactions)
    nonce = 0
    while True:
        h = digest_mod.compute(digest, f"{prefix}{nonce}")
        if meets_difficulty(h, difficulty):
            return nonce, h
        nonce += 1


async def mine_async(
    block: Block,
    difficulty: int,
    digest: Optional[digest_mod.Digest] = None,
    yield_every: int = YIELD_EVERY,
    should_stop: Optional[Callable[[], bool]] = None,
) -> Tuple[int, str]:
    """Same search as :func:`mine`, handing control back to the event loop
    every ``yield_every`` attempts. ``should_stop`` is polled at those points
    and raises :class:`MiningCancelled` once it returns True.
    """
    _check_difficulty(difficulty)
    if yield_every <= 0:
        raise ValueError("yield_every must be > 0")
    digest = digest or digest_mod.get_digest()
    prefix = payload_prefix(block.index, block.previous_hash, block.timestamp, block.transactions)
    nonce = 0
    while True:
        h = digest_mod.compute(digest, f"{prefix}{nonce}")
        if meets_difficulty(h, difficulty):
            logger.debug("block %d mined: nonce=%d hash=%s", block.index, nonce, h)
            return nonce, h
        nonce += 1
        if nonce % yield_every == 0:
            await asyncio.sleep(0)
            if should_stop and should_stop():
                raise MiningCancelled(f"mining of block {block.index} cancelled at nonce {nonce}")
