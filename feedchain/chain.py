import asyncio
import logging
import os
from dataclasses import dataclass
from typing import AsyncIterator, Callable, List, Optional, Tuple

from . import digest as digest_mod
from .block import GENESIS_PREV, Block, meets_difficulty
from .digest import DigestError
from .miner import MiningCancelled, mine_async
from .source import SourceFetchError, as_source
from .tx import chunk, human_transactions
from .utils import now_ms

logger = logging.getLogger(__name__)

DIFFICULTY = int(os.getenv("FEEDCHAIN_DIFFICULTY", "2"))
CHUNK_SIZE = int(os.getenv("FEEDCHAIN_CHUNK_SIZE", "3"))
YIELD_EVERY = int(os.getenv("FEEDCHAIN_YIELD_EVERY", "1000"))
GENESIS_DELAY = float(os.getenv("FEEDCHAIN_GENESIS_DELAY", "0"))
BLOCK_DELAY = float(os.getenv("FEEDCHAIN_BLOCK_DELAY", "0"))

PHASE_INITIALIZING = "initializing"
PHASE_GENESIS = "genesis"
PHASE_FETCHING = "fetching"
PHASE_MINING = "mining"
PHASE_DONE = "done"
PHASE_EMPTY = "empty"
PHASE_ERROR = "error"

STATUS_INITIALIZING = "Initializing chain..."
STATUS_GENESIS = "Creating genesis block..."
STATUS_FETCHING = "Fetching transaction history..."
STATUS_EMPTY = "No user transactions found to build the chain."
STATUS_DONE = "Chain is up to date."


@dataclass
class BuildConfig:
    difficulty: int = DIFFICULTY
    chunk_size: int = CHUNK_SIZE
    yield_every: int = YIELD_EVERY
    digest: str = digest_mod.DEFAULT_DIGEST
    genesis_delay: float = GENESIS_DELAY
    block_delay: float = BLOCK_DELAY

    def validate(self) -> None:
        if self.difficulty < 0 or self.difficulty > digest_mod.HASH_HEX_LEN:
            raise ValueError(f"difficulty must be between 0 and {digest_mod.HASH_HEX_LEN}")
        if self.chunk_size <= 0:
            raise ValueError("chunk_size must be > 0")
        if self.yield_every <= 0:
            raise ValueError("yield_every must be > 0")
        if self.genesis_delay < 0 or self.block_delay < 0:
            raise ValueError("delays must be >= 0")


@dataclass(frozen=True)
class ChainState:
    chain: Tuple[Block, ...]
    phase: str
    status: str
    finished: bool = False
    difficulty: int = DIFFICULTY
    error: Optional[str] = None

    @property
    def length(self) -> int:
        return len(self.chain)

    @property
    def finalized(self) -> Tuple[Block, ...]:
        return tuple(b for b in self.chain if not b.is_mining)

    @property
    def mining_block(self) -> Optional[Block]:
        for b in self.chain:
            if b.is_mining:
                return b
        return None

    def to_dict(self) -> dict:
        return {
            "chain": [b.to_dict() for b in self.chain],
            "length": self.length,
            "phase": self.phase,
            "status": self.status,
            "finished": self.finished,
            "difficulty": self.difficulty,
            "error": self.error,
        }


def processing_status(first: int, last: int) -> str:
    return f"Processing transactions {first} to {last}..."


def mining_status(index: int, difficulty: int) -> str:
    return f"Mining block #{index}... (difficulty: {'0' * difficulty})"


class BuildSession:
    """One run of the explorer chain build.

    A session owns its chain list and can be consumed once, either through
    :meth:`states` or :meth:`run`. Every published :class:`ChainState` is an
    immutable snapshot.
    """

    def __init__(
        self,
        source,
        config: Optional[BuildConfig] = None,
        clock: Optional[Callable[[], int]] = None,
        digest: Optional[digest_mod.Digest] = None,
        on_state: Optional[Callable[[ChainState], None]] = None,
    ) -> None:
        self.source = as_source(source)
        self.config = config or BuildConfig()
        self.config.validate()
        self.clock = clock or now_ms
        self.digest = digest or digest_mod.get_digest(self.config.digest)
        self.on_state = on_state
        self.chain: List[Block] = []
        self.state = ChainState((), PHASE_INITIALIZING, STATUS_INITIALIZING, difficulty=self.config.difficulty)
        self._cancelled = False
        self._started = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        if not self._cancelled:
            logger.info("build cancelled at chain length %d", len(self.chain))
        self._cancelled = True

    def _publish(self, phase: str, status: str, finished: bool = False, error: Optional[str] = None) -> ChainState:
        self.state = ChainState(
            chain=tuple(self.chain),
            phase=phase,
            status=status,
            finished=finished,
            difficulty=self.config.difficulty,
            error=error,
        )
        if self.on_state:
            self.on_state(self.state)
        return self.state

    def _fail(self, exc: Exception) -> ChainState:
        logger.error("build failed: %s", exc)
        return self._publish(PHASE_ERROR, f"Error: {exc}", finished=True, error=str(exc))

    async def _fetch(self) -> list:
        fetch = self.source.fetch
        try:
            if asyncio.iscoroutinefunction(fetch):
                return list(await fetch())
            loop = asyncio.get_running_loop()
            return list(await loop.run_in_executor(None, fetch))
        except SourceFetchError:
            raise
        except Exception as exc:
            raise SourceFetchError(str(exc)) from exc

    async def states(self) -> AsyncIterator[ChainState]:
        if self._started:
            raise RuntimeError("build session already used")
        self._started = True
        difficulty = self.config.difficulty

        try:
            genesis = Block.genesis(self.clock(), self.digest)
        except DigestError as exc:
            yield self._fail(exc)
            return
        self.chain.append(genesis)
        yield self._publish(PHASE_GENESIS, STATUS_GENESIS)
        if self.config.genesis_delay:
            await asyncio.sleep(self.config.genesis_delay)
        if self._cancelled:
            return

        yield self._publish(PHASE_FETCHING, STATUS_FETCHING)
        if self._cancelled:
            return
        try:
            txs = await self._fetch()
        except SourceFetchError as exc:
            yield self._fail(exc)
            return
        if self._cancelled:
            return

        txs = human_transactions(txs)
        if not txs:
            logger.info("no human-authored transactions; chain stops at genesis")
            yield self._publish(PHASE_EMPTY, STATUS_EMPTY, finished=True)
            return

        size = self.config.chunk_size
        previous_hash = genesis.hash
        for i, txs_chunk in enumerate(chunk(txs, size)):
            index = i + 1
            yield self._publish(PHASE_MINING, processing_status(i * size + 1, min((i + 1) * size, len(txs))))
            if self._cancelled:
                return
            candidate = Block.build(index, previous_hash, txs_chunk, self.clock())
            self.chain.append(candidate.pending())
            yield self._publish(PHASE_MINING, mining_status(index, difficulty))
            if self._cancelled:
                return

            try:
                nonce, block_hash = await mine_async(
                    candidate,
                    difficulty,
                    self.digest,
                    self.config.yield_every,
                    should_stop=lambda: self._cancelled,
                )
            except MiningCancelled:
                self.chain.pop()
                return
            except DigestError as exc:
                self.chain.pop()
                yield self._fail(exc)
                return
            if self._cancelled:
                return

            self.chain[-1] = candidate.finalize(nonce, block_hash)
            previous_hash = block_hash
            yield self._publish(PHASE_MINING, f"Block #{index} mined (nonce {nonce}).")
            if self.config.block_delay:
                await asyncio.sleep(self.config.block_delay)
            if self._cancelled:
                return

        yield self._publish(PHASE_DONE, STATUS_DONE, finished=True)

    async def run(self) -> ChainState:
        stream = self.states()
        try:
            async for _ in stream:
                if self._cancelled:
                    break
        finally:
            await stream.aclose()
        return self.state


def build_chain(source, config: Optional[BuildConfig] = None, **kwargs) -> AsyncIterator[ChainState]:
    """Start a fresh build and return its stream of chain states."""
    return BuildSession(source, config, **kwargs).states()


def run_build(source, config: Optional[BuildConfig] = None, **kwargs) -> ChainState:
    return asyncio.run(BuildSession(source, config, **kwargs).run())


def verify_chain(
    chain,
    difficulty: int = DIFFICULTY,
    digest: Optional[digest_mod.Digest] = None,
) -> List[str]:
    """Check a finished chain and return a list of problems (empty when valid)."""
    digest = digest or digest_mod.get_digest()
    problems: List[str] = []
    if not chain:
        return ["chain is empty"]
    genesis = chain[0]
    if genesis.index != 0:
        problems.append("genesis index must be 0")
    if genesis.transactions:
        problems.append("genesis must not carry transactions")
    if genesis.previous_hash != GENESIS_PREV:
        problems.append("genesis previous hash must be the zero sentinel")
    for i, block in enumerate(chain):
        if block.is_mining:
            problems.append(f"block {i} is still mining")
            continue
        if block.index != i:
            problems.append(f"block {i} has index {block.index}")
        try:
            expected = block.compute_hash(digest)
        except DigestError as exc:
            problems.append(f"block {i} could not be hashed: {exc}")
            continue
        if expected != block.hash:
            problems.append(f"block {i} hash mismatch")
        if i == 0:
            continue
        if block.previous_hash != chain[i - 1].hash:
            problems.append(f"block {i} does not link to block {i - 1}")
        if not meets_difficulty(block.hash, difficulty):
            problems.append(f"block {i} does not meet difficulty {difficulty}")
    return problems
