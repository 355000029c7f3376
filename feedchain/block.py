from dataclasses import dataclass, replace
from typing import Dict, Optional, Tuple

from . import digest as digest_mod
from .tx import Transaction
from .utils import json_dumps, now_ms

GENESIS_PREV = "0" * 64


def serialize_transactions(txs) -> str:
    return json_dumps([tx.to_dict() for tx in txs])


def payload_prefix(index: int, previous_hash: str, timestamp: int, txs) -> str:
    # nonce is appended last, so the prefix is fixed for a whole search
    return f"{index}{previous_hash}{timestamp}{serialize_transactions(txs)}"


def block_payload(index: int, previous_hash: str, timestamp: int, txs, nonce: int) -> str:
    return f"{payload_prefix(index, previous_hash, timestamp, txs)}{nonce}"


def meets_difficulty(block_hash: str, difficulty: int) -> bool:
    return block_hash.startswith("0" * difficulty)


@dataclass(frozen=True)
class Block:
    index: int
    timestamp: int
    transactions: Tuple[Transaction, ...] = ()
    nonce: int = 0
    previous_hash: str = GENESIS_PREV
    hash: str = ""
    is_mining: bool = False

    @property
    def payload(self) -> str:
        return block_payload(
            self.index, self.previous_hash, self.timestamp, self.transactions, self.nonce
        )

    def compute_hash(self, digest: Optional[digest_mod.Digest] = None) -> str:
        return digest_mod.compute(digest or digest_mod.get_digest(), self.payload)

    @property
    def is_genesis(self) -> bool:
        return self.index == 0

    def finalize(self, nonce: int, block_hash: str) -> "Block":
        return replace(self, nonce=nonce, hash=block_hash, is_mining=False)

    def pending(self) -> "Block":
        return replace(self, nonce=0, hash="", is_mining=True)

    def to_dict(self) -> Dict[str, object]:
        data = {
            "index": self.index,
            "timestamp": self.timestamp,
            "transactions": [tx.to_dict() for tx in self.transactions],
            "nonce": self.nonce,
            "previousHash": self.previous_hash,
            "hash": self.hash,
        }
        if self.is_mining:
            data["isMining"] = True
        return data

    @staticmethod
    def from_dict(data: Dict[str, object]) -> "Block":
        return Block(
            index=int(data["index"]),
            timestamp=int(data["timestamp"]),
            transactions=tuple(Transaction.from_dict(t) for t in data.get("transactions", [])),
            nonce=int(data.get("nonce", 0)),
            previous_hash=str(data.get("previousHash", GENESIS_PREV)),
            hash=str(data.get("hash", "")),
            is_mining=bool(data.get("isMining", False)),
        )

    @staticmethod
    def build(index: int, previous_hash: str, txs, timestamp: Optional[int] = None) -> "Block":
        return Block(
            index=index,
            timestamp=now_ms() if timestamp is None else timestamp,
            transactions=tuple(txs),
            previous_hash=previous_hash,
        )

    @staticmethod
    def genesis(timestamp: Optional[int] = None, digest: Optional[digest_mod.Digest] = None) -> "Block":
        block = Block.build(0, GENESIS_PREV, (), timestamp)
        return block.finalize(0, block.compute_hash(digest))


def header_hash_from_dict(data: dict, digest: Optional[digest_mod.Digest] = None) -> str:
    txs = [Transaction.from_dict(t) for t in data.get("transactions", [])]
    payload = block_payload(
        int(data["index"]),
        str(data["previousHash"]),
        int(data["timestamp"]),
        txs,
        int(data["nonce"]),
    )
    return digest_mod.compute(digest or digest_mod.get_digest(), payload)
