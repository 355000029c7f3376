from dataclasses import dataclass
from typing import Dict, Optional


@dataclass(frozen=True)
class Author:
    id: str
    name: str = ""
    handle: str = ""
    is_bot: bool = False

    def to_dict(self) -> Dict[str, object]:
        return {
            "id": self.id,
            "name": self.name,
            "handle": self.handle,
            "isBot": self.is_bot,
        }

    @staticmethod
    def from_dict(data: Dict[str, object]) -> "Author":
        if not isinstance(data, dict):
            raise ValueError("author must be an object")
        return Author(
            id=str(data.get("id", "")),
            name=str(data.get("name", "")),
            handle=str(data.get("handle", "")),
            is_bot=bool(data.get("isBot", data.get("is_bot", False))),
        )


@dataclass(frozen=True)
class Transaction:
    """A feed post carried as a block payload. Never mutated by the builder."""

    id: str
    author: Author
    type: str = ""
    title: str = ""
    content: str = ""
    timestamp: Optional[int] = None

    def to_dict(self) -> Dict[str, object]:
        data = {
            "id": self.id,
            "type": self.type,
            "author": self.author.to_dict(),
            "title": self.title,
            "content": self.content,
        }
        if self.timestamp is not None:
            data["timestamp"] = self.timestamp
        return data

    @staticmethod
    def from_dict(data: Dict[str, object]) -> "Transaction":
        if not isinstance(data, dict):
            raise ValueError("transaction must be an object")
        if data.get("id") in (None, ""):
            raise ValueError("transaction id required")
        timestamp = data.get("timestamp")
        return Transaction(
            id=str(data["id"]),
            author=Author.from_dict(data.get("author") or {}),
            type=str(data.get("type", "")),
            title=str(data.get("title") or ""),
            content=str(data.get("content") or ""),
            timestamp=int(timestamp) if timestamp is not None else None,
        )

    @property
    def is_human(self) -> bool:
        return not self.author.is_bot

    @property
    def display_text(self) -> str:
        return self.title or self.content


def human_transactions(txs) -> list:
    return [tx for tx in txs if tx.is_human]


def chunk(txs, size: int) -> list:
    if size <= 0:
        raise ValueError("chunk size must be > 0")
    return [tuple(txs[i:i + size]) for i in range(0, len(txs), size)]
