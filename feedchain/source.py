import asyncio
import json
import os
from typing import Awaitable, Callable, Iterable, List, Optional
from urllib.error import URLError
from urllib.request import Request, urlopen

from .tx import Transaction

SOURCE_TIMEOUT = float(os.getenv("FEEDCHAIN_SOURCE_TIMEOUT", "10"))
SOURCE_TOKEN = os.getenv("FEEDCHAIN_SOURCE_TOKEN")

# keys a feed export may wrap its post list in
_LIST_KEYS = ("transactions", "signals", "posts", "result")


class SourceFetchError(RuntimeError):
    pass


def parse_records(data) -> List[Transaction]:
    if isinstance(data, dict):
        for key in _LIST_KEYS:
            if key in data:
                data = data[key]
                break
        else:
            raise SourceFetchError("expected a list of transactions")
    if not isinstance(data, list):
        raise SourceFetchError("expected a list of transactions")
    txs = []
    for i, item in enumerate(data):
        try:
            txs.append(item if isinstance(item, Transaction) else Transaction.from_dict(item))
        except (KeyError, TypeError, ValueError) as exc:
            raise SourceFetchError(f"invalid transaction at position {i}: {exc}") from exc
    return txs


class StaticSource:
    def __init__(self, records: Iterable) -> None:
        self.records = list(records)

    def fetch(self) -> List[Transaction]:
        return parse_records(self.records)


class CallableSource:
    def __init__(self, func: Callable[[], Iterable]) -> None:
        self.func = func

    def fetch(self) -> List[Transaction]:
        try:
            records = self.func()
        except SourceFetchError:
            raise
        except Exception as exc:
            raise SourceFetchError(str(exc)) from exc
        return parse_records(list(records))


class AsyncCallableSource:
    def __init__(self, func: Callable[[], Awaitable[Iterable]]) -> None:
        self.func = func

    async def fetch(self) -> List[Transaction]:
        try:
            records = await self.func()
        except SourceFetchError:
            raise
        except Exception as exc:
            raise SourceFetchError(str(exc)) from exc
        return parse_records(list(records))


class JsonFileSource:
    def __init__(self, path: str) -> None:
        self.path = path

    def fetch(self) -> List[Transaction]:
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except OSError as exc:
            raise SourceFetchError(f"cannot read {self.path}: {exc}") from exc
        except json.JSONDecodeError as exc:
            raise SourceFetchError(f"invalid JSON in {self.path}: {exc}") from exc
        return parse_records(data)


class HttpSource:
    def __init__(self, url: str, token: Optional[str] = None, timeout: float = SOURCE_TIMEOUT) -> None:
        self.url = url
        self.token = token if token is not None else SOURCE_TOKEN
        self.timeout = timeout

    def fetch(self) -> List[Transaction]:
        headers = {"Accept": "application/json"}
        if self.token:
            headers["X-Auth-Token"] = self.token
        req = Request(self.url, headers=headers)
        try:
            with urlopen(req, timeout=self.timeout) as resp:
                data = json.loads(resp.read().decode())
        except (URLError, OSError) as exc:
            raise SourceFetchError(f"cannot fetch {self.url}: {exc}") from exc
        except ValueError as exc:
            raise SourceFetchError(f"invalid JSON from {self.url}") from exc
        if isinstance(data, dict) and data.get("ok") is False:
            raise SourceFetchError(data.get("error", "source error"))
        return parse_records(data)


def as_source(obj):
    if hasattr(obj, "fetch"):
        return obj
    if asyncio.iscoroutinefunction(obj):
        return AsyncCallableSource(obj)
    if callable(obj):
        return CallableSource(obj)
    if isinstance(obj, str):
        if obj.startswith(("http://", "https://")):
            return HttpSource(obj)
        return JsonFileSource(obj)
    return StaticSource(obj)
