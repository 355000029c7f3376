import json
import os
import threading
import time
from datetime import datetime, timezone
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Any, Callable, Dict, List, Optional
from urllib.parse import parse_qs, urlparse

from .block import Block
from .chain import ChainState

CACHE_TTL = int(os.getenv("FEEDCHAIN_EXPLORER_CACHE_TTL", "2"))
MAX_BLOCKS = int(os.getenv("FEEDCHAIN_EXPLORER_MAX_BLOCKS", "200"))


def block_matches(block: Block, term: str) -> bool:
    if block.is_mining:
        return False
    needle = term.strip().lower()
    return needle in block.hash.lower() or needle in block.previous_hash.lower()


def filter_chain(chain, term: str) -> List[Block]:
    """Blocks whose hash or previous hash contains ``term`` (case-insensitive).

    A blank term returns the whole chain, mining placeholders included.
    """
    if not term or not term.strip():
        return list(chain)
    return [b for b in chain if block_matches(b, term)]


def highlight_fields(block: Block, term: str) -> Dict[str, bool]:
    if not term or not term.strip() or block.is_mining:
        return {"hash": False, "previousHash": False}
    needle = term.strip().lower()
    return {
        "hash": needle in block.hash.lower(),
        "previousHash": needle in block.previous_hash.lower(),
    }


def format_timestamp(ms: int) -> str:
    dt = datetime.fromtimestamp(ms / 1000, tz=timezone.utc)
    return dt.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def render_block(block: Block, term: str = "") -> str:
    if block.is_mining:
        return f"BLOCK #{block.index}  mining..."
    marks = highlight_fields(block, term)
    lines = [f"BLOCK #{block.index}  {format_timestamp(block.timestamp)}"]
    lines.append(f"  hash:      {block.hash}{'  <' if marks['hash'] else ''}")
    lines.append(f"  prev hash: {block.previous_hash}{'  <' if marks['previousHash'] else ''}")
    lines.append(f"  nonce:     {block.nonce}")
    if not block.transactions:
        label = "Genesis block, no transactions" if block.is_genesis else "No transactions"
        lines.append(f"  txs:       {label}")
        return "\n".join(lines)
    lines.append(f"  txs ({len(block.transactions)}):")
    for tx in block.transactions:
        handle = tx.author.handle or tx.author.name or tx.author.id
        lines.append(f"    - [{tx.type}] {handle}: {tx.display_text}")
    return "\n".join(lines)


def render_chain(chain, term: str = "", newest_first: bool = True) -> str:
    blocks = filter_chain(chain, term)
    if term and term.strip() and not blocks:
        return f'No blocks found. Your search for "{term}" did not match any block hashes.'
    if newest_first:
        blocks = list(reversed(blocks))
    return "\n\n".join(render_block(b, term) for b in blocks)


def render_stats(state: ChainState) -> str:
    return f"length={state.length} difficulty={state.difficulty} status={state.status}"


def block_summary(block: Block) -> dict:
    return {
        "index": block.index,
        "hash": block.hash,
        "previousHash": block.previous_hash,
        "timestamp": block.timestamp,
        "nonce": block.nonce,
        "txs": len(block.transactions),
        "isMining": block.is_mining,
    }


def make_handler(current_state: Callable[[], ChainState]):
    cache: Dict[str, tuple] = {}

    def cache_get(key: str) -> Optional[Any]:
        if key not in cache:
            return None
        exp, value = cache[key]
        if exp < time.time():
            cache.pop(key, None)
            return None
        return value

    def cache_set(key: str, value: Any, ttl: int = CACHE_TTL) -> None:
        if ttl <= 0:
            return
        cache[key] = (time.time() + ttl, value)

    class Handler(BaseHTTPRequestHandler):
        def _send(self, code: int, payload: dict) -> None:
            data = json.dumps(payload).encode()
            self.send_response(code)
            self.send_header("Content-Type", "application/json")
            self.send_header("Content-Length", str(len(data)))
            self.end_headers()
            self.wfile.write(data)

        def do_GET(self) -> None:
            parsed = urlparse(self.path)
            path = parsed.path
            qs = parse_qs(parsed.query)
            try:
                state = current_state()
                version = f"{state.length}:{state.phase}"
                if path == "/status":
                    result = {
                        "length": state.length,
                        "difficulty": state.difficulty,
                        "phase": state.phase,
                        "status": state.status,
                        "finished": state.finished,
                        "error": state.error,
                    }
                    self._send(200, {"ok": True, "result": result})
                    return
                if path == "/blocks":
                    try:
                        count = int((qs.get("count") or ["20"])[0])
                    except ValueError:
                        self._send(400, {"ok": False, "error": "count must be an integer"})
                        return
                    count = max(0, min(count, MAX_BLOCKS))
                    direction = (qs.get("direction") or ["desc"])[0]
                    chain = list(state.chain)
                    if direction == "desc":
                        chain.reverse()
                    blocks = [block_summary(b) for b in chain[:count]]
                    self._send(200, {"ok": True, "result": blocks})
                    return
                if path == "/search":
                    query = (qs.get("q") or [""])[0]
                    key = f"search:{query.strip().lower()}:{version}"
                    # only finished chains are cached
                    cached = cache_get(key) if state.finished else None
                    if cached:
                        self._send(200, cached)
                        return
                    result = [b.to_dict() for b in filter_chain(state.chain, query)]
                    payload = {"ok": True, "result": result}
                    if state.finished:
                        cache_set(key, payload)
                    self._send(200, payload)
                    return
                if path.startswith("/block/"):
                    block_hash = path.split("/block/")[1].lower()
                    for block in state.chain:
                        if block.hash and block.hash == block_hash:
                            self._send(200, {"ok": True, "result": block.to_dict()})
                            return
                    self._send(404, {"ok": False, "error": "block not found"})
                    return
                self._send(404, {"ok": False, "error": "not_found"})
            except Exception as exc:
                self._send(500, {"ok": False, "error": str(exc)})

        def log_message(self, format: str, *args) -> None:
            return

    return Handler


class ExplorerServer:
    def __init__(self, current_state: Callable[[], ChainState], host: str = "127.0.0.1", port: int = 9337) -> None:
        self.current_state = current_state
        self.host = host
        self.port = port
        self._thread: Optional[threading.Thread] = None
        self._server: Optional[ThreadingHTTPServer] = None

    @property
    def address(self):
        if not self._server:
            return (self.host, self.port)
        return self._server.server_address[:2]

    def start(self) -> None:
        if self._thread:
            return
        self._server = ThreadingHTTPServer((self.host, self.port), make_handler(self.current_state))
        self._thread = threading.Thread(target=self._server.serve_forever, daemon=True)
        self._thread.start()

    def stop(self) -> None:
        if self._server:
            self._server.shutdown()
            self._server.server_close()
            self._server = None
            self._thread = None
