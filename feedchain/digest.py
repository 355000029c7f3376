import os
from typing import Callable, Dict

try:
    from cryptography.hazmat.primitives import hashes
except Exception as exc:  # pragma: no cover - hard fail when dependency missing
    raise ImportError(
        "cryptography is required. Install with `python3 -m pip install cryptography`."
    ) from exc

from .utils import sha256

DEFAULT_DIGEST = os.getenv("FEEDCHAIN_DIGEST", "hashlib").strip().lower()
HASH_HEX_LEN = 64

Digest = Callable[[str], str]


class DigestError(RuntimeError):
    pass


def hashlib_digest(data: str) -> str:
    return sha256(data.encode("utf-8"))


def cryptography_digest(data: str) -> str:
    h = hashes.Hash(hashes.SHA256())
    h.update(data.encode("utf-8"))
    return h.finalize().hex()


_BACKENDS: Dict[str, Digest] = {
    "hashlib": hashlib_digest,
    "cryptography": cryptography_digest,
}


def available_digests() -> list:
    return sorted(_BACKENDS)


def get_digest(name: str = "") -> Digest:
    name = (name or DEFAULT_DIGEST).strip().lower()
    try:
        return _BACKENDS[name]
    except KeyError:
        raise ValueError(f"unknown digest backend {name!r}") from None


def compute(digest: Digest, data: str) -> str:
    """Run ``digest`` over ``data`` and check it returned a 256-bit hex string."""
    try:
        value = digest(data)
    except DigestError:
        raise
    except Exception as exc:
        raise DigestError(f"digest failed: {exc}") from exc
    if not isinstance(value, str) or len(value) != HASH_HEX_LEN:
        raise DigestError("digest must return a 64-character hex string")
    try:
        int(value, 16)
    except ValueError as exc:
        raise DigestError("digest returned non-hex output") from exc
    return value.lower()
