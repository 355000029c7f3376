__all__ = [
    "utils",
    "digest",
    "tx",
    "block",
    "miner",
    "source",
    "chain",
    "explorer",
    "cli",
]
