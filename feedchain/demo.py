#!/usr/bin/env python3
import json
import os
import shutil
import subprocess
import sys
from pathlib import Path

# Allow running as "python3 feedchain/demo.py" or "python3 -m feedchain.demo"
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from feedchain.tx import Author, Transaction


BASE = Path(os.getcwd()) / "feedchain_demo"

AUTHORS = [
    Author(id="u1", name="Ada", handle="@ada"),
    Author(id="u2", name="Linus", handle="@linus"),
    Author(id="bot", name="Market Bot", handle="@marketbot", is_bot=True),
]

POSTS = [
    ("NEWS", "ETH ETF inflows hit a weekly high"),
    ("ON_CHAIN", "Whale moved 12k BTC to cold storage"),
    ("SOCIAL_SENTIMENT", "Sentiment on SOL turning positive"),
    ("RUMOR", "Exchange listing rumored for next week"),
    ("PROJECT_UPDATE", "Mainnet upgrade scheduled"),
    ("NEWS", "Stablecoin supply keeps growing"),
    ("ON_CHAIN", "Large DEX swap on Arbitrum"),
    ("NEWS", "Regulator publishes staking guidance"),
]


def sample_feed() -> list:
    feed = []
    for i, (kind, title) in enumerate(POSTS):
        author = AUTHORS[i % len(AUTHORS)]
        feed.append(Transaction(id=f"sig-{i}", author=author, type=kind, title=title).to_dict())
    return feed


def run(cmd, capture=False) -> str:
    print("+", " ".join(cmd))
    if capture:
        return subprocess.check_output(cmd).decode().strip()
    subprocess.run(cmd, check=True)
    return ""


def main() -> None:
    if BASE.exists():
        shutil.rmtree(BASE)
    BASE.mkdir(parents=True, exist_ok=True)
    feed_path = BASE / "feed.json"
    with open(feed_path, "w", encoding="utf-8") as f:
        json.dump(sample_feed(), f, indent=2)

    run([sys.executable, "-m", "feedchain", "build", "--source", str(feed_path)])
    dump = run([sys.executable, "-m", "feedchain", "print-chain", "--source", str(feed_path)], capture=True)
    chain_path = BASE / "chain.json"
    chain_path.write_text(dump, encoding="utf-8")
    run([sys.executable, "-m", "feedchain", "verify", "--chain", str(chain_path)])

    last_hash = json.loads(dump)[-1]["hash"]
    run([sys.executable, "-m", "feedchain", "search", "--chain", str(chain_path), last_hash[2:10]])
    print("Demo complete. Data stored in", BASE)


if __name__ == "__main__":
    main()
