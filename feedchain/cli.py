import argparse
import asyncio
import json
import logging
import os
import time
from typing import List

from . import digest as digest_mod
from .block import Block
from .chain import BuildConfig, BuildSession, ChainState, verify_chain
from .explorer import ExplorerServer, render_chain, render_stats

LOG_LEVEL = os.getenv("FEEDCHAIN_LOG_LEVEL", "WARNING").upper()


def _load_json(value: str):
    if os.path.exists(value):
        with open(value, "r", encoding="utf-8") as f:
            return json.load(f)
    return json.loads(value)


def _load_chain(value: str) -> List[Block]:
    try:
        data = _load_json(value)
    except ValueError as exc:
        raise SystemExit(f"Invalid chain JSON: {exc}") from exc
    if isinstance(data, dict):
        data = data.get("chain", data.get("result"))
    if not isinstance(data, list):
        raise SystemExit("Expected JSON list of blocks")
    try:
        return [Block.from_dict(b) for b in data]
    except (KeyError, TypeError, ValueError) as exc:
        raise SystemExit(f"Invalid block: {exc}") from exc


def _config(args: argparse.Namespace) -> BuildConfig:
    config = BuildConfig()
    if args.difficulty is not None:
        config.difficulty = args.difficulty
    if args.chunk_size is not None:
        config.chunk_size = args.chunk_size
    if args.digest:
        config.digest = args.digest
    try:
        config.validate()
    except ValueError as exc:
        raise SystemExit(str(exc)) from exc
    return config


def _run(args: argparse.Namespace, on_state=None) -> ChainState:
    session = BuildSession(args.source, _config(args), on_state=on_state)
    return asyncio.run(session.run())


def _print_progress(state: ChainState) -> None:
    print(f"[{state.phase}] {state.status}")


def _finish(state: ChainState) -> None:
    if state.error:
        raise SystemExit(state.status)


def cmd_build(args: argparse.Namespace) -> None:
    state = _run(args, on_state=None if args.quiet else _print_progress)
    print(render_stats(state))
    if state.length:
        print()
        print(render_chain(state.chain, args.search or ""))
    _finish(state)


def cmd_print_chain(args: argparse.Namespace) -> None:
    state = _run(args)
    print(json.dumps([b.to_dict() for b in state.chain], indent=2, ensure_ascii=False))
    _finish(state)


def cmd_search(args: argparse.Namespace) -> None:
    if args.chain:
        chain = _load_chain(args.chain)
    else:
        if not args.source:
            raise SystemExit("Provide --source or --chain")
        state = _run(args)
        _finish(state)
        chain = state.chain
    print(render_chain(chain, args.term))


def cmd_verify(args: argparse.Namespace) -> None:
    chain = _load_chain(args.chain)
    difficulty = args.difficulty if args.difficulty is not None else BuildConfig().difficulty
    try:
        digest = digest_mod.get_digest(args.digest or "")
    except ValueError as exc:
        raise SystemExit(str(exc)) from exc
    problems = verify_chain(chain, difficulty, digest)
    if problems:
        for p in problems:
            print("invalid:", p)
        raise SystemExit(1)
    print(f"valid ({len(chain)} blocks)")


def cmd_serve(args: argparse.Namespace) -> None:
    session = BuildSession(args.source, _config(args), on_state=None if args.quiet else _print_progress)
    server = ExplorerServer(lambda: session.state, host=args.host, port=args.port)
    server.start()
    host, port = server.address
    print(f"Explorer listening on http://{host}:{port}")
    try:
        asyncio.run(session.run())
        while True:
            time.sleep(1)
    except KeyboardInterrupt:
        session.cancel()
    finally:
        server.stop()


def _add_build_args(s: argparse.ArgumentParser, source_required: bool = True) -> None:
    s.add_argument("--source", required=source_required, help="JSON file path or http(s) URL of feed posts")
    s.add_argument("--difficulty", type=int)
    s.add_argument("--chunk-size", type=int)
    s.add_argument("--digest", choices=digest_mod.available_digests())


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="feedchain")
    sub = p.add_subparsers(dest="cmd", required=True)

    s = sub.add_parser("build", help="mine the explorer chain from feed posts")
    _add_build_args(s)
    s.add_argument("--search", help="only show blocks whose hashes contain this text")
    s.add_argument("--quiet", action="store_true")
    s.set_defaults(func=cmd_build)

    s = sub.add_parser("print-chain", help="build and dump the chain as JSON")
    _add_build_args(s)
    s.set_defaults(func=cmd_print_chain)

    s = sub.add_parser("search")
    _add_build_args(s, source_required=False)
    s.add_argument("--chain", help="JSON chain dump or file path")
    s.add_argument("term")
    s.set_defaults(func=cmd_search)

    s = sub.add_parser("verify")
    s.add_argument("--chain", required=True, help="JSON chain dump or file path")
    s.add_argument("--difficulty", type=int)
    s.add_argument("--digest", choices=digest_mod.available_digests())
    s.set_defaults(func=cmd_verify)

    s = sub.add_parser("serve", help="build the chain and serve it over HTTP")
    _add_build_args(s)
    s.add_argument("--host", default="127.0.0.1")
    s.add_argument("--port", type=int, default=9337)
    s.add_argument("--quiet", action="store_true")
    s.set_defaults(func=cmd_serve)

    return p


def main(argv=None) -> None:
    logging.basicConfig(level=LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    parser = build_parser()
    args = parser.parse_args(argv)
    args.func(args)


if __name__ == "__main__":
    main()
