import json
from urllib.error import HTTPError
from urllib.request import urlopen

import pytest

from feedchain.chain import BuildConfig, run_build
from feedchain.explorer import ExplorerServer, filter_chain, highlight_fields, render_block, render_chain


@pytest.fixture
def state(make_tx, clock):
    return run_build([make_tx(i) for i in range(6)], BuildConfig(difficulty=2, chunk_size=3), clock=clock)


def _unique_substring(chain, target, size=8):
    others = []
    for block in chain:
        if block is not target:
            others.append(block.hash)
        others.append(block.previous_hash)
    for start in range(len(target.hash) - size + 1):
        part = target.hash[start:start + size]
        if not any(part in other for other in others):
            return part
    raise AssertionError("no unique substring")


def test_search_returns_only_matching_block(state):
    chain = state.chain
    assert len(chain) == 3
    term = _unique_substring(chain, chain[2])
    assert filter_chain(chain, term) == [chain[2]]
    assert filter_chain(chain, term.upper()) == [chain[2]]
    assert filter_chain(chain, f"  {term}  ") == [chain[2]]


def test_empty_search_returns_full_chain(state):
    assert filter_chain(state.chain, "") == list(state.chain)
    assert filter_chain(state.chain, "   ") == list(state.chain)


def test_search_matches_previous_hash(state):
    chain = state.chain
    # block 2 links to block 1, so block 1's hash hits both
    assert filter_chain(chain, chain[1].hash) == [chain[1], chain[2]]
    assert filter_chain(chain, "zzzz") == []


def test_mining_blocks_never_match(state):
    pending = state.chain[2].pending()
    chain = [state.chain[0], state.chain[1], pending]
    assert filter_chain(chain, state.chain[1].hash) == [state.chain[1]]
    assert highlight_fields(pending, "0") == {"hash": False, "previousHash": False}


def test_highlight_fields(state):
    block = state.chain[2]
    marks = highlight_fields(block, block.previous_hash[:10].upper())
    assert marks["previousHash"]
    assert highlight_fields(block, "") == {"hash": False, "previousHash": False}


def test_render(state):
    text = render_chain(state.chain)
    assert text.index("BLOCK #2") < text.index("BLOCK #0")
    assert "Genesis block, no transactions" in text
    assert "[NEWS] @user0: Signal 0" in text
    assert render_block(state.chain[1].pending()) == "BLOCK #1  mining..."
    assert render_chain(state.chain, "zzzz").startswith("No blocks found.")


def _get(server, path):
    host, port = server.address
    with urlopen(f"http://{host}:{port}{path}", timeout=5) as resp:
        return json.loads(resp.read().decode())


def test_explorer_server(state):
    server = ExplorerServer(lambda: state, port=0)
    server.start()
    try:
        status = _get(server, "/status")
        assert status["ok"]
        assert status["result"]["length"] == 3
        assert status["result"]["finished"] is True

        blocks = _get(server, "/blocks?count=2")["result"]
        assert [b["index"] for b in blocks] == [2, 1]
        assert _get(server, "/blocks?count=-1")["result"] == []
        assert len(_get(server, "/blocks?count=0")["result"]) == 0
        assert len(_get(server, "/blocks?count=99")["result"]) == 3
        with pytest.raises(HTTPError) as err:
            _get(server, "/blocks?count=abc")
        assert err.value.code == 400

        term = _unique_substring(state.chain, state.chain[2])
        found = _get(server, f"/search?q={term}")["result"]
        assert [b["index"] for b in found] == [2]
        assert len(_get(server, "/search?q=")["result"]) == 3

        block = _get(server, f"/block/{state.chain[1].hash}")["result"]
        assert block["nonce"] == state.chain[1].nonce

        with pytest.raises(HTTPError) as err:
            _get(server, "/block/" + "f" * 64)
        assert err.value.code == 404
    finally:
        server.stop()
