from feedchain.block import GENESIS_PREV, Block, header_hash_from_dict
from feedchain.miner import mine


def test_genesis_shape():
    genesis = Block.genesis(timestamp=1_700_000_000_000)
    assert genesis.index == 0
    assert genesis.transactions == ()
    assert genesis.previous_hash == "0" * 64 == GENESIS_PREV
    assert genesis.nonce == 0
    assert genesis.hash == genesis.compute_hash()
    assert not genesis.is_mining


def test_pending_and_finalized(make_tx):
    block = Block.build(1, "f" * 64, [make_tx(1)], timestamp=42)
    pending = block.pending()
    assert pending.is_mining
    assert pending.hash == ""
    assert pending.nonce == 0
    assert pending.to_dict()["isMining"] is True

    nonce, h = mine(block, 1)
    final = block.finalize(nonce, h)
    assert not final.is_mining
    assert "isMining" not in final.to_dict()
    assert (final.index, final.timestamp, final.previous_hash) == (1, 42, "f" * 64)
    assert final.transactions == block.transactions


def test_hash_round_trips_through_dict(make_tx):
    block = Block.build(3, "a" * 64, [make_tx(7), make_tx(8)], timestamp=1234)
    nonce, h = mine(block, 2)
    data = block.finalize(nonce, h).to_dict()
    assert header_hash_from_dict(data) == h

    restored = Block.from_dict(data)
    assert restored.hash == h
    assert restored.compute_hash() == h
    assert restored.transactions[0].author.handle == "@user7"

    data["nonce"] += 1
    assert header_hash_from_dict(data) != h
