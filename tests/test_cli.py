import json

import pytest

from feedchain.cli import main


def _write_feed(tmp_path, make_tx, n):
    path = tmp_path / "feed.json"
    path.write_text(json.dumps([make_tx(i).to_dict() for i in range(n)]), encoding="utf-8")
    return str(path)


def test_build_prints_chain(tmp_path, make_tx, capsys):
    source = _write_feed(tmp_path, make_tx, 4)
    main(["build", "--source", source, "--difficulty", "1", "--chunk-size", "2"])
    out = capsys.readouterr().out
    assert "[genesis] Creating genesis block..." in out
    assert "[done] Chain is up to date." in out
    assert "length=3 difficulty=1" in out
    assert "BLOCK #2" in out


def test_print_chain_then_verify(tmp_path, make_tx, capsys):
    source = _write_feed(tmp_path, make_tx, 5)
    main(["print-chain", "--source", source, "--difficulty", "1"])
    dump = capsys.readouterr().out
    blocks = json.loads(dump)
    assert [b["index"] for b in blocks] == [0, 1, 2]

    chain_path = tmp_path / "chain.json"
    chain_path.write_text(dump, encoding="utf-8")
    main(["verify", "--chain", str(chain_path), "--difficulty", "1"])
    assert "valid (3 blocks)" in capsys.readouterr().out

    blocks[1]["transactions"][0]["title"] = "edited"
    chain_path.write_text(json.dumps(blocks), encoding="utf-8")
    with pytest.raises(SystemExit):
        main(["verify", "--chain", str(chain_path), "--difficulty", "1"])
    assert "invalid: block 1 hash mismatch" in capsys.readouterr().out


def test_search_in_dump(tmp_path, make_tx, capsys):
    source = _write_feed(tmp_path, make_tx, 3)
    main(["print-chain", "--source", source, "--difficulty", "1"])
    blocks = json.loads(capsys.readouterr().out)
    chain_path = tmp_path / "chain.json"
    chain_path.write_text(json.dumps(blocks), encoding="utf-8")

    main(["search", "--chain", str(chain_path), blocks[1]["hash"][:12]])
    out = capsys.readouterr().out
    assert "BLOCK #1" in out
    assert "BLOCK #0" not in out


def test_build_reports_source_error(tmp_path):
    with pytest.raises(SystemExit) as err:
        main(["build", "--quiet", "--source", str(tmp_path / "missing.json")])
    assert "Error:" in str(err.value)


def test_search_needs_input():
    with pytest.raises(SystemExit):
        main(["search", "abc"])
