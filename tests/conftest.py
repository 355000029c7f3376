import importlib
import itertools

import pytest

from feedchain.tx import Author, Transaction


@pytest.fixture
def load_chain_module(monkeypatch):
    def _loader(**env):
        for key, value in env.items():
            monkeypatch.setenv(f"FEEDCHAIN_{key.upper()}", str(value))
        import feedchain.chain as chain
        return importlib.reload(chain)

    yield _loader
    # restore module-level defaults for the remaining tests
    monkeypatch.undo()
    import feedchain.chain as chain
    importlib.reload(chain)


@pytest.fixture
def make_tx():
    def _make(i, is_bot=False, type_="NEWS"):
        author = Author(id=f"u{i}", name=f"User {i}", handle=f"@user{i}", is_bot=is_bot)
        return Transaction(
            id=f"sig-{i}",
            author=author,
            type=type_,
            title=f"Signal {i}",
            content=f"content of signal {i}",
        )

    return _make


@pytest.fixture
def clock():
    counter = itertools.count(1_700_000_000_000, 1000)
    return lambda: next(counter)
