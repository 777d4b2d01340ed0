import pytest

from tilemerge.storage import MemoryStore


class StubRandom:
    """Stands in for random.Random: fixed random() value, choice() picks the first option."""

    def __init__(self, value=0.0):
        self.value = value

    def random(self):
        return self.value

    def choice(self, seq):
        return seq[0]


def make_record(board, score=0, target=2048, **extra):
    record = dict(size=len(board), board=[list(row) for row in board], score=score, target=target)
    record.update(extra)
    return record


@pytest.fixture
def store():
    return MemoryStore()
