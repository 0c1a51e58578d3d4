import pytest

from pagestore.lru_replacer import LRUReplacer, Replacer


def test_victim_on_empty_returns_none():
    replacer = LRUReplacer(4)
    assert replacer.victim() is None
    assert len(replacer) == 0


def test_victims_come_out_oldest_first():
    replacer = LRUReplacer(5)
    for frame_id in (3, 1, 4):
        replacer.unpin(frame_id)
    assert len(replacer) == 3
    assert [replacer.victim(), replacer.victim(), replacer.victim()] == [3, 1, 4]
    assert replacer.victim() is None


def test_pin_removes_frame_from_candidates():
    replacer = LRUReplacer(5)
    replacer.unpin(1)
    replacer.unpin(2)
    replacer.pin(1)
    assert len(replacer) == 1
    assert replacer.victim() == 2
    assert replacer.victim() is None


def test_pin_unknown_frame_is_harmless():
    replacer = LRUReplacer(2)
    replacer.unpin(7)
    replacer.pin(9)
    assert len(replacer) == 1
    assert replacer.victim() == 7


def test_unpin_twice_does_not_duplicate_or_refresh():
    replacer = LRUReplacer(5)
    replacer.unpin(1)
    replacer.unpin(2)
    replacer.unpin(1)
    assert len(replacer) == 2
    assert replacer.victim() == 1


def test_capacity_overflow_drops_oldest():
    replacer = LRUReplacer(2)
    replacer.unpin(10)
    replacer.unpin(20)
    replacer.unpin(30)
    assert len(replacer) == 2
    assert replacer.victim() == 20
    assert replacer.victim() == 30


def test_repin_then_unpin_moves_to_newest():
    replacer = LRUReplacer(3)
    replacer.unpin(1)
    replacer.unpin(2)
    replacer.pin(1)
    replacer.unpin(1)
    assert replacer.victim() == 2
    assert replacer.victim() == 1


def test_replacer_is_abstract():
    with pytest.raises(TypeError):
        Replacer()