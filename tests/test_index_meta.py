from dataclasses import dataclass

import pytest

from pagestore.index_meta import IndexMeta, IndexMetaError


@dataclass
class FakeField:
    name: str


class FakeTable:
    def __init__(self, *names):
        self._fields = {name: FakeField(name) for name in names}

    def field(self, name):
        return self._fields.get(name)


def test_fields_from_names_and_objects():
    meta = IndexMeta("idx", ["a", FakeField("b")])
    assert meta.name == "idx"
    assert meta.fields == ["a", "b"]
    assert meta.field() == "a"


@pytest.mark.parametrize("name", ["", "   ", None])
def test_blank_name_rejected(name):
    with pytest.raises(IndexMetaError):
        IndexMeta(name, ["a"])


def test_desc():
    assert IndexMeta("idx", ["a", "b"]).desc() == "index name=idx, field=a"


def test_to_json_layout():
    assert IndexMeta("idx", ["a", "b"]).to_json() == {
        "index_name": "idx",
        "index_field_names": [{"field_name": "a"}, {"field_name": "b"}],
    }


def test_json_round_trip():
    meta = IndexMeta("idx", ["b", "a"])
    restored = IndexMeta.from_json(FakeTable("a", "b"), meta.to_json())
    assert restored == meta
    assert restored.fields == ["b", "a"]


def test_from_json_name_not_string():
    data = {"index_name": 3, "index_field_names": [{"field_name": "a"}]}
    with pytest.raises(IndexMetaError):
        IndexMeta.from_json(FakeTable("a"), data)


def test_from_json_fields_not_array():
    data = {"index_name": "idx", "index_field_names": "a"}
    with pytest.raises(IndexMetaError):
        IndexMeta.from_json(FakeTable("a"), data)


def test_from_json_field_name_not_string():
    data = {"index_name": "idx", "index_field_names": [{"field_name": 1}]}
    with pytest.raises(IndexMetaError):
        IndexMeta.from_json(FakeTable("a"), data)


def test_from_json_item_not_object():
    data = {"index_name": "idx", "index_field_names": ["a"]}
    with pytest.raises(IndexMetaError):
        IndexMeta.from_json(FakeTable("a"), data)


def test_from_json_unknown_field():
    data = {"index_name": "idx", "index_field_names": [{"field_name": "zz"}]}
    with pytest.raises(IndexMetaError):
        IndexMeta.from_json(FakeTable("a"), data)


def test_from_json_blank_name():
    data = {"index_name": " ", "index_field_names": [{"field_name": "a"}]}
    with pytest.raises(IndexMetaError):
        IndexMeta.from_json(FakeTable("a"), data)


def test_equality():
    assert IndexMeta("i", ["a"]) == IndexMeta("i", ["a"])
    assert not (IndexMeta("i", ["a"]) == IndexMeta("i", ["b"]))