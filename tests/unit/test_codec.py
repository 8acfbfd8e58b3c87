"""
Unit tests for the document codec.

Tests cover:
- Recursive encoding of records, lists and nested records
- Explicit null preservation
- Field-driven decoding
- Embedded loaders
"""

from dataclasses import dataclass

import pytest

from couchview.codec import (
    DocumentCodec,
    decode,
    embedded_loaders,
    encode,
    load_embedded,
    load_embedded_many,
)
from couchview.schema import EmbeddedDef, field


@dataclass
class Point:
    x: int
    y: int


@dataclass
class Shape:
    name: str
    points: list


class TestEncode:
    """Tests for encode()."""

    def test_flat_record(self):
        """Scalars pass through under their field names."""
        record = {"title": "t1", "count": 3, "ratio": 0.5, "published": True}

        assert encode(record) == record

    def test_none_is_explicit(self):
        """None is written as a key with a null value."""
        document = encode({"title": None})

        assert "title" in document
        assert document["title"] is None

    def test_lists_keep_order(self):
        """Lists are encoded element-wise in order."""
        assert encode({"tags": ["b", "a", None]}) == {"tags": ["b", "a", None]}

    def test_tuples_become_lists(self):
        """Tuples are stored as JSON arrays."""
        assert encode({"pair": (1, 2)}) == {"pair": [1, 2]}

    def test_nested_mappings(self):
        """Nested dicts are encoded recursively."""
        record = {"grants": [{"user": "ann", "access": "read"}], "meta": {"a": {"b": 1}}}

        assert encode(record) == record

    def test_dataclass_records(self):
        """Dataclass records and nested dataclasses become documents."""
        shape = Shape(name="tri", points=[Point(0, 0), Point(1, 1)])

        assert encode(shape) == {
            "name": "tri",
            "points": [{"x": 0, "y": 0}, {"x": 1, "y": 1}],
        }

    def test_keys_are_stringified(self):
        """Nested keys are converted to strings verbatim."""
        assert encode({"scores": {1: "a"}}) == {"scores": {"1": "a"}}

    def test_not_a_record(self):
        """Only mappings and dataclass instances are records."""
        with pytest.raises(TypeError):
            encode(["not", "a", "record"])


class TestDecode:
    """Tests for decode()."""

    def test_requested_fields_in_order(self):
        """Output follows the requested field order."""
        document = {"_id": "id1", "title": "t1", "body": "b1"}

        record = decode(document, ["body", "_id"])

        assert list(record) == ["body", "_id"]
        assert record == {"body": "b1", "_id": "id1"}

    def test_missing_field_is_none(self):
        """Absent fields decode as None."""
        assert decode({"_id": "id1"}, ["title"]) == {"title": None}

    def test_nested_values_untouched_without_loader(self):
        """Without a loader nested values stay raw."""
        document = {"stats": {"visits": 1}}

        assert decode(document, ["stats"]) == {"stats": {"visits": 1}}

    def test_flat_round_trip(self):
        """Decoding every field of an encoded flat record gives it back."""
        record = {"title": "t1", "count": 2, "empty": None}

        assert decode(encode(record), list(record)) == record


class TestEmbeddedLoaders:
    """Tests for embedded loaders."""

    @pytest.fixture
    def point_embed(self):
        """Embedded schema materialized as Point."""
        return EmbeddedDef("Point", fields=(field("x", "integer"), field("y", "integer")), record_type=Point)

    def test_load_into_record_type(self, point_embed):
        """Loaded values are instances of the record type."""
        assert load_embedded(point_embed, {"x": 1, "y": 2}) == Point(1, 2)

    def test_unknown_keys_ignored(self):
        """Dict records keep only declared fields."""
        embed = EmbeddedDef("Grant", fields=(field("user", "string"),))

        assert load_embedded(embed, {"user": "ann", "extra": 1}) == {"user": "ann"}

    def test_non_mapping_is_rejected(self, point_embed):
        """An embedded record must be a mapping."""
        with pytest.raises(TypeError, match="Point"):
            load_embedded(point_embed, [1, 2])

    def test_many_requires_list(self, point_embed):
        """An embedded list must be a list."""
        with pytest.raises(TypeError):
            load_embedded_many(point_embed, {"x": 1})

    def test_entity_loaders(self, post, stats_type):
        """Entities get a loader per embedded field."""
        loaders = embedded_loaders(post)

        assert set(loaders) == {"grants", "stats"}
        assert loaders["stats"]({"visits": 3, "time": 9}) == stats_type(visits=3, time=9)
        assert loaders["grants"]([{"user": "ann", "access": "rw"}]) == [{"user": "ann", "access": "rw"}]

    def test_codec_decodes_embedded(self, post, stats_type):
        """DocumentCodec applies the entity's loaders."""
        codec = DocumentCodec(post)
        document = codec.encode({"title": "t1", "stats": stats_type(visits=1, time=10), "grants": None})

        record = codec.decode(document, ["title", "stats", "grants"])

        assert record == {"title": "t1", "stats": stats_type(visits=1, time=10), "grants": None}
