"""Tests for submission records and read-only snapshots."""

import dataclasses
import threading

import pytest

from formpipe.pipeline.record import SubmissionRecord, channel_pair, is_channel_pair, is_renderable, safe_copy
from formpipe.pipeline.snapshot import ReadOnlySnapshot


@pytest.fixture
def record():
    """Create a record with nested body and meta."""
    return SubmissionRecord(
        name="Ada",
        email="ada@example.com",
        message="Hello",
        subject="Hi",
        phone="",
        body={"Company": "Analytical Engines", "Ip": channel_pair("1.1.1.1", "<b>1.1.1.1</b>")},
        meta={"tags": ["a"], "nested": {"k": "v"}, "captcha": "7"},
    )


class TestChannelPairs:
    """Test two-channel body values."""

    def test_well_formed(self):
        assert is_channel_pair({"text": "a", "html": "<b>a</b>"})
        assert is_channel_pair({"text": "a"})
        assert is_channel_pair({"html": "<b>a</b>"})

    def test_malformed(self):
        assert not is_channel_pair({})
        assert not is_channel_pair({"text": 1})
        assert not is_channel_pair({"other": "x"})
        assert not is_channel_pair("text")

    def test_renderable(self):
        assert is_renderable("x")
        assert is_renderable(3)
        assert is_renderable(channel_pair("a", "b"))
        assert not is_renderable(["a"])
        assert not is_renderable({"nested": {"x": 1}})


class TestSubmissionRecord:
    """Test record construction and projection."""

    def test_from_form_coerces_fields(self):
        record = SubmissionRecord.from_form(
            {"name": "Ada", "email": None, "phone": 123, "message": ["bad"], "Company": "AE"},
            body_fields=["Company", "Missing"],
        )

        assert record.name == "Ada"
        assert record.email == ""
        assert record.phone == "123"
        assert record.message == ""
        assert record.body == {"Company": "AE"}
        assert record.meta == {}

    def test_projection_clears_meta(self, record):
        projection = record.projection()

        assert projection.meta == {}
        assert projection.name == "Ada"
        assert projection.body == record.body

    def test_projection_is_independent(self, record):
        projection = record.projection()
        projection.body["Ip"]["text"] = "changed"

        assert record.body["Ip"]["text"] == "1.1.1.1"

    def test_renderable_body_skips_malformed(self, record):
        record.body["bad"] = {"nested": {"x": 1}}
        record.body["list"] = [1, 2]

        keys = [key for key, _ in record.renderable_body()]

        assert keys == ["Company", "Ip"]


class TestReadOnlySnapshot:
    """Test snapshot immutability and isolation."""

    def test_scalar_fields_copied(self, record):
        snapshot = ReadOnlySnapshot.from_record(record)

        assert snapshot.name == "Ada"
        assert snapshot.email == "ada@example.com"
        assert snapshot.phone == ""

    def test_cannot_assign_fields(self, record):
        snapshot = ReadOnlySnapshot.from_record(record)

        with pytest.raises(dataclasses.FrozenInstanceError):
            snapshot.name = "Eve"  # type: ignore[misc]

    def test_meta_mutation_does_not_leak(self, record):
        """Mutating the returned meta never changes the snapshot or the record."""
        snapshot = ReadOnlySnapshot.from_record(record)

        meta = snapshot.meta
        meta["tags"].append("b")
        meta["nested"]["k"] = "changed"
        meta["new"] = True

        assert snapshot.meta == {"tags": ["a"], "nested": {"k": "v"}, "captcha": "7"}
        assert record.meta["tags"] == ["a"]
        assert record.meta["nested"]["k"] == "v"

    def test_body_mutation_does_not_leak(self, record):
        snapshot = ReadOnlySnapshot.from_record(record)

        snapshot.body["Ip"]["text"] = "changed"

        assert snapshot.body["Ip"]["text"] == "1.1.1.1"
        assert record.body["Ip"]["text"] == "1.1.1.1"

    def test_later_record_changes_not_visible(self, record):
        snapshot = ReadOnlySnapshot.from_record(record)

        record.name = "Eve"
        record.meta["tags"].append("late")

        assert snapshot.name == "Ada"
        assert snapshot.meta["tags"] == ["a"]

    def test_field_value_falls_back_to_meta(self, record):
        snapshot = ReadOnlySnapshot.from_record(record)

        assert snapshot.field_value("email") == "ada@example.com"
        assert snapshot.field_value("captcha") == "7"
        assert snapshot.field_value("nested") == ""
        assert snapshot.field_value("missing") == ""

    def test_uncopyable_meta_kept_by_reference(self, record):
        lock = threading.Lock()
        record.meta["lock"] = lock

        snapshot = ReadOnlySnapshot.from_record(record)

        assert snapshot.meta["lock"] is lock
        snapshot.meta["tags"].append("b")
        assert record.meta["tags"] == ["a"]


class TestSafeCopy:
    """Test copying of arbitrary meta values."""

    def test_plain_values_deep_copied(self):
        value = {"tags": ["a"], "nested": {"k": "v"}}

        copied = safe_copy(value)

        assert copied == value
        assert copied["tags"] is not value["tags"]
        assert copied["nested"] is not value["nested"]

    def test_uncopyable_leaf_kept_by_reference(self):
        lock = threading.Lock()
        value = {"outer": [{"lock": lock, "tags": ["a"]}], "pair": (lock, ["b"])}

        copied = safe_copy(value)

        assert copied["outer"][0]["lock"] is lock
        assert copied["outer"][0]["tags"] == ["a"]
        assert copied["outer"][0]["tags"] is not value["outer"][0]["tags"]
        assert copied["pair"][0] is lock
        assert copied["pair"][1] is not value["pair"][1]

    def test_bare_uncopyable_value(self):
        lock = threading.Lock()
        assert safe_copy(lock) is lock
