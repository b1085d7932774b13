from datetime import datetime, timedelta, timezone

import pytest

from emberorm import ABSENT, Record, TypeMismatchError
from emberorm.core import FieldDef


def test_record_access_and_equality():
    author = Record("User", {"id": 1, "name": "Ann"})
    post = Record("Post", {"id": 7, "title": "Hi"}, {"author": author})

    assert post["title"] == post.title == "Hi"
    assert post.author is author
    assert list(post) == ["id", "title"]
    assert "author" in post
    assert post == {"id": 7, "title": "Hi"}
    assert post != Record("Post", {"id": 7, "title": "Hi"})
    with pytest.raises(AttributeError):
        post.missing


def test_record_derivation_returns_new_values():
    record = Record("User", {"id": 1, "name": "Ann"})

    renamed = record.replace(name="Anna")
    linked = record.with_related(posts=())

    assert record.name == "Ann"
    assert renamed.name == "Anna"
    assert linked.posts == ()
    assert "posts" not in record
    with pytest.raises(KeyError):
        record.replace(age=3)


def test_to_dict_flattens_related_records():
    author = Record("User", {"id": 1})
    post = Record("Post", {"id": 2}, {"author": author, "tags": (Record("Tag", {"id": 3}),), "editor": ABSENT})

    assert post.to_dict() == {"id": 2, "author": {"id": 1}, "tags": [{"id": 3}], "editor": None}
    assert post.to_dict(include_related=False) == {"id": 2}


def test_absent_is_a_falsy_singleton():
    assert not ABSENT
    assert repr(ABSENT) == "ABSENT"


def test_field_conversion_round_trip():
    created = FieldDef(name="createdAt", type_name="DateTime", model="Post")
    moment = datetime(2024, 5, 1, 12, 30, tzinfo=timezone.utc)

    stored = created.to_store(created.to_python(moment))

    assert stored == "2024-05-01T12:30:00.000000+00:00"
    assert created.from_store(stored) == moment


def test_datetimes_are_normalised_to_utc():
    created = FieldDef(name="createdAt", type_name="DateTime", model="Post")
    offset = datetime(2024, 5, 1, 17, 30, tzinfo=timezone(timedelta(hours=5)))

    assert created.to_store(created.to_python(offset)) == "2024-05-01T12:30:00.000000+00:00"
    assert created.to_store(datetime(2024, 5, 1, 12, 30)) == "2024-05-01T12:30:00.000000+00:00"
    assert created.from_store("2024-05-01T12:30:00").utcoffset() == timedelta(0)


def test_field_input_validation():
    count = FieldDef(name="count", type_name="Int", model="Counter")
    flag = FieldDef(name="flag", type_name="Boolean", model="Counter", nullable=True)

    with pytest.raises(ValueError):
        count.to_python(True)
    with pytest.raises(ValueError):
        count.to_python(None)
    assert flag.to_python(None) is None
    assert flag.from_store(1) is True


def test_from_store_rejects_invalid_representations():
    count = FieldDef(name="count", type_name="Int", model="Counter")
    payload = FieldDef(name="payload", type_name="Json", model="Counter")

    with pytest.raises(TypeMismatchError) as excinfo:
        count.from_store("seven")
    assert (excinfo.value.model, excinfo.value.field) == ("Counter", "count")
    with pytest.raises(TypeMismatchError):
        count.from_store(None)
    with pytest.raises(TypeMismatchError):
        payload.from_store("{not json")
    assert payload.from_store(payload.to_store({"b": 1, "a": [2]})) == {"a": [2], "b": 1}
