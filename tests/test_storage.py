"""Tests for image and release storage"""

from datetime import UTC, datetime, timedelta, timezone

import pytest

from differ.diff import Package
from differ.storage import DuplicateError, NotFoundError


def test_list_images(seeded_storage):
    seeded_storage.add_image("alpha")
    images = seeded_storage.list_images()

    assert [image.name for image in images] == ["alpha", "vanilla"]
    assert [r.digest for r in images[1].releases] == ["r1", "r2"]


def test_get_image_missing(storage):
    with pytest.raises(NotFoundError):
        storage.get_image("missing")


def test_add_image_duplicate(seeded_storage):
    with pytest.raises(DuplicateError):
        seeded_storage.add_image("vanilla")


def test_lookup_release(seeded_storage):
    release = seeded_storage.lookup_release("vanilla", "r1")

    assert release.digest == "r1"
    assert release.date == datetime(2023, 1, 1, tzinfo=UTC)
    assert [(p.name, p.version) for p in release.packages] == [
        ("a", "1.0"),
        ("b", "2.0"),
        ("c", "3.0"),
    ]


def test_lookup_release_missing(seeded_storage):
    with pytest.raises(NotFoundError):
        seeded_storage.lookup_release("vanilla", "r9")
    with pytest.raises(NotFoundError):
        seeded_storage.lookup_release("missing", "r1")


def test_lookup_release_scoped_to_image(seeded_storage):
    seeded_storage.add_image("other")

    with pytest.raises(NotFoundError):
        seeded_storage.lookup_release("other", "r1")


def test_same_digest_in_two_images(seeded_storage):
    seeded_storage.add_image("other")
    release = seeded_storage.add_release("other", "r1", [])

    assert release.digest == "r1"
    assert release.packages == []


def test_add_release_duplicate_digest(seeded_storage):
    with pytest.raises(DuplicateError):
        seeded_storage.add_release("vanilla", "r1", [])


def test_add_release_duplicate_package(seeded_storage):
    packages = [Package(name="a", version="1"), Package(name="a", version="2")]

    with pytest.raises(DuplicateError, match="a"):
        seeded_storage.add_release("vanilla", "r3", packages)


def test_add_release_unknown_image(storage):
    with pytest.raises(NotFoundError):
        storage.add_release("missing", "r1", [])


def test_add_release_defaults_date(seeded_storage):
    before = datetime.now(UTC)
    release = seeded_storage.add_release("vanilla", "r3", [])

    assert before - timedelta(seconds=1) <= release.date <= datetime.now(UTC)


def test_add_release_normalizes_timezone(seeded_storage):
    date = datetime(2023, 3, 1, 12, 0, tzinfo=timezone(timedelta(hours=2)))
    seeded_storage.add_release("vanilla", "r3", [], date=date)

    stored = seeded_storage.lookup_release("vanilla", "r3").date
    assert stored == date
    assert stored.tzinfo == UTC


def test_latest_release(seeded_storage):
    assert seeded_storage.latest_release("vanilla").digest == "r2"

    seeded_storage.add_release(
        "vanilla", "r0", [], date=datetime(2022, 1, 1, tzinfo=UTC)
    )
    assert seeded_storage.latest_release("vanilla").digest == "r2"


def test_latest_release_without_releases(storage):
    storage.add_image("empty")

    with pytest.raises(NotFoundError):
        storage.latest_release("empty")


def test_authorizations(storage):
    assert storage.fetch_authorizations() == {}

    storage.add_authorization("admin", "secret")
    assert storage.fetch_authorizations() == {"admin": "secret"}

    with pytest.raises(DuplicateError):
        storage.add_authorization("admin", "other")
