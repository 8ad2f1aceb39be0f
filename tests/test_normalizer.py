import pytest

from dmmcache.core.exceptions import ValidationError
from dmmcache.services.models import ScrapedFile, ScrapedRecord, is_valid_hash
from dmmcache.services.normalizer import (flatten_and_remove_duplicates,
                                          normalize, sort_by_file_size)
from dmmcache.utils.media_ids import MediaKey, parse_optional_int

from conftest import GB, make_record


def test_is_valid_hash():
    assert is_valid_hash("a" * 40)
    assert is_valid_hash("ABCDEF0123" * 4)
    assert not is_valid_hash("a" * 39)
    assert not is_valid_hash("g" * 40)
    assert not is_valid_hash("a" * 40 + "\n")
    assert not is_valid_hash(None)


def test_record_size_defaults_to_sum_of_files():
    record = ScrapedRecord(
        hash="a" * 40,
        files=[ScrapedFile(name="a", size=10), ScrapedFile(name="b", size=5)],
    )
    assert record.size == 15


def test_record_rejects_bad_hash():
    with pytest.raises(ValueError):
        ScrapedRecord(hash="nope")


def test_duplicates_keep_richest_record():
    poor = make_record("a", 1)
    rich = make_record("a", 1, 1, title="rich")
    upper = ScrapedRecord(hash="A" * 40, title="upper", files=poor.files)

    result = flatten_and_remove_duplicates([poor, rich, upper])

    assert len(result) == 1
    assert result[0].title == "rich"


def test_duplicates_tie_keeps_first_seen():
    first = make_record("b", 2, title="first")
    second = make_record("b", 2, title="second")

    assert flatten_and_remove_duplicates([first, second])[0].title == "first"


def test_sort_by_file_size_is_descending_and_stable():
    small = make_record("a", 1)
    big = make_record("b", 5)
    same_as_small = make_record("c", 1)

    ordered = sort_by_file_size([small, big, same_as_small])

    assert [record.hash[0] for record in ordered] == ["b", "a", "c"]


def test_normalize_dedupes_then_sorts():
    records = [make_record("a", 1), make_record("b", 3), make_record("a", 4, 1)]

    result = normalize(records)

    assert [record.hash[0] for record in result] == ["a", "b"]
    assert result[0].size == 5 * GB


def test_media_keys():
    assert str(MediaKey.movie("tt1877830")) == "movie:tt1877830"
    assert str(MediaKey.tv(" tt0944947 ", "3")) == "tv:tt0944947:3"
    assert MediaKey.tv("tt0944947", 3).processing_key == "processing:tt0944947"
    assert MediaKey.movie("tt1877830").requested_key == "requested:tt1877830"
    assert MediaKey.parse("tv:tt0944947:1") == MediaKey.tv("tt0944947", 1)


@pytest.mark.parametrize(
    "imdb_id, season",
    [(None, None), ("1877830", None), ("tt12ab", None), ("tt1", ""), ("tt1", "-1"), ("tt1", "x")],
)
def test_media_key_validation(imdb_id, season):
    with pytest.raises(ValidationError):
        if season is None:
            MediaKey.movie(imdb_id)
        else:
            MediaKey.tv(imdb_id, season)


def test_parse_optional_int():
    assert parse_optional_int(None, "page") == 0
    assert parse_optional_int("", "page") == 0
    assert parse_optional_int("3", "page") == 3

    with pytest.raises(ValidationError) as excinfo:
        parse_optional_int("three", "minSize")
    assert excinfo.value.to_dict()["minSize"] == "three"
