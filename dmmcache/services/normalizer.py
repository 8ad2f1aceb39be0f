from typing import Iterable, List

from dmmcache.services.models import ScrapedRecord


def _richness(record: ScrapedRecord):
    return (len(record.files), record.size)


def flatten_and_remove_duplicates(records: Iterable[ScrapedRecord]) -> List[ScrapedRecord]:
    """
    Collapse records sharing a hash (case-insensitive) into one.

    The record with the most files wins, then the larger one; on a full tie
    the first record seen is kept.
    """
    unique = {}
    for record in records:
        existing = unique.get(record.info_hash)
        if existing is None or _richness(record) > _richness(existing):
            unique[record.info_hash] = record

    return list(unique.values())


def sort_by_file_size(records: Iterable[ScrapedRecord]) -> List[ScrapedRecord]:
    return sorted(records, key=lambda record: record.size, reverse=True)


def normalize(records: Iterable[ScrapedRecord]) -> List[ScrapedRecord]:
    return sort_by_file_size(flatten_and_remove_duplicates(records))
