import re
from dataclasses import dataclass
from typing import Optional

from dmmcache.core.exceptions import ValidationError

imdb_id_pattern = re.compile(r"^tt\d+$")

MOVIE_PREFIX = "movie"
TV_PREFIX = "tv"
PROCESSING_PREFIX = "processing"
REQUESTED_PREFIX = "requested"

MAX_MIN_SIZE_GB = 8_000_000
MAX_PAGE = 2**31


def normalize_imdb_id(imdb_id: Optional[str]) -> str:
    if not imdb_id or not isinstance(imdb_id, str):
        raise ValidationError('Missing "imdbId" query parameter')

    imdb_id = imdb_id.strip()
    if not imdb_id_pattern.match(imdb_id):
        raise ValidationError("Invalid IMDb id", imdbId=imdb_id)
    return imdb_id


def parse_season(season) -> int:
    if season is None or (isinstance(season, str) and not season.strip()):
        raise ValidationError('Missing "seasonNum" query parameter')

    try:
        value = int(str(season).strip(), 10)
    except ValueError:
        raise ValidationError("Invalid season number", seasonNum=season)

    if value < 0:
        raise ValidationError("Invalid season number", seasonNum=season)
    return value


@dataclass(frozen=True)
class MediaKey:
    """Identity of a scrape target: ``movie:<imdbId>`` or ``tv:<imdbId>:<season>``."""

    kind: str
    imdb_id: str
    season: Optional[int] = None

    @classmethod
    def movie(cls, imdb_id: str) -> "MediaKey":
        return cls(MOVIE_PREFIX, normalize_imdb_id(imdb_id))

    @classmethod
    def tv(cls, imdb_id: str, season) -> "MediaKey":
        return cls(TV_PREFIX, normalize_imdb_id(imdb_id), parse_season(season))

    @classmethod
    def parse(cls, text: str) -> "MediaKey":
        parts = (text or "").strip().split(":")
        if parts[0] == MOVIE_PREFIX and len(parts) == 2:
            return cls.movie(parts[1])
        if parts[0] == TV_PREFIX and len(parts) == 3:
            return cls.tv(parts[1], parts[2])
        raise ValidationError("Invalid media key", key=text)

    @property
    def processing_key(self) -> str:
        return f"{PROCESSING_PREFIX}:{self.imdb_id}"

    @property
    def requested_key(self) -> str:
        return f"{REQUESTED_PREFIX}:{self.imdb_id}"

    def __str__(self):
        if self.kind == TV_PREFIX:
            return f"{TV_PREFIX}:{self.imdb_id}:{self.season}"
        return f"{MOVIE_PREFIX}:{self.imdb_id}"


def parse_optional_int(value, name: str, maximum: Optional[int] = None) -> int:
    if value is None or (isinstance(value, str) and not value.strip()):
        return 0

    try:
        number = int(str(value).strip(), 10)
    except ValueError:
        raise ValidationError(f'Invalid "{name}" query parameter', **{name: value})

    if number < 0 or (maximum is not None and number > maximum):
        raise ValidationError(f'Invalid "{name}" query parameter', **{name: value})
    return number
