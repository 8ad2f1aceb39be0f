from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict


class TraktPayload(BaseModel):
    model_config = ConfigDict(extra="allow")


class TraktIds(TraktPayload):
    trakt: Optional[int] = None
    slug: Optional[str] = None
    tvdb: Optional[int] = None
    imdb: Optional[str] = None
    tmdb: Optional[int] = None


class TraktMedia(TraktPayload):
    title: str
    year: Optional[int] = None
    ids: Optional[TraktIds] = None


class TraktMediaItem(TraktPayload):
    movie: Optional[TraktMedia] = None
    show: Optional[TraktMedia] = None


class TraktSearchResult(TraktMediaItem):
    type: Literal["movie", "show", "episode", "person"]
    score: float = 0


class TraktUserIds(TraktPayload):
    slug: str
    uuid: Optional[str] = None


class TraktUserProfile(TraktPayload):
    username: str
    private: bool = False
    name: Optional[str] = None
    vip: bool = False
    ids: TraktUserIds


class TraktUserSettings(TraktPayload):
    user: TraktUserProfile


class TraktList(TraktPayload):
    name: str
    description: Optional[str] = None
    privacy: Optional[str] = None
    item_count: int = 0
    likes: int = 0
    ids: TraktIds


class TraktListContainer(TraktPayload):
    list: TraktList


class TraktWatchlistItem(TraktMediaItem):
    rank: Optional[int] = None
    id: Optional[int] = None
    listed_at: Optional[str] = None
    notes: Optional[str] = None
    type: Literal["movie", "show", "season", "episode"]


class TraktTokenResponse(TraktPayload):
    access_token: str
    refresh_token: Optional[str] = None
    expires_in: Optional[int] = None
    token_type: str = "bearer"
    scope: Optional[str] = None
    created_at: Optional[int] = None


TraktMediaType = Literal["movie", "show"]