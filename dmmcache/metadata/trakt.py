from typing import List, Optional

from dmmcache.core.exceptions import ReauthenticationRequired, ValidationError
from dmmcache.core.logger import logger
from dmmcache.metadata.models import (TraktList, TraktListContainer,
                                      TraktMediaItem, TraktMediaType,
                                      TraktSearchResult, TraktTokenResponse,
                                      TraktUserSettings, TraktWatchlistItem)
from dmmcache.utils.network_manager import (ApiCredential, ResilientClient,
                                            UpstreamResult, parse_payload)

TRAKT_API_VERSION = "2"


class Trakt:
    def __init__(
        self,
        client: ResilientClient,
        client_id: Optional[str],
        client_secret: Optional[str] = None,
        credential: Optional[ApiCredential] = None,
    ):
        self.client = client
        self.client_id = client_id
        self.client_secret = client_secret
        self.credential = credential

    @property
    def headers(self) -> dict:
        return {
            "Content-Type": "application/json",
            "trakt-api-version": TRAKT_API_VERSION,
            "trakt-api-key": self.client_id or "",
        }

    def _require_oauth_client(self):
        if not self.client_id or not self.client_secret:
            raise ValidationError(
                "Server configuration error: Missing Trakt credentials"
            )

    async def refresh(self, credential: ApiCredential) -> ApiCredential:
        try:
            token = await self.refresh_token(credential.refresh_token)
        except ValidationError as e:
            raise ReauthenticationRequired(e.message) from e
        return ApiCredential.from_token_response(token.model_dump(), credential)

    async def _call(self, path: str, **kwargs) -> UpstreamResult:
        result = await self.client.get(
            path,
            headers=self.headers,
            credential=self.credential,
            refresher=self.refresh if self.credential else None,
            **kwargs,
        )
        if result.updated_credential is not None:
            logger.log("UPSTREAM", "🔑 Trakt access token refreshed")
            self.credential = result.updated_credential
        return result

    async def search(
        self, query: str, types: List[TraktMediaType] = ("movie", "show")
    ) -> List[TraktSearchResult]:
        if not query:
            return []

        result = await self._call(
            f"/search/{','.join(types)}", params={"query": query}
        )
        return parse_payload(TraktSearchResult, result)

    async def get_user_settings(self) -> UpstreamResult:
        result = await self._call("/users/settings")
        result.data = parse_payload(TraktUserSettings, result)
        return result

    async def get_personal_lists(self, user_slug: str) -> UpstreamResult:
        result = await self._call(f"/users/{user_slug}/lists")
        result.data = parse_payload(TraktList, result)
        return result

    async def get_liked_lists(self, user_slug: str) -> UpstreamResult:
        result = await self._call(f"/users/{user_slug}/likes/lists")
        result.data = parse_payload(TraktListContainer, result)
        return result

    async def get_list_items(
        self, user_slug: str, list_id: int, media_type: Optional[str] = None
    ) -> UpstreamResult:
        path = f"/users/{user_slug}/lists/{list_id}/items"
        if media_type:
            path += f"/{media_type}"

        result = await self._call(path)
        result.data = parse_payload(TraktMediaItem, result)
        return result

    async def get_watchlist(self, media_type: str = "movies") -> UpstreamResult:
        if media_type not in ("movies", "shows"):
            raise ValidationError("type must be 'movies' or 'shows'", type=media_type)

        result = await self._call(f"/sync/watchlist/{media_type}")
        result.data = parse_payload(TraktWatchlistItem, result)
        return result

    async def _token_request(self, payload: dict) -> TraktTokenResponse:
        self._require_oauth_client()
        result = await self.client.post(
            "/oauth/token",
            json={
                **payload,
                "client_id": self.client_id,
                "client_secret": self.client_secret,
            },
        )
        return parse_payload(TraktTokenResponse, result)

    async def exchange_code(self, code: str, redirect_uri: str) -> TraktTokenResponse:
        return await self._token_request(
            {
                "code": code,
                "redirect_uri": redirect_uri,
                "grant_type": "authorization_code",
            }
        )

    async def refresh_token(self, refresh_token: str) -> TraktTokenResponse:
        return await self._token_request(
            {
                "refresh_token": refresh_token,
                "redirect_uri": "",
                "grant_type": "refresh_token",
            }
        )
