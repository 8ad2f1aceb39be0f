import ipaddress
from typing import List, Optional

from dmmcache.core.exceptions import (MalformedPayload, ReauthenticationRequired,
                                      ValidationError)
from dmmcache.core.logger import logger
from dmmcache.debrid.models import (AccessTokenResponse, AddMagnetResponse,
                                    CredentialsResponse, DeviceCodeResponse,
                                    TorrentInfoResponse, UnrestrictResponse,
                                    UserResponse, UserTorrent, UserTorrentsResult)
from dmmcache.services.models import is_valid_hash
from dmmcache.utils.network_manager import (ApiCredential, ResilientClient,
                                            UpstreamResult, parse_payload)

DEVICE_GRANT_TYPE = "http://oauth.net/grant_type/device/1.0"


def is_public_ip(ip: Optional[str]) -> bool:
    try:
        address = ipaddress.ip_address(ip or "")
    except ValueError:
        return False

    return address.version == 4 and not (
        address.is_private or address.is_loopback or address.is_link_local
    )


class RealDebrid:
    def __init__(
        self,
        client: ResilientClient,
        credential: Optional[ApiCredential] = None,
        client_id: Optional[str] = None,
        client_secret: Optional[str] = None,
        oauth_client_id: str = "X245A4XAIBGVM",
    ):
        self.client = client
        self.credential = credential
        self.client_id = client_id
        self.client_secret = client_secret
        self.oauth_client_id = oauth_client_id

        self.api_url = "/rest/1.0"

    async def refresh(self, credential: ApiCredential) -> ApiCredential:
        if not self.client_id or not self.client_secret:
            raise ReauthenticationRequired(
                "Real-Debrid client credentials are required to refresh a token"
            )

        token = await self.get_token(
            self.client_id, self.client_secret, credential.refresh_token
        )
        return ApiCredential.from_token_response(token.model_dump(), credential)

    async def _call(self, method: str, path: str, **kwargs) -> UpstreamResult:
        result = await self.client.request(
            method,
            f"{self.api_url}{path}",
            credential=self.credential,
            refresher=self.refresh,
            **kwargs,
        )
        if result.updated_credential is not None:
            logger.log("UPSTREAM", "🔑 Real-Debrid access token refreshed")
            self.credential = result.updated_credential
        return result

    async def get_user(self) -> UpstreamResult:
        result = await self._call("GET", "/user")
        result.data = parse_payload(UserResponse, result)
        return result

    async def get_user_torrents(self, page: int = 1, limit: int = 1) -> UpstreamResult:
        result = await self._call(
            "GET", "/torrents", params={"page": page, "limit": limit}
        )

        total_count = None
        header = result.headers.get("X-Total-Count")
        if header:
            try:
                total_count = int(header)
            except ValueError:
                total_count = None

        if result.data is None:
            # 204 when the user has no torrents
            result.data = []
        result.data = UserTorrentsResult(
            data=parse_payload(UserTorrent, result), total_count=total_count
        )
        return result

    async def get_torrent_info(self, torrent_id: str) -> UpstreamResult:
        result = await self._call("GET", f"/torrents/info/{torrent_id}")
        result.data = parse_payload(TorrentInfoResponse, result)
        return result

    async def instant_availability(self, hashes: List[str]) -> UpstreamResult:
        valid_hashes = [h for h in hashes if is_valid_hash(h)]
        if not valid_hashes:
            return UpstreamResult({})

        result = await self._call(
            "GET", f"/torrents/instantAvailability/{'/'.join(valid_hashes)}"
        )
        if not isinstance(result.data, dict):
            raise MalformedPayload(
                result.status, result.data, "instant availability must be an object"
            )
        return result

    async def add_magnet(self, magnet: str) -> UpstreamResult:
        result = await self._call(
            "POST", "/torrents/addMagnet", data={"magnet": magnet}
        )
        result.data = parse_payload(AddMagnetResponse, result)
        return result

    async def add_hash_as_magnet(self, info_hash: str) -> UpstreamResult:
        if not is_valid_hash(info_hash):
            raise ValidationError("Invalid hash format", hash=info_hash)
        return await self.add_magnet(f"magnet:?xt=urn:btih:{info_hash}")

    async def select_files(self, torrent_id: str, files: List[str]) -> UpstreamResult:
        return await self._call(
            "POST",
            f"/torrents/selectFiles/{torrent_id}",
            data={"files": ",".join(str(file) for file in files)},
        )

    async def delete_torrent(self, torrent_id: str) -> UpstreamResult:
        return await self._call("DELETE", f"/torrents/delete/{torrent_id}")

    async def delete_download(self, download_id: str) -> UpstreamResult:
        return await self._call("DELETE", f"/downloads/delete/{download_id}")

    async def unrestrict_link(self, link: str, ip: Optional[str] = None) -> UpstreamResult:
        data = {"link": link}
        if is_public_ip(ip):
            data["ip"] = ip

        result = await self._call("POST", "/unrestrict/link", data=data)
        result.data = parse_payload(UnrestrictResponse, result)
        return result

    async def get_time_iso(self) -> str:
        result = await self.client.get(f"{self.api_url}/time/iso")
        return result.data

    async def get_device_code(self) -> DeviceCodeResponse:
        result = await self.client.get(
            "/oauth/v2/device/code",
            params={"client_id": self.oauth_client_id, "new_credentials": "yes"},
        )
        return parse_payload(DeviceCodeResponse, result)

    async def get_credentials(self, device_code: str) -> CredentialsResponse:
        result = await self.client.get(
            "/oauth/v2/device/credentials",
            params={"client_id": self.oauth_client_id, "code": device_code},
        )
        return parse_payload(CredentialsResponse, result)

    async def get_token(
        self, client_id: str, client_secret: str, code: str
    ) -> AccessTokenResponse:
        result = await self.client.post(
            "/oauth/v2/token",
            data={
                "client_id": client_id,
                "client_secret": client_secret,
                "code": code,
                "grant_type": DEVICE_GRANT_TYPE,
            },
        )
        return parse_payload(AccessTokenResponse, result)
