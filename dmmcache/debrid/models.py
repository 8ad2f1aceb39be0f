from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict


class RealDebridPayload(BaseModel):
    model_config = ConfigDict(extra="allow")


class UserResponse(RealDebridPayload):
    id: int
    username: str
    email: Optional[str] = None
    points: int = 0
    type: str
    premium: int = 0
    expiration: Optional[str] = None

    @property
    def is_premium(self) -> bool:
        return self.type == "premium"


class UserTorrent(RealDebridPayload):
    id: str
    filename: str
    hash: str
    bytes: int = 0
    progress: float = 0
    status: str
    added: Optional[str] = None
    links: List[str] = []


class TorrentFile(RealDebridPayload):
    id: int
    path: str
    bytes: int = 0
    selected: int = 0


class TorrentInfoResponse(UserTorrent):
    original_filename: Optional[str] = None
    original_bytes: Optional[int] = None
    files: List[TorrentFile] = []


class AddMagnetResponse(RealDebridPayload):
    id: str
    uri: str


class UnrestrictResponse(RealDebridPayload):
    id: str
    filename: str
    filesize: int = 0
    link: str
    download: str
    streamable: Optional[int] = None


class DeviceCodeResponse(RealDebridPayload):
    device_code: str
    user_code: str
    interval: int
    expires_in: int
    verification_url: str


class CredentialsResponse(RealDebridPayload):
    client_id: str
    client_secret: str


class AccessTokenResponse(RealDebridPayload):
    access_token: str
    expires_in: int
    token_type: str = "Bearer"
    refresh_token: Optional[str] = None


class UserTorrentsResult(BaseModel):
    data: List[UserTorrent]
    total_count: Optional[int] = None

