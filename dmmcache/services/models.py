import re
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

info_hash_pattern = re.compile(r"^[a-fA-F0-9]{40}$")


def is_valid_hash(value) -> bool:
    return isinstance(value, str) and info_hash_pattern.fullmatch(value) is not None


class ScrapedFile(BaseModel):
    name: str
    size: int = Field(ge=0)


class ScrapedRecord(BaseModel):
    """One candidate torrent for a media key."""

    hash: str
    title: Optional[str] = None
    files: List[ScrapedFile] = []
    size: int = Field(default=0, ge=0)
    trusted: bool = False

    @field_validator("hash")
    def check_hash(cls, v):
        if not is_valid_hash(v):
            raise ValueError("hash must be 40 hexadecimal characters")
        return v

    @model_validator(mode="after")
    def fill_size(self):
        if not self.size and self.files:
            self.size = sum(file.size for file in self.files)
        return self

    @property
    def info_hash(self) -> str:
        return self.hash.lower()


class AvailabilityMatch(BaseModel):
    hash: str
    files: List[ScrapedFile] = []
    size: int = 0


class GatewayStatus(Enum):
    HIT = "hit"
    PROCESSING = "processing"
    REQUESTED = "requested"


@dataclass
class GatewayResult:
    status: GatewayStatus
    results: List[ScrapedRecord] = field(default_factory=list)
    warning: Optional[str] = None
