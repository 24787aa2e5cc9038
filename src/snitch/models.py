"""Value types flowing through the engine."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator


class Sample(BaseModel):
    """A monitored artifact. Identity is the hash; the name is descriptive only."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(description="Human readable label, usually the file name")
    hash: str = Field(min_length=1, description="Hex digest of the content")

    @field_validator("hash")
    @classmethod
    def _normalize_hash(cls, value: str) -> str:
        value = value.strip().lower()
        if not value:
            raise ValueError("hash must not be blank")
        return value

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Sample):
            return NotImplemented
        return self.hash == other.hash

    def __hash__(self) -> int:
        return hash(self.hash)


class ScanResult(BaseModel):
    """A positive detection of a sample by one provider."""

    model_config = ConfigDict(frozen=True)

    sample: Sample
    provider: str
    last_seen: datetime
