"""Connection configuration and its persisted shapes."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, field_validator


class ConnectionConfig(BaseModel):
    """Homeserver origin and bearer token. Replaced wholesale, never mutated."""

    model_config = ConfigDict(frozen=True)

    base_url: str
    credential: str

    @field_validator("base_url")
    @classmethod
    def _strip_trailing_slash(cls, value: str) -> str:
        return value.strip().rstrip("/")

    @field_validator("credential")
    @classmethod
    def _strip_credential(cls, value: str) -> str:
        return value.strip()

    def to_structured(self) -> dict:
        return StructuredConfig(
            homeserver=HomeserverGroup(url=self.base_url),
            credentials=CredentialGroup(access_token=self.credential),
        ).model_dump()

    def to_flat(self) -> dict[str, str]:
        return {"homeserver_url": self.base_url, "access_token": self.credential}

    def __repr__(self) -> str:
        return f"ConnectionConfig(base_url={self.base_url!r}, credential='***')"

    __str__ = __repr__


class HomeserverGroup(BaseModel):
    url: str = ""


class CredentialGroup(BaseModel):
    access_token: str = ""


class StructuredConfig(BaseModel):
    """Current config.json schema: nested origin and credential groups."""
    homeserver: HomeserverGroup = HomeserverGroup()
    credentials: CredentialGroup = CredentialGroup()

    @classmethod
    def from_file_payload(cls, data: dict) -> "StructuredConfig":
        """Accept the nested schema or the older flat ``homeserverUrl``/``accessToken`` one."""
        if "homeserver" in data or "credentials" in data:
            return cls.model_validate(data)
        return cls(
            homeserver=HomeserverGroup(url=str(data.get("homeserverUrl") or "")),
            credentials=CredentialGroup(access_token=str(data.get("accessToken") or "")),
        )
