"""Configuration schema using Pydantic."""

from pathlib import Path

from pydantic import BaseModel, Field, field_validator

from pairguard.identity.normalize import parse_identifier


class TelegramAccessConfig(BaseModel):
    """Who may talk to the bot over Telegram.

    Policies are kept as plain strings; an unknown value is denied by the
    access controller rather than rejected at load time.
    """

    dm_policy: str = "pairing"
    allow_from: list[str] = Field(default_factory=list)
    group_policy: str = "allowlist"
    group_allow_from: list[str] = Field(default_factory=list)
    require_mention: bool = False
    mention_keywords: list[str] = Field(default_factory=list)

    @field_validator("allow_from", "group_allow_from")
    @classmethod
    def _check_identifiers(cls, v: list[str]) -> list[str]:
        for entry in v:
            parse_identifier(entry)
        return v

    @field_validator("mention_keywords")
    @classmethod
    def _lower_keywords(cls, v: list[str]) -> list[str]:
        return [k.strip().lstrip("@").lower() for k in v if k.strip()]


class StorageConfig(BaseModel):
    """Where the pairing and allow-list documents live, and lock tuning."""

    data_dir: str = "~/.pairguard/credentials"
    pairing_ttl_seconds: int = Field(default=3600, gt=0)
    max_pending_per_chat: int = Field(default=3, ge=1)
    lock_timeout_seconds: float = Field(default=5.0, gt=0)
    lock_retry_delay_seconds: float = Field(default=0.05, gt=0)

    @property
    def data_path(self) -> Path:
        return Path(self.data_dir).expanduser()

    @property
    def pairing_path(self) -> Path:
        return self.data_path / "telegram-pairing.json"

    @property
    def allowlist_path(self) -> Path:
        return self.data_path / "telegram-allowlist.json"


class Config(BaseModel):
    """Root configuration for pairguard."""

    telegram: TelegramAccessConfig = Field(default_factory=TelegramAccessConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
