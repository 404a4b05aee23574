from __future__ import annotations

from pydantic import BaseModel, Field, HttpUrl, field_validator


class RuntimeConfig(BaseModel):
    log_level: str = "INFO"
    data_dir: str
    bot_username: str

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, value: str) -> str:
        if value.upper() not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError("Unsupported log level")
        return value.upper()


class GitHubConfig(BaseModel):
    org: str
    token: str
    api_base: HttpUrl = Field(default="https://api.github.com")


class TeamsConfig(BaseModel):
    """Team directory source: static members and/or a JSON team API."""
    members: dict[str, list[str]] = Field(default_factory=dict)
    api_url: HttpUrl | None = None


class AssignConfig(BaseModel):
    # Insertion order of `owners` is preserved from the YAML mapping.
    owners: dict[str, list[str]] = Field(default_factory=dict)
    adhoc_groups: dict[str, list[str]] = Field(default_factory=dict)
    # Legacy list; treated the same as being off rotation.
    users_on_vacation: list[str] = Field(default_factory=list)
    fallback_group: str = "fallback"
    contributing_url: str | None = None
    auto_assign: bool = True

    @field_validator("owners")
    @classmethod
    def validate_owners(cls, value: dict[str, list[str]]) -> dict[str, list[str]]:
        for pattern, owners in value.items():
            if not pattern.strip():
                raise ValueError("owners patterns must be non-empty")
            if not owners:
                raise ValueError(f"owners[{pattern}] must list at least one owner")
        return value

    @field_validator("adhoc_groups")
    @classmethod
    def validate_adhoc_groups(cls, value: dict[str, list[str]]) -> dict[str, list[str]]:
        for name in value:
            if not name.strip():
                raise ValueError("adhoc_groups names must be non-empty")
        return value

    def fallback_members(self) -> list[str] | None:
        return self.adhoc_groups.get(self.fallback_group)


class BotConfig(BaseModel):
    runtime: RuntimeConfig
    github: GitHubConfig
    teams: TeamsConfig = Field(default_factory=TeamsConfig)
    assign: AssignConfig = Field(default_factory=AssignConfig)
