import logging
import os
from typing import Annotated, Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic_settings import (
    BaseSettings,
    JsonConfigSettingsSource,
    NoDecode,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
)

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = "./config.json"


class RepoRef(BaseModel):
    """A monitored repository: `owner/name` plus a human display label."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str = ""

    @model_validator(mode="before")
    @classmethod
    def _default_name(cls, data: Any) -> Any:
        if isinstance(data, dict) and not data.get("name"):
            return {**data, "name": data.get("id", "")}
        return data


DEMO_REPOS: list[RepoRef] = [
    RepoRef(id="vercel/next.js", name="🚀 Next.js"),
    RepoRef(id="apache/superset", name="📊 Superset"),
]


def parse_repo_list(raw: str) -> list[dict[str, str]]:
    """Parse the `REPOS` env format: `owner/name:Label,owner2/name2`.

    The label may itself contain colons; a missing label falls back to the id.
    """
    repos = []
    for entry in raw.split(","):
        repo_id, _, label = entry.strip().partition(":")
        if not repo_id:
            continue
        repos.append({"id": repo_id, "name": label or repo_id})
    return repos


class Settings(BaseSettings):
    """Application settings merged from env vars, `.env` and the JSON config file."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        populate_by_name=True,
        extra="ignore",
    )

    # Monitored repositories and upstream credential
    repos: Annotated[list[RepoRef], NoDecode] = Field(
        default_factory=list, validation_alias=AliasChoices("repos")
    )
    github_token: str | None = Field(
        default=None, validation_alias=AliasChoices("github_token", "githubToken")
    )

    # Scheduling
    # Interval between full queue re-prioritizations
    refresh_seconds: float = Field(
        default=60, gt=0, validation_alias=AliasChoices("refresh_seconds", "refreshSeconds")
    )
    # Interval between single-repository updates (one repo per tick)
    repo_update_interval_seconds: float = Field(
        default=10,
        gt=0,
        validation_alias=AliasChoices("repo_update_interval_seconds", "repoUpdateIntervalSeconds"),
    )
    # Set False to serve the cache without polling (local dev)
    scheduler_enabled: bool = True

    # Feed / cache sizing
    feed_limit: int = Field(default=120, ge=0, validation_alias=AliasChoices("feed_limit", "feedLimit"))
    commit_stats_max_entries: int = Field(
        default=5000,
        ge=1,
        validation_alias=AliasChoices("commit_stats_max_entries", "commitStatsMaxEntries"),
    )

    # HTTP
    port: int = Field(default=8000, validation_alias=AliasChoices("port"))
    static_dir: str = Field(default="public", validation_alias=AliasChoices("static_dir", "staticDir"))

    # Code audit
    code_audit_enabled: bool = Field(
        default=False, validation_alias=AliasChoices("code_audit_enabled", "codeAuditEnabled")
    )
    code_audit_interval_hours: float = Field(
        default=4,
        validation_alias=AliasChoices("code_audit_interval_hours", "codeAuditIntervalHours"),
    )
    code_audit_tmp_dir: str = Field(
        default=os.path.join(".audit", "repos"),
        validation_alias=AliasChoices("code_audit_tmp", "code_audit_tmp_dir", "codeAuditTmpDir"),
    )
    code_audit_lang: str = Field(
        default="zh-CN", validation_alias=AliasChoices("code_audit_lang", "codeAuditLang")
    )
    code_audit_args: str = Field(
        default="--verbose --top 10 --issues 5",
        validation_alias=AliasChoices("code_audit_args", "codeAuditArgs"),
    )
    code_audit_max_reports: int = Field(
        default=200,
        ge=1,
        validation_alias=AliasChoices("code_audit_max_reports", "codeAuditMaxReports"),
    )
    code_audit_cli: str = Field(
        default="fuck-u-code", validation_alias=AliasChoices("code_audit_cli", "codeAuditCli")
    )

    @field_validator("repos", mode="before")
    @classmethod
    def _parse_repos(cls, value: Any) -> Any:
        if isinstance(value, str):
            return parse_repo_list(value)
        if isinstance(value, list):
            # Drop entries without an id
            return [r for r in value if not isinstance(r, dict) or r.get("id")]
        return value

    @model_validator(mode="after")
    def _fallback_to_demo_repos(self) -> "Settings":
        if not self.repos:
            logger.warning("[config] No repos configured. Using demo repos.")
            self.repos = list(DEMO_REPOS)
        return self

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        # Env wins over the JSON file; a missing file contributes nothing
        json_file = os.environ.get("CONFIG_PATH", DEFAULT_CONFIG_PATH)
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            JsonConfigSettingsSource(settings_cls, json_file=json_file),
            file_secret_settings,
        )


settings = Settings()
