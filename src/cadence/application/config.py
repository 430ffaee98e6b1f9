from pathlib import Path
from typing import Any

from pydantic import Field, field_validator
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
)

CONFIG_FILES = [
    Path.home() / ".config/cadence/config.toml",
    Path.home() / ".cadence.toml",
]


class AppConfig(BaseSettings):
    """
    Configuration model for cadence.
    Supports loading from:
    1. Environment variables (CADENCE_*)
    2. Config file (~/.config/cadence/config.toml)
    3. Manual overrides (CLI)
    """

    model_config = SettingsConfigDict(
        env_prefix="CADENCE_",
        extra="ignore",
    )

    # Paths
    vault_root: Path | None = None
    data_file: Path = Field(
        default_factory=lambda: Path.home() / ".config/cadence/data.json"
    )

    # Notes
    tags_to_review: list[str] = Field(default_factory=lambda: ["#review"])
    open_random_note: bool = False
    max_n_days_notes_review_queue: int = Field(default=365, ge=1)

    # Flashcards
    flashcard_tags: list[str] = Field(default_factory=lambda: ["#flashcards"])
    convert_folders_to_decks: bool = False
    show_context_in_cards: bool = True
    disable_cloze_cards: bool = False
    singleline_card_separator: str = Field(default="::", min_length=1)
    multiline_card_separator: str = Field(default="?", min_length=1)

    # Algorithm
    base_ease: int = Field(default=250, ge=130)
    max_link_factor: float = Field(default=1.0, ge=0.0, le=1.0)
    lapses_interval_change: float = Field(default=0.5, gt=0.0, le=1.0)
    easy_bonus: float = Field(default=1.3, ge=1.0)
    maximum_interval: int = Field(default=36525, ge=1)

    verbose: int = 1

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        from pydantic_settings import TomlConfigSettingsSource

        # Find the first existing file
        toml_file = None
        for f in CONFIG_FILES:
            if f.exists():
                toml_file = f
                break

        if toml_file:
            return (
                init_settings,
                env_settings,
                TomlConfigSettingsSource(settings_cls, toml_file=toml_file),
            )
        return (init_settings, env_settings)

    @field_validator("vault_root", mode="before")
    @classmethod
    def resolve_vault_root(cls, v: Any) -> Path | None:
        if v is None:
            return None
        return Path(v).expanduser().resolve()

    @field_validator("tags_to_review", "flashcard_tags", mode="before")
    @classmethod
    def normalize_tags(cls, v: Any) -> list[str]:
        if isinstance(v, str):
            v = v.replace(",", " ").split()
        return [t if t.startswith("#") else f"#{t}" for t in v]


def resolve_config(cli_overrides: dict[str, Any] | None = None) -> AppConfig:
    """
    Multi-layered configuration resolution.
    1. Defaults in AppConfig
    2. ~/.config/cadence/config.toml (if exists)
    3. Environment variables (CADENCE_*)
    4. cli_overrides (passed from Typer)
    """
    overrides = {k: v for k, v in (cli_overrides or {}).items() if v is not None}
    config = AppConfig(**overrides)

    if config.vault_root is None:
        config.vault_root = Path.cwd()

    return config
