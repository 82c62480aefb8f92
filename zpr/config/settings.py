"""Application settings using Pydantic Settings for environment variable management."""

from pathlib import Path
from typing import Literal

from pydantic import AliasChoices, BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class RepositoryConfig(BaseModel):
    """A repository that can be reviewed, addressed by a short name in requests."""

    repo_id: str = Field(description="Repository identifier used by the repo provider")
    overview_path: str | None = Field(
        default=None, description="Path to a markdown overview of the project"
    )
    overview: str | None = Field(
        default=None, description="Inline project overview (used when no path is set)"
    )

    def load_overview(self) -> str | None:
        """Return the project overview document, reading it from disk if configured.

        Raises:
            ValueError: If overview_path is set but the file does not exist
        """
        if self.overview_path:
            path = Path(self.overview_path)
            if not path.exists():
                raise ValueError(f"Overview file not found: {path}")
            return path.read_text(encoding="utf-8")
        return self.overview


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env.local",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
        populate_by_name=True,
        protected_namespaces=("settings_",),
    )

    # Server Configuration
    host: str = Field(default="127.0.0.1", description="Server host")
    port: int = Field(
        default=8000,
        validation_alias=AliasChoices("ZPR_PORT", "PORT"),
        description="Server port",
    )
    api_key: str | None = Field(
        default=None,
        validation_alias="API_KEY",
        description="Key callers must send in X-API-Key or Authorization headers",
    )

    # Application Settings
    debug: bool = Field(default=False, description="Enable debug mode")
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO", description="Logging level"
    )
    environment: Literal["development", "staging", "production"] = Field(
        default="development", description="Application environment"
    )

    # Observability
    logfire_token: str | None = Field(
        default=None, description="Pydantic Logfire token for observability"
    )

    # Database Configuration
    database_url: str = Field(
        default="sqlite:///./zpr.db",
        validation_alias=AliasChoices("DB_URI", "DATABASE_URL"),
        description="SQLAlchemy database URL (PostgreSQL in production)",
    )

    # Repository provider
    repo_provider: Literal["azure", "github"] = Field(
        default="azure", description="Source control backend to review against"
    )

    # Azure DevOps Configuration
    azure_org_url: str | None = Field(
        default=None, description="Azure DevOps organisation URL"
    )
    azure_tenant_id: str | None = Field(default=None, description="Azure AD tenant ID")
    azure_client_id: str | None = Field(
        default=None, description="Service principal client ID"
    )
    azure_client_secret: str | None = Field(
        default=None, description="Service principal client secret"
    )

    # GitHub App Configuration
    # GitHub Actions doesn't allow env var names starting with GITHUB_
    github_app_id: str | None = Field(
        default=None, validation_alias="APP_ID", description="GitHub App ID"
    )
    github_app_installation_id: str | None = Field(
        default=None,
        validation_alias="APP_INSTALLATION_ID",
        description="GitHub App Installation ID",
    )
    github_app_private_key_path: str | None = Field(
        default=None,
        validation_alias="APP_PRIVATE_KEY_PATH",
        description="Path to GitHub App private key .pem file",
    )
    github_app_private_key: str | None = Field(
        default=None,
        validation_alias="APP_PRIVATE_KEY",
        description="GitHub App private key content (alternative to file path)",
    )

    # Repositories that may be reviewed, keyed by the name callers use
    repositories: dict[str, RepositoryConfig] = Field(
        default_factory=dict,
        validation_alias=AliasChoices("ZPR_REPOSITORIES", "REPOSITORIES"),
        description="JSON object mapping repo names to repo ids and overviews",
    )

    # Model backend
    llm_provider: Literal["ollama", "openai"] = Field(
        default="ollama", description="Model backend used for reviews"
    )
    llm_base_url: str = Field(
        default="http://localhost:11434", description="Model backend base URL"
    )
    llm_api_key: str | None = Field(default=None, description="Model backend API key")
    default_model_name: str = Field(
        default="qwen2.5-coder:14b",
        description="Model used when a review request does not name one",
    )
    review_temperature: float = Field(
        default=0.2, description="Temperature for model responses"
    )
    llm_context_window: int = Field(
        default=8192, description="Context window requested from Ollama (num_ctx)"
    )
    max_retries: int = Field(
        default=2, description="Maximum number of attempts for model calls"
    )
    model_timeout_seconds: float | None = Field(
        default=None,
        description="Per-file bound on a model call; unset means wait indefinitely",
    )

    # Feedback reconciliation
    feedback_strict_matching: bool = Field(
        default=False,
        description="Fail re-review when a reply's thread has no stored comment",
    )

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment == "production"

    @property
    def is_development(self) -> bool:
        """Check if running in development environment."""
        return self.environment == "development"

    def missing_production_secrets(self) -> list[str]:
        """List required environment variables that are unset for the chosen providers."""
        missing = []
        if not self.api_key:
            missing.append("API_KEY")
        if self.repo_provider == "azure":
            for name in (
                "azure_org_url",
                "azure_tenant_id",
                "azure_client_id",
                "azure_client_secret",
            ):
                if not getattr(self, name):
                    missing.append(name.upper())
        else:
            if not self.github_app_id:
                missing.append("APP_ID")
            if not self.github_app_installation_id:
                missing.append("APP_INSTALLATION_ID")
            if not (self.github_app_private_key or self.github_app_private_key_path):
                missing.append("APP_PRIVATE_KEY or APP_PRIVATE_KEY_PATH")
        if self.llm_provider == "openai" and not self.llm_api_key:
            missing.append("LLM_API_KEY")
        return missing


# Global settings instance
settings = Settings()

# Validate required secrets in production to avoid silent failures
if settings.is_production:
    missing = settings.missing_production_secrets()
    if missing:
        raise RuntimeError(
            "Missing required environment variables for production: "
            + ", ".join(missing)
        )
