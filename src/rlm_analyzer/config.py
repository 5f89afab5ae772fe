"""Configuration management for rlm-analyzer using pydantic-settings.

Settings priority (highest to lowest):
1. Init kwargs / CLI flags
2. Environment variables (RLM_* prefix, plus the AZURE_OPENAI_* names)
3. .env file
4. rlm.yaml project config
5. Default values
"""

import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import AliasChoices, Field, model_validator
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource, SettingsConfigDict

from rlm_analyzer.analysis.models import AnalyzeOptions
from rlm_analyzer.errors import ConfigurationError

PROJECT_FILE = "rlm.yaml"

# rlm.yaml keys copied onto AnalyzerConfig fields of the same name
_YAML_KEYS = ("root_deployment", "sub_deployment", "rpm", "timeout", "options")


class _ProjectYamlSource(PydanticBaseSettingsSource):
    """Read project config from rlm.yaml (lower priority than env vars)."""

    def get_field_value(self, field, field_name):  # type: ignore[override]
        return None, field_name, False

    def __call__(self) -> dict[str, Any]:
        project_file = Path(PROJECT_FILE)
        if not project_file.exists():
            return {}

        raw = yaml.safe_load(project_file.read_text()) or {}

        result: dict[str, Any] = {}
        for key in _YAML_KEYS:
            if key in raw:
                result[key] = raw[key]
        return result


class AnalyzerConfig(BaseSettings):
    """Settings for oracle deployments, credentials and default run limits.

    Deployments use LiteLLM model strings (``azure/<deployment>``,
    ``openai/gpt-4o-mini``, ``ollama/llama3.3``). Empty environment values
    are treated as unset.

    Example:
        >>> config = AnalyzerConfig(root_deployment="azure/gpt-4o")
        >>> config.validate_credentials(config.root_deployment)
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="RLM_",
        extra="ignore",
        env_ignore_empty=True,
        populate_by_name=True,
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            _ProjectYamlSource(settings_cls),
            file_secret_settings,
        )

    root_deployment: str | None = Field(
        default=None,
        validation_alias=AliasChoices(
            "root_deployment",
            "RLM_ROOT_DEPLOYMENT",
            "AZURE_OPENAI_DEPLOYMENT_ROOT",
            "AZURE_OPENAI_DEPLOYMENT",
        ),
        description="Deployment for base, retrieval, aggregation and rewrite calls",
    )

    sub_deployment: str = Field(
        default="azure/gpt-5-nano",
        validation_alias=AliasChoices("sub_deployment", "RLM_SUB_DEPLOYMENT", "AZURE_OPENAI_DEPLOYMENT_SUB"),
        description="Lightweight deployment for per-chunk sub-calls",
    )

    azure_endpoint: str | None = Field(
        default=None,
        validation_alias=AliasChoices("azure_endpoint", "AZURE_OPENAI_ENDPOINT"),
    )

    azure_api_key: str | None = Field(
        default=None,
        validation_alias=AliasChoices("azure_api_key", "AZURE_OPENAI_API_KEY"),
    )

    azure_api_version: str | None = Field(
        default=None,
        validation_alias=AliasChoices("azure_api_version", "AZURE_OPENAI_API_VERSION", "OPENAI_API_VERSION"),
    )

    openai_api_key: str | None = Field(
        default=None,
        description="OpenAI API key for openai/* deployments",
    )

    anthropic_api_key: str | None = Field(
        default=None,
        description="Anthropic API key for anthropic/* deployments",
    )

    rpm: int = Field(default=120, ge=0, description="Max oracle requests per minute (0 disables)")

    timeout: int = Field(default=120, gt=0, description="Per-call transport timeout in seconds")

    options: AnalyzeOptions = Field(
        default_factory=AnalyzeOptions,
        description="Default analysis limits, overridable per request",
    )

    @model_validator(mode="after")
    def _export_api_keys(self) -> "AnalyzerConfig":
        """Export API keys to environment so LiteLLM can find them."""
        key_map = {
            "OPENAI_API_KEY": self.openai_api_key,
            "ANTHROPIC_API_KEY": self.anthropic_api_key,
        }
        for env_var, value in key_map.items():
            if value and env_var not in os.environ:
                os.environ[env_var] = value
        return self

    def validate_credentials(self, deployment: str) -> None:
        """Validate that credentials exist for the deployment's provider.

        Raises:
            ConfigurationError: Naming every missing variable
        """
        if deployment.startswith("azure/"):
            missing = []
            if not self.azure_endpoint:
                missing.append("AZURE_OPENAI_ENDPOINT")
            if not self.azure_api_key:
                missing.append("AZURE_OPENAI_API_KEY")
            if not self.azure_api_version:
                missing.append("AZURE_OPENAI_API_VERSION")
            if missing:
                raise ConfigurationError(f"Missing Azure OpenAI configuration: {', '.join(missing)}.")

        if deployment.startswith("openai/") and not self.openai_api_key and not os.environ.get("OPENAI_API_KEY"):
            raise ConfigurationError(
                "OPENAI_API_KEY not found. Set in environment or .env file.\n"
                "Get your key from: https://platform.openai.com/api-keys"
            )

        if deployment.startswith("anthropic/") and not self.anthropic_api_key and not os.environ.get("ANTHROPIC_API_KEY"):
            raise ConfigurationError(
                "ANTHROPIC_API_KEY not found. Set in environment or .env file.\n"
                "Get your key from: https://console.anthropic.com/settings/keys"
            )

        # Ollama models run locally - no API key needed
