"""Configuration management for the claims review app."""

import os
import yaml
from dataclasses import dataclass
from typing import Any, Dict, Optional

from dotenv import load_dotenv

from .errors import ConfigError

load_dotenv()


@dataclass
class GenerationConfig:
    """Sampling parameters for one kind of chat-completion call."""
    temperature: float
    top_p: float
    max_tokens: int


@dataclass
class LLMConfig:
    """Chat-completion endpoint configuration."""
    base_url: str
    model: str
    api_key: Optional[str]
    timeout: float
    max_retries: int
    analysis: GenerationConfig
    chat: GenerationConfig


@dataclass
class AgentConfig:
    """Agent configuration."""
    name: str
    instructions: str


@dataclass
class ExtractionConfig:
    """PDF extraction limits."""
    timeout: float
    max_file_size_mb: int


@dataclass
class StorageConfig:
    """Claim persistence configuration."""
    claims_file: str
    max_history: Optional[int]


@dataclass
class LoggingConfig:
    """Logging configuration."""
    level: str
    format: str
    file: Optional[str]


@dataclass
class AppConfig:
    """Web app configuration."""
    title: str
    dashboard_limit: int
    max_sessions: int


@dataclass
class Config:
    """Main configuration class."""
    app: AppConfig
    llm: LLMConfig
    fraud_analyst: AgentConfig
    claims_assistant: AgentConfig
    extraction: ExtractionConfig
    storage: StorageConfig
    logging: LoggingConfig

    @classmethod
    def load(cls, config_path: str = "config.yaml") -> "Config":
        """
        Load configuration from file and environment variables.

        Environment variables override config file values:
        - LLM_API_KEY
        - LLM_BASE_URL
        - LLM_MODEL
        - LLM_TIMEOUT
        - EXTRACTION_TIMEOUT
        - MAX_FILE_SIZE_MB
        - CLAIMS_STORE_PATH
        - MAX_HISTORY
        - LOG_LEVEL

        Args:
            config_path: Path to YAML configuration file

        Returns:
            Config instance with loaded settings

        Raises:
            ConfigError: If the file is missing, unreadable, or lacks a section
        """
        if not os.path.exists(config_path):
            raise ConfigError.missing(f"config file '{config_path}'")

        try:
            with open(config_path, 'r') as f:
                config_data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigError.invalid(config_path, e) from e

        try:
            return cls._from_dict(config_data)
        except KeyError as e:
            raise ConfigError.missing(f"setting {e}") from e
        except (TypeError, ValueError) as e:
            raise ConfigError.invalid(config_path, e) from e

    @classmethod
    def _from_dict(cls, config_data: Dict[str, Any]) -> "Config":
        app_data = config_data["app"]
        app_config = AppConfig(
            title=app_data["title"],
            dashboard_limit=int(app_data.get("dashboard_limit", 10)),
            max_sessions=int(app_data.get("max_sessions", 1000))
        )

        # LLM configuration with environment overrides
        llm_data = config_data["llm"]
        llm_config = LLMConfig(
            base_url=os.getenv("LLM_BASE_URL", llm_data["base_url"]),
            model=os.getenv("LLM_MODEL", llm_data["model"]),
            api_key=os.getenv("LLM_API_KEY") or llm_data.get("api_key") or None,
            timeout=float(os.getenv("LLM_TIMEOUT", llm_data["timeout"])),
            max_retries=int(llm_data["max_retries"]),
            analysis=GenerationConfig(**llm_data["analysis"]),
            chat=GenerationConfig(**llm_data["chat"])
        )

        # Agent configurations
        fraud_analyst_config = AgentConfig(
            name=config_data["agents"]["fraud_analyst"]["name"],
            instructions=config_data["agents"]["fraud_analyst"]["instructions"]
        )

        claims_assistant_config = AgentConfig(
            name=config_data["agents"]["claims_assistant"]["name"],
            instructions=config_data["agents"]["claims_assistant"]["instructions"]
        )

        extraction_config = ExtractionConfig(
            timeout=float(os.getenv("EXTRACTION_TIMEOUT", config_data["extraction"]["timeout"])),
            max_file_size_mb=int(
                os.getenv("MAX_FILE_SIZE_MB", config_data["extraction"]["max_file_size_mb"])
            )
        )

        # Storage configuration
        max_history = os.getenv("MAX_HISTORY", config_data["storage"].get("max_history"))
        storage_config = StorageConfig(
            claims_file=os.getenv("CLAIMS_STORE_PATH", config_data["storage"]["claims_file"]),
            max_history=int(max_history) if max_history not in (None, "") else None
        )

        # Logging configuration
        logging_config = LoggingConfig(
            level=os.getenv("LOG_LEVEL", config_data["logging"]["level"]),
            format=config_data["logging"]["format"],
            file=config_data["logging"].get("file")
        )

        return cls(
            app=app_config,
            llm=llm_config,
            fraud_analyst=fraud_analyst_config,
            claims_assistant=claims_assistant_config,
            extraction=extraction_config,
            storage=storage_config,
            logging=logging_config,
        )
