from __future__ import annotations

import os
from enum import Enum
from typing import List, Literal, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .constants import (
    DEFAULT_AGENT_MODE,
    DEFAULT_BRANCH_PREFIX,
    DEFAULT_CHECK_AGENT_FREQUENCY_MS,
    DEFAULT_ENSURE_CHAT_FREQUENCY_MS,
    DEFAULT_IDLE_TIMEOUT_SECONDS,
    DEFAULT_MAX_ITERATIONS,
    DEFAULT_PREFERRED_MODELS,
    DEFAULT_TASK_DESCRIPTION,
)
from .errors import ConfigurationError


class AgentMode(str, Enum):
    """Operating mode announced to the agent."""

    AGENT = "Agent"
    EDIT = "Edit"
    ASK = "Ask"


class WorkflowConfig(BaseModel):
    """Snapshot of the operator's workflow options.

    Keys use the camelCase names of the settings surface; snake_case field
    names are accepted as well. Instances are frozen so a snapshot taken at
    phase entry cannot change underneath a running phase.
    """

    model_config = ConfigDict(populate_by_name=True, frozen=True, extra="ignore")

    init_create_branch: bool = Field(False, alias="initCreateBranch")
    need_to_write_test: bool = Field(False, alias="needToWriteTest")
    background_mode: bool = Field(False, alias="backgroundMode")
    agent_mode: AgentMode = Field(AgentMode(DEFAULT_AGENT_MODE), alias="agentMode")
    preferred_models: List[str] = Field(
        default_factory=lambda: list(DEFAULT_PREFERRED_MODELS), alias="preferredModels"
    )
    idle_timeout_seconds: float = Field(
        DEFAULT_IDLE_TIMEOUT_SECONDS, alias="idleTimeoutSeconds", gt=0
    )
    check_agent_frequency: int = Field(
        DEFAULT_CHECK_AGENT_FREQUENCY_MS, alias="checkAgentFrequency", gt=0
    )
    ensure_chat_frequency: int = Field(
        DEFAULT_ENSURE_CHAT_FREQUENCY_MS, alias="ensureChatFrequency", gt=0
    )
    max_iterations: int = Field(DEFAULT_MAX_ITERATIONS, alias="maxIterations", ge=1)
    task_description: str = Field(DEFAULT_TASK_DESCRIPTION, alias="taskDescription")
    branch_prefix: str = Field(DEFAULT_BRANCH_PREFIX, alias="branchPrefix")
    continuation_policy: Literal["keyword", "always", "never"] = Field(
        "keyword", alias="continuationPolicy"
    )
    settle_scale: float = Field(1.0, alias="settleScale", ge=0)

    @property
    def model_priority(self) -> str:
        return " > ".join(self.preferred_models)


class HttpConfig(BaseModel):
    """Configuration for the HTTP chat bridge."""

    base_url: str = "http://localhost:8765"
    timeout: float = 30.0


class TransportConfig(BaseModel):
    """Transport configuration settings."""

    backend: Literal["inmemory", "http"] = "inmemory"
    http: HttpConfig = HttpConfig()


class PilotConfig(BaseModel):
    """Top-level configuration model."""

    workflow: WorkflowConfig = Field(default_factory=WorkflowConfig)
    transport: TransportConfig = TransportConfig()
    prompts_dir: Optional[str] = None
    log_level: str = "WARNING"


def load_config(path: Optional[str] = None) -> PilotConfig:
    """Load configuration from YAML file.

    Args:
        path: Optional path to config file. Falls back to PROMPTPILOT_CONFIG env
            variable or 'config.yaml' in the current directory.

    Raises:
        ConfigurationError: If the file cannot be parsed or fails validation.
    """

    config_path = path or os.getenv("PROMPTPILOT_CONFIG", "config.yaml")
    if path and not os.path.exists(config_path):
        raise ConfigurationError(f"Config file not found: {config_path}")

    data: dict = {}
    if os.path.exists(config_path):
        try:
            with open(config_path) as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in {config_path}: {e}") from e
        if not isinstance(data, dict):
            raise ConfigurationError(f"Config file {config_path} must contain a mapping")

    try:
        config = PilotConfig(**data)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid configuration: {e}") from e

    env_transport = os.getenv("PROMPTPILOT_TRANSPORT")
    if env_transport:
        try:
            config.transport = TransportConfig(
                backend=env_transport.lower(), http=config.transport.http
            )
        except ValidationError as e:
            raise ConfigurationError(
                f"Unsupported transport backend: {env_transport}"
            ) from e

    env_prompts = os.getenv("PROMPTPILOT_PROMPTS_DIR")
    if env_prompts:
        config.prompts_dir = env_prompts
    return config
