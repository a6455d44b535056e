"""Configuration schema using Pydantic."""

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_SYSTEM_PROMPT = (
    "You are the assistant behind a business messaging inbox. You read the latest "
    "batch of messages from one customer and decide what to do next."
)
DEFAULT_JWT_SECRET = "dev_admin_secret_change_me"


class ServerConfig(BaseModel):
    """HTTP server configuration."""
    host: str = "0.0.0.0"
    port: int = 3012


class AdminConfig(BaseModel):
    """Admin authentication and control configuration."""
    jwt_secret: str = DEFAULT_JWT_SECRET
    token_ttl_seconds: int = 3600
    restart_grace_seconds: float = 1.0

    @property
    def uses_default_secret(self) -> bool:
        return self.jwt_secret == DEFAULT_JWT_SECRET


class ReasoningConfig(BaseModel):
    """Reasoning (LLM) service configuration."""
    model: str = "openai/gpt-4o-mini"
    api_key: str = ""
    api_base: str | None = None
    max_tokens: int = 2048
    temperature: float = 0.2
    system_prompt: str = DEFAULT_SYSTEM_PROMPT


class ModulesConfig(BaseModel):
    """Third-party capability module discovery policy."""
    enabled: bool = True  # Load modules from the inbox_agent.modules entry-point group
    allow: list[str] = Field(default_factory=list)
    deny: list[str] = Field(default_factory=list)


class LoggingConfig(BaseModel):
    """Log sink configuration."""
    level: str = "INFO"
    file: str = ""  # Appending log file, e.g. "~/.inbox-agent/logs/inbox-agent.log"


class Config(BaseSettings):
    """Root configuration for Inbox Agent."""
    server: ServerConfig = Field(default_factory=ServerConfig)
    admin: AdminConfig = Field(default_factory=AdminConfig)
    reasoning: ReasoningConfig = Field(default_factory=ReasoningConfig)
    modules: ModulesConfig = Field(default_factory=ModulesConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = SettingsConfigDict(
        env_prefix="INBOX_AGENT_",
        env_nested_delimiter="__",
    )
