import os
from enum import StrEnum

import yaml
from pydantic import BaseModel, Field, ValidationError, model_validator, validate_call
from pydantic.types import FilePath

from switchboard.common import ConfigurationError, get_logger
from switchboard.server.constants import CHANNELS, ENCODING, SAMPLE_RATE
from switchboard.wire import Role

logger = get_logger("cfg")


def _mask(secret: str | None) -> str:
  if not secret:
    return "<unset>"
  return f"{secret[:4]}…" if len(secret) > 8 else "****"


class FinalizationPolicy(StrEnum):
  """Which provider results become transcript events."""

  FINAL_ONLY = "final_only"
  """Only results the provider marks final are broadcast and stored."""

  ALL = "all"
  """Interim results are broadcast too (final=False); only final results are stored."""


class UserEntry(BaseModel):
  """One row of the static credential table."""

  password: str = Field(min_length=1)
  role: Role = Role.AGENT


class RelayConfig(BaseModel):
  """Configuration for per-connection relay behaviour and broadcast filtering."""

  auth_required: bool = False
  """Whether clients must authenticate before starting calls."""

  role_filtering: bool = False
  """Whether call and presence events go to managers only, rather than to every client."""

  default_source: str | None = None
  """Source tag binary frames are attributed to before the client sends one."""

  sources: dict[str, str] = Field(
    default_factory=lambda: {"mic": "Agent (microphone)", "tab": "Caller (tab audio)"},
    min_length=1,
  )
  """Audio sources opened per call, mapped to the label used in summary transcripts."""

  @model_validator(mode="after")
  def validate_filtering_needs_roles(self) -> "RelayConfig":
    """Role filtering only works when clients have roles, i.e. when they authenticate."""
    if self.role_filtering and not self.auth_required:
      raise ValueError("role_filtering requires auth_required, since roles come from login")
    return self


class TranscriptionConfig(BaseModel):
  """Configuration for the streaming speech-to-text provider connections."""

  url: str = "wss://api.deepgram.com/v1/listen"
  """Provider streaming endpoint."""

  api_key: str | None = Field(default_factory=lambda: os.getenv("DEEPGRAM_API_KEY"))
  """Provider API key (Env: DEEPGRAM_API_KEY)."""

  model: str = "nova-2"
  language: str = "en-US"
  interim_results: bool = True
  smart_format: bool = True
  punctuate: bool = True

  finalization: FinalizationPolicy = FinalizationPolicy.FINAL_ONLY
  """Which provider results are turned into transcript events."""

  max_pending_frames: int = Field(default=500, gt=0)
  """Frames held per source while the provider connection is opening; extra frames are dropped."""

  open_timeout: float = Field(default=10.0, gt=0.0)
  """Seconds allowed for the provider handshake."""

  drain_timeout: float = Field(default=2.0, ge=0.0)
  """Seconds to wait for trailing final results after asking the provider to close."""

  keepalive_interval: float | None = Field(default=None, gt=0.0)
  """If set, seconds between provider keep-alive messages."""

  def listen_url(self) -> str:
    """Full provider URL, with the fixed audio format and the configured options."""
    params = {
      "model": self.model,
      "language": self.language,
      "encoding": ENCODING,
      "sample_rate": SAMPLE_RATE,
      "channels": CHANNELS,
      "interim_results": self.interim_results,
      "smart_format": self.smart_format,
      "punctuate": self.punctuate,
    }
    query = "&".join(
      f"{key}={str(value).lower() if isinstance(value, bool) else value}"
      for key, value in params.items()
    )
    return f"{self.url}?{query}"


class SummaryConfig(BaseModel):
  """Configuration for the post-call summarization provider."""

  base_url: str = "https://generativelanguage.googleapis.com/v1beta"
  model: str = "gemini-2.0-flash"

  api_key: str | None = Field(default_factory=lambda: os.getenv("GEMINI_API_KEY"))
  """Provider API key (Env: GEMINI_API_KEY)."""

  timeout: float = Field(default=30.0, gt=0.0)
  """Seconds allowed for one summarization round trip."""

  min_key_points: int = Field(default=3, gt=0)
  max_key_points: int = Field(default=5, gt=0)

  @model_validator(mode="after")
  def validate_key_point_range(self) -> "SummaryConfig":
    if self.min_key_points > self.max_key_points:
      raise ValueError(
        f"min_key_points ({self.min_key_points}) must not exceed "
        f"max_key_points ({self.max_key_points})"
      )
    return self


class SwitchboardConfig(BaseModel):
  """Top-level Switchboard configuration."""

  relay: RelayConfig = Field(default_factory=RelayConfig)
  users: dict[str, UserEntry] = Field(default_factory=dict)
  transcription: TranscriptionConfig = Field(default_factory=TranscriptionConfig)
  summary: SummaryConfig = Field(default_factory=SummaryConfig)

  @model_validator(mode="after")
  def validate_users_for_auth(self) -> "SwitchboardConfig":
    if self.relay.auth_required and not self.users:
      raise ValueError("auth_required is set but no users are configured")
    return self

  def pretty_print(self) -> None:
    """Log the complete effective configuration at INFO level, with secrets masked."""
    logger.info("=" * 60)
    logger.info("SWITCHBOARD CONFIGURATION")
    logger.info("=" * 60)

    logger.info("RELAY SETTINGS:")
    logger.info(f"  Auth Required: {self.relay.auth_required}")
    logger.info(f"  Role Filtering: {self.relay.role_filtering}")
    logger.info(f"  Default Source: {self.relay.default_source}")
    logger.info(f"  Sources: {', '.join(self.relay.sources)}")
    logger.info(f"  Users: {len(self.users)}")

    logger.info("TRANSCRIPTION SETTINGS:")
    logger.info(f"  URL: {self.transcription.url}")
    logger.info(f"  API Key: {_mask(self.transcription.api_key)}")
    logger.info(f"  Model: {self.transcription.model}")
    logger.info(f"  Language: {self.transcription.language}")
    logger.info(f"  Finalization: {self.transcription.finalization}")
    logger.info(f"  Max Pending Frames: {self.transcription.max_pending_frames}")
    logger.info(f"  Open Timeout: {self.transcription.open_timeout}s")
    logger.info(f"  Drain Timeout: {self.transcription.drain_timeout}s")
    logger.info(f"  Keep-alive Interval: {self.transcription.keepalive_interval}")

    logger.info("SUMMARY SETTINGS:")
    logger.info(f"  Model: {self.summary.model}")
    logger.info(f"  API Key: {_mask(self.summary.api_key)}")
    logger.info(f"  Timeout: {self.summary.timeout}s")
    logger.info(f"  Key Points: {self.summary.min_key_points}-{self.summary.max_key_points}")

    logger.info("=" * 60)


@validate_call
def load_config_from_file(config_path: FilePath) -> SwitchboardConfig:
  """Load and validate Switchboard configuration from YAML file."""

  logger.info("Loading Switchboard configuration", path=str(config_path))

  try:
    with open(config_path, encoding="utf-8") as file:
      config_data = yaml.safe_load(file)

  except yaml.YAMLError as e:
    raise ConfigurationError(f"Invalid YAML in configuration file: {e}") from e
  except OSError as e:
    raise ConfigurationError(f"Error reading configuration file: {e}") from e

  if config_data is None:
    raise ConfigurationError("Configuration file is empty")

  if not isinstance(config_data, dict):
    raise ConfigurationError("Configuration file must contain a YAML dictionary")

  try:
    return SwitchboardConfig.model_validate(config_data)
  except ValidationError as e:
    raise ConfigurationError(str(e)) from e
