from typing import Optional
from urllib.parse import quote_plus

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class DatabaseConfig(BaseSettings):
    """Database configuration"""

    host: str = "localhost"
    port: int = 5432
    username: str = "postgres"
    password: SecretStr = Field(default=SecretStr("postgres"))
    database: str = "playsession_reports"
    search_schema: Optional[str] = None
    serverless: bool = Field(
        default=True,
        description="If true, disable connection pooling so serverless DBs can pause.",
    )

    @property
    def url(self) -> str:
        """Get database URL"""
        username = quote_plus(self.username)
        password = quote_plus(self.password.get_secret_value())
        return (
            "postgresql+asyncpg://"
            f"{username}:{password}"
            f"@{self.host}:{self.port}/{self.database}"
        )

    model_config = SettingsConfigDict(
        env_prefix="DB_",
        env_file=".env",
        secrets_dir=".secrets",
        case_sensitive=False,
        extra="ignore",
    )


class S3Config(BaseSettings):
    """S3 configuration for stored session audio."""

    access_key: Optional[str] = None
    secret_key: Optional[str] = None
    region: str = "us-east-1"
    bucket_name: str = "playsession-recordings"
    presigned_url_expiration: int = Field(default=3600, ge=60)

    model_config = SettingsConfigDict(
        env_prefix="S3_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )


class BedrockConfig(BaseSettings):
    """Amazon Bedrock configuration.

    One client serves every generation capability; each capability may pin its
    own model id and token budget.
    """

    region: str = Field(
        default="us-east-1",
        validation_alias="BEDROCK_REGION",
    )
    model_id: str = Field(
        default="anthropic.claude-3-5-sonnet-20240620-v1:0",
        validation_alias="BEDROCK_MODEL_ID",
    )
    coaching_model_id: Optional[str] = Field(
        default=None,
        validation_alias="BEDROCK_COACHING_MODEL_ID",
    )
    max_tokens: int = Field(
        default=2048,
        validation_alias="BEDROCK_MAX_TOKENS",
        ge=1,
        le=16384,
    )
    coding_max_tokens: int = Field(
        default=8192,
        validation_alias="BEDROCK_CODING_MAX_TOKENS",
        ge=1,
        le=16384,
    )
    temperature: float = Field(
        default=0.0,
        validation_alias="BEDROCK_TEMPERATURE",
        ge=0.0,
        le=1.0,
    )
    top_p: float = Field(
        default=0.9,
        validation_alias="BEDROCK_TOP_P",
        ge=0.0,
        le=1.0,
    )
    read_timeout_seconds: int = Field(
        default=300,
        validation_alias="BEDROCK_READ_TIMEOUT_SECONDS",
        ge=1,
    )
    max_invoke_attempts: int = Field(
        default=3,
        validation_alias="BEDROCK_MAX_INVOKE_ATTEMPTS",
        ge=1,
    )
    invoke_backoff_seconds: float = Field(
        default=5.0,
        validation_alias="BEDROCK_INVOKE_BACKOFF_SECONDS",
        ge=0.0,
    )
    api_key: SecretStr | None = Field(
        default=None,
        validation_alias="BEDROCK_API_KEY",
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        secrets_dir=".secrets",
        case_sensitive=False,
        extra="ignore",
    )


class ElevenLabsConfig(BaseSettings):
    """ElevenLabs speech-to-text configuration."""

    api_key: SecretStr | None = None
    base_url: str = "https://api.elevenlabs.io/v1"
    diarization_model: str = "scribe_v1"
    text_model: str = "scribe_v2"
    diarization_threshold: float = 0.1
    timeout_seconds: float = 300.0

    model_config = SettingsConfigDict(
        env_prefix="ELEVENLABS_",
        env_file=".env",
        secrets_dir=".secrets",
        case_sensitive=False,
        extra="ignore",
    )


class TranscribeConfig(BaseSettings):
    """Amazon Transcribe streaming configuration."""

    region: str = "us-east-1"
    language_code: str = "en-US"
    media_sample_rate_hz: int = 16000

    model_config = SettingsConfigDict(
        env_prefix="TRANSCRIBE_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )


class PipelineConfig(BaseSettings):
    """Knobs consumed by the recording processing pipeline."""

    transcription_mode: str = Field(
        default="two-pass",
        description="One of v1, v2, two-pass or chain.",
    )
    chain_providers: list[str] = Field(
        default_factory=lambda: ["elevenlabs-v1", "amazon-transcribe"],
        description="Provider priority used by the legacy chain mode.",
    )
    keyterms: list[str] = Field(
        default_factory=list,
        description="Vocabulary hints (e.g. the child's name) forwarded to speech-to-text.",
    )
    silence_threshold_seconds: float = Field(default=3.0, gt=0.0)
    max_attempts: int = Field(default=3, ge=1)
    backoff_seconds: list[float] = Field(default_factory=lambda: [0.0, 5.0, 15.0])
    max_silent_slots: int = Field(default=3, ge=0)
    divergence_threshold: float = Field(default=0.2, ge=0.0, le=1.0)
    milestone_session_count: int = Field(default=5, ge=1)
    profiling_enabled: bool = True

    model_config = SettingsConfigDict(
        env_prefix="PIPELINE_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )


class NotificationConfig(BaseSettings):
    """Outbound user notification and operations alert configuration."""

    rabbitmq_host: str = "localhost"
    rabbitmq_port: int = 5672
    rabbitmq_username: str = "guest"
    rabbitmq_password: SecretStr = Field(default=SecretStr("guest"))
    queue_name: str = "recording-notifications"
    slack_webhook_url: Optional[str] = None
    alert_timeout_seconds: float = 10.0

    model_config = SettingsConfigDict(
        env_prefix="NOTIFY_",
        env_file=".env",
        secrets_dir=".secrets",
        case_sensitive=False,
        extra="ignore",
    )


class Settings(BaseSettings):
    """Application settings"""

    app_name: str = "Play Session Report Backend"
    app_version: str = "1.0.0"
    debug: bool = False
    host: str = "0.0.0.0"
    port: int = 8000
    log_file: str = "logs/app.log"
    pipeline_log_file: str = "logs/recording_pipeline.log"
    transcript_log_file: str = "logs/transcripts.log"

    # Database
    database: DatabaseConfig = Field(default_factory=DatabaseConfig)

    # S3
    s3: S3Config = Field(default_factory=S3Config)

    # Bedrock
    bedrock: BedrockConfig = Field(default_factory=BedrockConfig)

    # Speech-to-text providers
    elevenlabs: ElevenLabsConfig = Field(default_factory=ElevenLabsConfig)
    transcribe: TranscribeConfig = Field(default_factory=TranscribeConfig)

    # Pipeline
    pipeline: PipelineConfig = Field(default_factory=PipelineConfig)

    # Notifications
    notifications: NotificationConfig = Field(default_factory=NotificationConfig)

    # CORS
    cors_origins: list[str] = ["*"]
    cors_allow_credentials: bool = True
    cors_allow_methods: list[str] = ["*"]
    cors_allow_headers: list[str] = ["*"]

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )


# Global settings instance
settings = Settings()
