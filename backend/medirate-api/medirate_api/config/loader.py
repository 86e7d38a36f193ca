"""Configuration loader for the MediRate API service.

Settings come from `global.yaml` and `medirate-api.yaml`; secrets may be
overridden from environment variables so they never have to live in YAML.
"""
import os
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path
from typing import Optional

import yaml


@dataclass
class GlobalConfig:
    """Global settings shared across services."""
    environment: str
    log_level: str
    version: str


@dataclass
class APIConfig:
    """HTTP service settings."""
    host: str
    port: int
    reload: bool  # Auto-reload on code changes (dev only)
    workers: int  # Uvicorn workers
    cors_origins: list[str]  # Allowed CORS origins
    jwt_secret: str  # Secret used to verify identity-provider tokens
    jwt_algorithm: str  # JWT algorithm (default: HS256)
    jwt_audience: Optional[str] = None
    public_base_url: str = "https://www.medirate.net"


@dataclass
class StripeConfig:
    """Stripe REST API settings."""
    secret_key: str
    webhook_secret: str
    api_base: str = "https://api.stripe.com"
    timeout_seconds: float = 10.0
    webhook_tolerance_seconds: int = 300


@dataclass
class BrevoConfig:
    """Brevo transactional email settings."""
    api_key: str
    sender_email: str
    sender_name: str = "MediRate"
    api_url: str = "https://api.brevo.com/v3/smtp/email"
    timeout_seconds: float = 10.0


@dataclass
class BlobConfig:
    """Vercel Blob document store settings."""
    token: str
    api_url: str = "https://blob.vercel-storage.com"
    timeout_seconds: float = 30.0


@dataclass
class NotificationConfig:
    """SMTP settings for the contact form."""
    smtp_host: str
    smtp_port: int
    smtp_username: str
    smtp_password: str
    smtp_from_email: str
    contact_recipient: str


@dataclass
class ExportConfig:
    """Excel export quota."""
    rows_limit: int = 20000


@dataclass
class VerificationConfig:
    """Email verification code and throttling settings."""
    code_ttl_minutes: int = 10
    cooldown_seconds: int = 60
    daily_limit: int = 10
    ip_window_seconds: int = 3600
    ip_window_limit: int = 5
    max_attempts: int = 5


@dataclass
class ObservabilityConfig:
    """Observability settings."""
    metrics_enabled: bool = True


@dataclass
class Config:
    """Complete MediRate API configuration."""
    global_config: GlobalConfig
    api: APIConfig
    stripe: StripeConfig
    brevo: BrevoConfig
    blob: BlobConfig
    notification: NotificationConfig
    export: ExportConfig = field(default_factory=ExportConfig)
    verification: VerificationConfig = field(default_factory=VerificationConfig)
    observability: ObservabilityConfig = field(default_factory=ObservabilityConfig)


# (section, key) -> environment variable names, first one set wins
ENV_OVERRIDES = {
    ("api", "jwt_secret"): ["JWT_SECRET"],
    ("stripe", "secret_key"): ["STRIPE_SECRET_KEY"],
    ("stripe", "webhook_secret"): ["STRIPE_WEBHOOK_SECRET"],
    ("brevo", "api_key"): ["BREVO_API_KEY"],
    ("blob", "token"): ["BLOB_READ_WRITE_TOKEN", "VERCEL_BLOB_RW_TOKEN", "BLOB_TOKEN"],
    ("notification", "smtp_password"): ["SMTP_PASSWORD"],
}


def load_config(config_dir: str) -> Config:
    """Load configuration from YAML files.

    Loads global.yaml and medirate-api.yaml, then applies environment overrides.

    Args:
        config_dir: Directory containing YAML config files

    Returns:
        Config: Loaded and validated configuration

    Raises:
        ValueError: If configuration is invalid
    """
    config_path = Path(config_dir)

    global_data = load_yaml_file(config_path / "global.yaml")
    service_data = load_yaml_file(config_path / "medirate-api.yaml")

    merged = {**global_data, **service_data}
    apply_env_overrides(merged)

    config = Config(
        global_config=GlobalConfig(**merged["global"]),
        api=APIConfig(**merged["api"]),
        stripe=StripeConfig(**merged["stripe"]),
        brevo=BrevoConfig(**merged["brevo"]),
        blob=BlobConfig(**merged["blob"]),
        notification=NotificationConfig(**merged["notification"]),
        export=ExportConfig(**merged.get("export", {})),
        verification=VerificationConfig(**merged.get("verification", {})),
        observability=ObservabilityConfig(**merged.get("observability", {})),
    )

    validate_config(config)

    return config


def load_yaml_file(file_path: Path) -> dict:
    """Load a YAML file and return as dictionary.

    Args:
        file_path: Path to YAML file

    Returns:
        dict: Parsed YAML content (empty for an empty file)
    """
    with open(file_path, "r") as f:
        return yaml.safe_load(f) or {}


def apply_env_overrides(data: dict, environ: Optional[dict] = None) -> dict:
    """Overwrite secret values in the raw config with environment variables."""
    environ = os.environ if environ is None else environ
    for (section, key), names in ENV_OVERRIDES.items():
        for name in names:
            value = environ.get(name)
            if value:
                data.setdefault(section, {})[key] = value
                break
    return data


def validate_config(config: Config) -> None:
    """Validate configuration values.

    Args:
        config: Configuration to validate

    Raises:
        ValueError: If configuration is invalid
    """
    is_prod = config.global_config.environment == "prod"

    if not config.api.jwt_secret or config.api.jwt_secret == "changeme":
        if is_prod:
            raise ValueError("JWT secret must be changed in production")

    if is_prod:
        if "*" in config.api.cors_origins:
            raise ValueError("Wildcard CORS not allowed in production")
        if not config.stripe.webhook_secret:
            raise ValueError("Stripe webhook secret is required in production")

    if config.export.rows_limit <= 0:
        raise ValueError("Export rows limit must be positive")

    verification = config.verification
    if min(verification.ip_window_limit, verification.daily_limit, verification.max_attempts) <= 0:
        raise ValueError("Verification limits must be positive")


@lru_cache()
def get_config() -> Config:
    """FastAPI dependency returning the process-wide configuration."""
    return load_config(os.getenv("MEDIRATE_CONFIG_DIR", "config"))
