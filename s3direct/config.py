"""Configuration loading for direct uploads.

Supports two configuration sources:
1. Environment variables (for CI/CD) - takes priority
2. config.json file (for local development)

Environment Variable Format:
    PROFILE_{KEY}=Endpoint|Region|Style
    {KEY}_ACCESS_KEY=xxx
    {KEY}_SECRET_KEY=xxx
    {KEY}_SESSION_TOKEN=xxx   (optional)
    {KEY}_BUCKET=xxx          (optional default bucket)

Example:
    PROFILE_MINIO=http://192.168.1.10:9000|us-east-1|path
    MINIO_ACCESS_KEY=your-temporary-access-key
    MINIO_SECRET_KEY=your-temporary-secret-key
    MINIO_SESSION_TOKEN=your-sts-session-token
"""

import json
import os
from pathlib import Path
from typing import Optional

from s3direct.models import ADDRESSING_STYLES, ProfileConfig


class ConfigError(Exception):
    """Raised when configuration loading fails."""

    pass


# Required fields for a profile configuration
REQUIRED_FIELDS = [
    "endpoint_url",
    "aws_access_key_id",
    "aws_secret_access_key",
    "region_name",
]


def _check_style(style: str, profile_key: str) -> str:
    if style not in ADDRESSING_STYLES:
        raise ConfigError(
            f"Invalid addressing_style '{style}' for profile '{profile_key}'. "
            f"Expected one of: {', '.join(ADDRESSING_STYLES)}"
        )
    return style


def load_from_json(config_path: str) -> dict[str, ProfileConfig]:
    """Load profile configurations from a JSON file.

    Args:
        config_path: Path to the config.json file.

    Returns:
        Dictionary mapping profile keys to ProfileConfig objects.
        Only enabled profiles are included.

    Raises:
        ConfigError: If file doesn't exist, contains invalid JSON,
                    or is missing required fields.
    """
    path = Path(config_path)

    if not path.exists():
        raise ConfigError(f"Config file not found: {config_path}")

    try:
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        raise ConfigError(f"Invalid JSON in config file: {e}") from e

    if not isinstance(data, dict):
        raise ConfigError("Config file must contain a JSON object of profiles")

    profiles: dict[str, ProfileConfig] = {}

    for key, config in data.items():
        # Skip disabled profiles
        if not config.get("enabled", True):
            continue

        for field in REQUIRED_FIELDS:
            if not config.get(field):
                raise ConfigError(
                    f"Missing required field '{field}' for profile '{key}'"
                )

        profiles[key] = ProfileConfig(
            key=key,
            endpoint_url=config["endpoint_url"],
            aws_access_key_id=config["aws_access_key_id"],
            aws_secret_access_key=config["aws_secret_access_key"],
            region_name=config["region_name"],
            aws_session_token=config.get("aws_session_token") or None,
            addressing_style=_check_style(config.get("addressing_style", "path"), key),
            bucket_name=config.get("bucket_name") or None,
            enabled=True,
        )

    return profiles


def load_from_env() -> dict[str, ProfileConfig]:
    """Load profile configurations from environment variables.

    Discovers profiles by looking for PROFILE_* environment variables.
    For each profile, expects corresponding credential variables.

    Raises:
        ConfigError: If environment variables are malformed or
                    required credential variables are missing.
    """
    profiles: dict[str, ProfileConfig] = {}

    for env_key, env_value in os.environ.items():
        if not env_key.startswith("PROFILE_"):
            continue

        # Extract profile key (e.g., "PROFILE_MINIO" -> "MINIO")
        profile_key = env_key[len("PROFILE_"):]

        # Parse pipe-delimited value: Endpoint|Region|Style
        parts = env_value.split("|")
        if len(parts) != 3:
            raise ConfigError(
                f"Invalid format for {env_key}. Expected: Endpoint|Region|Style"
            )

        endpoint, region, style = parts

        access_key_var = f"{profile_key}_ACCESS_KEY"
        secret_key_var = f"{profile_key}_SECRET_KEY"

        access_key = os.environ.get(access_key_var)
        if not access_key:
            raise ConfigError(f"Missing environment variable: {access_key_var}")

        secret_key = os.environ.get(secret_key_var)
        if not secret_key:
            raise ConfigError(f"Missing environment variable: {secret_key_var}")

        profiles[profile_key] = ProfileConfig(
            key=profile_key,
            endpoint_url=endpoint,
            aws_access_key_id=access_key,
            aws_secret_access_key=secret_key,
            region_name=region,
            aws_session_token=os.environ.get(f"{profile_key}_SESSION_TOKEN") or None,
            addressing_style=_check_style(style, profile_key),
            bucket_name=os.environ.get(f"{profile_key}_BUCKET") or None,
            enabled=True,
        )

    return profiles


def has_env_profiles() -> bool:
    """Check if any PROFILE_* environment variables exist."""
    return any(key.startswith("PROFILE_") for key in os.environ)


def load_profiles(config_path: str = "config.json") -> dict[str, ProfileConfig]:
    """Load profile configurations with environment priority.

    Priority order:
    1. Environment variables (if any PROFILE_* vars exist)
    2. config.json file

    Raises:
        ConfigError: If no profiles are configured or all are disabled.
    """
    profiles: dict[str, ProfileConfig] = {}

    if has_env_profiles():
        profiles = load_from_env()
    elif Path(config_path).exists():
        profiles = load_from_json(config_path)

    if not profiles:
        raise ConfigError(
            "No profiles configured. Set PROFILE_* environment variables "
            "or create a config.json file with at least one enabled profile."
        )

    return profiles


def select_profile(
    profiles: dict[str, ProfileConfig],
    name: Optional[str] = None,
) -> ProfileConfig:
    """Pick a profile by key, or the only one when no key is given.

    Raises:
        ConfigError: If the key is unknown, or no key is given and more
                    than one profile is configured.
    """
    if name is not None:
        if name not in profiles:
            raise ConfigError(
                f"Unknown profile '{name}'. Available: {', '.join(sorted(profiles))}"
            )
        return profiles[name]

    if len(profiles) != 1:
        raise ConfigError(
            "Several profiles configured; choose one with --profile: "
            f"{', '.join(sorted(profiles))}"
        )
    return next(iter(profiles.values()))
