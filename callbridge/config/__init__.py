"""
Configuration package for the call bridge.

This package contains:
- models: Pydantic configuration models
- loaders: YAML file loading and parsing
- security: Credential injection from the environment
- defaults: Default value application and env overrides
"""

import os
from typing import List, Optional, Tuple

from pydantic import ValidationError

from callbridge.config.defaults import (
    apply_command_api_defaults,
    apply_logging_defaults,
    apply_server_defaults,
)
from callbridge.config.loaders import (
    DEFAULT_CONFIG_PATH,
    load_yaml_with_env_expansion,
    resolve_config_path,
)
from callbridge.config.models import (
    AppConfig,
    CommandApiConfig,
    GoogleConfig,
    GreetingConfig,
    LoggingConfig,
    RecognitionConfig,
    ServerConfig,
    SynthesisConfig,
)
from callbridge.config.security import inject_command_api_token, inject_google_credentials
from callbridge.errors import ConfigurationError

_LOOPBACK_HOSTS = ("127.0.0.1", "localhost", "::1")


def load_config(path: Optional[str] = None) -> AppConfig:
    """
    Load, enrich and validate the application configuration.

    The path defaults to CALLBRIDGE_CONFIG or config/callbridge.yaml. A missing
    file is not fatal: everything can be supplied through the environment.
    """
    path = resolve_config_path(path or os.getenv("CALLBRIDGE_CONFIG") or DEFAULT_CONFIG_PATH)
    try:
        config_data = load_yaml_with_env_expansion(path)
    except FileNotFoundError:
        config_data = {}

    inject_google_credentials(config_data)
    inject_command_api_token(config_data)
    apply_server_defaults(config_data)
    apply_command_api_defaults(config_data)
    apply_logging_defaults(config_data)

    try:
        return AppConfig(**config_data)
    except ValidationError as exc:
        raise ConfigurationError(f"Invalid configuration in {path}: {exc}") from exc


def validate_production_config(config: AppConfig) -> Tuple[List[str], List[str]]:
    """
    Check a loaded configuration for problems that would break calls at runtime.

    Returns:
        (errors, warnings)
    """
    errors: List[str] = []
    warnings: List[str] = []

    if not (config.google.project_id or "").strip():
        errors.append("google.project_id is required (set GOOGLE_PROJECT_ID)")
    if bool(config.google.email) != bool(config.google.private_key):
        errors.append(
            "Service account credentials need both GOOGLE_CLIENT_EMAIL and GOOGLE_PRIVATE_KEY; "
            "unset both to use ambient credentials"
        )
    if config.command_api.enabled and config.command_api.host not in _LOOPBACK_HOSTS and not config.command_api.api_token:
        warnings.append(
            f"Command API bound to {config.command_api.host} without CALLBRIDGE_API_TOKEN; "
            "only loopback clients will be accepted"
        )
    if config.command_api.enabled and config.command_api.port == config.server.port and config.command_api.host == config.server.host:
        errors.append("command_api.port must differ from server.port")

    return errors, warnings


__all__ = [
    'AppConfig',
    'CommandApiConfig',
    'GoogleConfig',
    'GreetingConfig',
    'LoggingConfig',
    'RecognitionConfig',
    'ServerConfig',
    'SynthesisConfig',
    'load_config',
    'validate_production_config',
]
