"""
Security-critical configuration injection.

SECURITY POLICY:
- The service account private key and the command API token MUST come from
  environment variables only; any YAML value is discarded.
- Identity fields (client email, project id) may be given in YAML and
  overridden from the environment.
"""

import os
from typing import Any, Dict, Optional


def _is_nonempty_string(val: Any) -> bool:
    """Check if value is a string with non-whitespace content."""
    return isinstance(val, str) and val.strip() != ""


def _is_resolved(val: Any) -> bool:
    """A non-empty string that is not a leftover ${VAR} placeholder."""
    return _is_nonempty_string(val) and "${" not in val


def normalize_private_key(value: Optional[str]) -> Optional[str]:
    """
    Unescape a PEM private key supplied through a single-line env var.

    Keys exported from a service account JSON file commonly carry literal
    ``\\n`` sequences instead of newlines.
    """
    if not _is_nonempty_string(value):
        return None
    key = value.replace("\\n", "\n").strip()
    return key or None


def inject_google_credentials(config_data: Dict[str, Any]) -> None:
    """
    Inject Google credentials into the ``google`` block.

    Environment variables:
    - GOOGLE_PROJECT_ID (overrides YAML google.project_id)
    - GOOGLE_CLIENT_EMAIL (overrides YAML google.email)
    - GOOGLE_PRIVATE_KEY (the ONLY source of google.private_key)

    Args:
        config_data: Configuration dictionary to modify in-place
    """
    google_yaml = config_data.get('google') if isinstance(config_data.get('google'), dict) else {}

    project_id = os.getenv("GOOGLE_PROJECT_ID") or google_yaml.get("project_id")
    email = os.getenv("GOOGLE_CLIENT_EMAIL") or google_yaml.get("email")

    config_data['google'] = {
        "project_id": project_id if _is_resolved(project_id) else None,
        "email": email if _is_resolved(email) else None,
        "private_key": normalize_private_key(os.getenv("GOOGLE_PRIVATE_KEY")),
    }


def inject_command_api_token(config_data: Dict[str, Any]) -> None:
    """
    Inject the command API bearer token from CALLBRIDGE_API_TOKEN only.

    Args:
        config_data: Configuration dictionary to modify in-place
    """
    command_api = config_data.get('command_api') if isinstance(config_data.get('command_api'), dict) else {}
    token = os.getenv("CALLBRIDGE_API_TOKEN")
    command_api['api_token'] = token.strip() if _is_nonempty_string(token) else None
    config_data['command_api'] = command_api
