"""Google credential resolution shared by the recognition and synthesis clients."""

from typing import Optional

from google.oauth2 import service_account

from callbridge.config import GoogleConfig
from callbridge.logging_config import get_logger

logger = get_logger(__name__)

_TOKEN_URI = "https://oauth2.googleapis.com/token"
_SCOPES = ["https://www.googleapis.com/auth/cloud-platform"]


def build_credentials(google: GoogleConfig) -> Optional[service_account.Credentials]:
    """
    Service account credentials from the configured email and private key.

    Returns None when either is missing so the Google clients fall back to
    application default credentials.
    """
    if not google.has_service_account:
        logger.info("Using ambient Google credentials", project_id=google.project_id)
        return None
    logger.info("Using service account credentials", project_id=google.project_id, email=google.email)
    return service_account.Credentials.from_service_account_info(
        {
            "type": "service_account",
            "project_id": google.project_id,
            "client_email": google.email,
            "private_key": google.private_key,
            "token_uri": _TOKEN_URI,
        },
        scopes=_SCOPES,
    )
