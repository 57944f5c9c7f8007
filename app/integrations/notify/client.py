"""GC Notify client."""

import calendar
import json
import time
from typing import TYPE_CHECKING, Any, Dict

import jwt
import requests
from infrastructure.logging import get_module_logger

if TYPE_CHECKING:
    from infrastructure.configuration import NotifySettings

logger = get_module_logger()

EMAIL_ENDPOINT = "/v2/notifications/email"
SMS_ENDPOINT = "/v2/notifications/sms"


# generate the epoch seconds for the jwt token
def epoch_seconds():
    return calendar.timegm(time.gmtime())


def create_jwt_token(secret, client_id):
    """
    Generate a JWT Token for the Notify API

    Tokens have a header consisting of:
    {
        "typ": "JWT",
        "alg": "HS256"
    }

    Parameters:
    secret: Service signing secret
    client_id: Service identifier

    Claims are:
    iss: identifier for the client
    iat: epoch seconds for the token (UTC)

    Returns a JWT token for this request
    """
    if not secret:
        logger.error("jwt_token_creation_failed", error="Missing secret key")
        raise ValueError("Missing secret key")
    if not client_id:
        logger.error("jwt_token_creation_failed", error="Missing client id")
        raise ValueError("Missing client id")

    headers = {"typ": "JWT", "alg": "HS256"}

    claims = {"iss": client_id, "iat": epoch_seconds()}
    return jwt.encode(payload=claims, key=secret, headers=headers)


def create_authorization_header(settings: "NotifySettings"):
    """Create the authorization header for the Notify API"""
    client_id = settings.NOTIFY_CLIENT_ID
    secret = settings.NOTIFY_CLIENT_SECRET

    if not client_id:
        error = "NOTIFY_CLIENT_ID is missing"
        logger.error("authorization_header_creation_failed", error=error)
        raise ValueError(error)
    if not secret:
        error = "NOTIFY_CLIENT_SECRET is missing"
        logger.error("authorization_header_creation_failed", error=error)
        raise ValueError(error)

    token = create_jwt_token(secret=secret, client_id=client_id)
    return "Authorization", "Bearer {}".format(token)


def post_event(settings: "NotifySettings", path: str, payload: Dict[str, Any]):
    """Post an API call to Notify.

    Raises:
        ValueError: If the API URL or credentials are missing
        requests.RequestException: If the request itself fails
    """
    if not settings.NOTIFY_API_URL:
        logger.error("notify_post_failed", error="NOTIFY_API_URL is missing")
        raise ValueError("NOTIFY_API_URL is missing")

    header_key, header_value = create_authorization_header(settings)
    header = {header_key: header_value, "Content-Type": "application/json"}

    url = settings.NOTIFY_API_URL.rstrip("/") + path
    response = requests.post(
        url,
        data=json.dumps(payload),
        headers=header,
        timeout=settings.NOTIFY_REQUEST_TIMEOUT_SECONDS,
    )
    return response
