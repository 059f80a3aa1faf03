"""
MQTT broker credential resolution

Credentials come either straight from the options file or, when running as a
Home Assistant add-on, from the Supervisor's MQTT service endpoint.
"""

import enum
import logging
import os
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional

import requests

from .config import PORT_MAX, BridgeConfig
from .errors import ConfigurationError, ResolutionError

logger = logging.getLogger(__name__)

SUPERVISOR_FLAG_ENV = "HASS_ADDON"
SUPERVISOR_TOKEN_ENV = "SUPERVISOR_TOKEN"
SUPERVISOR_MQTT_URL = "http://supervisor/services/mqtt"
SUPERVISOR_TIMEOUT = 10


class CredentialSource(enum.Enum):
    """Where broker credentials are taken from"""
    STATIC = "static"
    SUPERVISOR = "supervisor"


@dataclass(frozen=True)
class BrokerCredentials:
    """Fully resolved broker connection parameters"""
    host: str
    port: int
    username: str
    password: str


def credential_source_from_env(environ: Mapping[str, str] = None) -> CredentialSource:
    """Pick the credential source once at startup from the process environment"""
    environ = os.environ if environ is None else environ
    if SUPERVISOR_FLAG_ENV in environ:
        return CredentialSource.SUPERVISOR
    return CredentialSource.STATIC


def parse_port(value: Any) -> int:
    """
    Parse a broker port given as an int or a numeric string

    Raises:
        ResolutionError: If the value is not an integer in 0..65535
    """
    if isinstance(value, bool):
        raise ResolutionError(f"Invalid broker port: {value!r}")
    try:
        port = int(str(value).strip())
    except (TypeError, ValueError):
        raise ResolutionError(f"Invalid broker port: {value!r}")
    if not 0 <= port <= PORT_MAX:
        raise ResolutionError(f"Broker port out of range: {port}")
    return port


def fetch_supervisor_credentials(token: str,
                                 session: Optional[requests.Session] = None,
                                 url: str = SUPERVISOR_MQTT_URL) -> Dict[str, Any]:
    """
    Fetch the MQTT service descriptor from the Supervisor

    Args:
        token: Supervisor bearer token
        session: Optional requests session (a plain requests.get is used otherwise)
        url: Supervisor MQTT service endpoint

    Returns:
        Descriptor with host, port, username and password (port still unparsed)

    Raises:
        ResolutionError: On connection failure, non-success status or bad body
    """
    http = session or requests
    headers = {'Authorization': f'Bearer {token}'}

    logger.info(f"Fetching MQTT credentials from {url}")
    try:
        response = http.get(url, headers=headers, timeout=SUPERVISOR_TIMEOUT)
    except requests.exceptions.RequestException as e:
        raise ResolutionError(f"Supervisor request failed: {e}") from e

    if not 200 <= response.status_code < 300:
        raise ResolutionError(
            f"Supervisor returned HTTP {response.status_code}",
            status_code=response.status_code,
        )

    try:
        body = response.json()
    except ValueError as e:
        raise ResolutionError(f"Supervisor returned invalid JSON: {e}") from e

    if not isinstance(body, dict):
        raise ResolutionError("Supervisor response is not a JSON object")

    # The Supervisor wraps service data as {"result": "ok", "data": {...}}
    if isinstance(body.get('data'), dict):
        body = body['data']

    return body


def resolve(config: BridgeConfig,
            source: CredentialSource = CredentialSource.STATIC,
            token: Optional[str] = None,
            session: Optional[requests.Session] = None) -> BrokerCredentials:
    """
    Resolve final broker credentials

    Args:
        config: Bridge configuration holding the static values
        source: Credential source chosen at startup
        token: Supervisor bearer token, required for CredentialSource.SUPERVISOR
        session: Optional requests session for the Supervisor call

    Returns:
        BrokerCredentials with all four fields set

    Raises:
        ConfigurationError: If a field is still unset after resolution
        ResolutionError: If the Supervisor lookup fails
    """
    values = {
        'host': config.mqtt_host,
        'port': config.mqtt_port,
        'username': config.mqtt_username,
        'password': config.mqtt_password,
    }

    if source is CredentialSource.SUPERVISOR:
        if not token:
            raise ConfigurationError(f"{SUPERVISOR_TOKEN_ENV} is required for Supervisor credential discovery")

        descriptor = fetch_supervisor_credentials(token, session=session)
        for key in values:
            if descriptor.get(key) not in (None, ""):
                values[key] = descriptor[key]
        if values['port'] is not None:
            values['port'] = parse_port(values['port'])
        logger.info(f"Using Supervisor MQTT service at {values['host']}:{values['port']}")
    else:
        logger.info("Using MQTT credentials from configuration")

    for key, value in values.items():
        if value is None or value == "":
            raise ConfigurationError(f"Missing MQTT credential: mqtt_{key}")

    return BrokerCredentials(**values)
