#!/usr/bin/env python3
"""
Entry point for the uhppote-mqtt bridge

Usage: uhppote-mqtt -c /data/options.json
"""

import argparse
import logging
import os
import signal
import sys
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv

from . import __version__
from .bridge import BridgeSession
from .config import DEFAULT_CONFIG_PATH, BridgeConfig, load_config
from .credentials import SUPERVISOR_TOKEN_ENV, credential_source_from_env, resolve
from .device import UhppoteDevice
from .errors import BridgeError
from .mqtt_client import DEFAULT_KEEPALIVE, MQTTTransport
from .topics import derive
from .translator import CommandTranslator

logger = logging.getLogger("uhppote_mqtt")


def existing_file(path: str) -> str:
    if not Path(path).exists():
        raise argparse.ArgumentTypeError(f"File '{path}' does not exist")
    return path


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="uhppote-mqtt",
        description="Bridge a UHPPOTE door controller to Home Assistant over MQTT",
    )
    parser.add_argument("-c", "--config", type=existing_file, default=DEFAULT_CONFIG_PATH,
                        help="Config file location")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser.parse_args(argv)


def setup_logging(config_level: str = "INFO"):
    """Setup logging; LOG_LEVEL overrides the configured level"""
    log_level = getattr(logging, os.getenv('LOG_LEVEL', config_level).upper(), logging.INFO)
    logging.basicConfig(
        level=log_level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
    logging.getLogger().setLevel(log_level)


def build_session(config: BridgeConfig, environ=None) -> BridgeSession:
    """
    Wire up credentials, topics, controller and transport

    Raises:
        BridgeError: If credentials cannot be resolved or the topics are invalid
    """
    environ = os.environ if environ is None else environ

    source = credential_source_from_env(environ)
    credentials = resolve(config, source, token=environ.get(SUPERVISOR_TOKEN_ENV))
    topics = derive(config.base_topic)

    device = UhppoteDevice(
        config.uhppote_device_id,
        address=config.uhppote_device_ip,
        bind=config.uhppote_bind,
        broadcast=config.uhppote_broadcast,
        listen=config.uhppote_listen,
        timeout=config.uhppote_timeout,
    )
    transport = MQTTTransport(config.mqtt_id, credentials, keepalive=DEFAULT_KEEPALIVE)

    return BridgeSession(
        transport,
        CommandTranslator(device, delay=config.door_delay),
        topics,
        name=config.name,
        door=config.door,
        logger=logging.getLogger("uhppote_mqtt.session"),
        fatal_state_publish=config.fatal_state_publish,
    )


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)

    env_file = Path(args.config).parent / ".env"
    load_dotenv(env_file if env_file.exists() else None)

    setup_logging()
    logger.info(f"uhppote-mqtt v{__version__}")

    try:
        config = load_config(args.config)
        setup_logging(config.log_level)
        session = build_session(config)
        session.start()
    except BridgeError as e:
        logger.error(f"Startup failed: {e}")
        return 1

    def handle_signal(signum, frame):
        logger.info(f"Received signal {signum}, stopping")
        session.stop()

    previous = {sig: signal.signal(sig, handle_signal) for sig in (signal.SIGTERM, signal.SIGINT)}

    try:
        session.run()
    except BridgeError as e:
        logger.error(f"Bridge stopped: {e}")
        return 1
    finally:
        session.transport.disconnect()
        for sig, handler in previous.items():
            signal.signal(sig, handler)

    return 0


if __name__ == '__main__':
    sys.exit(main())
