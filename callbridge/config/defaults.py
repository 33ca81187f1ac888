"""
Default value application for configuration.

This module handles:
- Websocket call server bind address, port and rooms
- Command API bind address and port
- Logging level
"""

import os
from typing import Any, Dict


def _block(config_data: Dict[str, Any], name: str) -> Dict[str, Any]:
    block = config_data.get(name)
    if not isinstance(block, dict):
        block = {}
    config_data[name] = block
    return block


def apply_server_defaults(config_data: Dict[str, Any]) -> None:
    """
    Apply websocket server defaults with environment variable overrides.

    Environment variables:
    - CALLBRIDGE_HOST: Override bind address
    - CALLBRIDGE_PORT: Override port
    - CALLBRIDGE_ROOMS: Comma-separated list of rooms

    Args:
        config_data: Configuration dictionary to modify in-place
    """
    server = _block(config_data, 'server')

    host = os.getenv('CALLBRIDGE_HOST')
    if host:
        server['host'] = host

    port = os.getenv('CALLBRIDGE_PORT')
    if port:
        try:
            server['port'] = int(port)
        except ValueError:
            pass

    rooms = os.getenv('CALLBRIDGE_ROOMS')
    if rooms:
        server['rooms'] = [room.strip() for room in rooms.split(',') if room.strip()]
    elif isinstance(server.get('rooms'), str):
        server['rooms'] = [room.strip() for room in server['rooms'].split(',') if room.strip()]


def apply_command_api_defaults(config_data: Dict[str, Any]) -> None:
    """
    Apply command API defaults with environment variable overrides.

    Environment variables:
    - COMMAND_API_HOST: Override bind address
    - COMMAND_API_PORT: Override port

    Args:
        config_data: Configuration dictionary to modify in-place
    """
    command_api = _block(config_data, 'command_api')

    host = os.getenv('COMMAND_API_HOST')
    if host:
        command_api['host'] = host

    port = os.getenv('COMMAND_API_PORT')
    if port:
        try:
            command_api['port'] = int(port)
        except ValueError:
            pass


def apply_logging_defaults(config_data: Dict[str, Any]) -> None:
    """Let LOG_LEVEL override the YAML logging level."""
    logging_block = _block(config_data, 'logging')
    level = os.getenv('LOG_LEVEL')
    if level:
        logging_block['level'] = level.lower()
    logging_block.setdefault('level', 'info')
