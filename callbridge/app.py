"""
Process entry point: wires configuration, backends, the call server and the
command API together and runs until SIGINT/SIGTERM.
"""

import asyncio
import signal
from typing import Optional

from callbridge.command_api import CommandApi
from callbridge.commands import CommandHandler
from callbridge.config import AppConfig, load_config, validate_production_config
from callbridge.core.call_registry import CallRegistry
from callbridge.core.session_controller import SessionController
from callbridge.credentials import build_credentials
from callbridge.logging_config import configure_logging, get_logger
from callbridge.recognition.dialogflow import DialogflowBackend
from callbridge.recognition.stream import RecognitionStream
from callbridge.server import CallServer
from callbridge.synthesis import SynthesisInvoker

logger = get_logger(__name__)


class CallBridge:
    """Owns the long-lived collaborators shared by every call."""

    def __init__(self, config: AppConfig, *, backend=None, synthesizer=None, stream_factory=RecognitionStream) -> None:
        self.config = config
        self.stream_factory = stream_factory
        self.registry = CallRegistry()
        if backend is None or synthesizer is None:
            credentials = build_credentials(config.google)
            backend = backend or DialogflowBackend(config.google, config.recognition, credentials=credentials)
            synthesizer = synthesizer or SynthesisInvoker(config.synthesis, credentials=credentials)
        self.backend = backend
        self.synthesizer = synthesizer
        self.commands = CommandHandler(self.registry)
        self.server = CallServer(config.server, self.create_controller)
        self.command_api: Optional[CommandApi] = None
        if config.command_api.enabled:
            self.command_api = CommandApi(
                config.command_api,
                self.commands,
                self.registry,
                ready_check=lambda: self.server.is_serving,
            )

    def create_controller(self, socket, room: str) -> SessionController:
        return SessionController(
            socket,
            registry=self.registry,
            backend=self.backend,
            synthesizer=self.synthesizer,
            config=self.config,
            room=room,
            stream_factory=self.stream_factory,
        )

    async def start(self) -> None:
        await self.server.start()
        if self.command_api is not None:
            await self.command_api.start()

    async def stop(self) -> None:
        if self.command_api is not None:
            await self.command_api.stop()
        await self.server.stop()


async def main() -> None:
    config = load_config()
    configure_logging(log_level=config.logging.level.upper())

    errors, warnings = validate_production_config(config)
    if errors:
        logger.error("Configuration validation failed", errors=errors, warnings=warnings)
        raise RuntimeError(f"Configuration errors: {errors}")
    if warnings:
        logger.warning("Configuration warnings", warnings=warnings)

    bridge = CallBridge(config)

    shutdown_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, shutdown_event.set)

    await bridge.start()
    await shutdown_event.wait()
    await bridge.stop()


def run() -> None:
    try:
        asyncio.run(main())
    except (KeyboardInterrupt, SystemExit):
        pass
    finally:
        logger.info("Call bridge has shut down.")


if __name__ == "__main__":
    run()
