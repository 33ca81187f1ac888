"""
HTTP command bus and health endpoints (aiohttp).

Routes:
    POST /calls/{call_id}/{command}   dispatch a call command
    GET  /calls                       active call ids
    GET  /live                        liveness
    GET  /ready                       readiness (call server listening)
    GET  /metrics                     Prometheus metrics
"""

from __future__ import annotations

import hmac
from typing import Any, Callable, Dict, Optional

from aiohttp import web
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from callbridge.commands import CommandHandler, UnknownCommandError
from callbridge.config import CommandApiConfig
from callbridge.core.call_registry import CallRegistry
from callbridge.logging_config import get_logger

logger = get_logger(__name__)

_LOOPBACK = ('127.0.0.1', '::1', 'localhost')

# Wire (camelCase) parameter names to handler keyword names
_PARAM_NAMES = {
    "audioContent": "audio_content",
    "audioContentType": "audio_content_type",
    "sampleRate": "sample_rate",
}


def command_params(body: Dict[str, Any]) -> Dict[str, Any]:
    params = {}
    for key, value in body.items():
        if key == "callId":
            continue
        params[_PARAM_NAMES.get(key, key)] = value
    return params


class CommandApi:
    def __init__(
        self,
        config: CommandApiConfig,
        commands: CommandHandler,
        registry: CallRegistry,
        *,
        ready_check: Optional[Callable[[], bool]] = None,
    ) -> None:
        self.config = config
        self._commands = commands
        self._registry = registry
        self._ready_check = ready_check or (lambda: True)
        self._runner: Optional[web.AppRunner] = None

    def build_app(self) -> web.Application:
        app = web.Application()
        app.router.add_get('/live', self._live_handler)
        app.router.add_get('/ready', self._ready_handler)
        app.router.add_get('/metrics', self._metrics_handler)
        app.router.add_get('/calls', self._calls_handler)
        app.router.add_post('/calls/{call_id}/{command}', self._command_handler)
        return app

    async def start(self) -> None:
        runner = web.AppRunner(self.build_app())
        await runner.setup()
        site = web.TCPSite(runner, self.config.host, self.config.port)
        await site.start()
        self._runner = runner
        logger.info("Command API started", host=self.config.host, port=self.config.port)

    async def stop(self) -> None:
        if self._runner is not None:
            await self._runner.cleanup()
            self._runner = None

    def _is_request_authorized(self, request: web.Request) -> bool:
        """Loopback clients are trusted; others need the bearer token."""
        peername = request.transport.get_extra_info('peername') if request.transport else None
        if peername and peername[0] in _LOOPBACK:
            return True
        expected = self.config.api_token
        if not expected:
            return False
        auth_header = request.headers.get('Authorization', '')
        if not auth_header.startswith('Bearer '):
            return False
        return hmac.compare_digest(auth_header[7:], expected)

    async def _live_handler(self, request: web.Request) -> web.Response:
        return web.Response(text="ok", status=200)

    async def _ready_handler(self, request: web.Request) -> web.Response:
        ready = bool(self._ready_check())
        return web.json_response(
            {"ready": ready, "active_calls": len(self._registry)},
            status=200 if ready else 503,
        )

    async def _metrics_handler(self, request: web.Request) -> web.Response:
        # aiohttp forbids 'charset=' inside content_type arg; pass full header via headers.
        return web.Response(body=generate_latest(), headers={"Content-Type": CONTENT_TYPE_LATEST})

    async def _calls_handler(self, request: web.Request) -> web.Response:
        if not self._is_request_authorized(request):
            return web.json_response({"error": "forbidden"}, status=403)
        return web.json_response({"calls": await self._registry.call_ids()})

    async def _command_handler(self, request: web.Request) -> web.Response:
        if not self._is_request_authorized(request):
            return web.json_response({"error": "forbidden"}, status=403)

        call_id = request.match_info['call_id']
        command = request.match_info['command']
        if request.can_read_body:
            try:
                body = await request.json()
            except ValueError:
                return web.json_response({"error": "body must be JSON"}, status=400)
        else:
            body = {}
        if not isinstance(body, dict):
            return web.json_response({"error": "body must be a JSON object"}, status=400)

        try:
            result = await self._commands.dispatch(command, call_id, command_params(body))
        except UnknownCommandError:
            return web.json_response({"error": f"unknown command {command}"}, status=404)
        except TypeError as exc:
            return web.json_response({"error": f"invalid parameters: {exc}"}, status=400)
        return web.json_response({"result": result})
