"""
FastAPI server and WebSocket handling for Kubelog.

This module exposes the viewer's request/event surface to the display process.

Key Components:
- create_app: Build the FastAPI application around a ViewerService
- REST routes: Context, namespace, pod and one-shot log endpoints
- WebSocketChannel: One WebSocket connection; requests in, responses and
  log events out through a single sender task
- run_server: Main server startup and configuration

WebSocket protocol:
    Requests are JSON objects ``{"id": 7, "action": "listPods", "namespace": "default"}``.
    Each gets ``{"type": "response", "id": 7, "ok": true, "data": [...]}`` or
    ``{"type": "response", "id": 7, "ok": false, "error": {"kind": ..., "message": ...}}``.
    Log events are ``{"type": "logData" | "logError" | "logEnd", "streamId": ..., ...}``.
    Streams started on a connection are stopped when it closes.

Example:
    ```python
    await run_server(ServerConfig(host="127.0.0.1", port=8080))
    ```
"""

import asyncio
import json
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Set

from fastapi import FastAPI, Request, WebSocket, WebSocketDisconnect
from fastapi.responses import JSONResponse

from .constants import DEFAULT_FETCH_TAIL_LINES, SERVICE_NAME, LOG_FORMAT
from .exceptions import KubelogError, InvalidRequestError
from .models import LogEvent, ServerConfig, StreamState
from .service import ViewerService
from .sinks import QueueSink
from .streams import LogStreamSession

log = logging.getLogger('kubelog')


def configure_logging(level: str) -> None:
    """Configure the application logger (level name such as "INFO")."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=LOG_FORMAT,
    )


# Helper for safe exception logging
def _log_exception(msg: str, exc: Exception, level: int = logging.WARNING):
    """Log an exception with proper formatting."""
    log.log(level, f"{msg}: {exc.__class__.__name__}: {exc}")


def _ok(data: Any = None) -> Dict[str, Any]:
    return {'ok': True, 'data': data}


class WebSocketChannel:
    """
    Request/event channel over one WebSocket.

    All outgoing messages go through ``outbox`` and a single sender task, so
    responses and log events are written one frame at a time and in queue
    order. Each stream started here gets its own held QueueSink that is
    released only after the startLogStream response is queued, so the
    response always precedes the stream's first event.

    Attributes:
        ws: The accepted WebSocket
        outbox: Queue of outgoing response dicts and LogEvents
        sinks: Sinks of streams started on this connection, by stream id
    """

    def __init__(self, ws: WebSocket, service: ViewerService):
        self.ws = ws
        self.service = service
        self.outbox: asyncio.Queue = asyncio.Queue()
        self.sinks: Dict[str, QueueSink] = {}
        self.closed = False
        self._tasks: Set[asyncio.Task] = set()

    async def sender(self) -> None:
        while True:
            item = await self.outbox.get()
            msg = item.to_dict() if isinstance(item, LogEvent) else item
            try:
                await self.ws.send_text(json.dumps(msg, separators=(',', ':')))
            except Exception as e:
                _log_exception("[ws] Failed to send to client", e)
                return

    def respond(self, request_id: Any, data: Any = None, error: Optional[KubelogError] = None) -> None:
        msg: Dict[str, Any] = {'type': 'response', 'id': request_id, 'ok': error is None}
        if error is None:
            msg['data'] = data
        else:
            msg['error'] = error.to_dict()
        self.outbox.put_nowait(msg)

    def _drop_sink(self, stream_id: str) -> None:
        sink = self.sinks.pop(stream_id, None)
        if sink is not None:
            sink.close()

    def _drop_stopped_sinks(self, sessions: Dict[str, Optional[LogStreamSession]]) -> None:
        for stream_id, session in sessions.items():
            if session is not None and session.state is StreamState.STOPPED:
                self._drop_sink(stream_id)

    async def _start_stream(self, msg: Dict[str, Any]) -> None:
        sink = QueueSink(asyncio.get_event_loop(), self.outbox, held=True)
        stream_id = await self.service.start_log_stream(
            msg.get('namespace'), msg.get('podName') or msg.get('pod'), msg.get('container'), sink)
        if self.closed:
            self.service.streams.stop(stream_id)
            return
        self._drop_sink(stream_id)
        self.sinks[stream_id] = sink
        self.respond(msg.get('id'), {'streamId': stream_id})
        sink.release()

    async def handle(self, msg: Dict[str, Any]) -> None:
        request_id = msg.get('id')
        action = msg.get('action')
        svc = self.service
        try:
            if action == 'startLogStream':
                await self._start_stream(msg)
                return
            if action == 'init':
                data = await svc.init()
            elif action == 'listContexts':
                data = await svc.list_contexts()
            elif action == 'getCurrentContext':
                data = await svc.get_current_context()
            elif action == 'switchContext':
                owned = {stream_id: svc.streams.get(stream_id) for stream_id in self.sinks}
                try:
                    data = await svc.switch_context(msg.get('name'), bool(msg.get('stopStreams', True)))
                finally:
                    # Streams stopped before a failed client rebuild stay stopped.
                    self._drop_stopped_sinks(owned)
            elif action == 'listNamespaces':
                data = await svc.list_namespaces()
            elif action == 'listPods':
                data = await svc.list_pods(msg.get('namespace'))
            elif action == 'stopLogStream':
                stream_id = msg.get('streamId')
                await svc.stop_log_stream(stream_id)
                if isinstance(stream_id, str):
                    self._drop_sink(stream_id)
                data = None
            elif action == 'listLogStreams':
                data = await svc.list_log_streams()
            else:
                raise InvalidRequestError(f"Unknown action: {action}")
        except KubelogError as e:
            log.debug(f"[ws] {action} failed: {e.kind}: {e}")
            self.respond(request_id, error=e)
            return
        except Exception as e:
            _log_exception(f"[ws] {action} crashed", e, logging.ERROR)
            self.respond(request_id, error=KubelogError(f"Internal error: {e}"))
            return
        self.respond(request_id, data)

    def spawn(self, msg: Dict[str, Any]) -> None:
        """Handle a request concurrently with the ones before it."""
        task = asyncio.get_event_loop().create_task(self.handle(msg))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def close(self) -> None:
        """Stop every stream started on this connection, including ones still opening."""
        self.closed = True
        for stream_id in list(self.sinks):
            self.service.streams.stop(stream_id)
            self._drop_sink(stream_id)


def create_app(service: ViewerService) -> FastAPI:
    """Build the FastAPI application; shutting it down stops every log stream."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        try:
            yield
        finally:
            service.shutdown()

    app = FastAPI(title=SERVICE_NAME, lifespan=lifespan)
    app.state.service = service

    @app.exception_handler(KubelogError)
    async def kubelog_error_handler(request: Request, exc: KubelogError):
        return JSONResponse(status_code=exc.http_status, content={'ok': False, 'error': exc.to_dict()})

    @app.get('/health')
    async def health():
        return {
            'status': 'healthy',
            'timestamp': datetime.now(timezone.utc).isoformat(),
            'service': SERVICE_NAME,
            'initialized': service.initialized,
            'streams': len(service.streams),
        }

    @app.post('/api/init')
    async def init():
        return _ok(await service.init())

    @app.get('/api/contexts')
    async def list_contexts():
        return _ok(await service.list_contexts())

    @app.get('/api/contexts/current')
    async def current_context():
        return _ok(await service.get_current_context())

    @app.post('/api/contexts/switch')
    async def switch_context(payload: Dict[str, Any]):
        return _ok(await service.switch_context(payload.get('name'), bool(payload.get('stopStreams', True))))

    @app.get('/api/namespaces')
    async def list_namespaces():
        return _ok(await service.list_namespaces())

    @app.get('/api/namespaces/{namespace}/pods')
    async def list_pods(namespace: str):
        return _ok(await service.list_pods(namespace))

    @app.get('/api/namespaces/{namespace}/pods/{pod}/logs')
    async def fetch_logs(namespace: str, pod: str, container: Optional[str] = None,
                         tailLines: int = DEFAULT_FETCH_TAIL_LINES):
        return _ok(await service.fetch_logs(namespace, pod, container, tailLines))

    @app.get('/api/streams')
    async def list_streams():
        return _ok(await service.list_log_streams())

    @app.websocket('/ws')
    async def websocket_endpoint(ws: WebSocket):
        await ws.accept()
        log.info("[ws] client connected")
        channel = WebSocketChannel(ws, service)
        sender = asyncio.get_event_loop().create_task(channel.sender())
        try:
            while True:
                raw = await ws.receive_text()
                try:
                    msg = json.loads(raw)
                except json.JSONDecodeError as e:
                    log.warning(f"[ws] Invalid JSON received: {e}")
                    channel.respond(None, error=InvalidRequestError(f"Invalid JSON: {e}"))
                    continue
                if not isinstance(msg, dict):
                    channel.respond(None, error=InvalidRequestError("Request must be a JSON object"))
                    continue
                channel.spawn(msg)
        except WebSocketDisconnect:
            log.info("[ws] client disconnected")
        except Exception as e:
            _log_exception("[ws] WebSocket error", e)
        finally:
            channel.close()
            sender.cancel()

    return app


async def run_server(config: ServerConfig) -> None:
    """Run the Kubelog server; every log stream is stopped before it returns."""
    service = ViewerService.from_config(config)
    try:
        result = await service.init()
        log.info(f"[server] initialized with context={result['current']}")
    except KubelogError as e:
        _log_exception("[server] Initial kubeconfig load failed, waiting for init request", e)

    import uvicorn
    app = create_app(service)
    uv_config = uvicorn.Config(app, host=config.host, port=config.port, log_level=config.uvicorn_log_level)
    server = uvicorn.Server(uv_config)
    try:
        await server.serve()
    finally:
        service.shutdown()
