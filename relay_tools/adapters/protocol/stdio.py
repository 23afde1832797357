"""Stdio tool server transport.

Spawns the server as a child process and speaks newline-delimited JSON-RPC
over its standard streams. Responses are correlated to pending futures by
request id; each request times out independently.
"""

import asyncio
import json
import os
import shlex
from typing import Any

from relay_config.settings import Settings
from relay_obs.logging import get_logger
from relay_tools.base import Credential, ToolSource, TransportKind
from relay_tools.exceptions import (
    ConfigurationError,
    ConnectionClosedError,
    ProtocolTimeoutError,
    TransportError,
)

from .connection import ProtocolConnection
from .jsonrpc import (
    RequestIdSequence,
    build_notification,
    build_request,
    encode_line,
    error_from_object,
    is_response,
)

logger = get_logger(__name__)

READ_CHUNK_BYTES = 64 * 1024
SHUTDOWN_GRACE_SECONDS = 5.0


class StdioConnection(ProtocolConnection):
    """Tool server running as a local subprocess."""

    transport = TransportKind.PROTOCOL_STDIO

    def __init__(
        self,
        source: ToolSource,
        settings: Settings,
        request_ids: RequestIdSequence,
        credentials: Credential | None = None,
        timeout: float | None = None,
    ):
        super().__init__(source, settings, request_ids, credentials)
        self.timeout = timeout if timeout is not None else settings.STDIO_REQUEST_TIMEOUT_SECONDS
        self.process: asyncio.subprocess.Process | None = None
        self._pending: dict[int, asyncio.Future] = {}
        self._buffer = bytearray()
        self._stdout_task: asyncio.Task | None = None
        self._stderr_task: asyncio.Task | None = None

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    async def _open(self) -> None:
        if not self.source.server_uri:
            raise ConfigurationError(f'Tool server "{self.source.name}" has no command configured.')

        try:
            argv = shlex.split(self.source.server_uri)
        except ValueError as e:
            raise ConfigurationError(
                f'Tool server "{self.source.name}" has a malformed command: {e}'
            ) from e
        if not argv:
            raise ConfigurationError(f'Tool server "{self.source.name}" has no command configured.')
        env = {**os.environ, **self.source.env}
        logger.info("protocol.connect", source_id=self.source_id, command=argv[0])
        try:
            self.process = await asyncio.create_subprocess_exec(
                *argv,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                env=env,
            )
        except OSError as e:
            raise TransportError(f"Could not start tool server {argv[0]}: {e}") from e

        self._stdout_task = asyncio.create_task(self._read_stdout())
        self._stderr_task = asyncio.create_task(self._read_stderr())

    async def _request(self, method: str, params: dict[str, Any]) -> dict[str, Any]:
        request_id = self._request_ids.next()
        future = asyncio.get_running_loop().create_future()
        self._pending[request_id] = future
        try:
            await self._write(build_request(method, params, request_id))
            try:
                return await asyncio.wait_for(future, timeout=self.timeout)
            except asyncio.TimeoutError:
                raise ProtocolTimeoutError(method, self.timeout) from None
        finally:
            self._pending.pop(request_id, None)

    async def _notify(self, method: str, params: dict[str, Any] | None = None) -> None:
        await self._write(build_notification(method, params))

    async def _write(self, message: dict[str, Any]) -> None:
        process = self.process
        if process is None or process.stdin is None or process.stdin.is_closing():
            raise ConnectionClosedError(f"Tool server {self.source.name} is not running")
        try:
            process.stdin.write(encode_line(message))
            await process.stdin.drain()
        except (ConnectionError, OSError) as e:
            self._on_stream_end(f"stdin error: {e}")
            raise ConnectionClosedError(f"Tool server {self.source.name} closed its input: {e}") from e

    # ------------------------------------------------------------------------
    # READERS
    # ------------------------------------------------------------------------

    async def _read_stdout(self) -> None:
        assert self.process is not None and self.process.stdout is not None
        try:
            while True:
                chunk = await self.process.stdout.read(READ_CHUNK_BYTES)
                if not chunk:
                    break
                self._feed(chunk)
        except (ConnectionError, OSError) as e:
            self._on_stream_end(f"stdout error: {e}")
            return
        except Exception as e:
            logger.error("protocol.reader_failed", source_id=self.source_id, error=str(e), exc_info=True)
            self._on_stream_end(f"stdout reader failed: {e}")
            if self.process.returncode is None:
                self.process.kill()
            return
        returncode = await self.process.wait()
        self._on_stream_end(f"process exited with code {returncode}")

    async def _read_stderr(self) -> None:
        assert self.process is not None and self.process.stderr is not None
        while True:
            line = await self.process.stderr.readline()
            if not line:
                return
            logger.debug(
                "protocol.stderr",
                source_id=self.source_id,
                line=line.decode("utf-8", errors="replace").rstrip(),
            )

    def _feed(self, chunk: bytes) -> None:
        """Append a chunk and dispatch every complete line; keep the partial tail."""
        self._buffer.extend(chunk)
        while True:
            newline = self._buffer.find(b"\n")
            if newline < 0:
                return
            line = bytes(self._buffer[:newline]).strip()
            del self._buffer[: newline + 1]
            if not line:
                continue
            try:
                message = json.loads(line)
            except ValueError:
                logger.warning(
                    "protocol.unparseable_line",
                    source_id=self.source_id,
                    line=line[:200].decode("utf-8", errors="replace"),
                )
                continue
            self._dispatch(message)

    def _dispatch(self, message: Any) -> None:
        if is_response(message):
            request_id = message["id"]
            if not isinstance(request_id, int) or isinstance(request_id, bool):
                logger.warning(
                    "protocol.invalid_response_id", source_id=self.source_id, id=repr(request_id)[:100]
                )
                return
            future = self._pending.get(request_id)
            if future is None or future.done():
                logger.debug("protocol.unmatched_response", source_id=self.source_id, id=request_id)
                return
            if message.get("error") is not None:
                future.set_exception(error_from_object(message["error"]))
            else:
                result = message.get("result")
                future.set_result(result if isinstance(result, dict) else {})
        elif isinstance(message, dict) and message.get("method"):
            logger.debug("protocol.notification", source_id=self.source_id, method=message["method"])

    # ------------------------------------------------------------------------
    # SHUTDOWN
    # ------------------------------------------------------------------------

    def _fail_pending(self, reason: str) -> None:
        pending, self._pending = self._pending, {}
        for future in pending.values():
            if not future.done():
                future.set_exception(
                    ConnectionClosedError(f"Tool server {self.source.name} closed: {reason}")
                )

    def _on_stream_end(self, reason: str) -> None:
        self._fail_pending(reason)
        self._mark_closed(reason)

    async def _teardown(self) -> None:
        current = asyncio.current_task()
        for task in (self._stdout_task, self._stderr_task):
            if task is not None and task is not current and not task.done():
                task.cancel()

        process = self.process
        if process is not None and process.returncode is None:
            if process.stdin is not None and not process.stdin.is_closing():
                process.stdin.close()
            try:
                await asyncio.wait_for(process.wait(), timeout=SHUTDOWN_GRACE_SECONDS)
            except asyncio.TimeoutError:
                if process.returncode is None:
                    process.kill()
                await process.wait()

        self._fail_pending("disconnected")
