"""
mpv Audio Backend
=================

Runs one mpv process in idle mode and drives it over its JSON IPC socket.

- Commands are newline-delimited JSON objects carrying a request_id; the
  matching reply resolves the pending future for that id.
- Asynchronous events (property changes, file-loaded, end-file) arrive on
  the same connection and are translated into BackendSink calls.
- Files are loaded with pause=yes, so open() resolves at file-loaded and
  playback only starts when start() is called.
"""

import asyncio
import json
import logging
import os
import tempfile
from typing import Any, Dict, Optional

from camper.audio.backend import AudioBackend
from camper.utils.exceptions import BackendError, DecodeError

logger = logging.getLogger(__name__)

OBSERVED_PROPERTIES = {
    1: 'time-pos',
    2: 'cache-buffering-state',
}

SOCKET_WAIT = 5.0


class MpvBackend(AudioBackend):
    """AudioBackend backed by an mpv subprocess."""

    def __init__(self, mpv_path: str = 'mpv', volume: int = 100, socket_path: Optional[str] = None,
                 command_timeout: float = 5.0):
        """
        Initialize the mpv backend

        Args:
            mpv_path: mpv executable
            volume: Initial volume, 0 - 100
            socket_path: IPC socket path (defaults to a per-process temp file)
            command_timeout: Seconds to wait for a command reply
        """
        super().__init__()
        self.mpv_path = mpv_path
        self.volume = volume
        self.socket_path = socket_path or os.path.join(tempfile.gettempdir(), f"camper-mpv-{os.getpid()}.sock")
        self.command_timeout = command_timeout

        self._process: Optional[asyncio.subprocess.Process] = None
        self._reader: Optional[asyncio.StreamReader] = None
        self._writer: Optional[asyncio.StreamWriter] = None
        self._reader_task: Optional[asyncio.Task] = None
        self._pending: Dict[int, asyncio.Future] = {}
        self._next_request_id = 0
        self._open_future: Optional[asyncio.Future] = None
        self._closing = False

    @property
    def running(self) -> bool:
        return self._writer is not None and self._process is not None and self._process.returncode is None

    async def launch(self):
        """
        Spawn mpv and connect to its IPC socket.

        Raises:
            BackendError: mpv is missing or never opened its socket
        """
        if self.running:
            return
        self._closing = False
        if os.path.exists(self.socket_path):
            logger.debug(f"[MPV] Removing stale socket {self.socket_path}")
            os.unlink(self.socket_path)

        cmd = [
            self.mpv_path,
            "--idle=yes",
            "--no-video",
            "--no-terminal",
            f"--input-ipc-server={self.socket_path}",
            f"--volume={self.volume}",
            "--load-scripts=no",
        ]
        logger.info(f"[MPV] Starting mpv with socket {self.socket_path}")
        try:
            self._process = await asyncio.create_subprocess_exec(
                *cmd,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.DEVNULL,
            )
        except OSError as e:
            raise BackendError(f"Could not start mpv ({self.mpv_path}): {e}") from e

        loop = asyncio.get_running_loop()
        deadline = loop.time() + SOCKET_WAIT
        while not os.path.exists(self.socket_path):
            if self._process.returncode is not None or loop.time() > deadline:
                await self._terminate(kill=True)
                raise BackendError(f"mpv IPC socket did not appear within {SOCKET_WAIT}s")
            await asyncio.sleep(0.1)

        try:
            self._reader, self._writer = await asyncio.open_unix_connection(self.socket_path)
        except OSError as e:
            await self._terminate(kill=True)
            raise BackendError(f"Could not connect to mpv socket: {e}") from e

        self._reader_task = loop.create_task(self._read_loop())
        for observe_id, name in OBSERVED_PROPERTIES.items():
            await self._command('observe_property', observe_id, name)
        logger.info("[MPV] mpv started successfully")

    # ------------------------------------------------------------------
    # IPC

    async def _command(self, *args) -> Any:
        """
        Send one IPC command and wait for its reply.

        Returns:
            The reply's data field

        Raises:
            BackendError: not connected, no reply in time, or mpv reported failure
        """
        if self._writer is None:
            raise BackendError("mpv is not running")

        self._next_request_id += 1
        request_id = self._next_request_id
        future = asyncio.get_running_loop().create_future()
        self._pending[request_id] = future

        payload = json.dumps({'command': list(args), 'request_id': request_id}) + "\n"
        try:
            self._writer.write(payload.encode('utf-8'))
            await self._writer.drain()
            reply = await asyncio.wait_for(future, timeout=self.command_timeout)
        except asyncio.TimeoutError as e:
            raise BackendError(f"mpv did not answer '{args[0]}' within {self.command_timeout}s") from e
        except (ConnectionError, OSError) as e:
            raise BackendError(f"mpv connection lost during '{args[0]}': {e}") from e
        finally:
            self._pending.pop(request_id, None)

        if reply.get('error') != 'success':
            raise BackendError(f"mpv '{args[0]}' failed: {reply.get('error')}")
        return reply.get('data')

    async def _read_loop(self):
        try:
            while True:
                line = await self._reader.readline()
                if not line:
                    break
                try:
                    message = json.loads(line)
                except ValueError:
                    logger.debug(f"[MPV] Ignoring non-JSON line: {line[:80]!r}")
                    continue
                self._handle_message(message)
        except (ConnectionError, OSError) as e:
            logger.warning(f"[MPV] IPC read failed: {e}")
        finally:
            self._connection_lost()

    def _connection_lost(self):
        if self._writer is not None:
            self._writer.close()
        self._writer = None
        error = BackendError("mpv connection closed")
        for future in self._pending.values():
            if not future.done():
                future.set_exception(error)
        self._pending.clear()
        if self._open_future is not None and not self._open_future.done():
            self._open_future.set_exception(error)
        if not self._closing:
            logger.error("[MPV] mpv exited unexpectedly")
            self._emit_error("audio backend exited")

    def _handle_message(self, message: Dict[str, Any]):
        """Route one IPC message: a command reply or an event."""
        if 'event' not in message:
            future = self._pending.get(message.get('request_id'))
            if future is not None and not future.done():
                future.set_result(message)
            return

        event = message['event']
        if event == 'property-change':
            self._handle_property(message.get('name'), message.get('data'))
        elif event == 'file-loaded':
            if self._open_future is not None and not self._open_future.done():
                self._open_future.set_result(True)
        elif event == 'end-file':
            self._handle_end_file(message.get('reason'), message.get('file_error'))

    def _handle_property(self, name: Optional[str], data: Any):
        if data is None or isinstance(data, bool):
            return
        if name == 'time-pos':
            self._emit_position(float(data))
        elif name == 'cache-buffering-state':
            self._emit_buffering(float(data))

    def _handle_end_file(self, reason: Optional[str], file_error: Optional[str]):
        opening = self._open_future is not None and not self._open_future.done()
        if reason == 'eof':
            self._emit_end_of_stream()
        elif reason == 'error':
            message = file_error or "playback failed"
            if opening:
                self._open_future.set_exception(DecodeError(f"Could not open stream: {message}"))
            else:
                self._emit_error(message)
        # 'stop', 'redirect' and 'quit' follow our own loadfile/stop commands

    # ------------------------------------------------------------------
    # Transport

    async def open(self, uri: str):
        if self._open_future is not None and not self._open_future.done():
            self._open_future.cancel()
        self._open_future = asyncio.get_running_loop().create_future()

        await self._command('set_property', 'pause', True)
        await self._command('loadfile', uri, 'replace')
        logger.debug(f"[MPV] Loading {uri}")
        await self._open_future

    async def start(self):
        await self._command('set_property', 'pause', False)

    async def pause(self):
        await self._command('set_property', 'pause', True)

    async def seek(self, seconds: float):
        await self._command('seek', float(seconds), 'absolute')

    async def stop(self):
        if self._open_future is not None and not self._open_future.done():
            self._open_future.cancel()
        if self._writer is not None:
            await self._command('stop')

    async def set_volume(self, volume: float):
        self.volume = int(round(max(0.0, min(1.0, volume)) * 100))
        if self._writer is not None:
            await self._command('set_property', 'volume', self.volume)

    async def close(self):
        """Quit mpv and release the socket."""
        self._closing = True
        if self._writer is not None:
            try:
                await self._command('quit')
            except BackendError as e:
                logger.debug(f"[MPV] quit not acknowledged: {e}")
        if self._reader_task is not None:
            self._reader_task.cancel()
            try:
                await self._reader_task
            except asyncio.CancelledError:
                pass
            self._reader_task = None
        if self._writer is not None:
            self._writer.close()
            self._writer = None
        await self._terminate()
        logger.info("[MPV] mpv stopped")

    async def _terminate(self, kill: bool = False):
        if self._process is not None and self._process.returncode is None:
            if kill:
                self._process.kill()
            try:
                await asyncio.wait_for(self._process.wait(), timeout=2.0)
            except asyncio.TimeoutError:
                self._process.kill()
                await self._process.wait()
        self._process = None
        if os.path.exists(self.socket_path):
            try:
                os.unlink(self.socket_path)
            except OSError as e:
                logger.debug(f"[MPV] Could not remove socket: {e}")
