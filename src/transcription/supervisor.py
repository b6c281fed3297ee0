"""Lifecycle supervision for the shared whisper-server child process.

State transitions (absent -> starting -> ready -> absent) happen under one
asyncio lock. The lock is released for health probes, the startup wait and
process waits, so readers are never blocked behind network or process I/O.

A launch runs in a task owned by the supervisor and callers await it through
``asyncio.shield``. Cancelling one caller therefore never kills a server that
other callers are waiting on; only ``stop()`` or the startup timeout does.

A watcher task waits on each ready process. When the process exits it
reports back through ``_on_exit`` with its handle; the state is only cleared
if that handle's generation is still the tracked one, so a watcher for an
old process can never clobber a newer instance.
"""

import asyncio
import logging
import shutil
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

import httpx

from transcription.constants import (
    DEFAULT_SERVER_PORT,
    PROBE_TIMEOUT_S,
    SERVER_EXECUTABLES,
    SERVER_HOST,
    STARTUP_POLL_INTERVAL_S,
    STARTUP_TIMEOUT_S,
    STOP_GRACE_S,
)
from transcription.errors import (
    NotConfiguredError,
    NotFoundError,
    ServerStartError,
    StartupTimeoutError,
)
from transcription.settings import (
    WHISPER_MODEL_PATH,
    WHISPER_SERVER_PATH,
    WHISPER_SERVER_PORT,
    SettingsAccessor,
)

logger = logging.getLogger(__name__)


class ServerState(str, Enum):
    """Lifecycle state of the whisper-server child."""

    ABSENT = "absent"
    STARTING = "starting"
    READY = "ready"


@dataclass(eq=False)
class ServerProcess:
    """A spawned whisper-server instance."""

    process: asyncio.subprocess.Process
    port: int
    generation: int
    watcher: asyncio.Task | None = None

    @property
    def pid(self) -> int:
        return self.process.pid


async def terminate_process(process: asyncio.subprocess.Process, grace: float = 0.0) -> int:
    """Stop process and reap it, returning its exit code.

    With ``grace`` > 0 the process gets SIGTERM and that long to exit before
    it is killed; otherwise it is killed straight away.
    """
    if process.returncode is None:
        try:
            if grace > 0:
                process.terminate()
                try:
                    return await asyncio.wait_for(process.wait(), timeout=grace)
                except asyncio.TimeoutError:
                    logger.warning("Process %d ignored SIGTERM; killing", process.pid)
            process.kill()
        except ProcessLookupError:
            pass
    return await process.wait()


class ProcessSupervisor:
    """Keeps exactly one ready whisper-server instance available."""

    def __init__(
        self,
        settings: SettingsAccessor,
        *,
        host: str = SERVER_HOST,
        startup_timeout: float = STARTUP_TIMEOUT_S,
        poll_interval: float = STARTUP_POLL_INTERVAL_S,
        probe_timeout: float = PROBE_TIMEOUT_S,
        stop_grace: float = STOP_GRACE_S,
    ):
        self._settings = settings
        self._host = host
        self._startup_timeout = startup_timeout
        self._poll_interval = poll_interval
        self._probe_timeout = probe_timeout
        self._stop_grace = stop_grace

        self._lock = asyncio.Lock()
        self._start_lock = asyncio.Lock()
        self._startup: asyncio.Task | None = None
        self._current: ServerProcess | None = None
        self._running = False
        self._generation = 0

    @property
    def state(self) -> ServerState:
        if self._current is None:
            return ServerState.ABSENT
        return ServerState.READY if self._running else ServerState.STARTING

    @property
    def port(self) -> int | None:
        return self._current.port if self._current else None

    @property
    def pid(self) -> int | None:
        return self._current.pid if self._current else None

    @property
    def base_url(self) -> str | None:
        if self._current is None:
            return None
        return self._url(self._current.port)

    def _url(self, port: int) -> str:
        return f"http://{self._host}:{port}"

    def server_path(self) -> str:
        """Configured whisper-server path, falling back to PATH lookup."""
        path = self._settings.get_string(WHISPER_SERVER_PATH)
        if path:
            return path
        for name in SERVER_EXECUTABLES:
            found = shutil.which(name)
            if found:
                return found
        return ""

    def model_path(self) -> str:
        return self._settings.get_string(WHISPER_MODEL_PATH)

    def configured_port(self) -> int:
        return self._settings.get_int(WHISPER_SERVER_PORT, DEFAULT_SERVER_PORT)

    async def ping(self, port: int) -> bool:
        """Return True if anything answers HTTP on ``/`` at port."""
        try:
            async with httpx.AsyncClient(timeout=self._probe_timeout) as client:
                await client.get(f"{self._url(port)}/")
        except httpx.HTTPError:
            return False
        return True

    async def ensure_ready(self) -> str:
        """Make sure a healthy server is running and return its base URL.

        Raises:
            NotConfiguredError: Server executable or model path is not set.
            NotFoundError: The model file does not exist.
            ServerStartError: The process could not be spawned or exited early.
            StartupTimeoutError: The server never answered its health probe.
        """
        url = await self._check_tracked()
        if url:
            return url

        async with self._start_lock:
            # Another caller may have finished a startup while we waited.
            url = await self._check_tracked()
            if url:
                return url
            if self._startup is None or self._startup.done():
                self._startup = asyncio.create_task(self._start(), name="whisper-server-startup")
                self._startup.add_done_callback(self._startup_finished)
            startup = self._startup

        # The startup belongs to the supervisor: a cancelled caller stops
        # waiting but the launch carries on for everyone else.
        try:
            return await asyncio.shield(startup)
        except asyncio.CancelledError:
            task = asyncio.current_task()
            if startup.cancelled() and task is not None and not task.cancelling():
                raise ServerStartError("whisper-server was stopped during startup") from None
            raise

    @staticmethod
    def _startup_finished(task: asyncio.Task) -> None:
        if not task.cancelled() and task.exception() is not None:
            logger.warning("whisper-server startup failed: %s", task.exception())

    async def _check_tracked(self) -> str | None:
        async with self._lock:
            current = self._current if self._running else None
        if current is None:
            return None

        if await self.ping(current.port):
            return self._url(current.port)

        logger.warning("whisper-server (pid %d) failed its health probe; restarting", current.pid)
        async with self._lock:
            if self._current is current:
                self._reset_locked()
        await terminate_process(current.process)
        return None

    async def _start(self) -> str:
        server_path = self.server_path()
        if not server_path:
            raise NotConfiguredError(
                "whisper-server path is not configured and whisper-server is not on PATH"
            )
        model_path = self.model_path()
        if not model_path:
            raise NotConfiguredError("whisper model path is not configured")
        if not Path(model_path).exists():
            raise NotFoundError(f"whisper model file not found: {model_path}")

        port = self.configured_port()
        logger.info("Starting whisper-server on port %d", port)

        try:
            process = await asyncio.create_subprocess_exec(
                server_path,
                "-m", model_path,
                "--port", str(port),
                "--host", self._host,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.DEVNULL,
            )
        except OSError as exc:
            raise ServerStartError(f"failed to start whisper-server: {exc}") from exc

        self._generation += 1
        handle = ServerProcess(process=process, port=port, generation=self._generation)
        try:
            async with self._lock:
                self._current = handle
                self._running = False

            await self._wait_until_ready(handle)

            async with self._lock:
                if self._current is not handle:
                    raise ServerStartError("whisper-server was stopped during startup")
                self._running = True
                handle.watcher = asyncio.create_task(
                    self._watch(handle), name=f"whisper-server-watch-{process.pid}"
                )
        except BaseException:
            async with self._lock:
                if self._current is handle:
                    self._reset_locked()
            await terminate_process(process)
            raise

        logger.info("whisper-server ready on port %d (pid %d)", port, process.pid)
        return self._url(port)

    async def _wait_until_ready(self, handle: ServerProcess) -> None:
        """Poll the health probe until it succeeds or the startup timeout expires."""
        try:
            async with asyncio.timeout(self._startup_timeout):
                while True:
                    if handle.process.returncode is not None:
                        raise ServerStartError(
                            f"whisper-server exited during startup with code "
                            f"{handle.process.returncode}"
                        )
                    if await self.ping(handle.port):
                        return
                    await asyncio.sleep(self._poll_interval)
        except TimeoutError:
            raise StartupTimeoutError(handle.port, self._startup_timeout) from None

    async def _watch(self, handle: ServerProcess) -> None:
        returncode = await handle.process.wait()
        await self._on_exit(handle, returncode)

    async def _on_exit(self, handle: ServerProcess, returncode: int) -> None:
        async with self._lock:
            if self._current is None or self._current.generation != handle.generation:
                return
            self._reset_locked()
        logger.warning(
            "whisper-server (pid %d) exited unexpectedly with code %s", handle.pid, returncode
        )

    def _reset_locked(self) -> None:
        self._current = None
        self._running = False

    async def stop(self) -> None:
        """Terminate the tracked server, if any, and wait for it to exit.

        A startup still in progress is cancelled first; its child is killed
        and reaped by ``_start``.
        """
        startup, self._startup = self._startup, None
        if startup is not None and not startup.done():
            startup.cancel()
            await asyncio.wait({startup})

        async with self._lock:
            handle = self._current
            self._reset_locked()
        if handle is None:
            return

        logger.info("Stopping whisper-server (pid %d)", handle.pid)
        await terminate_process(handle.process, grace=self._stop_grace)
        if handle.watcher is not None:
            await handle.watcher
        logger.info("whisper-server stopped")

    async def probe_executable(self) -> tuple[bool, str]:
        """Check that the server executable runs (``whisper-server --help``)."""
        server_path = self.server_path()
        if not server_path:
            return False, "whisper-server not found; configure its path or add it to PATH"
        try:
            process = await asyncio.create_subprocess_exec(
                server_path,
                "--help",
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.DEVNULL,
            )
        except OSError as exc:
            return False, f"whisper-server failed to run: {exc}"
        returncode = await process.wait()
        if returncode != 0:
            return False, f"whisper-server --help exited with code {returncode}"
        return True, ""
