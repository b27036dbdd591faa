from __future__ import annotations

import asyncio
import subprocess
from collections import deque
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Optional

from llama_desk.entities.server_state import ServerState, can_transition
from llama_desk.frameworks_drivers.artifact_store import ArtifactStore
from llama_desk.frameworks_drivers.config import ServerConfig, SupervisorConfig
from llama_desk.shared.errors import BackendNotReadyError, ConfigurationError
from llama_desk.shared.event_emitter import EventEmitter
from llama_desk.shared.health_checker import HealthChecker
from llama_desk.shared.logger import Logger

logger = Logger.get(__name__)


class LlamaServerSupervisor:
    """
    Owns the lifecycle of the single local llama-server subprocess.

    Spawns it, waits for readiness, polls its health, restarts it after a
    crash (bounded by ``max_restart_attempts``) and shuts it down. Observers
    subscribe through ``events``: ``status_changed``, ``error`` and ``log``.
    """

    EXIT_POLL_INTERVAL = 0.2

    def __init__(self, config: ServerConfig, policy: Optional[SupervisorConfig] = None):
        self._config = config.model_copy()
        self.policy = policy or SupervisorConfig()
        self.events = EventEmitter()

        self._state = ServerState.DISCONNECTED
        self._process: subprocess.Popen | None = None
        self._restart_count = 0
        self._is_shutting_down = False
        self._output_tail: deque[str] = deque(maxlen=self.policy.log_tail_lines)

        self._health_task: asyncio.Task | None = None
        self._restart_task: asyncio.Task | None = None
        self._watch_task: asyncio.Task | None = None
        self._output_task: asyncio.Task | None = None

    @property
    def state(self) -> ServerState:
        return self._state

    @property
    def config(self) -> ServerConfig:
        return self._config.model_copy()

    @property
    def restart_count(self) -> int:
        return self._restart_count

    @property
    def base_url(self) -> str:
        return f"http://{self._config.host}:{self._config.port}"

    @property
    def is_ready(self) -> bool:
        return self._state in (ServerState.READY, ServerState.GENERATING)

    def recent_output(self) -> list[str]:
        return list(self._output_tail)

    def status_snapshot(self) -> dict[str, Any]:
        return {
            "state": self._state.value,
            "base_url": self.base_url,
            "pid": self._process.pid if self._process is not None else None,
            "restart_count": self._restart_count,
            "config": self._config.model_dump(),
        }

    def update_config(self, **partial: Any) -> ServerConfig:
        """
        Merge the provided (non-None) fields into the launch config.
        Must be called before ``start()``; a running process is never reconfigured.
        """
        if HealthChecker.check_process_running(self._process):
            raise ConfigurationError("Cannot change llama-server config while it is running")

        updates = {key: value for key, value in partial.items() if value is not None}
        self._config = ServerConfig(**{**self._config.model_dump(), **updates})
        logger.info(f"llama-server config updated: {sorted(updates)}")
        return self.config

    def _set_state(self, state: ServerState) -> bool:
        if state == self._state:
            return True
        if not can_transition(self._state, state):
            logger.warning(f"Ignoring invalid state transition {self._state.value} -> {state.value}")
            return False
        logger.info(f"llama-server state: {self._state.value} -> {state.value}")
        self._state = state
        self.events.emit("status_changed", state)
        return True

    def _fail(self, message: str) -> None:
        logger.error(message)
        self._set_state(ServerState.ERROR)
        self.events.emit("error", message)

    def _validate_paths(self) -> Optional[str]:
        if not ArtifactStore.exists(self._config.binary_path):
            return f"llama-server binary not found at: {self._config.binary_path}"
        if not ArtifactStore.exists(self._config.model_path):
            return f"Model file not found at: {self._config.model_path}"
        return None

    def _build_command(self) -> list[str]:
        return [
            self._config.binary_path,
            "-m", self._config.model_path,
            "-t", str(self._config.threads),
            "-c", str(self._config.context_size),
            "-ngl", str(self._config.gpu_layers),
            "--host", self._config.host,
            "--port", str(self._config.port),
        ]

    async def start(self) -> bool:
        """
        Spawn llama-server and wait until its health endpoint answers.

        Returns:
            True once the server is ready, False if validation, spawning or
            the startup wait failed. Failures are reported as an ``error``
            state plus an ``error`` event; this call never retries itself.
        """
        if HealthChecker.check_process_running(self._process):
            logger.warning("llama-server is already running, ignoring start()")
            return self.is_ready

        validation_error = self._validate_paths()
        if validation_error:
            self._fail(validation_error)
            return False

        self._is_shutting_down = False
        self._set_state(ServerState.LOADING)

        cmd = self._build_command()
        logger.info(f"Starting llama-server: {' '.join(cmd)}")
        try:
            process = subprocess.Popen(
                cmd,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
            )
        except OSError as e:
            self._fail(f"Failed to start llama-server: {e}")
            return False

        self._process = process
        self._watch_task = asyncio.create_task(self._watch_exit(process))
        self._output_task = asyncio.create_task(self._pump_output(process))

        if await self._wait_for_ready(process):
            self._restart_count = 0
            self._set_state(ServerState.READY)
            self._start_health_polling()
            return True

        if process is not self._process or not HealthChecker.check_process_running(process):
            # Exited while loading: the exit watcher owns crash handling.
            return False

        self._process = None
        self._cancel_process_tasks()
        await asyncio.to_thread(self._terminate_process, process, self.policy.stop_timeout)
        tail = "\n".join(self.recent_output()[-20:])
        self._fail("Server startup timed out")
        if tail:
            logger.error(f"llama-server output before timeout:\n{tail}")
        return False

    async def _wait_for_ready(self, process: subprocess.Popen) -> bool:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.policy.startup_timeout
        while loop.time() < deadline:
            if process is not self._process or not HealthChecker.check_process_running(process):
                logger.warning("llama-server exited before becoming ready")
                return False
            if await HealthChecker.check_http_endpoint(self.base_url, "/health", self.policy.health_request_timeout):
                logger.info(f"llama-server ready at {self.base_url}")
                return True
            await asyncio.sleep(self.policy.startup_poll_interval)
        return False

    async def _watch_exit(self, process: subprocess.Popen) -> None:
        while True:
            exit_code = process.poll()
            if exit_code is not None:
                break
            await asyncio.sleep(self.EXIT_POLL_INTERVAL)

        if self._is_shutting_down or process is not self._process:
            return

        self._process = None
        if exit_code != 0:
            self._handle_crash(exit_code)
        else:
            logger.info("llama-server exited cleanly")
            self._stop_health_polling()
            self._set_state(ServerState.DISCONNECTED)

    async def _pump_output(self, process: subprocess.Popen) -> None:
        stream = process.stdout
        if stream is None:
            return
        while True:
            raw = await asyncio.to_thread(stream.readline)
            if not raw:
                break
            line = raw.decode("utf-8", errors="replace") if isinstance(raw, bytes) else str(raw)
            line = line.rstrip()
            self._output_tail.append(line)
            logger.debug(f"llama-server: {line}")
            self.events.emit("log", line)

    def _start_health_polling(self) -> None:
        self._stop_health_polling()
        self._health_task = asyncio.create_task(self._health_loop())

    def _stop_health_polling(self) -> None:
        if self._health_task is not None and self._health_task is not asyncio.current_task():
            self._health_task.cancel()
        self._health_task = None

    async def _health_loop(self) -> None:
        while True:
            await asyncio.sleep(self.policy.health_check_interval)
            healthy = await HealthChecker.check_http_endpoint(
                self.base_url, "/health", self.policy.health_request_timeout,
            )
            # A slow server is reported, not restarted: restarts follow process exit only.
            if not healthy and not self._is_shutting_down and self.is_ready:
                self._fail("Health check failed")
                return

    def _handle_crash(self, exit_code: Optional[int]) -> None:
        self._set_state(ServerState.ERROR)
        self._stop_health_polling()

        max_attempts = self.policy.max_restart_attempts
        if self._restart_count < max_attempts:
            self._restart_count += 1
            message = f"Server crashed (code {exit_code}), restarting (attempt {self._restart_count}/{max_attempts})..."
            logger.warning(message)
            self.events.emit("log", message)
            self._restart_task = asyncio.create_task(self._restart_after_delay())
        else:
            message = f"Server crashed {max_attempts} times, giving up"
            logger.error(message)
            self.events.emit("error", message)

    async def _restart_after_delay(self) -> None:
        await asyncio.sleep(self.policy.restart_delay)
        if self._is_shutting_down:
            return
        await self.start()

    def _cancel_process_tasks(self) -> None:
        for task in (self._watch_task, self._output_task):
            if task is not None and task is not asyncio.current_task():
                task.cancel()
        self._watch_task = None
        self._output_task = None

    @staticmethod
    def _terminate_process(process: subprocess.Popen | None, timeout: float) -> None:
        """Terminate a subprocess with a timeout, killing if necessary."""
        if process is not None:
            process.terminate()
            try:
                process.wait(timeout=timeout)
            except subprocess.TimeoutExpired:
                process.kill()
                process.wait()

    async def stop(self) -> None:
        """Stop the server: SIGTERM, then SIGKILL after ``stop_timeout``. Always resolves."""
        self._is_shutting_down = True
        self._stop_health_polling()

        if self._restart_task is not None and self._restart_task is not asyncio.current_task():
            self._restart_task.cancel()
        self._restart_task = None

        process, self._process = self._process, None
        if HealthChecker.check_process_running(process):
            logger.info("Stopping llama-server")
            try:
                await asyncio.to_thread(self._terminate_process, process, self.policy.stop_timeout)
            except OSError as e:
                logger.warning(f"Error while stopping llama-server: {e}")

        self._cancel_process_tasks()
        self._set_state(ServerState.DISCONNECTED)

    @asynccontextmanager
    async def generating(self) -> AsyncIterator[None]:
        """Hold the ``generating`` state for the duration of one local completion."""
        if not self.is_ready:
            raise BackendNotReadyError(f"Local model not ready (state: {self._state.value})")

        entered = self._state == ServerState.READY and self._set_state(ServerState.GENERATING)
        try:
            yield
        finally:
            if entered and self._state == ServerState.GENERATING:
                self._set_state(ServerState.READY)
