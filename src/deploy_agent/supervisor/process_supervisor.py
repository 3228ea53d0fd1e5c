"""Supervision of the single application process."""

import asyncio
import inspect
import os
import shutil
import signal
import subprocess
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Optional

import structlog

from deploy_agent.core.exceptions import AlreadyRunningError, ConfigMissingError
from deploy_agent.supervisor.log_broadcaster import LogBroadcaster
from deploy_agent.supervisor.models import ManagedProcess, ProcessState

logger = structlog.get_logger()

READ_CHUNK_SIZE = 4096

ExitListener = Callable[[Optional[int]], Any]


def resolve_shell(command: str) -> List[str]:
    """Build the argv that runs `command` through an available shell."""
    if os.name == "nt":
        comspec = os.environ.get("COMSPEC") or "cmd.exe"
        return [comspec, "/d", "/s", "/c", command]

    for candidate in (os.environ.get("SHELL"), "/bin/bash", "/bin/sh"):
        if candidate and os.path.isfile(candidate) and os.access(candidate, os.X_OK):
            return [candidate, "-c", command]

    found = shutil.which("sh")
    if found:
        return [found, "-c", command]
    raise ConfigMissingError("No command shell available")


def reexec_host() -> None:
    """Replace the agent process with a fresh copy of itself."""
    argv = [sys.executable, *sys.orig_argv[1:]]
    logger.critical("Restarting agent process", argv=argv)
    sys.stdout.flush()
    sys.stderr.flush()
    os.execv(sys.executable, argv)


class ProcessSupervisor:
    """Owns the at-most-one application process.

    Stopping escalates from a graceful terminate to a force-kill. A process
    that survives the force-kill is declared stuck and the agent schedules a
    restart of itself, relying on being re-exec'd with clean process state.
    """

    def __init__(
        self,
        broadcaster: Optional[LogBroadcaster] = None,
        *,
        graceful_timeout: float = 10.0,
        force_kill_timeout: float = 5.0,
        watchdog_interval: float = 10.0,
        host_restart_delay: float = 2.0,
        restart_host: Optional[Callable[[], None]] = None,
    ):
        self.broadcaster = broadcaster or LogBroadcaster()
        self.graceful_timeout = graceful_timeout
        self.force_kill_timeout = force_kill_timeout
        self.watchdog_interval = watchdog_interval
        self.host_restart_delay = host_restart_delay
        self.restart_host = restart_host or reexec_host

        self.process: Optional[ManagedProcess] = None
        self._exit_task: Optional[asyncio.Task] = None
        self._watchdog_task: Optional[asyncio.Task] = None
        self._reader_tasks: List[asyncio.Task] = []
        self._exit_listeners: List[ExitListener] = []
        self._restart_handle: Optional[asyncio.TimerHandle] = None

    @property
    def state(self) -> ProcessState:
        if self.process is None:
            return ProcessState.STOPPED
        return self.process.state

    @property
    def restart_scheduled(self) -> bool:
        return self._restart_handle is not None

    def is_running(self) -> bool:
        return self.process is not None and self.process.is_running

    def add_exit_listener(self, listener: ExitListener) -> None:
        self._exit_listeners.append(listener)

    def status(self) -> Dict:
        if self.process is None:
            return {"state": ProcessState.STOPPED.value, "pid": None, "restartScheduled": False}
        return {**self.process.to_dict(), "restartScheduled": self.restart_scheduled}

    async def start(self, command: Optional[str], working_dir: Optional[str], env: Optional[Mapping[str, str]] = None) -> bool:
        """Spawn the application process.

        Returns:
            True if the process was spawned, False on a soft failure
            (missing working directory or spawn error), which is logged
            and written to the log stream.

        Raises:
            AlreadyRunningError: If a process is active or transitioning
            ConfigMissingError: If command or working_dir is unset
        """
        if self.state != ProcessState.STOPPED:
            raise AlreadyRunningError(f"Process already {self.state.value}")
        if not command or not working_dir:
            raise ConfigMissingError("Command or working directory not configured")

        workdir = Path(working_dir)
        if not workdir.is_dir():
            message = f"Working directory does not exist: {workdir}"
            logger.error("Cannot start process", reason=message)
            self.broadcaster.publish_line(message)
            return False

        argv = resolve_shell(command)
        process = ManagedProcess(command=command, working_dir=str(workdir), env=dict(env if env is not None else os.environ))
        self.process = process

        logger.info("Starting process", command=command, cwd=str(workdir), shell=argv[0], env_vars=len(process.env))
        try:
            handle = await self._spawn(argv, workdir, process.env)
        except OSError as e:
            process.state = ProcessState.STOPPED
            process.stopped_at = datetime.now(timezone.utc)
            logger.error("Failed to start process", command=command, error=str(e))
            self.broadcaster.publish_line(f"Failed to start process: {e}")
            return False

        process.handle = handle
        process.pid = handle.pid
        process.started_at = datetime.now(timezone.utc)
        process.state = ProcessState.RUNNING

        self._reader_tasks = [
            asyncio.create_task(self._pump(process, handle.stdout, "stdout")),
            asyncio.create_task(self._pump(process, handle.stderr, "stderr")),
        ]
        self._exit_task = asyncio.create_task(self._watch_exit(process))
        if self.watchdog_interval > 0:
            self._watchdog_task = asyncio.create_task(self._watchdog(process))

        logger.info("Process started", pid=handle.pid)
        return True

    async def stop(self) -> bool:
        """Stop the running process, escalating as needed.

        Returns:
            False if nothing was running, True once a stop sequence was run
        """
        process = self.process
        if process is None or process.state != ProcessState.RUNNING:
            logger.debug("Stop requested but no process running", state=self.state.value)
            return False

        handle = process.handle
        process.state = ProcessState.STOPPING
        logger.info("Stopping process", pid=process.pid)
        self._send_signal(handle, force=False)
        if await self._wait_exit(self.graceful_timeout):
            logger.info("Process stopped gracefully", pid=process.pid, exit_code=process.exit_code)
            return True

        process.state = ProcessState.FORCE_KILLING
        logger.warning("Process did not stop gracefully, killing", pid=process.pid, timeout=self.graceful_timeout)
        self._send_signal(handle, force=True)
        if await self._wait_exit(self.force_kill_timeout):
            logger.info("Process killed", pid=process.pid, exit_code=process.exit_code)
            return True

        process.state = ProcessState.STUCK
        message = f"Process {process.pid} survived force-kill; restarting agent in {self.host_restart_delay}s"
        logger.critical("Process stuck after force-kill", pid=process.pid, restart_delay=self.host_restart_delay)
        self.broadcaster.publish_line(message)
        self._schedule_host_restart()
        return True

    async def shutdown(self) -> None:
        """Stop the process and cancel background tasks."""
        await self.stop()
        if self._watchdog_task:
            self._watchdog_task.cancel()
        for task in self._reader_tasks:
            task.cancel()

    async def _spawn(self, argv: List[str], cwd: Path, env: Dict[str, str]) -> asyncio.subprocess.Process:
        kwargs: Dict[str, Any] = {}
        if os.name == "posix":
            # Own process group so signals reach the shell's children too
            kwargs["start_new_session"] = True
        else:
            kwargs["creationflags"] = subprocess.CREATE_NEW_PROCESS_GROUP
        return await asyncio.create_subprocess_exec(
            *argv,
            cwd=str(cwd),
            env=env,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            **kwargs,
        )

    def _send_signal(self, handle: asyncio.subprocess.Process, force: bool) -> None:
        try:
            if os.name == "posix":
                os.killpg(handle.pid, signal.SIGKILL if force else signal.SIGTERM)
            elif force:
                handle.kill()
            else:
                handle.terminate()
        except ProcessLookupError:
            logger.debug("Process already gone", pid=handle.pid)

    async def _wait_exit(self, timeout: float) -> bool:
        if self._exit_task is None:
            return True
        try:
            await asyncio.wait_for(asyncio.shield(self._exit_task), timeout=timeout)
            return True
        except asyncio.TimeoutError:
            return False

    async def _pump(self, process: ManagedProcess, stream: Optional[asyncio.StreamReader], name: str) -> None:
        if stream is None:
            return
        try:
            while True:
                chunk = await stream.read(READ_CHUNK_SIZE)
                if not chunk:
                    break
                process.last_output_at = datetime.now(timezone.utc)
                self.broadcaster.publish(chunk)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error("Error reading process output", stream=name, pid=process.pid, error=str(e))

    async def _watch_exit(self, process: ManagedProcess) -> None:
        exit_code = await process.handle.wait()
        unexpected = process.state == ProcessState.RUNNING
        process.exit_code = exit_code
        process.stopped_at = datetime.now(timezone.utc)
        process.state = ProcessState.STOPPED

        if unexpected:
            logger.warning("Process exited", pid=process.pid, exit_code=exit_code)
        else:
            logger.info("Process exited", pid=process.pid, exit_code=exit_code)

        if self._watchdog_task and not self._watchdog_task.done():
            self._watchdog_task.cancel()

        for listener in list(self._exit_listeners):
            try:
                result = listener(exit_code)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception("Exit listener failed")

    async def _watchdog(self, process: ManagedProcess) -> None:
        """Warn once per silence period while the process keeps running."""
        warned_mark: Optional[datetime] = None
        delay = self.watchdog_interval
        while True:
            await asyncio.sleep(delay)
            if process is not self.process or not process.is_running:
                return

            mark = process.last_output_at or process.started_at
            silent_for = (datetime.now(timezone.utc) - mark).total_seconds()
            if silent_for < self.watchdog_interval:
                delay = self.watchdog_interval - silent_for
                continue

            delay = self.watchdog_interval
            if mark == warned_mark:
                continue
            warned_mark = mark
            message = f"No output from process {process.pid} for {self.watchdog_interval:g}s"
            logger.warning("Process silent", pid=process.pid, interval=self.watchdog_interval, silent_for=round(silent_for, 1))
            self.broadcaster.publish_line(message)

    def _schedule_host_restart(self) -> None:
        if self._restart_handle is not None:
            return
        loop = asyncio.get_running_loop()
        self._restart_handle = loop.call_later(self.host_restart_delay, self.restart_host)
