"""
=============================================================================
WORKER LAUNCHERS
=============================================================================

A launcher turns an accepted connection into an isolated execution unit
running a ConnectionWorker, and hands the listener a WorkerHandle to talk
to it.

=============================================================================
OWNERSHIP HANDOFF
=============================================================================

    Listener                                   Worker
       │                                          │
       │  launch(sock, address, first_burst)      │
       │ ───────────────────────────────────────► │  owns sock from here on
       │  (process mode: parent copy closed)      │
       │                                          │
       │  control channel (duplex Pipe)           │
       │ ◄──────────────────────────────────────► │
       │     "stop"      listener → worker        │
       │     "stopping"  worker → listener        │

    ProcessLauncher   one OS process per connection (multiprocessing).
                      The socket and channel are passed as process
                      arguments; the listener closes its copy of the
                      socket right after the process starts.

    ThreadLauncher    one thread per connection, sharing nothing with the
                      listener but the control channel. Used where
                      processes are unavailable, and in tests.

=============================================================================
SIGNALS IN WORKER PROCESSES
=============================================================================

Ctrl+C in a terminal delivers SIGINT to the whole process group. A worker
process only logs SIGINT and SIGTERM: it ends when its connection closes
or when the listener sends "stop".

=============================================================================
"""

import itertools
import logging
import multiprocessing
import os
import signal
import socket
import threading
from typing import Any, Optional

from ..access_log import setup_logging
from ..config import GatewayConfig
from .worker import ConnectionWorker, MSG_STOP


logger = logging.getLogger(__name__)


class WorkerHandle:
    """
    The listener's side of one worker.

    Attributes:
        ident: Worker identity (process id, or a thread sequence number).
        channel: Listener end of the control channel.
    """

    def __init__(self, ident: int, channel: Any):
        self.ident = ident
        self.channel = channel

    def fileno(self) -> int:
        return self.channel.fileno()

    def stop(self) -> bool:
        """
        Send the stop message.

        Returns:
            False if the worker can no longer be reached.
        """
        try:
            self.channel.send(MSG_STOP)
            return True
        except (OSError, EOFError, ValueError) as e:
            logger.debug(f"Worker {self.ident} unreachable: {e}")
            return False

    def receive(self) -> Optional[str]:
        """Read one message from the worker; None once the channel is gone."""
        try:
            return self.channel.recv()
        except (OSError, EOFError):
            return None

    def is_alive(self) -> bool:
        raise NotImplementedError

    def join(self, timeout: Optional[float] = None) -> None:
        raise NotImplementedError

    def close(self) -> None:
        try:
            self.channel.close()
        except OSError:
            pass


class ProcessWorkerHandle(WorkerHandle):
    def __init__(self, process: multiprocessing.process.BaseProcess, channel: Any):
        super().__init__(process.pid, channel)
        self.process = process

    def is_alive(self) -> bool:
        return self.process.is_alive()

    def join(self, timeout: Optional[float] = None) -> None:
        self.process.join(timeout)

    def close(self) -> None:
        super().close()
        # reap the child if it has already exited
        self.process.join(0)


class ThreadWorkerHandle(WorkerHandle):
    def __init__(self, ident: int, thread: threading.Thread, channel: Any, worker: ConnectionWorker):
        super().__init__(ident, channel)
        self.thread = thread
        self.worker = worker

    def is_alive(self) -> bool:
        return self.thread.is_alive()

    def join(self, timeout: Optional[float] = None) -> None:
        self.thread.join(timeout)


# ─────────────────────────────────────────────────────────────────────────
# WORKER PROCESS ENTRY POINT
# ─────────────────────────────────────────────────────────────────────────

def _log_signal(signum, frame):
    logger.info(f"Worker {os.getpid()} received {signal.Signals(signum).name}, ignoring")


def _hard_exit():
    logger.info(f"Worker {os.getpid()} exiting after grace period")
    logging.shutdown()
    os._exit(0)


def run_worker_process(
    sock: socket.socket,
    address: Any,
    first_burst: bytes,
    channel: Any,
    config: GatewayConfig,
) -> None:
    """Body of a worker process (module level so every start method can import it)."""
    setup_logging(config)
    signal.signal(signal.SIGINT, _log_signal)
    signal.signal(signal.SIGTERM, _log_signal)

    worker = ConnectionWorker(
        sock=sock,
        address=address,
        first_burst=first_burst,
        channel=channel,
        config=config,
        ident=os.getpid(),
        exit_hook=_hard_exit,
    )
    worker.run()


# ─────────────────────────────────────────────────────────────────────────
# LAUNCHERS
# ─────────────────────────────────────────────────────────────────────────

class ProcessLauncher:
    """Start one worker process per connection."""

    def __init__(self, config: GatewayConfig):
        self.config = config
        self._context = multiprocessing.get_context(config.start_method)

    def launch(self, sock: socket.socket, address: Any, first_burst: bytes) -> WorkerHandle:
        parent_end, child_end = self._context.Pipe()
        process = self._context.Process(
            target=run_worker_process,
            args=(sock, address, first_burst, child_end, self.config),
            name=f"gateway-worker-{address[0]}:{address[1]}",
        )
        process.start()

        # the worker process now owns the connection
        child_end.close()
        sock.close()

        logger.info(f"Started worker process {process.pid}")
        return ProcessWorkerHandle(process, parent_end)


class ThreadLauncher:
    """Start one worker thread per connection."""

    def __init__(self, config: GatewayConfig):
        self.config = config
        self._ids = itertools.count(1)

    def launch(self, sock: socket.socket, address: Any, first_burst: bytes) -> WorkerHandle:
        parent_end, child_end = multiprocessing.Pipe()
        ident = next(self._ids)
        worker = ConnectionWorker(
            sock=sock,
            address=address,
            first_burst=first_burst,
            channel=child_end,
            config=self.config,
            ident=ident,
        )
        thread = threading.Thread(target=worker.run, name=f"gateway-worker-{ident}", daemon=True)
        thread.start()

        logger.info(f"Started worker thread {ident}")
        return ThreadWorkerHandle(ident, thread, parent_end, worker)


def create_launcher(config: GatewayConfig):
    """Launcher for config.worker_mode."""
    if config.worker_mode == "thread":
        return ThreadLauncher(config)
    return ProcessLauncher(config)
