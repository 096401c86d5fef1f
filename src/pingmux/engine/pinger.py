import asyncio
import concurrent.futures
import logging
import threading
import time
from dataclasses import replace
from typing import Callable, Iterable, List, Optional, Set

import psutil

from pingmux import logger_main
from pingmux.errors import PingerSetupError, PingerStateError
from pingmux.transport.capture import PacketCapture
from pingmux.transport.resolver import resolve_ipv4
from pingmux.transport.sender import IcmpSender
from pingmux.utils.config_utils import PingerConfig
from .dispatcher import CaptureDispatcher
from .identifier import IdentifierAllocator
from .ledger import ProbeLedger
from .models import Request, Response
from .registry import CallRegistry
from .router import ReplyRouter
from .worker import CorrelationWorker


class Pinger:
    """
    Pinger sends ICMP echo requests to any number of targets concurrently and
    matches the captured echo replies back to the call that sent them:
        * `start()` binds the send socket, opens the capture handle and launches
          the capture dispatcher and the engine's event loop.
        * `call()` / `call_many()` block the calling thread while the calls run
          as tasks on the engine loop.
        * `stop()` closes both handles and lets in-flight calls wind down.

    Example usage:
        >>> from pingmux.engine import Pinger, Request
        >>> with Pinger(listen_addr="0.0.0.0") as pinger:
        ...     for response in pinger.call_many([Request("1.1.1.1"), Request("8.8.8.8")]):
        ...         print(response)
    """

    def __init__(
        self,
        config: Optional[PingerConfig] = None,
        logger: Optional[logging.Logger] = None,
        sender=None,
        capture=None,
        resolver: Callable[[str], str] = resolve_ipv4,
        allocator: Optional[IdentifierAllocator] = None,
        stop_timeout: float = 5.0,
        **overrides,
    ):
        """
        Initialize the engine without opening anything yet.

        Args:
            config: Engine settings, PingerConfig defaults if None.
            logger: Optional external logger instance.
            sender: Send collaborator, an IcmpSender bound to `listen_addr` by default.
            capture: Capture collaborator, a PacketCapture by default.
            resolver: Target to IPv4 address resolver.
            allocator: Identifier source, a randomly seeded one by default.
            stop_timeout: Seconds `stop()` waits for each background thread.
            **overrides: PingerConfig fields overriding `config`, e.g. `listen_addr`.
        """
        self.config = replace(config or PingerConfig(), **overrides)
        config = self.config

        if logger is not None:
            self.logger = logger
        else:
            self.logger = logging.getLogger(f"{logger_main}.pinger")

        self.sender = sender or IcmpSender(listen_addr=config.listen_addr)
        self.capture = capture or PacketCapture(
            iface=config.capture_iface, bpf_filter=config.capture_filter
        )
        self.resolver = resolver
        self.stop_timeout = stop_timeout

        self.allocator = allocator or IdentifierAllocator()
        self.ledger = ProbeLedger()
        self.router = ReplyRouter(capacity=config.channel_capacity)
        self.registry = CallRegistry()
        self.dispatcher = CaptureDispatcher(self.router, on_error=self._capture_failed)
        self.closing = threading.Event()

        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._loop_thread: Optional[threading.Thread] = None
        self._tasks: Set[asyncio.Task] = set()
        self._running = False
        self._lifecycle_lock = threading.Lock()

    def __enter__(self):
        self.start()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.stop()
        return False  # Don't suppress exceptions

    @property
    def running(self) -> bool:
        return self._running and self.dispatcher.error is None

    def start(self) -> None:
        """
        Open the send socket and the capture handle, then start the background
        event loop and the capture dispatcher.

        Raises:
            PingerStateError: If the engine is already running.
            PingerSetupError: If a handle cannot be opened; nothing is left open.
        """
        if self._running:
            raise PingerStateError("Pinger is already running")

        self.logger.info(
            f"Starting pinger on {self.config.listen_addr} "
            f"(capture: {self.config.capture_iface or 'all interfaces'})"
        )
        try:
            self._check_capture_iface()
            self.sender.open()
            self.capture.open()
        except PingerSetupError as e:
            self.logger.error(f"Pinger setup failed: {e}")
            self.capture.close()
            self.sender.close()
            raise

        self.closing.clear()
        self._loop = asyncio.new_event_loop()
        self._loop_thread = threading.Thread(
            target=self._run_loop, name="pingmux-loop", daemon=True
        )
        self._loop_thread.start()
        self.dispatcher.start(self.capture.frames())
        with self._lifecycle_lock:
            self._running = True
        self.logger.info("Pinger started")

    def stop(self) -> None:
        """
        Shut the engine down.

        New sends stop and waiting calls are woken so they return with what
        they have collected so far. Calls still blocked after `stop_timeout`
        seconds are cancelled and their callers get a PingerStateError.
        """
        with self._lifecycle_lock:
            if not self._running:
                return
            self._running = False
        pending = [request.target for request in self.registry.pending()]
        self.logger.info(
            f"Stopping pinger ({len(pending)} calls pending"
            f"{': ' + ', '.join(pending) if pending else ''})"
        )

        self.closing.set()
        self.router.wake_all()
        self.capture.close()
        self.sender.close()
        self.dispatcher.join(self.stop_timeout)

        asyncio.run_coroutine_threadsafe(self._drain(), self._loop).result()
        self._loop.call_soon_threadsafe(self._loop.stop)
        self._loop_thread.join(self.stop_timeout)
        self._loop.close()
        self._loop = None
        self._loop_thread = None
        self.logger.info("Pinger stopped")

    def pending_count(self) -> int:
        """Number of calls registered and not yet reduced."""
        return self.registry.count()

    def call(self, request: Request) -> Response:
        """
        Ping a single target and wait for the result.

        Args:
            request (Request): The call to run.

        Returns:
            Response: Loss and latency figures, or the resolution error.

        Raises:
            PingerStateError: If the engine is not running or stops before
                the call completes.
        """
        return self._wait(self._submit(self._run_worker(request)))

    def call_many(self, requests: Iterable[Request]) -> List[Response]:
        """
        Ping several targets concurrently.

        Args:
            requests (Iterable[Request]): Calls to run, one task each.

        Returns:
            List[Response]: Responses in the order of `requests`.

        Raises:
            PingerStateError: If the engine is not running or stops before
                the calls complete.
        """
        start = time.time()
        requests = list(requests)
        responses = self._wait(self._submit(self._call_many(requests)))
        self.logger.debug(
            f"{len(requests)} calls completed in {time.time() - start:.3f} seconds"
        )
        return responses

    def _submit(self, coro) -> concurrent.futures.Future:
        # stop() cannot slip in between the check and the submission
        with self._lifecycle_lock:
            try:
                self._ensure_running()
            except PingerStateError:
                coro.close()
                raise
            return asyncio.run_coroutine_threadsafe(self._tracked(coro), self._loop)

    def _wait(self, future: concurrent.futures.Future):
        try:
            return future.result()
        except concurrent.futures.CancelledError:
            raise PingerStateError("Pinger stopped before the call completed")

    def _ensure_running(self) -> None:
        if not self._running:
            raise PingerStateError("Pinger is not running; call start() first")
        if self.dispatcher.error is not None:
            raise PingerStateError(f"Packet capture failed: {self.dispatcher.error}")

    def _capture_failed(self, error: Exception) -> None:
        """Called from the capture thread once the frame source has failed."""
        self.logger.error(
            f"Packet capture failed, pinger unusable until restarted: {error}"
        )
        self.closing.set()
        self.router.wake_all()

    def _check_capture_iface(self) -> None:
        iface = self.config.capture_iface
        if iface is not None and iface not in psutil.net_if_addrs():
            raise PingerSetupError(f"Capture interface {iface!r} not found")

    def _run_loop(self) -> None:
        asyncio.set_event_loop(self._loop)
        self._loop.run_forever()

    async def _call_many(self, requests: List[Request]) -> List[Response]:
        return list(await asyncio.gather(*(self._run_worker(r) for r in requests)))

    async def _tracked(self, coro):
        task = asyncio.current_task()
        self._tasks.add(task)
        try:
            return await coro
        finally:
            self._tasks.discard(task)

    async def _run_worker(self, request: Request) -> Response:
        worker = CorrelationWorker(
            request.with_defaults(
                count=self.config.count,
                interval=self.config.interval_ms,
                timeout=self.config.timeout_ms,
            ),
            allocator=self.allocator,
            ledger=self.ledger,
            router=self.router,
            registry=self.registry,
            sender=self.sender,
            resolver=self.resolver,
            closing=self.closing,
            payload=self.config.payload.encode(),
            logger=self.logger,
        )
        return await worker.run()

    async def _drain(self) -> None:
        """Wait for submitted calls, cancelling those that outlive `stop_timeout`."""
        current = asyncio.current_task()
        tasks = [task for task in self._tasks if task is not current]
        if not tasks:
            return
        _, late = await asyncio.wait(tasks, timeout=self.stop_timeout)
        if late:
            self.logger.warning(f"Cancelling {len(late)} calls still running")
            for task in late:
                task.cancel()
            await asyncio.wait(late)
