import asyncio
import logging
import threading
from typing import Callable, Dict, Optional

from pingmux import logger_main
from pingmux.errors import ResolutionError
from pingmux.transport.icmp_packet import DEFAULT_PAYLOAD, build_echo_request
from .identifier import IdentifierAllocator
from .ledger import ProbeLedger
from .models import CallState, Probe, Request, Response, RoutingKey, now_ms
from .registry import CallRegistry
from .router import ReplyChannel, ReplyRouter
from .stats import reduce_stats


class CorrelationWorker:
    """
    Drives a single call through Resolving, Sending, Collecting and Reducing.

    The worker paces out `count` echo requests, then drains its reply channel
    until every sequence is matched or the deadline, counted from the start
    of the Sending phase, has passed.
    """

    def __init__(
        self,
        request: Request,
        allocator: IdentifierAllocator,
        ledger: ProbeLedger,
        router: ReplyRouter,
        registry: CallRegistry,
        sender,
        resolver: Callable[[str], str],
        closing: threading.Event,
        payload: bytes = DEFAULT_PAYLOAD,
        logger: Optional[logging.Logger] = None,
    ):
        """
        Initialize the worker.

        Args:
            request (Request): The call to run, already normalized with defaults.
            allocator (IdentifierAllocator): Source of the call's ICMP identifier.
            ledger (ProbeLedger): Store of probe send timestamps.
            router (ReplyRouter): Where the call's reply channel is registered.
            registry (CallRegistry): Pending-call bookkeeping.
            sender: Object with `send(packet: bytes, address: str) -> bool`.
            resolver (Callable[[str], str]): Maps a target to an IPv4 address,
                raising ResolutionError on failure. Runs in an executor.
            closing (threading.Event): Engine-wide shutdown flag.
            payload (bytes): Echo request payload.
            logger (Optional[logging.Logger]): Logger to use, package logger by default.
        """
        self.request = request
        self.allocator = allocator
        self.ledger = ledger
        self.router = router
        self.registry = registry
        self.sender = sender
        self.resolver = resolver
        self.closing = closing
        self.payload = payload
        self.logger = logger or logging.getLogger(f"{logger_main}.worker")

        self._state = CallState.INIT
        self.identifier: Optional[int] = None
        self.address: Optional[str] = None
        self.sent = 0
        self.rtts: Dict[int, float] = {}

    @property
    def state(self) -> CallState:
        return self._state

    @property
    def key(self) -> RoutingKey:
        return (self.identifier, self.address)

    async def run(self) -> Response:
        """
        Run the call to completion.

        Returns:
            Response: Statistics of the call, or an error response if the
            target could not be resolved.
        """
        loop = asyncio.get_running_loop()
        request = self.request

        self._state = CallState.RESOLVING
        try:
            self.address = await loop.run_in_executor(
                None, self.resolver, request.target
            )
        except ResolutionError as e:
            self.logger.debug(f"Call to {request.target} not started: {e}")
            self._state = CallState.DONE
            return Response(target=request.target, error=str(e))

        self.identifier = self.allocator.next()
        deadline = loop.time() + request.deadline / 1000
        channel = self.router.register(self.key, loop)
        self.registry.add(self.key, request)
        self.logger.debug(
            f"Call {self.key} started: count={request.count}, "
            f"interval={request.interval}ms, deadline={request.deadline}ms"
        )

        try:
            self._state = CallState.SENDING
            await self._send_probes()

            self._state = CallState.COLLECTING
            await self._collect_replies(channel, deadline)

            self._state = CallState.REDUCING
            stats = reduce_stats(request.count, self.rtts, request.timeout)
        finally:
            self.router.unregister(self.key)
            self.registry.remove(self.key)
            self.ledger.discard(self.identifier, request.count)

        self.logger.debug(
            f"Call {self.key} finished: sent={self.sent}, matched={len(self.rtts)}, "
            f"unread={channel.qsize()}, dropped={channel.dropped}"
        )
        self._state = CallState.DONE
        return Response(
            target=request.target,
            pkg_loss=stats.pkg_loss,
            rtt_min=stats.rtt_min,
            rtt_mean=stats.rtt_mean,
            rtt_max=stats.rtt_max,
        )

    async def _send_probes(self) -> None:
        """Send one echo request per sequence, `interval` milliseconds apart."""
        request = self.request
        for sequence in range(request.count):
            if self.closing.is_set():
                self.logger.debug(f"Call {self.key}: engine closing, sending stopped")
                break

            packet = build_echo_request(self.identifier, sequence, self.payload)
            self.ledger.record(Probe(self.identifier, sequence, now_ms()))
            if self.sender.send(packet, self.address):
                self.sent += 1
            else:
                self.logger.debug(f"Call {self.key}: sequence {sequence} not sent")

            if sequence < request.count - 1:
                await asyncio.sleep(request.interval / 1000)

    async def _collect_replies(self, channel: ReplyChannel, deadline: float) -> None:
        """
        Match observations from `channel` against the ledger.

        Stops once every sequence is matched, the deadline passes, or the
        engine is closing.
        """
        loop = asyncio.get_running_loop()
        while len(self.rtts) < self.request.count:
            if self.closing.is_set():
                break

            remaining = deadline - loop.time()
            if remaining <= 0:
                break

            try:
                observation = await asyncio.wait_for(channel.get(), timeout=remaining)
            except asyncio.TimeoutError:
                break

            if observation is not None:
                self._match(observation)

            if self.closing.is_set():
                self.logger.debug(f"Call {self.key}: engine closing, collection stopped")
                break

    def _match(self, observation) -> None:
        probe = self.ledger.pop(self.identifier, observation.sequence)
        if probe is None:
            # duplicate reply or sequence this call never sent
            return
        rtt = observation.received_at - probe.sent_at
        self.rtts[observation.sequence] = rtt
        self.logger.debug(
            f"Call {self.key}: reply seq={observation.sequence} rtt={rtt:.3f}ms"
        )
