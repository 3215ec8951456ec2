#!/usr/bin/env python3
#----------------------------------------------------------------------------
# NETPING – ICMP host-liveness sweeper
#----------------------------------------------------------------------------
#
# Execution examples:
#
# 1. Sweep a targets file and store alive hosts in the default output file.
#    *** Raw ICMP sockets need root (or CAP_NET_RAW) ***
#    Command: sudo python3 netping.py --target-file 'targets.txt'
#    Outcome: prints a live "Pinging: N/M hosts" line and writes alive-hosts.txt.
#
# 2. Verbose sweep with a custom output file.
#    Command: sudo python3 netping.py --target-file 'targets.txt' --output-file 'logs/alive.txt' --verbose
#    Outcome: prints one alive/not alive line per host instead of the progress line.
#
# 3. Gentler sweep of a large range.
#    Command: sudo python3 netping.py --target-file 'ranges.txt' -c 50 --rate-interval 0.05 --timeout 1 --retries 2
#    Outcome: at most 50 probes in flight, one dispatch every 50ms, one retry after the first miss.
#
# Targets file format (one entry per line, blank lines and '#' comments ignored):
#
#    8.8.8.8          # single address
#    1.1.1.1/32       # single-host range
#    192.168.1.0/24   # range, expands to all contained addresses
#    example.com      # domain name, resolved to an IPv4 address before probing

from __future__ import annotations

import argparse
import asyncio
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, replace
from enum import Enum
from functools import partial
import contextlib
import ipaddress
import itertools
import os
import select
import signal
import socket
import sys
import threading
import time
from datetime import datetime, timezone
from typing import Awaitable, Callable, Dict, Iterable, Iterator, List, Optional, Set, TextIO, Tuple

if sys.platform != "win32":
    import resource  # type: ignore[attr-defined]
else:
    resource = None  # type: ignore[assignment]

import scapy.all as scapy
from scapy.packet import Raw


# Default runtime configuration. Environment variables named NETPING_* can
# override each entry before command-line parsing applies further changes.
DEFAULTS: Dict[str, object] = {
    "CONCURRENCY": int(os.environ.get("NETPING_CONCURRENCY", "100")),
    "TIMEOUT": float(os.environ.get("NETPING_TIMEOUT", "2.0")),
    "RETRIES": int(os.environ.get("NETPING_RETRIES", "3")),
    "RATE_INTERVAL": float(os.environ.get("NETPING_RATE_INTERVAL", "0.01")),  # Zero disables rate limiting
    "OUTPUT": os.environ.get("NETPING_OUTPUT", "alive-hosts.txt"),
}

ECHO_PAYLOAD: bytes = b"HELLO-R-U-THERE"
ICMP_ECHO_REQUEST: int = 8
ICMP_ECHO_REPLY: int = 0
RECEIVE_BUFFER_SIZE: int = 1500

# Upper bound for a single blocking read so stop requests are noticed quickly.
PROBE_POLL_INTERVAL: float = 0.1

PROGRESS_INTERVAL: float = 0.5

# Descriptors held outside the probe slots: stdio, the target and output
# files, the event loop selector and its self-pipe, plus resolver headroom.
RESERVED_FDS: int = 16


class TargetKind(Enum):
    SINGLE_ADDRESS = "address"
    RANGE_MEMBER = "range"
    DOMAIN_NAME = "domain"


@dataclass(frozen=True)
class Target:
    """One classified input entry."""

    raw: str
    kind: TargetKind
    resolved_address: Optional[str] = None

    def with_resolution(self, address: str) -> "Target":
        """Return a copy carrying *address*; an empty string marks a failed lookup."""

        if self.resolved_address is not None:
            raise ValueError(f"target {self.raw} already resolved to {self.resolved_address}")
        return replace(self, resolved_address=address)


@dataclass(frozen=True)
class ProbeOutcome:
    """Result of probing one target. ``attempts_used`` is 0 when no probe was sent."""

    address: str
    alive: bool
    attempts_used: int


@dataclass
class ScanStats:
    """Counters owned by :class:`ResultAggregator`."""

    total: int = 0
    alive: int = 0
    dead: int = 0
    completed: int = 0
    malformed: int = 0
    cancelled: bool = False

    def is_balanced(self) -> bool:
        """Every processed host is alive or dead; a finished sweep processed all of them."""

        if self.alive + self.dead != self.completed:
            return False
        return self.cancelled or self.completed == self.total


@dataclass
class SweepConfiguration:
    """Parameters consumed by :class:`PingSweeper` and :class:`IcmpProber`."""

    concurrency: int = 100
    rate_interval: float = 0.01
    timeout: float = 2.0
    retries: int = 3
    retry_delay: Optional[float] = None
    verbose: bool = False
    progress_interval: float = PROGRESS_INTERVAL

    def effective_retry_delay(self) -> float:
        if self.retry_delay is None:
            return self.timeout / 2
        return self.retry_delay


class OutputSinkError(Exception):
    """Raised when alive hosts can no longer be persisted."""


# Return an ISO-like timestamp string in UTC for console lines.
def utc_now_str() -> str:

    return datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S")


# Return the soft RLIMIT_NOFILE value when available.
def query_process_fd_soft_limit() -> Optional[int]:

    if resource is None:
        return None

    try:
        soft_limit, _ = resource.getrlimit(resource.RLIMIT_NOFILE)  # type: ignore[arg-type]
    except (OSError, ValueError):
        return None

    if soft_limit == resource.RLIM_INFINITY or soft_limit <= 0:
        return None
    return int(soft_limit)


# A slot holds one descriptor at a time: the getaddrinfo socket while a
# domain resolves, then the raw ICMP socket of the current attempt.
def apply_fd_limit_guardrail(desired_concurrency: int) -> Tuple[int, Optional[int]]:

    requested_slots = max(1, int(desired_concurrency))
    soft_limit = query_process_fd_soft_limit()
    if soft_limit is None:
        return requested_slots, None

    available_slots = max(1, soft_limit - RESERVED_FDS)
    if requested_slots <= available_slots:
        return requested_slots, None
    return available_slots, soft_limit


#----------------------------------------------------------------------------
# Target enumeration
#----------------------------------------------------------------------------

def strip_target_line(raw_line: str) -> str:
    """Trim whitespace and any trailing ``# comment`` from an input line."""

    return raw_line.split("#", 1)[0].strip()


def classify_target_line(line: str) -> Optional[Tuple[TargetKind, Optional[ipaddress.IPv4Network]]]:
    """Classify a stripped input line.

    Both enumeration passes go through this function. Ranges win over
    literal addresses, literal addresses over domain names; IPv6 input and
    anything without a dot is malformed and yields ``None``.
    """

    if not line:
        return None

    if "/" in line:
        try:
            network = ipaddress.ip_network(line, strict=False)
        except ValueError:
            network = None
        if isinstance(network, ipaddress.IPv4Network):
            return TargetKind.RANGE_MEMBER, network
        if network is not None:
            return None

    try:
        address = ipaddress.ip_address(line)
    except ValueError:
        address = None
    if address is not None:
        if isinstance(address, ipaddress.IPv4Address):
            return TargetKind.SINGLE_ADDRESS, None
        return None

    if "." in line:
        return TargetKind.DOMAIN_NAME, None
    return None


# Byte-level successor: add one to the last byte and carry leftwards.
def next_ipv4_address(packed: bytes) -> bytes:

    octets = bytearray(packed)
    for index in range(len(octets) - 1, -1, -1):
        octets[index] = (octets[index] + 1) & 0xFF
        if octets[index] != 0:
            break
    return bytes(octets)


def iter_network_addresses(network: ipaddress.IPv4Network) -> Iterator[str]:
    """Yield every address of *network*, network address first and broadcast last."""

    current = network.network_address.packed
    for _ in range(network.num_addresses):
        yield str(ipaddress.IPv4Address(current))
        current = next_ipv4_address(current)


def enumerate_targets(lines: Iterable[str],
                      on_malformed: Optional[Callable[[str], None]] = None) -> Iterator[Target]:
    """Lazily turn raw lines into targets; ranges explode into one target per address."""

    for raw_line in lines:
        line = strip_target_line(raw_line)
        if not line:
            continue
        classification = classify_target_line(line)
        if classification is None:
            if on_malformed is not None:
                on_malformed(line)
            continue
        kind, network = classification
        if kind is TargetKind.RANGE_MEMBER and network is not None:
            for address_text in iter_network_addresses(network):
                yield Target(raw=line, kind=kind, resolved_address=address_text)
        elif kind is TargetKind.SINGLE_ADDRESS:
            yield Target(raw=line, kind=kind, resolved_address=str(ipaddress.IPv4Address(line)))
        else:
            yield Target(raw=line, kind=kind)


def count_targets(lines: Iterable[str],
                  on_malformed: Optional[Callable[[str], None]] = None) -> int:
    """First pass: number of targets :func:`enumerate_targets` will yield for *lines*."""

    total = 0
    for raw_line in lines:
        line = strip_target_line(raw_line)
        if not line:
            continue
        classification = classify_target_line(line)
        if classification is None:
            if on_malformed is not None:
                on_malformed(line)
            continue
        kind, network = classification
        if kind is TargetKind.RANGE_MEMBER and network is not None:
            total += network.num_addresses
        else:
            total += 1
    return total


# Stream lines from a UTF-8 text file; opening or reading errors propagate.
def iter_target_lines(file_path: str) -> Iterator[str]:

    with open(file_path, mode="r", encoding="utf-8", errors="ignore") as handle:
        for raw_line in handle:
            yield raw_line


#----------------------------------------------------------------------------
# ICMP reachability probing
#----------------------------------------------------------------------------

_identifier_lock = threading.Lock()
_identifier_counter = itertools.count(os.getpid() & 0xFFFF)


def next_probe_identifier() -> int:
    """Return a fresh 16-bit echo identifier so concurrent attempts never share one."""

    with _identifier_lock:
        return next(_identifier_counter) & 0xFFFF


def build_echo_request(identifier: int, sequence: int) -> bytes:
    """Serialise an ICMP echo request; scapy fills in the checksum."""

    message = scapy.ICMP(type=ICMP_ECHO_REQUEST, code=0, id=identifier & 0xFFFF, seq=sequence & 0xFFFF)
    return bytes(message / Raw(load=ECHO_PAYLOAD))


def is_matching_echo_reply(datagram: bytes, origin: str, address: str, identifier: int) -> bool:
    """Return ``True`` when *datagram* is an echo reply from *address* for *identifier*."""

    if origin != address:
        return False
    try:
        packet = scapy.IP(datagram)
    except Exception:
        return False
    if packet.src != address:
        return False
    if not packet.haslayer(scapy.ICMP):
        return False
    icmp = packet[scapy.ICMP]
    if icmp.type != ICMP_ECHO_REPLY:
        return False
    return icmp.id == identifier


class IcmpChannel:
    """One raw IPv4 ICMP socket, opened for a single probe attempt."""

    def __init__(self) -> None:
        self._socket = socket.socket(socket.AF_INET, socket.SOCK_RAW, socket.IPPROTO_ICMP)

    def send(self, datagram: bytes, address: str) -> None:
        self._socket.sendto(datagram, (address, 0))

    def receive(self, timeout: float) -> Optional[Tuple[bytes, str]]:
        # Raw IPv4 sockets hand back the IP header together with the ICMP message.
        readable, _, _ = select.select([self._socket], [], [], max(0.0, timeout))
        if not readable:
            return None
        datagram, peer = self._socket.recvfrom(RECEIVE_BUFFER_SIZE)
        return datagram, peer[0]

    def close(self) -> None:
        self._socket.close()

    def __enter__(self) -> "IcmpChannel":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()


class IcmpProber:
    """Echo-request prober with a fixed retry policy.

    ``probe`` blocks and is meant to run on a worker thread. Setting
    ``stop_event`` ends the current reply wait and any pending retry delay.
    """

    def __init__(self,
                 timeout: float = 2.0,
                 retries: int = 3,
                 retry_delay: Optional[float] = None,
                 channel_factory: Callable[[], IcmpChannel] = IcmpChannel,
                 stop_event: Optional[threading.Event] = None) -> None:
        self.timeout = timeout
        self.retries = max(1, retries)
        self.retry_delay = timeout / 2 if retry_delay is None else retry_delay
        self._channel_factory = channel_factory
        self.stop_event = stop_event if stop_event is not None else threading.Event()

    def probe_once(self, address: str, sequence: int) -> bool:
        identifier = next_probe_identifier()
        request = build_echo_request(identifier, sequence)

        try:
            channel = self._channel_factory()
        except OSError as exc:
            print(f"[probe] Error creating ICMP socket: {exc}")
            return False

        with channel:
            try:
                channel.send(request, address)
            except OSError as exc:
                print(f"[probe] Error sending ICMP request to {address}: {exc}")
                return False

            deadline = time.monotonic() + self.timeout
            while not self.stop_event.is_set():
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    return False
                try:
                    received = channel.receive(min(remaining, PROBE_POLL_INTERVAL))
                except OSError:
                    return False
                if received is None:
                    continue
                datagram, origin = received
                # Only a type-0 reply from the target carrying this attempt's identifier
                # counts. Anything else is read past; the attempt still ends dead at the deadline.
                if is_matching_echo_reply(datagram, origin, address, identifier):
                    return True
        return False

    def probe(self, address: str) -> ProbeOutcome:
        for attempt in range(1, self.retries + 1):
            if self.probe_once(address, attempt):
                return ProbeOutcome(address=address, alive=True, attempts_used=attempt)
            if attempt == self.retries:
                break
            if self.stop_event.wait(self.retry_delay):
                return ProbeOutcome(address=address, alive=False, attempts_used=attempt)
        return ProbeOutcome(address=address, alive=False, attempts_used=self.retries)


async def resolve_domain_to_ipv4(domain: str) -> Optional[str]:
    """Return the first IPv4 address *domain* resolves to, or ``None``."""

    try:
        loop = asyncio.get_running_loop()
        addrinfo = await loop.getaddrinfo(domain, None, family=socket.AF_INET, type=socket.SOCK_STREAM)
    except (OSError, UnicodeError) as exc:
        print(f"[sweep] Failed to resolve domain {domain}: {exc}")
        return None

    for family, _socktype, _proto, _canon, sockaddr in addrinfo:
        if family == socket.AF_INET:
            return sockaddr[0]
    print(f"[sweep] Failed to resolve domain {domain}: no IPv4 address")
    return None


def ensure_raw_socket_privileges() -> None:

    try:
        euid = os.geteuid()
    except AttributeError:
        print("[probe] Warning: cannot verify root privileges on this OS. ICMP probes may fail.")
        return
    if euid != 0:
        print("[probe] Warning: raw ICMP sockets need root or CAP_NET_RAW; hosts may be reported offline.")


#----------------------------------------------------------------------------
# Result aggregation
#----------------------------------------------------------------------------

class AliveHostSink:
    """Append-only, line-per-host writer shared by every probe task."""

    def __init__(self, stream: TextIO) -> None:
        self._stream = stream
        self._lock = threading.Lock()

    def write(self, address: str) -> None:
        with self._lock:
            try:
                self._stream.write(address + "\n")
            except OSError as exc:
                raise OutputSinkError(f"unable to write {address}: {exc}") from exc

    def flush(self) -> None:
        with self._lock:
            try:
                self._stream.flush()
            except OSError as exc:
                raise OutputSinkError(f"unable to flush alive hosts: {exc}") from exc


class ResultAggregator:
    """Turns probe outcomes into counters and output lines under a single lock."""

    def __init__(self, sink: AliveHostSink, verbose: bool = False, stream: Optional[TextIO] = None) -> None:
        self.sink = sink
        self.verbose = verbose
        self.stream = stream
        self.stats = ScanStats()
        self._lock = threading.Lock()

    def record(self, outcome: ProbeOutcome) -> None:
        with self._lock:
            if outcome.alive:
                self.sink.write(outcome.address)
                self.stats.alive += 1
                if self.verbose:
                    print(f"Host {outcome.address} is alive", file=self.stream or sys.stdout)
            else:
                self.stats.dead += 1
                if self.verbose:
                    print(f"Host {outcome.address} is not alive", file=self.stream or sys.stdout)
            self.stats.completed += 1

    def mark_cancelled(self) -> None:
        with self._lock:
            self.stats.cancelled = True

    def set_total(self, total: int) -> None:
        with self._lock:
            self.stats.total = total

    def record_malformed(self) -> None:
        with self._lock:
            self.stats.malformed += 1

    def snapshot(self) -> Tuple[int, int]:
        with self._lock:
            return self.stats.completed, self.stats.total

    def flush(self) -> None:
        self.sink.flush()


async def report_progress(aggregator: ResultAggregator,
                          done_event: asyncio.Event,
                          interval: float = PROGRESS_INTERVAL,
                          stream: Optional[TextIO] = None) -> None:
    # Render "Pinging: N/M hosts" whenever it changes; return once the sweep is done.

    output = stream or sys.stdout
    last_completed = -1
    while True:
        finished = done_event.is_set()
        completed, total = aggregator.snapshot()
        if completed != last_completed:
            output.write(f"\rPinging: {completed}/{total} hosts")
            output.flush()
            last_completed = completed
        if finished:
            return
        with contextlib.suppress(asyncio.TimeoutError):
            await asyncio.wait_for(done_event.wait(), timeout=interval)


def format_summary(stats: ScanStats) -> str:

    lines: List[str] = []
    if stats.cancelled:
        lines.append(f"Ping scan interrupted after {stats.completed}/{stats.total} hosts.")
    else:
        lines.append("Ping scan completed.")
    lines.append(f"Alive hosts: {stats.alive}")
    lines.append(f"Offline hosts: {stats.dead}")
    return "\n".join(lines)


#----------------------------------------------------------------------------
# Scheduling
#----------------------------------------------------------------------------

# Minimal asyncio-based rate limiter spacing admissions by a fixed interval.
class FixedRateLimiter:

    def __init__(self, interval_seconds: float) -> None:

        self._interval = max(0.0, float(interval_seconds))
        self._last_time = 0.0
        self._lock = asyncio.Lock()

    async def wait(self) -> None:
        # Sleep just enough to keep admissions at least one interval apart.

        if self._interval <= 0.0:
            return
        async with self._lock:
            now = time.perf_counter()
            remaining = self._interval - (now - self._last_time)
            if remaining > 0.0:
                await asyncio.sleep(remaining)
                self._last_time = time.perf_counter()
            else:
                self._last_time = now


Prober = Callable[[str], ProbeOutcome]
Resolver = Callable[[str], Awaitable[Optional[str]]]


class PingSweeper:
    """Drives every enumerated target through resolve, probe and record.

    At most ``configuration.concurrency`` targets are in flight, and task
    starts are spaced by ``configuration.rate_interval``.
    """

    def __init__(self,
                 configuration: SweepConfiguration,
                 prober: Prober,
                 aggregator: ResultAggregator,
                 resolver: Resolver = resolve_domain_to_ipv4,
                 stop_event: Optional[threading.Event] = None,
                 progress_stream: Optional[TextIO] = None) -> None:
        self.configuration = configuration
        self.prober = prober
        self.aggregator = aggregator
        self.resolver = resolver
        # Shared with the prober so blocking reply waits notice cancellation.
        self.stop_event = stop_event if stop_event is not None else threading.Event()
        self.progress_stream = progress_stream
        self._cancelled = False
        self._failure: Optional[BaseException] = None
        self._semaphore: Optional[asyncio.Semaphore] = None

    def cancel(self) -> None:
        """Stop admitting targets and cut in-flight waits short; results so far are kept."""

        if self._cancelled:
            return
        self._cancelled = True
        self.aggregator.mark_cancelled()
        self.stop_event.set()
        print("\n[sweep] Cancellation requested; draining in-flight probes.")

    def _report_malformed(self, line: str) -> None:
        self.aggregator.record_malformed()
        print(f"[input] Invalid IP, CIDR range, or domain: {line}")

    async def _probe_target(self, target: Target, executor: ThreadPoolExecutor) -> ProbeOutcome:
        if target.kind is TargetKind.DOMAIN_NAME:
            resolved = await self.resolver(target.raw)
            target = target.with_resolution(resolved or "")
            if not target.resolved_address:
                return ProbeOutcome(address=target.raw, alive=False, attempts_used=0)

        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(executor, self.prober, target.resolved_address)

    async def _sweep_one_target(self, target: Target, executor: ThreadPoolExecutor) -> None:
        assert self._semaphore is not None
        try:
            try:
                outcome = await self._probe_target(target, executor)
            except Exception as exc:
                print(f"[sweep] Error probing {target.raw}: {type(exc).__name__}: {exc}")
                outcome = ProbeOutcome(
                    address=target.resolved_address or target.raw,
                    alive=False,
                    attempts_used=0,
                )
            self.aggregator.record(outcome)
        finally:
            self._semaphore.release()

    def _on_task_done(self, in_flight: Set[asyncio.Task], task: asyncio.Task) -> None:
        in_flight.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None and self._failure is None:
            self._failure = exc
            self.stop_event.set()

    async def run(self, line_source: Callable[[], Iterable[str]]) -> ScanStats:
        """Sweep the targets produced by *line_source*, which is read twice."""

        configuration = self.configuration
        stats = self.aggregator.stats
        self.aggregator.set_total(count_targets(line_source(), on_malformed=self._report_malformed))

        concurrency = max(1, configuration.concurrency)
        self._semaphore = asyncio.Semaphore(concurrency)
        limiter = FixedRateLimiter(configuration.rate_interval)
        done_event = asyncio.Event()
        reporter: Optional[asyncio.Task] = None
        if not configuration.verbose:
            reporter = asyncio.create_task(
                report_progress(self.aggregator, done_event, configuration.progress_interval, self.progress_stream)
            )

        in_flight: Set[asyncio.Task] = set()
        executor = ThreadPoolExecutor(max_workers=concurrency)
        try:
            # Malformed lines were already reported by the counting pass.
            for target in enumerate_targets(line_source()):
                if self._cancelled or self._failure is not None:
                    break
                await self._semaphore.acquire()
                if self._cancelled or self._failure is not None:
                    self._semaphore.release()
                    break
                await limiter.wait()
                task = asyncio.create_task(self._sweep_one_target(target, executor))
                in_flight.add(task)
                task.add_done_callback(partial(self._on_task_done, in_flight))

            if in_flight:
                await asyncio.gather(*in_flight, return_exceptions=True)
            if self._failure is not None:
                raise self._failure
        except BaseException:
            self.stop_event.set()
            for task in list(in_flight):
                task.cancel()
            raise
        finally:
            done_event.set()
            if reporter is not None:
                await reporter
            executor.shutdown(wait=True)

        self.aggregator.flush()
        return stats


#----------------------------------------------------------------------------
# Command line
#----------------------------------------------------------------------------

def build_cli_parser() -> argparse.ArgumentParser:

    parser = argparse.ArgumentParser(
        description=(
            "Concurrent ICMP host-liveness sweeper. Targets are IPv4 addresses, "
            "IPv4 CIDR ranges or domain names, one per line."
        )
    )

    parser.add_argument(
        "--target-file",
        required=True,
        help="File containing a list of IP addresses, networks, or domains (one per line)."
    )

    parser.add_argument(
        "--output-file",
        default=str(DEFAULTS["OUTPUT"]),
        help="File to save alive hosts to. Default: %(default)s (NETPING_OUTPUT)."
    )

    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Print a line per host instead of the progress counter."
    )

    parser.add_argument(
        "-c", "--concurrency",
        type=int,
        default=int(DEFAULTS["CONCURRENCY"]),
        help="Maximum probes in flight. Default: %(default)s (NETPING_CONCURRENCY)."
    )

    parser.add_argument(
        "--timeout",
        type=float,
        default=float(DEFAULTS["TIMEOUT"]),
        help="Seconds to wait for an echo reply per attempt. Default: %(default)s (NETPING_TIMEOUT)."
    )

    parser.add_argument(
        "--retries",
        type=int,
        default=int(DEFAULTS["RETRIES"]),
        help="Attempts per host before it is declared offline. Default: %(default)s (NETPING_RETRIES)."
    )

    parser.add_argument(
        "--retry-delay",
        type=float,
        default=None,
        help="Pause between attempts in seconds. Default: half of --timeout."
    )

    parser.add_argument(
        "--rate-interval",
        type=float,
        default=float(DEFAULTS["RATE_INTERVAL"]),
        help="Minimum seconds between probe dispatches; 0 disables. Default: %(default)s (NETPING_RATE_INTERVAL)."
    )

    return parser


def configuration_from_arguments(parsed_arguments: argparse.Namespace,
                                 parser: argparse.ArgumentParser) -> SweepConfiguration:

    if parsed_arguments.concurrency < 1:
        parser.error("--concurrency must be at least 1")
    if parsed_arguments.timeout <= 0:
        parser.error("--timeout must be positive")
    if parsed_arguments.retries < 1:
        parser.error("--retries must be at least 1")
    if parsed_arguments.rate_interval < 0:
        parser.error("--rate-interval cannot be negative")
    if parsed_arguments.retry_delay is not None and parsed_arguments.retry_delay < 0:
        parser.error("--retry-delay cannot be negative")

    concurrency, soft_limit = apply_fd_limit_guardrail(parsed_arguments.concurrency)
    if soft_limit is not None:
        print(
            f"[sweep] Concurrency reduced from {parsed_arguments.concurrency} to {concurrency} "
            f"to respect the open file limit ({soft_limit})."
        )

    return SweepConfiguration(
        concurrency=concurrency,
        rate_interval=parsed_arguments.rate_interval,
        timeout=parsed_arguments.timeout,
        retries=parsed_arguments.retries,
        retry_delay=parsed_arguments.retry_delay,
        verbose=parsed_arguments.verbose,
    )


def run_sweep(parsed_arguments: argparse.Namespace, configuration: SweepConfiguration) -> ScanStats:

    if not os.path.isfile(parsed_arguments.target_file):
        print(f"Error opening file '{parsed_arguments.target_file}': no such file")
        sys.exit(1)

    try:
        output_handle = open(parsed_arguments.output_file, mode="w", encoding="utf-8")
    except OSError as exc:
        print(f"Error creating output file '{parsed_arguments.output_file}': {exc}")
        sys.exit(1)

    stop_event = threading.Event()
    prober = IcmpProber(
        timeout=configuration.timeout,
        retries=configuration.retries,
        retry_delay=configuration.effective_retry_delay(),
        stop_event=stop_event,
    )
    aggregator = ResultAggregator(AliveHostSink(output_handle), verbose=configuration.verbose)
    sweeper = PingSweeper(configuration, prober.probe, aggregator, stop_event=stop_event)

    rate_display = "unlimited" if configuration.rate_interval <= 0 else f"{configuration.rate_interval * 1000:g}ms"
    print(
        f"SWEEP start={utc_now_str()} "
        f"file={parsed_arguments.target_file} "
        f"concurrency={configuration.concurrency} "
        f"timeout={configuration.timeout}s "
        f"retries={configuration.retries} "
        f"rate={rate_display}"
    )

    event_loop = asyncio.new_event_loop()
    try:
        asyncio.set_event_loop(event_loop)
        with contextlib.suppress(NotImplementedError):
            event_loop.add_signal_handler(signal.SIGINT, sweeper.cancel)
        stats = event_loop.run_until_complete(
            sweeper.run(partial(iter_target_lines, parsed_arguments.target_file))
        )
    except KeyboardInterrupt:
        stop_event.set()
        aggregator.mark_cancelled()
        print("\nInterrupted.")
        print(format_summary(aggregator.stats))
        sys.exit(130)
    except OutputSinkError as exc:
        print(f"\nError writing output file '{parsed_arguments.output_file}': {exc}")
        sys.exit(1)
    except OSError as exc:
        print(f"\nError reading file '{parsed_arguments.target_file}': {exc}")
        sys.exit(1)
    finally:
        asyncio.set_event_loop(None)
        event_loop.close()
        with contextlib.suppress(OSError):
            output_handle.close()

    return stats


def main(argv: Optional[List[str]] = None) -> None:

    cli_parser = build_cli_parser()
    args = cli_parser.parse_args(argv)
    configuration = configuration_from_arguments(args, cli_parser)

    print("*** NETPING HOST SWEEP ***")
    print("")
    ensure_raw_socket_privileges()

    stats = run_sweep(args, configuration)

    print("")
    print(format_summary(stats))
    print(f"SWEEP end={utc_now_str()} alive={stats.alive} offline={stats.dead} skipped={stats.malformed}")
    if not stats.is_balanced():
        print(f"[sweep] Warning: {stats.completed}/{stats.total} hosts processed but alive+offline={stats.alive + stats.dead}")
    if stats.cancelled:
        sys.exit(130)


if __name__ == "__main__":
    main()
