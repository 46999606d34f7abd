# =============================================================================
# ledger_core/offline/connection_manager.py
# Remote Reachability Monitor
# =============================================================================
"""
Decides whether the ledger should talk to Supabase right now.

Two signals feed the status:
- the platform hint (a TCP connect to public DNS, or an explicit
  notify_network_change() from the host), which is cheap but can lie
- the remote probe (select one profile id), which is authoritative

Only a successful probe yields ONLINE. A failed probe is DEGRADED when the
hint still sees a network and OFFLINE when it doesn't. Listeners are told
about transitions, never about repeated identical results.
"""

from __future__ import annotations
import logging
import socket
import threading
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Callable, List, Optional

from ledger_core.errors import RemoteError

logger = logging.getLogger(__name__)

# (host, port) pairs tried in order by the default network hint
DNS_RESOLVERS = (("8.8.8.8", 53), ("1.1.1.1", 53), ("208.67.222.222", 53))


class ConnectionStatus(Enum):
    UNKNOWN = "unknown"
    ONLINE = "online"
    DEGRADED = "degraded"
    OFFLINE = "offline"


@dataclass
class ConnectionState:
    """Snapshot handed to listeners and the status widget."""
    status: ConnectionStatus = ConnectionStatus.UNKNOWN
    internet_available: bool = False
    supabase_available: bool = False
    last_check: Optional[datetime] = None
    last_online: Optional[datetime] = None
    consecutive_failures: int = 0
    error_message: Optional[str] = None


Listener = Callable[[ConnectionState], None]


def default_internet_check(timeout: float = 5) -> bool:
    """True as soon as any public resolver accepts a TCP connection."""
    for address in DNS_RESOLVERS:
        try:
            with socket.create_connection(address, timeout=timeout):
                return True
        except OSError:
            continue
    return False


def _iso(moment: Optional[datetime]) -> Optional[str]:
    return moment.isoformat() if moment else None


class ConnectionManager:
    """
    Owns the ConnectionState and an optional polling thread.

        manager = ConnectionManager(remote, internet_check=lambda: True)
        manager.register_callback(on_change)
        manager.start()
    """

    CHECK_INTERVAL_ONLINE = 30
    CHECK_INTERVAL_OFFLINE = 10
    CONNECTION_TIMEOUT = 5

    def __init__(
        self,
        remote,
        internet_check: Optional[Callable[[], bool]] = None,
        check_interval_online: Optional[int] = None,
        check_interval_offline: Optional[int] = None,
        connection_timeout: Optional[int] = None,
    ):
        """
        Args:
            remote: Anything with a probe() method, normally SupabaseRemote
            internet_check: Network hint; defaults to default_internet_check
            check_interval_online: Poll period in seconds while ONLINE
            check_interval_offline: Poll period in seconds otherwise
            connection_timeout: Socket timeout for the default hint
        """
        self.remote = remote
        self.check_interval_online = check_interval_online or self.CHECK_INTERVAL_ONLINE
        self.check_interval_offline = check_interval_offline or self.CHECK_INTERVAL_OFFLINE

        if internet_check is None:
            timeout = connection_timeout or self.CONNECTION_TIMEOUT
            internet_check = lambda: default_internet_check(timeout)  # noqa: E731
        self._internet_check = internet_check

        self._state = ConnectionState()
        self._lock = threading.Lock()
        self._listeners: List[Listener] = []
        self._halt = threading.Event()
        self._monitor_thread: Optional[threading.Thread] = None

    # -- read-only views ------------------------------------------------------

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def status(self) -> ConnectionStatus:
        return self._state.status

    @property
    def is_online(self) -> bool:
        return self._state.status is ConnectionStatus.ONLINE

    @property
    def is_offline(self) -> bool:
        return self._state.status is ConnectionStatus.OFFLINE

    @property
    def has_internet(self) -> bool:
        return self._state.internet_available

    @property
    def has_supabase(self) -> bool:
        return self._state.supabase_available

    # -- lifecycle ------------------------------------------------------------

    def start(self, monitor: bool = True) -> None:
        """Check once, then poll in the background unless ``monitor`` is False."""
        self.check_connection()
        if monitor:
            self._start_thread()
        logger.info(f"ConnectionManager started ({self._state.status.value})")

    def stop(self) -> None:
        self._halt.set()
        thread, self._monitor_thread = self._monitor_thread, None
        if thread is not None:
            thread.join(timeout=5)
            logger.debug("Connection monitor stopped")

    def _start_thread(self) -> None:
        if self._monitor_thread is not None and self._monitor_thread.is_alive():
            return
        self._halt.clear()
        self._monitor_thread = threading.Thread(
            target=self._poll, name="ConnectionMonitor", daemon=True,
        )
        self._monitor_thread.start()

    def _poll(self) -> None:
        while True:
            period = self.check_interval_online if self.is_online else self.check_interval_offline
            if self._halt.wait(timeout=period):
                return
            try:
                self.check_connection()
            except Exception as e:
                logger.error(f"Connection check crashed: {e}", exc_info=True)

    # -- checks ---------------------------------------------------------------

    def _probe(self) -> bool:
        try:
            return bool(self.remote.probe())
        except RemoteError as e:
            self._state.error_message = str(e)
            logger.debug(f"Remote probe failed: {e}")
            return False

    def _network_hint(self) -> bool:
        try:
            return bool(self._internet_check())
        except OSError as e:
            logger.debug(f"Network hint failed: {e}")
            return False

    def check_connection(self) -> ConnectionState:
        """Probe the remote, consult the hint on failure, publish the result."""
        if self._probe():
            return self._apply(ConnectionStatus.ONLINE, internet=True, supabase=True)

        internet = self._network_hint()
        status = ConnectionStatus.DEGRADED if internet else ConnectionStatus.OFFLINE
        return self._apply(status, internet=internet, supabase=False)

    def notify_network_change(self, available: bool) -> ConnectionState:
        """
        Entry point for host network events.

        A lost network goes straight to OFFLINE with no probe; a restored one
        only becomes ONLINE once the probe agrees.
        """
        if available:
            return self.check_connection()
        return self._apply(ConnectionStatus.OFFLINE, internet=False, supabase=False)

    def force_offline(self) -> None:
        self._apply(ConnectionStatus.OFFLINE, internet=False, supabase=False)
        logger.info("Offline mode forced")

    def _apply(self, status: ConnectionStatus, internet: bool, supabase: bool) -> ConnectionState:
        with self._lock:
            state = self._state
            previous = state.status
            state.status = status
            state.internet_available = internet
            state.supabase_available = supabase
            state.last_check = datetime.now()

            if status is ConnectionStatus.ONLINE:
                state.last_online = state.last_check
                state.consecutive_failures = 0
                state.error_message = None
            else:
                state.consecutive_failures += 1

        if previous is not status:
            logger.info(f"Connection {previous.value} -> {status.value}")
            self._fire()
        return self._state

    # -- listeners ------------------------------------------------------------

    def register_callback(self, callback: Listener) -> None:
        if callback not in self._listeners:
            self._listeners.append(callback)

    def unregister_callback(self, callback: Listener) -> None:
        if callback in self._listeners:
            self._listeners.remove(callback)

    def _fire(self) -> None:
        for listener in list(self._listeners):
            try:
                listener(self._state)
            except Exception as e:
                logger.error(f"Connection listener failed: {e}", exc_info=True)

    def get_status_display(self) -> dict:
        state = self._state
        return {
            "status": state.status.value,
            "is_online": self.is_online,
            "internet": state.internet_available,
            "supabase": state.supabase_available,
            "last_check": _iso(state.last_check),
            "last_online": _iso(state.last_online),
            "failures": state.consecutive_failures,
            "error": state.error_message,
        }
