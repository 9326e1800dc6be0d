"""
OSC Client Module

Control channel to SuperDirt: asks it to reload the sample folders and
optionally waits for its confirmation on a local reply port.

Protocol:
    → /strudel/loadSamples  <path>/* <reply_port>
    ← /strudel/samplesLoaded <path>/*

reply_port is 0 when no confirmation is wanted.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import Future
from typing import Any, Dict, List, Optional, Tuple

from pythonosc import dispatcher, osc_server, udp_client

from .config import DEFAULT_CONFIG, LoaderConfig, OSCAddresses

logger = logging.getLogger(__name__)


_Waiter = Tuple[Future, threading.Timer]


class ReloadNotifier:
    """
    Sends reload requests to SuperDirt.

    Confirmations are matched by the exact path string that was sent;
    each pending wait is resolved exactly once, True on confirmation and
    False at its deadline. A confirmation arriving after the deadline is
    ignored.

    Example:
        ```python
        notifier = ReloadNotifier(config)
        notifier.connect()
        notifier.notify_reload(config.cache_dir)               # fire and forget
        notifier.notify_reload(config.cache_dir, timeout_ms=5000)  # wait
        notifier.close()
        ```
    """

    def __init__(self, config: Optional[LoaderConfig] = None):
        """
        Initialize the notifier.

        Args:
            config: Loader configuration (uses DEFAULT_CONFIG if None)
        """
        self.config = config or DEFAULT_CONFIG

        self._client: Optional[udp_client.SimpleUDPClient] = None
        self._dispatcher = dispatcher.Dispatcher()
        self._dispatcher.map(OSCAddresses.SAMPLES_LOADED, self.handle_confirmation)

        self._server: Optional[osc_server.ThreadingOSCUDPServer] = None
        self._server_thread: Optional[threading.Thread] = None

        self._pending: Dict[str, List[_Waiter]] = {}
        self._lock = threading.Lock()

    @property
    def is_connected(self) -> bool:
        return self._client is not None

    @property
    def reply_port(self) -> int:
        """Port of the confirmation listener, 0 if not started."""
        if self._server is None:
            return 0
        return self._server.server_address[1]

    def connect(self, host: Optional[str] = None, port: Optional[int] = None) -> None:
        """
        Configure the control channel.

        Args:
            host: SuperDirt host (default from config)
            port: SuperDirt port (default from config)
        """
        host = host or self.config.superdirt_host
        port = port or self.config.superdirt_port
        self._client = udp_client.SimpleUDPClient(host, port)
        logger.info("Control channel to SuperDirt at %s:%d", host, port)

    def _ensure_listener(self) -> int:
        with self._lock:
            if self._server is None:
                self._server = osc_server.ThreadingOSCUDPServer(
                    (self.config.reply_host, 0),
                    self._dispatcher
                )
                self._server_thread = threading.Thread(
                    target=self._server.serve_forever,
                    name="OSCReplyListener",
                    daemon=True
                )
                self._server_thread.start()
                logger.debug("Confirmation listener on port %d", self._server.server_address[1])
            return self._server.server_address[1]

    def request_reload(self, path: str, timeout_ms: int = 0) -> Future:
        """
        Ask SuperDirt to load every bank under path.

        Args:
            path: Directory holding one folder per bank
            timeout_ms: How long to wait for confirmation (<= 0: don't wait)

        Returns:
            Future resolving to True once sent (no wait) or confirmed,
            False when not connected, on send failure or on timeout
        """
        future: Future = Future()

        if self._client is None:
            logger.warning("Not connected to SuperDirt, cannot reload %s", path)
            future.set_result(False)
            return future

        pattern = str(path).rstrip("/") + "/*"
        wait = timeout_ms > 0
        timer = None

        if wait:
            try:
                reply_port = self._ensure_listener()
            except OSError as e:
                logger.error("Cannot open confirmation listener: %s", e)
                future.set_result(False)
                return future

            # Registered before sending so a fast reply is not lost
            timer = threading.Timer(timeout_ms / 1000.0, self._expire, args=(pattern, future))
            timer.daemon = True
            with self._lock:
                self._pending.setdefault(pattern, []).append((future, timer))
        else:
            reply_port = 0

        try:
            self._client.send_message(OSCAddresses.LOAD_SAMPLES, [pattern, reply_port])
        except OSError as e:
            logger.error("Failed to send %s: %s", OSCAddresses.LOAD_SAMPLES, e)
            if not wait or self._take(pattern, future):
                future.set_result(False)
            return future

        logger.info("Asked SuperDirt to load samples from %s", pattern)

        if wait:
            timer.start()
        else:
            future.set_result(True)
        return future

    def notify_reload(self, path: str, timeout_ms: int = 0) -> bool:
        """Blocking form of request_reload()."""
        return self.request_reload(path, timeout_ms).result()

    def handle_confirmation(self, address: str, *args: Any) -> None:
        """Handle /samplesLoaded from SuperDirt."""
        if not args:
            logger.debug("Ignoring %s without a path", address)
            return

        pattern = str(args[0])
        with self._lock:
            waiters = self._pending.pop(pattern, [])

        if not waiters:
            logger.debug("No pending reload for %s", pattern)
            return

        logger.info("SuperDirt confirmed loading %s", pattern)
        for future, timer in waiters:
            timer.cancel()
            future.set_result(True)

    def _take(self, pattern: str, future: Future) -> bool:
        """Remove one waiter; False if someone else already resolved it."""
        with self._lock:
            waiters = self._pending.get(pattern, [])
            for i, (waiting, timer) in enumerate(waiters):
                if waiting is future:
                    timer.cancel()
                    del waiters[i]
                    if not waiters:
                        del self._pending[pattern]
                    return True
        return False

    def _expire(self, pattern: str, future: Future) -> None:
        if self._take(pattern, future):
            logger.warning("No confirmation from SuperDirt for %s", pattern)
            future.set_result(False)

    def close(self) -> None:
        """Stop the listener and fail every pending wait."""
        with self._lock:
            pending = self._pending
            self._pending = {}
            server = self._server
            self._server = None

        for waiters in pending.values():
            for future, timer in waiters:
                timer.cancel()
                future.set_result(False)

        if server is not None:
            server.shutdown()
            server.server_close()
        self._client = None


def superdirt_startup_code(cache_dir: str) -> str:
    """
    SuperCollider code that makes SuperDirt work with this loader.

    Add it to startup.scd after `~dirt = SuperDirt(...)`. It loads the
    cache once at startup and installs the reload handler, which answers
    on the reply port when one is given.

    Args:
        cache_dir: Sample cache root

    Returns:
        sclang source
    """
    return f"""
// Strudel sample loading
// Add this to your SuperDirt startup.scd after ~dirt = SuperDirt(...)

~strudelSamplesPath = "{cache_dir}";
if(File.exists(~strudelSamplesPath), {{
    "Loading Strudel samples from: %".format(~strudelSamplesPath).postln;
    ~dirt.loadSoundFiles(~strudelSamplesPath +/+ "*");
}});

OSCdef(\\strudelLoadSamples, {{ |msg|
    var path, replyPort;
    path = msg[1].asString;
    replyPort = if(msg[2].notNil, {{ msg[2].asInteger }}, {{ 0 }});
    "Strudel: Loading samples from %".format(path).postln;
    ~dirt.loadSoundFiles(path);
    if(replyPort > 0, {{
        NetAddr("127.0.0.1", replyPort).sendMsg('{OSCAddresses.SAMPLES_LOADED}', path);
    }});
}}, '{OSCAddresses.LOAD_SAMPLES}');

"Strudel OSC handler registered: {OSCAddresses.LOAD_SAMPLES}".postln;
"""
