# metaswap/monitoring.py
import time
import psutil
import socket
from prometheus_client import Counter, Gauge, Histogram, CollectorRegistry
from prometheus_client.exposition import make_wsgi_app
from wsgiref.simple_server import make_server, WSGIServer
from socketserver import ThreadingMixIn
import threading
import logging

from metaswap.crypto import format_address
from metaswap.errors import ValidationError

logger = logging.getLogger(__name__)


class ThreadingWSGIServer(ThreadingMixIn, WSGIServer):
    """A WSGI server that handles each scrape in its own thread."""
    allow_reuse_address = True


class Monitor:
    """
    Prometheus metrics for a ledger. update() consumes the events emitted
    since the previous call, so counters reflect committed activity only.
    """

    def __init__(self, ledger, host="127.0.0.1", port=9090, serve=False):
        self.ledger = ledger
        self.host = host
        self.port = port
        self.server = None
        self.thread = None

        self._cursor = 0
        self._pairs: list[bytes] = []

        # Isolated registry so several monitors can coexist in one process
        self.registry = CollectorRegistry()

        self.meta_tx_counter = Counter('metaswap_meta_tx_total', 'Relayed calls processed', ['status'], registry=self.registry)
        self.swap_counter = Counter('metaswap_swaps_total', 'Pair swaps executed', registry=self.registry)
        self.liquidity_counter = Counter('metaswap_liquidity_events_total', 'Liquidity mints and burns', ['kind'], registry=self.registry)
        self.fee_collected = Counter('metaswap_relay_fee_collected_total', 'Relay fees collected, in fee-token units', ['token'], registry=self.registry)
        self.pair_count = Gauge('metaswap_pairs', 'Number of pairs created', registry=self.registry)
        self.pair_k = Gauge('metaswap_pair_invariant_k', 'Constant product k per pair', ['pair'], registry=self.registry)
        self.ledger_timestamp = Gauge('metaswap_ledger_timestamp', 'Current ledger timestamp', registry=self.registry)
        self.cpu_usage = Gauge('system_cpu_percent', 'Current CPU usage percent', registry=self.registry)
        self.memory_usage = Gauge('system_memory_percent', 'Current memory usage percent', registry=self.registry)
        self.update_latency = Histogram('metaswap_monitor_update_seconds', 'Time spent in Monitor.update', registry=self.registry)

        if serve:
            self.start_server()

    def start_server(self):
        """Start the exposition server on a daemon thread, retrying while the port is busy."""
        app = make_wsgi_app(self.registry)

        max_retries = 5
        retry_delay = 2

        for attempt in range(max_retries):
            try:
                self.server = make_server(self.host, self.port, app, ThreadingWSGIServer)
                self.server.socket.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)

                self.thread = threading.Thread(target=self.server.serve_forever)
                self.thread.daemon = True
                self.thread.start()
                logger.info(f"Prometheus server started on http://{self.host}:{self.port}")
                return
            except OSError as e:
                if e.errno == 98:  # Address already in use
                    if attempt < max_retries - 1:
                        logger.warning(f"Port {self.port} in use, retrying in {retry_delay}s (attempt {attempt+1}/{max_retries})...")
                        time.sleep(retry_delay)
                    else:
                        logger.error(f"Failed to bind to port {self.port} after {max_retries} attempts")
                        raise
                else:
                    raise

    def stop_server(self):
        if self.server:
            self.server.shutdown()
            self.server.server_close()
            self.server = None
            logger.info("Prometheus server stopped.")

    def update(self):
        start = time.time()

        # _cursor counts events seen since the ledger started, cleared ones included
        events = self.ledger.events
        first = self._cursor - self.ledger.events_cleared
        if first < 0:
            logger.warning(f"{-first} events cleared before they were recorded")
            first = 0
        first = min(first, len(events))
        for event in events[first:]:
            self._record_event(event)
        self._cursor = self.ledger.events_cleared + len(events)

        self.pair_count.set(len(self._pairs))
        for pair in self._pairs:
            try:
                reserve0, reserve1, _ = self.ledger.get_contract(pair).get_reserves()
            except ValidationError as e:
                logger.debug(f"Skipping K for {format_address(pair)}: {e}")
                continue
            self.pair_k.labels(pair=format_address(pair)).set(reserve0 * reserve1)

        self.ledger_timestamp.set(self.ledger.timestamp)
        self.cpu_usage.set(psutil.cpu_percent())
        self.memory_usage.set(psutil.virtual_memory().percent)

        self.update_latency.observe(time.time() - start)

    def _record_event(self, event):
        if event.name == 'MetaStatus':
            self.meta_tx_counter.labels(status='success' if event['success'] else 'failure').inc()
            if event['success'] and event.args.get('fee'):
                self.fee_collected.labels(token=format_address(event['fee_token'])).inc(event['fee'])
        elif event.name == 'Swap':
            self.swap_counter.inc()
        elif event.name in ('Mint', 'Burn'):
            self.liquidity_counter.labels(kind=event.name.lower()).inc()
        elif event.name == 'PairCreated':
            self._pairs.append(event['pair'])
