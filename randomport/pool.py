import os
import time
import errno
import logging
from socket import socket, getaddrinfo, gaierror
from socket import AF_UNSPEC, SOCK_STREAM, AI_PASSIVE, SOL_SOCKET, SO_REUSEADDR
from threading import Lock
from contextlib import contextmanager, nullcontext


MAX_PORT = 65535
DEFAULT_LIMIT = 65536
DEFAULT_START = 1025
DEFAULT_TIMEOUT = 4
PROBE_HOSTS = ('127.0.0.1', '::1', '0.0.0.0', 'localhost')

# Interface missing or not configured (e.g. no IPv6), try the next one.
_SKIPPABLE = (errno.EADDRNOTAVAIL, errno.EAFNOSUPPORT)


class PoolTimeoutError(TimeoutError):
    def __init__(self, limit, held, total, attempts, elapsed):
        super().__init__(
            "Can't find a place in the pool of %d ports for %d port(s), "
            "in %.02fs (%d held, %d attempts)"
            % (limit, total, elapsed, held, attempts))
        self.limit = limit
        self.held = held
        self.total = total
        self.attempts = attempts
        self.elapsed = elapsed


class PortInUseError(OSError):
    pass


def _wrap(port):
    if port < 0 or port > MAX_PORT:
        return 0
    return port


def _bind(family, addr):
    sock = socket(family, SOCK_STREAM)
    try:
        if os.name == 'posix':
            sock.setsockopt(SOL_SOCKET, SO_REUSEADDR, 1)
        sock.bind(addr)
        sock.listen(1)
        return sock.getsockname()[1]
    finally:
        sock.close()


def probe(port=0, hosts=PROBE_HOSTS):
    """Check that port is bindable on every local address in hosts.

    Port 0 lets the OS pick one; the rest of the addresses are then checked
    with the port actually assigned. Returns the port. Raise PortInUseError
    if it is bound somewhere, OSError on other failures.
    """
    if not 0 <= port <= MAX_PORT:
        raise OSError(errno.EINVAL, 'Port %d out of range' % port)
    probed = False
    for host in hosts:
        try:
            infos = getaddrinfo(host, port, AF_UNSPEC, SOCK_STREAM, 0,
                                AI_PASSIVE)
        except gaierror:
            continue
        for family, _, _, _, sockaddr in infos:
            # port may have been assigned by the OS since resolving
            addr = (sockaddr[0], port) + tuple(sockaddr[2:])
            try:
                port = _bind(family, addr)
            except OSError as e:
                if e.errno == errno.EADDRINUSE:
                    raise PortInUseError(
                        e.errno, 'Port %d in use on %s' % (port, host))
                if e.errno in _SKIPPABLE:
                    continue
                raise
            probed = True
    if not probed:
        raise OSError(errno.EADDRNOTAVAIL,
                      'No local address to probe port %d on' % port)
    return port


class Pool:
    """Pool of TCP ports.

    Hands out ports that are free on the local interfaces and not already
    held by this pool. Use acquire() and release(), or scope the ports to
    a block:

        with Pool().ports(3) as (a, b, c):
            ...

    With sync=False no lock is taken, concurrent callers are on their own.
    limit caps how many ports may be held at once. start is the first port
    number tried.
    """

    def __init__(self, sync=True, limit=DEFAULT_LIMIT, start=DEFAULT_START):
        self._held = set()
        self._sync = sync
        self._limit = limit
        self._next = start
        self._guard = Lock() if sync else nullcontext()


    @property
    def limit(self):
        return self._limit


    @property
    def sync(self):
        return self._sync


    @property
    def next_candidate(self):
        return self._next


    def count(self):
        """How many ports are held now."""
        return len(self._held)

    size = count


    def empty(self):
        return not self._held


    def held_ports(self):
        with self._guard:
            return sorted(self._held)


    def acquire(self, total=1, timeout=DEFAULT_TIMEOUT, action=None):
        """Reserve total ports, contiguous and ascending when more than one.

        Returns a port number if total is 1, a list otherwise. Keep trying
        for timeout seconds, then raise PoolTimeoutError.

        If action is given, it's called with the port(s) and its result is
        returned instead; the ports are released when it's done, whether
        it returns or raises.

        total must be at least 1, otherwise ValueError is raised.
        """
        if total < 1:
            raise ValueError('Need at least one port, asked for %d.' % total)
        started = time.monotonic()
        deadline = started + timeout
        attempts = 0
        while True:
            now = time.monotonic()
            if now > deadline:
                error = PoolTimeoutError(self._limit, self.count(), total,
                                         attempts, now - started)
                logging.warning('%s', error)
                raise error
            attempts += 1
            with self._guard:
                ports = self._take_group(total)
            if ports is not None:
                break
        logging.debug('Acquired ports %s in %d attempt(s).', ports, attempts)

        result = ports[0] if total == 1 else ports
        if action is None:
            return result
        try:
            return action(result)
        finally:
            self.release(ports)


    @contextmanager
    def ports(self, total=1, timeout=DEFAULT_TIMEOUT):
        result = self.acquire(total, timeout)
        try:
            yield result
        finally:
            self.release(result)


    def release(self, port):
        """Return port(s) back to the pool. Unknown ports are ignored."""
        ports = [port] if isinstance(port, int) else list(port)
        with self._guard:
            for p in ports:
                self._held.discard(p)
        logging.debug('Released ports %s.', ports)


    def _take_group(self, total):
        """Try once to reserve total contiguous ports from the cursor.

        Must be called under the guard. Returns the ports, or None after
        moving the cursor forward by one.
        """
        ports = self._probe_group(total)
        if ports is None:
            self._next = _wrap(self._next + 1)
            return None
        self._held.update(ports)
        self._next = _wrap(max(ports) + 1)
        return ports


    def _probe_group(self, total):
        if len(self._held) + total > self._limit:
            return None
        ports = []
        try:
            for i in range(total):
                if i == 0:
                    ports.append(probe(self._next))
                    continue
                wanted = ports[-1] + 1
                if wanted > MAX_PORT:
                    return None
                port = probe(wanted)
                if port != wanted:
                    return None
                ports.append(port)
        except OSError as e:
            logging.debug('Probe from port %d abandoned: %s', self._next, e)
            return None
        if any(p in self._held for p in ports):
            return None
        if sum(ports) - total * min(ports) != total * (total - 1) // 2:
            return None
        return ports
