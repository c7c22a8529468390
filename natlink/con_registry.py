"""
The registry is the only state shared between connections. It's
keyed by the canonical 'ip:port' string of each peer. A plain RLock
guards the dict so the console thread and the event loop can both
use it. The lock is never held across an await: broadcast takes a
snapshot, sends without the lock, then drops the failures.
"""

import asyncio
import threading
from .errors import *
from .utils import *
from .address import *

class ConRegistry():
    def __init__(self):
        self.cons = {}
        self.lock = threading.RLock()

    def __len__(self):
        with self.lock:
            return len(self.cons)

    def __contains__(self, endpoint):
        return self.get(endpoint) is not None

    # Last writer for an endpoint wins.
    # Returns the con that was replaced (if any.)
    def add(self, endpoint, con):
        key = str(parse_endpoint(endpoint))
        with self.lock:
            old = self.cons.get(key)
            self.cons[key] = con

        if old is not None and old is not con:
            log("> registry: replaced con for {}".format(key))
            return old

    # Only removes the entry if it's still 'con' when given.
    # Stops a dying con evicting the one that replaced it.
    def remove(self, endpoint, con=None):
        key = str(parse_endpoint(endpoint))
        with self.lock:
            cur = self.cons.get(key)
            if cur is None:
                return None

            if con is not None and cur is not con:
                return None

            return self.cons.pop(key)

    def get(self, endpoint):
        key = str(parse_endpoint(endpoint))
        with self.lock:
            return self.cons.get(key)

    # Snapshot of registered peers.
    def list(self):
        with self.lock:
            return set(parse_endpoint(key) for key in self.cons)

    def values(self):
        with self.lock:
            return list(self.cons.values())

    async def broadcast(self, payload, target=None):
        """
        Send to one peer (target) or every peer. Returns the number
        of peers reached. A missing target raises NotConnected.
        Peers that fail a send are removed and closed; the rest
        still get the message.
        """
        if target is not None:
            con = self.get(target)
            if con is None:
                raise NotConnected("{} not found.".format(target))

            cons = [con]
        else:
            cons = self.values()

        async def send_one(con):
            try:
                await con.send(payload)
                return True
            except (PeerIOError, NotConnected) as e:
                log("> broadcast to {} failed: {}".format(con.dest, e))
                return False

        results = await asyncio.gather(*[send_one(con) for con in cons])
        failed = [con for con, ok in zip(cons, results) if not ok]
        for con in failed:
            self.remove(con.dest, con)
            await async_wrap_errors(con.close())

        return len(cons) - len(failed)

    # Shutdown: close everything that's registered.
    async def close_all(self):
        with self.lock:
            cons = list(self.cons.values())
            self.cons = {}

        await asyncio.gather(*[
            async_wrap_errors(con.close()) for con in cons
        ])
