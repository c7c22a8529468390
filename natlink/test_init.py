import asyncio
import unittest
import socket
import threading
from unittest import main

from .errors import *
from .utils import *
from .net import *
from .settings import *
from .address import *
from .stun_defs import *
from .stun_utils import *
from .stun_client import *
from .stun_server import *
from .nat import *
from .pipe_events import *
from .nat_punch import *
from .peer_con import *
from .con_registry import *
from .session import *

# Everything on loopback with short timeouts.
TEST_NET_CONF = dict_child({
    "stun_timeout": 1,
    "con_timeout": 2,
    "heartbeat_interval": 0.2,
}, NET_CONF)

def loopback_session_conf(stun_tup, **kwargs):
    return dict_child(kwargs, dict_child({
        "bind_ip": "127.0.0.1",
        "stun_host": stun_tup[0],
        "stun_port": stun_tup[1],
        "enable_upnp": False,
        "nat_check": False,
        "net_conf": TEST_NET_CONF,
    }, SESSION_CONF))

# Stands in for a PeerCon when testing the punch state machine.
class FakeCon():
    def __init__(self, dest=("127.0.0.1", 40000), fail=False):
        self.dest = Endpoint.from_tup(dest)
        self.sent = []
        self.fail = fail
        self.peer = None

    async def send_raw(self, buf):
        if self.fail:
            raise PeerIOError("fake send failed")

        self.sent.append(buf)

        # Wired to another session: deliver to it.
        if self.peer is not None:
            await self.peer.proc_msg(buf)

# Registry test double with a scripted send result.
class FakeRegCon():
    def __init__(self, dest, fail=False):
        self.dest = parse_endpoint(dest)
        self.fail = fail
        self.sent = []
        self.closed = False

    async def send(self, payload):
        if self.fail:
            raise PeerIOError("fake send failed")

        self.sent.append(payload)

    async def close(self):
        self.closed = True

async def wait_for_cond(f, timeout=2, step=0.01):
    end = asyncio.get_running_loop().time() + timeout
    while not f():
        if asyncio.get_running_loop().time() > end:
            return False

        await asyncio.sleep(step)

    return True
