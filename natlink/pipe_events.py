"""
In Python's asyncio code you can use so-called 'protocol' classes
to receive messages from an endpoint and handle them in real time.
The drawback is the protocol-style way of networking uses callbacks
and by itself doesn't mix well with the async way of doing things.

UDPPipe bridges the two. Code that wants messages subscribes with
a pair of patterns [b"msg pattern", b"ip:port pattern"] and then
awaits recv() on that subscription. Each subscription has its own
queue so messages from one sender keep their arrival order.

The same socket is used for the STUN query, the punch, and all
datagrams exchanged after it. Closing the STUN side of things
must not close the socket or the NAT mapping may be lost.
"""

import asyncio
import re
import socket
from .utils import *
from .net import *
from .address import *

class UDPPipe(asyncio.DatagramProtocol):
    def __init__(self, sock, loop=None, conf=NET_CONF):
        self.sock = sock
        self.conf = conf
        self.loop = loop
        self.transport = None

        # [hash(sub)] = [sub, Queue].
        self.subs = {}

        # Ran on every datagram before it's queued.
        # Lets a listener create subscriptions for new senders.
        self.msg_cbs = []

        # Ran when the pipe closes.
        self.end_cbs = []
        self.handler_tasks = []
        self.is_running = True

    def connection_made(self, transport):
        self.transport = transport

    def connection_lost(self, exc):
        self.is_running = False
        for cb in self.end_cbs:
            run_handler(cb, [self], self.handler_tasks)

    def error_received(self, exc):
        # ICMP port unreachable and similar.
        # UDP is connectionless so this isn't fatal.
        log("> udp pipe error {}".format(exc))

    def datagram_received(self, data, addr):
        client_tup = Endpoint.from_tup(addr)
        self.handler_tasks = rm_done_tasks(self.handler_tasks)
        for cb in self.msg_cbs[:]:
            run_handler(cb, [data, client_tup, self], self.handler_tasks)

        self.add_msg(data, client_tup)

    def getsockname(self):
        return Endpoint.from_tup(self.sock.getsockname())

    def hash_sub(self, sub):
        return hash(sub[0]) + hash(sub[1])

    # Subscribe to a certain message and host type.
    # sub = [b_msg_pattern, b_addr_pattern]
    def subscribe(self, sub):
        offset = self.hash_sub(sub)
        if offset not in self.subs:
            self.subs[offset] = [
                sub,
                asyncio.Queue(self.conf["max_qsize"])
            ]

        return self

    # Remove a subscription.
    def unsubscribe(self, sub):
        offset = self.hash_sub(sub)
        if offset in self.subs:
            del self.subs[offset]

        return self

    def add_msg_cb(self, msg_cb):
        self.msg_cbs.append(msg_cb)

    def rm_msg_cb(self, msg_cb):
        if msg_cb in self.msg_cbs:
            self.msg_cbs.remove(msg_cb)

    # Adds a message to every matching subscription.
    def add_msg(self, data, client_tup):
        if not len(self.subs):
            log("> udp pipe: no subs for {}".format(client_tup))
            return

        client_addr = to_b(str(client_tup))
        for sub, q in list(self.subs.values()):
            b_msg_p, b_addr_p = sub

            # Check client_addr matches their host pattern.
            if b_addr_p:
                if re.fullmatch(b_addr_p, client_addr) is None:
                    continue

            # Check data matches their message pattern.
            if b_msg_p:
                if re.search(b_msg_p, data) is None:
                    continue

            # Drop the oldest message when full.
            if q.full():
                q.get_nowait()

            q.put_nowait([client_tup, data])

    # Async wait for a message that matches a subscription.
    # Returns None on timeout.
    async def recv(self, sub=SUB_ALL, timeout=2, full=False):
        offset = self.hash_sub(sub)
        if offset not in self.subs:
            raise KeyError("Sub not found. Forgot to subscribe.")

        _, q = self.subs[offset]
        try:
            if timeout is None:
                ret = await q.get()
            else:
                ret = await asyncio.wait_for(q.get(), timeout)
        except asyncio.TimeoutError:
            return None

        # Return [client_tup, data] or just the data.
        if full:
            return ret
        else:
            return ret[1]

    # A datagram is sent whole in one call so
    # concurrent senders can't interleave bytes.
    async def send(self, data, dest_tup):
        if self.transport is None or self.transport.is_closing():
            raise ConnectionError("UDP pipe is closed.")

        self.transport.sendto(to_b(data), tuple(dest_tup))
        return 1

    async def close(self):
        self.is_running = False
        if self.transport is not None and not self.transport.is_closing():
            self.transport.close()

        await cancel_tasks(self.handler_tasks)

# Bind a new socket (or adopt one) and wrap it in a pipe.
async def pipe_open_udp(sock=None, bind_tup=("0.0.0.0", 0), conf=NET_CONF, loop=None):
    loop = loop or asyncio.get_running_loop()
    if sock is None:
        af = Endpoint(bind_tup[0], bind_tup[1]).af
        sock = socket.socket(af, socket.SOCK_DGRAM)
        try:
            if conf["reuse_addr"]:
                sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)

            sock.bind(tuple(bind_tup))
        except OSError:
            sock.close()
            raise

    sock.setblocking(False)
    _, pipe = await loop.create_datagram_endpoint(
        lambda: UDPPipe(sock, loop=loop, conf=conf),
        sock=sock
    )

    return pipe
