"""
A minimal STUN responder for tests and LAN experiments. It replies
to binding requests with the sender's address, or with a fixed
mapping when one is given so NAT-ed results can be faked on
loopback. Requests it can't parse are dropped.
"""

import asyncio
from .errors import *
from .utils import *
from .net import *
from .address import *
from .stun_defs import *
from .stun_utils import *

class STUNServer(asyncio.DatagramProtocol):
    def __init__(self, mapped=None, xor=True, drop=False):
        self.mapped = mapped
        self.xor = xor
        self.drop = drop
        self.transport = None
        self.requests = []

    def connection_made(self, transport):
        self.transport = transport

    def datagram_received(self, data, addr):
        try:
            msg = STUNMsg.unpack(data)
        except MalformedMessage:
            log("> stun serv: bad msg from {}".format(addr))
            return

        if msg.msg_type != STUNMsgTypes.BindingRequest:
            return

        self.requests.append((Endpoint.from_tup(addr), msg.txn_id))

        # Simulate a server that never answers.
        if self.drop:
            return

        mapped = self.mapped or Endpoint.from_tup(addr)
        self.transport.sendto(
            build_binding_response(msg.txn_id, mapped, xor=self.xor),
            addr
        )

    def getsockname(self):
        return Endpoint.from_tup(
            self.transport.get_extra_info("sockname")
        )

    def close(self):
        if self.transport is not None:
            self.transport.close()

async def start_stun_server(bind_tup=("127.0.0.1", 0), mapped=None, xor=True, drop=False):
    loop = asyncio.get_running_loop()
    _, serv = await loop.create_datagram_endpoint(
        lambda: STUNServer(mapped=mapped, xor=xor, drop=drop),
        local_addr=tuple(bind_tup)
    )

    return serv
