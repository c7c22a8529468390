"""
A single-request STUN client. One binding request goes out and the
first reply carrying the same transaction ID is decoded. There's no
retry here; wrap the call in a loop if you want one.

The pipe used for the query is always handed back (success or not)
so the caller can punch from the same local port. Closing it would
throw away the NAT mapping the query just warmed up.
"""

import asyncio
import re
import socket
from .errors import *
from .utils import *
from .net import *
from .address import *
from .stun_defs import *
from .stun_utils import *
from .pipe_events import *

# Resolve the STUN server to an IPv4 tuple.
async def resolv_dest(host, port, loop=None):
    loop = loop or asyncio.get_running_loop()
    addr_infos = await loop.getaddrinfo(
        host,
        port,
        family=socket.AF_INET,
        type=socket.SOCK_DGRAM
    )
    if not len(addr_infos):
        raise socket.gaierror("no IPv4 address for {}".format(host))

    return Endpoint.from_tup(addr_infos[0][4])

# Match replies by txid at bytes 8 - 20 from this server.
def stun_reply_sub(txn_id, dest):
    return [
        b"(?s)^.{8}" + re.escape(txn_id),
        re.escape(to_b(str(dest)))
    ]

# Send one request and wait for its reply.
async def get_stun_reply(pipe, dest, timeout):
    txn_id = rand_b(STUN_TXID_LEN)
    sub = stun_reply_sub(txn_id, dest)
    pipe.subscribe(sub)
    try:
        await pipe.send(encode_binding_request(txn_id), dest)
        recv_buf = await pipe.recv(sub, timeout=timeout)
    finally:
        pipe.unsubscribe(sub)

    if recv_buf is None:
        raise StunTimeout("No STUN reply from {} in {}s.".format(dest, timeout))

    return decode_binding_response(recv_buf)

class STUNClient():
    def __init__(self, host, port=3478, conf=NET_CONF):
        self.host = host
        self.port = port
        self.conf = conf
        self.dest = None

    # Boilerplate to get a pipe to the STUN server.
    async def _get_dest_pipe(self, unknown=None):
        if self.dest is None:
            self.dest = await resolv_dest(self.host, self.port)

        # Already open pipe.
        if isinstance(unknown, UDPPipe):
            return unknown

        # Bare socket to reuse.
        if isinstance(unknown, socket.socket):
            return await pipe_open_udp(sock=unknown, conf=self.conf)

        return await pipe_open_udp(conf=self.conf)

    # Returns the public endpoint and the pipe used to get it.
    # The pipe is left open to be used with punch code.
    async def get_mapping(self, pipe=None, timeout=None):
        if timeout is None:
            timeout = self.conf["stun_timeout"]

        pipe = await self._get_dest_pipe(pipe)
        try:
            endpoint = await get_stun_reply(pipe, self.dest, timeout)
        except (StunError, OSError) as e:
            e.pipe = pipe
            raise

        return endpoint, pipe

    # Return only your remote IP.
    async def get_wan_ip(self, timeout=None):
        pipe = await self._get_dest_pipe()
        try:
            endpoint = await get_stun_reply(
                pipe,
                self.dest,
                timeout or self.conf["stun_timeout"]
            )
        finally:
            await pipe.close()

        return endpoint.ip

async def discover_public_endpoint(server_host, server_port=3478, timeout=3, pipe=None, conf=NET_CONF):
    """
    Returns (Endpoint, pipe). Raises StunTimeout when no reply
    arrives in time and the codec errors on a bad reply. On error
    the pipe is still reachable as e.pipe.
    """
    client = STUNClient(server_host, server_port, conf=conf)
    return await client.get_mapping(pipe=pipe, timeout=timeout)

async def get_mapping_or_local(server_host, server_port=3478, timeout=3, pipe=None, conf=NET_CONF):
    """
    Like discover_public_endpoint() but never fails on STUN errors.
    Returns (endpoint, pipe, is_public). When the query fails the
    endpoint is the local bound address of the pipe and is_public
    is False. The operators then have to swap addresses by hand.
    """
    try:
        endpoint, pipe = await discover_public_endpoint(
            server_host,
            server_port,
            timeout=timeout,
            pipe=pipe,
            conf=conf
        )
        return endpoint, pipe, True
    except StunError as e:
        log("> STUN failed {}: {}".format(type(e).__name__, e))
        pipe = e.pipe
    except OSError as e:
        # DNS failure or a send error.
        log_exception()
        pipe = getattr(e, "pipe", pipe)
        if pipe is None or isinstance(pipe, socket.socket):
            pipe = await pipe_open_udp(sock=pipe, conf=conf)

    return pipe.getsockname(), pipe, False
