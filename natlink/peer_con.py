"""
A PeerCon is one channel to one peer. It owns the punch session for
that peer, a read loop task, and (for streams) a heartbeat task.
Both bindings speak the same STATUS: / MSG: protocol.

UDP: message boundaries are datagram boundaries. Many UDPPeerCons
can share one UDPPipe; each one subscribes to its peer's address.

Streams (TCP or TLS): each successful read is treated as one message.
There's no length prefix so one send can arrive split across two
reads and two sends can arrive in one read. That's a known limit of
the protocol, not something the reader tries to repair.
"""

import asyncio
import re
from .errors import *
from .utils import *
from .net import *
from .address import *
from .nat_punch import *

# Stream keep-alive. Stripped from reads before processing.
HEARTBEAT_BUF = b"\x00"

class PeerCon():
    transport_type = None

    def __init__(self, dest, role=PUNCH_INITIATOR, conf=NET_CONF):
        self.dest = Endpoint.from_tup(dest)
        self.conf = conf
        self.last_activity = timestamp(1)

        # Handshake state machine for this peer.
        self.session = NATPunchSession(self, role)
        self.session.state_cbs.append(self.on_state)
        self.session.msg_cbs.append(self.on_session_msg)

        # One send at a time per connection.
        self.send_lock = asyncio.Lock()

        # Read loop + heartbeat. Cancelled on close.
        self.tasks = []
        self.handler_tasks = []

        # msg_cbs(payload, con), up_cbs(con), end_cbs(con).
        self.msg_cbs = []
        self.up_cbs = []
        self.end_cbs = []

        # is_closing is set before the first await in close().
        self.is_closing = False
        self.is_closed = False

    def __str__(self):
        return str(self.dest)

    @property
    def state(self):
        return self.session.state

    def is_connected(self):
        return self.state == PUNCH_CONNECTED

    async def wait_connected(self, timeout=None):
        return await self.session.wait_connected(timeout)

    def on_state(self, session, old_state, new_state):
        if new_state == PUNCH_CONNECTED:
            self.handler_tasks = rm_done_tasks(self.handler_tasks)
            for cb in self.up_cbs:
                run_handler(cb, [self], self.handler_tasks)

    def on_session_msg(self, payload, session):
        self.handler_tasks = rm_done_tasks(self.handler_tasks)
        for cb in self.msg_cbs:
            run_handler(cb, [payload, self], self.handler_tasks)

    async def _write(self, buf):
        raise NotImplementedError

    async def _release(self):
        pass

    def start(self):
        raise NotImplementedError

    async def send_raw(self, buf):
        if self.is_closed:
            raise NotConnected("{} is closed.".format(self.dest))

        async with self.send_lock:
            try:
                await self._write(buf)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                raise PeerIOError("send to {} failed: {}".format(self.dest, e))

    # Application message.
    async def send(self, payload):
        if not self.is_connected():
            raise NotConnected("{} is not connected.".format(self.dest))

        await self.send_raw(msg_buf(payload))

    async def punch(self):
        await self.session.punch()

    async def proc_buf(self, buf):
        self.last_activity = timestamp(1)
        await self.session.proc_msg(buf)

        # Peer sent CLOSE.
        if not self.session.is_open():
            await self.close()

    # Fatal transport error from a loop.
    async def fail(self):
        if self.session.is_open():
            self.session.set_state(PUNCH_FAILED)

        await self.close()

    async def close(self):
        if self.is_closing or self.is_closed:
            return

        self.is_closing = True

        # Sends CLOSE if the handshake got anywhere.
        await self.session.close()
        self.is_closed = True
        try:
            await self._release()
        except Exception:
            log_exception()

        await cancel_tasks(self.tasks + self.handler_tasks)
        for cb in self.end_cbs:
            run_handler(cb, [self], [])

class UDPPeerCon(PeerCon):
    transport_type = TYPE_UDP_CON

    def __init__(self, pipe, dest, role=PUNCH_INITIATOR, conf=NET_CONF):
        super().__init__(dest, role=role, conf=conf)
        self.pipe = pipe
        self.sub = [None, re.escape(to_b(str(self.dest)))]

    def start(self):
        # Subscribe now so a datagram already being dispatched
        # by the pipe lands in this con's queue.
        self.pipe.subscribe(self.sub)
        self.tasks.append(
            asyncio.ensure_future(self.read_loop())
        )

        return self

    async def read_loop(self):
        while not self.is_closed:
            buf = await self.pipe.recv(self.sub, timeout=None)
            try:
                await self.proc_buf(buf)
            except (PeerIOError, NotConnected):
                log_exception()
                await self.fail()

    async def _write(self, buf):
        await self.pipe.send(buf, self.dest)

    async def _release(self):
        # The pipe is shared. Only drop this peer's queue.
        self.pipe.unsubscribe(self.sub)

class StreamPeerCon(PeerCon):
    transport_type = TYPE_STREAM_CON

    def __init__(self, reader, writer, dest, role=PUNCH_INITIATOR, conf=NET_CONF):
        super().__init__(dest, role=role, conf=conf)
        self.reader = reader
        self.writer = writer

    def start(self):
        self.tasks.append(
            asyncio.ensure_future(self.read_loop())
        )
        self.tasks.append(
            asyncio.ensure_future(self.heartbeat_loop())
        )

        return self

    async def read_loop(self):
        try:
            while not self.is_closed:
                buf = await self.reader.read(self.conf["buf_size"])

                # Orderly close from the peer.
                if not buf:
                    if self.session.is_open():
                        self.session.set_state(PUNCH_CLOSED)

                    await self.close()
                    return

                # Keep-alives aren't messages.
                buf = buf.strip(HEARTBEAT_BUF)
                if not buf:
                    self.last_activity = timestamp(1)
                    continue

                await self.proc_buf(buf)
        except (OSError, PeerIOError, NotConnected):
            log_exception()
            await self.fail()

    async def heartbeat_loop(self):
        while not self.is_closed:
            await asyncio.sleep(self.conf["heartbeat_interval"])
            try:
                await self.send_raw(HEARTBEAT_BUF)
            except (PeerIOError, NotConnected):
                log("> heartbeat to {} failed".format(self.dest))
                await self.fail()
                return

    async def _write(self, buf):
        self.writer.write(buf)
        await self.writer.drain()

    async def _release(self):
        self.writer.close()
        try:
            await self.writer.wait_closed()
        except OSError:
            pass

# Dial a stream peer. Pass an SSLContext for TLS.
async def stream_con_open(dest, conf=NET_CONF, ssl=None, server_hostname=None, local_addr=None):
    dest = parse_endpoint(dest)
    kwargs = {}
    if ssl is not None:
        kwargs["ssl"] = ssl
        kwargs["server_hostname"] = server_hostname or dest.ip

    try:
        reader, writer = await asyncio.wait_for(
            asyncio.open_connection(
                dest.ip,
                dest.port,
                local_addr=local_addr,
                **kwargs
            ),
            conf["con_timeout"]
        )
    except (OSError, asyncio.TimeoutError) as e:
        raise ConnectFailed("connect to {} failed: {}".format(dest, e))

    return StreamPeerCon(reader, writer, dest, role=PUNCH_INITIATOR, conf=conf)

# Accept stream peers. on_con(con) is called for each one.
async def stream_server_start(on_con, bind_tup=("0.0.0.0", 0), conf=NET_CONF, ssl=None):
    async def handle_client(reader, writer):
        dest = writer.get_extra_info("peername")
        con = StreamPeerCon(reader, writer, dest, role=PUNCH_RESPONDER, conf=conf)
        run_handler(on_con, [con], [])

    return await asyncio.start_server(
        handle_client,
        bind_tup[0],
        bind_tup[1],
        ssl=ssl
    )
