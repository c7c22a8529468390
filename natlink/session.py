"""
SessionController is what a console or any other front end drives.
It owns the shared UDP pipe, the registry and any stream listener.
Commands never raise for bad user input: they report through
event_cb(endpoint, text) and return None / False / 0 instead.

Flow: start() binds the UDP socket, asks STUN for the public
endpoint (falling back to the local address), then tries a UPnP
mapping in the background. connect() punches toward a peer from
the same socket. PUNCH datagrams from unknown peers are accepted
so either side can start first.
"""

import asyncio
import time
from .errors import *
from .utils import *
from .net import *
from .settings import *
from .address import *
from .pipe_events import *
from .stun_client import *
from .nat_punch import *
from .peer_con import *
from .con_registry import *
from .nat import *
from .upnp import request_mapping

def render_event(endpoint, text):
    return "[{}] [{}] {}".format(
        time.strftime("%Y-%m-%d %H:%M:%S"),
        endpoint,
        text
    )

class SessionController():
    def __init__(self, conf=SESSION_CONF, msg_cb=None, event_cb=None, mapper=request_mapping):
        self.conf = conf
        self.net_conf = conf["net_conf"]
        self.registry = ConRegistry()

        # Cons that haven't finished the handshake yet.
        self.pending = {}

        # msg_cb(text, endpoint, con), event_cb(endpoint, text).
        self.msg_cb = msg_cb
        self.event_cb = event_cb or (lambda e, t: log(render_event(e, t)))
        self.mapper = mapper

        # Set by start().
        self.pipe = None
        self.public = None
        self.is_public = False
        self.nat_type = None
        self.stream_server = None
        self.tasks = []

    def report(self, endpoint, text):
        self.tasks = rm_done_tasks(self.tasks)
        run_handler(self.event_cb, [endpoint, text], self.tasks)

    async def start(self, pipe=None):
        if self.pipe is not None:
            return self.public

        # Not being able to bind is the one fatal error.
        if pipe is None:
            pipe = await pipe_open_udp(
                bind_tup=(self.conf["bind_ip"], self.conf["bind_port"]),
                conf=self.net_conf
            )

        self.public, self.pipe, self.is_public = await get_mapping_or_local(
            self.conf["stun_host"],
            self.conf["stun_port"],
            timeout=self.net_conf["stun_timeout"],
            pipe=pipe,
            conf=self.net_conf
        )
        self.pipe.add_msg_cb(self.on_udp_msg)
        if self.is_public:
            self.report(self.public, "public address")
        else:
            self.report(self.public, "STUN failed, using local address")

        if self.is_public and self.conf["nat_check"]:
            self.tasks.append(
                asyncio.ensure_future(async_wrap_errors(self.check_nat()))
            )

        # Side channel. Never awaited by commands.
        if self.conf["enable_upnp"] and self.mapper is not None:
            self.tasks.append(
                asyncio.ensure_future(self.map_port())
            )

        return self.public

    async def check_nat(self):
        self.nat_type, _ = await get_nat_type(
            self.pipe,
            self.conf["nat_servers"],
            timeout=self.net_conf["stun_timeout"],
            conf=self.net_conf
        )

        self.report(self.public, "NAT type: {}".format(
            NAT_TYPE_NAMES[self.nat_type]
        ))
        if self.nat_type in HARD_NATS:
            self.report(self.public, "symmetric NAT, hole punching will probably fail")

        return self.nat_type

    async def map_port(self):
        lport = self.pipe.getsockname().port
        success = await async_wrap_errors(
            self.mapper(
                "UDP",
                lport,
                self.public.port,
                self.conf["upnp_lease"],
                self.conf["upnp_desc"],
                self.conf["upnp_timeout"]
            )
        )

        if success:
            self.report(self.public, "UPnP mapped {} -> {}".format(
                lport, self.public.port
            ))
        else:
            log("> session: no UPnP mapping")

        return success

    def find_con(self, endpoint):
        return self.registry.get(endpoint) or self.pending.get(str(endpoint))

    def track(self, con):
        self.pending[str(con.dest)] = con
        con.up_cbs.append(self.on_con_up)
        con.end_cbs.append(self.on_con_end)
        con.msg_cbs.append(self.on_con_msg)
        return con.start()

    def on_con_up(self, con):
        key = str(con.dest)
        if self.pending.get(key) is con:
            del self.pending[key]

        old = self.registry.add(con.dest, con)
        if old is not None:
            self.tasks.append(
                asyncio.ensure_future(async_wrap_errors(old.close()))
            )

        if con.session.connected_by == STATUS_PUNCH:
            self.report(con.dest, "connected (hole punched)")
        else:
            self.report(con.dest, "connected")

    def on_con_end(self, con):
        key = str(con.dest)
        if self.pending.get(key) is con:
            del self.pending[key]

        self.registry.remove(con.dest, con)
        self.report(con.dest, "connection closed")

    def on_con_msg(self, payload, con):
        text = payload.decode("utf-8", "replace")
        self.report(con.dest, "[MSG] {}".format(text))
        if self.msg_cb is not None:
            run_handler(self.msg_cb, [text, con.dest, con], self.tasks)

    # Accept PUNCH from peers we don't know yet.
    def on_udp_msg(self, data, client_tup, pipe):
        if self.find_con(client_tup) is not None:
            return

        if not data.startswith(status_buf(STATUS_PUNCH)):
            return

        con = UDPPeerCon(pipe, client_tup, role=PUNCH_RESPONDER, conf=self.net_conf)
        self.track(con)

    def on_stream_con(self, con):
        self.track(con)

    async def start_as_initiator(self, remote_text, proto=UDP, wait=None, ssl=None):
        await self.start()
        return await self.connect(remote_text, proto=proto, wait=wait, ssl=ssl)

    # Accept-only. stream_port also listens for TCP / TLS peers.
    async def start_as_responder(self, stream_port=None, ssl=None):
        await self.start()
        if stream_port is not None and self.stream_server is None:
            self.stream_server = await stream_server_start(
                self.on_stream_con,
                (self.conf["bind_ip"], stream_port),
                conf=self.net_conf,
                ssl=ssl
            )

        return self.public

    def stream_listen_tup(self):
        if self.stream_server is None:
            return None

        return Endpoint.from_tup(self.stream_server.sockets[0].getsockname())

    async def connect(self, remote_text, proto=UDP, wait=None, ssl=None):
        try:
            dest = parse_endpoint(remote_text)
        except InvalidEndpointFormat as e:
            self.report(remote_text, "invalid address: {}".format(e))
            return None

        # Already punched or punching.
        con = self.find_con(dest)
        if con is not None:
            return con

        if proto == UDP:
            await self.start()
            con = UDPPeerCon(self.pipe, dest, role=PUNCH_INITIATOR, conf=self.net_conf)
        else:
            try:
                con = await stream_con_open(dest, conf=self.net_conf, ssl=ssl)
            except ConnectFailed as e:
                self.report(dest, "connect failed: {}".format(e))
                return None

        self.track(con)
        self.report(dest, "punching")
        try:
            await con.punch()
        except ConnectFailed as e:
            self.report(dest, "connect failed: {}".format(e))
            await con.close()
            return None

        if wait:
            await con.wait_connected(wait)

        return con

    # Returns the number of peers the message reached.
    async def send(self, payload, target=None):
        if target is not None:
            try:
                target = parse_endpoint(target)
            except InvalidEndpointFormat as e:
                self.report(target, "invalid address: {}".format(e))
                return 0

        try:
            return await self.registry.broadcast(payload, target)
        except NotConnected:
            self.report(target, "not found")
            return 0

    async def disconnect(self, endpoint_text):
        try:
            dest = parse_endpoint(endpoint_text)
        except InvalidEndpointFormat as e:
            self.report(endpoint_text, "invalid address: {}".format(e))
            return False

        con = self.registry.remove(dest) or self.pending.pop(str(dest), None)
        if con is None:
            self.report(dest, "not found")
            return False

        await con.close()
        return True

    def list_peers(self):
        return self.registry.list()

    # Shutdown everything this session opened.
    async def close(self):
        pending = list(self.pending.values())
        self.pending = {}
        await asyncio.gather(*[
            async_wrap_errors(con.close()) for con in pending
        ])
        await self.registry.close_all()

        if self.stream_server is not None:
            self.stream_server.close()
            await self.stream_server.wait_closed()
            self.stream_server = None

        if self.pipe is not None:
            await self.pipe.close()
            self.pipe = None

        await cancel_tasks(self.tasks)
