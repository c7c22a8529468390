"""
Hole punching is a single PUNCH sent toward the peer's public
endpoint. The outbound packet opens our NAT for replies from that
endpoint. If the peer did the same thing then whichever PUNCH gets
through first lets that side reply CONNECTED. Both sides may see a
PUNCH at the same time and both will reply. That's fine since a
CONNECTED is never answered.

There's no retry. If the first PUNCH is eaten by the peer's NAT and
the peer never punches back the session sits in PUNCHING until
someone closes it. A retry loop around punch() is the place to add
one if needed.

Control messages are UTF-8 text: STATUS:<PUNCH|CONNECTED|CLOSE>
and MSG:<payload>. Anything else is dropped.
"""

import asyncio
from .errors import *
from .utils import *

PUNCH_IDLE = 1
PUNCH_PUNCHING = 2
PUNCH_CONNECTED = 3
PUNCH_CLOSED = 4
PUNCH_FAILED = 5
PUNCH_STATE_NAMES = {
    PUNCH_IDLE: "idle",
    PUNCH_PUNCHING: "punching",
    PUNCH_CONNECTED: "connected",
    PUNCH_CLOSED: "closed",
    PUNCH_FAILED: "failed",
}

# Who sends the first PUNCH.
PUNCH_INITIATOR = 1
PUNCH_RESPONDER = 2

STATUS_PREFIX = b"STATUS:"
MSG_PREFIX = b"MSG:"
STATUS_PUNCH = b"PUNCH"
STATUS_CONNECTED = b"CONNECTED"
STATUS_CLOSE = b"CLOSE"

status_buf = lambda s: STATUS_PREFIX + s
msg_buf = lambda p: MSG_PREFIX + to_b(p)

class NATPunchSession():
    def __init__(self, con, role=PUNCH_INITIATOR):
        # Anything with an async send_raw(buf) and a dest.
        self.con = con
        self.role = role
        self.state = PUNCH_IDLE

        # Status that moved us to CONNECTED.
        self.connected_by = None
        self.connected = asyncio.Event()
        self.finished = asyncio.Event()

        # state_cbs(session, old_state, new_state).
        self.state_cbs = []

        # msg_cbs(payload, session).
        self.msg_cbs = []
        self.handler_tasks = []

    def __str__(self):
        return "{} {}".format(self.con.dest, PUNCH_STATE_NAMES[self.state])

    def is_open(self):
        return self.state in [PUNCH_IDLE, PUNCH_PUNCHING, PUNCH_CONNECTED]

    def set_state(self, state):
        old_state = self.state
        if old_state == state:
            return

        self.state = state
        log("> punch {}: {} -> {}".format(
            self.con.dest,
            PUNCH_STATE_NAMES[old_state],
            PUNCH_STATE_NAMES[state]
        ))

        if state == PUNCH_CONNECTED:
            self.connected.set()

        if state in [PUNCH_CLOSED, PUNCH_FAILED]:
            self.finished.set()

        self.handler_tasks = rm_done_tasks(self.handler_tasks)
        for cb in self.state_cbs:
            run_handler(cb, [self, old_state, state], self.handler_tasks)

    async def send_status(self, status):
        await self.con.send_raw(status_buf(status))

    # Sent once when the remote endpoint is known.
    async def punch(self):
        if self.state != PUNCH_IDLE:
            return

        self.set_state(PUNCH_PUNCHING)
        try:
            await self.send_status(STATUS_PUNCH)
        except Exception as e:
            self.set_state(PUNCH_FAILED)
            raise ConnectFailed("punch to {} failed: {}".format(self.con.dest, e))

    async def wait_connected(self, timeout=None):
        try:
            await asyncio.wait_for(self.connected.wait(), timeout)
            return True
        except asyncio.TimeoutError:
            return False

    async def proc_status(self, status):
        if status == STATUS_PUNCH:
            # Simultaneous open lands here on both sides.
            if self.state in [PUNCH_IDLE, PUNCH_PUNCHING]:
                self.connected_by = STATUS_PUNCH
                self.set_state(PUNCH_CONNECTED)
                await self.send_status(STATUS_CONNECTED)
                return

            # Peer missed our CONNECTED. No state change.
            if self.state == PUNCH_CONNECTED:
                await self.send_status(STATUS_CONNECTED)
                return

        if status == STATUS_CONNECTED:
            if self.state == PUNCH_PUNCHING:
                self.connected_by = STATUS_CONNECTED
                self.set_state(PUNCH_CONNECTED)
            return

        if status == STATUS_CLOSE:
            if self.state == PUNCH_CONNECTED:
                self.set_state(PUNCH_CLOSED)
                return

        log("> punch {}: ignored status {} in {}".format(
            self.con.dest,
            status,
            PUNCH_STATE_NAMES[self.state]
        ))

    # Process one inbound datagram or stream read.
    async def proc_msg(self, buf):
        buf = bytes(buf)
        if buf.startswith(STATUS_PREFIX):
            await self.proc_status(buf[len(STATUS_PREFIX):].strip())
            return

        if buf.startswith(MSG_PREFIX):
            # Peer isn't confirmed yet so don't trust its msgs.
            if self.state != PUNCH_CONNECTED:
                log("> punch {}: msg before connected".format(self.con.dest))
                return

            payload = buf[len(MSG_PREFIX):]
            self.handler_tasks = rm_done_tasks(self.handler_tasks)
            for cb in self.msg_cbs:
                run_handler(cb, [payload, self], self.handler_tasks)

            return

        log("> punch {}: unknown msg {}".format(self.con.dest, buf[:16]))

    # Local disconnect. CLOSE is best-effort.
    async def close(self):
        if not self.is_open():
            return

        if self.state in [PUNCH_PUNCHING, PUNCH_CONNECTED]:
            try:
                await self.send_status(STATUS_CLOSE)
            except Exception:
                log_exception()

        self.set_state(PUNCH_CLOSED)
