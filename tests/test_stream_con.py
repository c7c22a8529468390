"""
Stream binding over loopback TCP. Each read is one message so
these tests wait for each delivery before sending the next.
"""

from natlink.test_init import *

class TestStreamCon(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self):
        self.accepted = []
        self.server = await stream_server_start(
            lambda con: self.accepted.append(con.start()),
            ("127.0.0.1", 0),
            conf=TEST_NET_CONF
        )
        self.dest = Endpoint.from_tup(self.server.sockets[0].getsockname())
        self.cons = []

    async def asyncTearDown(self):
        for con in self.cons + self.accepted:
            await con.close()

        self.server.close()
        await self.server.wait_closed()

    async def open_pair(self):
        con = await stream_con_open(self.dest, conf=TEST_NET_CONF)
        self.cons.append(con.start())
        await con.punch()
        self.assertTrue(await con.wait_connected(1))
        self.assertTrue(await wait_for_cond(lambda: len(self.accepted)))
        peer = self.accepted[0]
        self.assertTrue(await peer.wait_connected(1))
        return con, peer

    async def test_handshake_and_msg(self):
        con, peer = await self.open_pair()
        self.assertEqual(peer.session.role, PUNCH_RESPONDER)
        got = []
        peer.msg_cbs.append(lambda payload, c: got.append(payload))
        await con.send("hello")
        self.assertTrue(await wait_for_cond(lambda: len(got)))
        self.assertEqual(got, [b"hello"])

        # And back the other way.
        back = []
        con.msg_cbs.append(lambda payload, c: back.append(payload))
        await peer.send("world")
        self.assertTrue(await wait_for_cond(lambda: len(back)))
        self.assertEqual(back, [b"world"])

    async def test_heartbeat_filtered(self):
        con, peer = await self.open_pair()
        got = []
        peer.msg_cbs.append(lambda payload, c: got.append(payload))
        before = peer.last_activity

        # Several heartbeats at 0.2s.
        await asyncio.sleep(0.7)
        self.assertEqual(got, [])
        self.assertGreater(peer.last_activity, before)
        self.assertTrue(peer.is_connected())

    async def test_peer_close_msg(self):
        con, peer = await self.open_pair()
        await con.close()
        self.assertTrue(await wait_for_cond(lambda: peer.is_closed))
        self.assertEqual(peer.state, PUNCH_CLOSED)

    async def test_zero_read_closes(self):
        con, peer = await self.open_pair()

        # Drop the socket without a CLOSE message.
        con.writer.close()
        self.assertTrue(await wait_for_cond(lambda: peer.is_closed))
        self.assertEqual(peer.state, PUNCH_CLOSED)

    async def test_connect_failed(self):
        # Nothing listens on a closed server's port.
        s = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        s.bind(("127.0.0.1", 0))
        port = s.getsockname()[1]
        s.close()
        with self.assertRaises(ConnectFailed):
            await stream_con_open(("127.0.0.1", port), conf=TEST_NET_CONF)

    async def test_close_idempotent(self):
        con, peer = await self.open_pair()
        ended = []
        con.end_cbs.append(lambda c: ended.append(c))
        await con.close()
        await con.close()
        self.assertEqual(len(ended), 1)
        with self.assertRaises(NotConnected):
            await con.send("closed")

    async def test_overlapping_close(self):
        con, peer = await self.open_pair()
        ended = []
        con.end_cbs.append(lambda c: ended.append(c))
        got = []
        peer.session.state_cbs.append(lambda s, old, new: got.append(new))

        # A send in flight holds the lock while both closers start.
        await con.send_lock.acquire()
        closers = asyncio.ensure_future(asyncio.gather(con.close(), con.close()))
        await asyncio.sleep(0.05)
        self.assertFalse(con.is_closed)
        con.send_lock.release()
        await closers

        self.assertEqual(len(ended), 1)
        self.assertTrue(con.is_closed)
        self.assertEqual(con.state, PUNCH_CLOSED)
        self.assertTrue(await wait_for_cond(lambda: peer.is_closed))
        self.assertEqual(got, [PUNCH_CLOSED])

    async def test_heartbeat_failure_fails_con(self):
        con, peer = await self.open_pair()
        reg = ConRegistry()
        reg.add(con.dest, con)
        con.end_cbs.append(lambda c: reg.remove(c.dest, c))

        # Every write now fails like a dead socket.
        async def broken_write(buf):
            raise ConnectionResetError("reset by peer")
        con._write = broken_write

        # Next heartbeat at 0.2s hits the error.
        self.assertTrue(await wait_for_cond(lambda: not len(reg)))
        self.assertTrue(con.is_closed)
        self.assertEqual(con.state, PUNCH_FAILED)

        # The peer sees the socket go away.
        self.assertTrue(await wait_for_cond(lambda: peer.is_closed))

if __name__ == '__main__':
    main()
