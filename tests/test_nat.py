from natlink.test_init import *
from natlink.nat import *

class TestNATType(unittest.TestCase):
    def test_from_mappings(self):
        local = Endpoint("192.168.1.20", 5000)
        a = Endpoint("203.0.113.5", 40000)
        b = Endpoint("203.0.113.5", 40001)
        c = Endpoint("198.51.100.7", 40000)
        self.assertEqual(nat_type_from_mappings(local, []), BLOCKED_NAT)
        self.assertEqual(nat_type_from_mappings(local, [local]), OPEN_INTERNET)
        self.assertEqual(nat_type_from_mappings(local, [a]), UNKNOWN_NAT)
        self.assertEqual(nat_type_from_mappings(local, [a, a]), CONE_NAT)
        self.assertEqual(nat_type_from_mappings(local, [a, b]), SYMMETRIC_NAT)
        self.assertEqual(nat_type_from_mappings(local, [a, c]), SYMMETRIC_NAT)
        self.assertIn(SYMMETRIC_NAT, HARD_NATS)
        self.assertNotIn(CONE_NAT, HARD_NATS)

class TestNATCheck(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self):
        self.servs = []
        self.pipe = await pipe_open_udp(bind_tup=("127.0.0.1", 0), conf=TEST_NET_CONF)

    async def asyncTearDown(self):
        for serv in self.servs:
            serv.close()

        await self.pipe.close()

    async def serv(self, **kwargs):
        serv = await start_stun_server(**kwargs)
        self.servs.append(serv)
        return serv.getsockname()

    async def test_cone(self):
        mapped = Endpoint("203.0.113.5", 40000)
        servers = [await self.serv(mapped=mapped), await self.serv(mapped=mapped)]
        nat_type, mappings = await get_nat_type(self.pipe, servers, timeout=1)
        self.assertEqual(nat_type, CONE_NAT)
        self.assertEqual(mappings, [mapped, mapped])

    async def test_symmetric(self):
        servers = [
            await self.serv(mapped=Endpoint("203.0.113.5", 40000)),
            await self.serv(mapped=Endpoint("203.0.113.5", 40002)),
        ]
        nat_type, _ = await get_nat_type(self.pipe, servers, timeout=1)
        self.assertEqual(nat_type, SYMMETRIC_NAT)

    async def test_open_internet(self):
        # Unmapped servers echo the loopback source address.
        servers = [await self.serv(), await self.serv()]
        nat_type, mappings = await get_nat_type(self.pipe, servers, timeout=1)
        self.assertEqual(nat_type, OPEN_INTERNET)
        self.assertEqual(mappings[0], self.pipe.getsockname())

    async def test_same_server_counted_once(self):
        mapped = Endpoint("203.0.113.5", 40000)
        dest = await self.serv(mapped=mapped)
        nat_type, mappings = await get_nat_type(self.pipe, [dest, dest], timeout=1)
        self.assertEqual(nat_type, UNKNOWN_NAT)
        self.assertEqual(len(mappings), 1)

    async def test_dead_server_skipped(self):
        mapped = Endpoint("203.0.113.5", 40000)
        servers = [
            await self.serv(drop=True),
            await self.serv(mapped=mapped),
            await self.serv(mapped=mapped),
        ]
        nat_type, mappings = await get_nat_type(self.pipe, servers, timeout=0.2)
        self.assertEqual(nat_type, CONE_NAT)
        self.assertEqual(len(mappings), 2)

    async def test_blocked(self):
        servers = [await self.serv(drop=True)]
        nat_type, mappings = await get_nat_type(self.pipe, servers, timeout=0.2)
        self.assertEqual(nat_type, BLOCKED_NAT)
        self.assertEqual(mappings, [])

        # The pipe is still usable for punching.
        self.assertTrue(self.pipe.is_running)

if __name__ == '__main__':
    main()
