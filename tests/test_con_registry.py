from concurrent.futures import ThreadPoolExecutor
from natlink.test_init import *

class TestConRegistry(unittest.IsolatedAsyncioTestCase):
    async def test_add_remove_list(self):
        reg = ConRegistry()
        a = FakeRegCon("10.0.0.1:1")
        b = FakeRegCon("10.0.0.2:2")
        reg.add(a.dest, a)
        reg.add("10.0.0.2:2", b)
        self.assertEqual(reg.list(), set([a.dest, b.dest]))
        self.assertIn("10.0.0.1:1", reg)

        self.assertIs(reg.remove(a.dest), a)
        self.assertIsNone(reg.remove(a.dest))
        self.assertEqual(reg.list(), set([b.dest]))

    async def test_last_writer_wins(self):
        reg = ConRegistry()
        a = FakeRegCon("10.0.0.1:1")
        b = FakeRegCon("10.0.0.1:1")
        self.assertIsNone(reg.add(a.dest, a))
        self.assertIs(reg.add(b.dest, b), a)
        self.assertIs(reg.get(a.dest), b)
        self.assertEqual(len(reg), 1)

    async def test_remove_only_matching_con(self):
        reg = ConRegistry()
        old = FakeRegCon("10.0.0.1:1")
        new = FakeRegCon("10.0.0.1:1")
        reg.add(old.dest, old)
        reg.add(new.dest, new)

        # Old con tearing down mustn't evict the new one.
        self.assertIsNone(reg.remove(old.dest, old))
        self.assertIs(reg.get(new.dest), new)

    async def test_broadcast_resilience(self):
        reg = ConRegistry()
        good1 = FakeRegCon("10.0.0.1:1")
        bad = FakeRegCon("10.0.0.2:2", fail=True)
        good2 = FakeRegCon("10.0.0.3:3")
        for con in [good1, bad, good2]:
            reg.add(con.dest, con)

        self.assertEqual(await reg.broadcast("hi"), 2)
        self.assertEqual(good1.sent, ["hi"])
        self.assertEqual(good2.sent, ["hi"])
        self.assertEqual(reg.list(), set([good1.dest, good2.dest]))
        self.assertTrue(bad.closed)

    async def test_broadcast_target(self):
        reg = ConRegistry()
        a = FakeRegCon("10.0.0.1:1")
        b = FakeRegCon("10.0.0.2:2")
        reg.add(a.dest, a)
        reg.add(b.dest, b)
        self.assertEqual(await reg.broadcast("only a", "10.0.0.1:1"), 1)
        self.assertEqual(a.sent, ["only a"])
        self.assertEqual(b.sent, [])

        with self.assertRaises(NotConnected):
            await reg.broadcast("nobody", "10.0.0.9:9")

    async def test_empty_broadcast(self):
        self.assertEqual(await ConRegistry().broadcast("hi"), 0)

    async def test_close_all(self):
        reg = ConRegistry()
        cons = [FakeRegCon("10.0.0.{}:1".format(i)) for i in range(1, 4)]
        for con in cons:
            reg.add(con.dest, con)

        await reg.close_all()
        self.assertEqual(len(reg), 0)
        self.assertTrue(all(con.closed for con in cons))

    def test_threaded_stress(self):
        reg = ConRegistry()
        writers = 8
        per_writer = 200

        # Each writer owns its own keys so the end state is known.
        def writer(w):
            for i in range(0, per_writer):
                dest = "10.{}.{}.{}:{}".format(w, i // 250, i % 250, 1000 + i)
                reg.add(dest, FakeRegCon(dest))
                if i % 2:
                    self.assertIsNotNone(reg.remove(dest))

        def reader(_):
            for _ in range(0, per_writer):
                for endpoint in reg.list():
                    self.assertIsInstance(endpoint, Endpoint)

                reg.values()

        with ThreadPoolExecutor(max_workers=writers * 2) as pool:
            futures = [pool.submit(writer, w) for w in range(0, writers)]
            futures += [pool.submit(reader, r) for r in range(0, writers)]
            for f in futures:
                f.result()

        self.assertEqual(len(reg), writers * (per_writer // 2))
        for endpoint in reg.list():
            self.assertEqual((endpoint.port - 1000) % 2, 0)

    async def test_concurrent_tasks(self):
        reg = ConRegistry()
        cons = [FakeRegCon("10.1.0.{}:5".format(i)) for i in range(1, 51)]

        async def add_then_broadcast(con):
            reg.add(con.dest, con)
            await asyncio.sleep(0)
            await reg.broadcast("x")
            reg.list()

        await asyncio.gather(*[add_then_broadcast(con) for con in cons])
        self.assertEqual(len(reg), 50)
        self.assertTrue(all(len(con.sent) >= 1 for con in cons))

if __name__ == '__main__':
    main()
