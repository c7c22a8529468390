from natlink.test_init import *

class TestAddress(unittest.TestCase):
    def test_parse_v4(self):
        e = parse_endpoint("203.0.113.5:40000")
        self.assertEqual(e, Endpoint("203.0.113.5", 40000))
        self.assertEqual(e.ip, "203.0.113.5")
        self.assertEqual(e.port, 40000)
        self.assertEqual(str(e), "203.0.113.5:40000")
        self.assertEqual(e.af, IP4)

    def test_parse_whitespace_and_bytes(self):
        self.assertEqual(parse_endpoint(" 1.2.3.4:5 \n"), Endpoint("1.2.3.4", 5))
        self.assertEqual(parse_endpoint(b"1.2.3.4:5"), Endpoint("1.2.3.4", 5))

    def test_parse_v6(self):
        e = parse_endpoint("[::1]:8000")
        self.assertEqual(e.ip, "::1")
        self.assertEqual(e.af, IP6)
        self.assertEqual(str(e), "[::1]:8000")

    def test_v6_normalized(self):
        a = parse_endpoint("[0:0:0:0:0:0:0:1]:80")
        b = parse_endpoint("[::1]:80")
        self.assertEqual(a, b)
        self.assertEqual(str(a), str(b))

    def test_equality_and_hash(self):
        a = Endpoint("10.0.0.1", 1)
        b = Endpoint("10.0.0.1", 1)
        self.assertEqual(a, b)
        self.assertEqual(len(set([a, b])), 1)
        self.assertEqual(a, ("10.0.0.1", 1))

    def test_bad_input(self):
        bad = [
            "",
            "1.2.3.4",
            "1.2.3.4:",
            "1.2.3.4:0",
            "1.2.3.4:65536",
            "1.2.3.4:abc",
            "999.1.1.1:80",
            "host.example:80",
            "::1:80",
            "[::1]80",
        ]
        for text in bad:
            with self.assertRaises(InvalidEndpointFormat, msg=text):
                parse_endpoint(text)

    def test_not_text(self):
        for value in [None, 80, 1.5, ["1.2.3.4", 80], b"\xff\xfe:80", ("1.2.3.4",)]:
            with self.assertRaises(InvalidEndpointFormat, msg=repr(value)):
                parse_endpoint(value)

    def test_from_tup(self):
        e = Endpoint.from_tup(("::1", 80, 0, 0))
        self.assertEqual(e, Endpoint("::1", 80))

if __name__ == '__main__':
    main()
