"""
Just enough HTTP/1.0 to talk to a router's UPnP service: fetch the
device description and POST SOAP actions. 1.0 is used on purpose to
avoid chunked encoding, so the body is everything up to EOF.
"""

import asyncio
from io import BytesIO
from http.client import HTTPResponse
from .utils import *
from .net import *

HTTP_HEADERS = [
    [b"User-Agent", b"natlink/1.0"],
    [b"Accept", b"*/*"]
]

def http_req_buf(host, port, path=b"/", method=b"GET", payload=None, headers=None):
    # Format headers.
    hdrs = {}
    headers = (headers or []) + HTTP_HEADERS

    # Raw http request.
    buf  = b"%s %s HTTP/1.0\r\n" % (to_b(method), to_b(path))
    buf += b"Host: %s:%d\r\n" % (to_b(host), port)
    for header in headers:
        n, v = header

        # Don't add host header twice.
        if n.lower() in [b"host", b"content-length"]:
            continue

        # Skip duplicate headers.
        if n.lower() not in hdrs:
            buf += b"%s: %s\r\n" % (n, v)
            hdrs[n.lower()] = 1

    # Add content length for payload.
    if payload is not None:
        buf += b"Content-Length: %d\r\n" % (len(to_b(payload)))

    # Terminate headers.
    buf += b"\r\n"

    # Append payload (if any.)
    if payload is not None:
        buf += to_b(payload)

    return buf

class FakeSocket():
    def __init__(self, response_bytes):
        self._file = BytesIO(response_bytes)

    def makefile(self, *args, **kwargs):
        return self._file

class ParseHTTPResponse(HTTPResponse):
    def __init__(self, resp_text):
        self.resp_len = len(resp_text)
        self.sock = FakeSocket(resp_text)
        super().__init__(self.sock)
        self.begin()

        # Lower case header lookup.
        self.hdrs = {}
        for name, value in self.getheaders():
            self.hdrs[name.lower()] = value

    def out(self):
        return self.read(self.resp_len)

class WebCurl():
    def __init__(self, dest, hdrs=None, timeout=4):
        self.dest = dest
        self.hdrs = hdrs or []
        self.timeout = timeout

        # Filled in after a request.
        self.info = None
        self.out = b""
        self.lan_tup = None

    async def api(self, method, path, body=None):
        req_buf = http_req_buf(
            host=self.dest[0],
            port=self.dest[1],
            path=path,
            method=method,
            payload=body,
            headers=self.hdrs
        )

        reader, writer = await asyncio.wait_for(
            asyncio.open_connection(self.dest[0], self.dest[1]),
            self.timeout
        )

        # Local address the router sees us as.
        self.lan_tup = writer.get_extra_info("sockname")
        try:
            writer.write(req_buf)
            await writer.drain()
            resp_buf = await asyncio.wait_for(reader.read(), self.timeout)
        finally:
            writer.close()

        self.info = ParseHTTPResponse(resp_buf)
        self.out = self.info.out()
        return self

    async def get(self, path):
        return await self.api(b"GET", path)

    async def post(self, path, body):
        return await self.api(b"POST", path, body)
