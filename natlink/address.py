import ipaddress
import collections
from .errors import *
from .utils import *
from .net import *

"""
Endpoints are kept as tuples so they can be passed straight
to sendto() and compared against the address tuples asyncio
hands to protocol callbacks. The IP is normalized on creation
so two spellings of the same IPv6 address compare equal.
"""
class Endpoint(collections.namedtuple("Endpoint", ["ip", "port"])):
    __slots__ = ()

    def __new__(cls, ip, port):
        ip = str(ipaddress.ip_address(to_s(ip)))
        return super().__new__(cls, ip, int(port))

    @property
    def af(self):
        if ipaddress.ip_address(self.ip).version == 4:
            return IP4
        else:
            return IP6

    # Canonical form used as the registry key.
    def __str__(self):
        if self.af == IP6:
            return "[{}]:{}".format(self.ip, self.port)
        else:
            return "{}:{}".format(self.ip, self.port)

    @staticmethod
    def from_tup(tup):
        # Drop flowinfo and scope ID from IPv6 tuples.
        return Endpoint(tup[0], tup[1])

def parse_endpoint(text):
    # Already parsed.
    if isinstance(text, Endpoint):
        return text

    # Address tuple from a socket call.
    if isinstance(text, tuple):
        try:
            return Endpoint.from_tup(text)
        except (ValueError, IndexError, TypeError):
            raise InvalidEndpointFormat("bad address tuple {!r}".format(text))

    if not isinstance(text, (str, bytes)):
        raise InvalidEndpointFormat("bad endpoint {!r}".format(text))

    try:
        text = to_s(text).strip()
    except UnicodeDecodeError:
        raise InvalidEndpointFormat("endpoint isn't text {!r}".format(text))

    if ":" not in text:
        raise InvalidEndpointFormat("missing port in {!r}".format(text))

    # [ipv6]:port or ip4:port.
    if text.startswith("["):
        host, sep, port = text[1:].partition("]:")
        if not sep:
            raise InvalidEndpointFormat("bad IPv6 endpoint {!r}".format(text))
    else:
        host, _, port = text.rpartition(":")
        if ":" in host:
            raise InvalidEndpointFormat("IPv6 needs brackets {!r}".format(text))

    # Port must be a number in range.
    if not port.isdigit() or not valid_port(int(port)):
        raise InvalidEndpointFormat("bad port in {!r}".format(text))

    try:
        return Endpoint(host, int(port))
    except ValueError:
        raise InvalidEndpointFormat("bad IP in {!r}".format(text))
