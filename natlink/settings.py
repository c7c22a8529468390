from .net import *
from .utils import *

# Public servers that answer RFC 5389 binding requests over UDP.
STUN_SERVERS = [
    ("stun.miwifi.com", 3478),
    ("stun.l.google.com", 19302),
    ("stun1.l.google.com", 19302),
    ("stun.cloudflare.com", 3478),
]

# Settings for the session controller.
SESSION_CONF = {
    # Local address the shared UDP socket binds to.
    "bind_ip": ANY_ADDR_LOOKUP[IP4],
    "bind_port": 0,

    # STUN server used to discover the public endpoint.
    "stun_host": STUN_SERVERS[0][0],
    "stun_port": STUN_SERVERS[0][1],

    # Compare mappings from two servers to spot symmetric NATs.
    "nat_check": True,
    "nat_servers": STUN_SERVERS,

    # Opportunistic UPnP port mapping after STUN.
    "enable_upnp": True,
    "upnp_timeout": 4,
    "upnp_lease": 3600,
    "upnp_desc": "P2P Hole Punching",

    # Transport settings passed down to pipes and connections.
    "net_conf": NET_CONF,
}
