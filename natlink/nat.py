"""
A rough NAT behaviour check. The same pipe asks two different STUN
servers for its mapping. If both see the same endpoint the NAT maps
independently of the destination and punching should work. If the
port (or IP) changes per destination the peer will be sent to a
mapping that was never opened for it and punching will likely fail.

Filtering behaviour (full cone vs restricted) needs servers that
support CHANGE-REQUEST so it isn't tested here.
"""

from .errors import *
from .utils import *
from .net import *
from .settings import *
from .stun_client import *

# NAT TYPES ---------------------------------------------

# Mapped endpoint is the local endpoint.
OPEN_INTERNET = 1

# Same mapping for every destination.
# Endpoint-independent mapping.
CONE_NAT = 2

# Different mapping per destination.
# Even if the same source IP and port is reused.
SYMMETRIC_NAT = 3

# No STUN server answered.
BLOCKED_NAT = 4

# Only one server answered so there's nothing to compare.
UNKNOWN_NAT = 5
# ---------------------------------------------------------

NAT_TYPE_NAMES = {
    OPEN_INTERNET: "open internet",
    CONE_NAT: "cone",
    SYMMETRIC_NAT: "symmetric",
    BLOCKED_NAT: "blocked",
    UNKNOWN_NAT: "unknown",
}

# Hole punching will probably fail behind these.
HARD_NATS = [SYMMETRIC_NAT]

def nat_type_from_mappings(local, mappings):
    if not len(mappings):
        return BLOCKED_NAT

    if mappings[0] == local:
        return OPEN_INTERNET

    if len(mappings) < 2:
        return UNKNOWN_NAT

    # Port or IP changed with the destination.
    if len(set(mappings)) > 1:
        return SYMMETRIC_NAT

    return CONE_NAT

async def get_nat_type(pipe, servers=STUN_SERVERS, timeout=3, conf=NET_CONF):
    """
    Returns (nat_type, mappings). Servers are tried in order until
    two distinct server addresses have answered. Every request goes
    out on 'pipe' so the result describes that socket's mapping.
    """
    seen = set()
    mappings = []
    for host, port in servers:
        if len(mappings) == 2:
            break

        client = STUNClient(host, port, conf=conf)
        try:
            client.dest = await resolv_dest(host, port)
            if client.dest in seen:
                continue

            seen.add(client.dest)
            endpoint, _ = await client.get_mapping(pipe, timeout)
        except (StunError, OSError) as e:
            log("> nat check: {}:{} failed {}".format(host, port, e))
            continue

        mappings.append(endpoint)

    nat_type = nat_type_from_mappings(pipe.getsockname(), mappings)
    log("> nat check: {} {}".format(
        NAT_TYPE_NAMES[nat_type],
        [str(m) for m in mappings]
    ))

    return nat_type, mappings
