"""
Optional IPv4 port forwarding through a UPnP IGD. This is a side
channel: if the router has UPnP the mapping makes punching moot,
and if it doesn't nothing is lost. request_mapping() is bounded by a
timeout and reports True / False. It never raises.

Steps: SSDP M-SEARCH to the multicast group, fetch each unique
device description, look for a WANIPConnection / WANPPPConnection
service, then POST AddPortMapping to its control URL. The internal
client address is the local address of the HTTP connection to the
router so the right interface is used on multi-homed hosts.
"""

import asyncio
import urllib.parse
from .errors import *
from .utils import *
from .net import *
from .pipe_events import *
from .http_client_lib import *
from .upnp_utils import *

async def discover_upnp_devices(conf=NET_CONF, dest=(UPNP_IP, UPNP_PORT)):
    pipe = await pipe_open_udp(conf=conf)
    pipe.subscribe(SUB_ALL)
    buf = build_upnp_discover_buf()
    try:
        # Multiple sends spaced apart because UDP is garbage.
        for _ in range(0, 3):
            await pipe.send(buf, dest)
            await asyncio.sleep(0.1)

        # Get list of HTTP replies from M-Search message.
        replies = []
        for _ in range(0, 5):
            out = await pipe.recv(SUB_ALL, timeout=conf["recv_timeout"])
            if out is None:
                break

            try:
                replies.append(ParseHTTPResponse(out))
            except Exception:
                log("> upnp: bad ssdp reply")
                continue
    finally:
        await pipe.close()

    return sort_upnp_replies_by_unique_location(replies)

# Returns (lan_ip, services). lan_ip is our address as seen by the router.
async def get_upnp_forwarding_services(location, timeout=4):
    dest, path = upnp_location_to_dest(location)
    curl = await WebCurl(dest, timeout=timeout).get(path)
    return curl.lan_tup[0], find_upnp_forwarding_services(curl.out)

async def add_upnp_forwarding_rule(location, service, lan_ip, proto, internal_port, external_port, lease, desc, timeout=4):
    control_url = urllib.parse.urljoin(location, service["controlURL"])
    dest, path = upnp_location_to_dest(control_url)
    headers, payload = build_add_port_mapping(
        service["serviceType"],
        external_port,
        proto,
        internal_port,
        lan_ip,
        desc,
        lease
    )

    curl = await WebCurl(dest, hdrs=headers, timeout=timeout).post(path, payload)
    return is_upnp_map_success(curl.out)

async def port_forward_location(location, proto, internal_port, external_port, lease, desc, timeout=4):
    lan_ip, services = await get_upnp_forwarding_services(location, timeout)
    if not len(services):
        raise MappingFailed("no forwarding service at {}".format(location))

    for service in services:
        try:
            if await add_upnp_forwarding_rule(location, service, lan_ip, proto, internal_port, external_port, lease, desc, timeout):
                return True
        except (OSError, asyncio.TimeoutError):
            log_exception()

    return False

async def request_mapping(proto, internal_port, external_port, lease=3600, desc="natlink", timeout=4, conf=NET_CONF):
    async def worker():
        replies = await discover_upnp_devices(conf)
        for reply in replies:
            location = reply.hdrs["location"]
            try:
                if await port_forward_location(location, proto, internal_port, external_port, lease, desc, timeout):
                    return True
            except Exception:
                log("> upnp: {} failed".format(location))
                log_exception()

        return False

    try:
        success = await asyncio.wait_for(worker(), timeout)
    except Exception:
        log_exception()
        success = False

    if success:
        log("> upnp mapped {} {} -> {}".format(proto, internal_port, external_port))
    else:
        log("> upnp mapping failed for {} {}".format(proto, internal_port))

    return success
