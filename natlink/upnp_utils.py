import urllib.parse
import xmltodict
from .utils import *
from .net import *

UPNP_PORT = 1900
UPNP_IP = "239.255.255.250"

# Services that can do IPv4 port forwarding.
UPNP_FORWARD_TYPES = ["WANIPConnection", "WANPPPConnection"]

"""
If you call mapping multiple times with the same details
you can get a conflict error even though the mapping succeeded.
So this is considered a 'success'
"""
UPNP_MAP_SUCCESS = [
    b"ConflictInMappingEntry",
    b"AddPortMappingResponse",
]

"""
Creates a packet to send to the multicast address
for discovering UPNP devices.
"""
def build_upnp_discover_buf():
    buf = \
    'M-SEARCH * HTTP/1.1\r\n' + \
    'HOST: {}:{}\r\n'.format(UPNP_IP, UPNP_PORT) + \
    'ST: upnp:rootdevice\r\n' + \
    'MX: 2\r\n' + \
    'MAN: "ssdp:discover"\r\n' + \
    '\r\n'

    return to_b(buf)

"""
Given a dictionary from xmltodict find a specific type
of service URL for a UPNP device.
"""
def find_upnp_service_by_type(d, service_type):
    results = []
    for k, v in d.items():
        if isinstance(v, list):
            for e in v:
                if isinstance(e, dict):
                    results += find_upnp_service_by_type(e, service_type)
        elif isinstance(v, dict):
            results += find_upnp_service_by_type(v, service_type)
        else:
            if k == "serviceType" and v is not None:
                if service_type in v:
                    results.append(d)
                    break

    return results

def find_upnp_forwarding_services(xml):
    d = xmltodict.parse(xml)
    services = []
    for service_type in UPNP_FORWARD_TYPES:
        services += find_upnp_service_by_type(d, service_type)

    return services

# Location header -> (host, port, path).
def upnp_location_to_dest(location):
    url = urllib.parse.urlparse(location)
    return (url.hostname, url.port or 80), url.path or "/"

def build_add_port_mapping(service_type, ext_port, proto, lan_port, lan_ip, desc, lease):
    soap_action = "AddPortMapping"
    if not isinstance(proto, str):
        proto = {v: k for k, v in PROTO_LOOKUP.items()}[proto]

    body = """
<u:{0} xmlns:u="{1}">
    <NewRemoteHost></NewRemoteHost>
    <NewExternalPort>{2}</NewExternalPort>
    <NewProtocol>{3}</NewProtocol>
    <NewInternalPort>{4}</NewInternalPort>
    <NewInternalClient>{5}</NewInternalClient>
    <NewEnabled>1</NewEnabled>
    <NewPortMappingDescription>{6}</NewPortMappingDescription>
    <NewLeaseDuration>{7}</NewLeaseDuration>
</u:{0}>
    """.format(
        soap_action,
        service_type,
        ext_port,
        proto.upper(),
        lan_port,
        lan_ip,
        xml_escape(desc),
        lease
    )

    # Build the XML payload to send.
    payload = """<?xml version="1.0"?>
<s:Envelope xmlns:s="http://schemas.xmlsoap.org/soap/envelope/" s:encodingStyle="http://schemas.xmlsoap.org/soap/encoding/">
<s:Body>
{0}
</s:Body>
</s:Envelope>
""".format(body)

    # Custom headers for soap.
    headers = [
        [
            b"SOAPAction",
            to_b('"{}#{}"'.format(service_type, soap_action))
        ],
        [b"Connection", b"Close"],
        [b"Content-Type", b'text/xml; charset="utf-8"'],
    ]

    return headers, payload

def xml_escape(s):
    s = to_s(s)
    for old, new in [["&", "&amp;"], ["<", "&lt;"], [">", "&gt;"]]:
        s = s.replace(old, new)

    return s

def sort_upnp_replies_by_unique_location(replies):
    # Filter duplicate replies.
    unique = {}
    for reply in replies:
        if "location" not in reply.hdrs:
            continue

        location = reply.hdrs["location"]
        if location in unique:
            continue

        unique[location] = reply

    return list(unique.values())

def is_upnp_map_success(out):
    for map_success in UPNP_MAP_SUCCESS:
        if map_success in out:
            return True

    return False
