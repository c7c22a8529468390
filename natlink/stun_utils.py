import socket
from struct import pack
from .errors import *
from .utils import *
from .address import *
from .stun_defs import *

def encode_binding_request(txn_id=None):
    return STUNMsg(txn_id=txn_id).pack()

def xor_addr_fields(port_buf, ip_buf, magic_cookie=STUN_MAGIC_COOKIE):
    # Port uses the top 16 bits of the cookie.
    # IPv4 address uses the whole cookie.
    return (
        xor_bufs(port_buf, magic_cookie[0:2]),
        xor_bufs(ip_buf, magic_cookie)
    )

def addr_attr_to_endpoint(code, data, magic_cookie=STUN_MAGIC_COOKIE):
    if len(data) < 8:
        raise MalformedMessage("STUN address attribute too short.")

    if data[1] != STUN_FAMILY_IP4:
        raise UnsupportedFamily("STUN family {} not IPv4.".format(data[1]))

    port_buf = data[2:4]
    ip_buf = data[4:8]
    if code == STUNAttrs.XorMappedAddress:
        port_buf, ip_buf = xor_addr_fields(port_buf, ip_buf, magic_cookie)

    return Endpoint(socket.inet_ntoa(ip_buf), b_to_i(port_buf))

def endpoint_to_addr_attr(code, endpoint, magic_cookie=STUN_MAGIC_COOKIE):
    port_buf = pack("!H", endpoint.port)
    ip_buf = socket.inet_aton(endpoint.ip)
    if code == STUNAttrs.XorMappedAddress:
        port_buf, ip_buf = xor_addr_fields(port_buf, ip_buf, magic_cookie)

    return b"\0" + bytes([STUN_FAMILY_IP4]) + port_buf + ip_buf

def decode_binding_response(buf):
    msg = STUNMsg.unpack(buf)

    # First address attribute wins.
    for code, data in msg.read_attrs():
        if code in ADDR_ATTRS:
            return addr_attr_to_endpoint(code, data, msg.magic_cookie)

    raise NoAddressFound("STUN reply has no mapped address.")

def build_binding_response(txn_id, endpoint, xor=True):
    code = STUNAttrs.XorMappedAddress if xor else STUNAttrs.MappedAddress
    msg = STUNMsg(msg_type=STUNMsgTypes.BindingResponse, txn_id=txn_id)
    msg.write_attr(code, endpoint_to_addr_attr(code, endpoint))
    return msg.pack()
