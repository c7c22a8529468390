"""
Only the parts of STUN needed to learn a mapped address are here:
binding requests, binding success responses, and the two address
attributes. Attributes are walked back-to-back with no 4-byte
padding. Every attribute this code reads or writes is 8 bytes so
that never matters in practice.
"""

from struct import pack
from .errors import *
from .utils import *

STUN_MAGIC_COOKIE = b"\x21\x12\xA4\x42"
STUN_HDR_LEN = 20
STUN_TXID_LEN = 12
STUN_FAMILY_IP4 = 0x01

class STUNMsgTypes:
    BindingRequest      = b"\x00\x01"
    BindingResponse     = b"\x01\x01"
    BindingError        = b"\x01\x11"

class STUNAttrs:
    MappedAddress       = b"\x00\x01" # RFC5389
    XorMappedAddress    = b"\x00\x20" # RFC5389

ADDR_ATTRS = [STUNAttrs.MappedAddress, STUNAttrs.XorMappedAddress]

class STUNMsg:
    def __init__(self, msg_type=STUNMsgTypes.BindingRequest, txn_id=None, magic_cookie=STUN_MAGIC_COOKIE):
        self.msg_type = msg_type
        self.magic_cookie = magic_cookie
        self.txn_id = txn_id or rand_b(STUN_TXID_LEN)
        self.msg = bytearray()
        if len(self.txn_id) != STUN_TXID_LEN:
            raise MalformedMessage("STUN txid must be 12 bytes.")

    def write_attr(self, attr, data):
        self.msg += bytearray().join([
            memoryview(attr),
            memoryview(pack("!H", len(data))),
            memoryview(data),
        ])

        return self

    def read_attrs(self):
        # Yields (code, data) until the end of the buffer.
        msg = memoryview(self.msg)
        cursor = 0
        while cursor + 4 <= len(msg):
            m_attr = bytes(msg[cursor:cursor + 2])
            m_len = b_to_i(msg[cursor + 2:cursor + 4])
            cursor += 4

            # Avoid overflows for attribute data.
            if cursor + m_len > len(msg):
                raise MalformedMessage("STUN attribute len invalid.")

            yield m_attr, bytes(msg[cursor:cursor + m_len])
            cursor += m_len

    def pack(self):
        return bytes().join([
            self.msg_type,
            pack("!H", len(self.msg)),
            self.magic_cookie,
            self.txn_id,
            bytes(self.msg),
        ])

    def __bytes__(self):
        return self.pack()

    @staticmethod
    def unpack(buf):
        buf = bytes(buf)
        if len(buf) < STUN_HDR_LEN:
            raise MalformedMessage("STUN msg shorter than header.")

        if buf[4:8] != STUN_MAGIC_COOKIE:
            raise MalformedMessage("STUN magic cookie mismatch.")

        # The length field is not trusted. Attributes run to the
        # end of the datagram.
        inst = STUNMsg(
            msg_type=buf[0:2],
            txn_id=buf[8:20],
            magic_cookie=buf[4:8]
        )
        inst.msg = bytearray(buf[STUN_HDR_LEN:])
        return inst
