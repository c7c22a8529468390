# Defines all custom exceptions.

# Base for everything the STUN codec and client raise.
class StunError(Exception):
    pass

# Short header or wrong magic cookie.
class MalformedMessage(StunError):
    pass

# Address attribute isn't IPv4.
class UnsupportedFamily(StunError):
    pass

# Well-formed reply with no (XOR-)MAPPED-ADDRESS.
class NoAddressFound(StunError):
    pass

class StunTimeout(StunError):
    pass

class InvalidEndpointFormat(Exception):
    pass

class ConnectFailed(Exception):
    pass

class NotConnected(Exception):
    pass

# Read / write failure on an established connection.
class PeerIOError(Exception):
    pass

class MappingFailed(Exception):
    pass
