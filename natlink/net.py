import socket

# Avoid annoying socket... to access vars.
IP4 = socket.AF_INET
IP6 = socket.AF_INET6
TCP = socket.SOCK_STREAM
UDP = socket.SOCK_DGRAM

# Convert string proto values to enums.
PROTO_LOOKUP = {
    "TCP": TCP,
    "UDP": UDP,
}

ANY_ADDR_LOOKUP = {
    IP4: "0.0.0.0",
    IP6: "::"
}

# A value meaning 'listen to' or 'subscribe to' all messages.
SUB_ALL = [None, None]

# Transport types a peer connection can be bound to.
TYPE_UDP_CON = 1
TYPE_STREAM_CON = 2

# Fine tune various network settings.
NET_CONF = {
    # Seconds to wait for a STUN reply before giving up.
    "stun_timeout": 3,

    # Only applies to TCP / TLS.
    "con_timeout": 4,

    # Seconds discovery waits for each SSDP reply.
    "recv_timeout": 2,

    # No of messages to queue per subscription. 0 = no limit.
    "max_qsize": 0,

    # Bytes per stream read. Each read is delivered as one message.
    "buf_size": 4096,

    # Seconds between stream keep-alives.
    "heartbeat_interval": 30,

    # Reuse address tuple for bind() socket call.
    "reuse_addr": False,
}
