"""
Small console front end for SessionController.

    python3 nat_link.py [stream_port]

Commands:
    connect ip:port [tcp]
    list
    send text
    sendto ip:port text
    disconnect ip:port
    quit
"""

import sys
import asyncio
from natlink import *

async def console(stream_port=None):
    loop = asyncio.get_running_loop()
    session = SessionController(
        msg_cb=lambda text, endpoint, con: print("{}> {}".format(endpoint, text)),
        event_cb=lambda endpoint, text: print(render_event(endpoint, text))
    )

    public = await session.start_as_responder(stream_port=stream_port)
    print("Give this to your peer: {}".format(public))
    if stream_port is not None:
        print("Stream listener: {}".format(session.stream_listen_tup()))

    try:
        while 1:
            # input() blocks so keep it off the event loop.
            line = await loop.run_in_executor(None, input, "> ")
            parts = line.strip().split(" ", 1)
            cmd = parts[0].lower()
            arg = parts[1] if len(parts) > 1 else ""

            if cmd == "connect":
                args = arg.split()
                proto = PROTO_LOOKUP.get(args[1].upper(), UDP) if len(args) > 1 else UDP
                await session.connect(args[0] if args else "", proto=proto)
            elif cmd == "list":
                for endpoint in session.list_peers():
                    print(endpoint)
            elif cmd == "send":
                await session.send(arg)
            elif cmd == "sendto":
                target, _, text = arg.partition(" ")
                await session.send(text, target)
            elif cmd == "disconnect":
                await session.disconnect(arg)
            elif cmd in ["quit", "exit"]:
                break
            elif cmd:
                print("Unknown command {}".format(cmd))
    except EOFError:
        pass
    finally:
        await session.close()

if __name__ == "__main__":
    port = int(sys.argv[1]) if len(sys.argv) > 1 else None
    async_test(console, args=[port])
