import asyncio
import os
import sys
import time
import random
import inspect
import logging
import traceback
import copy

if "NATLINK_DEBUG" in os.environ:
    logging.basicConfig(
        filename='natlink.log',
        level=logging.DEBUG,
        format='[%(asctime)s.%(msecs)03d] @ [%(filename)s:%(lineno)d] %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )

    def log(m):
        if "NATLINK_DEBUG" not in os.environ:
            return

        logging.info(m)
else:
    log = lambda m: 1

MAX_PORT = 65535
to_b = lambda x: x if type(x) == bytes else x.encode("utf-8")
to_s = lambda x: x if type(x) == str else bytes(x).decode("utf-8")
b_to_i = lambda x, o='big': int.from_bytes(x, o)
valid_port = lambda p: p >= 1 and p <= MAX_PORT
timestamp = lambda p=0: time.time() if p else int(time.time())
xor_bufs = lambda a, b: bytes(map(lambda x, y: x ^ y, a, b))

# Take a dict template called Y and a child dict called X.
# Yield a new dict with Y's vals overwritten by X's.
def dict_child(x, y):
    out = copy.deepcopy(y)
    for key in x:
        out[key] = x[key]

    return out

def rand_b(n):
    return bytes([random.randrange(256) for _ in range(0, n)])

def log_exception():
    exc_type, exc_obj, exc_tb = sys.exc_info()
    if exc_tb is None:
        return

    fname = os.path.split(exc_tb.tb_frame.f_code.co_filename)[1]
    exc_out = traceback.format_exc()
    log("> {}, line {} = {}".format(
        fname,
        exc_tb.tb_lineno,
        exc_out
    ))

async def async_wrap_errors(coro, timeout=None):
    try:
        # Don't bound wait time.
        if timeout is None:
            return (await coro)

        # Bound wait time.
        return (await asyncio.wait_for(coro, timeout))
    except asyncio.CancelledError:
        raise
    except Exception:
        # Log all errors.
        log_exception()

def rm_done_tasks(tasks):
    return [task for task in tasks if not task.done()]

# Run a callback or coroutine function without letting
# its errors escape into the protocol code.
def run_handler(handler, args, tasks):
    if inspect.iscoroutinefunction(handler):
        task = asyncio.ensure_future(
            async_wrap_errors(
                handler(*args)
            )
        )

        # Needed or they might be garbage collected.
        tasks.append(task)
        return task

    try:
        return handler(*args)
    except Exception:
        log_exception()

# Cancel tasks and wait for them to unwind.
async def cancel_tasks(tasks):
    cur = asyncio.current_task()
    pending = []
    for task in tasks:
        if task is cur or task.done():
            continue

        task.cancel()
        pending.append(task)

    if len(pending):
        await asyncio.gather(*pending, return_exceptions=True)

# Will be used in sample code to avoid boilerplate.
def async_test(f, args=[]):
    loop = asyncio.new_event_loop()
    try:
        loop.run_until_complete(f(*args))
    finally:
        loop.close()
