__version__ = '1.0.0'

from .errors import *
from .utils import log, log_exception, async_test, dict_child
from .net import *
from .settings import *
from .address import Endpoint, parse_endpoint
from .stun_defs import *
from .stun_utils import *
from .stun_client import *
from .stun_server import STUNServer, start_stun_server
from .nat import *
from .pipe_events import UDPPipe, pipe_open_udp
from .nat_punch import *
from .peer_con import *
from .con_registry import ConRegistry
from .upnp import request_mapping
from .session import SessionController, render_event
