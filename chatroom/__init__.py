"""chatroom – a minimal multi-user chat over TCP *and* UDP.

Importing this package exposes both servers, both clients and the shared
session core (registry + broadcast engine), so the whole stack can be
embedded in another application or launched via the console scripts.
"""

# ------------------------ re-exports ------------------------
from .broadcast import BroadcastEngine          # noqa: F401
from .registry import NameTaken, SessionRegistry  # noqa: F401
from .tcp_client import TCPChatClient           # noqa: F401
from .tcp_server import TCPChatServer           # noqa: F401
from .udp_client import UDPChatClient           # noqa: F401
from .udp_server import UDPChatServer           # noqa: F401

# ------------------------ public API ------------------------
__all__: list[str] = [
    "BroadcastEngine",   # Timestamped fan-out shared by both transports
    "NameTaken",         # Raised on duplicate registration
    "SessionRegistry",   # name ⇄ delivery handle table
    "TCPChatClient",     # Stream client
    "TCPChatServer",     # Stream server (thread per connection)
    "UDPChatClient",     # Datagram client
    "UDPChatServer",     # Datagram server (single sequential router)
]
