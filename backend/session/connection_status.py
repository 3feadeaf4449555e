"""
Connection status tracking.

Used on both sides:
- Relay: status of one accepted WebSocket (PeerSession)
- Peer: status of the link to the relay, surfaced to the user

connection_status: DOWN | CONNECTING | UP
"""
from enum import Enum

class ConnectionStatus(Enum):
    """
    Connection lifecycle status.

    Independent of playback state: events may still be scheduled locally
    while the relay link is DOWN, but nothing is sent or received.
    """
    DOWN = "DOWN"           # Not connected
    CONNECTING = "CONNECTING"  # Attempting connection (with retry backoff)
    UP = "UP"              # Active WebSocket connection
