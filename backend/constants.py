"""
BEHAVIOR-AS-CONSTANTS
---------------------
Single source of truth for all behavioral invariants in the system.

Rules:
- If changing a value changes runtime behavior, it belongs here.
- No magic numbers elsewhere in the codebase.
- Deployment settings (ports, hosts, file paths) live in config.py instead.
"""

from __future__ import annotations

from typing import Final, Tuple

# =============================================================================
# Peer identity  [relay]
# =============================================================================

# Counter digits, most significant first. 0 -> "A", 63 -> "/", 64 -> "BA".
SHORT_ID_ALPHABET: Final[str] = (
    "ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789+/"
)

# Stripped from IPv4-mapped IPv6 remote addresses
IPV4_MAPPED_PREFIX: Final[str] = "::ffff:"
UNKNOWN_ORIGIN_LABEL: Final[str] = "unknown"

# =============================================================================
# Display colors (HSV)  [relay]
# =============================================================================
# Vivid and legible on a dark background. Lower bound inclusive, upper exclusive.

COLOR_HUE_RANGE: Final[Tuple[float, float]] = (0.0, 360.0)
COLOR_SATURATION_RANGE: Final[Tuple[float, float]] = (0.8, 1.0)
COLOR_VALUE_RANGE: Final[Tuple[float, float]] = (0.8, 1.0)

# =============================================================================
# Note event payload  [wire]
# =============================================================================
# command (u8) + note (u8) + velocity (u8) + sender_event_time (f32, LE)

NOTE_EVENT_STRUCT: Final[str] = "<BBBf"
NOTE_EVENT_BYTES_TOTAL: Final[int] = 7

MIDI_COMMAND_MAX: Final[int] = 0xFF
MIDI_DATA_MAX: Final[int] = 0x7F

MIDI_STATUS_MASK: Final[int] = 0xF0
MIDI_NOTE_ON: Final[int] = 0x90
MIDI_NOTE_OFF: Final[int] = 0x80

# =============================================================================
# Scheduling  [peer]
# =============================================================================

# Events landing further than this past "now" are treated as clock anomalies
SCHEDULE_MAX_AHEAD_S: Final[float] = 10.0

# =============================================================================
# Jitter buffer  [peer]
# =============================================================================

JITTER_BUFFER_INITIAL_S: Final[float] = 0.1
JITTER_BUFFER_MAX_S: Final[float] = 1.0
JITTER_BUFFER_EMA_WEIGHT: Final[float] = 0.5

# One-way latency is approximated as half the round trip
ONE_WAY_FRACTION_OF_RTT: Final[float] = 0.5

# =============================================================================
# Latency probing  [peer]
# =============================================================================

LATENCY_PROBE_INITIAL_DELAY_S: Final[float] = 1.0
LATENCY_PROBE_INTERVAL_S: Final[float] = 5.0
LATENCY_PROBE_TIMEOUT_S: Final[float] = 5.0

# =============================================================================
# Connection backoff  [peer]
# =============================================================================

CLIENT_WS_RETRY_BACKOFF_MS: Final[Tuple[int, ...]] = (200, 400, 800, 1600, 3200)

# =============================================================================
# Local playback  [peer]
# =============================================================================

# Used for our own notes until the relay has told us our color
LOCAL_FALLBACK_COLOR_CSS: Final[str] = "hsl(0, 0%, 100%)"
LOCAL_SENDER_LABEL: Final[str] = "local"

# =============================================================================
# Helper Functions
# =============================================================================

def backoff_delay_s(attempt: int) -> float:
    """
    Reconnect delay for a 0-based attempt number.

    Attempts past the end of the table reuse the last entry.
    """
    if attempt < 0:
        attempt = 0
    index = min(attempt, len(CLIENT_WS_RETRY_BACKOFF_MS) - 1)
    return CLIENT_WS_RETRY_BACKOFF_MS[index] / 1000.0

