"""TCP relay that delays every forwarded segment by a random one-way latency."""

from .acceptor import Acceptor
from .clock import DirectionClock
from .config import ProxyConfig
from .delay import random_delay
from .relay import ConnectionRelay, RelayState
from .scheduler import PLACEHOLDER, DelayScheduler, Direction, Segment

__version__ = "0.1.0"
