from dataclasses import dataclass
from typing import Optional

LOCALHOST = "127.0.0.1"


@dataclass(frozen=True)
class ProxyConfig:
    listen_port: int
    target_port: int
    latency: int = 75
    jitter: int = 25
    quiet: bool = False
    read_chunk: int = 1024
    seed: Optional[int] = None
    listen_host: str = LOCALHOST
    target_host: str = LOCALHOST

    def __post_init__(self):
        # Port 0 lets the OS pick a listening port.
        if not (0 <= self.listen_port < 65536):
            raise ValueError(f"listen port out of range: {self.listen_port}")
        if not (0 < self.target_port < 65536):
            raise ValueError(f"target port out of range: {self.target_port}")
        if self.latency < 0 or self.jitter < 0:
            raise ValueError("latency and jitter must be >= 0")
        if self.read_chunk < 1:
            raise ValueError("read chunk must be >= 1")
