import argparse
import asyncio
import logging
import sys
from typing import List, Optional

from .acceptor import Acceptor
from .config import ProxyConfig

log = logging.getLogger("latency_proxy")

# ------------------------------- CLI ---------------------------------

def _port(s: str) -> int:
    try:
        port = int(s)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid port '{s}'")
    if not (0 < port < 65536):
        raise argparse.ArgumentTypeError(f"port out of range: {port}")
    return port

def _millis(s: str) -> int:
    try:
        ms = int(s)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid milliseconds '{s}'")
    if ms < 0:
        raise argparse.ArgumentTypeError("must be ≥ 0")
    return ms

def _positive(s: str) -> int:
    try:
        n = int(s)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid size '{s}'")
    if n < 1:
        raise argparse.ArgumentTypeError("must be ≥ 1")
    return n

def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    epilog = (
        "Example:\n"
        "  Forward :8081 to :8080 with 75-100 ms one-way latency:\n"
        "    latency-proxy --upstream 8081 --downstream 8080 --latency 75 --jitter 25\n"
    )
    parser = argparse.ArgumentParser(
        prog="latency-proxy",
        description="Simulates latency on proxied TCP connections.",
        epilog=epilog,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("-u", "--upstream", type=_port, default=8081,
                        help="Upstream TCP port on localhost to accept connections on (default: 8081).")
    parser.add_argument("-d", "--downstream", type=_port, default=8080,
                        help="Downstream TCP port on localhost to forward connections to (default: 8080).")
    parser.add_argument("-l", "--latency", type=_millis, default=75,
                        help="Base one-way latency in ms (default: 75).")
    parser.add_argument("-j", "--jitter", type=_millis, default=25,
                        help="Max additional one-way latency in ms (default: 25).")
    parser.add_argument("-q", "--quiet", action="store_true",
                        help="Don't log connection events.")
    parser.add_argument("-v", "--verbose", action="store_true",
                        help="Log a traffic summary when each connection closes.")
    parser.add_argument("--read-chunk", type=_positive, default=1024,
                        help="Socket read chunk size in bytes (default: 1024).")
    parser.add_argument("--seed", type=int, default=None,
                        help="Seed for reproducible delays.")
    return parser.parse_args(argv)

def config_from_args(args: argparse.Namespace) -> ProxyConfig:
    return ProxyConfig(
        listen_port=args.upstream,
        target_port=args.downstream,
        latency=args.latency,
        jitter=args.jitter,
        quiet=args.quiet,
        read_chunk=args.read_chunk,
        seed=args.seed,
    )

def setup_logging(verbose: bool = False):
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter("[%(asctime)s] %(message)s", datefmt="%H:%M:%S"))
    root = logging.getLogger("latency_proxy")
    root.handlers[:] = [handler]
    root.setLevel(logging.INFO)
    root.propagate = False
    connections = logging.getLogger("latency_proxy.connections")
    if verbose:
        connections.setLevel(logging.DEBUG)
    else:
        connections.setLevel(logging.INFO)

# ------------------------------ Process -------------------------------

async def main_async(config: ProxyConfig):
    acceptor = Acceptor(config)
    await acceptor.start()
    await acceptor.serve_forever()

def main(argv: Optional[List[str]] = None):
    args = parse_args(argv)
    setup_logging(verbose=args.verbose)
    config = config_from_args(args)
    try:
        asyncio.run(main_async(config))
    except KeyboardInterrupt:
        pass
    except OSError as e:
        log.critical("cannot listen on %s:%d: %s", config.listen_host, config.listen_port, e)
        sys.exit(1)
