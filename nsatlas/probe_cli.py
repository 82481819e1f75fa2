"""Command-line tool that probes game servers."""

from __future__ import annotations

import argparse
import ipaddress
import re
import sys
from concurrent.futures import ThreadPoolExecutor, as_completed

from .a2s import ProbeError, format_addr_port, probe

_UNITS = {
    "ns": 1e-9,
    "us": 1e-6,
    "µs": 1e-6,
    "μs": 1e-6,
    "ms": 1e-3,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}
_DURATION_PART = re.compile(r"(\d+\.?\d*|\.\d+)(ns|us|µs|μs|ms|s|m|h)")

_FLAG_USAGES = (
    "  -c, --connections int     Number of concurrent connections (default 1)\n"
    "  -h, --help                Show this help text\n"
    "  -s, --silent              Don't show the result\n"
    "  -t, --timeout duration    Amount of time to wait for a response (default 3s)\n"
)


def _parse_duration(text):
    """Parse a duration such as ``3s``, ``250ms`` or ``1m30s`` into seconds."""
    original = text
    sign = 1.0
    if text[:1] in "+-" and text:
        sign = -1.0 if text[0] == "-" else 1.0
        text = text[1:]
    if text == "0":
        return 0.0
    if not text:
        raise argparse.ArgumentTypeError(f"invalid duration {original!r}")
    total = 0.0
    pos = 0
    while pos < len(text):
        match = _DURATION_PART.match(text, pos)
        if match is None:
            raise argparse.ArgumentTypeError(f"invalid duration {original!r}")
        total += float(match.group(1)) * _UNITS[match.group(2)]
        pos = match.end()
    return sign * total


def _parse_addr_port(text):
    host, sep, port = text.rpartition(":")
    if not sep:
        raise ValueError(f"{text!r}: not an ip:port")
    if host.startswith("["):
        if not host.endswith("]"):
            raise ValueError(f"{text!r}: missing ]")
        ip = ipaddress.ip_address(host[1:-1])
        if ip.version != 6:
            raise ValueError(f"{text!r}: unexpected [] around IPv4 address")
    else:
        ip = ipaddress.ip_address(host)
        if ip.version == 6:
            raise ValueError(f"{text!r}: IPv6 address must be in []")
    if not port.isascii() or not port.isdigit() or int(port) > 65535:
        raise ValueError(f"{text!r}: invalid port {port!r}")
    return ip, int(port)


def parse_addr_ports(args):
    """Parse ``ip:port`` strings into ``(ip, port)`` pairs, raising ValueError."""
    return [_parse_addr_port(arg) for arg in args]


def _build_parser(prog):
    parser = argparse.ArgumentParser(prog=prog, add_help=False)
    parser.add_argument("-t", "--timeout", type=_parse_duration, default=3.0)
    parser.add_argument("-c", "--connections", type=int, default=1)
    parser.add_argument("-s", "--silent", action="store_true")
    parser.add_argument("-h", "--help", action="store_true")
    parser.add_argument("addrs", nargs="*")
    return parser


def main(argv=None):
    """Probe each server given on the command line; return the exit status."""
    prog = "r2-a2s-probe"
    if argv is None:
        argv = sys.argv[1:]
    opts = _build_parser(prog).parse_args(argv)

    if not opts.addrs or opts.help:
        sys.stdout.write(f"usage: {prog} [options] ip:port...\n\noptions:\n{_FLAG_USAGES}")
        return 2 if opts.help else 0

    if opts.connections < 1:
        sys.stderr.write("fatal: --connections must be at least 1\n")
        return 2

    try:
        addrs = parse_addr_ports(opts.addrs)
    except ValueError as exc:
        sys.stderr.write(f"fatal: invalid server address: {exc}\n")
        return 2

    failed = False
    with ThreadPoolExecutor(max_workers=opts.connections) as pool:
        futures = {pool.submit(probe, addr, opts.timeout): addr for addr in addrs}
        for future in as_completed(futures):
            name = format_addr_port(futures[future])
            try:
                future.result()
            except ProbeError as exc:
                failed = True
                if not opts.silent:
                    sys.stderr.write(f"{name}: error: {exc}\n")
            else:
                if not opts.silent:
                    sys.stderr.write(f"{name}: ok\n")
    return 1 if failed else 0


if __name__ == "__main__":
    raise SystemExit(main())