"""Probing of game servers through the connectionless part of the netchannel."""

from __future__ import annotations

import ipaddress
import os
import socket
import struct
import time
from typing import Tuple, Union

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

IPAddress = Union[ipaddress.IPv4Address, ipaddress.IPv6Address]
AddrPort = Tuple[IPAddress, int]

PROBE_UID = 1000000001337

NONCE_SIZE = 12
TAG_SIZE = 16
# fixed by the game's netchannel protocol
_NETCHANNEL_KEY = b"X3V.bXCfe3EhN'wb"
_NETCHANNEL_AAD = bytes(range(1, 17))

_GET_CHALLENGE = struct.Struct("<iB8sQB")
_CHALLENGE = struct.Struct("<iBiQ")
_CONNECTIONLESS = -1
_TYPE_GET_CHALLENGE = 72
_TYPE_CHALLENGE = 73
_MAX_PACKET = 1500


class ProbeError(Exception):
    """Raised when a server does not answer a probe correctly."""


class ProbeTimeoutError(ProbeError, TimeoutError):
    """Raised when a server does not answer a probe in time."""


def format_addr_port(addr: AddrPort) -> str:
    """Format an address and port as ``ip:port`` or ``[ip]:port``."""
    ip, port = addr
    if ip.version == 6:
        return f"[{ip}]:{port}"
    return f"{ip}:{port}"


def encrypt(data):
    """Encrypt a packet as ``nonce | tag | ciphertext``."""
    data = bytes(data)
    nonce = os.urandom(NONCE_SIZE)
    sealed = AESGCM(_NETCHANNEL_KEY).encrypt(nonce, data, _NETCHANNEL_AAD)
    ciphertext, tag = sealed[: len(data)], sealed[len(data) :]
    return nonce + tag + ciphertext


def decrypt(packet):
    """Decrypt a packet laid out as ``nonce | tag | ciphertext``.

    Raises ValueError if the packet is too small or fails authentication.
    """
    packet = bytes(packet)
    if len(packet) < NONCE_SIZE + TAG_SIZE + 1:
        raise ValueError("packet too small")
    nonce = packet[:NONCE_SIZE]
    tag = packet[NONCE_SIZE : NONCE_SIZE + TAG_SIZE]
    ciphertext = packet[NONCE_SIZE + TAG_SIZE :]
    try:
        return AESGCM(_NETCHANNEL_KEY).decrypt(nonce, ciphertext + tag, _NETCHANNEL_AAD)
    except InvalidTag:
        raise ValueError("message authentication failed") from None


def encode_get_challenge(uid):
    """Build a connectionless getchallenge request for ``uid``."""
    if isinstance(uid, bool) or not isinstance(uid, int) or not 0 <= uid < 1 << 64:
        raise ValueError(f"uid out of range: {uid!r}")
    return _GET_CHALLENGE.pack(_CONNECTIONLESS, _TYPE_GET_CHALLENGE, b"connect\x00", uid, 2)


def decode_challenge(data):
    """Parse a challenge response and return ``(uid, challenge)``."""
    data = bytes(data)
    if len(data) < _CHALLENGE.size:
        raise ValueError("unexpected end of packet")
    seq, kind, challenge, uid = _CHALLENGE.unpack_from(data)
    if seq != _CONNECTIONLESS:
        raise ValueError("not a connectionless packet")
    if kind != _TYPE_CHALLENGE:
        raise ValueError("not a challenge response")
    return uid, challenge


def _remaining(deadline, action):
    left = deadline - time.monotonic()
    if left <= 0:
        raise ProbeTimeoutError(f"{action}: connection timed out")
    return left


def probe(addr, timeout):
    """Send a getchallenge request to ``addr`` and check the reply.

    ``addr`` is an ``(ip, port)`` pair and ``timeout`` is in seconds.
    """
    ip, port = addr
    ip = ipaddress.ip_address(ip)
    family = socket.AF_INET6 if ip.version == 6 else socket.AF_INET
    deadline = time.monotonic() + timeout

    try:
        sock = socket.socket(family, socket.SOCK_DGRAM)
    except OSError as exc:
        raise ProbeError(f"connect to server: {exc}") from exc
    with sock:
        try:
            sock.connect((str(ip), port))
        except OSError as exc:
            raise ProbeError(f"connect to server: {exc}") from exc

        packet = encrypt(encode_get_challenge(PROBE_UID))

        sock.settimeout(_remaining(deadline, "send connection packet"))
        try:
            sock.send(packet)
        except socket.timeout as exc:
            raise ProbeTimeoutError(
                f"send connection packet: connection timed out: {exc}"
            ) from exc
        except OSError as exc:
            raise ProbeError(f"send connection packet: {exc}") from exc

        sock.settimeout(_remaining(deadline, "receive packet"))
        try:
            response = sock.recv(_MAX_PACKET)
        except socket.timeout as exc:
            raise ProbeTimeoutError(f"receive packet: connection timed out: {exc}") from exc
        except OSError as exc:
            raise ProbeError(f"receive packet: {exc}") from exc

    try:
        decrypted = decrypt(response)
    except ValueError as exc:
        raise ProbeError(f"failed to decrypt received packet: {exc}") from exc

    try:
        uid, _ = decode_challenge(decrypted)
    except ValueError as exc:
        raise ProbeError(f"invalid challenge: {exc}") from exc
    if uid != PROBE_UID:
        raise ProbeError("invalid challenge")