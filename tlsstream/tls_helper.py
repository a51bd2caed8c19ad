"""Decoding and tracing of TLS records, mainly ClientHello and SNI."""

from __future__ import annotations

import enum
from typing import Optional

from .utilities import (
    debug_begin_msg,
    debug_continue_msg,
    debug_end_msg,
    debug_msg,
    hex_digits,
    print_full_hex_dump,
    print_hex_dump,
)

_HEADER_LEN = 5
_HANDSHAKE_HEADER_LEN = 4
_CONTENT_HANDSHAKE = 22
_HANDSHAKE_CLIENT_HELLO = 1
_HANDSHAKE_SERVER_HELLO = 2

_CONTENT_TYPES = {
    20: "Change Cipher Spec",
    21: "Alert",
    22: "Handshake",
    23: "Application Data",
}

_HANDSHAKE_TYPES = {
    0: "Handshake type 00 = Hello Request",
    1: "Handshake type 01 = Client Hello",
    2: "Handshake type 02 = Server hello",
    3: "Handshake type 03 = Hello Request",
    4: "Handshake type 04 = New Session Ticket",
    5: "Handshake type 05 = End of Early Data",
    8: "Handshake type 08 = encrypted extensions",
    11: "Handshake type 11 = Certificate",
    12: "Handshake type 12 = Server key Exchange",
    13: "Handshake type 13 = Certificate request",
    14: "Handshake type 14 = Server Hello Done",
    15: "Handshake type 15 = Certificate Verify",
    16: "Handshake type 16 = Client key Exchange",
    20: "Handshake type 20 = Finished",
    21: "Handshake type 21 = Certificate URL",
    22: "Handshake type 22 = Certificate Status",
}

_EXTENSION_NAMES = {
    0: "Extension type 00 = Server Name",
    1: "Extension type 01 = Max Fragment length",
    2: "Extension type 02 = Client Certificate URL",
    3: "Extension type 03 = Trusted CA keys",
    4: "Extension type 04 = Truncated MAC",
    5: "Extension type 05 = Status request",
    23: "Extension type 23 = Extended Master Secret",
}


class Protocol(enum.IntFlag):
    """Protocol bit masks, with separate client and server bits."""

    SSL2_SERVER = 0x0004
    SSL2_CLIENT = 0x0008
    SSL2 = 0x000C
    SSL3_SERVER = 0x0010
    SSL3_CLIENT = 0x0020
    SSL3 = 0x0030
    TLS1_0_SERVER = 0x0040
    TLS1_0_CLIENT = 0x0080
    TLS1_0 = 0x00C0
    TLS1_1_SERVER = 0x0100
    TLS1_1_CLIENT = 0x0200
    TLS1_1 = 0x0300
    TLS1_2_SERVER = 0x0400
    TLS1_2_CLIENT = 0x0800
    TLS1_2 = 0x0C00
    TLS1_3_SERVER = 0x1000
    TLS1_3_CLIENT = 0x2000
    TLS1_3 = 0x3000


def tls_version_text(major: int, minor: int) -> str:
    """Return the name of a record or handshake version, or '' if unknown."""
    if major != 3:
        return ""
    names = {0: "SSL 3.0", 1: "TLS 1.0", 2: "TLS 1.1", 3: "TLS 1.2", 4: "TLS 1.3"}
    return names.get(minor, "TLS 1.3+")


def tls_version_from_protocol(protocol: int) -> int:
    """Convert a protocol mask to a two digit TLS version; 0 for SSL or unknown."""
    for mask, version in (
        (Protocol.TLS1_0, 10),
        (Protocol.TLS1_1, 11),
        (Protocol.TLS1_2, 12),
        (Protocol.TLS1_3, 13),
    ):
        if protocol & mask:
            return version
    return 0


class _Reader:
    """Reads big-endian length and value fields within a bounded window."""

    def __init__(self, data: bytes, end: int) -> None:
        self.data = data
        self.pos = 0
        self.end = end

    def _item(self, size: int, skip: bool, check: bool) -> int:
        if self.end - self.pos < size:
            raise ValueError("Buffer too small to contain item size")
        value = int.from_bytes(self.data[self.pos:self.pos + size], "big")
        self.pos += size
        if check and self.end - self.pos < value:
            raise ValueError("Buffer too small for item content")
        if skip:
            self.pos += value
        return value

    def skip(self, size: int) -> int:
        return self._item(size, True, True)

    def length(self, size: int) -> int:
        return self._item(size, False, True)

    def value(self, size: int) -> int:
        return self._item(size, False, False)


def _trace_server_names(reader: _Reader) -> None:
    list_len = reader.length(2)
    debug_msg(f"Extension Type 0 (Server name list), length {list_len}")
    list_end = reader.pos + list_len
    while reader.pos < list_end:
        name_type = reader.value(1)
        name_len = reader.length(2)
        name = reader.data[reader.pos:reader.pos + name_len].decode("utf-8", "replace")
        if name_type == 0:
            debug_begin_msg()
            debug_end_msg(f'   Requested name "{name}"')
        else:
            debug_msg(f'   Server name Type {name_type}, length {name_len}, data "{name}"')
        reader.pos += name_len


def _trace_versions(reader: _Reader, ext_len: int) -> None:
    if ext_len == 2:
        major = reader.value(1)
        minor = reader.value(1)
        debug_msg(
            f"Extension type 43 = Negotiated TLS Version, value = {major}.{minor} "
            f"({tls_version_text(major, minor)})"
        )
        return
    debug_begin_msg(
        f"Extension type 43 = TLS Version list, length = {ext_len}, "
        f"item count = {(ext_len - 1) // 2}, items:"
    )
    list_end = reader.pos + ext_len
    reader.value(1)
    while reader.pos < list_end:
        major = reader.value(1)
        minor = reader.value(1)
        debug_continue_msg(f"  {major}.{minor} ({tls_version_text(major, minor)})")
    debug_end_msg()


def _trace_extensions(reader: _Reader) -> None:
    first_unrecognized = True
    while reader.pos < reader.end:
        ext_type = reader.value(2)
        ext_len = reader.length(2)
        if ext_type == 0:
            _trace_server_names(reader)
        elif ext_type == 43:
            _trace_versions(reader, ext_len)
        elif ext_type == 0xFF01 and ext_len == 1:
            debug_msg(f"Extension type 65281 = TLS Renegotiation, value = {reader.value(1)}")
        else:
            name = _EXTENSION_NAMES.get(ext_type)
            if name is not None:
                debug_begin_msg(name)
            else:
                if first_unrecognized:
                    debug_msg("Some extensions are unrecognized, this is a dump beginning at the first one:")
                    print_full_hex_dump(reader.data[reader.pos - 4:reader.end])
                    first_unrecognized = False
                debug_begin_msg(f"Extension Type {ext_type} has length {ext_len}")
            payload = reader.data[reader.pos:reader.pos + ext_len]
            if ext_len == 0:
                debug_end_msg()
            elif ext_len > 16:
                debug_end_msg(", data is:")
                print_full_hex_dump(payload)
            else:
                debug_end_msg(hex_digits(payload))
            reader.pos += ext_len


def _trace_hello(reader: _Reader, handshake_type: int) -> None:
    try:
        if handshake_type == _HANDSHAKE_CLIENT_HELLO:
            debug_msg("Handshake type = client hello")
        else:
            debug_msg("Handshake type = server hello")
        if reader.end - reader.pos < 2 + 4 + 28:
            debug_msg("Handshake buffer too short for fixed fields")
        else:
            major = reader.value(1)
            minor = reader.value(1)
            debug_msg(
                f"Handshake version field = {major}.{minor} ({tls_version_text(major, minor)})"
            )
            reader.pos += 4 + 28
        session_len = reader.skip(1)
        if handshake_type == _HANDSHAKE_CLIENT_HELLO:
            suites_len = reader.skip(2)
            compression_len = reader.skip(1)
            debug_msg(
                f"Client Handshake buffer: sessionidLength = {session_len}, "
                f"cipherSuitesLength = {suites_len}, compressionMethodsLength = {compression_len}"
            )
        else:
            suite = reader.value(2)
            compression = reader.value(1)
            debug_msg(
                f"Server Handshake buffer: sessionidLength = {session_len}, "
                f"cipherSuite = {suite}, compressionMethod = {compression}"
            )
        total = reader.length(2)
        unused = reader.end - reader.pos - total
        if unused < 0:
            raise ValueError("There is insufficient space for the extension data")
        if unused == 0:
            if total == 0:
                debug_msg("There is no extension data")
            else:
                debug_msg(
                    f"There are {total} bytes of extension data as follows, "
                    "see IANA definitions for extension details"
                )
        elif total == 0:
            debug_msg(f"There is no extension data but there are {unused} bytes of unused data")
        else:
            debug_msg(
                f"There are {total} bytes of extension data followed by {unused} bytes of "
                "unused space, see IANA definitions for extension details"
            )
        _trace_extensions(reader)
    except ValueError as exc:
        debug_msg(f"*** Faulted analyzing packet contents at offset {reader.pos}: {exc}***")
    remaining = reader.end - reader.pos
    if remaining > 0:
        debug_msg(f"Space after extensions is {remaining} bytes")
        print_hex_dump(reader.data[reader.pos:reader.end])
    elif remaining < 0:
        debug_msg("** Error ** Extensions overflow the packet")


def _trace_handshake(reader: _Reader) -> None:
    try:
        handshake_type = reader.value(1)
        handshake_len = reader.length(3)
    except ValueError as exc:
        debug_msg(f"*** Faulted analyzing packet contents at offset {reader.pos}: {exc}***")
        return
    debug_msg(
        f"Content type 22 = Handshake message, handshake type {handshake_type}, "
        f"handshake length = {handshake_len}"
    )
    if handshake_type in (_HANDSHAKE_CLIENT_HELLO, _HANDSHAKE_SERVER_HELLO):
        _trace_hello(reader, handshake_type)
    else:
        debug_msg(
            _HANDSHAKE_TYPES.get(
                handshake_type, f"Handshake type ({handshake_type}) is not recognized"
            )
        )


def _trace_record(data: bytes) -> tuple[int, Optional[int]]:
    """Trace one record; return bytes traced and the offset of any following record."""
    size = len(data)
    if size < _HEADER_LEN:
        debug_msg("Buffer space too small (under 5 bytes) to contain a TLS message")
        return 0, None

    reader = _Reader(data, size)
    content_type = reader.value(1)
    major = reader.value(1)
    minor = reader.value(1)
    length = reader.value(2)

    recognized = False
    if (content_type > 50 or major > 9 or length > 10000
            or content_type == 0 or major == 0 or length == 0):
        debug_msg("This does not look like a TLS packet")
    elif major == 3:
        recognized = True
        reader.end = min(_HEADER_LEN + length, size)
        debug_msg(
            f"New Packet: Content Type = {content_type}, legacy version {major}.{minor} "
            f"({tls_version_text(major, minor)}), length = 5+{length}, buffer length = {size} "
        )
    else:
        debug_msg(
            f"Content Type = {content_type}, Major.Minor Version = {major}.{minor}, "
            f"length {length} (0x{length:04X})"
        )
        debug_msg("This TLS version is not recognized so no more information is available")

    extra = 0
    traced = 0
    if recognized:
        extra = size - _HEADER_LEN - length
        if extra == 0:
            traced = size
        elif extra > 0:
            traced = length + _HEADER_LEN
            debug_msg(
                f"A complete packet + {extra} extra bytes are present, extra bytes"
                f"{hex_digits(data[traced:traced + 16])}"
            )
        else:
            debug_msg("Only part of the buffer is present")
    else:
        print_hex_dump(data)

    if recognized and content_type != _CONTENT_HANDSHAKE:
        name = _CONTENT_TYPES.get(content_type)
        if name is None:
            print_hex_dump(data)
            debug_msg(
                f"This content type ({content_type}) is not recognized, length = {length + 5}"
            )
        else:
            if content_type == 23:
                print_hex_dump(data)
            debug_msg(f"Content type {content_type} = {name}, length = {length + 5}")
    elif recognized:
        _trace_handshake(reader)

    return traced, (_HEADER_LEN + length if extra > 0 else None)


def trace_packet(data: bytes) -> int:
    """Trace TLS records in data; return the bytes of the first complete record.

    Returns the whole length when data is exactly one record, the first
    record's length when more records follow, and 0 when the data is too
    short, partial or not recognizable as TLS.
    """
    remaining = bytes(data)
    first, following = _trace_record(remaining)
    while following is not None:
        debug_msg("...Analyzing Concatenated Data")
        remaining = remaining[following:]
        _, following = _trace_record(remaining)
    return first


class ClientHello:
    """Decodes a buffer that may hold a complete ClientHello handshake record."""

    def __init__(self, data: Optional[bytes]) -> None:
        self._data = b"" if data is None else bytes(data)
        self.content_type = 0
        self.major = 0
        self.minor = 0
        self.length = 0
        self.handshake_type = 0
        self.handshake_length = 0
        self._end = 0
        self._decoded = data is not None and self._decode()

    def _decode(self) -> bool:
        data = self._data
        if len(data) < _HEADER_LEN:
            return False
        self.content_type, self.major, self.minor = data[0], data[1], data[2]
        self.length = int.from_bytes(data[3:5], "big")
        if self.length + _HEADER_LEN > len(data):
            return False
        if self.content_type != _CONTENT_HANDSHAKE:
            return False
        if len(data) < _HEADER_LEN + _HANDSHAKE_HEADER_LEN:
            return False
        self.handshake_type = data[5]
        self.handshake_length = int.from_bytes(data[6:9], "big")
        if self.handshake_type != _HANDSHAKE_CLIENT_HELLO:
            return False
        self._end = _HEADER_LEN + _HANDSHAKE_HEADER_LEN + self.handshake_length
        return True

    def is_client_initialize(self) -> bool:
        """True when the buffer holds a complete ClientHello record."""
        return self._decoded

    def sni(self) -> str:
        """Return the host name requested through SNI, or '' if there is none."""
        if not self._decoded:
            return ""
        data = self._data
        end = min(self._end, len(data))

        def field(pos: int, size: int) -> int:
            if pos + size > len(data):
                raise IndexError(pos)
            return int.from_bytes(data[pos:pos + size], "big")

        try:
            pos = _HEADER_LEN + _HANDSHAKE_HEADER_LEN + 2 + 32
            pos += 1 + field(pos, 1)
            pos += 2 + field(pos, 2)
            pos += 1 + field(pos, 1)
            pos += 2
            while pos < end:
                ext_type = field(pos, 2)
                ext_len = field(pos + 2, 2)
                pos += 4
                if ext_type != 0:
                    pos += ext_len
                    continue
                list_end = pos + 2 + field(pos, 2)
                pos += 2
                while pos < list_end:
                    name_type = field(pos, 1)
                    name_len = field(pos + 1, 2)
                    pos += 3
                    if name_type == 0:
                        return data[pos:pos + name_len].decode("utf-8", "replace")
                    pos += name_len
        except IndexError:
            return ""
        return ""

    def trace_handshake(self) -> int:
        """Trace the whole buffer; return what trace_packet returns."""
        return trace_packet(self._data)