# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""
Decoded ISCP messages: a 3-character command code plus an argument string.
"""

from __future__ import annotations

from ..internal_types import *
from ..exceptions import EiscpReceiverError
from .constants import (
    COMMAND_CODE_LENGTH,
    DISCOVERY_RESPONSE_CODE,
    MAC_ADDRESS_LENGTH,
  )

def split_command(text: str) -> Tuple[str, str]:
    """Split an ISCP message into (code, argument); e.g. 'PWR01' -> ('PWR', '01')."""
    if len(text) < COMMAND_CODE_LENGTH:
        raise EiscpReceiverError(f"ISCP message too short for a command code: {text!r}")
    return (text[:COMMAND_CODE_LENGTH], text[COMMAND_CODE_LENGTH:])

class IscpMessage:
    """A decoded ISCP message. For inbound messages, also identifies the
       session (host, port, model) it was received on."""

    raw_message: str
    code: str
    argument: str
    host: Optional[str]
    port: Optional[int]
    model: Optional[str]

    def __init__(
            self,
            raw_message: str,
            host: Optional[str]=None,
            port: Optional[int]=None,
            model: Optional[str]=None,
          ) -> None:
        self.raw_message = raw_message
        self.code, self.argument = split_command(raw_message)
        self.host = host
        self.port = port
        self.model = model

    def to_jsonable(self) -> JsonableDict:
        return dict(
            raw_message=self.raw_message,
            code=self.code,
            argument=self.argument,
            host=self.host,
            port=self.port,
            model=self.model,
          )

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, IscpMessage):
            return NotImplemented
        return self.to_jsonable() == other.to_jsonable()

    def __str__(self) -> str:
        return f"IscpMessage(code={self.code!r}, argument={self.argument!r})"

    def __repr__(self) -> str:
        return str(self)

def parse_discovery_payload(text: str) -> Tuple[str, int, str, str]:
    """Parse the ISCP message of a discovery response.

    A response looks like 'ECNTX-NR609/60128/DX/0009B0D2A8F0' and may carry
    null padding after the MAC.

    Returns:
        (model, port, area_code, mac)

    Raises:
        EiscpReceiverError if the message is not a well-formed discovery response.
    """
    code, argument = split_command(text)
    if code != DISCOVERY_RESPONSE_CODE:
        raise EiscpReceiverError(f"Not a discovery response: {text!r}")
    fields = argument.split('/')
    if len(fields) != 4:
        raise EiscpReceiverError(f"Discovery response does not have 4 fields: {text!r}")
    model, port_str, area_code, mac = fields
    try:
        port = int(port_str)
    except ValueError as e:
        raise EiscpReceiverError(f"Invalid port {port_str!r} in discovery response: {text!r}") from e
    mac = mac[:MAC_ADDRESS_LENGTH].rstrip('\0')
    return (model, port, area_code, mac)
