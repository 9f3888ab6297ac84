# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""Package eiscp_receiver provides an asyncio API for discovering and controlling
Onkyo and Pioneer receivers via the eISCP TCP/IP protocol.
"""

from .version import __version__

from .pkg_logging import logger

from .internal_types import Jsonable, JsonableDict

from .exceptions import EiscpReceiverError

from .constants import (
    DEFAULT_PORT,
    DEFAULT_SEND_DELAY,
    DEFAULT_RECONNECT,
    DEFAULT_RECONNECT_DELAY,
    DEFAULT_DISCOVERY_TIMEOUT,
    DEFAULT_DISCOVERY_DEVICE_COUNT,
    DEFAULT_BROADCAST_ADDRESS,
  )

from .events import EventBus, EventTopic, EventHandler

from .protocol import (
    EiscpPacket,
    EiscpPacketReassembler,
    IscpMessage,
    encode_message,
    decode_packet,
    split_command,
    parse_discovery_payload,
  )

from .discovery import (
    DiscoveredDevice,
    EiscpDiscoveryClient,
    discover_receivers,
  )

from .client import (
    EiscpReceiverClient,
    EiscpReceiverClientConfig,
    ConnectionManager,
    ConnectionState,
    CommandQueue,
  )

from .util import (
    full_class_name,
    full_name_of_class,
)
