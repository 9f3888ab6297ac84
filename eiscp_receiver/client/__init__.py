# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""
eISCP receiver client.

Provides a persistent TCP/IP session with an eISCP receiver, with paced
command sending and event notification of inbound messages.
"""

from .client_config import EiscpReceiverClientConfig
from .command_queue import CommandQueue, CommandQueueItem, CommandTransport, CommandCallback
from .connection import ConnectionManager, ConnectionState
from .client_impl import EiscpReceiverClient, DiscoveryCallback
