# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""Constants used by eiscp_receiver"""

DEFAULT_PORT = 60128
"""The port used by the receiver for eISCP TCP/IP control and UDP discovery."""

DEFAULT_SEND_DELAY = 0.5
"""The minimum spacing between consecutive commands sent to the receiver, in seconds."""

DEFAULT_RECONNECT = True
"""Whether a session automatically reconnects after the connection is lost."""

DEFAULT_RECONNECT_DELAY = 5.0
"""The delay before an automatic reconnect attempt, in seconds."""

DEFAULT_DISCOVERY_TIMEOUT = 10.0
"""The time to wait for discovery responses, in seconds."""

DEFAULT_DISCOVERY_DEVICE_COUNT = 1
"""Discovery stops as soon as this many responses have been received."""

DEFAULT_BROADCAST_ADDRESS = "255.255.255.255"
"""The limited-broadcast address that discovery probes are sent to."""
