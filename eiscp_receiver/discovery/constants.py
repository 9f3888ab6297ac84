# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""Constants used by eISCP discovery"""

from ..constants import (
    DEFAULT_PORT as EISCP_DISCOVERY_PORT,
    DEFAULT_BROADCAST_ADDRESS as EISCP_BROADCAST_ADDRESS,
    DEFAULT_DISCOVERY_TIMEOUT as EISCP_DISCOVERY_DEFAULT_TIMEOUT,
    DEFAULT_DISCOVERY_DEVICE_COUNT as EISCP_DISCOVERY_DEFAULT_DEVICE_COUNT,
  )

EISCP_DISCOVERY_BIND_ADDRESS = "0.0.0.0"
"""Discovery sockets bind to an ephemeral port on all local IPV4 interfaces."""
