# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""
Discovery protocol for eISCP receivers.

Discovery broadcasts an 'ECNQSTN' query over UDP; each receiver answers with an
'ECN' message carrying its model, control port, area code and MAC address.
"""

from .constants import (
    EISCP_DISCOVERY_PORT,
    EISCP_BROADCAST_ADDRESS,
    EISCP_DISCOVERY_DEFAULT_TIMEOUT,
    EISCP_DISCOVERY_DEFAULT_DEVICE_COUNT,
  )
from .client import (
    DiscoveredDevice,
    EiscpDiscoveryRequest,
    EiscpDiscoveryClient,
    discover_receivers,
  )

__all__ = [
    'DiscoveredDevice',
    'EiscpDiscoveryRequest',
    'EiscpDiscoveryClient',
    'discover_receivers',
    'EISCP_DISCOVERY_PORT',
    'EISCP_BROADCAST_ADDRESS',
    'EISCP_DISCOVERY_DEFAULT_TIMEOUT',
    'EISCP_DISCOVERY_DEFAULT_DEVICE_COUNT',
]
