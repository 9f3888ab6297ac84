# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""Exceptions defined by this package"""

class EiscpReceiverError(Exception):
    """Raised for eISCP framing, discovery, connection and send failures.

    Transport failures are also published on the client's 'error' topic.
    """
    pass
