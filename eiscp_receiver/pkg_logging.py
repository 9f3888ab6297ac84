# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""Package-wide logger"""

from __future__ import annotations

import logging

logger = logging.getLogger('eiscp_receiver')
