#
# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""
Logging for the zmote_ir package. All modules log through the single
package-level logger so that applications can tune it with one call to
logging.getLogger("zmote_ir").setLevel(...).
"""

from __future__ import annotations

import logging

logger = logging.getLogger(__name__.rsplit('.', 1)[0])
