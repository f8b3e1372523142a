# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""Constants used by this package"""

ZMOTE_MULTICAST_ADDRESS = "239.255.250.250"
"""The multicast group that ZMote devices listen on for discovery requests and announce to."""

ZMOTE_REQUEST_PORT = 9130
"""The multicast port that discovery requests are sent to."""

ZMOTE_RESPONSE_PORT = 9131
"""The port that discovery responses and periodic device broadcasts arrive on."""

DISCOVERY_REQUEST = b"SENDAMXB"
"""The fixed ASCII payload of a discovery request."""

ANNOUNCEMENT_PREFIX = "AMXB"
"""The prefix that device announcements normally start with. Informational only; records are
   accepted based on their tags."""

ZMOTE_MAKE = "zmote.io"
"""The value of the <-Make=...> tag announced by supported devices."""

ZMOTE_TYPE = "ZMT2"
"""The value of the <-Type=...> tag announced by supported devices."""

TAG_MAKE = "Make"
TAG_MODEL = "Model"
TAG_REVISION = "Revision"
TAG_TYPE = "Type"
TAG_URL = "Config-URL"
TAG_UUID = "UUID"

DEFAULT_RECEIVE_TIMEOUT = 10.0
"""Seconds of silence after which an active scan is considered complete."""

DEFAULT_SCAN_TIMEOUT = 30.0
"""Upper bound (in seconds) on the duration of a single active scan."""

DEFAULT_DISCOVERY_INTERVAL = 60.0
"""Seconds between restarts of the background discovery listener."""

DEFAULT_STALENESS = 60.0
"""Maximum age (in seconds) of a presence observation before a device is considered offline."""

SENDIR_SUCCESS = "completeir"
SENDIR_BUSY = "busyir"

SENDIR_MODULE_SELECTOR = "1:1"
"""The module:connector selector used for sendir requests."""

DEFAULT_TIMEOUT = 10
"""Default HTTP timeout (in seconds) for requests to a device."""

DEFAULT_RETRY_COUNT = 1
"""Default number of additional attempts made when the device reports that it is busy."""
