"""Default settings.

Protocol literals are kept here instead of inside the packets so they can be
overridden per call (see ``mcping.ping``) or, for ``ping.pyw``, in
``privVars.py``.
"""

# https://wiki.vg/Protocol_version_numbers, 756 is 1.17.1
PROTOCOL_VERSION = 756
# next state requested in the handshake, 1 is status (2 would be login)
NEXT_STATE = 1
DEFAULT_PORT = 25565

# seconds to wait for a packet that announced its length to fully arrive
TIMEOUT = 10.0
CONNECT_TIMEOUT = 10.0
# max bytes pulled off the socket per read
READ_CHUNK = 4096

# logging
DEBUG = False
LOG_LEVEL = 20
LOG_FILE = "log.log"
WEBHOOK_URL = None
SENTRY_DSN = None
