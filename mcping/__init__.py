import sentry_sdk

from . import config
from .errors import (
    DecodeError,
    MalformedVarint,
    PingConnectionError,
    PingError,
    PingTimeout,
    ProtocolError,
    TruncatedVarint,
    UnexpectedEndOfStream,
)
from .logger import Logger
from .pycraft2.connector import MCSocket, Stages, async_ping, parse_address, ping
from .status import Players, StatusRecord, Version, decode_status


class Pinger:
    """Pings servers with a shared logger and shared ping settings"""

    def __init__(
        self,
        log: Logger = None,
        debug: bool = config.DEBUG,
        level: int = config.LOG_LEVEL,
        webhook: str = config.WEBHOOK_URL,
        sentry_dsn: str = config.SENTRY_DSN,
        ssdk: "sentry_sdk" = None,
        **options,
    ):
        """Initializes the pinger

        Args:
            log (Logger, optional): The logger to use. Default to None
            debug (bool, optional): Whether to use debug mode. Default to False
            level (int, optional): The logging level to use. Default to 20
            webhook (str, optional): Url that unexpected errors are posted to. Default to None
            sentry_dsn (str, optional): The sentry dsn to use. Default to None
            ssdk (sentry_sdk, optional): The sentry_sdk to use. Default to None
            **options: Default keyword arguments for every ``ping`` call
        """
        if log is None:
            self.logger = Logger(
                debug=debug,
                level=level,
                webhook=webhook,
                sentry_dsn=sentry_dsn,
                ssdk=ssdk,
            )
        else:
            self.logger = log

        self.options = options

    def _options(self, options: dict) -> dict:
        return {**self.options, **options, "logger": self.logger}

    def _log_status(self, address: str, status: StatusRecord):
        self.logger.debug(
            f"{address} is running {status.version.name} ({status.version.protocol}) "
            f"with {status.players.online}/{status.players.max} players"
        )

    def ping(self, address: str, **options) -> StatusRecord:
        """Ping a server, see ``mcping.ping`` for the options

        Raises:
            PingError: If the ping failed, after logging it
        """
        try:
            status = self.logger.timer(ping, address, **self._options(options))
        except PingError as err:
            self.logger.error(f"Failed to ping {address}: {err.__class__.__name__}: {err}")
            raise
        except Exception as err:
            self.logger.exception(f"Unexpected error pinging {address}: {err}")
            raise

        self._log_status(address, status)
        return status

    async def async_ping(self, address: str, **options) -> StatusRecord:
        """Async version of ``ping``"""
        try:
            status = await self.logger.async_timer(
                async_ping, address, **self._options(options)
            )
        except PingError as err:
            self.logger.error(f"Failed to ping {address}: {err.__class__.__name__}: {err}")
            raise
        except Exception as err:
            await self.logger.async_exception(f"Unexpected error pinging {address}: {err}")
            raise

        self._log_status(address, status)
        return status
