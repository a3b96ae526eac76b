import asyncio
import contextlib
import inspect
import logging
import os.path
import time

import aiohttp
import sentry_sdk

from . import config


class Logger:
    def __init__(
        self,
        debug=config.DEBUG,
        level: int = config.LOG_LEVEL,
        log_file: str = config.LOG_FILE,
        webhook: str = config.WEBHOOK_URL,
        sentry_dsn: str = config.SENTRY_DSN,
        ssdk: sentry_sdk = None,
        name: str = "mcping",
    ):
        """Initializes the logger class

        Args:
            debug (bool, optional): Show debugging. Defaults to False.
            level (int, optional): The logging level. Defaults to 20.
            log_file (str, optional): File to append the log to, None to skip it. Defaults to "log.log".
            webhook (str, optional): Url that exceptions are posted to. Defaults to None.
            sentry_dsn (str, optional): Initialize sentry with this dsn. Defaults to None.
            ssdk (sentry_sdk, optional): An already initialized sentry_sdk. Defaults to None.
            name (str, optional): Name of the underlying logger. Defaults to "mcping".
        """
        self.__last_print = None
        self.__hooks = set()
        self.DEBUG = debug
        self.webhook = webhook
        self.log_file = log_file

        self.logging = logging.getLogger(name)
        self.logging.setLevel(logging.DEBUG if self.DEBUG else level)

        if log_file is not None and not any(
            isinstance(h, logging.FileHandler)
            and h.baseFilename == os.path.abspath(log_file)
            for h in self.logging.handlers
        ):
            handler = logging.FileHandler(log_file, mode="a", encoding="utf-8", delay=False)
            handler.setFormatter(
                logging.Formatter(
                    fmt="%(asctime)s %(levelname)s %(name)s: %(message)s",
                    datefmt="%d-%b %H:%M:%S",
                )
            )
            self.logging.addHandler(handler)

        if self.DEBUG:
            self.logging.info("Debugging enabled")

        if sentry_dsn is not None and ssdk is None:
            sentry_sdk.init(
                dsn=sentry_dsn,
                traces_sample_rate=1.0,
                profiles_sample_rate=0.6,
            )
            self.sentry_sdk = sentry_sdk
        elif ssdk is not None:
            self.sentry_sdk = ssdk
        else:
            self.sentry_sdk = None

    def stack_trace(self, stack):
        """Returns a stack trace"""
        out = (
            stack[1].filename.replace("\\", "/").split("/")[-1].split(".")[0]
            + "."
            + f"{stack[1].function}"
        )
        return out

    def info(self, message):
        """Same level as print but no console output"""
        message = f"[{self.stack_trace(inspect.stack())}] {message}"
        self.logging.info(message)

    def error(self, *message, **kwargs):
        message = " ".join([str(arg) for arg in message])
        message = f"[{self.stack_trace(inspect.stack())}] {message}"
        self.logging.error(message, **kwargs)
        self.print(message, log=False)

    def debug(self, *args, **kwargs):
        msg = " ".join([str(arg) for arg in args])
        msg = f"[{self.stack_trace(inspect.stack())}] {msg}"
        self.logging.debug(msg)
        if self.DEBUG:
            self.print(*args, **kwargs, log=False)

    def warning(self, message):
        message = f"[{self.stack_trace(inspect.stack())}] {message}"
        self.print(message, log=False)
        self.logging.warning(message)

    def exception(self, message):
        """Logs ``message`` with the traceback of the exception being handled"""
        message = f"[{self.stack_trace(inspect.stack())}] {message}"
        self.logging.exception(message)
        self.hook(message)
        self.print(message, log=False)

    async def async_exception(self, message):
        """Like ``exception``, but waits for the webhook post before returning"""
        message = f"[{self.stack_trace(inspect.stack())}] {message}"
        self.logging.exception(message)
        self.print(message, log=False)
        await self.async_hook(message)

    def read(self):
        if self.log_file is None:
            return ""

        try:
            with open(self.log_file, "r", encoding="utf-8") as f:
                return f.read()
        except FileNotFoundError:
            return ""

    def print(self, *args, log=True, **kwargs):
        msg = " ".join([str(arg) for arg in args])

        stack_tr = self.stack_trace(inspect.stack())
        if not stack_tr.lower().startswith("logger."):
            msg = f"[{stack_tr}] {msg}"

        if (
            self.__last_print != msg
        ):  # prevent duplicate messages and spamming the console
            self.__last_print = msg
            print(msg, **kwargs)

        if log:
            self.logging.info(msg)

    def hook(self, message: str):
        if not self.webhook:
            return

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            asyncio.run(self.async_hook(message))
        else:
            task = loop.create_task(self.async_hook(message))
            # the loop only keeps weak references to its tasks
            self.__hooks.add(task)
            task.add_done_callback(self.__hooks.discard)

    async def async_hook(self, message: str):
        if not self.webhook:
            return

        try:
            async with aiohttp.ClientSession() as session, session.post(
                self.webhook,
                json={
                    "content": message,
                },
            ) as resp:
                if resp.status not in (200, 204):
                    self.logging.error(f"Failed to send message to webhook: {message}")
                    return
        except (aiohttp.ClientError, asyncio.TimeoutError) as err:
            self.logging.error(f"Failed to reach webhook: {err}")
            return
        self.logging.info(f"Sent message to webhook: {message}")

    def __repr__(self):
        return self.read()

    def __str__(self):
        return self.read()

    def _transaction(self, name: str):
        if self.sentry_sdk is None:
            return contextlib.nullcontext()
        return self.sentry_sdk.start_transaction(name=name, op=name)

    def timer(self, func: callable, *args, **kwargs):
        if inspect.iscoroutinefunction(func):
            raise TypeError(f"Function {func.__name__} is a coroutine, use async_timer")

        start = time.perf_counter()
        with self._transaction(func.__name__):
            res = func(*args, **kwargs)
        end = time.perf_counter()

        tDelta = self.auto_range_time(end - start)
        self.debug(f"Function {func.__name__} took {tDelta}")

        if self.sentry_sdk is not None:
            self.sentry_sdk.set_context("timing", {"duration": tDelta})
        return res

    async def async_timer(self, func: callable, *args, **kwargs):
        if not inspect.iscoroutinefunction(func):
            raise TypeError(f"Function {func.__name__} is not a coroutine, use timer")

        start = time.perf_counter()
        with self._transaction(func.__name__):
            res = await func(*args, **kwargs)
        end = time.perf_counter()

        tDelta = self.auto_range_time(end - start)
        self.debug(f"(ASYNC) Function {func.__name__} took {tDelta}")

        if self.sentry_sdk is not None:
            self.sentry_sdk.set_context("timing", {"duration": tDelta})
        return res

    @staticmethod
    def auto_range_time(seconds: float) -> str:
        """
        Returns a time string for a given number of seconds

        Args:
            seconds (float): The number of seconds

        Returns:
            str: The time string
        """

        units = {
            "hr": str(int(seconds // 3600)),
            "min": str(int(seconds // 60)),
            "s": str(int(seconds)),
            "ms": str(int(seconds * 1000)),
            "us": str(int(seconds * 1000000)),
            "ns": str(int(seconds * 1000000000)),
        }

        best = ("ns", units["ns"])
        units = sorted(units.items(), key=lambda x: len(x[1]))
        for unit in units:
            if unit[1] != "0":
                best = unit
                break

        return f"{best[1]} {best[0]}"
