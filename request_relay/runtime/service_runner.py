"""
Service Runner

Runs one pipeline component until SIGINT / SIGTERM.

Lifecycle:
    1. setup logging
    2. connect to Redis (failure is fatal: logged, exit code 1)
    3. start the service (recovery, subscriptions)
    4. wait for a shutdown signal
    5. before_close hooks -> bus.close() (drains in-flight handlers) -> after_close hooks
"""

import asyncio
import signal
from collections.abc import Awaitable, Callable

from request_relay.core.config.constants import Stage
from request_relay.core.config.settings import Settings, get_settings
from request_relay.core.exceptions import BrokerConnectionError, RelayError
from request_relay.core.logging import get_logger, setup_logging
from request_relay.runtime.bootstrap import SERVICES, Components, ServiceHandle

logger = get_logger(__name__)

EXIT_OK = 0
EXIT_FATAL = 1


class ServiceRunner:
    def __init__(
        self,
        name: str,
        starter: Callable[[Components], Awaitable[ServiceHandle]],
        settings: Settings | None = None,
        components: Components | None = None,
    ):
        self.name = name
        self.settings = settings or get_settings()
        self._starter = starter
        self._components = components
        self._shutdown = asyncio.Event()

    def request_shutdown(self) -> None:
        if not self._shutdown.is_set():
            logger.info("Shutdown requested", stage=Stage.RUNTIME_STOP, service=self.name)
            self._shutdown.set()

    def _install_signal_handlers(self) -> None:
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, self.request_shutdown)
            except NotImplementedError:
                # Not supported on this platform's event loop
                pass

    async def run(self) -> int:
        """
        Run the service until shutdown.

        Returns:
            Process exit code
        """
        components = self._components or Components.create(self.settings)

        try:
            await components.bus.connect()
        except BrokerConnectionError as e:
            logger.critical(
                "Cannot connect to broker at startup",
                stage=Stage.RUNTIME_FATAL,
                service=self.name,
                error=e.message,
                details=e.details,
            )
            await components.bus.close()
            return EXIT_FATAL

        try:
            handle = await self._starter(components)
        except RelayError as e:
            logger.critical(
                "Service failed to start",
                stage=Stage.RUNTIME_FATAL,
                service=self.name,
                **e.to_dict(),
            )
            await components.bus.close()
            return EXIT_FATAL

        logger.info(
            "Service started",
            stage=Stage.RUNTIME_START,
            service=self.name,
            tenants=self.settings.bus.TENANTS,
        )

        self._install_signal_handlers()
        await self._shutdown.wait()

        for hook in handle.before_close:
            await hook()
        await components.bus.close()
        for hook in handle.after_close:
            await hook()

        logger.info("Service stopped", stage=Stage.RUNTIME_STOP, service=self.name)
        return EXIT_OK


def run_service(name: str, settings: Settings | None = None) -> int:
    """Blocking entry point used by the CLI."""
    settings = settings or get_settings()
    setup_logging(settings.logging.LOG_LEVEL, settings.logging.LOG_FORMAT)
    runner = ServiceRunner(name, SERVICES[name], settings)
    return asyncio.run(runner.run())
