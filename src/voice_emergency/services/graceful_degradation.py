"""
Graceful degradation for optional or external components.

This module tracks the health of components such as the transcription
provider or an upstream emergency classifier, and runs registered fallbacks
when they fail so the emergency pipeline keeps operating.
"""

import asyncio
import inspect
import logging
from collections.abc import Awaitable
from collections.abc import Callable
from enum import Enum
from typing import Any, Union
from typing import TypeVar

# Type variables for generic functions
T = TypeVar("T")

# Configure logging
logger = logging.getLogger(__name__)


class ComponentStatus(Enum):
    """Component status enum."""

    OPERATIONAL = "operational"  # Fully operational
    DEGRADED = "degraded"  # Operating with reduced functionality
    FAILED = "failed"  # Completely failed


class DegradationManager:
    """
    Manages graceful degradation of pipeline components.

    Tracks the status of components and provides fallback mechanisms when
    they fail. One manager is injected where needed; there is no
    process-wide instance.
    """

    def __init__(self):
        """Initialize the degradation manager."""
        self.component_status: dict[str, ComponentStatus] = {}
        self.fallback_handlers: dict[str, list[Callable[..., Any]]] = {}
        self._lock = asyncio.Lock()

    async def set_component_status(self, component: str, status: ComponentStatus) -> None:
        """
        Set the status of a component.

        Args:
            component: Component name
            status: New component status
        """
        async with self._lock:
            old_status = self.component_status.get(component, None)
            self.component_status[component] = status

            if old_status != status:
                logger.info(f"Component '{component}' status changed from {old_status} to {status}")

                if status == ComponentStatus.FAILED:
                    logger.warning(f"Component '{component}' has failed")

                if old_status == ComponentStatus.FAILED and status != ComponentStatus.FAILED:
                    logger.info(f"Component '{component}' has recovered to {status} state")

    def get_component_status(self, component: str) -> ComponentStatus:
        """
        Get the status of a component.

        Args:
            component: Component name

        Returns:
            ComponentStatus: Current component status
        """
        return self.component_status.get(component, ComponentStatus.OPERATIONAL)

    def register_fallback(self, component: str, handler: Callable[..., Any]) -> None:
        """
        Register a fallback handler for a component.

        Args:
            component: Component name
            handler: Fallback handler function (sync or async)
        """
        self.fallback_handlers.setdefault(component, []).append(handler)
        logger.info(f"Registered fallback handler for component '{component}'")

    async def execute_with_fallback(
        self, component: str, primary_func: Callable[..., Awaitable[T]], *args, **kwargs
    ) -> Union[T, Any]:
        """
        Execute a function with fallback if it fails.

        Args:
            component: Component name
            primary_func: Primary function to execute
            *args: Positional arguments for the function
            **kwargs: Keyword arguments for the function

        Returns:
            The result of the primary function or fallback

        Raises:
            Exception: If all fallbacks fail
        """
        try:
            result = await primary_func(*args, **kwargs)

            if self.get_component_status(component) != ComponentStatus.OPERATIONAL:
                await self.set_component_status(component, ComponentStatus.OPERATIONAL)

            return result

        except Exception as e:
            logger.warning(f"Primary function for component '{component}' failed: {str(e)}")
            await self.set_component_status(component, ComponentStatus.DEGRADED)

            try:
                return await self._execute_fallbacks(component, *args, **kwargs)
            except Exception as fallback_error:
                await self.set_component_status(component, ComponentStatus.FAILED)
                logger.error(
                    f"All fallbacks for component '{component}' failed: {str(fallback_error)}"
                )
                raise

    async def _execute_fallbacks(self, component: str, *args, **kwargs) -> Any:
        """
        Execute fallback handlers for a component.

        Returns:
            The result of the first successful fallback

        Raises:
            Exception: If all fallbacks fail
        """
        handlers = self.fallback_handlers.get(component)
        if not handlers:
            raise ValueError(f"No fallback handlers registered for component '{component}'")

        last_error = None
        for handler in handlers:
            try:
                result = handler(*args, **kwargs)
                if inspect.isawaitable(result):
                    result = await result
                return result
            except Exception as e:
                logger.warning(f"Fallback handler for component '{component}' failed: {str(e)}")
                last_error = e

        raise last_error

    def get_all_statuses(self) -> dict[str, str]:
        """
        Get the status of all components.

        Returns:
            Dict[str, str]: Component statuses
        """
        return {component: status.value for component, status in self.component_status.items()}
