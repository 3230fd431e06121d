"""Process-wide wiring of the metering, alert and billing services.

``main.py`` calls ``initialize_container(settings)`` once in the lifespan
hook and the API reaches the result through ``api.deps.get_container``.
Domain services never read the global; they get their collaborators as
constructor arguments, and tests build a ``Container`` directly over fakes.
"""

from typing import TYPE_CHECKING

from voicemeter.core.container.container import Container
from voicemeter.core.container.factory import create_container

if TYPE_CHECKING:
    from voicemeter.core.config import Settings

__all__ = [
    "Container",
    "container",
    "create_container",
    "initialize_container",
    "reset_container",
]

container: Container | None = None


def initialize_container(settings: "Settings") -> None:
    """Build the global container from ``settings``.

    Raises:
        RuntimeError: The container was already initialized.
    """
    global container

    if container is not None:
        raise RuntimeError("Container already initialized; reset_container() first")
    container = create_container(settings)


def reset_container() -> None:
    """Drop the global container (shutdown and tests)."""
    global container
    container = None
