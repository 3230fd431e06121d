"""FastAPI dependencies: container access and protocol injection."""

from typing import get_type_hints

from fastapi import Depends

from voicemeter.core import container as container_mod
from voicemeter.core.container import Container


def get_container() -> Container:
    """Return the container built in the lifespan hook.

    API tests override this dependency with a container over fakes.
    """
    c = container_mod.container
    if c is None:
        raise RuntimeError("Container not initialized; the app lifespan has not run")
    return c


# protocol type -> Container attribute, filled on first lookup
_FIELD_BY_PROTOCOL: dict[type, str] = {}


def _resolve_field_name(protocol_type: type) -> str:
    if not _FIELD_BY_PROTOCOL:
        _FIELD_BY_PROTOCOL.update(
            {hint: name for name, hint in get_type_hints(Container).items()}
        )
    try:
        return _FIELD_BY_PROTOCOL[protocol_type]
    except KeyError:
        bound = sorted(_FIELD_BY_PROTOCOL.values())
        raise TypeError(
            f"Container has no field typed {protocol_type.__name__}; bound fields: {bound}"
        ) from None


def Inject(protocol_type: type):  # noqa: N802
    """``Depends`` on whichever Container field is typed ``protocol_type``.

    Endpoints name the protocol they need, e.g.
    ``gate: MeteringGateProtocol = Inject(MeteringGateProtocol)``, and stay
    ignorant of how the container is laid out. Unknown protocols fail at
    import time, when the route is declared.
    """
    field_name = _resolve_field_name(protocol_type)

    def _from_container(c: Container = Depends(get_container)):
        return getattr(c, field_name)

    return Depends(_from_container)
