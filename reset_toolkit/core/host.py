"""Host identity lookup used for manifest and audit provenance."""

import getpass
import logging
import os
import socket
from dataclasses import dataclass
from functools import lru_cache

logger = logging.getLogger("resettk.core.host")


@dataclass(frozen=True)
class HostIdentity:
    """Computer, user and domain of the running process."""

    computer: str
    user: str
    domain: str


def _identity_from_environment() -> HostIdentity:
    computer = os.environ.get("COMPUTERNAME") or socket.gethostname()
    try:
        user = getpass.getuser()
    except Exception:
        user = os.environ.get("USERNAME", "unknown")
    domain = os.environ.get("USERDOMAIN", "")
    return HostIdentity(computer=computer, user=user, domain=domain)


def _identity_from_wmi() -> HostIdentity | None:
    """Query Win32_ComputerSystem for the machine's name and domain."""
    try:
        import wmi

        system = wmi.WMI().Win32_ComputerSystem()[0]
        user = os.environ.get("USERNAME") or (system.UserName or "").split("\\")[-1]
        return HostIdentity(
            computer=system.Name or "",
            user=user or getpass.getuser(),
            domain=system.Domain or "",
        )
    except ImportError:
        logger.debug("WMI module not available")
    except Exception as e:
        logger.warning(f"WMI identity lookup failed: {e}")
    return None


@lru_cache(maxsize=1)
def get_host_identity() -> HostIdentity:
    """Return the identity of this host and user.

    On Windows, WMI is asked first since it reports the joined domain
    rather than the logon domain; environment variables are the fallback.
    """
    if os.name == "nt":
        identity = _identity_from_wmi()
        if identity is not None:
            return identity
    return _identity_from_environment()
