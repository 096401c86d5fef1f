import socket

from pingmux.errors import ResolutionError


def resolve_ipv4(target: str) -> str:
    """
    Resolve a host name or literal address to an IPv4 address string.

    Args:
        target: Host name or dotted-quad address

    Returns:
        str: The resolved IPv4 address

    Raises:
        ResolutionError: If the target is empty or cannot be resolved
    """
    if not target or not target.strip():
        raise ResolutionError("Empty target")

    try:
        return socket.gethostbyname(target.strip())
    except (OSError, UnicodeError) as e:
        raise ResolutionError(f"Failed to resolve {target!r}: {e}") from e
