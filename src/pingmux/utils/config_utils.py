from dataclasses import dataclass, fields
from typing import Dict, Any, Optional, Tuple


def validate_config_keys(
    config: Dict[str, Any], section: str, required: Tuple[str, ...]
) -> None:
    """Raise error if any required keys are missing in the given section of config.

    Args:
        config (Dict[str, Any]): Configuration dictionary to inspect.
        section (str): The section name within the config to check.
        required (Tuple[str, ...]): Tuple of required keys that must exist in the section.

    Raises:
        RuntimeError: If section is missing or any required keys are not found.
    """
    if section not in config:
        raise RuntimeError(
            f"Configuration error: Missing section '{section}' in configuration."
        )
    missing = [key for key in required if key not in config[section]]
    if missing:
        raise RuntimeError(
            f"Configuration error: Missing required keys in '{section}': {', '.join(missing)}"
        )


@dataclass
class PingerConfig:
    """
    Engine-wide settings for a Pinger.

    Attributes:
        listen_addr (str): Local IPv4 address the send socket is bound to.
        capture_iface (Optional[str]): Capture interface, None for all interfaces.
        capture_filter (str): BPF filter applied by the capture handle.
        channel_capacity (int): Buffered replies per call.
        payload (str): Echo request payload.
        count (int): Default number of probes per call.
        interval_ms (int): Default pacing between probes in milliseconds.
        timeout_ms (int): Default grace period after the last probe in milliseconds.
    """

    listen_addr: str = "0.0.0.0"
    capture_iface: Optional[str] = None
    capture_filter: str = "less 48 and icmp"
    channel_capacity: int = 1024
    payload: str = "echo"
    count: int = 3
    interval_ms: int = 15
    timeout_ms: int = 3000

    @classmethod
    def from_config(cls, config: Dict[str, Any], section: str = "pinger"):
        """
        Build a PingerConfig from a loaded configuration dictionary.

        Args:
            config (Dict[str, Any]): Configuration as returned by load_config().
            section (str): Section holding the pinger settings.

        Returns:
            PingerConfig: The parsed settings.

        Raises:
            RuntimeError: If the section or any of its keys are missing.
        """
        names = tuple(f.name for f in fields(cls))
        validate_config_keys(config, section, names)
        return cls(**{name: config[section][name] for name in names})
