from dataclasses import dataclass
from typing import Mapping

# Round-trip times above this are clock anomalies and are counted as 0.
IMPLAUSIBLE_RTT_MS = 1e6


@dataclass(frozen=True)
class RttStats:
    pkg_loss: float
    rtt_min: float
    rtt_mean: float
    rtt_max: float


def reduce_stats(count: int, rtts: Mapping[int, float], timeout: float) -> RttStats:
    """
    Reduce the matched round-trip times of a call into loss and latency figures.

    Args:
        count (int): Number of probes the call was expected to send.
        rtts (Mapping[int, float]): Round-trip time in milliseconds per matched sequence.
        timeout (float): The call's timeout, reported as latency on total loss.

    Returns:
        RttStats: Packet loss fraction and min/mean/max round-trip time.
    """
    loss = 0
    best = float("inf")
    worst = 0.0
    total = 0.0
    for sequence in range(count):
        rtt = rtts.get(sequence)
        if rtt is None:
            loss += 1
            continue

        if rtt > IMPLAUSIBLE_RTT_MS:
            rtt = 0.0

        best = min(best, rtt)
        worst = max(worst, rtt)
        total += rtt

    pkg_loss = loss / count
    if loss == count:
        timeout = float(timeout)
        return RttStats(pkg_loss, timeout, timeout, timeout)

    return RttStats(pkg_loss, best, total / (count - loss), worst)
