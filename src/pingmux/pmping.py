"""
pmping - concurrent ping CLI

Needs raw socket and capture privileges (root or CAP_NET_RAW), e.g.:
    sudo pmping 1.1.1.1 8.8.8.8 -c 5 -r 3 -o /tmp
"""

import argparse
import os
import sys
import logging

from pingmux import get_config_path, load_config
from pingmux.engine.models import (
    DEFAULT_PING_COUNT,
    DEFAULT_PING_INTERVAL,
    DEFAULT_TIMEOUT,
    Request,
)
from pingmux.engine.pinger import Pinger
from pingmux.errors import PingerSetupError
from pingmux.metrics.results_handler import ResultsHandler
from pingmux.utils.config_utils import PingerConfig
from pingmux.utils.init_pkg_logger import init_pkg_logger

# Set up logging independent of the pingmux package logger
logger = logging.getLogger("pmping")
logger.setLevel(logging.INFO)
handler = logging.StreamHandler(sys.stdout)
formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
handler.setFormatter(formatter)
logger.addHandler(handler)


def load_pinger_config(config_path: str | None) -> PingerConfig:
    """
    Load the engine settings from `config_path` or the project config.

    Falls back to built-in defaults when no config file is found.
    """
    try:
        path = config_path or get_config_path()
    except FileNotFoundError:
        logger.debug("No config file found, using defaults")
        return PingerConfig()
    return PingerConfig.from_config(load_config(path))


def build_argparser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="""Concurrent ICMP ping

Examples:
  - Single target: pmping 192.168.1.1
  - Several targets: pmping 1.1.1.1 8.8.8.8 example.com
  - Five probes, 3 rounds: pmping 8.8.8.8 -c 5 -r 3""",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("targets", nargs="+", help="Host names or IPv4 addresses")
    parser.add_argument(
        "-c",
        "--count",
        type=int,
        default=DEFAULT_PING_COUNT,
        help="Echo requests per target and round",
    )
    parser.add_argument(
        "-i",
        "--interval",
        type=int,
        default=DEFAULT_PING_INTERVAL,
        metavar="MS",
        help="Wait time between two echo requests in milliseconds",
    )
    parser.add_argument(
        "-t",
        "--timeout",
        type=int,
        default=DEFAULT_TIMEOUT,
        metavar="MS",
        help="Wait time after the last echo request in milliseconds",
    )
    parser.add_argument(
        "-r", "--rounds", type=int, default=1, help="Number of rounds to run"
    )
    parser.add_argument(
        "-o",
        "--out_path",
        metavar="PATH",
        default=None,
        help="Save results as JSON lines; a directory gets pmping_results.jsonl",
    )
    parser.add_argument("--config", metavar="FILE", help="Engine YAML config file")
    parser.add_argument("--listen", metavar="ADDR", help="Local address to send from")
    parser.add_argument("--iface", metavar="IFACE", help="Capture interface")
    parser.add_argument(
        "--engine-log",
        action="store_true",
        help="Show engine logs configured by config/logger_config.yaml",
    )
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_argparser().parse_args(argv)
    if args.engine_log:
        init_pkg_logger()

    if args.out_path is not None and os.path.isdir(args.out_path):
        args.out_path = os.path.join(args.out_path, "pmping_results.jsonl")

    config = load_pinger_config(args.config)
    overrides = {}
    if args.listen:
        overrides["listen_addr"] = args.listen
    if args.iface:
        overrides["capture_iface"] = args.iface

    requests = [
        Request(target, count=args.count, interval=args.interval, timeout=args.timeout)
        for target in args.targets
    ]
    results = ResultsHandler(args.out_path)

    try:
        with Pinger(config, logger=logger, **overrides) as pinger:
            for round_number in range(1, args.rounds + 1):
                results.record_round(round_number, pinger.call_many(requests))
                logger.info(
                    f"Round {round_number}/{args.rounds}:\n"
                    f"{results.get_table(round_number)}"
                )
    except PingerSetupError as e:
        logger.error(f"Cannot start pinger: {e}")
        return 2

    if args.rounds > 1:
        print(results.get_summary().to_markdown(tablefmt="simple"))

    saved = results.save_results()
    if saved is not None:
        logger.info(f"Results saved to {saved}")

    return 0 if results.all_answered() else 1


if __name__ == "__main__":
    sys.exit(main())
