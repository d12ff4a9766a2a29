"""Command line entry point of the WebTorrent load tester."""

from __future__ import annotations

import argparse
import asyncio
import pprint
import random
import sys
import threading
from collections.abc import Mapping, Sequence
from time import monotonic, sleep

from torrentwire.loadtest_config import LoadTestConfig, load_loadtest_config
from torrentwire.loadtest_network import run_worker
from torrentwire.loadtest_requests import LoadTestState

APP_NAME = "WebTorrent load tester"
REPORT_INTERVAL = 5

_RESPONSE_COUNTERS = (
    "responses_announce",
    "responses_offer",
    "responses_answer",
    "responses_scrape",
    "responses_error",
)


def _responses_per_second(values: Mapping[str, float]) -> float:
    return sum(values.get(name, 0.0) for name in _RESPONSE_COUNTERS)


def format_interval_report(values: Mapping[str, float]) -> str:
    """Format per-second rates keyed by counter name; missing counters count as zero."""

    def rate(name: str) -> float:
        return values.get(name, 0.0)

    return "\n".join(
        [
            f"Requests out: {rate('requests'):.2f}/second",
            f"Responses in: {_responses_per_second(values):.2f}/second",
            f"  - Announce responses: {rate('responses_announce'):.2f}",
            f"  - Offer responses:    {rate('responses_offer'):.2f}",
            f"  - Answer responses:   {rate('responses_answer'):.2f}",
            f"  - Scrape responses:   {rate('responses_scrape'):.2f}",
            f"  - Error responses:   {rate('responses_error'):.2f}",
        ]
    )


def format_final_report(
    seconds: int, averages: Sequence[float], config: LoadTestConfig
) -> str:
    """Format the report printed when a timed run ends."""
    average = sum(averages) / len(averages) if averages else float("nan")
    return (
        "\n# load test report\n\n"
        f"Test ran for {seconds} seconds.\n"
        f"Average responses per second: {average:.2f}\n\n"
        f"Config: {pprint.pformat(config)}\n"
    )


def monitor_statistics(state: LoadTestState, config: LoadTestConfig) -> str:
    """Print rates every few seconds; return the final report once the duration is over."""
    start = monotonic()
    averages: list[float] = []
    counters = ("requests", *_RESPONSE_COUNTERS)

    while True:
        sleep(REPORT_INTERVAL)

        values = {
            name: state.statistics.take(name) / REPORT_INTERVAL for name in counters
        }
        averages.append(_responses_per_second(values))

        print()
        print(format_interval_report(values))

        elapsed = monotonic() - start
        if config.duration != 0 and elapsed >= config.duration:
            report = format_final_report(int(elapsed), averages, config)
            print(report)
            return report


def _run_worker_thread(config: LoadTestConfig, state: LoadTestState) -> None:
    asyncio.run(run_worker(config, state))


def run(config: LoadTestConfig) -> str:
    """Start the workers and monitor them until the configured duration is over."""
    torrents = config.torrents
    if torrents.weight_announce + torrents.weight_scrape == 0:
        raise ValueError("at least one weight must be larger than zero")

    print(f"Starting client with config: {pprint.pformat(config)}")

    state = LoadTestState.create(config, random.Random())

    for _ in range(config.num_workers):
        threading.Thread(
            target=_run_worker_thread, args=(config, state), name="load-test", daemon=True
        ).start()

    return monitor_statistics(state, config)


def main(argv: Sequence[str] | None = None) -> int:
    parser = argparse.ArgumentParser(prog="torrentwire-load-test", description=APP_NAME)
    parser.add_argument("-c", "--config", help="path to a TOML configuration file")
    args = parser.parse_args(argv)

    try:
        config = (
            load_loadtest_config(args.config) if args.config else LoadTestConfig()
        )
        run(config)
    except (OSError, ValueError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    return 0