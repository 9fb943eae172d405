"""Entry point for the netquality command line tool."""

import json
import logging
import sys
from argparse import ArgumentParser

from netquality.errors import MeasurementError
from netquality.logging_config import configure_logging
from netquality.measure import default_probes, measure_network_quality
from netquality.models import MeasureOptions, QualityResult
from netquality.orchestrator import MeasurementOrchestrator

# Configure logging early
configure_logging()
logger = logging.getLogger(__name__)


def build_parser() -> ArgumentParser:
    parser = ArgumentParser(
        prog="netquality",
        description="Estimate network quality from latency, throughput and loss probes.",
    )
    parser.add_argument(
        "--basic",
        action="store_true",
        help="skip the packet-loss probe",
    )
    parser.add_argument(
        "--timeout-ms",
        type=int,
        default=3000,
        help="hard ceiling for the probe phase (default: 3000)",
    )
    parser.add_argument(
        "--json",
        action="store_true",
        help="print the result as JSON",
    )
    return parser


def format_result(result: QualityResult) -> str:
    """Render a result as human-readable lines."""
    record = result.record

    def fmt(value, unit, pattern=".1f"):
        return "--" if value is None else f"{value:{pattern}} {unit}"

    lines = [
        f"Quality:     {result.tier.value.upper()}",
        f"Connected:   {'yes' if record.is_connected else 'no'} ({record.link_type.value})",
        f"Latency:     {fmt(record.latency_ms, 'ms')}",
        f"Jitter:      {fmt(record.jitter_ms, 'ms')}",
        f"Downlink:    {fmt(record.downlink_mbps, 'Mbps', '.2f')}",
        f"Packet loss: {fmt(record.packet_loss_percent, '%')}",
    ]
    if record.wifi_signal is not None:
        lines.append(f"Wi-Fi RSSI:  {record.wifi_signal} dBm")
    if record.cellular_signal is not None:
        lines.append(
            f"Cell RSSI:   {record.cellular_signal} dBm ({record.cellular_generation.value})"
        )
    if record.failure_reason:
        lines.append(f"Note:        {record.failure_reason}")
    return "\n".join(lines)


def main(argv=None) -> int:
    """Main entry point for the netquality tool."""
    args = build_parser().parse_args(argv)

    try:
        options = MeasureOptions(extended=not args.basic, timeout_ms=args.timeout_ms)
    except ValueError as e:
        logger.error("Invalid options: %s", e)
        return 2

    orchestrator = MeasurementOrchestrator(default_probes())

    try:
        result = measure_network_quality(options, orchestrator=orchestrator)
    except MeasurementError as e:
        logger.error("Measurement failed: %s", e)
        return 1

    if args.json:
        print(json.dumps({"tier": result.tier.value, "record": result.record.to_dict()}, indent=2))
    else:
        print(format_result(result))
    return 0


if __name__ == "__main__":
    sys.exit(main())
