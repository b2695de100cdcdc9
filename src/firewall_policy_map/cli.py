"""Command-line interface for the firewall policy map."""
from __future__ import annotations

import argparse
import csv
import logging
from ipaddress import IPv4Network
from pathlib import Path
from typing import Iterable, Optional

from .domain import Domain
from .logging_utils import close_handler, configure_logging
from .models import UnifiedPolicy
from .parsers.excel import parse_excel_policies
from .parsers.watchguard import load_watchguard_xml
from .query import network_buckets, policies_for_host, policies_for_subnet
from .unifier import merge_policies
from .utils import ParseError, parse_cidr, parse_ipv4_address


POLICY_FIELDS = [
    "policy_id",
    "name",
    "service",
    "origin",
    "from_aliases",
    "to_aliases",
    "src_cidrs",
    "dst_cidrs",
    "src_hosts",
    "dst_hosts",
    "nat",
    "tags",
    "notes",
]

NETWORK_FIELDS = ["cidr", "interface", "zone", "vlan_id", "derived"]


def _join(values: Iterable[object]) -> str:
    return " ".join(str(value) for value in values)


def _nat_label(policy: UnifiedPolicy) -> str:
    if policy.nat is None:
        return ""
    labels = []
    if policy.nat.dnat:
        labels.append("dnat")
    if policy.nat.one_to_one:
        labels.append("one-to-one")
    return _join(labels)


def _policy_row(policy: UnifiedPolicy) -> dict[str, str]:
    """Flatten a unified policy into a CSV row."""
    return {
        "policy_id": policy.policy_id,
        "name": policy.name,
        "service": policy.service or "",
        "origin": policy.origin.value,
        "from_aliases": _join(policy.from_aliases),
        "to_aliases": _join(policy.to_aliases),
        "src_cidrs": _join(policy.src_cidrs),
        "dst_cidrs": _join(policy.dst_cidrs),
        "src_hosts": _join(policy.src_hosts),
        "dst_hosts": _join(policy.dst_hosts),
        "nat": _nat_label(policy),
        "tags": _join(policy.tags),
        "notes": "; ".join(policy.notes),
    }


def _network_rows(domain: Domain, policies: Iterable[UnifiedPolicy]) -> list[dict[str, str]]:
    """List interface networks first, then /24 buckets derived from policies."""
    rows: list[dict[str, str]] = []
    seen: set[IPv4Network] = set()
    for interface in domain.interfaces:
        for cidr in interface.cidrs:
            # Point-to-point /32s are not useful as network nodes.
            if cidr.prefixlen == 32:
                continue
            seen.add(cidr)
            rows.append(
                {
                    "cidr": str(cidr),
                    "interface": interface.name,
                    "zone": interface.zone.value,
                    "vlan_id": interface.vlan_id or "",
                    "derived": "false",
                }
            )
    for bucket in network_buckets(policies):
        if bucket in seen:
            continue
        seen.add(bucket)
        rows.append({"cidr": str(bucket), "interface": "", "zone": "", "vlan_id": "", "derived": "true"})
    return rows


def _write_csv(output_path: Path, fieldnames: list[str], rows: Iterable[dict[str, str]]) -> int:
    """Write rows to a CSV file and return how many were written."""
    count = 0
    with output_path.open("w", newline="", encoding="utf-8") as handle:
        writer = csv.DictWriter(handle, fieldnames=fieldnames)
        writer.writeheader()
        for row in rows:
            writer.writerow(row)
            count += 1
    return count


def _filter_policies(
    policies: list[UnifiedPolicy],
    subnet: Optional[str],
    host: Optional[str],
) -> list[UnifiedPolicy]:
    """Apply the optional --subnet and --host filters."""
    if subnet:
        policies = policies_for_subnet(policies, parse_cidr(subnet))
    if host:
        policies = policies_for_host(policies, parse_ipv4_address(host))
    return policies


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Firewall Policy Map")
    parser.add_argument("--config", required=True, help="WatchGuard XML configuration export")
    parser.add_argument(
        "--excel",
        action="append",
        default=[],
        help="Additional spreadsheet policy source (repeatable)",
    )
    parser.add_argument("--out", required=True, help="Output CSV path for unified policies")
    parser.add_argument("--networks-out", help="Optional CSV path for interface and derived networks")
    parser.add_argument("--subnet", help="Only output policies touching this CIDR")
    parser.add_argument("--host", help="Only output policies covering this IPv4 address")
    parser.add_argument(
        "--strict-masks",
        action="store_true",
        help="Reject non-contiguous dotted netmasks instead of counting set bits",
    )
    parser.add_argument(
        "--log-level",
        default="info",
        choices=["debug", "info", "warning", "error", "fatal"],
        help="Logging verbosity (debug, info, warning, error, fatal)",
    )
    parser.add_argument(
        "--log-file",
        help="Optional log file path (defaults to console output)",
    )
    return parser


def main(argv: Optional[list[str]] = None) -> None:
    """CLI entrypoint."""
    args = build_parser().parse_args(argv)

    handler = configure_logging(args.log_level, args.log_file)
    logger = logging.getLogger(__name__)
    try:
        logger.info("Loading configuration %s", args.config)
        data = load_watchguard_xml(args.config, strict_masks=args.strict_masks)
        domain = data.build_domain()
        sources = [data.materialize(data.build_resolver(domain))]
        for workbook in args.excel:
            sources.append(parse_excel_policies(workbook, strict_masks=args.strict_masks))
        policies = merge_policies(sources)
        logger.info("Unified %s policies from %s sources", len(policies), len(sources))

        selected = _filter_policies(policies, args.subnet, args.host)
        written = _write_csv(Path(args.out), POLICY_FIELDS, (_policy_row(policy) for policy in selected))
        logger.info("Wrote %s rows to %s", written, args.out)

        if args.networks_out:
            written = _write_csv(Path(args.networks_out), NETWORK_FIELDS, _network_rows(domain, policies))
            logger.info("Wrote %s rows to %s", written, args.networks_out)
    except ParseError as exc:
        logger.warning("Parsing failed: %s", exc)
        raise SystemExit(str(exc)) from exc
    except Exception:
        logger.fatal("Fatal error during processing", exc_info=True)
        raise
    finally:
        close_handler(handler)


if __name__ == "__main__":
    main()
