"""Parser for spreadsheet-based policy lists."""
from __future__ import annotations

import logging
from ipaddress import IPv4Address, IPv4Network
from typing import Any, Optional
from zipfile import BadZipFile

from openpyxl import load_workbook
from openpyxl.utils.exceptions import InvalidFileException

from ..models import PolicyOrigin, UnifiedPolicy
from ..utils import ParseError, parse_cidr, parse_ipv4_address, split_members


HEADER_SYNONYMS: dict[str, tuple[str, ...]] = {
    "name": ("Name", "Policy", "Policy Name"),
    "service": ("Service", "Application", "App"),
    "from": ("From", "Src", "Source"),
    "to": ("To", "Dst", "Destination"),
    "src_cidrs": ("SrcCIDRs", "SrcCIDR", "Source CIDRs"),
    "dst_cidrs": ("DstCIDRs", "DstCIDR", "Destination CIDRs"),
    "src_hosts": ("SrcHosts", "Source Hosts"),
    "dst_hosts": ("DstHosts", "Destination Hosts"),
}


def _build_header_map(headers: list[Any]) -> dict[str, int]:
    """Map each logical column to the first matching header's index."""
    normalized = {
        str(header).strip().lower(): idx for idx, header in reversed(list(enumerate(headers))) if header is not None
    }
    header_map: dict[str, int] = {}
    for column, options in HEADER_SYNONYMS.items():
        for option in options:
            if option.lower() in normalized:
                header_map[column] = normalized[option.lower()]
                break
    return header_map


class _Side:
    """Collects networks and hosts for one side of a spreadsheet policy."""

    def __init__(self, label: str, strict_masks: bool = False) -> None:
        self.label = label
        self.strict_masks = strict_masks
        self.cidrs: dict[IPv4Network, None] = {}
        self.hosts: dict[IPv4Address, None] = {}
        self.aliases: list[str] = []
        self.notes: list[str] = []

    def add_cidr(self, value: str) -> None:
        try:
            self.cidrs.setdefault(parse_cidr(value, strict=self.strict_masks))
        except ParseError as exc:
            self.notes.append(f"[{self.label}] {exc}")

    def add_host(self, value: str) -> None:
        try:
            host = parse_ipv4_address(value)
        except ParseError as exc:
            self.notes.append(f"[{self.label}] {exc}")
            return
        self.hosts.setdefault(host)
        self.cidrs.setdefault(parse_cidr(str(host)))

    def add_endpoint(self, value: str) -> None:
        """Fold an IP or CIDR found in a From/To cell; keep anything else as a name."""
        address = value.split("/", 1)[0]
        try:
            parse_ipv4_address(address)
        except ParseError:
            # Names such as "VPN/Users" are aliases, not networks.
            self.aliases.append(value)
            return
        if "/" in value:
            self.add_cidr(value)
        else:
            self.add_host(value)


def _cell(row: tuple[Any, ...], header_map: dict[str, int], column: str) -> Optional[Any]:
    idx = header_map.get(column)
    if idx is None or idx >= len(row):
        return None
    return row[idx]


def parse_excel_policies(path: str, strict_masks: bool = False) -> list[UnifiedPolicy]:
    """Parse the first sheet of a workbook into already-resolved policies.

    ``strict_masks`` rejects non-contiguous dotted masks in address cells;
    the rejected value is recorded as a note on the policy.
    """
    logger = logging.getLogger(__name__)
    try:
        workbook = load_workbook(path, read_only=True, data_only=True)
    except (OSError, BadZipFile, InvalidFileException) as exc:
        raise ParseError(f"Cannot open workbook {path}: {exc}") from exc

    try:
        sheet = workbook[workbook.sheetnames[0]]
        rows = sheet.iter_rows(values_only=True)
        headers = list(next(rows, ()))
        header_map = _build_header_map(headers)
        if "name" not in header_map:
            raise ParseError(f"Missing policy name column in {path}")

        policies: list[UnifiedPolicy] = []
        for row_number, row in enumerate(rows, start=2):
            name = _cell(row, header_map, "name")
            if name is None or not str(name).strip():
                continue
            service = _cell(row, header_map, "service")

            source = _Side("Source", strict_masks)
            destination = _Side("Destination", strict_masks)
            for side, prefix in ((source, "src"), (destination, "dst")):
                for value in split_members(_cell(row, header_map, f"{prefix}_cidrs")):
                    side.add_cidr(value)
                for value in split_members(_cell(row, header_map, f"{prefix}_hosts")):
                    side.add_host(value)
            for value in split_members(_cell(row, header_map, "from")):
                source.add_endpoint(value)
            for value in split_members(_cell(row, header_map, "to")):
                destination.add_endpoint(value)

            policies.append(
                UnifiedPolicy(
                    policy_id=f"xls-{row_number}",
                    name=str(name).strip(),
                    service=str(service).strip() if service not in (None, "") else None,
                    from_aliases=tuple(source.aliases),
                    to_aliases=tuple(destination.aliases),
                    src_cidrs=tuple(source.cidrs),
                    dst_cidrs=tuple(destination.cidrs),
                    src_hosts=tuple(source.hosts),
                    dst_hosts=tuple(destination.hosts),
                    origin=PolicyOrigin.XLS,
                    notes=tuple(source.notes + destination.notes),
                )
            )
    finally:
        workbook.close()

    logger.info("Parsed %s policies from %s", len(policies), path)
    return policies
