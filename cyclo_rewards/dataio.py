from __future__ import annotations

import csv
import json
from pathlib import Path
from typing import Any, Iterable, Iterator, Sequence

from .allocator import Rewards
from .config import REWARDS_CSV_COLUMN_HEADER_ADDRESS, REWARDS_CSV_COLUMN_HEADER_REWARD
from .eligibility import EligibleBalances
from .models import Address, LiquidityChange, Report, Token, Transfer
from .processor import Event


def ensure_dir(path: Path) -> None:
    path.mkdir(parents=True, exist_ok=True)


def read_json_lines(path: Path) -> Iterator[dict[str, Any]]:
    with path.open("r", encoding="utf-8") as f:
        for lineno, line in enumerate(f, start=1):
            line = line.strip()
            if not line:
                continue
            try:
                record = json.loads(line)
            except json.JSONDecodeError as e:
                raise ValueError(f"{path}:{lineno}: invalid JSON: {e}") from e
            if not isinstance(record, dict):
                raise ValueError(f"{path}:{lineno}: expected a JSON object")
            yield record


def load_transfers(path: Path) -> list[Transfer]:
    return [Transfer.from_record(r) for r in read_json_lines(path)]


def load_liquidity_changes(path: Path) -> list[LiquidityChange]:
    return [LiquidityChange.from_record(r) for r in read_json_lines(path)]


def load_reports(path: Path) -> list[Report]:
    reports: list[Report] = []
    for lineno, line in enumerate(path.read_text(encoding="utf-8").splitlines(), start=1):
        parts = line.split()
        if not parts:
            continue
        if len(parts) != 2:
            raise ValueError(f"{path}:{lineno}: expected '<reporter> <reported>', got {line!r}")
        reports.append(Report(reporter=Address.parse(parts[0]), cheater=Address.parse(parts[1])))
    return reports


def load_pools(path: Path) -> list[Address]:
    data = json.loads(path.read_text(encoding="utf-8"))
    if not isinstance(data, list):
        raise ValueError(f"{path}: expected a JSON array of pool addresses")
    return [Address.parse(p) for p in data]


def merge_events(transfers: Iterable[Transfer], changes: Iterable[LiquidityChange]) -> list[Event]:
    # Stable sort: within a block, transfers first, then liquidity changes, each in file order.
    events: list[Event] = [*transfers, *changes]
    return sorted(events, key=lambda e: e.block_number)


def balances_fieldnames(tokens: Sequence[Token], snapshot_count: int) -> list[str]:
    fields = ["address"]
    for token in tokens:
        fields.extend(f"{token.name}_snapshot{i}" for i in range(1, snapshot_count + 1))
        fields.extend(f"{token.name}_{col}" for col in ("average", "penalty", "bounty", "final", "rewards"))
    fields.append("total_rewards")
    return fields


def write_balances_csv(
    path: Path,
    tokens: Sequence[Token],
    snapshot_count: int,
    eligible: EligibleBalances,
    rewards: Rewards,
) -> int:
    addresses = sorted({a for per_account in eligible.values() for a in per_account})
    ensure_dir(path.parent)
    with path.open("w", newline="", encoding="utf-8") as f:
        w = csv.DictWriter(f, fieldnames=balances_fieldnames(tokens, snapshot_count))
        w.writeheader()
        for address in addresses:
            row: dict[str, Any] = {"address": str(address)}
            total = 0
            for token in tokens:
                summary = eligible.get(token.address, {}).get(address)
                reward = rewards.get(token.address, {}).get(address, 0)
                total += reward
                snapshots = summary.snapshots if summary is not None else [0] * snapshot_count
                for i, value in enumerate(snapshots, start=1):
                    row[f"{token.name}_snapshot{i}"] = str(value)
                row[f"{token.name}_average"] = str(summary.average if summary else 0)
                row[f"{token.name}_penalty"] = str(summary.penalty if summary else 0)
                row[f"{token.name}_bounty"] = str(summary.bounty if summary else 0)
                row[f"{token.name}_final"] = str(summary.final if summary else 0)
                row[f"{token.name}_rewards"] = str(reward)
            row["total_rewards"] = str(total)
            w.writerow(row)
    return len(addresses)


def write_rewards_csv(path: Path, rewards: dict[Address, int]) -> int:
    rows = sorted((a, r) for a, r in rewards.items() if r > 0)
    ensure_dir(path.parent)
    with path.open("w", newline="", encoding="utf-8") as f:
        w = csv.writer(f)
        w.writerow([REWARDS_CSV_COLUMN_HEADER_ADDRESS, REWARDS_CSV_COLUMN_HEADER_REWARD])
        for address, reward in rows:
            w.writerow([str(address), str(reward)])
    return len(rows)
