#!/usr/bin/env python3
"""
Monthly reward settlement for cy* token holders.

Inputs (under --data-dir unless given explicitly)
-------------------------------------------------
- transfers.dat  JSON lines: {from, to, value, blockNumber, timestamp, tokenAddress}
- liquidity.dat  JSON lines: LP deposit/transfer/withdraw records (optional)
- blocklist.txt  "<reporter> <reported>" pairs, one per line (optional)
- pools.dat      JSON array of V3 pool addresses to check ticks for (optional)

Method
------
1) Derive the epoch's snapshot blocks from SEED over [START_SNAPSHOT, END_SNAPSHOT].
2) Replay transfers and liquidity changes in block order; only value received
   from approved sources (allow-list or whitelisted factory pools) counts.
3) Drop out-of-range V3 positions per snapshot using the pool tick at that block.
4) Average the snapshots, apply cheat-report penalties and bounties.
5) Split REWARD_POOL across tokens (inverse to total eligible) and accounts.

Outputs
-------
- <output-dir>/balances-<start>-<end>.csv
- <output-dir>/rewards-<start>-<end>.csv   (recipient address, reward amount)
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from .config import CYTOKENS, Settings
from .dataio import (
    load_liquidity_changes,
    load_pools,
    load_reports,
    load_transfers,
    merge_events,
    write_balances_csv,
    write_rewards_csv,
)
from .models import parse_uint
from .processor import Processor
from .rpc import RpcClient, RpcError
from .snapshots import generate_snapshot_blocks


def _parse_snapshots(raw: str) -> list[int]:
    return [parse_uint(s.strip()) for s in raw.split(",") if s.strip()]


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="cyclo-rewards", description=__doc__, formatter_class=argparse.RawDescriptionHelpFormatter)
    parser.add_argument("--rpc-url", default=None, help="JSON-RPC endpoint (env RPC_URL).")
    parser.add_argument("--seed", default=None, help="Snapshot seed (env SEED).")
    parser.add_argument("--start-snapshot", type=int, default=None, help="First block of the epoch (env START_SNAPSHOT).")
    parser.add_argument("--end-snapshot", type=int, default=None, help="Last block of the epoch (env END_SNAPSHOT).")
    parser.add_argument("--snapshot-count", type=int, default=None, help="Number of snapshots (env SNAPSHOT_COUNT, default 30).")
    parser.add_argument("--snapshots", default=None, help="Comma-separated snapshot blocks; overrides the seeded generator.")
    parser.add_argument("--reward-pool", type=parse_uint, default=None, help="Pool in wei (env REWARD_POOL).")
    parser.add_argument("--data-dir", type=Path, default=None, help="Input directory (env DATA_DIR, default data).")
    parser.add_argument("--output-dir", type=Path, default=None, help="Output directory (env OUTPUT_DIR, default output).")
    parser.add_argument("--transfers", type=Path, default=None)
    parser.add_argument("--liquidity", type=Path, default=None)
    parser.add_argument("--blocklist", type=Path, default=None)
    parser.add_argument("--pools", type=Path, default=None)
    parser.add_argument("--log-level", default="INFO", choices=["DEBUG", "INFO", "WARNING", "ERROR"])
    return parser


def run(args: argparse.Namespace) -> int:
    settings = Settings.from_env().replace(
        rpc_url=args.rpc_url,
        seed=args.seed,
        start_snapshot=args.start_snapshot,
        end_snapshot=args.end_snapshot,
        snapshot_count=args.snapshot_count,
        reward_pool=args.reward_pool,
        data_dir=args.data_dir,
        output_dir=args.output_dir,
    )
    data_dir = settings.data_dir

    if args.snapshots:
        snapshots = sorted(_parse_snapshots(args.snapshots))
        if not snapshots:
            raise ValueError("--snapshots must list at least one block")
    else:
        snapshots = generate_snapshot_blocks(settings.seed, settings.start_snapshot, settings.end_snapshot, settings.snapshot_count)
    print(f"Snapshot blocks ({len(snapshots)}): {', '.join(str(b) for b in snapshots)}")

    transfers_path = args.transfers or data_dir / "transfers.dat"
    liquidity_path = args.liquidity or data_dir / "liquidity.dat"
    blocklist_path = args.blocklist or data_dir / "blocklist.txt"
    pools_path = args.pools or data_dir / "pools.dat"

    transfers = load_transfers(transfers_path)
    print(f"Found {len(transfers)} transfers")
    changes = load_liquidity_changes(liquidity_path) if liquidity_path.exists() else []
    print(f"Found {len(changes)} liquidity changes")
    reports = load_reports(blocklist_path) if blocklist_path.exists() else []
    print(f"Found {len(reports)} reports")
    pools = load_pools(pools_path) if pools_path.exists() else None

    processor = Processor(snapshots, reports, RpcClient(settings.rpc_url), tokens=CYTOKENS, pools=pools)

    events = merge_events(transfers, changes)
    processed = 0
    for event in events:
        processor.process_event(event)
        processed += 1
        if processed % 1000 == 0:
            print(f"Processed {processed}/{len(events)} events", flush=True)

    corrections = processor.process_lp_range()
    print(f"Applied {corrections} out-of-range liquidity corrections")

    eligible = processor.get_eligible_balances()
    checks = processor.verify_totals(eligible)
    for token in CYTOKENS:
        totals = checks.get(token.address)
        if totals is None:
            continue
        mark = "ok" if totals.consistent else "MISMATCH"
        print(
            f"{token.name} ({token.underlying}): average={totals.average} penalties={totals.penalty} "
            f"bounties={totals.bounty} final={totals.final} [{mark}]"
        )

    rewards = processor.calculate_rewards(settings.reward_pool, eligible)
    per_address = processor.rewards_by_address(rewards)

    tag = f"{settings.start_snapshot}-{settings.end_snapshot}"
    out_balances = settings.output_dir / f"balances-{tag}.csv"
    out_rewards = settings.output_dir / f"rewards-{tag}.csv"
    n_balances = write_balances_csv(out_balances, CYTOKENS, len(snapshots), eligible, rewards)
    n_rewards = write_rewards_csv(out_rewards, per_address)
    print(f"Wrote `{out_balances}` ({n_balances} addresses) and `{out_rewards}` ({n_rewards} recipients).")

    total_rewards = sum(per_address.values())
    print(f"Total rewards: {total_rewards} | Reward pool: {settings.reward_pool} | Difference: {total_rewards - settings.reward_pool}")
    return 0


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(level=getattr(logging, args.log_level), format="%(asctime)s %(levelname)s %(name)s: %(message)s", stream=sys.stderr)
    try:
        return run(args)
    except (ValueError, RpcError, OSError) as e:
        print(f"error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
