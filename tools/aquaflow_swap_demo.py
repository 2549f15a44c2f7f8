#!/usr/bin/env python3

from __future__ import annotations

import argparse
import logging
import sys
import time
from pathlib import Path
from typing import List, Optional

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from aquaflow.core.errors import AquaFlowError
from aquaflow.integration.config import router_config_from_env
from aquaflow.integration.host import CallContext, SimulatedReserveSource
from aquaflow.integration.router import SecureRouter
from aquaflow.state.intents import Intent

OWNER = "0x" + "01" * 20
TRADER = "0x" + "a1" * 20
TOKEN_IN = "0x" + "11" * 20
TOKEN_OUT = "0x" + "22" * 20


def _parse_args(argv: List[str]) -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Offline AquaFlow swap demo against simulated pools.")
    p.add_argument("--pools", type=int, default=3, help="number of pools for the pair")
    p.add_argument("--amount", type=int, default=10**18, help="amount_in (base units)")
    p.add_argument("--swaps", type=int, default=2, help="number of sequential intents")
    p.add_argument("--block", type=int, default=1_000, help="starting block number")
    p.add_argument("--verbose", action="store_true", help="log router events")
    return p.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    args = _parse_args(sys.argv[1:] if argv is None else argv)
    logging.basicConfig(level=logging.INFO if args.verbose else logging.WARNING, format="%(levelname)s %(name)s: %(message)s")

    now = int(time.time())
    router = SecureRouter(
        OWNER,
        config=router_config_from_env(),
        reserve_source=SimulatedReserveSource(),
        genesis_timestamp=now,
    )
    owner_ctx = CallContext(caller=OWNER, block_number=args.block, timestamp=now)

    fee_tiers = (30, 25, 5)
    for i in range(args.pools):
        pool_address = "0x" + f"{0xF00 + i:040x}"
        pool_id = router.add_pool(owner_ctx, TOKEN_IN, TOKEN_OUT, pool_address, fee_tiers[i % len(fee_tiers)])
        router.verify_pool(owner_ctx, pool_id)
        pool = router.registry.get_pool(pool_id)
        print(f"[aquaflow-demo] pool_id={pool_id} fee_bps={pool.fee_bps} reserves=({pool.reserve_a}, {pool.reserve_b})")

    for n in range(args.swaps):
        ctx = CallContext(caller=TRADER, block_number=args.block + 1 + n, timestamp=now + 1 + n)
        quoted = router.get_quote(ctx, TOKEN_IN, TOKEN_OUT, args.amount)
        intent = Intent(
            user=TRADER,
            token_in=TOKEN_IN,
            token_out=TOKEN_OUT,
            amount_in=args.amount,
            min_amount_out=quoted,
            deadline=ctx.timestamp + 3600,
            max_slippage_bps=100,
            nonce=n,
        )
        try:
            out = router.execute_intent(ctx, intent)
        except AquaFlowError as exc:
            print(f"[aquaflow-demo] FAIL (swap {n}): {type(exc).__name__}: {exc}")
            return 1
        pool_id = router.events.last()["pool_id"]
        print(f"[aquaflow-demo] swap {n}: quoted={quoted} out={out} via pool_id={pool_id}")

    print(f"[aquaflow-demo] OK: {args.swaps} swap(s) executed, {len(router.events)} events")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
