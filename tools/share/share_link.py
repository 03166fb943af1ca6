from __future__ import annotations

import argparse
import asyncio
import json
import sys
from dataclasses import asdict
from pathlib import Path

# Allow running from repo root without installing as a package.
sys.path.insert(0, str(Path(__file__).resolve().parents[2]))

from playground.share.snapshot import SessionSnapshot, ShareClient, share_param_from_url, share_query


async def _create(args: argparse.Namespace) -> None:
    snapshot = SessionSnapshot(
        original=Path(args.original).read_text(encoding="utf-8"),
        result=Path(args.result).read_text(encoding="utf-8"),
    )
    client = ShareClient(args.endpoint, origin=args.origin)
    try:
        encoded = await client.create_link(snapshot)
    finally:
        await client.aclose()
    print(f"{args.playground_url.rstrip('/')}/?{share_query(encoded)}")


async def _resolve(args: argparse.Namespace) -> None:
    s = share_param_from_url(args.link) if "://" in args.link else args.link
    if not s:
        raise SystemExit(f"no share parameter found in {args.link}")
    client = ShareClient(args.endpoint, origin=args.origin)
    try:
        snapshot = await client.resolve(s)
    finally:
        await client.aclose()
    print(json.dumps(asdict(snapshot), ensure_ascii=False, indent=2))


def main() -> None:
    ap = argparse.ArgumentParser(description="Create or resolve overlay playground share links.")
    ap.add_argument("--endpoint", default="http://localhost:8000", help="Share API base URL")
    ap.add_argument("--origin", default="http://localhost:5173", help="Origin header to send")
    sub = ap.add_subparsers(dest="command", required=True)

    create = sub.add_parser("create", help="Upload two documents and print a share URL")
    create.add_argument("--original", required=True, help="Original document path")
    create.add_argument("--result", required=True, help="Result (overlay) document path")
    create.add_argument("--playground-url", default="http://localhost:5173", help="Playground base URL")

    resolve = sub.add_parser("resolve", help="Print the snapshot behind a share URL or `s` value")
    resolve.add_argument("link", help="Full share URL or the raw `s` parameter")

    args = ap.parse_args()
    if args.command == "create":
        asyncio.run(_create(args))
    else:
        asyncio.run(_resolve(args))


if __name__ == "__main__":
    main()
