# backend/flipops/cli/__main__.py
from __future__ import annotations

import argparse

from flipops.cli.seed_demo import seed_demo
from flipops.db import Base, engine


def main() -> None:
    p = argparse.ArgumentParser(prog="flipops")
    sub = p.add_subparsers(dest="command", required=True)

    s = sub.add_parser("seed-demo", help="seed a blocked deal and a fresh deal")
    s.add_argument("--external-id", default="demo-user")
    s.add_argument("--email", default="demo@flipops.local")
    s.add_argument("--name", default="Demo Investor")
    s.add_argument("--create-tables", action="store_true", help="create tables without running migrations")

    args = p.parse_args()

    if args.command == "seed-demo":
        if args.create_tables:
            import flipops.models  # noqa: F401

            Base.metadata.create_all(bind=engine)
        out = seed_demo(external_id=args.external_id, email=args.email, name=args.name)
        print(
            {
                "ok": True,
                "user_id": out.user_id,
                "blocked_deal_id": out.blocked_deal_id,
                "fresh_deal_id": out.fresh_deal_id,
                "block_event_id": out.block_event_id,
            }
        )


if __name__ == "__main__":
    main()
