from __future__ import annotations

import argparse
import json

from plantasy.core.config import get_settings
from plantasy.core.logging import configure_logging
from plantasy.core.security import issue_identity_token
from plantasy.demo import seed_demo_catalog
from plantasy.domain.base import money_number
from plantasy.domain.orders import ITEMS_PER_PAGE, InvalidStatusTransition, OrderService
from plantasy.persistence.documents import DocumentNotFoundError, DocumentStore
from plantasy.persistence.pg import init_db, session_scope


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Plantasy checkout service CLI")
    top = parser.add_subparsers(dest="command", required=True)

    serve = top.add_parser("serve", help="Run the HTTP API")
    serve.add_argument("--host", default=None)
    serve.add_argument("--port", type=int, default=None)

    top.add_parser("init-db", help="Create database tables")
    top.add_parser("seed-demo", help="Insert demo products and coupon")

    token = top.add_parser("issue-token", help="Issue a customer identity token for local testing")
    token.add_argument("uid")
    token.add_argument("--email", default="")
    token.add_argument("--ttl", type=int, default=None, help="Lifetime in seconds")

    orders = top.add_parser("orders", help="Order administration")
    orders_sub = orders.add_subparsers(dest="orders_command", required=True)

    listing = orders_sub.add_parser("list", help="List orders, newest first")
    listing.add_argument("--status", default=None)
    listing.add_argument("--page-size", type=int, default=ITEMS_PER_PAGE)
    listing.add_argument("--start-after", default=None)

    set_status = orders_sub.add_parser("set-status", help="Move an order to a new status")
    set_status.add_argument("order_id")
    set_status.add_argument("status")

    return parser


def _print(payload: dict) -> None:
    print(json.dumps(payload, ensure_ascii=False, indent=2))


def _list_orders(args: argparse.Namespace) -> int:
    with session_scope() as session:
        page = OrderService(DocumentStore(session)).list_orders(
            status=args.status,
            page_size=args.page_size,
            start_after=args.start_after,
        )
        _print(
            {
                "orders": [
                    {
                        "orderId": order.order_id,
                        "uid": order.uid,
                        "status": order.order_status.value,
                        "grandTotal": money_number(order.pricing.grand_total),
                        "orderedAt": order.timestamps.model_dump(mode="json", by_alias=True)["orderedAt"],
                    }
                    for order in page.orders
                ],
                "nextCursor": page.next_cursor,
            }
        )
    return 0


def _set_status(args: argparse.Namespace) -> int:
    try:
        with session_scope() as session:
            order = OrderService(DocumentStore(session)).update_status(args.order_id, args.status)
            _print({"orderId": order.order_id, "status": order.order_status.value})
    except (DocumentNotFoundError, InvalidStatusTransition) as exc:
        _print({"error": str(exc)})
        return 1
    return 0


def main() -> int:
    configure_logging()
    parser = _build_parser()
    args = parser.parse_args()

    if args.command == "serve":
        import uvicorn

        settings = get_settings()
        uvicorn.run("plantasy.main:app", host=args.host or settings.api_host, port=args.port or settings.api_port)
        return 0

    if args.command == "init-db":
        init_db()
        _print({"status": "ok"})
        return 0

    if args.command == "seed-demo":
        init_db()
        with session_scope() as session:
            _print(seed_demo_catalog(session))
        return 0

    if args.command == "issue-token":
        _print({"uid": args.uid, "token": issue_identity_token(args.uid, email=args.email, ttl_seconds=args.ttl)})
        return 0

    if args.command == "orders":
        init_db()
        if args.orders_command == "list":
            return _list_orders(args)
        if args.orders_command == "set-status":
            return _set_status(args)

    parser.error("unsupported command")
    return 2


if __name__ == "__main__":
    raise SystemExit(main())
