"""Command-line interface for storefront."""

import argparse
import json
import logging
import sys
from pathlib import Path

from . import __version__
from .catalog import CatalogStore
from .config import Settings
from .coupons import CouponEvaluator
from .errors import StorefrontError, ValidationFailedError
from .export import orders_to_csv
from .models import Order
from .order_store import OrderFilter, OrderStore
from .orders import OrderService


def get_services() -> tuple[Settings, OrderService, CatalogStore]:
    """Build settings, the order service and the catalog for the data dir."""
    settings = Settings.from_env()
    service = OrderService(OrderStore(settings.data_dir), settings)
    return settings, service, CatalogStore(settings.data_dir)


def format_order(order: Order) -> str:
    lines = [
        f"{order.id}  {order.status:<11} {order.stage:<9} "
        f"{order.totals.total_base:>10.2f} {order.totals.currency}  {order.created_at}",
    ]
    if order.customer.email:
        name = order.customer.full_name
        who = f"{name} <{order.customer.email}>" if name else order.customer.email
        lines.append(f"  Customer: {who}")
    return "\n".join(lines)


def parse_line_spec(spec: str) -> dict:
    """
    Parse PRODUCT_ID:QTY:PRICE into a cart line.

    Raises:
        ValidationFailedError: If the line doesn't have three parts.
    """
    parts = spec.rsplit(":", 2)
    if len(parts) != 3 or not parts[0]:
        raise ValidationFailedError(f"Invalid line {spec!r}, expected PRODUCT_ID:QTY:PRICE")
    product_id, qty, price = parts
    return {"productId": product_id, "qty": qty, "priceBase": price}


def cmd_catalog_import(args: argparse.Namespace) -> int:
    """Import products from a JSON file."""
    try:
        _, _, catalog = get_services()
        products = catalog.import_products(Path(args.file))
        print(f"Imported {len(products)} product(s)")
        return 0

    except (StorefrontError, OSError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def cmd_catalog_list(args: argparse.Namespace) -> int:
    """List catalog products."""
    try:
        _, _, catalog = get_services()
        products = catalog.list_products()

        if args.json:
            print(json.dumps([p.to_dict() for p in products], indent=2))
            return 0

        if not products:
            print("No products in catalog.")
            return 0

        for p in products:
            coupon = ""
            if p.coupon:
                state = "active" if p.coupon.active else "inactive"
                coupon = f"  coupon {p.coupon.code} ({p.coupon.type} {p.coupon.amount:g}, {state})"
            flag = "" if p.published else "  [unpublished]"
            print(f"{p.id}  {p.slug:<24} {p.price_base:>10.2f}{coupon}{flag}")
        return 0

    except StorefrontError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def cmd_orders_list(args: argparse.Namespace) -> int:
    """List orders, newest first."""
    try:
        _, service, _ = get_services()
        order_filter = OrderFilter(status=args.status or "", stage=args.stage or "")
        orders, total = service.store.list_orders(order_filter, page=1, limit=args.limit)

        if args.json:
            print(json.dumps([o.to_dict() for o in orders], indent=2))
            return 0

        if not orders:
            print("No orders found.")
            return 0

        print(f"Orders ({len(orders)} of {total}):")
        print()
        for o in orders:
            print(format_order(o))
        return 0

    except StorefrontError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def cmd_orders_show(args: argparse.Namespace) -> int:
    """Show one order as JSON."""
    try:
        _, service, _ = get_services()
        order = service.store.get(args.order_id)
        print(json.dumps(order.to_dict(), indent=2))
        return 0

    except StorefrontError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def cmd_orders_set_status(args: argparse.Namespace) -> int:
    """Set an order's status as an operator."""
    try:
        _, service, _ = get_services()
        order = service.apply_status(args.order_id, args.status)
        print(f"Order {order.id}: status={order.status} stage={order.stage}")
        return 0

    except StorefrontError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def cmd_orders_set_stage(args: argparse.Namespace) -> int:
    """Set an order's fulfillment stage as an operator."""
    try:
        _, service, _ = get_services()
        order = service.apply_stage(args.order_id, args.stage)
        print(f"Order {order.id}: status={order.status} stage={order.stage}")
        return 0

    except StorefrontError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def cmd_orders_export(args: argparse.Namespace) -> int:
    """Export all orders as CSV."""
    try:
        _, service, _ = get_services()
        orders, _ = service.store.list_orders(page=1, limit=10**9)
        csv_text = orders_to_csv(orders)

        if args.output:
            Path(args.output).write_text(csv_text, encoding="utf-8")
            print(f"Wrote {len(orders)} order(s) to {args.output}")
        else:
            sys.stdout.write(csv_text)
        return 0

    except (StorefrontError, OSError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def cmd_coupons_check(args: argparse.Namespace) -> int:
    """Evaluate a coupon code against cart lines."""
    try:
        _, _, catalog = get_services()
        lines = [parse_line_spec(s) for s in args.line or []]
        result = CouponEvaluator(catalog).validate(args.code, lines)

        if args.json:
            print(json.dumps(result.to_dict(), indent=2))
        elif result.ok and result.coupon:
            print(f"Coupon {result.coupon.code} applies: discount {result.discount_base}")
            print(f"  Eligible subtotal: {result.coupon.eligible_subtotal}")
        else:
            print(f"Coupon not applied: {result.reason.value if result.reason else 'unknown'}")
        return 0 if result.ok else 2

    except StorefrontError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def cmd_serve(args: argparse.Namespace) -> int:
    """Start the API server."""
    try:
        import uvicorn

        settings = Settings.from_env()
        print("Starting storefront API server...")
        print(f"Data directory: {settings.data_dir}")
        print(f"API docs: http://{args.host}:{args.port}/docs")
        print()

        # When reload is enabled, uvicorn requires the app as an import string
        app_target = "storefront.api:app" if args.reload else None
        if app_target is None:
            from .api import app
            app_target = app

        uvicorn.run(
            app_target,
            host=args.host,
            port=args.port,
            reload=args.reload,
            workers=1,  # file stores are single-host
            log_level=settings.log_level.lower(),
        )
        return 0

    except Exception as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="storefront",
        description="Storefront orders, coupons and fulfillment from the command line.",
    )
    parser.add_argument(
        "--version", action="version", version=f"%(prog)s {__version__}"
    )

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # serve
    serve_parser = subparsers.add_parser("serve", help="Start the API server")
    serve_parser.add_argument(
        "--host", default="127.0.0.1", help="Host to bind to (default: 127.0.0.1)"
    )
    serve_parser.add_argument(
        "--port", "-p", type=int, default=8000, help="Port to bind to (default: 8000)"
    )
    serve_parser.add_argument(
        "--reload", action="store_true", help="Enable auto-reload for development"
    )

    # catalog (subcommand group)
    catalog_parser = subparsers.add_parser("catalog", help="Manage catalog products")
    catalog_subparsers = catalog_parser.add_subparsers(dest="catalog_command")

    catalog_import_parser = catalog_subparsers.add_parser("import", help="Import products from JSON")
    catalog_import_parser.add_argument("file", help="Path to a JSON product list")

    catalog_list_parser = catalog_subparsers.add_parser("list", help="List products")
    catalog_list_parser.add_argument("--json", action="store_true", help="Output as JSON")

    # orders (subcommand group)
    orders_parser = subparsers.add_parser("orders", help="Inspect and update orders")
    orders_subparsers = orders_parser.add_subparsers(dest="orders_command")

    orders_list_parser = orders_subparsers.add_parser("list", help="List orders")
    orders_list_parser.add_argument("--status", help="Filter by status")
    orders_list_parser.add_argument("--stage", help="Filter by stage")
    orders_list_parser.add_argument(
        "--limit", "-n", type=int, default=50, help="Maximum orders to show (default: 50)"
    )
    orders_list_parser.add_argument("--json", action="store_true", help="Output as JSON")

    orders_show_parser = orders_subparsers.add_parser("show", help="Show an order")
    orders_show_parser.add_argument("order_id", help="Order ID")

    orders_status_parser = orders_subparsers.add_parser("set-status", help="Set order status")
    orders_status_parser.add_argument("order_id", help="Order ID")
    orders_status_parser.add_argument(
        "status", help="pending | 'in progress' | completed | cancelled"
    )

    orders_stage_parser = orders_subparsers.add_parser("set-stage", help="Set fulfillment stage")
    orders_stage_parser.add_argument("order_id", help="Order ID")
    orders_stage_parser.add_argument(
        "stage", help="created | packaging | shipped | delivered"
    )

    orders_export_parser = orders_subparsers.add_parser("export", help="Export orders as CSV")
    orders_export_parser.add_argument("--output", "-o", help="Write to file instead of stdout")

    # coupons (subcommand group)
    coupons_parser = subparsers.add_parser("coupons", help="Evaluate coupons")
    coupons_subparsers = coupons_parser.add_subparsers(dest="coupons_command")

    coupons_check_parser = coupons_subparsers.add_parser("check", help="Evaluate a coupon code")
    coupons_check_parser.add_argument("code", help="Coupon code")
    coupons_check_parser.add_argument(
        "--line", "-l", action="append",
        help="Cart line as PRODUCT_ID:QTY:PRICE (repeatable)",
    )
    coupons_check_parser.add_argument("--json", action="store_true", help="Output as JSON")

    return parser


def main() -> int:
    """Main entry point."""
    parser = create_parser()
    args = parser.parse_args()

    try:
        log_level = Settings.from_env().log_level
    except StorefrontError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    logging.basicConfig(
        level=log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )

    if not args.command:
        parser.print_help()
        return 0

    groups = {
        "catalog": ("catalog_command", {
            "import": cmd_catalog_import,
            "list": cmd_catalog_list,
        }),
        "orders": ("orders_command", {
            "list": cmd_orders_list,
            "show": cmd_orders_show,
            "set-status": cmd_orders_set_status,
            "set-stage": cmd_orders_set_stage,
            "export": cmd_orders_export,
        }),
        "coupons": ("coupons_command", {
            "check": cmd_coupons_check,
        }),
    }

    if args.command in groups:
        dest, commands = groups[args.command]
        sub = getattr(args, dest, None)
        if not sub:
            parser.parse_args([args.command, "--help"])
            return 0
        return commands[sub](args)

    if args.command == "serve":
        return cmd_serve(args)

    parser.print_help()
    return 0


if __name__ == "__main__":
    sys.exit(main())
