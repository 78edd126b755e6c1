from __future__ import annotations

import argparse
import json
import sys
from typing import Sequence

from .config import settings
from .db import init_db, make_engine, make_session_factory
from .errors import BookingError, ValidationError
from .logging_config import setup_logging
from .reconciler import Reconciler
from .seed import seed_lessons


def _parse_item(raw: str) -> dict:
    """SN01:2 -> {"id": "SN01", "count": 2}"""
    lesson_id, sep, count = raw.partition(":")
    if not sep:
        raise argparse.ArgumentTypeError(f"expected LESSON_ID:COUNT, got {raw!r}")
    try:
        return {"id": lesson_id, "count": int(count)}
    except ValueError:
        raise argparse.ArgumentTypeError(f"count must be an integer in {raw!r}") from None


def cmd_init(args: argparse.Namespace, reconciler: Reconciler) -> None:
    inserted = seed_lessons(reconciler.session_factory)
    print(f"DB initialised, {inserted} lesson(s) seeded.")


def cmd_lessons(args: argparse.Namespace, reconciler: Reconciler) -> None:
    for lesson in reconciler.list_lessons():
        print(f"{lesson['id']} | {lesson['subject'] or '-'} | {lesson['location'] or '-'} | "
              f"price={lesson['price']} | space={lesson['space']}")


def cmd_create_order(args: argparse.Namespace, reconciler: Reconciler) -> None:
    order = reconciler.create_order(args.name, args.phone, args.item)
    print(f"Order created: {order['id']} (total={order['total']}, status={order['status']})")


def cmd_confirm_order(args: argparse.Namespace, reconciler: Reconciler) -> None:
    summary = reconciler.confirm_order(args.order_id, args.item or None)
    print(summary.message)
    for item in summary.updated_lessons:
        print(f"  {item.lesson_id}: -{item.count}")


def cmd_patch_lesson(args: argparse.Namespace, reconciler: Reconciler) -> None:
    try:
        changes = json.loads(args.changes)
    except json.JSONDecodeError:
        raise ValidationError("--changes must be a JSON object", "changes") from None
    summary = reconciler.patch_lesson_fields([{"id": args.lesson_id, "changes": changes}])
    print(f"{summary.message} ({summary.updated_count})")


def cmd_show_order(args: argparse.Namespace, reconciler: Reconciler) -> None:
    order = reconciler.get_order(args.order_id)
    items = ", ".join(f"{i['id']}x{i['count']}" for i in order["cartItems"])
    print(f"{order['id']} | {order['name']} | {order['phone']} | {order['status']} | total={order['total']} | {items}")


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="lesson-booking", description="Lesson booking CLI")
    p.add_argument("--database-url", default=None, help="SQLAlchemy URL (default: DATABASE_URL / local SQLite)")
    sub = p.add_subparsers(required=True)

    p_init = sub.add_parser("init", help="Create tables and seed the default lessons")
    p_init.set_defaults(func=cmd_init)

    p_list = sub.add_parser("lessons", help="List lessons")
    p_list.set_defaults(func=cmd_lessons)

    p_create = sub.add_parser("create-order", help="Create a pending order")
    p_create.add_argument("--name", required=True)
    p_create.add_argument("--phone", required=True)
    p_create.add_argument("--item", type=_parse_item, action="append", required=True, help="LESSON_ID:COUNT (repeatable)")
    p_create.set_defaults(func=cmd_create_order)

    p_confirm = sub.add_parser("confirm-order", help="Reserve seats and confirm a pending order")
    p_confirm.add_argument("--order-id", required=True)
    p_confirm.add_argument("--item", type=_parse_item, action="append", default=[],
                           help="LESSON_ID:COUNT (default: the cart stored on the order)")
    p_confirm.set_defaults(func=cmd_confirm_order)

    p_patch = sub.add_parser("patch-lesson", help="Update fields of a lesson")
    p_patch.add_argument("--lesson-id", required=True)
    p_patch.add_argument("--changes", required=True, help='JSON object, e.g. {"price": 35.99}')
    p_patch.set_defaults(func=cmd_patch_lesson)

    p_show = sub.add_parser("show-order", help="Show an order")
    p_show.add_argument("--order-id", required=True)
    p_show.set_defaults(func=cmd_show_order)

    return p


def main(argv: Sequence[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    setup_logging(settings.log_level)

    engine = make_engine(args.database_url)
    init_db(engine)  # guarantees tables
    reconciler = Reconciler(make_session_factory(engine))
    try:
        args.func(args, reconciler)
    except BookingError as e:
        print(f"Error: {e.message}", file=sys.stderr)
        return 1
    finally:
        engine.dispose()
    return 0


if __name__ == "__main__":
    sys.exit(main())
