"""Command-line interface for homegate."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from dataclasses import dataclass
from typing import Any, List, Optional

from . import act
from . import cost
from . import household
from . import settings
from .activity import ActivityLog
from .backend import DualBackend
from .db import init_db
from .errors import HomegateError, PolicyDenied
from .household import Member
from .intent import device_action, door_action, all_doors_action
from .layout import HomeLayout, load_layout
from .policy import policy_summary
from .local import LocalBackend
from .remote import RemoteBackend
from .session import Session, load_session, save_session


@dataclass
class Context:
    backend: DualBackend
    log: ActivityLog
    layout: HomeLayout
    session: Session


def _context() -> Context:
    conn = init_db(str(settings.db_path()))
    layout_file = settings.layout_path()
    layout = load_layout(str(layout_file) if layout_file else None)
    session = load_session(str(settings.session_path()))
    remote = RemoteBackend(
        settings.api_base(),
        token=session.admin.token if session.admin else None,
        device_secret=settings.device_secret(),
        timeout=settings.api_timeout_seconds(),
    )
    backend = DualBackend(LocalBackend(conn, layout), remote)
    log = ActivityLog.load(str(settings.activity_path()))
    return Context(backend=backend, log=log, layout=layout, session=session)


def _save(ctx: Context) -> None:
    save_session(ctx.session, str(settings.session_path()))


def _sign_in_with(ctx: Context, pin: Optional[str]) -> None:
    if pin:
        household.login_pin(ctx.backend, ctx.session, pin)
        _save(ctx)


def _signed_in(ctx: Context, pin: Optional[str]) -> Member:
    """The signed-in member as the backend has it now, with current policies."""
    _sign_in_with(ctx, pin)
    if ctx.session.member_id is None:
        raise HomegateError("sign in first: homegate login pin <PIN>")
    try:
        return household.current_member(ctx.backend, ctx.session)
    except PolicyDenied:
        _save(ctx)
        raise


def _print_member(member: Member) -> None:
    print(f"{member.id} {member.name} role={member.role} relation={member.relation or '-'}")


def _report(outcome: act.Outcome) -> None:
    print(outcome.message)
    if outcome.error:
        outcome.raise_for_error()


def cmd_say(args: argparse.Namespace) -> None:
    ctx = _context()
    member = _signed_in(ctx, args.pin)
    outcome = act.run_text(member, " ".join(args.text), ctx.backend, ctx.log, ctx.layout)
    if args.json:
        print(json.dumps(outcome.to_dict(), indent=2))
        return
    _report(outcome)


def cmd_whoami(args: argparse.Namespace) -> None:
    ctx = _context()
    member = _signed_in(ctx, args.pin)
    _print_member(member)
    print(json.dumps(policy_summary(member.policies), indent=2, sort_keys=True))


def cmd_doors_list(_: argparse.Namespace) -> None:
    ctx = _context()
    result = ctx.backend.get_doors()
    if not result.get("ok"):
        raise HomegateError(f"doors unavailable: {result.get('error')}")
    for door, locked in sorted(result["doors"].items()):
        print(f"{door}: {'locked' if locked else 'unlocked'}")


def cmd_doors_toggle(args: argparse.Namespace) -> None:
    ctx = _context()
    member = _signed_in(ctx, args.pin)
    doors = ctx.backend.get_doors()
    if not doors.get("ok") or args.door not in doors.get("doors", {}):
        raise HomegateError(f"unknown door: {args.door}")
    action = door_action(args.door, not doors["doors"][args.door])
    _report(act.run_action(member, action, ctx.backend, ctx.log, ctx.layout))


def cmd_doors_all(args: argparse.Namespace) -> None:
    ctx = _context()
    member = _signed_in(ctx, args.pin)
    action = all_doors_action(args.locked)
    _report(act.run_action(member, action, ctx.backend, ctx.log, ctx.layout))


def cmd_device_set(args: argparse.Namespace) -> None:
    ctx = _context()
    member = _signed_in(ctx, args.pin)
    action = device_action(args.device, args.value, args.room)
    _report(act.run_action(member, action, ctx.backend, ctx.log, ctx.layout))


def cmd_device_status(args: argparse.Namespace) -> None:
    ctx = _context()
    ids = args.ids or ctx.layout.all_device_ids()
    if len(ids) == 1:
        result = ctx.backend.get_device_state(ids[0])
        states = {ids[0]: result} if result.get("ok") else {}
    else:
        result = ctx.backend.get_device_states(ids)
        states = result.get("states", {})
    if not result.get("ok"):
        raise HomegateError(f"device state unavailable: {result.get('error')}")
    for device_id in ids:
        state = states.get(device_id) or {}
        value = "on" if state.get("value") else "off"
        print(f"{device_id}: {value} ({state.get('recordedAt') or 'never set'})")


def cmd_power_cost(args: argparse.Namespace) -> None:
    ctx = _context()
    member = _signed_in(ctx, args.pin)
    amount = cost.estimate_cost(member, args.kwh, args.rate, args.sector)
    label = cost.SECTORS[args.sector].label
    print(f"{label}: {args.kwh:g} kWh at {args.rate:g} halalas = {cost.format_sar(amount)}")


def cmd_members_list(_: argparse.Namespace) -> None:
    ctx = _context()
    for member in household.list_members(ctx.backend):
        _print_member(member)


def cmd_members_add(args: argparse.Namespace) -> None:
    ctx = _context()
    _sign_in_with(ctx, args.as_pin)
    member = household.add_member(
        ctx.backend, ctx.session, args.name, args.pin, role=args.role, relation=args.relation, email=args.email
    )
    _print_member(member)


def cmd_members_register(args: argparse.Namespace) -> None:
    ctx = _context()
    _sign_in_with(ctx, args.as_pin)
    member = household.register_member(
        ctx.backend,
        ctx.session,
        args.name,
        args.pin,
        template=args.template,
        role=args.role,
        relation=args.relation,
        email=args.email,
    )
    _print_member(member)


def cmd_members_toggle(args: argparse.Namespace) -> None:
    ctx = _context()
    _sign_in_with(ctx, args.as_pin)
    member = household.toggle_member_policy(ctx.backend, ctx.session, args.member_id, args.path)
    print(json.dumps(member.policies.to_dict(), indent=2, sort_keys=True))


def cmd_members_delete(args: argparse.Namespace) -> None:
    ctx = _context()
    _sign_in_with(ctx, args.as_pin)
    household.delete_member(ctx.backend, ctx.session, args.member_id)
    print(f"deleted {args.member_id}")


def cmd_login_pin(args: argparse.Namespace) -> None:
    ctx = _context()
    member = household.login_pin(ctx.backend, ctx.session, args.pin)
    _save(ctx)
    print(f"signed in as {member.name}")


def cmd_login_face(args: argparse.Namespace) -> None:
    ctx = _context()
    member = household.login_face(ctx.backend, ctx.session, args.template)
    _save(ctx)
    print(f"signed in as {member.name}")


def cmd_logout(_: argparse.Namespace) -> None:
    ctx = _context()
    ctx.session.sign_out()
    _save(ctx)
    print("signed out")


def cmd_admin_login(args: argparse.Namespace) -> None:
    ctx = _context()
    member = household.admin_login(ctx.backend, ctx.session, args.email, args.pin)
    _save(ctx)
    print(f"admin session for {member.name}")


def cmd_admin_logout(_: argparse.Namespace) -> None:
    ctx = _context()
    household.admin_logout(ctx.backend, ctx.session)
    _save(ctx)
    print("admin signed out")


def cmd_admin_users(_: argparse.Namespace) -> None:
    ctx = _context()
    for member in household.admin_list_users(ctx.backend, ctx.session):
        _print_member(member)


def cmd_admin_create(args: argparse.Namespace) -> None:
    ctx = _context()
    member = household.admin_create_user(
        ctx.backend, ctx.session, args.name, args.pin, role=args.role, email=args.email
    )
    _print_member(member)


def cmd_admin_role(args: argparse.Namespace) -> None:
    ctx = _context()
    member = household.admin_change_role(ctx.backend, ctx.session, args.member_id, args.role)
    print(f"{member.name} is now {member.role}")


def cmd_admin_delete(args: argparse.Namespace) -> None:
    ctx = _context()
    household.admin_delete_user(ctx.backend, ctx.session, args.member_id)
    print(f"deleted {args.member_id}")


def cmd_activity(args: argparse.Namespace) -> None:
    ctx = _context()
    limit = args.limit or settings.activity_recent_limit()
    for event in ctx.log.recent(limit):
        target = event.door or event.device or "-"
        status = "ok" if event.success else f"failed ({event.reason})" if event.reason else "failed"
        print(f"{event.ts} {event.type} {target} {status}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="homegate")
    sub = parser.add_subparsers(dest="cmd", required=True)

    say = sub.add_parser("say")
    say.add_argument("text", nargs="+")
    say.add_argument("--pin", default=None)
    say.add_argument("--json", action="store_true")
    say.set_defaults(func=cmd_say)

    whoami = sub.add_parser("whoami")
    whoami.add_argument("--pin", default=None)
    whoami.set_defaults(func=cmd_whoami)

    doors = sub.add_parser("doors")
    doors_sub = doors.add_subparsers(dest="subcmd", required=True)

    doors_list = doors_sub.add_parser("list")
    doors_list.set_defaults(func=cmd_doors_list)

    doors_toggle = doors_sub.add_parser("toggle")
    doors_toggle.add_argument("door")
    doors_toggle.add_argument("--pin", default=None)
    doors_toggle.set_defaults(func=cmd_doors_toggle)

    doors_lock_all = doors_sub.add_parser("lock-all")
    doors_lock_all.add_argument("--pin", default=None)
    doors_lock_all.set_defaults(func=cmd_doors_all, locked=True)

    doors_unlock_all = doors_sub.add_parser("unlock-all")
    doors_unlock_all.add_argument("--pin", default=None)
    doors_unlock_all.set_defaults(func=cmd_doors_all, locked=False)

    device = sub.add_parser("device")
    device_sub = device.add_subparsers(dest="subcmd", required=True)

    device_set = device_sub.add_parser("set")
    device_set.add_argument("device")
    device_set.add_argument("value", choices=["on", "off"])
    device_set.add_argument("--room", default=None)
    device_set.add_argument("--pin", default=None)
    device_set.set_defaults(func=cmd_device_set)

    device_status = device_sub.add_parser("status")
    device_status.add_argument("ids", nargs="*")
    device_status.set_defaults(func=cmd_device_status)

    power = sub.add_parser("power")
    power_sub = power.add_subparsers(dest="subcmd", required=True)

    power_cost = power_sub.add_parser("cost")
    power_cost.add_argument("--kwh", type=float, required=True)
    power_cost.add_argument("--rate", type=float, required=True, help="halalas per kWh")
    power_cost.add_argument("--sector", default="residential", choices=sorted(cost.SECTORS))
    power_cost.add_argument("--pin", default=None)
    power_cost.set_defaults(func=cmd_power_cost)

    members = sub.add_parser("members")
    members_sub = members.add_subparsers(dest="subcmd", required=True)

    members_list = members_sub.add_parser("list")
    members_list.set_defaults(func=cmd_members_list)

    for name, func in (("add", cmd_members_add), ("register", cmd_members_register)):
        members_add = members_sub.add_parser(name)
        members_add.add_argument("--name", required=True)
        members_add.add_argument("--pin", required=True)
        members_add.add_argument("--role", default="member", choices=["parent", "member", "child"])
        members_add.add_argument("--relation", default=None)
        members_add.add_argument("--email", default=None)
        members_add.add_argument("--as-pin", default=None, help="sign in with this PIN first")
        if name == "register":
            members_add.add_argument("--template", default=None)
        members_add.set_defaults(func=func)

    members_toggle = members_sub.add_parser("toggle")
    members_toggle.add_argument("member_id")
    members_toggle.add_argument("path", help="controls.<key> or areas.<area>.<key>")
    members_toggle.add_argument("--as-pin", default=None)
    members_toggle.set_defaults(func=cmd_members_toggle)

    members_delete = members_sub.add_parser("delete")
    members_delete.add_argument("member_id")
    members_delete.add_argument("--as-pin", default=None)
    members_delete.set_defaults(func=cmd_members_delete)

    login = sub.add_parser("login")
    login_sub = login.add_subparsers(dest="subcmd", required=True)

    login_pin = login_sub.add_parser("pin")
    login_pin.add_argument("pin")
    login_pin.set_defaults(func=cmd_login_pin)

    login_face = login_sub.add_parser("face")
    login_face.add_argument("template")
    login_face.set_defaults(func=cmd_login_face)

    logout = sub.add_parser("logout")
    logout.set_defaults(func=cmd_logout)

    admin = sub.add_parser("admin")
    admin_sub = admin.add_subparsers(dest="subcmd", required=True)

    admin_login = admin_sub.add_parser("login")
    admin_login.add_argument("--email", required=True)
    admin_login.add_argument("--pin", required=True)
    admin_login.set_defaults(func=cmd_admin_login)

    admin_logout = admin_sub.add_parser("logout")
    admin_logout.set_defaults(func=cmd_admin_logout)

    admin_users = admin_sub.add_parser("users")
    admin_users.set_defaults(func=cmd_admin_users)

    admin_create = admin_sub.add_parser("create")
    admin_create.add_argument("--name", required=True)
    admin_create.add_argument("--pin", required=True)
    admin_create.add_argument("--role", default="parent", choices=["admin", "parent", "member"])
    admin_create.add_argument("--email", default=None)
    admin_create.set_defaults(func=cmd_admin_create)

    admin_role = admin_sub.add_parser("role")
    admin_role.add_argument("member_id")
    admin_role.add_argument("role", choices=["admin", "parent", "member"])
    admin_role.set_defaults(func=cmd_admin_role)

    admin_delete = admin_sub.add_parser("delete")
    admin_delete.add_argument("member_id")
    admin_delete.set_defaults(func=cmd_admin_delete)

    activity = sub.add_parser("activity")
    activity.add_argument("--limit", type=int, default=None)
    activity.set_defaults(func=cmd_activity)

    return parser


def main(argv: Optional[List[Any]] = None) -> None:
    logging.basicConfig(level=settings.log_level(), format="%(levelname)s %(message)s")
    parser = build_parser()
    args = parser.parse_args(argv)
    try:
        args.func(args)
    except (HomegateError, ValueError) as exc:
        print(f"error: {exc}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
