from __future__ import annotations

import argparse
import json
import logging
import sys
from typing import List, Optional

from touchblock.core.blocking.models import ToggleResult
from touchblock.core.config.manager import ConfigManager
from touchblock.core.config.paths import ConfigFsPaths
from touchblock.core.context import ServiceContext, build_context
from touchblock.core.errors import ConfigError, TouchBlockError
from touchblock.core.logger import setup_logging


def _print_result(action: str, res: ToggleResult) -> int:
    if res.ok:
        via = f", via {res.method.display_name()}" if res.method.is_available() else ""
        print(f"{action}: ok (touch blocking {'on' if res.enabled else 'off'}{via})")
        return 0
    print(f"{action}: {res.message}", file=sys.stderr)
    return 1


def _cmd_status(ctx: ServiceContext, args: argparse.Namespace) -> int:
    state = ctx.orchestrator.observe_state(check_root=not args.basic)
    out = state.model_dump(mode="json")
    out["authorization_method_name"] = state.authorization_method.display_name()
    print(json.dumps(out, indent=2, sort_keys=True))
    return 0 if state.error is None else 1


def _cmd_enable(ctx: ServiceContext, args: argparse.Namespace) -> int:
    return _print_result("enable", ctx.orchestrator.set_blocking(True))


def _cmd_disable(ctx: ServiceContext, args: argparse.Namespace) -> int:
    return _print_result("disable", ctx.orchestrator.set_blocking(False))


def _cmd_toggle(ctx: ServiceContext, args: argparse.Namespace) -> int:
    return _print_result("toggle", ctx.orchestrator.toggle())


def _cmd_request_root(ctx: ServiceContext, args: argparse.Namespace) -> int:
    return _print_result("request-root", ctx.orchestrator.request_root_permission())


def _cmd_module_active(ctx: ServiceContext, args: argparse.Namespace) -> int:
    if args.state == "on":
        ctx.hook_bridge.mark_active()
    else:
        ctx.hook_bridge.mark_inactive()
    print(f"module-active: {args.state} (framework present: {ctx.module_signal.hook_framework_present()})")
    return 0


def _cmd_open_accessibility(ctx: ServiceContext, args: argparse.Namespace) -> int:
    return _print_result("open-accessibility", ctx.orchestrator.open_accessibility_settings())


def _cmd_print_config(ctx: ServiceContext, args: argparse.Namespace) -> int:
    print(json.dumps(ctx.cfg.model_dump(mode="json"), indent=2, sort_keys=True))
    return 0


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(description="touchblock: block touch input through root or a hook module")
    ap.add_argument("--root", default=".", help="Directory holding config/, data/ and logs/.")
    ap.add_argument("--verbose", action="store_true", help="Log at DEBUG level.")
    sub = ap.add_subparsers(dest="command", required=True)

    p = sub.add_parser("status", help="Show touch blocking state and available authorization.")
    p.add_argument("--basic", action="store_true", help="Skip the live superuser check.")
    p.set_defaults(func=_cmd_status)
    sub.add_parser("enable", help="Block touch input.").set_defaults(func=_cmd_enable)
    sub.add_parser("disable", help="Restore touch input.").set_defaults(func=_cmd_disable)
    sub.add_parser("toggle", help="Flip the persisted state.").set_defaults(func=_cmd_toggle)
    sub.add_parser("request-root", help="Ask for superuser access (may show a grant prompt).").set_defaults(func=_cmd_request_root)
    p = sub.add_parser("module-active", help="Set the hook module activation flag.")
    p.add_argument("state", choices=["on", "off"])
    p.set_defaults(func=_cmd_module_active)
    sub.add_parser("open-accessibility", help="Open the accessibility settings screen.").set_defaults(func=_cmd_open_accessibility)
    sub.add_parser("print-config", help="Print the effective configuration.").set_defaults(func=_cmd_print_config)
    return ap


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    fs = ConfigFsPaths(root=args.root)

    try:
        cfg = ConfigManager(fs=fs).load()
    except ConfigError as e:
        print(f"{e.user_message} {e}", file=sys.stderr)
        return 2

    level = logging.DEBUG if args.verbose else getattr(logging, cfg.logging.level.upper(), logging.INFO)
    logger = setup_logging(fs.resolve(cfg.logging.log_dir), level=level, max_bytes=cfg.logging.max_bytes, backup_count=cfg.logging.backup_count)

    ctx = build_context(args.root, cfg=cfg, logger=logger)
    try:
        return int(args.func(ctx, args))
    except TouchBlockError as e:
        logger.error(f"{args.command} failed: {e.to_dict()}")
        print(e.user_message, file=sys.stderr)
        return 1
    finally:
        ctx.close()


if __name__ == "__main__":
    sys.exit(main())
