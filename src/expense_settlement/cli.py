"""Settlement engine command line interface.

Provides operational tools for:
- Revenue pulls (usually run by a scheduler as the system user)
- Paper claim imports from .xlsx or JSON rows
- Settlement generation
- Monthly reports

Usage:
    python -m expense_settlement.cli pull-revenue --period 2024-05 --system
    python -m expense_settlement.cli import-paper --period 2024-05 --user fin1 --file claims.xlsx
    python -m expense_settlement.cli settle --project P1 --period 2024-05 --user fin1
    python -m expense_settlement.cli report --period 2024-05 --user fin1 --output report.xlsx
"""

from __future__ import annotations

import argparse
import asyncio
import base64
import json
import sys
from pathlib import Path
from typing import Any, Awaitable, Callable

from expense_settlement.authz import CurrentUser
from expense_settlement.config import get_settings
from expense_settlement.constants import Collection, Role, UserStatus
from expense_settlement.context import EngineContext, build_context
from expense_settlement.errors import AppError, ValidationError
from expense_settlement.logging_config import configure_logging
from expense_settlement.services.identity import resolve_current_user
from expense_settlement.services.import_service import ImportReconciler
from expense_settlement.services.report_service import ReportService
from expense_settlement.services.settlement_service import SettlementService

ContextFactory = Callable[[], Awaitable[EngineContext]]
Operation = Callable[[EngineContext, argparse.Namespace], Awaitable[dict[str, Any]]]


def read_json_rows(path: str) -> list[dict[str, Any]]:
    """Load a JSON array (or ``{"items": [...]}``) of rows from a file."""
    try:
        data = json.loads(Path(path).read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        raise ValidationError(f"Could not read rows from {path}: {e}") from e
    if isinstance(data, dict):
        data = data.get("items")
    if not isinstance(data, list):
        raise ValidationError(f"{path} must contain a JSON array of rows")
    return data


def read_file_base64(path: str) -> str:
    """Read a binary file (an .xlsx upload) as base64 text."""
    try:
        content = Path(path).read_bytes()
    except OSError as e:
        raise ValidationError(f"Could not read {path}: {e}") from e
    return base64.b64encode(content).decode("ascii")


class SettlementCli:
    """Settlement engine command line interface."""

    def __init__(self, context_factory: ContextFactory | None = None) -> None:
        self.context_factory = context_factory or build_context
        self.parser = self._build_parser()

    def _build_parser(self) -> argparse.ArgumentParser:
        """Build argument parser."""
        parser = argparse.ArgumentParser(
            prog="python -m expense_settlement.cli",
            description="Expense settlement operational tools",
        )
        subparsers = parser.add_subparsers(dest="command", help="Commands")

        pull = subparsers.add_parser("pull-revenue", help="Pull period revenue from the feed")
        pull.add_argument("--period", required=True, help="Period (YYYY-MM)")
        who = pull.add_mutually_exclusive_group(required=True)
        who.add_argument("--user", help="Acting user id")
        who.add_argument("--system", action="store_true", help="Run as the scheduler")
        pull.add_argument("--rows-file", help="JSON rows instead of the configured feed")

        paper = subparsers.add_parser("import-paper", help="Import paper expense claims")
        paper.add_argument("--period", required=True, help="Period (YYYY-MM)")
        paper.add_argument("--user", required=True, help="Acting user id")
        source = paper.add_mutually_exclusive_group(required=True)
        source.add_argument("--file", help="Path to an .xlsx workbook")
        source.add_argument("--rows-file", help="Path to JSON rows")
        paper.add_argument(
            "--mode",
            choices=["excel", "manual"],
            default="excel",
            help="Claim source tag (default: excel)",
        )

        settle = subparsers.add_parser("settle", help="Generate a project settlement")
        settle.add_argument("--project", required=True, help="Project id")
        settle.add_argument("--period", required=True, help="Period (YYYY-MM)")
        settle.add_argument("--user", required=True, help="Acting user id")

        report = subparsers.add_parser("report", help="Generate the monthly report")
        report.add_argument("--period", required=True, help="Period (YYYY-MM)")
        report.add_argument("--user", required=True, help="Acting user id")
        report.add_argument("--project", help="Restrict to one project")
        report.add_argument("--output", help="Write the .xlsx workbook to this path")

        add_user = subparsers.add_parser("add-user", help="Register or update a user")
        add_user.add_argument("--user-id", required=True)
        add_user.add_argument("--role", choices=[r.value for r in Role], default=Role.APPLICANT.value)
        add_user.add_argument("--name", default="")
        add_user.add_argument("--disabled", action="store_true")

        return parser

    def run(self, args: list[str] | None = None) -> int:
        """Run the CLI with given arguments."""
        parsed = self.parser.parse_args(args)

        if not parsed.command:
            self.parser.print_help()
            return 1

        # Dispatch to command handler
        handlers: dict[str, Operation] = {
            "pull-revenue": self._cmd_pull_revenue,
            "import-paper": self._cmd_import_paper,
            "settle": self._cmd_settle,
            "report": self._cmd_report,
            "add-user": self._cmd_add_user,
        }

        handler = handlers.get(parsed.command)
        if handler is None:
            print(f"Unknown command: {parsed.command}", file=sys.stderr)
            return 1

        return asyncio.run(self._execute(handler, parsed))

    async def _execute(self, handler: Operation, args: argparse.Namespace) -> int:
        ctx = await self.context_factory()
        try:
            result = await handler(ctx, args)
        except AppError as e:
            self._print({"ok": False, "error": e.to_dict()})
            return 1
        finally:
            await ctx.close()
        self._print({"ok": True, **result})
        return 0

    def _print(self, envelope: dict[str, Any]) -> None:
        print(json.dumps(envelope, indent=2, ensure_ascii=False, default=str))

    async def _actor(self, ctx: EngineContext, args: argparse.Namespace) -> CurrentUser:
        return await resolve_current_user(ctx.store, args.user)

    async def _cmd_pull_revenue(self, ctx: EngineContext, args: argparse.Namespace) -> dict[str, Any]:
        rows = read_json_rows(args.rows_file) if args.rows_file else None
        actor = None if args.system else await self._actor(ctx, args)
        return await ImportReconciler(ctx).pull_revenue(
            args.period, actor, rows=rows, system=args.system
        )

    async def _cmd_import_paper(self, ctx: EngineContext, args: argparse.Namespace) -> dict[str, Any]:
        actor = await self._actor(ctx, args)
        if args.file:
            file_base64 = read_file_base64(args.file)
            return await ImportReconciler(ctx).import_paper_claims(
                args.period, actor, file_base64=file_base64, mode=args.mode
            )
        return await ImportReconciler(ctx).import_paper_claims(
            args.period, actor, rows=read_json_rows(args.rows_file), mode=args.mode
        )

    async def _cmd_settle(self, ctx: EngineContext, args: argparse.Namespace) -> dict[str, Any]:
        actor = await self._actor(ctx, args)
        settlement = await SettlementService(ctx).generate_settlement(args.project, args.period, actor)
        return {"settlement": settlement}

    async def _cmd_report(self, ctx: EngineContext, args: argparse.Namespace) -> dict[str, Any]:
        actor = await self._actor(ctx, args)
        report = await ReportService(ctx).generate_monthly_report(
            args.period, actor, project_id=args.project, include_file=bool(args.output)
        )
        if args.output:
            try:
                Path(args.output).write_bytes(base64.b64decode(report.pop("file_base64")))
            except OSError as e:
                raise ValidationError(f"Could not write report to {args.output}: {e}") from e
            report["output"] = args.output
        return {key: report[key] for key in ("period", "stats", "file_name", "output") if key in report}

    async def _cmd_add_user(self, ctx: EngineContext, args: argparse.Namespace) -> dict[str, Any]:
        now = ctx.now()
        user = await ctx.store.upsert_one(
            Collection.USERS,
            {"user_id": args.user_id},
            {
                "role": args.role,
                "name": args.name,
                "status": UserStatus.DISABLED.value if args.disabled else UserStatus.ACTIVE.value,
                "updated_at": now,
            },
            {"created_at": now},
        )
        return {"user": user}


def main() -> int:
    """CLI entry point."""
    configure_logging(get_settings().log_level)
    cli = SettlementCli()
    return cli.run()


if __name__ == "__main__":
    sys.exit(main())
