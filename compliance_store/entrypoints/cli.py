from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any, Callable

from compliance_store.application.notifications import NotificationRequest, NotificationType
from compliance_store.bootstrap.container import AppContainer, build_container
from compliance_store.bootstrap.logging import configure_logging
from compliance_store.bootstrap.settings import Settings, load_settings, resolve_log_dir
from compliance_store.core.errors import AppError, ConfigurationError, ValidationError
from compliance_store.domain.models import ComplianceTier, UserRole

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_USAGE = 2

ContainerFactory = Callable[[Settings], AppContainer]


def _add_identity_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--user", required=True, help="User id whose compliance data is loaded")
    parser.add_argument("--role", required=True, choices=[role.value for role in UserRole])
    parser.add_argument("--tier", default=ComplianceTier.BASIC.value, choices=[tier.value for tier in ComplianceTier])


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="compliance_store", description="Compliance integration store")
    subparsers = parser.add_subparsers(dest="command", required=True)

    sync_parser = subparsers.add_parser("sync", help="Load compliance data and print a summary")
    _add_identity_arguments(sync_parser)

    report_parser = subparsers.add_parser("report", help="Export the compliance report as PDF")
    _add_identity_arguments(report_parser)
    report_parser.add_argument("--output", required=True, type=Path, help="PDF file or target directory")
    report_parser.add_argument("--upload", action="store_true", help="Also upload the PDF to storage")

    notify_parser = subparsers.add_parser("notify", help="Send a notification e-mail")
    notify_parser.add_argument("--type", required=True, choices=[item.value for item in NotificationType])
    notify_parser.add_argument("--email", help="Recipient e-mail")
    notify_parser.add_argument("--name", help="Recipient name")
    notify_parser.add_argument("--user", help="Recipient user id")
    notify_parser.add_argument("--title")
    notify_parser.add_argument("--message", default="")
    notify_parser.add_argument("--action-url")
    return parser


def _summary(container: AppContainer) -> dict[str, Any]:
    state = container.store.get_state()
    tier = state.compliance_tiers[0] if state.compliance_tiers else None
    return {
        "user_id": state.current_user_id,
        "sync_status": state.sync_status.value,
        "last_sync_time": state.last_sync_time,
        "records": len(state.user_compliance_records),
        "completion_percentage": tier.completion_percentage if tier else None,
        "can_advance_tier": tier.can_advance_tier if tier else None,
        "conflicts": len(state.conflict_queue),
        "error": state.error,
        "sync_errors": state.sync_errors,
    }


def _run_sync(container: AppContainer, args: argparse.Namespace) -> int:
    store = container.store
    store.initialize(args.user, args.role, args.tier)
    try:
        summary = _summary(container)
    finally:
        store.cleanup()
    sys.stdout.write(json.dumps(summary, ensure_ascii=False) + "\n")
    return EXIT_FAILURE if summary["error"] else EXIT_OK


def _run_report(container: AppContainer, args: argparse.Namespace) -> int:
    store = container.store
    store.initialize(args.user, args.role, args.tier)
    try:
        if store.get_state().error:
            sys.stderr.write(f"{store.get_state().error}\n")
            return EXIT_FAILURE
        result = container.report_service.export(args.output, upload=args.upload)
    finally:
        store.cleanup()
    output = {"path": str(result.path), "storage_path": result.storage_path, "public_url": result.public_url}
    sys.stdout.write(json.dumps(output, ensure_ascii=False) + "\n")
    return EXIT_OK


def _run_notify(container: AppContainer, args: argparse.Namespace) -> int:
    request = NotificationRequest(
        notification_type=NotificationType(args.type),
        message=args.message,
        recipient_email=args.email,
        recipient_name=args.name,
        user_id=args.user,
        title=args.title,
        action_url=args.action_url,
    )
    response = container.notification_dispatcher.send(request)
    sys.stdout.write(json.dumps(response, ensure_ascii=False, default=str) + "\n")
    return EXIT_OK


_COMMANDS: dict[str, Callable[[AppContainer, argparse.Namespace], int]] = {
    "sync": _run_sync,
    "report": _run_report,
    "notify": _run_notify,
}


def main(argv: list[str] | None = None, *, container_factory: ContainerFactory = build_container) -> int:
    parser = _build_parser()
    try:
        args = parser.parse_args(argv)
    except SystemExit as exc:
        return EXIT_OK if exc.code == 0 else EXIT_USAGE

    configure_logging(resolve_log_dir())
    logger = logging.getLogger("compliance_store.cli")

    try:
        container = container_factory(load_settings())
    except ConfigurationError as exc:
        sys.stderr.write(f"{exc}\n")
        return EXIT_USAGE

    try:
        return _COMMANDS[args.command](container, args)
    except ValidationError as exc:
        sys.stderr.write(f"{exc}\n")
        return EXIT_USAGE
    except AppError as exc:
        logger.error("Command %s failed: %s", args.command, exc)
        sys.stderr.write(f"{exc}\n")
        return EXIT_FAILURE
    finally:
        container.close()
