"""Command-line entry point for the review pipeline and ship gate."""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import TYPE_CHECKING

from shipgate.checks.quality import QualityCheckSuite
from shipgate.config.logging import init_logging
from shipgate.config.review_config import ReviewConfigError, ReviewConfigLoader
from shipgate.config.settings import SettingsValidationError, load_settings
from shipgate.loops.controller import LoopController, NoReviewStateError
from shipgate.loops.scope import resolve_scope
from shipgate.ratelimit.tracker import RateLimitTracker
from shipgate.review.reviewer_adapter import build_review_prompt, load_review_context
from shipgate.ship.gate import ShipGate
from shipgate.storage.checkpoint_store import CheckpointStore
from shipgate.storage.loop_state_store import LoopStateStore
from shipgate.vcs.git import GitClient

if TYPE_CHECKING:
    from collections.abc import Sequence

    from shipgate.config.review_config import ReviewConfig
    from shipgate.config.settings import AppSettings
    from shipgate.loops.controller import LoopRunReport

EXIT_OK = 0
EXIT_BLOCKED = 1
EXIT_USAGE = 2

QUALITY_CHOICES = (
    "all",
    "dead-code",
    "duplicates",
    "circular",
    "dead-ui",
    "packages",
)


def build_parser() -> argparse.ArgumentParser:
    """Build the `shipgate` argument parser."""
    parser = argparse.ArgumentParser(
        prog="shipgate",
        description="Four-loop review pipeline with a ship/no-ship gate.",
    )
    commands = parser.add_subparsers(dest="command", required=True)

    review = commands.add_parser("review", help="Run the review loops.")
    review.add_argument(
        "--free",
        action="store_true",
        help="Run only the free Tier 1 and Tier 2 checks.",
    )
    review.add_argument(
        "--claude",
        action="store_true",
        help="Run the free checks and the reviewer loop.",
    )
    review.add_argument(
        "--skip-external",
        action="store_true",
        help="Run everything except the rate-limited external review.",
    )
    review.add_argument(
        "--all",
        dest="all_loops",
        action="store_true",
        help="Run all four loops (default).",
    )
    review.add_argument(
        "--reviewer-output",
        type=Path,
        default=None,
        help="File holding the reviewer's answer to record as Loop 2.",
    )

    _ = commands.add_parser(
        "review-prompt",
        help="Print the reviewer prompt for the staged change.",
    )

    reviewer_result = commands.add_parser(
        "reviewer-result",
        help="Record a reviewer answer against the current review state.",
    )
    reviewer_result.add_argument(
        "path",
        type=Path,
        help="File holding the reviewer's answer.",
    )

    ship = commands.add_parser("ship", help="Decide whether the change may ship.")
    ship.add_argument(
        "--force",
        action="store_true",
        help="Bypass the gate unconditionally.",
    )

    _ = commands.add_parser("quota", help="Show the external review quota.")

    checkpoint = commands.add_parser("checkpoint", help="Manage command checkpoints.")
    checkpoint_commands = checkpoint.add_subparsers(dest="action", required=True)
    for action, help_text in (
        ("show", "Print a checkpoint."),
        ("complete", "Mark a checkpoint finished."),
        ("resume", "Print where a command should resume."),
    ):
        sub = checkpoint_commands.add_parser(action, help=help_text)
        _add_checkpoint_target(sub)
    update = checkpoint_commands.add_parser("update", help="Update one phase.")
    _add_checkpoint_target(update)
    update.add_argument("phase", help="Phase name.")
    update.add_argument(
        "--status",
        required=True,
        choices=("pending", "in_progress", "complete", "failed"),
        help="New phase status.",
    )
    update.add_argument(
        "--summary",
        default=None,
        help="Context summary for the phase (at most 500 tokens).",
    )

    quality = commands.add_parser("quality", help="Run supplementary quality checks.")
    quality.add_argument("check", choices=QUALITY_CHOICES, help="Check to run.")
    return parser


def _add_checkpoint_target(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("name", help="Command name the checkpoint belongs to.")
    parser.add_argument("--feature", default=None, help="Optional feature name.")


def main(argv: Sequence[str] | None = None) -> int:
    """Parse arguments, run one command and return its exit code."""
    args = build_parser().parse_args(argv)
    try:
        settings = load_settings()
        config = ReviewConfigLoader(path=settings.config_file).load()
    except (SettingsValidationError, ReviewConfigError) as exc:
        _write_stderr(f"{exc}\n")
        return EXIT_USAGE
    init_logging(settings.log_level, stream=sys.stderr)

    try:
        return asyncio.run(_dispatch(args, settings=settings, config=config))
    except KeyboardInterrupt:
        return 130


async def _dispatch(  # noqa: PLR0911
    args: argparse.Namespace,
    *,
    settings: AppSettings,
    config: ReviewConfig,
) -> int:
    command: str = args.command
    if command == "review":
        return await _run_review(args, settings=settings, config=config)
    if command == "review-prompt":
        return await _run_review_prompt(settings)
    if command == "reviewer-result":
        return await _run_reviewer_result(args, settings=settings, config=config)
    if command == "ship":
        return await _run_ship(args, settings=settings, config=config)
    if command == "quota":
        return _run_quota(settings=settings, config=config)
    if command == "checkpoint":
        return await _run_checkpoint(args, settings=settings)
    if command == "quality":
        return await _run_quality(args, settings=settings)
    _write_stderr(f"Unknown command: {command}\n")
    return EXIT_USAGE


async def _run_review(
    args: argparse.Namespace,
    *,
    settings: AppSettings,
    config: ReviewConfig,
) -> int:
    reviewer_output: str | None = None
    if args.reviewer_output is not None:
        try:
            reviewer_output = args.reviewer_output.read_text(encoding="utf-8")
        except OSError as exc:
            _write_stderr(f"Unable to read reviewer output: {exc}\n")
            return EXIT_USAGE
    scope = resolve_scope(
        free=args.free,
        claude=args.claude,
        skip_external=args.skip_external,
        all_loops=args.all_loops,
    )
    controller = LoopController.from_settings(settings, config=config)
    report = await controller.run(scope=scope, reviewer_output=reviewer_output)
    return _emit_report(report)


async def _run_review_prompt(settings: AppSettings) -> int:
    vcs = GitClient(repo_root=settings.repo_root, git_bin=settings.git_bin)
    context = await load_review_context(vcs, settings.repo_root)
    _write_stdout(f"{build_review_prompt(context)}\n")
    return EXIT_OK


async def _run_reviewer_result(
    args: argparse.Namespace,
    *,
    settings: AppSettings,
    config: ReviewConfig,
) -> int:
    try:
        raw = args.path.read_text(encoding="utf-8")
    except OSError as exc:
        _write_stderr(f"Unable to read reviewer output: {exc}\n")
        return EXIT_USAGE
    controller = LoopController.from_settings(settings, config=config)
    try:
        report = await controller.apply_reviewer_output(raw)
    except NoReviewStateError as exc:
        _write_stderr(f"{exc}\n")
        return EXIT_BLOCKED
    return _emit_report(report)


async def _run_ship(
    args: argparse.Namespace,
    *,
    settings: AppSettings,
    config: ReviewConfig,
) -> int:
    vcs = GitClient(repo_root=settings.repo_root, git_bin=settings.git_bin)
    gate = ShipGate(
        store=LoopStateStore(path=settings.loop_state_path, vcs=vcs),
        blocking=config.blocking,
    )
    decision = await gate.evaluate(force=args.force)
    if decision.allowed:
        _write_stdout(f"Ship allowed: {decision.reason}\n")
        return EXIT_OK
    lines = [f"Ship blocked: {decision.reason}"]
    lines.extend(f"  - {blocker}" for blocker in decision.blockers)
    if decision.remediation:
        lines.append(f"Run: {decision.remediation}")
    _write_stdout("\n".join(lines) + "\n")
    return EXIT_BLOCKED


def _run_quota(*, settings: AppSettings, config: ReviewConfig) -> int:
    tracker = RateLimitTracker(
        state_path=settings.rate_limit_path,
        limit_per_hour=config.external.limit_per_hour,
    )
    _write_json(
        {
            "limit_per_hour": tracker.limit_per_hour,
            "remaining": tracker.get_remaining_quota(),
            "can_execute": tracker.can_execute(),
        },
    )
    return EXIT_OK


async def _run_checkpoint(args: argparse.Namespace, *, settings: AppSettings) -> int:
    vcs = GitClient(repo_root=settings.repo_root, git_bin=settings.git_bin)
    store = CheckpointStore(directory=settings.checkpoint_dir, vcs=vcs)
    action: str = args.action
    try:
        if action == "show":
            checkpoint = await store.load(args.name, args.feature)
            if checkpoint is None:
                _write_stderr(f"No checkpoint for {args.name}\n")
                return EXIT_BLOCKED
            _write_json(checkpoint.model_dump(mode="json"))
            return EXIT_OK
        if action == "resume":
            point = await store.get_resume_point(args.name, args.feature)
            _write_json({"phase": point.phase, "summary": point.summary})
            return EXIT_OK
        if action == "complete":
            saved = await store.complete(args.name, args.feature)
        else:
            phase_data: dict[str, object] = {"status": args.status}
            if args.summary is not None:
                phase_data["context_summary"] = args.summary
            saved = await store.update_phase(
                args.name,
                args.phase,
                phase_data,
                args.feature,
            )
    except ValueError as exc:
        _write_stderr(f"{exc}\n")
        return EXIT_USAGE
    return EXIT_OK if saved else EXIT_BLOCKED


async def _run_quality(args: argparse.Namespace, *, settings: AppSettings) -> int:
    suite = QualityCheckSuite(repo_root=settings.repo_root)
    results = await suite.run(args.check)
    for result in results:
        marker = "PASS" if result.passed else "FAIL"
        _write_stdout(f"[{marker}] {result.name}: {result.message}\n")
        for issue in result.issues:
            location = f"{issue.file}:{issue.line}"
            _write_stdout(f"    {location} {issue.kind}: {issue.snippet}\n")
        for package in result.missing_packages:
            _write_stdout(f"    - {package}\n")
    return EXIT_OK if all(result.passed for result in results) else EXIT_BLOCKED


def _emit_report(report: LoopRunReport) -> int:
    document = report.state.to_document()
    if report.warnings:
        document["warnings"] = list(report.warnings)
    _write_json(document)
    for warning in report.warnings:
        _write_stderr(f"warning: {warning}\n")
    return EXIT_OK if report.state.ship_allowed else EXIT_BLOCKED


def _write_json(payload: object) -> None:
    _write_stdout(json.dumps(payload, indent=2) + "\n")


def _write_stdout(message: str) -> None:
    """Write message to stdout without using print."""
    _ = sys.stdout.write(message)


def _write_stderr(message: str) -> None:
    """Write message to stderr without using print."""
    _ = sys.stderr.write(message)


if __name__ == "__main__":
    raise SystemExit(main())
