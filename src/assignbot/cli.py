from __future__ import annotations

import argparse
import asyncio
import logging
import sys

from assignbot.adapters.github.rest import GitHubRestAdapter
from assignbot.adapters.storage.sqlite import SqliteStorage
from assignbot.adapters.teams.directory import HttpTeamDirectory, StaticTeamDirectory
from assignbot.config.loader import load_config
from assignbot.config.models import BotConfig
from assignbot.core.errors import AdapterError, ConfigError, FindReviewerError
from assignbot.core.models import Issue, RotationMode
from assignbot.engine.assignment import AssignmentCoordinator
from assignbot.engine.directives import find_review_directive, parse_command
from assignbot.engine.orchestrator import AssignmentOrchestrator, fetch_open_assignments
from assignbot.engine.workqueue import ReviewerWorkqueue
from assignbot.logging.setup import configure_logging


async def build_team_directory(config: BotConfig) -> StaticTeamDirectory:
    if config.teams.api_url is None:
        return StaticTeamDirectory(config.teams.members)
    directory = HttpTeamDirectory(str(config.teams.api_url), config.teams.members)
    try:
        await directory.refresh()
    finally:
        await directory.aclose()
    return directory


def _open_storage(config: BotConfig) -> SqliteStorage:
    storage = SqliteStorage(config.runtime.data_dir)
    storage.init_schema()
    return storage


def _build_orchestrator(
    config: BotConfig,
    tracker: GitHubRestAdapter,
    teams: StaticTeamDirectory,
    storage: SqliteStorage,
    workqueue: ReviewerWorkqueue,
) -> AssignmentOrchestrator:
    coordinator = AssignmentCoordinator(config.assign, teams, storage, workqueue)
    return AssignmentOrchestrator(
        tracker=tracker,
        coordinator=coordinator,
        teams=teams,
        workqueue=workqueue,
        state=storage,
        config=config.assign,
        bot_username=config.runtime.bot_username,
    )


def _open_tracker(config: BotConfig) -> GitHubRestAdapter:
    return GitHubRestAdapter(token=config.github.token, api_base=str(config.github.api_base))


async def _resolve(config: BotConfig, args: argparse.Namespace) -> int:
    organization, _, repository = args.repo.partition("/")
    issue = Issue(
        organization=organization,
        repository=repository,
        number=0,
        author=args.author,
        assignees=tuple(args.assignee or ()),
        is_pr=True,
    )
    workqueue = ReviewerWorkqueue()
    if args.load_workqueue:
        async with _open_tracker(config) as tracker:
            workqueue.replace_all(await fetch_open_assignments(tracker, args.repo))
    else:
        print(
            "note: open PR assignments not loaded; capacity is checked against zero "
            "(use --load-workqueue)",
            file=sys.stderr,
        )
    coordinator = AssignmentCoordinator(
        config.assign,
        await build_team_directory(config),
        _open_storage(config),
        workqueue,
    )
    try:
        candidates = await coordinator.candidate_filter.resolve(issue, args.names)
    except FindReviewerError as exc:
        print(str(exc))
        return 1
    for candidate in sorted(candidates):
        print(candidate)
    return 0


async def _assign_pr(config: BotConfig, args: argparse.Namespace) -> int:
    logger = logging.getLogger("CLI")
    storage = _open_storage(config)
    teams = await build_team_directory(config)
    async with _open_tracker(config) as tracker:
        orchestrator = _build_orchestrator(config, tracker, teams, storage, ReviewerWorkqueue())
        reviewers = await orchestrator.load_workqueue(args.repo)
        logger.info("Loaded reviewer workqueue", extra={"repo": args.repo, "reviewers": reviewers})
        issue = await tracker.get_issue(args.repo, args.number)
        if not args.dry_run:
            decision = await orchestrator.handle_pr_opened(issue)
        elif orchestrator.should_auto_assign(issue):
            diff = await tracker.get_pr_diff(args.repo, args.number)
            decision = await orchestrator.coordinator.determine_assignee(
                issue, diff, find_review_directive(issue.body)
            )
        else:
            decision = None
    if decision is None:
        print("Skipped: not an open PR without assignees, or auto-assign disabled")
        return 0
    provenance = decision.provenance.value if decision.provenance else "no tier matched"
    print(f"{decision.assignee or '-'} ({provenance})")
    for notice in decision.notices:
        print(notice)
    return 0


async def _command(config: BotConfig, args: argparse.Namespace) -> int:
    command = parse_command(args.text, config.runtime.bot_username)
    if command is None:
        print("No assignment command found")
        return 1
    storage = _open_storage(config)
    teams = await build_team_directory(config)
    async with _open_tracker(config) as tracker:
        orchestrator = _build_orchestrator(config, tracker, teams, storage, ReviewerWorkqueue())
        issue = await tracker.get_issue(args.repo, args.number)
        if issue.is_pr:
            await orchestrator.load_workqueue(args.repo)
        outcome = await orchestrator.handle_command(
            issue, command, args.requester, comment_url=args.comment_url
        )
    if outcome is None:
        print("Ignored: comment posted by the bot")
        return 0
    print(f"{outcome.action.value} {outcome.assignee or '-'}")
    if outcome.message:
        print(outcome.message)
    return 0


def _prefs(config: BotConfig, args: argparse.Namespace) -> int:
    storage = _open_storage(config)
    if args.prefs_command == "set":
        current = storage.get_review_prefs(args.username)
        capacity = current.capacity
        if args.unlimited:
            capacity = None
        elif args.capacity is not None:
            capacity = args.capacity
        rotation = current.rotation_mode
        if args.rotation is not None:
            rotation = RotationMode(args.rotation)
        try:
            prefs = storage.upsert_review_prefs(args.username, capacity, rotation)
        except ValueError as exc:
            print(str(exc))
            return 1
        print(_format_prefs(args.username, prefs.capacity, prefs.rotation_mode))
        return 0

    if args.username:
        prefs = storage.get_review_prefs(args.username)
        print(_format_prefs(args.username, prefs.capacity, prefs.rotation_mode))
        return 0
    all_prefs = storage.list_review_prefs()
    if not all_prefs:
        print("No review preferences stored yet.")
    for username, prefs in all_prefs.items():
        print(_format_prefs(username, prefs.capacity, prefs.rotation_mode))
    return 0


def _format_prefs(username: str, capacity: int | None, rotation: RotationMode) -> str:
    capacity_str = "unlimited" if capacity is None else str(capacity)
    return f"{username}: capacity={capacity_str} rotation={rotation.value}"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Reviewer and assignee selection bot")
    parser.add_argument("--config", required=True, help="Path to config YAML file")
    sub = parser.add_subparsers(dest="command", required=True)

    resolve_p = sub.add_parser("resolve", help="Show eligible reviewers for names (no side effects)")
    resolve_p.add_argument("names", nargs="+", help="Usernames, team names or ad-hoc group names")
    resolve_p.add_argument("--repo", required=True, help="owner/name, used for org-qualified names")
    resolve_p.add_argument("--author", required=True, help="PR author login")
    resolve_p.add_argument("--assignee", action="append", help="Existing assignee (repeatable)")
    resolve_p.add_argument(
        "--load-workqueue",
        action="store_true",
        help="Fetch open PR assignments from GitHub so capacity is checked",
    )

    assign_p = sub.add_parser("assign-pr", help="Run new-PR auto-assignment against GitHub")
    assign_p.add_argument("--repo", required=True, help="owner/name")
    assign_p.add_argument("--number", required=True, type=int, help="Pull request number")
    assign_p.add_argument("--dry-run", action="store_true", help="Decide only; do not assign or comment")

    command_p = sub.add_parser("command", help="Apply an assignment command from a comment")
    command_p.add_argument("text", help="Comment body, e.g. \"@bot claim\" or \"r? @user\"")
    command_p.add_argument("--repo", required=True, help="owner/name")
    command_p.add_argument("--number", required=True, type=int, help="Issue or pull request number")
    command_p.add_argument("--requester", required=True, help="Login of the comment author")
    command_p.add_argument("--comment-url", help="Link used when the bot holds the assignment")

    prefs_p = sub.add_parser("prefs", help="Review capacity and rotation preferences")
    prefs_sub = prefs_p.add_subparsers(dest="prefs_command", required=True)
    set_p = prefs_sub.add_parser("set", help="Update a user's preferences")
    set_p.add_argument("username")
    capacity_group = set_p.add_mutually_exclusive_group()
    capacity_group.add_argument("--capacity", type=int, help="Maximum concurrently assigned PRs")
    capacity_group.add_argument("--unlimited", action="store_true", help="Remove the capacity limit")
    set_p.add_argument("--rotation", choices=[mode.value for mode in RotationMode])
    show_p = prefs_sub.add_parser("show", help="Show stored preferences")
    show_p.add_argument("username", nargs="?")
    return parser


def main() -> None:
    args = build_parser().parse_args()
    try:
        config = load_config(args.config)
        configure_logging(config.runtime.log_level)
        if args.command == "resolve":
            code = asyncio.run(_resolve(config, args))
        elif args.command == "assign-pr":
            code = asyncio.run(_assign_pr(config, args))
        elif args.command == "command":
            code = asyncio.run(_command(config, args))
        else:
            code = _prefs(config, args)
    except (ConfigError, AdapterError) as exc:
        logging.getLogger("CLI").error("Fatal error: %s", exc)
        raise SystemExit(1) from exc
    except Exception as exc:  # noqa: BLE001
        logging.getLogger("CLI").exception("Unhandled error")
        raise SystemExit(1) from exc
    raise SystemExit(code)


if __name__ == "__main__":
    main()
