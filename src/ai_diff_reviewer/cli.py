"""
Command Line Interface

`ai-diff-reviewer review|list|open|serve|export|doctor|config|cache clear`
"""

import argparse
import asyncio
import json
import logging
import signal
import sys
import webbrowser
from dataclasses import replace
from typing import List, Optional

from . import __version__
from .config import SECOND_PASS_POLICIES, AppConfig, set_config
from .engine.executor import AsyncSubprocessExecutor, EngineExecutionError
from .engine.runner import TaskRunner
from .formatting.export import EXPORT_FORMATS, ReviewExporter
from .git.client import DiffOptions, GitClient, GitCommandError
from .pipeline import ReviewPipeline
from .runs.store import RunNotFoundError, RunStore
from .server import run_server


logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_ERROR = 1


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="ai-diff-reviewer",
        description="Turn a diff into a grouped, annotated review run",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--config", dest="config_file", help="YAML configuration file")
    parser.add_argument("--log-level", help="Log level (DEBUG, INFO, WARNING, ERROR)")
    subparsers = parser.add_subparsers(dest="command", required=True)

    review = subparsers.add_parser("review", help="Review a diff and store the run")
    selector = review.add_mutually_exclusive_group()
    selector.add_argument("--staged", action="store_true", help="Review staged changes")
    selector.add_argument("--uncommitted", action="store_true", help="Review uncommitted changes (default)")
    selector.add_argument("--range", help="Review a revision range (e.g. main..feature)")
    selector.add_argument("--commit", help="Review a single commit")
    selector.add_argument("--since", help="Review changes since a revision")
    selector.add_argument("--diff-file", help="Review a diff file")
    selector.add_argument("--diff-stdin", action="store_true", help="Read the diff from stdin")
    review.add_argument("--paths", nargs="+", default=[], help="Limit the diff to these paths")
    review.add_argument("--context", help="Repository context file")
    review.add_argument("--model", help="Engine model")
    review.add_argument("--reasoning-effort", help="Engine reasoning effort")
    review.add_argument("--profile", help="Engine profile")
    review.add_argument("--oss", action="store_true", default=None, help="Use the engine's local OSS provider")
    review.add_argument("--cd", help="Engine working directory")
    review.add_argument("--timeout", type=float, help="Per-task engine timeout in seconds")
    review.add_argument("--second-pass", choices=sorted(SECOND_PASS_POLICIES), help="Second review pass policy")
    review.add_argument("--no-annotations", action="store_true", help="Skip the inline annotation task")
    review.add_argument("--open", action="store_true", help="Serve the run and open it in a browser")

    list_parser = subparsers.add_parser("list", help="List previous review runs")
    list_parser.add_argument("--limit", type=int, default=20, help="Limit results")
    list_parser.add_argument("--json", action="store_true", help="Output JSON")

    open_parser = subparsers.add_parser("open", help="Serve a run and open it in a browser")
    open_parser.add_argument("run_id", nargs="?", help="Run id")
    open_parser.add_argument("--latest", action="store_true", help="Open the most recent run")

    serve = subparsers.add_parser("serve", help="Start the read-only API server")
    serve.add_argument("--host", help="Host")
    serve.add_argument("--port", type=int, help="Port")

    export = subparsers.add_parser("export", help="Export a run")
    export.add_argument("run_id", help="Run id")
    export.add_argument("--format", choices=EXPORT_FORMATS, default="json", help="Export format")
    export.add_argument("--out", default="./ai-diff-reviewer-export", help="Output directory")

    subparsers.add_parser("doctor", help="Check external dependencies")
    subparsers.add_parser("config", help="Print the effective configuration")

    cache = subparsers.add_parser("cache", help="Manage stored runs")
    cache_commands = cache.add_subparsers(dest="cache_command", required=True)
    cache_commands.add_parser("clear", help="Delete all stored runs")

    return parser.parse_args(argv)


def load_config(args: argparse.Namespace) -> AppConfig:
    """Base config (YAML file or environment) with command line overrides applied."""
    config = AppConfig.from_yaml(args.config_file) if args.config_file else AppConfig.from_env()

    if args.log_level:
        config.logging = replace(config.logging, level=args.log_level)

    if args.command == "review":
        engine_overrides = {
            "model": args.model,
            "reasoning_effort": args.reasoning_effort,
            "profile": args.profile,
            "oss": args.oss,
            "cd": args.cd,
            "timeout_seconds": args.timeout,
        }
        config.engine = replace(config.engine, **{k: v for k, v in engine_overrides.items() if v is not None})

        review_overrides = {"second_pass": args.second_pass}
        if args.no_annotations:
            review_overrides["annotations_enabled"] = False
        config.review = replace(config.review, **{k: v for k, v in review_overrides.items() if v is not None})

    if args.command == "serve":
        server_overrides = {"host": args.host, "port": args.port}
        config.server = replace(config.server, **{k: v for k, v in server_overrides.items() if v is not None})

    return config


async def resolve_store(config: AppConfig, git: GitClient) -> RunStore:
    root = config.store.repo_root or (await git.repo_info()).root
    return RunStore(root, config.store.runs_dir)


async def cmd_review(args: argparse.Namespace, config: AppConfig) -> int:
    git = GitClient()
    options = DiffOptions(
        staged=args.staged,
        uncommitted=args.uncommitted,
        range=args.range,
        commit=args.commit,
        since=args.since,
        diff_file=args.diff_file,
        diff_stdin=args.diff_stdin,
        paths=args.paths,
    )

    diff_result, repo = await asyncio.gather(git.get_diff(options), git.repo_info())
    if config.store.repo_root:
        repo = repo.model_copy(update={"root": config.store.repo_root})
    if not diff_result.diff_text.strip():
        print("Diff is empty. Nothing to review.")

    cancel_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGTERM, cancel_event.set)
    except NotImplementedError:
        logger.debug("Signal handlers not supported on this platform")

    store = RunStore(repo.root, config.store.runs_dir)
    runner = TaskRunner(config.engine, cancel_event=cancel_event)
    pipeline = ReviewPipeline(store, config=config, runner=runner)
    document = await pipeline.review(
        diff_result.diff_text, diff_result.diff_source, repo, context_path=args.context
    )

    stats = document.stats
    print(f"Run {document.run_id} ready.")
    print(
        f"{stats.files_changed} files (+{stats.insertions}/-{stats.deletions}), "
        f"{len(document.groups)} groups, {len(document.context_notes)} notes, "
        f"{document.bug_count} bugs, {document.flag_count} flags"
    )
    if document.ai.fallback_reason:
        print(f"Fallback: {document.ai.fallback_reason}")

    if args.open:
        serve_and_open(store, config, document.run_id)
    return EXIT_OK


async def cmd_list(args: argparse.Namespace, config: AppConfig) -> int:
    store = await resolve_store(config, GitClient())
    runs = store.list(limit=args.limit)

    if args.json:
        print(json.dumps({"runs": [run.to_dict() for run in runs]}, indent=2))
        return EXIT_OK

    if not runs:
        print("No runs found.")
        return EXIT_OK

    for run in runs:
        print(
            f"{run.run_id} {run.created_at} {run.branch} {run.head_sha[:7]} {run.diff_source.kind} "
            f"{run.stats.files_changed} files (+{run.stats.insertions}/-{run.stats.deletions}), "
            f"{run.groups_count} groups, {run.findings_count} bugs, {run.flags_count} flags"
        )
    return EXIT_OK


async def cmd_open(args: argparse.Namespace, config: AppConfig) -> int:
    store = await resolve_store(config, GitClient())
    run_id = args.run_id
    if args.latest:
        latest = store.latest()
        run_id = latest.run_id if latest else None

    if not run_id:
        print("Run id required.", file=sys.stderr)
        return EXIT_ERROR

    store.read_raw(run_id)
    serve_and_open(store, config, run_id)
    return EXIT_OK


async def cmd_serve(args: argparse.Namespace, config: AppConfig) -> int:
    store = await resolve_store(config, GitClient())
    run_server(store, host=config.server.host, port=config.server.port, debug=config.debug)
    return EXIT_OK


async def cmd_export(args: argparse.Namespace, config: AppConfig) -> int:
    store = await resolve_store(config, GitClient())
    document, diff_text = store.read(args.run_id)
    written = ReviewExporter().export(document, diff_text, args.format, args.out)
    print(f"Exported {args.run_id} to {written[0].parent}")
    return EXIT_OK


async def cmd_doctor(args: argparse.Namespace, config: AppConfig) -> int:
    executor = AsyncSubprocessExecutor()
    checks = [("git", ["git", "--version"]), (config.engine.command, [config.engine.command, "--version"])]

    all_ok = True
    for label, command in checks:
        try:
            result = await executor.execute(command, timeout=30)
            ok = result.exit_code == 0
        except EngineExecutionError as e:
            logger.debug(f"{label} check failed: {e.diagnostics()}")
            ok = False
        all_ok = all_ok and ok
        print(f"{'✓' if ok else '✗'} {label}")

    return EXIT_OK if all_ok else EXIT_ERROR


async def cmd_config(args: argparse.Namespace, config: AppConfig) -> int:
    store = await resolve_store(config, GitClient())
    print(json.dumps({
        "repoRoot": str(store.repo_root),
        "runsRoot": str(store.runs_root),
        "config": config.to_dict(),
    }, indent=2))
    return EXIT_OK


async def cmd_cache(args: argparse.Namespace, config: AppConfig) -> int:
    store = await resolve_store(config, GitClient())
    removed = store.clear()
    print(f"Cache cleared ({removed} runs removed).")
    return EXIT_OK


COMMANDS = {
    "review": cmd_review,
    "list": cmd_list,
    "open": cmd_open,
    "serve": cmd_serve,
    "export": cmd_export,
    "doctor": cmd_doctor,
    "config": cmd_config,
    "cache": cmd_cache,
}


def serve_and_open(store: RunStore, config: AppConfig, run_id: str) -> None:
    url = f"http://{config.server.host}:{config.server.port}/api/run/{run_id}"
    print(f"Server running at http://{config.server.host}:{config.server.port}")
    webbrowser.open(url)
    run_server(store, host=config.server.host, port=config.server.port, debug=False)


async def async_main(args: argparse.Namespace, config: AppConfig) -> int:
    """Async entry point."""
    return await COMMANDS[args.command](args, config)


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)

    try:
        config = load_config(args)
        set_config(config)
    except (OSError, ValueError, TypeError) as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return EXIT_ERROR

    try:
        return asyncio.run(async_main(args, config))
    except RunNotFoundError as e:
        print(str(e), file=sys.stderr)
        return EXIT_ERROR
    except GitCommandError as e:
        print(f"Git error: {e} {e.stderr}".rstrip(), file=sys.stderr)
        return EXIT_ERROR
    except OSError as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_ERROR
    except KeyboardInterrupt:
        print("Interrupted.", file=sys.stderr)
        return 130


if __name__ == "__main__":
    raise SystemExit(main())
