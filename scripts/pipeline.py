#!/usr/bin/env python3
"""
URL discovery pipeline CLI.

Run discovery and validation submodules against entities, then review
and approve the staged results. Every command prints JSON to stdout;
logs go to stderr.

Examples:
    python scripts/pipeline.py list
    python scripts/pipeline.py execute discovery sitemap --entities companies.csv
    python scripts/pipeline.py execute discovery navigation --entities companies.yaml --project acme
    python scripts/pipeline.py validate path-filter --run-id <run>
    python scripts/pipeline.py results <run> <submodule_run>
    python scripts/pipeline.py approve <run> <submodule_run> --url https://acme.com/about
"""

import argparse
import json
import sys
from pathlib import Path

from loguru import logger

# Add parent dir to path for project packages
sys.path.insert(0, str(Path(__file__).parent.parent))

from fetch import Fetcher, install_shutdown_hooks
from orchestrate import (
    EventPublisher,
    JsonFileDatastore,
    Orchestrator,
    PipelineError,
    Settings,
    configure_logging,
    load_entities_file,
    load_run_config,
)


def _emit(data) -> None:
    print(json.dumps(data, indent=2, default=str))


def _load_config(args) -> dict:
    config = load_run_config(args.config) if getattr(args, "config", None) else {}
    for item in getattr(args, "set", None) or []:
        if "=" not in item:
            raise PipelineError(f"--set expects name=value, got {item!r}")
        name, raw = item.split("=", 1)
        try:
            config[name] = json.loads(raw)
        except json.JSONDecodeError:
            config[name] = raw
    return config


def build_orchestrator(settings: Settings) -> Orchestrator:
    fetcher = Fetcher(settings.fetch_config())
    install_shutdown_hooks(fetcher.browser)
    return Orchestrator(
        store=JsonFileDatastore(settings.store_path),
        publisher=EventPublisher(settings.redis_url, settings.events_channel),
        fetcher=fetcher,
        settings=settings,
    )


def cmd_list(orch: Orchestrator, args) -> dict:
    return orch.list_submodules()


def cmd_execute(orch: Orchestrator, args) -> dict:
    request = {
        "project_id": args.project,
        "run_id": args.run_id,
        "run_entity_ids": args.run_entity or [],
        "config": _load_config(args),
    }
    if args.entities:
        request["entities"] = load_entities_file(args.entities)
    if args.url:
        request["urls"] = args.url
    return orch.execute(args.type, args.name, request)


def cmd_validate(orch: Orchestrator, args) -> dict:
    return orch.execute_validation(args.name, args.run_id, args.run_entity or None, _load_config(args))


def cmd_apply(orch: Orchestrator, args) -> dict:
    return orch.apply_validation(args.run_id, args.submodule_run_id)


def cmd_runs(orch: Orchestrator, args):
    if args.submodule_run_id:
        return orch.get_run(args.run_id, args.submodule_run_id)
    return orch.list_runs(args.run_id)


def cmd_results(orch: Orchestrator, args) -> dict:
    return orch.get_results(args.run_id, args.submodule_run_id)


def cmd_decide(orch: Orchestrator, args) -> dict:
    if args.batch:
        decisions = json.loads(Path(args.batch).read_text(encoding="utf-8"))
        return orch.batch_decide(args.run_id, args.submodule_run_id, decisions)
    if not (args.approval_id and args.action):
        raise PipelineError("decide needs --approval-id and --action, or --batch")
    return orch.decide(args.run_id, args.submodule_run_id, args.approval_id, args.action, args.reason)


def cmd_approve(orch: Orchestrator, args) -> dict:
    return orch.approve_run(args.run_id, args.submodule_run_id, args.url or None)


def cmd_reject(orch: Orchestrator, args) -> dict:
    return orch.reject_run(args.run_id, args.submodule_run_id)


def _add_config_args(p: argparse.ArgumentParser) -> None:
    p.add_argument("--config", help="Path to JSON/YAML submodule config")
    p.add_argument("--set", action="append", metavar="NAME=VALUE",
                   help="Override one option (value parsed as JSON when possible); repeatable")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="URL discovery and curation pipeline")
    parser.add_argument("--data-dir", help="Datastore directory (default: PIPELINE_DATA_DIR or ./data)")
    parser.add_argument("--log-level", help="Log level (default: PIPELINE_LOG_LEVEL or INFO)")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("list", help="List available submodules and categories")
    p.set_defaults(func=cmd_list)

    p = sub.add_parser("execute", help="Execute one submodule")
    p.add_argument("type", choices=["discovery", "validation"])
    p.add_argument("name", help="Submodule id, e.g. sitemap")
    p.add_argument("--entities", help="Entities file (JSON, YAML or CSV)")
    p.add_argument("--project", help="Project id: create a run from --entities instead of previewing")
    p.add_argument("--run-id", help="Existing run id")
    p.add_argument("--run-entity", action="append", help="Run entity id (repeatable)")
    p.add_argument("--url", action="append", help="URL to validate in preview (repeatable)")
    _add_config_args(p)
    p.set_defaults(func=cmd_execute)

    p = sub.add_parser("validate", help="Validate a run's pending discovered URLs")
    p.add_argument("name", help="Validation submodule id, e.g. path-filter")
    p.add_argument("--run-id", required=True)
    p.add_argument("--run-entity", action="append", help="Limit to these run entity ids (repeatable)")
    _add_config_args(p)
    p.set_defaults(func=cmd_validate)

    p = sub.add_parser("apply", help="Apply a validation run (filter its invalid URLs)")
    p.add_argument("run_id")
    p.add_argument("submodule_run_id")
    p.set_defaults(func=cmd_apply)

    p = sub.add_parser("runs", help="List submodule runs of a run, or show one")
    p.add_argument("run_id")
    p.add_argument("submodule_run_id", nargs="?")
    p.set_defaults(func=cmd_runs)

    p = sub.add_parser("results", help="Results of a submodule run with approval state")
    p.add_argument("run_id")
    p.add_argument("submodule_run_id")
    p.set_defaults(func=cmd_results)

    p = sub.add_parser("decide", help="Approve or reject individual results")
    p.add_argument("run_id")
    p.add_argument("submodule_run_id")
    p.add_argument("--approval-id")
    p.add_argument("--action", choices=["approve", "reject"])
    p.add_argument("--reason")
    p.add_argument("--batch", help="JSON file: [{result_id, action, reason?}, ...]")
    p.set_defaults(func=cmd_decide)

    p = sub.add_parser("approve", help="Approve a submodule run and promote its URLs")
    p.add_argument("run_id")
    p.add_argument("submodule_run_id")
    p.add_argument("--url", action="append", help="Approve only these URLs (repeatable)")
    p.set_defaults(func=cmd_approve)

    p = sub.add_parser("reject", help="Reject a submodule run")
    p.add_argument("run_id")
    p.add_argument("submodule_run_id")
    p.set_defaults(func=cmd_reject)

    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)

    settings = Settings.from_env()
    if args.data_dir:
        settings.data_dir = Path(args.data_dir)
    if args.log_level:
        settings.log_level = args.log_level.upper()
    configure_logging(settings.log_level)

    orch = build_orchestrator(settings)
    try:
        _emit(args.func(orch, args))
    except PipelineError as exc:
        logger.error(f"{type(exc).__name__}: {exc}")
        _emit(exc.to_dict())
        return 1
    except (FileNotFoundError, ValueError) as exc:
        logger.error(str(exc))
        _emit({"error": type(exc).__name__, "message": str(exc)})
        return 2
    finally:
        orch.close()
    return 0


if __name__ == "__main__":
    sys.exit(main())
