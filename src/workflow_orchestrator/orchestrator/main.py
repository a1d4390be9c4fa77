"""CLI entrypoint for the workflow orchestrator.

Exit codes:
    0  success
    1  unexpected error
    2  invalid configuration, definition or input
    4  the execution finished in the failed state
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from workflow_orchestrator import __version__
from workflow_orchestrator.orchestrator.config import OrchestratorSettings
from workflow_orchestrator.orchestrator.factory import ExecutorFactory
from workflow_orchestrator.orchestrator.logging import configure_logging
from workflow_orchestrator.orchestrator.workflow.errors import DefinitionError
from workflow_orchestrator.orchestrator.workflow.loader import load_definition

logger = logging.getLogger(__name__)


def _add_definition_arg(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--definition",
        type=Path,
        default=None,
        help="Workflow definition JSON (defaults to WORKFLOW_DEFINITION_PATH)",
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="workflow-orchestrator",
        description="Run step workflows defined as declarative state machines",
    )
    parser.add_argument(
        "--version", action="version", version=f"workflow-orchestrator {__version__}"
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    validate = subparsers.add_parser("validate", help="Validate a workflow definition")
    _add_definition_arg(validate)

    describe = subparsers.add_parser(
        "describe", help="Print the normalised definition (steps and transitions) as JSON"
    )
    _add_definition_arg(describe)

    run = subparsers.add_parser("run", help="Execute a workflow and print the result")
    _add_definition_arg(run)
    source = run.add_mutually_exclusive_group()
    source.add_argument("--input", default=None, help="Initial payload as a JSON string")
    source.add_argument(
        "--input-file", type=Path, default=None, help="Path to a JSON file with the payload"
    )
    run.add_argument(
        "--timeout-seconds",
        type=float,
        default=None,
        help="Workflow timeout (overrides WORKFLOW_TIMEOUT_SECONDS and the definition)",
    )

    serve = subparsers.add_parser("serve", help="Run the REST API (requires the server extra)")
    serve.add_argument("--host", default="127.0.0.1")
    serve.add_argument("--port", type=int, default=8000)

    return parser


def _read_input(args: argparse.Namespace) -> Any:
    if args.input_file is not None:
        return json.loads(args.input_file.read_text(encoding="utf-8"))
    if args.input is not None:
        return json.loads(args.input)
    return {}


def _serve(args: argparse.Namespace) -> int:
    try:
        import uvicorn
    except ImportError:
        print(
            "The serve command needs the server extra: pip install workflow-orchestrator[server]",
            file=sys.stderr,
        )
        return 2

    from workflow_orchestrator.server import create_app

    uvicorn.run(create_app(), host=args.host, port=args.port, log_config=None)
    return 0


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    try:
        settings = OrchestratorSettings()
    except ValidationError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 2

    configure_logging(settings.log_level)

    if args.command == "serve":
        return _serve(args)

    definition_path: Path = args.definition or settings.definition_path

    try:
        definition = load_definition(definition_path, **settings.definition_limits)

        if args.command == "validate":
            print(f"Workflow {definition.name!r} is valid ({len(definition.steps)} steps)")
            return 0

        if args.command == "describe":
            print(json.dumps(definition.to_json(), indent=2, ensure_ascii=False))
            return 0

        if args.command == "run":
            payload = _read_input(args)
            executor = ExecutorFactory.create(settings)
            try:
                result = executor.run(
                    definition,
                    payload,
                    timeout_seconds=args.timeout_seconds or settings.timeout_seconds,
                )
            finally:
                executor.close()
            print(
                json.dumps(
                    result.to_json(include_data=settings.log_execution_data),
                    indent=2,
                    ensure_ascii=False,
                    default=str,
                )
            )
            return 0 if result.succeeded else 4

        logger.error("Unknown command", extra={"command": args.command})
        return 2

    except (DefinitionError, json.JSONDecodeError, FileNotFoundError, ValueError) as e:
        logger.error(str(e), extra={"definition": str(definition_path)})
        print(str(e), file=sys.stderr)
        return 2

    except Exception:
        logger.exception("Command failed")
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
