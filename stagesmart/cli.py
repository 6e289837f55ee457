#!/usr/bin/env python3
"""Command-line entry point: stage, analyze, balance, grant and serve."""

from __future__ import annotations

import argparse
import sys
from pathlib import Path
from typing import Optional, Sequence

from .classify.rooms import parse_room
from .config import StagingConfig, load_config
from .engines.interfaces import EngineMode, GenerationRequest
from .errors import InsufficientCreditError, StagingError, VisionError
from .factory import StagingContainer, create_staging_container
from .image import load_image
from .logging_utils import RunLogger, configure_logging, create_logger
from .packages import apply_purchase
from .prompting import DEFAULT_STYLE, StagingOptions, compose_prompt

EXIT_OK = 0
EXIT_INVALID = 2
EXIT_NO_CREDIT = 3
EXIT_ENGINES_FAILED = 4
EXIT_PROVIDER = 5

_MEDIA_SUFFIX = {"image/jpeg": ".jpg", "image/png": ".png", "image/webp": ".webp", "image/gif": ".gif"}


def _parse_updates(values: Sequence[str]) -> dict[str, str]:
    updates: dict[str, str] = {}
    for item in values:
        key, sep, value = item.partition("=")
        if not sep or not key.strip():
            raise argparse.ArgumentTypeError(f"--update expects key=value, got {item!r}")
        updates[key.strip().lower()] = value.strip()
    return updates


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="stagesmart", description="Credit-gated virtual staging")
    parser.add_argument("--config", type=Path, default=None, help="YAML or JSON configuration file")
    parser.add_argument("--log-level", default=None, help="Override logging.level")
    parser.add_argument("--logfile", type=Path, default=None, help="Mirror the run log to this file")
    sub = parser.add_subparsers(dest="command", required=True)

    stage = sub.add_parser("stage", help="Stage a photo and debit one credit on success")
    stage.add_argument("image", type=Path)
    stage.add_argument("--owner", required=True)
    stage.add_argument("--prompt", default=None)
    stage.add_argument("--style", default=DEFAULT_STYLE)
    stage.add_argument("--room", default=None)
    stage.add_argument("--update", action="append", default=[], metavar="KEY=VALUE")
    stage.add_argument("--mode", default=None, help="gemini, replicate or both")
    stage.add_argument("--out", type=Path, default=None, help="Output path (suffix follows the image type)")

    analyze = sub.add_parser("analyze", help="Classify the room type of a photo")
    analyze.add_argument("image", type=Path)

    balance = sub.add_parser("balance", help="Show an owner's credit balance")
    balance.add_argument("--owner", required=True)

    grant = sub.add_parser("grant", help="Credit an owner directly or with a package")
    grant.add_argument("--owner", required=True)
    target = grant.add_mutually_exclusive_group(required=True)
    target.add_argument("--amount", type=int)
    target.add_argument("--package")
    grant.add_argument("--reference", default=None)

    serve = sub.add_parser("serve", help="Run the HTTP API")
    serve.add_argument("--host", default="127.0.0.1")
    serve.add_argument("--port", type=int, default=8000)
    return parser


def _cmd_stage(args: argparse.Namespace, container: StagingContainer, log: RunLogger) -> int:
    image = log.timed("load", lambda img: f"{args.image} {img.media_type} {img.size} bytes", load_image, args.image)
    prompt = args.prompt
    if prompt is None:
        prompt = compose_prompt(
            StagingOptions(style=args.style, room=parse_room(args.room), updates=_parse_updates(args.update))
        )
    mode = EngineMode.parse(args.mode, default=container.default_mode)
    request = GenerationRequest(image=image, prompt=prompt, mode=mode)
    log.log("prompt", request.prompt, level="DEBUG")

    result = log.timed(
        "stage",
        lambda res: f"mode={mode.value} succeeded={res.succeeded} engine={res.primary_engine}",
        container.pipeline.stage,
        args.owner,
        request,
    )
    for outcome in result.outcomes:
        status = "ok" if outcome.succeeded else f"failed: {outcome.error}"
        log.log("engine", f"{outcome.engine_id} {status}", level="INFO" if outcome.succeeded else "WARN", elapsed_ms=outcome.latency_ms)
    if result.anomaly is not None:
        log.log("ledger", f"generation {result.generation_id} was not billed", level="ERROR")
    log.log("credits", f"owner={args.owner} balance={result.new_balance}")

    if not result.succeeded:
        log.log("stage", "all engines failed", level="ERROR")
        return EXIT_ENGINES_FAILED

    out = args.out or args.image.with_name(f"{args.image.stem}_staged")
    out = out.with_suffix(_MEDIA_SUFFIX.get(result.primary.media_type, out.suffix))
    out.parent.mkdir(parents=True, exist_ok=True)
    out.write_bytes(result.primary.data)
    log.log("save", str(out))
    return EXIT_OK


def _cmd_analyze(args: argparse.Namespace, container: StagingContainer, log: RunLogger) -> int:
    image = load_image(args.image)
    label = log.timed("analyze", lambda lbl: f"room={lbl}", container.pipeline.analyze, image)
    print(label.value)
    return EXIT_OK


def _cmd_balance(args: argparse.Namespace, container: StagingContainer, log: RunLogger) -> int:
    print(container.ledger.check_balance(args.owner))
    return EXIT_OK


def _cmd_grant(args: argparse.Namespace, container: StagingContainer, log: RunLogger) -> int:
    if args.package:
        balance = apply_purchase(container.ledger, args.owner, args.package, reference=args.reference)
    else:
        balance = container.ledger.credit(args.owner, args.amount, reference=args.reference or "manual")
    log.log("credits", f"owner={args.owner} balance={balance}")
    print(balance)
    return EXIT_OK


def _cmd_serve(args: argparse.Namespace, container: StagingContainer, log: RunLogger) -> int:
    import uvicorn

    from .api import create_app

    log.log("serve", f"listening on http://{args.host}:{args.port}")
    uvicorn.run(create_app(container), host=args.host, port=args.port, log_config=None)
    return EXIT_OK


_COMMANDS = {
    "stage": _cmd_stage,
    "analyze": _cmd_analyze,
    "balance": _cmd_balance,
    "grant": _cmd_grant,
    "serve": _cmd_serve,
}


def main(argv: Optional[Sequence[str]] = None, *, config: StagingConfig | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    config = config or load_config(args.config)
    level = (args.log_level or config.logging.level).upper()
    log = create_logger(level, args.logfile or config.logging.logfile)
    configure_logging("WARNING" if level != "DEBUG" else "DEBUG", console=log.console)
    try:
        container = create_staging_container(config)
        return _COMMANDS[args.command](args, container, log)
    except InsufficientCreditError as exc:
        log.log("credits", str(exc), level="ERROR")
        return EXIT_NO_CREDIT
    except VisionError as exc:
        log.log("analyze", str(exc), level="ERROR")
        return EXIT_PROVIDER
    except (StagingError, argparse.ArgumentTypeError, ValueError) as exc:
        log.log(args.command, str(exc), level="ERROR")
        return EXIT_INVALID
    finally:
        log.close()


if __name__ == "__main__":
    sys.exit(main())
