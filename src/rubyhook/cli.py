from __future__ import annotations

import argparse
import asyncio
import json
import os
import sys
from importlib import metadata
from pathlib import Path

import tomllib

from .config import DEFAULT_PORT, PORT_ENV, ServiceConfig
from .furigana import TokenizerUnavailableError
from .logging_utils import configure_logging
from .replacements import parse_rule_payloads
from .server import serve
from .state import Translator
from .tools import (
    DEFAULT_UNIDIC_URL,
    UNIDIC_DIR_ENV,
    UniDicInstallError,
    ensure_unidic_installed,
    resolve_managed_unidic,
)


def _read_local_version() -> str | None:
    try:
        pyproject_path = Path(__file__).resolve().parents[2] / "pyproject.toml"
    except IndexError:  # pragma: no cover - defensive
        return None
    try:
        with pyproject_path.open("rb") as fh:
            data = tomllib.load(fh)
    except (FileNotFoundError, tomllib.TOMLDecodeError):
        return None
    return data.get("project", {}).get("version")


try:
    __version__ = metadata.version("rubyhook")
except metadata.PackageNotFoundError:
    __version__ = _read_local_version() or "0.0.0+unknown"


def _add_version_flag(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "-v",
        "--version",
        action="version",
        version=f"rubyhook {__version__}",
    )


def _add_data_dir_flag(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--data-dir",
        help="Application data directory (cache, dictionary). Defaults to $RUBYHOOK_DATA_DIR "
        "or ~/.local/share/rubyhook.",
    )


def _config_from_args(args: argparse.Namespace) -> ServiceConfig:
    config = ServiceConfig()
    if getattr(args, "data_dir", None):
        config.data_dir = Path(args.data_dir).expanduser()
    return config


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(
        prog="rubyhook",
        description="Collect Japanese text from HTTP/clipboard hooks and annotate it with furigana.",
    )
    _add_version_flag(ap)
    sub = ap.add_subparsers(dest="command")

    serve_parser = sub.add_parser("serve", help="Run the HTTP listener and clipboard watcher.")
    _add_data_dir_flag(serve_parser)
    serve_parser.add_argument(
        "--port",
        type=int,
        help=f"Loopback port (default: ${PORT_ENV} or {DEFAULT_PORT}).",
    )
    serve_parser.add_argument(
        "--rules",
        help="JSON file with a list of {pattern, replacement, flags} rewrite rules.",
    )
    serve_parser.add_argument(
        "--watch-clipboard",
        action="store_true",
        help="Start with clipboard watching enabled.",
    )
    serve_parser.add_argument(
        "--openai-compatible-input",
        action="store_true",
        help="Accept text from /v1/chat/completions requests.",
    )
    serve_parser.add_argument(
        "--eager-dictionary",
        action="store_true",
        help="Load the tokenizer at startup instead of on the first annotation.",
    )
    serve_parser.add_argument("--debug", action="store_true", help="Enable debug logging.")

    annotate_parser = sub.add_parser("annotate", help="Print furigana markup for TEXT.")
    _add_data_dir_flag(annotate_parser)
    annotate_parser.add_argument("text", nargs="+", help="Text to annotate.")

    tools_parser = sub.add_parser("tools", help="Dictionary management.")
    tools_sub = tools_parser.add_subparsers(dest="tool_cmd")
    install = tools_sub.add_parser("install-unidic", help="Download UniDic into the data directory.")
    _add_data_dir_flag(install)
    install.add_argument("--url", default=DEFAULT_UNIDIC_URL, help="Archive URL.")
    install.add_argument("--zip", help="Use a local UniDic zip instead of downloading.")
    install.add_argument("--force", action="store_true", help="Reinstall even if present.")
    status = tools_sub.add_parser("unidic-status", help="Show which UniDic is in use.")
    _add_data_dir_flag(status)
    return ap


def _load_rules_file(path: Path) -> list:
    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        raise SystemExit(f"Failed to read rules file {path}: {exc}") from exc
    if isinstance(raw, dict):
        raw = raw.get("rules")
    try:
        return parse_rule_payloads(raw)
    except ValueError as exc:
        raise SystemExit(f"Invalid rules file {path}: {exc}") from exc


def _run_serve(args: argparse.Namespace) -> int:
    configure_logging(bool(args.debug))
    config = _config_from_args(args)
    if args.port is not None:
        config.port = args.port
    config.clipboard_watch = bool(args.watch_clipboard)
    config.openai_compatible_input = bool(args.openai_compatible_input)
    config.eager_dictionary = bool(args.eager_dictionary)

    translator = Translator(config)
    if args.rules:
        rules = _load_rules_file(Path(args.rules).expanduser())
        installed = translator.replacements.install(rules)
        print(f"Installed {installed}/{len(rules)} replacement rule(s).")
    if config.eager_dictionary:
        try:
            translator.annotator.warm_up()
        except TokenizerUnavailableError as exc:
            raise SystemExit(str(exc)) from exc

    print(f"Data directory: {config.data_dir}")
    print("Press Ctrl+C to stop.\n")
    try:
        asyncio.run(serve(translator))
    except KeyboardInterrupt:
        pass
    return 0


def _run_annotate(args: argparse.Namespace) -> int:
    translator = Translator(_config_from_args(args))
    try:
        print(translator.annotator.annotate(" ".join(args.text)))
    except TokenizerUnavailableError as exc:
        raise SystemExit(str(exc)) from exc
    return 0


def _run_tools(args: argparse.Namespace) -> int:
    if not args.tool_cmd:
        raise SystemExit("A tools subcommand is required. Use --help for options.")
    config = _config_from_args(args)

    if args.tool_cmd == "install-unidic":
        try:
            status = ensure_unidic_installed(
                config.data_dir, url=args.url, zip_path=args.zip, force=args.force
            )
        except UniDicInstallError as exc:
            raise SystemExit(str(exc)) from exc
        print(f"UniDic {status.version or 'unknown'} installed at {status.path}")
        return 0

    if args.tool_cmd == "unidic-status":
        status = resolve_managed_unidic(config.data_dir)
        if status.path is not None:
            print(f"Managed UniDic path: {status.path}")
            print(f"Version: {status.version or 'unknown'}")
        else:
            print("No managed UniDic installation detected. Use 'rubyhook tools install-unidic'.")
        env_dir = os.environ.get(UNIDIC_DIR_ENV)
        if env_dir:
            print(f"{UNIDIC_DIR_ENV} is set to: {env_dir}")
        return 0

    raise SystemExit(f"Unknown tools subcommand: {args.tool_cmd}")


def main(argv: list[str] | None = None) -> int:
    if argv is None:
        argv = sys.argv[1:]
    parser = build_parser()
    if not argv:
        parser.print_help()
        return 0
    args = parser.parse_args(argv)
    if args.command == "serve":
        return _run_serve(args)
    if args.command == "annotate":
        return _run_annotate(args)
    if args.command == "tools":
        return _run_tools(args)
    parser.print_help()
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
