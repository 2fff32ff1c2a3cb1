"""Command line interface for agora_uploader."""
from __future__ import annotations

import argparse
import asyncio
import getpass
import logging
import os
import sys
from pathlib import Path
from typing import Optional, Sequence, Tuple

from rich.logging import RichHandler

from . import __version__
from .cli_progress import UploadProgressDisplay, console, render_configuration_summary
from .errors import CLIError, UploaderError
from .models import ImportOptions, UploadConfig
from .orchestrator import UploadOrchestrator
from .services import TransportConfig, obtain_api_key

logger = logging.getLogger(__name__)


def _setup_logging(debug: bool, log_level: Optional[str]) -> str:
    """
    Configure logging.

    Level comes from --debug, then --log-level, then LOG_LEVEL, else INFO.
    Returns the effective level name.
    """
    root_logger = logging.getLogger()
    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)

    if debug:
        level = logging.DEBUG
    else:
        name = log_level or os.getenv("LOG_LEVEL") or "INFO"
        level = getattr(logging, name.upper(), logging.INFO)

    handler = RichHandler(
        console=console,
        rich_tracebacks=True,
        markup=False,
        show_time=False,
        show_path=False,
    )
    handler.setFormatter(logging.Formatter("%(message)s"))
    root_logger.addHandler(handler)
    root_logger.setLevel(level)
    # chunk bodies are large; keep the HTTP client quiet unless debugging
    logging.getLogger("httpx").setLevel(logging.DEBUG if debug else logging.WARNING)
    return logging.getLevelName(level)


def _strip_optional_quotes(value: str) -> str:
    if len(value) >= 2 and value[0] == value[-1] and value[0] in {"'", '"'}:
        return value[1:-1]
    return value


def _load_env_file(path: Path, override: bool = False) -> None:
    if not path.exists():
        raise CLIError(f"env file not found: {path}")
    if not path.is_file():
        raise CLIError(f"env path is not a file: {path}")

    try:
        content = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise CLIError(f"could not read env file {path}: {exc}") from exc

    for raw_line in content.splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#"):
            continue
        if line.startswith("export "):
            line = line[len("export ") :].strip()
        if "=" not in line:
            continue

        key, value = line.split("=", 1)
        key = key.strip()
        if not key:
            continue

        value = _strip_optional_quotes(value.strip())
        if override or key not in os.environ:
            os.environ[key] = value


def _resolve_default_env_file() -> Optional[Path]:
    default_env = Path(".env")
    return default_env if default_env.exists() and default_env.is_file() else None


def _prompt_credentials() -> Tuple[str, str]:
    try:
        username = input("Agora Username: ")
        password = getpass.getpass("Agora Password: ")
    except EOFError as exc:
        raise CLIError("no api-key given and no credentials could be read") from exc
    return username.strip(), password.strip()


async def _run_upload(
    transport: TransportConfig,
    source: Path,
    options: ImportOptions,
    config: UploadConfig,
    timeout: float,
    verify: bool,
) -> int:
    if not transport.api_key:
        logger.debug("No api-key given, asking for credentials")
        username, password = _prompt_credentials()
        login = TransportConfig(
            base_url=transport.base_url,
            username=username,
            password=password,
            verify=transport.verify,
            timeout=transport.timeout,
        )
        transport = transport.with_api_key(await obtain_api_key(login))

    display = UploadProgressDisplay()
    try:
        async with UploadOrchestrator(transport, config=config) as orchestrator:
            display.attach(orchestrator.events)
            outcome = await orchestrator.upload_path(
                source, options, wait=True, timeout=timeout, verify=verify
            )
    finally:
        display.stop()

    display.on_finish(outcome)
    if outcome.failed_units:
        return 1
    if verify and not outcome.all_imported:
        return 1
    return 0


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="agora-upload",
        description="Upload a file or folder to Agora and import it.",
    )
    parser.add_argument(
        "-u",
        "--url",
        default=None,
        help="The URL to the Agora server (default from AGORA_URL)",
    )
    parser.add_argument(
        "-p",
        "--path",
        type=Path,
        required=True,
        help="The path to a file or folder to be uploaded",
    )
    parser.add_argument(
        "-f",
        "--target-folder",
        type=int,
        default=-1,
        help="The ID of the target folder where the data is uploaded to",
    )
    parser.add_argument(
        "-k",
        "--api-key",
        default=None,
        help="The Agora API key used for authentication (default from AGORA_API_KEY)",
    )
    parser.add_argument(
        "--extract-zip",
        action="store_true",
        help="If the uploaded file is a zip, it is extracted and its content is imported into Agora",
    )
    parser.add_argument(
        "--verify",
        action="store_true",
        help="Verifies if all the uploaded files were imported correctly (waits until the import is complete)",
    )
    parser.add_argument(
        "-j",
        "--import-json",
        default="",
        help="The json which will be used for the import",
    )
    parser.add_argument(
        "--no-check-certificate",
        action="store_true",
        help="Don't check the server certificate",
    )
    parser.add_argument(
        "--fake",
        action="store_true",
        help="Run the uploader without actually uploading the files (for testing and debugging)",
    )
    parser.add_argument(
        "--timeout",
        type=float,
        default=-1,
        help="Seconds to wait for the import to finish (negative waits indefinitely)",
    )
    parser.add_argument(
        "--env-file",
        type=Path,
        default=None,
        help="Load environment variables from this .env file",
    )
    parser.add_argument("--debug", action="store_true", help="Enable debug logs")
    parser.add_argument(
        "--log-level",
        default=None,
        help="Explicit log level (DEBUG/INFO/WARNING/ERROR)",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"agora-upload {__version__}",
    )
    return parser


def run_cli(argv: Optional[Sequence[str]] = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)

    used_env_file = args.env_file or _resolve_default_env_file()
    if used_env_file is not None:
        try:
            _load_env_file(Path(used_env_file))
        except CLIError as exc:
            print(f"ERROR: {exc}", file=sys.stderr)
            return 1

    effective_log_level = _setup_logging(debug=args.debug, log_level=args.log_level)

    url = args.url or os.getenv("AGORA_URL")
    if not url:
        print("ERROR: no server URL given (use --url or AGORA_URL)", file=sys.stderr)
        return 1

    source = Path(args.path).expanduser()
    if not source.exists():
        print(f"ERROR: source does not exist: {source}", file=sys.stderr)
        return 1

    api_key = args.api_key or os.getenv("AGORA_API_KEY") or ""
    transport = TransportConfig(base_url=url, api_key=api_key, verify=not args.no_check_certificate)
    options = ImportOptions(
        target_folder_id=args.target_folder,
        import_json=args.import_json,
        extract_zip=args.extract_zip,
    )
    config = UploadConfig(dry_run=args.fake)

    source_kind = "file" if source.is_file() else "folder"
    render_configuration_summary(
        {
            "Server": url,
            "Source": str(source),
            "Source Type": source_kind,
            "Target Folder": args.target_folder if args.target_folder > 0 else "-",
            "API Key": "yes" if api_key else "(prompt)",
            "Extract Zip": "yes" if args.extract_zip else "no",
            "Verify": "yes" if args.verify else "no",
            "Check Certificate": "no" if args.no_check_certificate else "yes",
            "Dry Run": "yes" if args.fake else "no",
            "Env File": str(used_env_file) if used_env_file else "-",
            "Logging": effective_log_level,
        }
    )

    try:
        return asyncio.run(
            _run_upload(
                transport=transport,
                source=source,
                options=options,
                config=config,
                timeout=args.timeout,
                verify=args.verify,
            )
        )
    except UploaderError as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        print("Cancelled.", file=sys.stderr)
        return 130


def main() -> None:
    raise SystemExit(run_cli())


if __name__ == "__main__":
    main()
