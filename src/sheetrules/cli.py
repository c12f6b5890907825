"""Command-line interface for SheetRules."""

import argparse
import logging
import sys

import uvicorn

from .config import settings
from .rules import ConfigError, RuleSyntaxError, tokenize


def main(argv=None):
    """Main entry point for the CLI."""
    parser = argparse.ArgumentParser(
        description="SheetRules - row-level spreadsheet transformations from a mapping table"
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # Run command
    run_parser = subparsers.add_parser("run", help="Transform the source sheet into the output sheet")
    run_parser.add_argument("--spreadsheet", "-s", help="Spreadsheet ID (default: SPREADSHEET_ID)")
    run_parser.add_argument(
        "--dry-run", action="store_true", help="Compute the output without writing it"
    )

    # Check command
    check_parser = subparsers.add_parser(
        "check", help="Parse the mapping sheet and report errors without processing rows"
    )
    check_parser.add_argument("--spreadsheet", "-s", help="Spreadsheet ID (default: SPREADSHEET_ID)")

    # Tokenize command
    tokenize_parser = subparsers.add_parser("tokenize", help="Show the tokens of one instruction")
    tokenize_parser.add_argument("instruction", help="Instruction text, e.g. 'src[Age] >= 18'")

    # Server command
    server_parser = subparsers.add_parser("serve", help="Start the web server")
    server_parser.add_argument(
        "--host", default=settings.host, help=f"Host to bind to (default: {settings.host})"
    )
    server_parser.add_argument(
        "--port", type=int, default=settings.port, help=f"Port to bind to (default: {settings.port})"
    )
    server_parser.add_argument(
        "--reload", action="store_true", help="Enable auto-reload for development"
    )

    # Auth command
    subparsers.add_parser("auth", help="Authenticate with Google Sheets API")

    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if args.command == "run":
        run_transform(args.spreadsheet, args.dry_run)
    elif args.command == "check":
        run_check(args.spreadsheet)
    elif args.command == "tokenize":
        run_tokenize(args.instruction)
    elif args.command == "serve":
        run_server(args.host, args.port, args.reload)
    elif args.command == "auth":
        run_auth()
    else:
        parser.print_help()
        sys.exit(1)


def _fail(error: Exception, status: int):
    print(f"Error: {error}", file=sys.stderr)
    sys.exit(status)


def run_transform(spreadsheet_id: str = None, dry_run: bool = False):
    """Run the sheet-to-sheet transformation."""
    from .pipeline import SheetTransformService

    try:
        service = SheetTransformService(spreadsheet_id=spreadsheet_id)
        result = service.run(dry_run=dry_run)
    except ConfigError as e:
        _fail(e, 2)
    except (RuleSyntaxError, RuntimeError) as e:
        _fail(e, 1)

    action = "Computed" if dry_run else "Wrote"
    print(
        f"{action} {len(result.rows)} rows ({result.rows_filtered} of "
        f"{result.rows_read} filtered out) with {len(result.headers)} columns."
    )


def run_check(spreadsheet_id: str = None):
    """Parse the mapping sheet and list what it defines."""
    from .pipeline import SheetTransformService

    try:
        service = SheetTransformService(spreadsheet_id=spreadsheet_id)
        rule_set = service.validate()
    except ConfigError as e:
        _fail(e, 2)
    except (RuleSyntaxError, RuntimeError) as e:
        _fail(e, 1)

    print("Mapping is valid.")
    print(f"Output columns: {', '.join(rule_set.output_headers) or '(none)'}")
    for rule in rule_set.filters:
        state = "eval" if rule.is_eval else "documentation only"
        print(f"Filter '{rule.header}' ({state}): {rule.raw}")


def run_tokenize(instruction: str):
    """Print the tokens of an instruction."""
    for token in tokenize(instruction):
        print(f"{token.kind.value:<11} {token.value!r:<24} raw={token.raw!r}")


def run_server(host: str, port: int, reload: bool):
    """Run the web server."""
    uvicorn.run(
        "sheetrules.api.app:create_app",
        host=host,
        port=port,
        reload=reload,
        factory=True,
    )


def run_auth():
    """Run the Google authentication flow."""
    from .sheets import GoogleSheetsClient

    print("Authenticating with Google Sheets API...")
    try:
        client = GoogleSheetsClient()
        # Accessing the service property triggers auth
        _ = client.service
        print("Authentication successful!")
        print("Token saved. You can now use SheetRules with Google Sheets.")
    except Exception as e:
        print(f"Authentication failed: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
