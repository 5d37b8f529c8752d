"""
Command-line entry point for the Hostel API Client.

Provides login, logout, status and raw authenticated requests against the
hostel management API. The credential and session cookie persist between
invocations, so a request made after the access token expired is renewed
transparently.
"""

import sys
import argparse
import asyncio
import getpass
import json
import logging

from hostel_shared.exceptions import (
    HostelClientError, AuthenticationError, TransportError, ConfigurationError,
    handle_exception
)
from hostel_shared.logging_config import setup_logging, LogLevel, LogFormat, log_structured_error
from hostel_client.api_client import HostelAPIClient
from hostel_client.config import ClientConfiguration
from hostel_client.transport import AiohttpTransport

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_USAGE = 1
EXIT_AUTH = 2
EXIT_TRANSPORT = 3
EXIT_API = 4
EXIT_INTERRUPTED = 130


def parse_arguments(argv=None):
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        prog="hostel-client",
        description="Hostel API Client",
        epilog="""
Examples:
  %(prog)s login --email warden@example.com
  %(prog)s request GET /rooms
  %(prog)s request POST /booking --data '{"roomId": "42"}'
  %(prog)s status --json
  %(prog)s logout
        """,
        formatter_class=argparse.RawDescriptionHelpFormatter
    )

    config_group = parser.add_argument_group('Configuration')
    config_group.add_argument("--config", type=str, metavar="FILE",
                              help="Path to configuration file")
    config_group.add_argument("--server-url", type=str, metavar="URL",
                              help="Override server URL")

    output_group = parser.add_argument_group('Output')
    output_group.add_argument("--verbose", "-v", action="store_true",
                              help="Enable verbose output")
    output_group.add_argument("--quiet", "-q", action="store_true",
                              help="Suppress non-error output")

    subparsers = parser.add_subparsers(dest="command", required=True)

    login_parser = subparsers.add_parser("login", help="Log in and store the access credential")
    login_parser.add_argument("--email", required=True, help="Account email")
    login_parser.add_argument("--password", help="Account password (prompted if omitted)")

    subparsers.add_parser("logout", help="Log out and clear the stored credential")

    status_parser = subparsers.add_parser("status", help="Show authentication status")
    status_parser.add_argument("--json", action="store_true", help="Output status as JSON")

    request_parser = subparsers.add_parser("request", help="Make an authenticated API request")
    request_parser.add_argument("method", help="HTTP method")
    request_parser.add_argument("path", help="API path, e.g. /rooms")
    request_parser.add_argument("--data", type=str, metavar="JSON", help="JSON request body")

    return parser.parse_args(argv)


def configure_logging(args, config: ClientConfiguration) -> None:
    if args.verbose:
        level = LogLevel.DEBUG
    elif args.quiet:
        level = LogLevel.ERROR
    else:
        try:
            level = LogLevel(config.get_log_level())
        except ValueError:
            level = LogLevel.INFO

    try:
        log_format = LogFormat(config.get_log_format())
    except ValueError:
        log_format = LogFormat.STANDARD

    setup_logging(log_level=level, log_format=log_format, log_file=config.get_log_file())


async def run_command(args, config: ClientConfiguration) -> int:
    transport = AiohttpTransport(config.get_server_url(), timeout=config.get_server_timeout())
    cookie_file = config.get_cookie_file()
    transport.load_cookies(cookie_file)

    async with HostelAPIClient(config=config, transport=transport) as client:
        client.load_stored_credential()
        try:
            if args.command == "login":
                password = args.password or getpass.getpass("Password: ")
                user = await client.login(args.email, password)
                if not args.quiet:
                    name = user.get('name') if isinstance(user, dict) else None
                    print(f"✓ Logged in{f' as {name}' if name else ''}")
                return EXIT_OK

            if args.command == "logout":
                await client.logout()
                if not args.quiet:
                    print("✓ Logged out")
                return EXIT_OK

            if args.command == "status":
                return print_status(client, args.json)

            data = json.loads(args.data) if args.data else None
            result = await client.request(args.method, args.path, data=data)
            print(json.dumps(result, indent=2, default=str))
            return EXIT_OK
        finally:
            transport.save_cookies(cookie_file)


def print_status(client: HostelAPIClient, as_json: bool) -> int:
    credential = client.credential_store.get()
    status = {
        'authenticated': credential is not None,
        'user': credential.user if credential else None,
        'expires_at': credential.expires_at.isoformat() if credential and credential.expires_at else None,
        'server_url': client.config.get_server_url(),
    }

    if as_json:
        print(json.dumps(status))
    else:
        print(f"Server: {status['server_url']}")
        print(f"Authenticated: {'Yes' if status['authenticated'] else 'No'}")
        if status['user']:
            print(f"User: {status['user'].get('name', 'unknown')} ({status['user'].get('role', 'unknown')})")
        if status['expires_at']:
            print(f"Access token expires: {status['expires_at']}")
    return EXIT_OK


def main(argv=None) -> int:
    args = parse_arguments(argv)

    try:
        config = ClientConfiguration(args.config)
        if args.server_url:
            config.set_override('server.url', args.server_url)
        configure_logging(args, config)

        return asyncio.run(run_command(args, config))

    except KeyboardInterrupt:
        print("\nOperation cancelled by user", file=sys.stderr)
        return EXIT_INTERRUPTED
    except json.JSONDecodeError as e:
        print(f"Error: invalid JSON for --data: {e}", file=sys.stderr)
        return EXIT_USAGE
    except ConfigurationError as e:
        print(f"Configuration error: {e.message}", file=sys.stderr)
        return EXIT_USAGE
    except AuthenticationError as e:
        log_structured_error(logger, e, logging.DEBUG)
        print(f"✗ Authentication failed: {e.message}", file=sys.stderr)
        return EXIT_AUTH
    except TransportError as e:
        log_structured_error(logger, e, logging.DEBUG)
        print(f"✗ Network error: {e.message}", file=sys.stderr)
        return EXIT_TRANSPORT
    except HostelClientError as e:
        log_structured_error(logger, e, logging.DEBUG)
        print(f"✗ {e.message}", file=sys.stderr)
        return EXIT_API
    except Exception as e:
        error = handle_exception(e, context={'command': args.command})
        logger.exception("Fatal error in main")
        print(f"Fatal error: {error.message}", file=sys.stderr)
        return EXIT_USAGE


if __name__ == "__main__":
    sys.exit(main())
