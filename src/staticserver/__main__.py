"""
=============================================================================
COMMAND LINE ENTRY POINT
=============================================================================

Serve a directory:

    python -m staticserver                      # current directory, port 8000
    python -m staticserver ./public -p 8080 -i  # serve index.html files
    python -m staticserver . -u -a alice:secret # uploads behind Basic auth
    python -m staticserver . -c js,css,html     # gzip/deflate these suffixes
    python -m staticserver . --cert c.pem --key k.pem

Settings come from STATICSERVER_* environment variables first (see
ServerConfig.from_env); flags given on the command line override them.

=============================================================================
"""

import argparse
import dataclasses
import sys
from typing import List, Optional

from . import __version__
from .server import HTTPServer
from .config import ServerConfig, normalize_suffixes


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="staticserver",
        description="Serve a directory over HTTP with listings, ranges, caching and uploads",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    # ─────────────────────────────────────────────────────────────────────
    # CONTENT
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument(
        "root",
        nargs="?",
        default=None,
        help="Directory to serve (default: current directory)"
    )
    parser.add_argument(
        "--index", "-i",
        action="store_true",
        default=None,
        help="Serve index.html/index.htm instead of listing a directory"
    )
    parser.add_argument(
        "--upload", "-u",
        action="store_true",
        default=None,
        help="Allow multipart uploads into directories"
    )
    parser.add_argument(
        "--nosort",
        action="store_true",
        help="Disable sorting of directory listings"
    )
    parser.add_argument(
        "--nocache",
        action="store_true",
        help="Disable ETag/Last-Modified and 304 responses"
    )
    parser.add_argument(
        "--norange",
        action="store_true",
        help="Disable byte range requests"
    )
    parser.add_argument(
        "--compress", "-c",
        metavar="EXTS",
        default=None,
        help="Comma separated file extensions to compress, e.g. js,css,html"
    )

    # ─────────────────────────────────────────────────────────────────────
    # NETWORK
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument(
        "--ip",
        default=None,
        help="Address to bind to (default: 0.0.0.0)"
    )
    parser.add_argument(
        "--port", "-p",
        type=int,
        default=None,
        help="Port to listen on (default: 8000)"
    )
    parser.add_argument(
        "--threads", "-t",
        type=int,
        default=None,
        help="Number of worker threads (default: 3)"
    )

    # ─────────────────────────────────────────────────────────────────────
    # SECURITY
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument(
        "--auth", "-a",
        metavar="USER:PASS",
        default=None,
        help="Require HTTP Basic authentication"
    )
    parser.add_argument("--cert", default=None, help="TLS certificate (PEM)")
    parser.add_argument("--key", default=None, help="TLS private key (PEM)")
    parser.add_argument("--certpass", default=None, help="Passphrase of the TLS key")

    # ─────────────────────────────────────────────────────────────────────
    # LOGGING / META
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument(
        "--log-level", "-l",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default=None,
        help="Logging level (default: INFO)"
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Shortcut for --log-level DEBUG"
    )
    parser.add_argument(
        "--version", "-V",
        action="version",
        version=f"staticserver {__version__}"
    )

    return parser


def config_from_args(args: argparse.Namespace, base: Optional[ServerConfig] = None) -> ServerConfig:
    """
    Overlay parsed command line flags on a base configuration.

    Args:
        args: Result of build_parser().parse_args().
        base: Starting point, ServerConfig.from_env() when omitted.

    Returns:
        New ServerConfig. Flags that were not given keep the base value.
    """
    config = base if base is not None else ServerConfig.from_env()
    overrides = {}

    if args.root is not None:
        overrides["root"] = args.root
    if args.index:
        overrides["index"] = True
    if args.upload:
        overrides["upload"] = True
    if args.nosort:
        overrides["sort"] = False
    if args.nocache:
        overrides["cache"] = False
    if args.norange:
        overrides["range"] = False
    if args.compress is not None:
        overrides["compress"] = normalize_suffixes(args.compress)

    if args.ip is not None:
        overrides["host"] = args.ip
    if args.port is not None:
        overrides["port"] = args.port
    if args.threads is not None:
        overrides["threads"] = args.threads
        overrides["min_threads"] = min(config.min_threads, args.threads) or 1

    if args.auth is not None:
        overrides["auth"] = args.auth
    if args.cert is not None:
        overrides["tls_cert"] = args.cert
    if args.key is not None:
        overrides["tls_key"] = args.key
    if args.certpass is not None:
        overrides["tls_password"] = args.certpass

    if args.verbose:
        overrides["log_level"] = "DEBUG"
    elif args.log_level is not None:
        overrides["log_level"] = args.log_level

    return dataclasses.replace(config, **overrides)


def _on_off(flag: bool) -> str:
    return "on" if flag else "off"


def startup_banner(config: ServerConfig) -> str:
    """Summary of the effective settings, printed before serving."""
    scheme = "https" if config.tls_enabled else "http"
    compression = ", ".join(config.compress) if config.compress else "off"
    auth = f"on (user {config.auth_credentials[0]})" if config.auth_credentials else "off"
    rows = [
        ("Index", _on_off(config.index)),
        ("Upload", _on_off(config.upload)),
        ("Cache", _on_off(config.cache)),
        ("Range", _on_off(config.range)),
        ("Sort", _on_off(config.sort)),
        ("Threads", str(config.threads)),
        ("Auth", auth),
        ("Compression", compression),
        ("Root", str(config.root_path)),
        ("Address", f"{scheme}://{config.host}:{config.port}"),
    ]
    width = max(len(name) for name, _ in rows)
    lines = [f"{name:<{width}} : {value}" for name, value in rows]
    rule = "═" * max(len(line) for line in lines)
    return "\n".join([rule, *lines, rule])


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    try:
        config = config_from_args(args)
        server = HTTPServer(config)
    except (ValueError, OSError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2

    print(startup_banner(config))
    print("Press Ctrl+C to stop")

    try:
        server.run()
    except OSError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
