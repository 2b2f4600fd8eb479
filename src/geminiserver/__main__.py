"""
=============================================================================
GEMINI SERVER CLI ENTRY POINT
=============================================================================

    # Serve ./content as localhost on port 1965
    python -m geminiserver

    # Public host name, listen on all interfaces (containers)
    python -m geminiserver --host example.org --bind 0.0.0.0

    # Config file, with a CLI override
    python -m geminiserver --config server.json --port 1966

Configuration priority, lowest first:

    defaults  <  JSON file (--config / $GEMINI_CONFIG)  <  GEMINI_* env  <  flags

=============================================================================
EXIT STATUS
=============================================================================

    0   Graceful shutdown (SIGINT / SIGTERM)
    1   Startup failure: bad config, TLS credentials, missing libmagic,
        content root, bind error

=============================================================================
"""

import argparse
import logging
import sys

from . import __version__
from .config import ConfigError, ServerConfig
from .server import GeminiServer, setup_logging
from .tls import TLSError, load_tls_context


logger = logging.getLogger("geminiserver")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="geminiserver",
        description="Static content server for the Gemini protocol",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m geminiserver                             # Serve ./content on 1965
  python -m geminiserver --content-root ./capsule    # Another directory
  python -m geminiserver --host example.org --bind 0.0.0.0
  python -m geminiserver --config server.json        # JSON config file
        """
    )

    # Every default is None: unset flags must not override the file or env.

    parser.add_argument(
        "--config", "-c",
        default=None,
        help="JSON configuration file (default: $GEMINI_CONFIG)"
    )

    # ─────────────────────────────────────────────────────────────────────
    # NETWORK ARGUMENTS
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument(
        "--host", "-H",
        default=None,
        help="Host name to serve; other hosts are refused (default: localhost)"
    )

    parser.add_argument(
        "--port", "-p",
        type=int,
        default=None,
        help="Port to listen on (default: 1965)"
    )

    parser.add_argument(
        "--bind",
        dest="bind_address",
        default=None,
        help="Address to listen on (default: the host name)"
    )

    parser.add_argument(
        "--timeout",
        type=float,
        default=None,
        help="Handshake and request read timeout in seconds (default: 10)"
    )

    # ─────────────────────────────────────────────────────────────────────
    # CONTENT ARGUMENTS
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument(
        "--content-root",
        default=None,
        help="Directory to serve (default: ./content)"
    )

    parser.add_argument(
        "--charset",
        dest="content_charset",
        default=None,
        help="charset parameter for text/gemini responses"
    )

    parser.add_argument(
        "--lang",
        dest="content_lang",
        default=None,
        help="lang parameter for text/gemini responses (e.g. en)"
    )

    # ─────────────────────────────────────────────────────────────────────
    # TLS ARGUMENTS
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument(
        "--cert",
        dest="cert_path",
        default=None,
        help="PEM certificate (default: cert.pem)"
    )

    parser.add_argument(
        "--key",
        dest="key_path",
        default=None,
        help="PEM private key (default: key.pem)"
    )

    # ─────────────────────────────────────────────────────────────────────
    # PERFORMANCE / LOGGING ARGUMENTS
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument(
        "--workers", "-w",
        type=int,
        default=None,
        help="Maximum worker threads (default: 16)"
    )

    parser.add_argument(
        "--log-level", "-l",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default=None,
        help="Logging level (default: INFO)"
    )

    parser.add_argument(
        "--log-format",
        choices=["text", "json"],
        default=None,
        help="Access log format (default: text)"
    )

    parser.add_argument(
        "--version", "-v",
        action="version",
        version=f"geminiserver {__version__}"
    )

    return parser


def load_config(args: argparse.Namespace) -> ServerConfig:
    """
    Merge file, environment and CLI flags into a validated config.

    Raises:
        ConfigError: Any invalid value, from any source.
    """
    config = ServerConfig.load(args.config)

    overrides = {
        "host": args.host,
        "port": args.port,
        "bind_address": args.bind_address,
        "timeout": args.timeout,
        "content_root": args.content_root,
        "content_charset": args.content_charset,
        "content_lang": args.content_lang,
        "cert_path": args.cert_path,
        "key_path": args.key_path,
        "log_level": args.log_level,
        "log_format": args.log_format,
    }

    if args.workers is not None:
        overrides["max_workers"] = args.workers
        overrides["min_workers"] = min(config.min_workers, args.workers)

    config = config.with_overrides(**overrides)
    config.validate()
    return config


def main(argv=None) -> int:
    """
    Main CLI entry point.

    Returns the process exit status; ``python -m geminiserver`` passes it
    to sys.exit().
    """
    args = build_parser().parse_args(argv)

    # Logging first, so config errors are reported the same way as the rest
    setup_logging(args.log_level or "INFO")

    # =========================================================================
    # CONFIGURATION
    # =========================================================================

    try:
        config = load_config(args)
    except ConfigError as e:
        logger.error(f"Configuration error: {e}")
        return 1

    setup_logging(config.log_level)

    # =========================================================================
    # TLS + SERVER
    # =========================================================================

    try:
        ssl_context = load_tls_context(config.cert_path, config.key_path)
        server = GeminiServer(config, ssl_context=ssl_context)
        server.bind()
    except TLSError as e:
        logger.error(f"TLS error: {e}")
        return 1
    except ImportError as e:
        logger.error(f"MIME detection unavailable, is libmagic installed? ({e})")
        return 1
    except ValueError as e:
        # ConfigError is a ValueError too, as is a bad content root
        logger.error(f"Startup error: {e}")
        return 1
    except OSError as e:
        logger.error(f"Cannot listen on {config.listen_address}:{config.port}: {e}")
        return 1

    # =========================================================================
    # RUN
    # =========================================================================
    # Blocks until SIGINT/SIGTERM, then drains in-flight requests

    server.run()
    return 0


if __name__ == "__main__":
    sys.exit(main())


# =============================================================================
# MODULE SUMMARY
# =============================================================================
#
# 1. Parse command-line arguments
# 2. Load configuration: defaults < file < env < flags
# 3. Load TLS credentials, build the server, bind
# 4. Run until a shutdown signal; every startup failure exits with 1
# =============================================================================
