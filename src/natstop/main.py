import argparse
import asyncio
import sys
from typing import Any

import structlog

from natstop import __version__
from natstop.app import NatsTop
from natstop.core.config import SortKey, load_monitor_settings
from natstop.core.logging import Logger
from natstop.core.logging import configure as configure_logging
from natstop.exceptions import ConfigError, DecodeError, TransportError

logger: Logger = structlog.get_logger()


def _parse_args(argv: list[str]) -> argparse.Namespace:
    # Only flags given on the command line end up in the namespace, so
    # NATS_TOP_* environment values still apply to everything else
    p = argparse.ArgumentParser(
        prog="natstop",
        description="top-like monitor for a NATS server's /varz and /connz",
        argument_default=argparse.SUPPRESS,
    )
    p.add_argument("-s", dest="host", help="Monitoring host (default 127.0.0.1)")
    p.add_argument("-m", dest="port", type=int, help="HTTP monitoring port (8222)")
    p.add_argument("-ms", dest="https_port", type=int, help="HTTPS monitoring port")
    p.add_argument("-n", dest="conns", type=int, help="Max connections to request")
    p.add_argument("-d", dest="delay", type=float, help="Seconds between polls")
    p.add_argument(
        "-sort",
        "--sort",
        dest="sort",
        choices=[key.value for key in SortKey],
        help="Connection sort key",
    )
    p.add_argument(
        "-lookup",
        "--lookup",
        dest="lookup_dns",
        action="store_true",
        help="Reverse-resolve connection IPs",
    )
    p.add_argument(
        "-o",
        dest="output_file",
        help="Write one report to FILE ('-' for stdout) and exit",
    )
    p.add_argument(
        "-l",
        dest="output_delimiter",
        help="Delimited (CSV-like) output with this separator",
    )
    p.add_argument(
        "-b", dest="raw_bytes", action="store_true", help="Show raw byte counts"
    )
    p.add_argument(
        "-r", dest="max_refreshes", type=int, help="Exit after N live refreshes"
    )
    p.add_argument(
        "-u",
        "--display-subscriptions-column",
        dest="subs",
        action="store_true",
        help="Request and show subscription subjects",
    )
    p.add_argument(
        "--rates",
        dest="show_rates",
        action="store_true",
        help="Show per-poll deltas instead of totals per connection",
    )
    p.add_argument("-cert", "--cert", dest="cert", help="Client certificate (PEM)")
    p.add_argument("-key", "--key", dest="key", help="Client private key (PEM)")
    p.add_argument("-cacert", "--cacert", dest="ca_cert", help="CA bundle (PEM)")
    p.add_argument(
        "-k",
        dest="skip_verify",
        action="store_true",
        help="Skip TLS certificate verification",
    )
    p.add_argument(
        "--http",
        dest="enable_http",
        action="store_true",
        help="Serve /health, /stats and /metrics",
    )
    p.add_argument("--http-host", dest="http_host", help="Exporter bind host")
    p.add_argument("--http-port", dest="http_port", type=int, help="Exporter port")
    p.add_argument("--log-level", dest="log_level", help="Log level (INFO)")
    p.add_argument(
        "-v", "--version", dest="version", action="store_true", help="Print version"
    )
    return p.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(sys.argv[1:] if argv is None else argv)
    overrides: dict[str, Any] = vars(args)

    if overrides.pop("version", False):
        print(f"natstop v{__version__}")
        return 0

    try:
        configure_logging(overrides.pop("log_level", None))
        monitor = load_monitor_settings(**overrides)
        app = NatsTop(monitor)
    except ConfigError as e:
        print(f"natstop: {e}", file=sys.stderr)
        return 2

    try:
        if monitor.output_file:
            asyncio.run(app.run_once())
        else:
            asyncio.run(app.run())

    except (TransportError, DecodeError) as e:
        print(f"natstop: /varz smoke test failed: {e}", file=sys.stderr)
        return 1

    except OSError as e:
        print(f"natstop: {e}", file=sys.stderr)
        return 1

    except KeyboardInterrupt:
        logger.info("Interrupted")

    return 0


if __name__ == "__main__":
    raise SystemExit(main())
