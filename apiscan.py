########################################################
# SPECPROBE - API Security Scanner                     #
# Licensed under AGPL-V3.0                             #
# Author: Perry Mertens pamsniffer@gmail.com (C) 2025  #
# version 1.0  19-10-2026                              #
########################################################

"""SPECPROBE reads an OpenAPI description, maps its endpoints and, when
credentials are available, confirms Broken Object Level Authorization with
live probe requests.
Important: Testing with SPECPROBE is only permitted on systems and APIs for
which you have explicit authorization.
"""

from __future__ import annotations
import argparse
import json
import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import List, Optional

import colorama
from colorama import Fore, Style

from analyzer import AnalyzerModule, AnalysisRun, build_signatures_and_graph
from auth_utils import AuthConfigError
from openapi_universal import SpecLoadError, load_spec
from scan_config import ScanConfig
from version import __version__

logger = logging.getLogger("apiscan")


#================funtion styled_print styled_print =============
def styled_print(message: str, status: str = "info") -> None:
    symbols = {"info": "Info:", "ok": "OK:", "warn": "WARNING:", "fail": "FAIL:", "run": "->", "done": "Done"}
    colors = {"info": Fore.BLUE, "ok": Fore.GREEN, "warn": Fore.YELLOW, "fail": Fore.RED, "run": Fore.CYAN, "done": Fore.GREEN}
    reset = Style.RESET_ALL
    print(f"{colors.get(status, '')}{symbols.get(status, '')} {message}{reset}")


#================funtion build_parser build_parser =============
def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description=f"SPECPROBE {__version__} - API Security Scanner")
    parser.add_argument("--swagger", required=True, help="Path to Swagger/OpenAPI JSON or YAML file")
    parser.add_argument("--url", help="Base URL of the API (overrides the OpenAPI servers)")
    parser.add_argument("--params", help="JSON file with known parameter values (default: params.json)")
    parser.add_argument("--client-id", help="OAuth2 client id for the token endpoint")
    parser.add_argument("--client-secret", help="OAuth2 client secret for the token endpoint")
    parser.add_argument("--token", help="Pre-issued bearer token, skips token acquisition")
    parser.add_argument("--threads", type=int, help="Concurrent checks, clamped to 1..5 (default: 4)")
    parser.add_argument("--timeout", type=float, help="Request timeout in seconds (default: 10)")
    parser.add_argument("--check-timeout", type=float, help="Wall-clock limit per check in seconds (default: 120)")
    parser.add_argument("--transcript", help="Request transcript file (default: reports/dynamic-requests.log)")
    parser.add_argument("--output-dir", help="Directory for the scan log (default: reports)")
    parser.add_argument("--json-report", help="Write check results and endpoint statuses as JSON to this file")
    parser.add_argument("--insecure", action="store_true", default=None, help="Disable TLS certificate validation (DANGEROUS, use only for testing)")
    parser.add_argument("--proxy", help="Optional proxy URL, e.g. http://127.0.0.1:8080")
    parser.add_argument("--client-cert", help="Path to client certificate file (PEM, used for mTLS)")
    parser.add_argument("--client-key", help="Path to private key file (PEM, used for mTLS)")
    parser.add_argument("--apikey", dest="api_key", help="API key value (sent in header specified by --apikey-header)")
    parser.add_argument("--apikey-header", dest="api_key_header", help="Header name for API key (default: X-API-Key)")
    parser.add_argument("--unauthenticated-probes", action="store_true", default=None, help="Run dynamic probes even when no token is available")
    parser.add_argument("--signatures-only", action="store_true", help="Print endpoint signatures and the dependency graph, send nothing")
    parser.add_argument("--debug", action="store_true", help="Enable debug output (verbose logging)")
    return parser


#================funtion config_from_args env/.env configuration overridden by CLI flags =============
def config_from_args(args: argparse.Namespace) -> ScanConfig:
    return ScanConfig.from_env().with_overrides(
        base_url=args.url,
        params_file=args.params,
        client_id=args.client_id,
        client_secret=args.client_secret,
        token=args.token,
        threads=args.threads,
        timeout=args.timeout,
        check_timeout=args.check_timeout,
        transcript=args.transcript,
        output_dir=args.output_dir,
        insecure=args.insecure,
        proxy=args.proxy,
        client_cert=args.client_cert,
        client_key=args.client_key,
        api_key=args.api_key,
        api_key_header=args.api_key_header,
        unauthenticated_probes=args.unauthenticated_probes,
    )


#================funtion setup_logging console format plus a file log under the output dir =============
def setup_logging(debug: bool, output_dir: str) -> Optional[logging.Handler]:
    if debug:
        logging.basicConfig(level=logging.DEBUG, format="[DEBUG] %(message)s")
    else:
        logging.basicConfig(level=logging.INFO, format="[INFO] %(message)s")
    log_dir = Path(output_dir) / "log"
    try:
        log_dir.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        styled_print(f"Cannot create log directory {log_dir}: {e}", "warn")
        return None
    logfile = log_dir / f"apiscan_{datetime.now().strftime('%Y%m%d_%H%M%S')}.log"
    file_handler = logging.FileHandler(logfile, encoding="utf-8")
    file_handler.setFormatter(logging.Formatter("%(asctime)s [%(levelname)s] %(message)s"))
    file_handler.setLevel(logging.DEBUG)
    logging.getLogger().addHandler(file_handler)
    return file_handler


#================funtion print_signatures =============
def print_signatures(spec: dict) -> None:
    signatures, graph = build_signatures_and_graph(spec)
    styled_print(f"{len(signatures)} endpoint signatures", "ok")
    for sig in signatures.values():
        print(f"  - {sig}")
    styled_print(f"Dependency graph: {len(graph)} edges", "ok")
    for edge in graph.edges():
        print(f"  - {edge}")


#================funtion print_summary per-endpoint status table =============
def print_summary(run: AnalysisRun) -> int:
    statuses = run.results.endpoint_statuses
    confirmed = 0
    for endpoint, status in sorted(statuses.items()):
        if status == "BOLA CONFIRMED":
            confirmed += 1
            color = Fore.RED
        elif status.startswith("BOLA suspected"):
            color = Fore.YELLOW
        else:
            color = Fore.GREEN
        print(f"{color}{endpoint:<50} {status}{Style.RESET_ALL}")
    if run.timed_out:
        styled_print(f"Timed out: {', '.join(run.timed_out)}", "warn")
    if run.failed:
        styled_print(f"Failed: {', '.join(run.failed)}", "fail")
    return confirmed


#================funtion write_json_report dump the result sink =============
def write_json_report(run: AnalysisRun, path: str) -> bool:
    target = Path(path)
    try:
        target.parent.mkdir(parents=True, exist_ok=True)
        with target.open("w", encoding="utf-8") as f:
            json.dump(run.results.to_dict(), f, indent=2, ensure_ascii=False)
    except OSError as e:
        logger.error("Cannot write JSON report %s: %s", target, e)
        return False
    styled_print(f"JSON report written to {target}", "ok")
    return True


#================funtion main main =============
def main(argv: Optional[List[str]] = None) -> int:
    colorama.just_fix_windows_console()
    args = build_parser().parse_args(argv)
    config = config_from_args(args)
    file_handler = setup_logging(args.debug, config.output_dir)
    try:
        styled_print(f"Loading Swagger file: {args.swagger}", "info")
        try:
            spec = load_spec(args.swagger)
        except SpecLoadError as e:
            logger.error("Swagger processing failed: %s", e)
            styled_print(str(e), "fail")
            return 1

        if args.signatures_only:
            print_signatures(spec)
            return 0

        styled_print("Running dynamic analysis", "run")
        try:
            run = AnalyzerModule(config).analyze(spec)
        except AuthConfigError as e:
            styled_print(f"Session configuration failed: {e}", "fail")
            return 1
        confirmed = print_summary(run)
        if args.json_report:
            write_json_report(run, args.json_report)
        mode = "enabled" if run.dynamic_enabled else "disabled"
        styled_print(f"Analysis complete - dynamic probing {mode}, {confirmed} BOLA confirmed", "done")
        return 0
    finally:
        if file_handler is not None:
            logging.getLogger().removeHandler(file_handler)
            file_handler.close()


if __name__ == "__main__":
    sys.exit(main())
