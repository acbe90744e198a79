"""
CLI entry point for gitlab-activity-report. Wires the pipeline: ingest -> normalize -> classify -> report
"""

import argparse
import json
import logging
import os
from datetime import datetime, timezone

from activity_report import build_report, resolve_date_range, SOURCES
from ingest.errors import ConfigurationError
from ingest.gitlab import GitLabClient
from report.options import GROUP_BY_CHOICES, load_format_options
from storage.cache import ResponseCache
from storage.retry import configure_retry

logger = logging.getLogger(__name__)

OUTPUT_EXTENSIONS = {"md": "md", "json": "json", "csv": "csv", "text": "txt"}


def _print_json(obj):
    print(json.dumps(obj, indent=2, default=str, ensure_ascii=False))


def _confirm(prompt: str) -> bool:
    answer = input(f"{prompt} [y/N]: ")
    return answer.strip().lower() in ("y", "yes")


def _clear_cache(cache: ResponseCache, force: bool):
    if not force and not _confirm(f"Are you sure you want to clear the cache at {cache.path}? This cannot be undone."):
        print("Aborted cache clear.")
        return
    cache.clear_all()
    print(f"Cleared cache at {cache.path}")


def _clear_expired(cache: ResponseCache):
    removed = cache.clear_expired()
    print(f"Removed {removed} expired entr{'y' if removed == 1 else 'ies'} from {cache.path}")


def _has_cache_action(args) -> bool:
    return bool(args.cache_info or args.cache_list or args.cache_clear or args.cache_clear_expired)


def _handle_cache_actions(args, cache: ResponseCache) -> bool:
    """Run the requested cache inspection/management action. Returns True when one was performed."""
    flag_actions = [
        (args.cache_info, lambda: _print_json(cache.stats())),
        (args.cache_list, lambda: _print_json(cache.list_keys())),
        (args.cache_clear_expired, lambda: _clear_expired(cache)),
        (args.cache_clear, lambda: _clear_cache(cache, args.force)),
    ]
    for enabled, handler in flag_actions:
        if enabled:
            handler()
            return True
    return False


def _resolve_settings(args, parser):
    """Resolve base URL and token from CLI args or environment variables and attach them to args.
    Calls parser.error() if either is missing.
    """
    args.base_url = args.base_url or os.getenv("GITLAB_BASE_URL", "")
    args.token = args.token or os.getenv("GITLAB_ACCESS_TOKEN", "")
    missing = []
    if not args.base_url:
        missing.append("base URL (CLI flag --base-url or env GITLAB_BASE_URL)")
    if not args.token:
        missing.append("access token (CLI flag --token or env GITLAB_ACCESS_TOKEN)")
    if missing:
        parser.error("Missing required GitLab settings: " + ", ".join(missing))


def _build_options(args):
    """Load report options from YAML and apply CLI overrides."""
    options = load_format_options(args.options_file or None)
    return options.merged(
        group_by=args.group_by,
        show_match_reasons=True if args.show_match_reasons else None,
        show_statistics=False if args.no_statistics else None,
        max_description_length=args.max_description_length,
        title=args.title,
    )


def write_output(fmt: str, rendered: str, args):
    """Write output to --out-file when given, otherwise print it."""
    out_path = (args.out_file or "").strip()
    if not out_path:
        print(rendered)
        return
    ext = OUTPUT_EXTENSIONS.get(fmt, fmt)
    if out_path == "auto":
        out_path = f"gitlab_activity_{args.start}_{datetime.now(timezone.utc).strftime('%Y%m%dT%H%M%SZ')}.{ext}"
    out_dir = os.path.dirname(out_path)
    if out_dir:
        os.makedirs(out_dir, exist_ok=True)
    # newline='' is safe for CSV on Windows and harmless for other formats
    with open(out_path, "w", encoding="utf-8", newline="") as f:
        f.write(rendered)
    print(f"Wrote report to {out_path}")


def _configure_logging(level_name: str):
    level = getattr(logging, (level_name or "WARNING").upper(), logging.WARNING)
    logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="GitLab activity report CLI")
    parser.add_argument("--start", type=str, help="Start date (YYYY-MM-DD)")
    parser.add_argument("--end", type=str, default=None, help="End date (YYYY-MM-DD); defaults to today")
    parser.add_argument("--output", type=str, choices=sorted(OUTPUT_EXTENSIONS), default="md", help="Output format")
    parser.add_argument("--out-file", type=str, default="", help="Write the report to this path ('auto' picks a name). Prints to stdout if omitted")
    parser.add_argument("--source", type=str, choices=SOURCES, default="events", help="Classify push events or the commits in the pushed projects")
    parser.add_argument("--group-by", type=str, choices=GROUP_BY_CHOICES, default=None, help="Group report entries by project, category or not at all")
    parser.add_argument("--show-match-reasons", action="store_true", help="List the matched keywords under every activity")
    parser.add_argument("--no-statistics", action="store_true", help="Omit the statistics section")
    parser.add_argument("--max-description-length", type=int, default=None, help="Truncate descriptions to this many characters")
    parser.add_argument("--title", type=str, default=None, help="Report title")
    parser.add_argument("--options-file", type=str, default="", help="YAML file with report options (defaults to report/config/report.yaml)")
    parser.add_argument("--base-url", type=str, default="", help="GitLab API base URL (or env GITLAB_BASE_URL)")
    parser.add_argument("--token", type=str, default="", help="GitLab access token (or env GITLAB_ACCESS_TOKEN)")
    parser.add_argument("--timeout", type=float, default=None, help="HTTP timeout in seconds (default 5)")
    parser.add_argument("--cache", type=str, default="", help="Path to the JSON cache file (or env GITLAB_CACHE_PATH)")
    parser.add_argument("--cache-hours", type=float, default=None, help="Cache entry lifetime in hours (or env GITLAB_CACHE_HOURS, default 24)")
    # retry/backoff knobs: environment variables GITLAB_MAX_RETRIES, GITLAB_BACKOFF_BASE, GITLAB_MAX_BACKOFF set the defaults
    parser.add_argument("--max-retries", type=int, default=None, help="Retries for rate-limited/unavailable responses (overrides GITLAB_MAX_RETRIES env)")
    parser.add_argument("--backoff-base", type=float, default=None, help="Base backoff seconds (overrides GITLAB_BACKOFF_BASE env)")
    parser.add_argument("--cache-info", action="store_true", help="Show the number of cached entries per namespace")
    parser.add_argument("--cache-list", action="store_true", help="List cached keys with their age status")
    parser.add_argument("--cache-clear-expired", action="store_true", help="Remove expired cache entries")
    parser.add_argument("--cache-clear", action="store_true", help="Clear the whole cache")
    parser.add_argument("--force", action="store_true", help="Clear without confirmation (use with --cache-clear)")
    parser.add_argument("--log-level", type=str, default=os.getenv("GITLAB_LOG_LEVEL", "WARNING"), help="Logging level (DEBUG, INFO, WARNING, ERROR)")
    return parser


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)
    _configure_logging(args.log_level)

    configure_retry(max_retries=args.max_retries, backoff_base=args.backoff_base)

    # the cache fingerprint needs the token, so settings are resolved even for cache-only actions
    _resolve_settings(args, parser)
    cache = ResponseCache(args.cache or None, access_token=args.token, cache_hours=args.cache_hours)
    try:
        if _has_cache_action(args):
            _handle_cache_actions(args, cache)
            return 0

        if not args.start:
            parser.error("--start is required unless a cache action is requested")
        try:
            date_range = resolve_date_range(args.start, args.end)
        except ValueError as exc:
            parser.error(str(exc))

        client = GitLabClient(args.base_url, args.token, cache=cache, timeout=args.timeout)
        try:
            client.validate_config()
            _, rendered = build_report(client, date_range, _build_options(args), fmt=args.output, source=args.source)
        except ConfigurationError as exc:
            parser.error(str(exc))
        except Exception as exc:
            logger.exception("Activity report failed")
            print(f"Failed to build the GitLab activity report: {exc}")
            return 1
        write_output(args.output, rendered, args)
        return 0
    finally:
        cache.close()


if __name__ == "__main__":
    raise SystemExit(main())
