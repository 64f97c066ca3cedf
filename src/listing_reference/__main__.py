import argparse
import asyncio
import json
import logging

from .config import get_config
from .context import ResolverContext
from .errors import ResolutionError
from .navigator import navigate_hybrid
from .normalize import format_reference_for_display
from .service import get_metrics, resolve_reference


def build_parser():
    parser = argparse.ArgumentParser(
        description="Resolve listing reference codes to canonical listing URLs",
    )
    parser.add_argument(
        "references",
        nargs="+",
        help="Reference codes to resolve (e.g. 086983)",
    )
    parser.add_argument(
        "--hybrid",
        action="store_true",
        help="Print the optimistic fallback navigation before confirming it",
    )
    parser.add_argument(
        "--lookup-url",
        default=None,
        help="Override the listing lookup endpoint",
    )
    parser.add_argument(
        "--timeout-ms",
        type=int,
        default=None,
        help="Per-attempt lookup timeout in milliseconds",
    )
    parser.add_argument(
        "--max-retries",
        type=int,
        default=None,
        help="Additional attempts after the first failed lookup",
    )
    parser.add_argument(
        "--client-id",
        default=None,
        help="Client identity used for rate limiting",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        help="Logging level (DEBUG, INFO, etc.)",
    )
    parser.add_argument(
        "--log-json",
        action="store_true",
        help="Emit one JSON log line per reference",
    )
    parser.add_argument(
        "--metrics",
        action="store_true",
        help="Print a metrics snapshot after resolving",
    )
    return parser


async def _resolve_one(context, reference, args):
    entry = {"reference": format_reference_for_display(reference)}
    if args.hybrid:
        navigations = []
        errors = []
        handle = navigate_hybrid(
            context,
            reference,
            lambda url, source: navigations.append({"url": url, "source": source.value}),
            errors.append,
            client_id=args.client_id,
        )
        state = await handle.wait()
        entry.update({"state": state.value, "navigations": navigations})
        if errors:
            entry.update({"status": "failed", "error": errors[0]})
        else:
            entry["status"] = "success"
        return entry
    try:
        result = await resolve_reference(
            context,
            reference,
            client_id=args.client_id,
            timeout_ms=args.timeout_ms,
            max_retries=args.max_retries,
        )
    except ResolutionError as exc:
        entry.update(
            {"status": "failed", "error": exc.user_message, "kind": exc.__class__.__name__}
        )
        return entry
    entry.update(result.to_dict())
    entry["status"] = "success"
    return entry


async def run(args):
    config = get_config().with_overrides(
        lookup_url=args.lookup_url,
        timeout_ms=args.timeout_ms,
        max_retries=args.max_retries,
    )
    context = ResolverContext.create(config)
    entries = []
    try:
        for reference in args.references:
            entries.append(await _resolve_one(context, reference, args))
        snapshot = get_metrics(context)
    finally:
        await context.aclose()
    return entries, snapshot


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)
    if args.log_level:
        logging.basicConfig(level=args.log_level.upper())

    entries, snapshot = asyncio.run(run(args))

    for entry in entries:
        if args.log_json:
            print(json.dumps(entry))
        elif entry["status"] == "success" and "url" in entry:
            print(f"{entry['reference']}: {entry['url']} ({entry['source']})")
        elif entry["status"] == "success":
            last = entry["navigations"][-1]["url"] if entry["navigations"] else ""
            print(f"{entry['reference']}: {last} ({entry['state']})")
        else:
            print(f"{entry['reference']}: {entry['error']}")
    if args.metrics:
        print(json.dumps(snapshot.to_dict()))
    failed = sum(1 for e in entries if e["status"] == "failed")
    summary = {
        "total": len(entries),
        "succeeded": len(entries) - failed,
        "failed": failed,
    }
    print(json.dumps(summary))
    return 1 if failed else 0


def _safe_main():
    try:
        code = main()
    except SystemExit:
        raise
    except Exception as exc:
        print(json.dumps({"error": str(exc)}))
        raise SystemExit(1)
    raise SystemExit(code)


if __name__ == "__main__":
    _safe_main()
