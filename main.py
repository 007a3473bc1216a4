from __future__ import annotations

import argparse
import threading
import uuid
from typing import Optional

from adaptive_sync.fetchers import JsonApiFetcher
from adaptive_sync.log import setup_logging
from adaptive_sync.models import RateLimitConfig, RunSummary, SyncOptions, Target
from adaptive_sync.orchestrator import SyncOrchestrator
from adaptive_sync.rate_limiter import RateLimitController
from adaptive_sync.storage import JsonlStorage

DEFAULT_TARGETS_PATH = "targets.txt"
DEFAULT_REPORT_PATH = "sync_report.jsonl"


def _load_targets(path: str, limit: Optional[int] = None) -> list[Target]:
    """Read one target per line as ``id`` or ``id,display name``."""
    targets: list[Target] = []
    with open(path, "r", encoding="utf-8") as f:
        for line in f:
            line = line.strip()
            if not line or line.startswith("#"):
                continue
            target_id, _, name = line.partition(",")
            targets.append(Target(target_id=target_id.strip(), display_name=name.strip()))
            if limit is not None and len(targets) >= limit:
                break
    if not targets:
        raise ValueError(f"No targets found in {path}")
    return targets


def _load_credentials(path: Optional[str]) -> list[str]:
    if not path:
        return []
    try:
        with open(path, "r", encoding="utf-8") as f:
            return [line.strip() for line in f if line.strip()]
    except FileNotFoundError:
        return []


def run_sync(
    targets_path: str,
    url_template: str,
    credentials_path: Optional[str],
    report_path: str,
    items_key: str,
    impersonate: Optional[str],
    max_results: int,
    limit: Optional[int],
    config: RateLimitConfig,
) -> RunSummary:
    credentials = _load_credentials(credentials_path)
    controller = RateLimitController(config=config)
    orchestrator = SyncOrchestrator(rate_limiter=controller)
    fetcher = JsonApiFetcher(
        url_template=url_template,
        rate_limiter=controller,
        credentials=credentials,
        items_key=items_key,
        impersonate=impersonate,
    )
    options = SyncOptions(max_results_per_target=max_results, credential_pool_size=fetcher.pool_size)
    targets = _load_targets(targets_path, limit=limit)

    result: dict = {}

    def _worker() -> None:
        try:
            result["summary"] = orchestrator.run(targets, fetcher, options)
        except BaseException as exc:  # noqa: BLE001
            result["error"] = exc

    worker = threading.Thread(target=_worker, daemon=True)
    worker.start()
    try:
        while worker.is_alive():
            worker.join(timeout=0.5)
    except KeyboardInterrupt:
        print("\nCancelling after the current target finishes...")
        orchestrator.cancel()
        worker.join()

    if "error" in result:
        raise result["error"]
    summary = result["summary"]
    storage = JsonlStorage(report_path, run_id=str(uuid.uuid4()))
    storage.write_summary(summary)
    storage.close()

    for task in summary.tasks:
        print(
            f"target={task.target_id} status={task.status.value} synced={task.synced_count} "
            f"errors={task.error_count} attempts={task.attempts} error={task.last_error}"
        )
    print(
        f"\nDONE ({summary.stopped_reason}): synced={summary.total_synced} errors={summary.total_errors} "
        f"skipped={summary.total_skipped} duration_ms={summary.duration_ms}"
    )
    return summary


def main() -> None:
    parser = argparse.ArgumentParser(description="Adaptive, rate-limited sync over a list of targets")
    parser.add_argument("--url-template", required=True, help="Upstream URL with a {target_id} placeholder")
    parser.add_argument("--targets", default=DEFAULT_TARGETS_PATH, help="Path to target list (id[,name] per line)")
    parser.add_argument("--credentials", default=None, help="Path to credential cookies, one per line")
    parser.add_argument("--report", default=DEFAULT_REPORT_PATH, help="Output JSONL report path")
    parser.add_argument("--items-key", default="data", help="Dotted path of the item list in the JSON payload")
    parser.add_argument("--impersonate", default=None, help="Browser to impersonate via curl_cffi (e.g. chrome120)")

    parser.add_argument("--limit", type=int, default=None, help="Max number of targets to load")
    parser.add_argument("--max-results", type=int, default=999999, help="Max items per target")
    parser.add_argument("--base-delay-ms", type=int, default=5000, help="Base delay between requests")
    parser.add_argument("--min-delay-ms", type=int, default=3000, help="Lower bound of the adaptive delay")
    parser.add_argument("--max-delay-ms", type=int, default=120000, help="Upper bound of the adaptive delay")
    parser.add_argument("--log-level", default=None, help="Log level (default: SYNC_LOG_LEVEL or INFO)")

    args = parser.parse_args()

    setup_logging(level=args.log_level)
    config = RateLimitConfig(
        base_delay_ms=args.base_delay_ms,
        min_delay_ms=args.min_delay_ms,
        max_delay_ms=args.max_delay_ms,
    )
    run_sync(
        targets_path=args.targets,
        url_template=args.url_template,
        credentials_path=args.credentials,
        report_path=args.report,
        items_key=args.items_key,
        impersonate=args.impersonate,
        max_results=args.max_results,
        limit=args.limit,
        config=config,
    )


if __name__ == "__main__":
    main()
