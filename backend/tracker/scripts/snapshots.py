from __future__ import annotations

import argparse
from datetime import date

from backend.tracker.dependencies import (
    get_clock,
    get_registry,
    get_snapshot_repository,
    get_summary_service,
)


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Refresh and inspect daily channel snapshots.",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser(
        "refresh",
        help="Fetch fresh stats for every tracked channel and record today's snapshots.",
    )

    summary_parser = subparsers.add_parser("summary", help="Print the daily delta summary.")
    summary_parser.add_argument(
        "--date",
        type=date.fromisoformat,
        default=None,
        help="Calendar day (YYYY-MM-DD). Defaults to today in the configured offset.",
    )

    list_parser = subparsers.add_parser("list-snapshots", help="List snapshots for a day.")
    scope = list_parser.add_mutually_exclusive_group()
    scope.add_argument(
        "--all",
        action="store_true",
        help="List every recorded snapshot instead of a single day.",
    )
    scope.add_argument(
        "--date",
        type=date.fromisoformat,
        default=None,
        help="Calendar day (YYYY-MM-DD). Defaults to today in the configured offset.",
    )

    return parser.parse_args()


def main() -> None:
    args = _parse_args()

    if args.command == "refresh":
        channels = get_registry().list_channels(force_refresh=True)
        if not channels:
            print("No tracked channels.")
            return
        print("channel_id\ttitle\tsubscribers\tvideos\tviews")
        for channel in channels:
            print(
                "\t".join(
                    [
                        channel.channel_id,
                        channel.title,
                        str(channel.subscriber_count),
                        str(channel.video_count),
                        str(channel.view_count),
                    ]
                )
            )
        return

    day = args.date if args.date is not None else get_clock().today()

    if args.command == "summary":
        summary = get_summary_service().compute(day)
        print(f"Date: {summary.day.isoformat()}")
        print(f"New videos: {summary.new_videos}")
        print(f"New views: {summary.new_views}")
        for delta in summary.channels:
            marker = " (first seen)" if delta.first_seen else ""
            print(f"  {delta.channel_id}\t+{delta.new_videos} videos\t+{delta.new_views} views{marker}")
        return

    if args.command == "list-snapshots":
        repository = get_snapshot_repository()
        snapshots = repository.list_all() if args.all else repository.list_by_day(day)
        if not snapshots:
            scope_label = "any day" if args.all else day.isoformat()
            print(f"No snapshots recorded for {scope_label}.")
            return
        print("snapshot_key\tvideos\tviews\tsubscribers\tcaptured_at")
        for snapshot in snapshots:
            print(
                "\t".join(
                    [
                        snapshot.snapshot_key,
                        str(snapshot.video_count),
                        str(snapshot.view_count),
                        "-" if snapshot.subscriber_count is None else str(snapshot.subscriber_count),
                        snapshot.captured_at,
                    ]
                )
            )
        return

    raise RuntimeError(f"Unhandled command: {args.command}")


if __name__ == "__main__":
    main()
