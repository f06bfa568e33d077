#!/usr/bin/env python3
"""
Stream Probe Script
===================

Standalone script to check the frame stream ingestion layer against a
running capture server.

This script:
    1. Opens the stream for today's window (local midnight .. now - margin)
    2. Runs until the backfill ends, the stream fails, or the duration elapses
    3. Logs ingestion stats every few seconds
    4. Reports a final summary

Prerequisites:
    - The capture server must be running at the configured URL
    - Install the package: pip install -e .

Usage:
    python scripts/stream_probe.py --duration 60
    python scripts/stream_probe.py --url http://localhost:3030/stream/frames
"""

import argparse
import asyncio
import logging
import os
import sys
import time

from timeline_agent.collaborators import NoticeBoard, SystemClock
from timeline_agent.stream import FrameStreamIngestor


# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    datefmt="%Y-%m-%dT%H:%M:%S",
)
logger = logging.getLogger(__name__)


async def run_probe(url: str, duration: int, report_interval: int) -> dict:
    """
    Run the probe.

    Args:
        url: Streaming endpoint URL
        duration: Maximum probe duration in seconds
        report_interval: Seconds between progress reports

    Returns:
        Final metrics dict
    """
    logger.info("=" * 60)
    logger.info("Frame Stream Probe")
    logger.info("=" * 60)
    logger.info(f"Stream URL: {url}")
    logger.info(f"Duration: {duration} seconds")
    logger.info("=" * 60)

    notices = NoticeBoard()
    ingestor = FrameStreamIngestor(url=url, clock=SystemClock(), notifier=notices)
    await ingestor.refresh()

    start_time = time.time()
    last_report_time = start_time

    try:
        while ingestor.running:
            elapsed = time.time() - start_time
            if elapsed >= duration:
                logger.info(f"Probe duration ({duration}s) reached")
                break

            if time.time() - last_report_time >= report_interval:
                metrics = ingestor.metrics
                logger.info("-" * 40)
                logger.info(f"Progress Report (elapsed: {elapsed:.0f}s)")
                logger.info(f"  Loading: {ingestor.loading}")
                logger.info(f"  Events received: {metrics.events_received}")
                logger.info(f"  Batches stored: {len(ingestor.store)}")
                logger.info(f"  Duplicates: {metrics.duplicates_dropped}")
                logger.info(f"  Parse errors: {metrics.parse_errors}")
                last_report_time = time.time()

            await asyncio.sleep(0.5)

    except KeyboardInterrupt:
        logger.info("Probe interrupted by user")
    finally:
        await ingestor.stop()

    total_time = time.time() - start_time
    metrics = ingestor.metrics
    loaded = ingestor.store.metrics()

    logger.info("=" * 60)
    logger.info("FINAL SUMMARY")
    logger.info("=" * 60)
    logger.info(f"Total runtime: {total_time:.1f} seconds")
    logger.info(f"Batches stored: {loaded['size']}")
    logger.info(f"Range: {loaded['earliest']} .. {loaded['latest']}")
    logger.info(f"Keep-alives: {metrics.keep_alives}")
    logger.info(f"Parse errors: {metrics.parse_errors}")
    logger.info(f"Stream error: {ingestor.error}")
    logger.info("=" * 60)

    if loaded["size"] > 0 and ingestor.error is None:
        logger.info("PROBE PASSED - frames received")
    else:
        logger.error("PROBE FAILED - no frames received or stream error")

    return {
        "duration": total_time,
        "batches": loaded["size"],
        "parse_errors": metrics.parse_errors,
        "error": ingestor.error,
    }


def main():
    parser = argparse.ArgumentParser(description="Probe the frame stream endpoint")
    parser.add_argument(
        "--url",
        type=str,
        default=os.environ.get("TIMELINE_STREAM_URL", "http://localhost:3030/stream/frames"),
        help="Streaming endpoint URL (http(s) for SSE, ws(s) for WebSocket)",
    )
    parser.add_argument(
        "--duration",
        type=int,
        default=60,
        help="Maximum probe duration in seconds (default: 60)",
    )
    parser.add_argument(
        "--report-interval",
        type=int,
        default=5,
        help="Seconds between progress reports (default: 5)",
    )

    args = parser.parse_args()

    result = asyncio.run(run_probe(
        url=args.url,
        duration=args.duration,
        report_interval=args.report_interval,
    ))

    sys.exit(0 if result["batches"] > 0 and result["error"] is None else 1)


if __name__ == "__main__":
    main()
