#!/usr/bin/env python
"""
Cluster Faces

Admin tool that runs face clustering against the configured database.

Usage:
    python -m facecluster.cli.cluster_faces cluster [--user <user_id>] [--deadline <seconds>]
    python -m facecluster.cli.cluster_faces threshold [--user <user_id>]
    python -m facecluster.cli.cluster_faces quality <cluster_id> [--user <user_id>]
    python -m facecluster.cli.cluster_faces stats
"""
import argparse
import asyncio
import sys
import time
from typing import List, Optional

from facecluster.core.container import ServiceContainer
from facecluster.core.exceptions import FaceClusteringError
from facecluster.core.logging import setup_logging
from facecluster.domain.entities.cluster import Scope


def scope_from_args(args: argparse.Namespace) -> Scope:
    return Scope.for_user(args.user) if args.user is not None else Scope.all_faces()


async def run_clustering(container: ServiceContainer, args: argparse.Namespace) -> None:
    """Run one clustering job and print its counts."""
    scope = scope_from_args(args)
    start_time = time.time()
    job = container.job_runner.trigger(scope, deadline=args.deadline)
    result = await job.wait()

    print("\n===== Clustering Statistics =====")
    print(f"Scope: {scope}")
    print(f"Job status: {job.status.value}")
    if result is not None:
        print(f"Faces clustered: {result.faces_processed}")
        print(f"Joined existing clusters: {result.faces_assigned_existing}")
        print(f"Clusters created: {result.clusters_created}")
        print(f"Faces skipped (no embedding): {result.faces_skipped}")
        print(f"Faces failed: {result.faces_failed}")
        print(f"Completed: {result.completed}")
    if job.error:
        print(f"Error: {job.error}")
    print(f"Total time: {time.time() - start_time:.2f} seconds")
    print("=================================")


async def print_threshold(container: ServiceContainer, args: argparse.Namespace) -> None:
    scope = scope_from_args(args)
    threshold = await container.threshold_estimator.estimate_optimal_threshold(scope)
    print(f"Suggested threshold for {scope}: {threshold:.4f}")


async def print_quality(container: ServiceContainer, args: argparse.Namespace) -> None:
    metrics = await container.quality_evaluator.evaluate(args.cluster_id, scope_from_args(args))
    print(f"Cluster {args.cluster_id}")
    print(f"  valid: {metrics.is_valid}")
    print(f"  faces: {metrics.face_count}")
    print(f"  mean similarity: {metrics.internal_similarity:.4f}")
    print(f"  min / max: {metrics.min_similarity:.4f} / {metrics.max_similarity:.4f}")
    print(f"  std: {metrics.similarity_std:.4f}")


async def print_statistics(container: ServiceContainer, args: argparse.Namespace) -> None:
    stats = await container.maintenance_service.get_statistics()
    print(f"Clusters: {stats.total_clusters} ({stats.named_clusters} named)")
    print(f"Faces: {stats.total_faces} ({stats.unclustered_faces} unclustered)")
    for user_id, count in sorted(stats.clusters_by_user.items()):
        print(f"  user {user_id}: {count} clusters")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Cluster detected faces into identities")
    commands = parser.add_subparsers(dest="command", required=True)

    cluster = commands.add_parser("cluster", help="Cluster every unclustered face")
    cluster.add_argument("--user", type=int, help="Only cluster this user's faces")
    cluster.add_argument("--deadline", type=float, help="Stop between faces after this many seconds")
    cluster.set_defaults(handler=run_clustering)

    threshold = commands.add_parser("threshold", help="Estimate a similarity threshold")
    threshold.add_argument("--user", type=int, help="Only consider this user's faces")
    threshold.set_defaults(handler=print_threshold)

    quality = commands.add_parser("quality", help="Evaluate the cohesion of one cluster")
    quality.add_argument("cluster_id", type=int, help="Cluster ID")
    quality.add_argument("--user", type=int, help="Only consider this user's faces")
    quality.set_defaults(handler=print_quality)

    stats = commands.add_parser("stats", help="Print clustering statistics")
    stats.set_defaults(handler=print_statistics)
    return parser


async def main(args: argparse.Namespace) -> int:
    """Main entry point."""
    container = ServiceContainer()
    await container.initialize()
    try:
        await args.handler(container, args)
    except FaceClusteringError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    finally:
        await container.cleanup()
    return 0


def run(argv: Optional[List[str]] = None) -> None:
    setup_logging()
    args = build_parser().parse_args(argv)
    sys.exit(asyncio.run(main(args)))


if __name__ == "__main__":
    run()
