#!/usr/bin/env python3
# backend/run_celery_worker.py
"""
Development Celery worker runner.

Consumes the outbox and payment recovery queues; pass ``--beat`` to embed
the scheduler so a single process covers local development.
"""
import os
import subprocess
import sys

if __name__ == "__main__":
    queues = os.getenv("CELERY_QUEUES") or "notifications,payments"
    print(f"🚀 Starting Celery worker, consuming queues: {queues}")

    cmd = [
        sys.executable,
        "-m",
        "celery",
        "-A",
        "beautonomi.tasks.celery_app",
        "worker",
        "--loglevel=info",
        "--concurrency=2",
        "--max-tasks-per-child=100",
        "-Q",
        queues,
    ]
    if "--beat" in sys.argv[1:]:
        cmd.append("--beat")

    subprocess.run(cmd)
