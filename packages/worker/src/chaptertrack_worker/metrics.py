"""Prometheus metrics for the chaptertrack worker.

1. Queue Metrics
   - Job counts by queue, job name and final status
   - Job duration histograms
   - Stalled jobs recovered

2. Domain Metrics
   - Resolution outcomes
   - Chapters synced per source
   - Impression flushes
   - Catalog tier changes

3. Scheduler Metrics
   - Periodic task runs by task and status

Served by ``start_http_server`` on ``settings.metrics_port`` (default 9101).
"""

from prometheus_client import Counter, Histogram

# ==============================================================================
# Queue Metrics
# ==============================================================================

JOB_COUNT = Counter(
    "chaptertrack_jobs_total",
    "Jobs processed by queue, job name and status",
    ["queue", "name", "status"],
)

JOB_DURATION = Histogram(
    "chaptertrack_job_duration_seconds",
    "Job handler duration in seconds",
    ["queue", "name"],
    buckets=[0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0],
)

STALLED_JOBS_RECOVERED = Counter(
    "chaptertrack_stalled_jobs_recovered_total",
    "Active jobs returned to waiting after a worker crash",
)

# ==============================================================================
# Domain Metrics
# ==============================================================================

RESOLUTION_OUTCOMES = Counter(
    "chaptertrack_resolution_outcomes_total",
    "Metadata resolution attempts by outcome",
    ["outcome"],
)

CHAPTERS_SYNCED = Counter(
    "chaptertrack_chapters_synced_total",
    "Chapters written by the synchronizer, by source",
    ["source"],
)

IMPRESSION_FLUSHES = Counter(
    "chaptertrack_impression_flushes_total",
    "Impression buffer flushes by status",
    ["status"],
)

TIER_CHANGES = Counter(
    "chaptertrack_tier_changes_total",
    "Catalog tier changes by new tier and reason",
    ["tier", "reason"],
)

# ==============================================================================
# Scheduler Metrics
# ==============================================================================

SCHEDULED_TASK_RUNS = Counter(
    "chaptertrack_scheduled_task_runs_total",
    "Periodic maintenance task runs by task and status",
    ["task", "status"],
)
