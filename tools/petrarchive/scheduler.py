"""Recurring job scheduler – cron triggers with seconds, in one fixed timezone."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass

from apscheduler.events import EVENT_JOB_MAX_INSTANCES, JobExecutionEvent, JobSubmissionEvent
from apscheduler.schedulers.base import BaseScheduler
from apscheduler.schedulers.blocking import BlockingScheduler
from apscheduler.triggers.cron import CronTrigger

logger = logging.getLogger("petrarchive.scheduler")

CRON_FIELDS = ("second", "minute", "hour", "day", "month", "day_of_week")


@dataclass(frozen=True)
class Job:
    spec: str
    name: str
    func: Callable[[], object]


def parse_trigger(spec: str, timezone: str) -> CronTrigger:
    """Build a trigger from a six-field cron spec: ``sec min hour day month dow``.

    Day-of-week follows APScheduler (``mon``-``sun``, 0 = Monday).  Raises
    ValueError on a malformed spec.
    """
    fields = spec.split()
    if len(fields) != len(CRON_FIELDS):
        raise ValueError(f"expected {len(CRON_FIELDS)} fields in cron spec, got {len(fields)}: {spec!r}")
    return CronTrigger(timezone=timezone, **dict(zip(CRON_FIELDS, fields)))


def _contained(job: Job) -> Callable[[], None]:
    def run() -> None:
        logger.info("Running scheduled %s", job.name)
        try:
            job.func()
        except Exception:
            logger.exception("Scheduled %s failed", job.name)
    run.__name__ = job.name
    return run


def _on_skipped(event: JobSubmissionEvent | JobExecutionEvent) -> None:
    logger.warning("Skipping %s: previous run still in progress", event.job_id)


def register_jobs(scheduler: BaseScheduler, jobs: list[Job], timezone: str) -> None:
    """Add every job; a bad trigger spec raises before anything runs.

    A job never overlaps itself: a firing while the previous run is still
    going is dropped.
    """
    triggers = [(job, parse_trigger(job.spec, timezone)) for job in jobs]
    for job, trigger in triggers:
        scheduler.add_job(
            _contained(job),
            trigger,
            id=job.name,
            name=job.name,
            max_instances=1,
            coalesce=True,
            misfire_grace_time=300,
        )
        logger.debug("Scheduled %s at %r (%s)", job.name, job.spec, timezone)


def build_scheduler(jobs: list[Job], timezone: str, scheduler_cls: type[BaseScheduler] = BlockingScheduler) -> BaseScheduler:
    scheduler = scheduler_cls(timezone=timezone)
    scheduler.add_listener(_on_skipped, EVENT_JOB_MAX_INSTANCES)
    register_jobs(scheduler, jobs, timezone)
    return scheduler


def crawl_jobs(crawl: Callable[[], object]) -> list[Job]:
    """The default schedule: crawl twice a day, seven minutes past 9 and 21."""
    return [
        Job(spec="0 7 9 * * *", name="ScrapePetrarchan AM", func=crawl),
        Job(spec="0 7 21 * * *", name="ScrapePetrarchan PM", func=crawl),
    ]
