from celery import shared_task

from .scheduler import run_health_job, run_renewal_job
from .worker import process_next_event


@shared_task
def run_renewal_job_task():
    return run_renewal_job()


@shared_task
def run_health_job_task():
    return run_health_job()


@shared_task
def drain_events_task(max_events: int = 100):
    """Process up to `max_events` due events; handy when no long-running worker is deployed."""
    processed = 0
    while processed < max_events and process_next_event():
        processed += 1
    return processed
