import threading

from django.conf import settings
from django.core.management.base import BaseCommand

from workflow.worker import EventWorker


class Command(BaseCommand):
    help = "Poll the automation event queue and process due events until interrupted."

    def add_arguments(self, parser):
        parser.add_argument(
            "--once", action="store_true", help="Process at most one due event and exit"
        )
        parser.add_argument(
            "--interval", type=int, default=None,
            help="Polling interval in milliseconds (default: EVENT_WORKER_POLL_INTERVAL_MS)"
        )
        parser.add_argument(
            "--force", action="store_true", help="Run even when EVENT_WORKER_ENABLED is false"
        )

    def handle(self, *args, **opts):
        worker = EventWorker(poll_interval_ms=opts.get("interval"))

        if opts.get("once"):
            processed = worker.tick()
            self.stdout.write("Processed 1 event\n" if processed else "No due events\n")
            return

        if not settings.EVENT_WORKER_ENABLED and not opts.get("force"):
            self.stdout.write(self.style.WARNING("Event worker disabled (EVENT_WORKER_ENABLED=false)\n"))
            return

        self.stdout.write(f"Event worker polling every {worker.poll_interval_ms}ms (Ctrl+C to stop)\n")
        stop_event = threading.Event()
        try:
            worker.run_forever(stop_event)
        except KeyboardInterrupt:
            stop_event.set()
            self.stdout.write("\nEvent worker stopped\n")
