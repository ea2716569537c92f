"""Pipeline orchestrator for ingestion job lifecycle management.

Both sources (the filesystem watcher and the extraction log reader) hand
``DiscoveredFile`` objects to ``Orchestrator.submit``. From there every file
follows the same path:

- Deduplicator admits or drops the path (same thread as the source)
- a path whose job is still running is dropped, so one file never has two jobs
- a worker thread waits for the file to stop growing
- the Progress Tracker records the job start
- the Transformer classifies and converts it (inside a governor pool)
- the Progress Tracker records the job end, events report the outcome

Shutdown stops the sources, then drains in-flight jobs. If the drain exceeds
``shutdown.grace_s`` the cancel event is set so external tool calls abort.
"""

import concurrent.futures
import logging
import threading
import time
from datetime import datetime
from pathlib import Path
from typing import Iterable, Optional, Protocol, Set
from ibt.config.models import AppConfig
from ibt.domain.errors import ExtractionFailed
from ibt.domain.events import (
    DiscoveryRejected,
    ExtractionFinished,
    ExtractionStarted,
    FileDiscovered,
    JobCompleted,
    JobFailed,
    JobSkipped,
    JobStarted,
    ProcessingFinished,
    ShutdownRequested,
)
from ibt.domain.models import DiscoveredFile, JobStatus, TransformOutcome
from ibt.infrastructure.event_bus import EventBus
from ibt.infrastructure.housekeeping import HousekeepingService
from ibt.pipeline.dedup import DispatchDeduplicator
from ibt.pipeline.progress import ProgressTracker
from ibt.pipeline.stability import StabilityGate
from ibt.pipeline.transformer import Transformer

COMPLETED_STATUSES = {JobStatus.CONVERTED, JobStatus.PRESERVED, JobStatus.DISPOSED}


class Source(Protocol):
    def stop(self) -> None: ...


class Orchestrator:
    """Wires a discovery source to the Transformer and owns shutdown.

    Args:
        config: AppConfig with general, stability, dedup and shutdown settings.
        event_bus: EventBus for publishing job lifecycle events.
        transformer: Transformer performing the per-file work.
        stability_gate: Optional StabilityGate (built from config if omitted).
        deduplicator: Optional DispatchDeduplicator (built from config if omitted).
        progress: Optional ProgressTracker (built on ``event_bus`` if omitted).
        housekeeping: Optional HousekeepingService run before a source starts.
    """

    def __init__(
        self,
        config: AppConfig,
        event_bus: EventBus,
        transformer: Transformer,
        stability_gate: Optional[StabilityGate] = None,
        deduplicator: Optional[DispatchDeduplicator] = None,
        progress: Optional[ProgressTracker] = None,
        housekeeping: Optional[HousekeepingService] = None,
    ):
        self.config = config
        self.event_bus = event_bus
        self.transformer = transformer
        self.stability = stability_gate or StabilityGate(
            poll_interval_s=config.stability.poll_interval_s,
            stable_for_s=config.stability.stable_for_s,
            max_wait_s=config.stability.max_wait_s,
        )
        self.deduplicator = deduplicator or DispatchDeduplicator(
            window_s=config.dedup.window_s, max_entries=config.dedup.max_entries
        )
        self.progress = progress or ProgressTracker(event_bus)
        self.housekeeping = housekeeping or HousekeepingService()
        self.logger = logging.getLogger(__name__)

        self._executor = concurrent.futures.ThreadPoolExecutor(
            max_workers=config.general.max_workers, thread_name_prefix="ibt-job"
        )
        self._cancel_event = threading.Event()
        self._lock = threading.Lock()
        self._accepting = True
        self._shut_down = False
        self._futures: Set[concurrent.futures.Future] = set()
        self._in_flight: Set[Path] = set()

    @property
    def cancel_event(self) -> threading.Event:
        return self._cancel_event

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    def submit(self, file: DiscoveredFile) -> bool:
        """Admits ``file`` and schedules its job. Never raises."""
        if not self.deduplicator.admit(file.path):
            self.logger.debug(f"DEDUP_DROP: {file.path}")
            return False

        with self._lock:
            if not self._accepting:
                self.logger.debug(f"REJECT_SHUTDOWN: {file.path}")
                self.event_bus.publish(DiscoveryRejected(file=file, reason="shutting down"))
                return False
            if file.path in self._in_flight:
                self.logger.debug(f"IN_FLIGHT_DROP: {file.path}")
                return False
            self._in_flight.add(file.path)
            future = self._executor.submit(self._run_job, file)
            self._futures.add(future)
        future.add_done_callback(self._forget)

        self.logger.debug(f"DISCOVERED: {file.path} via={file.discovery_method.value}")
        self.event_bus.publish(FileDiscovered(file=file))
        return True

    def _forget(self, future: concurrent.futures.Future) -> None:
        with self._lock:
            self._futures.discard(future)

    def _run_job(self, file: DiscoveredFile) -> None:
        """Task boundary: nothing raised here reaches the executor."""
        try:
            self._process_file(file)
        except Exception as e:
            self.logger.error(f"Exception processing {file.path}: {e}", exc_info=True)
            self.event_bus.publish(JobFailed(file=file, error_message=str(e)))
        finally:
            with self._lock:
                self._in_flight.discard(file.path)

    def _process_file(self, file: DiscoveredFile) -> None:
        if not self.stability.await_stable(file.path):
            self.logger.debug(f"VANISHED_BEFORE_START: {file.path}")
            self.event_bus.publish(DiscoveryRejected(file=file, reason="vanished"))
            return
        if self._cancel_event.is_set():
            self.event_bus.publish(DiscoveryRejected(file=file, reason="cancelled"))
            return

        file.transform_started_at = datetime.now()
        self.progress.job_started()
        try:
            self.logger.info(f"JOB_START: {file.path.name} (thread {threading.get_ident()})")
            self.event_bus.publish(JobStarted(file=file))
            outcome = self.transformer.process(file, self._cancel_event)
            self._log_job_end(file, outcome)
            self._publish_outcome(file, outcome)
        finally:
            self.progress.job_finished()

    def _log_job_end(self, file: DiscoveredFile, outcome: TransformOutcome) -> None:
        waited = (file.transform_started_at - file.discovered_at).total_seconds()
        age = ""
        if file.created_at is not None:
            age = f" since_created={(file.transform_started_at - file.created_at).total_seconds():.2f}s"
        self.logger.info(
            f"JOB_END: {file.path.name} status={outcome.status.value} type={outcome.content_type} "
            f"wait={waited:.2f}s elapsed={outcome.duration_seconds or 0:.2f}s{age}"
        )

    def _publish_outcome(self, file: DiscoveredFile, outcome: TransformOutcome) -> None:
        if outcome.status in COMPLETED_STATUSES:
            self.event_bus.publish(JobCompleted(file=file, outcome=outcome))
        elif outcome.status == JobStatus.FAILED:
            self.event_bus.publish(JobFailed(file=file, error_message=outcome.message or "failed", outcome=outcome))
        else:
            self.event_bus.publish(JobSkipped(file=file, outcome=outcome))

    # ------------------------------------------------------------------
    # Runs
    # ------------------------------------------------------------------

    def run_watch(self, watcher, stop_event: threading.Event) -> int:
        """Runs the filesystem source until ``stop_event`` is set."""
        self.housekeeping.cleanup_temp_files(watcher.root)
        watcher.start()
        try:
            stop_event.wait()
        finally:
            total = self.shutdown([watcher])
        return total

    def run_extraction(self, runner) -> int:
        """Runs the extraction source to completion, then drains.

        Raises ExtractionFailed after the drain when the subprocess failed.
        """
        if runner.backup_dir.is_dir():
            self.housekeeping.cleanup_temp_files(runner.backup_dir)
        self.event_bus.publish(ExtractionStarted(backup_dir=runner.backup_dir))
        failure: Optional[ExtractionFailed] = None
        try:
            runner.run()
        except ExtractionFailed as e:
            self.logger.error(f"Extraction failed: {e}")
            failure = e
        finally:
            self.event_bus.publish(
                ExtractionFinished(returncode=runner.returncode, files_reported=runner.files_reported)
            )
            self.shutdown([runner])
        if failure is not None:
            raise failure
        return self.progress.total

    # ------------------------------------------------------------------
    # Shutdown
    # ------------------------------------------------------------------

    def _wait_futures(self, timeout: Optional[float]) -> bool:
        with self._lock:
            pending = set(self._futures)
        if not pending:
            return True
        _, not_done = concurrent.futures.wait(pending, timeout=timeout)
        return not not_done

    def shutdown(self, sources: Iterable[Source] = ()) -> int:
        """Stops accepting work, stops the sources, drains, returns the total.

        Safe to call more than once; later calls only return the total.
        """
        with self._lock:
            if self._shut_down:
                return self.progress.total
            self._shut_down = True
            self._accepting = False

        self.logger.info("Shutdown requested, waiting for all files to be processed...")
        self.event_bus.publish(ShutdownRequested())

        for source in sources:
            source.stop()

        start = time.monotonic()
        grace_s = self.config.shutdown.grace_s
        if not self._wait_futures(grace_s) or not self.progress.wait_idle(grace_s):
            active, _ = self.progress.snapshot()
            self.logger.warning(
                f"Drain exceeded {grace_s:g}s with {active} active jobs; cancelling external tool calls"
            )
            self._cancel_event.set()
            self._wait_futures(None)
            self.progress.wait_idle()

        self._executor.shutdown(wait=True)
        total = self.progress.total
        self.logger.info(
            f"Processing finished. Total files processed: {total} (drain {time.monotonic() - start:.2f}s)"
        )
        self.event_bus.publish(ProcessingFinished(total=total))
        return total
