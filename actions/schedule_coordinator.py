"""
Schedule Coordinator
Serializes schedule passes per elder and arms them from clock ticks,
store push updates, user actions and day rollover
"""

import logging
import queue
import threading
from typing import Any, Callable, Dict, List, Optional
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from concurrent.futures import Future, ThreadPoolExecutor

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from config import settings
from models import ScheduleItem
from tools.change_feed import ChangeEvent, ChangeFeed, Subscription, change_feed, items_topic, medicine_topic
from tools.scheduler import date_key, local_day
from actions.schedule_generator import ScheduleGenerator
from actions.missed_dose_notifier import MissedDoseNotifier, NotifyOutcome
from actions.missed_dose_marker import MissedItemRef


logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


class TriggerSource(str, Enum):
    """Why a pass was requested"""
    TICK = "tick"
    PUSH = "push"
    USER_ACTION = "user_action"
    ROLLOVER = "rollover"
    STARTUP = "startup"


@dataclass
class PassReport:
    """Summary of one schedule pass for one elder"""
    elder_id: str
    source: TriggerSource
    date_key: str
    started_at: datetime
    finished_at: Optional[datetime] = None
    created: List[str] = field(default_factory=list)
    status_changes: List[str] = field(default_factory=list)
    newly_missed: List[str] = field(default_factory=list)
    notify: Optional[NotifyOutcome] = None
    errors: List[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors

    def to_dict(self) -> Dict[str, Any]:
        return {
            "elder_id": self.elder_id,
            "source": self.source.value,
            "date_key": self.date_key,
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "created": list(self.created),
            "status_changes": list(self.status_changes),
            "newly_missed": list(self.newly_missed),
            "notify": self.notify.to_dict() if self.notify else None,
            "errors": list(self.errors)
        }


class ElderLane:
    """
    Single-worker lane for one elder.

    Requests go into a channel of capacity one. While a pass runs, the first
    request is kept and the rest are dropped, so any burst of triggers during
    a pass results in exactly one more pass.
    """

    def __init__(
        self,
        elder_id: str,
        runner: Callable[[str, TriggerSource], PassReport],
        submit: Callable[[Callable[[], None]], Future]
    ):
        self.elder_id = elder_id
        self._runner = runner
        self._submit = submit
        self._requests: "queue.Queue[TriggerSource]" = queue.Queue(maxsize=1)
        self._lock = threading.Lock()
        self._running = False
        self._closed = False
        self._idle = threading.Event()
        self._idle.set()

        self.passes_run = 0
        self.dropped = 0
        self.last_report: Optional[PassReport] = None
        self.last_error: Optional[BaseException] = None

    @property
    def running(self) -> bool:
        with self._lock:
            return self._running

    def request(self, source: TriggerSource) -> bool:
        """Enqueue a pass without blocking; returns False if it was coalesced"""
        if self._closed:
            return False
        try:
            self._requests.put_nowait(source)
            accepted = True
        except queue.Full:
            self.dropped += 1
            logger.debug(f"Lane {self.elder_id}: {source.value} request coalesced")
            accepted = False
        self._kick()
        return accepted

    def _kick(self):
        with self._lock:
            if self._running or self._closed:
                return
            self._running = True
            self._idle.clear()

        try:
            self._submit(self._drain)
        except RuntimeError as e:
            # Executor already shut down
            logger.warning(f"Lane {self.elder_id} could not start a worker: {e}")
            with self._lock:
                self._running = False
                self._idle.set()

    def _drain(self):
        while True:
            try:
                source = self._requests.get_nowait()
            except queue.Empty:
                with self._lock:
                    # Re-check under the lock so a request racing with shutdown of
                    # this worker is either seen here or starts a new worker
                    if self._requests.empty():
                        self._running = False
                        self._idle.set()
                        return
                continue

            try:
                self.last_report = self._runner(self.elder_id, source)
                self.last_error = None
            except Exception as e:
                logger.exception(f"Schedule pass for elder {self.elder_id} failed: {e}")
                self.last_error = e
            self.passes_run += 1

    def wait_idle(self, timeout: Optional[float] = None) -> bool:
        return self._idle.wait(timeout)

    @property
    def closed(self) -> bool:
        with self._lock:
            return self._closed

    def close(self):
        """Refuse new requests; a pass already running finishes normally"""
        with self._lock:
            self._closed = True

    def reopen(self):
        with self._lock:
            self._closed = False


@dataclass
class _Watch:
    medicine_sub: Subscription
    items_sub: Subscription
    day_key: str


class ScheduleCoordinator:
    """
    Drives schedule passes for watched elders.

    A pass runs: generate today's items, re-evaluate statuses, sweep the
    previous days, then notify caretakers about newly missed and still
    pending items. Passes for one elder never overlap; passes for different
    elders run in parallel on a shared thread pool.
    """

    def __init__(
        self,
        session_factory: Optional[Callable[[], Session]] = None,
        generator: Optional[ScheduleGenerator] = None,
        notifier: Optional[MissedDoseNotifier] = None,
        feed: Optional[ChangeFeed] = None,
        clock: Optional[Clock] = None,
        max_workers: Optional[int] = None,
        tick_interval: Optional[float] = None
    ):
        self.feed = feed or change_feed
        self.generator = generator or ScheduleGenerator(session_factory, feed=self.feed)
        self.notifier = notifier or MissedDoseNotifier(session_factory)
        self.clock: Clock = clock or (lambda: datetime.now(timezone.utc))
        self.max_workers = max_workers or settings.COORDINATOR_MAX_WORKERS
        self.tick_interval = tick_interval or settings.TICK_INTERVAL_SECONDS

        self._lock = threading.RLock()
        self._executor: Optional[ThreadPoolExecutor] = None
        self._lanes: Dict[str, ElderLane] = {}
        self._watches: Dict[str, _Watch] = {}
        self._snapshots: Dict[str, List[ScheduleItem]] = {}
        self._stop_event = threading.Event()
        self._ticker: Optional[threading.Thread] = None
        self._accepting = True

    # ==================== LANES ====================

    def _submit(self, fn: Callable[[], None]) -> Future:
        with self._lock:
            if self._executor is None:
                self._executor = ThreadPoolExecutor(
                    max_workers=self.max_workers,
                    thread_name_prefix="schedule-lane"
                )
            return self._executor.submit(fn)

    def lane(self, elder_id: str) -> ElderLane:
        """
        The elder's lane. A lane closed by unwatch while its pass was still
        running stays registered and is reopened here, so a new request can
        never start a second pass next to the old one.
        """
        with self._lock:
            lane = self._lanes.get(elder_id)
            if lane is None:
                lane = ElderLane(elder_id, self._run_from_lane, self._submit)
                self._lanes[elder_id] = lane
            elif lane.closed:
                lane.reopen()
            return lane

    def _run_from_lane(self, elder_id: str, source: TriggerSource) -> PassReport:
        return self.run_pass(elder_id, source)

    def request(self, elder_id: str, source: TriggerSource = TriggerSource.USER_ACTION) -> bool:
        """Ask for a pass on the elder's lane"""
        if not self._accepting:
            return False
        return self.lane(elder_id).request(source)

    def wait_idle(self, elder_id: str, timeout: Optional[float] = None) -> bool:
        return self.lane(elder_id).wait_idle(timeout)

    def snapshot(self, elder_id: str) -> List[ScheduleItem]:
        """Today's items as last observed by a pass"""
        with self._lock:
            return list(self._snapshots.get(elder_id, []))

    # ==================== PASS ====================

    def run_pass(
        self,
        elder_id: str,
        source: TriggerSource = TriggerSource.TICK,
        now: Optional[datetime] = None
    ) -> PassReport:
        """
        One full pass for an elder. A store error abandons only the step it
        happened in; the next tick retries.
        """
        now = now or self.clock()
        today = local_day(now)
        report = PassReport(
            elder_id=elder_id,
            source=source,
            date_key=date_key(today),
            started_at=now
        )
        to_notify: List[MissedItemRef] = []

        try:
            sync_result = self.generator.sync(elder_id, today, now)
            report.created = list(sync_result.created)
            to_notify.extend(sync_result.newly_missed)
        except SQLAlchemyError as e:
            logger.error(f"Sync failed for elder {elder_id}: {e}")
            report.errors.append(f"sync: {e}")

        try:
            status_result = self.generator.refresh_statuses(elder_id, today, now)
            report.status_changes = list(status_result.changed)
            to_notify.extend(status_result.newly_missed)
        except SQLAlchemyError as e:
            logger.error(f"Status sync failed for elder {elder_id}: {e}")
            report.errors.append(f"status: {e}")

        try:
            to_notify.extend(self.generator.sweep_recent_days(elder_id, today, now))
        except SQLAlchemyError as e:
            logger.error(f"Missed sweep failed for elder {elder_id}: {e}")
            report.errors.append(f"sweep: {e}")

        report.newly_missed = [ref.item_id for ref in to_notify]

        try:
            to_notify.extend(self.generator.pending_notifications(elder_id, today))
            if to_notify:
                report.notify = self.notifier.notify(elder_id, to_notify, now)
        except SQLAlchemyError as e:
            logger.error(f"Notification step failed for elder {elder_id}: {e}")
            report.errors.append(f"notify: {e}")

        try:
            items = self.generator.load_items(elder_id, report.date_key)
            with self._lock:
                self._snapshots[elder_id] = items
        except SQLAlchemyError as e:
            logger.error(f"Snapshot refresh failed for elder {elder_id}: {e}")
            report.errors.append(f"snapshot: {e}")

        report.finished_at = self.clock()
        logger.debug(
            f"Pass ({source.value}) for elder {elder_id}: {len(report.created)} created, "
            f"{len(report.status_changes)} changed, {len(report.newly_missed)} newly missed"
        )
        return report

    # ==================== TRIGGERS ====================

    def watch(self, elder_id: str) -> ElderLane:
        """Subscribe to the elder's medicine and today's items, then run a startup pass"""
        self._accepting = True
        lane = self.lane(elder_id)
        with self._lock:
            if elder_id not in self._watches:
                day_key = date_key(local_day(self.clock()))
                self._watches[elder_id] = _Watch(
                    medicine_sub=self.feed.subscribe(medicine_topic(elder_id), self._push_listener(elder_id)),
                    items_sub=self.feed.subscribe(items_topic(elder_id, day_key), self._push_listener(elder_id)),
                    day_key=day_key
                )
                logger.info(f"Watching elder {elder_id}")
        lane.request(TriggerSource.STARTUP)
        return lane

    def unwatch(self, elder_id: str):
        with self._lock:
            watch = self._watches.pop(elder_id, None)
            self._snapshots.pop(elder_id, None)
            lane = self._lanes.get(elder_id)
            if lane is not None:
                lane.close()
                # A closed idle lane can never start another pass
                if not lane.running:
                    del self._lanes[elder_id]
        if watch:
            watch.medicine_sub.remove()
            watch.items_sub.remove()

    def watched(self) -> List[str]:
        with self._lock:
            return list(self._watches)

    def _push_listener(self, elder_id: str) -> Callable[[ChangeEvent], None]:
        def on_change(event: ChangeEvent):
            self.request(elder_id, TriggerSource.PUSH)
        return on_change

    def tick(self, now: Optional[datetime] = None):
        """
        Request a pass for every watched elder. When the calendar day has
        turned over, the items subscription moves to the new day first.
        """
        now = now or self.clock()
        today_key = date_key(local_day(now))

        with self._lock:
            watches = list(self._watches.items())

        for elder_id, watch in watches:
            if watch.day_key != today_key:
                watch.items_sub.remove()
                watch.items_sub = self.feed.subscribe(
                    items_topic(elder_id, today_key), self._push_listener(elder_id)
                )
                logger.info(f"Day rollover for elder {elder_id}: {watch.day_key} -> {today_key}")
                watch.day_key = today_key
                self.request(elder_id, TriggerSource.ROLLOVER)
            else:
                self.request(elder_id, TriggerSource.TICK)

    # ==================== LIFECYCLE ====================

    @property
    def is_running(self) -> bool:
        return self._ticker is not None and self._ticker.is_alive()

    def start(self):
        """Start the periodic ticker thread"""
        if self.is_running:
            return
        self._stop_event.clear()
        self._accepting = True
        self._ticker = threading.Thread(target=self._tick_loop, name="schedule-ticker", daemon=True)
        self._ticker.start()
        logger.info(f"Schedule coordinator started (tick every {self.tick_interval}s)")

    def _tick_loop(self):
        while not self._stop_event.wait(self.tick_interval):
            try:
                self.tick()
            except Exception as e:
                logger.exception(f"Tick failed: {e}")

    def stop(self, wait: bool = True):
        """Stop ticking, drop all watches and shut the worker pool down"""
        self._accepting = False
        self._stop_event.set()
        if self._ticker is not None:
            self._ticker.join(timeout=self.tick_interval * 2 + 1)
            self._ticker = None

        for elder_id in self.watched():
            self.unwatch(elder_id)

        with self._lock:
            executor, self._executor = self._executor, None
            for lane in self._lanes.values():
                lane.close()
            self._lanes.clear()
        if executor is not None:
            executor.shutdown(wait=wait)
        logger.info("Schedule coordinator stopped")


# Singleton instance
schedule_coordinator = ScheduleCoordinator()
