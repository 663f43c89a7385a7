import concurrent.futures
import logging
import threading
from typing import Callable, List

from convflac.domain.errors import BatchAborted, ConfigurationError
from convflac.domain.models import TranscodeJob

JobRunner = Callable[[TranscodeJob], TranscodeJob]


class JobScheduler:
    """Runs at most `capacity` jobs at once.

    `submit` blocks while every slot is taken, so jobs are admitted in the
    order they are submitted. After the first failure no further jobs are
    admitted; jobs already running are allowed to finish.

    Uses a Condition to track:
    - running / peak_running (slots in use)
    - outstanding jobs (for join_all)
    - the first error raised by a job
    """

    def __init__(self, capacity: int, runner: JobRunner):
        if capacity < 1:
            raise ConfigurationError(f"Thread count must be at least 1 (got {capacity})")
        self.capacity = capacity
        self.runner = runner
        self.logger = logging.getLogger(__name__)

        self._slots = threading.BoundedSemaphore(capacity)
        self._state = threading.Condition()
        self._executor = concurrent.futures.ThreadPoolExecutor(
            max_workers=capacity, thread_name_prefix="convflac"
        )
        self._futures: List[concurrent.futures.Future] = []
        self._errors: List[BaseException] = []
        self.running = 0
        self.peak_running = 0
        self.completed = 0
        self.failed = 0

    @property
    def aborted(self) -> bool:
        with self._state:
            return bool(self._errors)

    def submit(self, job: TranscodeJob) -> concurrent.futures.Future:
        """Admits `job`, waiting for a free slot. Raises BatchAborted after a failure."""
        if self.aborted:
            raise BatchAborted(f"not starting '{job.input_file.path}': an earlier job failed")

        self._slots.acquire()
        # A job may have failed while we were waiting for the slot
        if self.aborted:
            self._slots.release()
            raise BatchAborted(f"not starting '{job.input_file.path}': an earlier job failed")

        with self._state:
            self.running += 1
            self.peak_running = max(self.peak_running, self.running)
        self.logger.debug(f"ADMIT: {job.input_file.path} (running={self.running}/{self.capacity})")

        try:
            future = self._executor.submit(self._run, job)
        except RuntimeError:
            self._release()
            raise
        self._futures.append(future)
        return future

    def _run(self, job: TranscodeJob) -> TranscodeJob:
        try:
            result = self.runner(job)
        except Exception as e:
            with self._state:
                self.failed += 1
                self._errors.append(e)
            raise
        else:
            with self._state:
                self.completed += 1
            return result
        finally:
            self._release()

    def _release(self):
        with self._state:
            self.running -= 1
            self._state.notify_all()
        self._slots.release()

    def join_all(self):
        """Waits for every admitted job, then re-raises the first failure."""
        concurrent.futures.wait(self._futures)
        self._executor.shutdown(wait=True)
        with self._state:
            errors = list(self._errors)
        if errors:
            if len(errors) > 1:
                for extra in errors[1:]:
                    self.logger.error(f"Additional failure: {extra}")
            raise errors[0]
