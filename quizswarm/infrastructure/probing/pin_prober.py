"""
PIN Prober
==========
Walks the PIN space in fixed-size batches looking for a game that still
accepts players.

Each batch fires every validation request at once and waits for all of them
before the next batch starts, so at most ``batch_size`` requests are in
flight. Results are consumed in candidate order; a validated PIN goes through
the liveness sub-probe, and the first PIN whose game has not started ends the
job as ``found``.

Stopping is cooperative: the flag is checked before each batch, before each
result is consumed, and inside the sub-probe. Finished jobs stay queryable for
the retention window and are evicted on the next lookup after it.

``find_random`` is the one-shot alternative: it draws PINs at random from a
range, paced by a short delay, until one is available or the attempts run out.
"""

import asyncio
import json
import random
import time
from typing import Any, Dict, List, Optional, Tuple

from ...core.exceptions import AlreadyRunningError, ProbeJobNotFoundError, ProbeTransportError
from ...core.logger import StructuredLogger
from ...domain.models.probe_job import FoundPin, ProbeJob, ProbeStatus
from ..config.settings import ProbeSettings
from ..hub.pin_validator import PinValidationResult, PinValidator
from .liveness_probe import LivenessProbe, LivenessResult

ValidationOutcome = Tuple[str, Optional[PinValidationResult], Optional[ProbeTransportError]]


class PinProber:

    def __init__(self, validator: PinValidator, liveness_probe: LivenessProbe,
                 settings: ProbeSettings, logger: StructuredLogger,
                 rng: Optional[random.Random] = None):
        self.validator = validator
        self.liveness_probe = liveness_probe
        self.settings = settings
        self.logger = logger
        self._jobs: Dict[str, ProbeJob] = {}
        self._tasks: Dict[str, asyncio.Task] = {}
        self._random = rng or random.Random()

    def format_pin(self, value: int) -> str:
        return str(value).zfill(self.settings.pin_width)

    def _evict_finished(self) -> None:
        cutoff = time.time() - self.settings.finished_retention_seconds
        expired = [
            job_id for job_id, job in self._jobs.items()
            if not job.is_active and job.finished_at is not None and job.finished_at < cutoff
            and job_id not in self._tasks
        ]
        for job_id in expired:
            del self._jobs[job_id]
        if expired:
            self.logger.debug("pin_prober.jobs_evicted", {"count": len(expired), "remaining": len(self._jobs)})

    def _get_job(self, job_id: str) -> ProbeJob:
        self._evict_finished()
        job = self._jobs.get(job_id)
        if job is None:
            raise ProbeJobNotFoundError(job_id)
        return job

    def start(self, start_value: int, owner: str) -> str:
        """Create a job and launch its batch loop. Must be called on the running loop."""
        if not self.settings.space_min <= start_value <= self.settings.space_max:
            raise ValueError(
                f"start_value {start_value} outside [{self.settings.space_min}, {self.settings.space_max}]"
            )
        self._evict_finished()
        for existing in self._jobs.values():
            if existing.owner == owner and existing.is_active:
                raise AlreadyRunningError(owner, existing.job_id)

        job = ProbeJob(start_value=start_value, owner=owner, log_max_entries=self.settings.log_max_entries)
        job.status = ProbeStatus.RUNNING
        job.append_log(f"Probing PINs starting from {self.format_pin(start_value)}")
        self._jobs[job.job_id] = job

        task = asyncio.get_running_loop().create_task(self._run(job), name=job.job_id)
        self._tasks[job.job_id] = task
        task.add_done_callback(lambda _: self._tasks.pop(job.job_id, None))

        self.logger.info("pin_prober.started", {
            "job_id": job.job_id,
            "owner": owner,
            "start_value": start_value,
            "batch_size": self.settings.batch_size
        })
        return job.job_id

    def stop(self, job_id: str) -> dict:
        job = self._get_job(job_id)
        if job.request_stop():
            self.logger.info("pin_prober.stop_requested", {
                "job_id": job_id,
                "current_value": job.current_value
            })
        return job.snapshot()

    def status(self, job_id: str) -> dict:
        return self._get_job(job_id).snapshot()

    def list_jobs(self, owner: Optional[str] = None) -> List[dict]:
        self._evict_finished()
        return [
            job.snapshot() for job in self._jobs.values()
            if owner is None or job.owner == owner
        ]

    async def wait(self, job_id: str, timeout: Optional[float] = None) -> dict:
        """Wait for a job's loop to finish and return its final snapshot."""
        task = self._tasks.get(job_id)
        if task is not None:
            await asyncio.wait({task}, timeout=timeout)
        return self.status(job_id)

    async def _validate(self, pin: str) -> ValidationOutcome:
        try:
            return pin, await self.validator.validate(pin), None
        except ProbeTransportError as e:
            return pin, None, e

    async def _run(self, job: ProbeJob) -> None:
        try:
            await self._probe(job)
        except asyncio.CancelledError:
            job.append_log("Probe cancelled")
            job.finish(ProbeStatus.STOPPED)
            raise
        except Exception as e:
            job.append_log(f"Probe aborted: {type(e).__name__}: {e}")
            job.finish(ProbeStatus.STOPPED)
            self.logger.error("pin_prober.job_failed", {
                "job_id": job.job_id,
                "error": str(e),
                "error_type": type(e).__name__
            }, exc_info=True)

    async def _probe(self, job: ProbeJob) -> None:
        batch_size = self.settings.batch_size
        last_value = self.settings.space_max

        for batch_start in range(job.start_value, last_value + 1, batch_size):
            if job.stop_requested:
                break

            candidates = [
                self.format_pin(value)
                for value in range(batch_start, min(batch_start + batch_size, last_value + 1))
            ]
            results = await asyncio.gather(*(self._validate(pin) for pin in candidates))
            job.batches_completed += 1

            for pin, result, error in results:
                if job.stop_requested:
                    break
                if await self._consume(job, pin, result, error):
                    return

        if job.stop_requested:
            job.append_log("Probe stopped manually")
        else:
            job.append_log("PIN space exhausted without an available game")
        job.finish(ProbeStatus.STOPPED)
        self.logger.info("pin_prober.finished", {
            "job_id": job.job_id,
            "stopped": job.stop_requested,
            "batches_completed": job.batches_completed,
            "candidates_checked": job.candidates_checked
        })

    async def _consume(self, job: ProbeJob, pin: str, result: Optional[PinValidationResult],
                       error: Optional[ProbeTransportError]) -> bool:
        """Handle one validation result. Returns True when the job found its PIN."""
        job.current_value = int(pin)
        job.last_candidate = pin
        job.candidates_checked += 1

        if error is not None:
            job.append_log(f"Connection error for PIN {pin}: {error.reason}")
            return False

        if not result.accepted:
            if result.wrong_pin:
                job.append_log(f"PIN {pin} rejected (errorCode: {result.error_code})")
            else:
                job.append_log(f"Unusual response for PIN {pin}: {json.dumps(result.raw, default=str)}")
            return False

        job.append_log(f"PIN {pin} is valid (playId {result.play_id}), checking whether the game has started")
        liveness = await self.liveness_probe.check(result.play_id, pin, job.stop_event)

        if liveness == LivenessResult.AVAILABLE:
            job.found = FoundPin(pin=pin, play_id=result.play_id, raw_response=result.raw)
            job.append_log(f"Available PIN found: {pin}")
            job.finish(ProbeStatus.FOUND)
            self.logger.info("pin_prober.pin_found", {
                "job_id": job.job_id,
                "pin": pin,
                "play_id": result.play_id,
                "candidates_checked": job.candidates_checked
            })
            return True

        if liveness == LivenessResult.ALREADY_STARTED:
            job.append_log(f"PIN {pin} is valid but its game has already started")
        elif liveness == LivenessResult.UNREACHABLE:
            job.append_log(f"PIN {pin} is valid but its game could not be reached")
        return False

    async def find_random(self, max_attempts: Optional[int] = None, start: Optional[int] = None,
                          end: Optional[int] = None,
                          cancel_event: Optional[asyncio.Event] = None) -> Dict[str, Any]:
        """
        Draw PINs uniformly from ``[start, end]`` until one leads to a game that
        still accepts players, or ``max_attempts`` draws were made.

        Rejected, unreachable and already started PINs all count as failed
        attempts. Draws may repeat.
        """
        space_min, space_max = self.settings.space_min, self.settings.space_max
        if max_attempts is None:
            max_attempts = self.settings.random_max_attempts
        if start is None:
            start = min(max(self.settings.random_range_min, space_min), space_max)
        if end is None:
            end = space_max

        if not 1 <= max_attempts <= self.settings.random_max_attempts_limit:
            raise ValueError(f"max_attempts must be between 1 and {self.settings.random_max_attempts_limit}")
        if not space_min <= start <= end <= space_max:
            raise ValueError(f"Range [{start}, {end}] outside [{space_min}, {space_max}]")

        self.logger.info("pin_prober.random_started", {"max_attempts": max_attempts, "start": start, "end": end})

        attempts = 0
        failed: List[str] = []
        found: Optional[Dict[str, Any]] = None
        while attempts < max_attempts:
            if cancel_event is not None and cancel_event.is_set():
                break
            pin = self.format_pin(self._random.randint(start, end))
            attempts += 1

            _, result, error = await self._validate(pin)
            if error is not None:
                self.logger.debug("pin_prober.random_transport_error", {"pin": pin, "error": error.reason})
            elif result.accepted:
                liveness = await self.liveness_probe.check(result.play_id, pin, cancel_event)
                if liveness == LivenessResult.AVAILABLE:
                    found = {"pin": pin, "play_id": result.play_id, "attempt": attempts}
                    break
            failed.append(pin)

            if attempts < max_attempts:
                await asyncio.sleep(self.settings.random_attempt_delay_seconds)

        self.logger.info("pin_prober.random_finished", {
            "found": found["pin"] if found else None,
            "attempts": attempts,
            "failed_attempts": len(failed)
        })
        return {
            "success": found is not None,
            "found": found,
            "attempts": attempts,
            "failed_attempts": len(failed),
            "failed_pins": failed,
        }

    async def shutdown(self) -> None:
        tasks = [task for task in self._tasks.values() if not task.done()]
        for job in self._jobs.values():
            job.request_stop()
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
            self.logger.info("pin_prober.shutdown", {"cancelled_jobs": len(tasks)})
        # Tasks cancelled before their first step never reach _run's handler
        for job in self._jobs.values():
            if job.is_active:
                job.finish(ProbeStatus.STOPPED)
