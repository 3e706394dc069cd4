"""
Pipeline Service
Drives a schedule through decomposition, matching, scoring and statistics.

Each stage trigger validates synchronously, persists the stage's ``*_START``
progress together with a RUNNING job, and launches the stage body as a
detached task. The body re-reads the schedule, does its work and writes the
result back with the ``*_DONE`` progress. Failures land on the job record and
``result.error``; progress stays at ``*_START`` until a retry succeeds.
"""
import asyncio
import traceback
from pathlib import Path
from typing import Callable, Dict, List, Optional, Tuple

from ..config import settings
from ..core import (
    BadRequestException,
    ConflictException,
    JobStatus,
    Messages,
    NotFoundException,
    PreconditionException,
    Progress,
    Stage,
)
from ..core.logger import pipeline_logger as logger
from ..grader import matching, objective, subjective
from ..grader.decomposition import PaperDecomposer, PdfRasterizer, ScanValidationError
from ..grader.image_processing import CropConfig
from ..grader.models import (
    AISuggestion,
    Component,
    ExamLayout,
    MatchResult,
    ObjectiveAnswer,
    Roster,
    Schedule,
    StageError,
    StageJob,
    Statistics,
    StudentPaper,
    SubjectiveAnswer,
)
from ..grader.statistics import IncompleteScoresError, compute_statistics
from ..recognition import RecognitionService
from ..schemas import StageAck
from ..utils import generate_id, utc_now
from .export_service import ExportService
from .file_service import FileService
from .storage import ReferenceRepository, ScheduleRepository

STAGE_MESSAGES = {
    Stage.MATCH: Messages.MATCHING_STARTED,
    Stage.OBJECTIVE: Messages.OBJECTIVE_STARTED,
    Stage.SUBJECTIVE: Messages.SUBJECTIVE_STARTED,
    Stage.RESULT: Messages.RESULT_STARTED,
}

INTERRUPTED = "interrupted"


class PipelineService:
    """Service coordinating the grading stages of every schedule"""

    def __init__(
        self,
        repository: Optional[ScheduleRepository] = None,
        references: Optional[ReferenceRepository] = None,
        files: Optional[FileService] = None,
        recognizer=None,
        rasterizer=None,
        exporter: Optional[ExportService] = None,
        stage_timeout: Optional[float] = None,
        save_retries: Optional[int] = None,
        prefetch: Optional[bool] = None,
    ):
        self.repository = repository or ScheduleRepository()
        self.references = references or ReferenceRepository()
        self.files = files or FileService()
        self.recognizer = recognizer or RecognitionService()
        self.exporter = exporter or ExportService()
        self.stage_timeout = stage_timeout or settings.STAGE_TIMEOUT_SECONDS
        self.save_retries = save_retries or settings.SAVE_RETRIES
        self.prefetch = settings.SUBJECTIVE_PREFETCH if prefetch is None else prefetch

        crop_config = CropConfig(
            page_width_mm=settings.PAGE_WIDTH_MM,
            page_height_mm=settings.PAGE_HEIGHT_MM,
            padding=settings.CROP_PADDING_PX,
        )
        assets = self.files.assets
        self.decomposer = PaperDecomposer(
            assets, rasterizer or PdfRasterizer(settings.RASTER_DPI), crop_config
        )
        self.matcher = matching.MatchingEngine(self.recognizer, assets)
        self.scorer = objective.ObjectiveScorer(self.recognizer, assets, crop_config)
        self.assistant = subjective.SubjectiveAssistant(self.recognizer, assets)

        self._tasks: Dict[str, asyncio.Task] = {}
        self._bodies = {
            Stage.MATCH: self._run_matching,
            Stage.OBJECTIVE: self._run_objective,
            Stage.SUBJECTIVE: self._run_subjective,
            Stage.RESULT: self._run_result,
        }

    # ===== Schedule lifecycle =====
    async def create_schedule(self, name: str, layout_id: str, roster_id: str) -> Schedule:
        self.references.get_layout(layout_id)
        self.references.get_roster(roster_id)
        schedule = Schedule(
            id=generate_id("schedule"),
            name=name,
            layout_id=layout_id,
            roster_id=roster_id,
        )
        return await self.repository.create(schedule)

    async def get_schedule(self, schedule_id: str) -> Schedule:
        return await self.repository.get(schedule_id)

    async def list_schedules(self) -> List[Schedule]:
        return await self.repository.list_all()

    async def delete_schedule(self, schedule_id: str) -> None:
        """Cancel in-flight work, then remove the document and its files"""
        await self.repository.get(schedule_id)
        task = self._tasks.get(schedule_id)
        if task is not None and not task.done():
            task.cancel()
            await asyncio.wait({task})
        await self.repository.delete(schedule_id)
        await asyncio.to_thread(self.files.remove_schedule_files, schedule_id)
        self.assistant.cache.clear(schedule_id)
        logger.info(f"Schedule {schedule_id} deleted")

    async def upload_pdf(self, schedule_id: str, filename: str, content: bytes) -> Schedule:
        schedule = await self.repository.get(schedule_id)
        self._require_progress(schedule, Progress.CREATED, Progress.UPLOADED)
        ref = await asyncio.to_thread(self.files.save_pdf, schedule_id, filename, content)

        def apply(s: Schedule):
            self._require_progress(s, Progress.CREATED, Progress.UPLOADED)
            s.result.pdf_ref = ref
            self._advance(s, Progress.UPLOADED)

        return await self._mutate(schedule_id, apply)

    # ===== Stage triggers =====
    async def start_matching(self, schedule_id: str) -> StageAck:
        schedule = await self.repository.get(schedule_id)
        running = self._running_ack(schedule, Stage.MATCH)
        if running is not None:
            return running

        self._require_progress(schedule, Progress.UPLOADED)
        layout, roster = self._references(schedule)
        pdf_path = self.files.scan_path(schedule.result.pdf_ref)
        try:
            await asyncio.to_thread(self.decomposer.check, pdf_path, layout, len(roster.students))
        except ScanValidationError as e:
            raise PreconditionException(str(e))

        return await self._launch(schedule, Stage.MATCH)

    async def start_objective(self, schedule_id: str) -> StageAck:
        schedule = await self.repository.get(schedule_id)
        running = self._running_ack(schedule, Stage.OBJECTIVE)
        if running is not None:
            return running

        self._require_progress(schedule, Progress.MATCH_DONE)
        if not schedule.result.match_result.done:
            unmatched = schedule.result.match_result.unmatched
            raise PreconditionException(
                f"Matching is not complete: {len(unmatched.papers)} papers and "
                f"{len(unmatched.student_ids)} students unmatched"
            )
        roster = self.references.get_roster(schedule.roster_id)

        def finalize(s: Schedule):
            try:
                s.result.student_papers = matching.finalize_matching(
                    s.result.papers, s.result.match_result, roster
                )
            except matching.ReconciliationError as e:
                raise PreconditionException(str(e))

        return await self._launch(schedule, Stage.OBJECTIVE, finalize)

    async def start_subjective(self, schedule_id: str) -> StageAck:
        schedule = await self.repository.get(schedule_id)
        running = self._running_ack(schedule, Stage.SUBJECTIVE)
        if running is not None:
            return running

        self._require_progress(schedule, Progress.OBJECTIVE_DONE)
        uncertain = objective.count_uncertain(schedule.result.student_papers)
        if uncertain:
            raise PreconditionException(f"{uncertain} objective answers still need review")

        return await self._launch(schedule, Stage.SUBJECTIVE)

    async def start_result(self, schedule_id: str) -> StageAck:
        schedule = await self.repository.get(schedule_id)
        running = self._running_ack(schedule, Stage.RESULT)
        if running is not None:
            return running

        self._require_progress(schedule, Progress.SUBJECTIVE_DONE)
        pending = subjective.count_pending(schedule.result.student_papers)
        if pending:
            raise PreconditionException(f"{pending} subjective answers have not been scored")

        return await self._launch(schedule, Stage.RESULT)

    async def retry(self, schedule_id: str) -> StageAck:
        """Relaunch the stage whose latest job failed or was cancelled"""
        schedule = await self.repository.get(schedule_id)
        job = schedule.latest_job()
        if job is None:
            raise PreconditionException(f"No stage has been started for schedule '{schedule_id}'")

        if job.is_active:
            if self._task_alive(schedule_id):
                return self._ack(schedule, job, Messages.STAGE_ALREADY_RUNNING.format(
                    job.stage.value, schedule_id))
            self._close_job(schedule, job, JobStatus.FAILED, INTERRUPTED)
        elif job.status not in (JobStatus.FAILED, JobStatus.CANCELLED):
            raise PreconditionException(
                f"Latest {job.stage.value} job is {job.status.value}; nothing to retry"
            )

        if schedule.progress != job.stage.start_progress:
            raise PreconditionException(
                f"Schedule '{schedule_id}' is at {schedule.progress.value}, "
                f"cannot retry {job.stage.value}"
            )

        logger.info(f"[{job.stage.value}:{schedule_id}] Retrying after job {job.job_id}")
        return await self._launch(schedule, job.stage)

    async def cancel(self, schedule_id: str) -> StageJob:
        """Cancel the running stage; the job ends CANCELLED and can be retried"""
        await self.repository.get(schedule_id)
        task = self._tasks.get(schedule_id)
        if task is None or task.done():
            raise PreconditionException(f"No stage is running for schedule '{schedule_id}'")
        task.cancel()
        await asyncio.wait({task})
        schedule = await self.repository.get(schedule_id)
        return schedule.latest_job()

    async def get_job(self, schedule_id: str, job_id: str) -> StageJob:
        schedule = await self.repository.get(schedule_id)
        job = schedule.find_job(job_id)
        if job is None:
            raise NotFoundException("Job", job_id)
        return job

    async def wait_for_stage(self, schedule_id: str) -> None:
        """Block until the schedule's in-flight stage, if any, has finished"""
        task = self._tasks.get(schedule_id)
        if task is not None:
            await asyncio.wait({task})

    async def recover_interrupted_jobs(self) -> int:
        """
        Fail jobs left RUNNING or PENDING by a previous process.

        Returns:
            Number of jobs marked failed
        """
        recovered = 0
        for schedule in await self.repository.list_all():
            if self._task_alive(schedule.id):
                continue
            stale = [job for job in schedule.jobs if job.is_active]
            if not stale:
                continue

            def apply(s: Schedule):
                for job in s.jobs:
                    if job.is_active:
                        self._close_job(s, job, JobStatus.FAILED, INTERRUPTED)

            await self._mutate(schedule.id, apply)
            recovered += len(stale)
            logger.warning(f"Marked {len(stale)} interrupted jobs failed on {schedule.id}")
        return recovered

    # ===== Matching reconciliation =====
    async def connect(self, schedule_id: str, paper_id: str, student_id: str) -> MatchResult:
        def apply(s: Schedule):
            self._require_progress(s, Progress.MATCH_DONE)
            try:
                matching.connect(s.result.match_result, paper_id, student_id)
            except matching.ReconciliationError as e:
                raise BadRequestException(str(e))

        schedule = await self._mutate(schedule_id, apply)
        logger.info(f"[MATCH:{schedule_id}] Connected {paper_id} to {student_id}")
        return schedule.result.match_result

    async def disconnect(self, schedule_id: str, paper_id: str, student_id: str) -> MatchResult:
        def apply(s: Schedule):
            self._require_progress(s, Progress.MATCH_DONE)
            try:
                matching.disconnect(s.result.match_result, paper_id, student_id)
            except matching.ReconciliationError as e:
                raise BadRequestException(str(e))

        schedule = await self._mutate(schedule_id, apply)
        logger.info(f"[MATCH:{schedule_id}] Disconnected {paper_id} from {student_id}")
        return schedule.result.match_result

    # ===== Objective adjudication =====
    async def review_queue(self, schedule_id: str) -> List[objective.ReviewItem]:
        schedule = await self.repository.get(schedule_id)
        self._require_reached(schedule, Progress.OBJECTIVE_DONE)
        layout = self.references.get_layout(schedule.layout_id)
        return objective.review_queue(layout, schedule.result.student_papers)

    async def adjudicate(self, schedule_id: str, paper_id: str, question_id: str,
                         correct: bool) -> ObjectiveAnswer:
        schedule = await self.repository.get(schedule_id)
        layout = self.references.get_layout(schedule.layout_id)

        def apply(s: Schedule):
            self._require_progress(s, Progress.OBJECTIVE_DONE)
            student_paper = self._student_paper(s, paper_id)
            component = self._question(layout, question_id)
            if not component.is_objective:
                raise BadRequestException(f"Question '{question_id}' is not multiple-choice")
            try:
                objective.adjudicate(student_paper, component, correct)
            except objective.AdjudicationError as e:
                raise BadRequestException(str(e))

        schedule = await self._mutate(schedule_id, apply)
        return schedule.find_student_paper(paper_id).find_objective(question_id)

    # ===== Subjective grading =====
    async def get_suggestion(self, schedule_id: str, paper_id: str,
                             question_id: str) -> AISuggestion:
        schedule = await self.repository.get(schedule_id)
        self._require_progress(schedule, Progress.SUBJECTIVE_DONE)
        layout = self.references.get_layout(schedule.layout_id)
        component, answer = self._subjective_target(schedule, layout, paper_id, question_id)

        stored = answer.ai_suggestion.available
        suggestion = await self.assistant.suggest(schedule_id, paper_id, component, answer)

        if suggestion.available and not stored:
            def apply(s: Schedule):
                _, fresh = self._subjective_target(s, layout, paper_id, question_id)
                if not fresh.ai_suggestion.available:
                    fresh.ai_suggestion = suggestion

            await self._mutate(schedule_id, apply)
        return suggestion

    async def submit_score(self, schedule_id: str, paper_id: str, question_id: str,
                           score: float) -> SubjectiveAnswer:
        schedule = await self.repository.get(schedule_id)
        layout = self.references.get_layout(schedule.layout_id)

        def apply(s: Schedule):
            self._require_progress(s, Progress.SUBJECTIVE_DONE)
            component, answer = self._subjective_target(s, layout, paper_id, question_id)
            try:
                subjective.submit_score(answer, component, score)
            except subjective.ScoreValidationError as e:
                raise BadRequestException(str(e))

        schedule = await self._mutate(schedule_id, apply)
        return schedule.find_student_paper(paper_id).find_subjective(question_id)

    # ===== Results =====
    async def get_statistics(self, schedule_id: str) -> Tuple[Statistics, List[StudentPaper]]:
        schedule = await self.repository.get(schedule_id)
        self._require_progress(schedule, Progress.RESULT_DONE)
        return schedule.result.statistics, schedule.result.student_papers

    async def export_results(self, schedule_id: str) -> Path:
        schedule = await self.repository.get(schedule_id)
        self._require_progress(schedule, Progress.RESULT_DONE)
        layout = self.references.get_layout(schedule.layout_id)
        return await asyncio.to_thread(self.exporter.export_to_excel, schedule, layout)

    # ===== Stage bodies =====
    async def _run_matching(self, schedule_id: str, job_id: str) -> None:
        schedule = await self.repository.get(schedule_id)
        layout, roster = self._references(schedule)
        pdf_path = self.files.scan_path(schedule.result.pdf_ref)

        papers = await asyncio.to_thread(
            self.decomposer.decompose, schedule_id, pdf_path, layout, len(roster.students)
        )
        match_result = await self.matcher.run(schedule_id, papers, roster)

        schedule.result.papers = papers
        schedule.result.match_result = match_result
        schedule.result.student_papers = []
        schedule.result.statistics = None
        await self._complete(schedule, Stage.MATCH, job_id)

    async def _run_objective(self, schedule_id: str, job_id: str) -> None:
        schedule = await self.repository.get(schedule_id)
        layout = self.references.get_layout(schedule.layout_id)
        await self.scorer.run(
            schedule_id, layout, schedule.result.papers, schedule.result.student_papers
        )
        await self._complete(schedule, Stage.OBJECTIVE, job_id)

    async def _run_subjective(self, schedule_id: str, job_id: str) -> None:
        schedule = await self.repository.get(schedule_id)
        layout = self.references.get_layout(schedule.layout_id)
        created = subjective.create_subjective_answers(
            layout, schedule.result.papers, schedule.result.student_papers
        )
        self.assistant.cache.clear(schedule_id)
        logger.info(f"[SUBJECTIVE:{schedule_id}] Created {created} answers")

        if self.prefetch:
            await self.assistant.prefetch(schedule_id, layout, schedule.result.student_papers)
        await self._complete(schedule, Stage.SUBJECTIVE, job_id)

    async def _run_result(self, schedule_id: str, job_id: str) -> None:
        schedule = await self.repository.get(schedule_id)
        layout = self.references.get_layout(schedule.layout_id)
        try:
            statistics = compute_statistics(layout, schedule.result.student_papers)
        except IncompleteScoresError as e:
            raise PreconditionException(str(e))
        schedule.result.statistics = statistics
        logger.info(
            f"[RESULT:{schedule_id}] {len(schedule.result.student_papers)} students, "
            f"average {statistics.average:.2f}"
        )
        await self._complete(schedule, Stage.RESULT, job_id)

    # ===== Internals =====
    async def _launch(self, schedule: Schedule, stage: Stage,
                      prepare: Optional[Callable[[Schedule], None]] = None) -> StageAck:
        expected = schedule.version
        if prepare is not None:
            prepare(schedule)
        self._advance(schedule, stage.start_progress)

        job = StageJob(
            job_id=generate_id("job"),
            stage=stage,
            status=JobStatus.RUNNING,
            started_at=utc_now(),
        )
        schedule.jobs.append(job)
        schedule.result.error = None

        try:
            await self.repository.save(schedule, expected)
        except ConflictException:
            current = await self.repository.get(schedule.id)
            running = self._running_ack(current, stage)
            if running is not None:
                return running
            raise

        self._tasks[schedule.id] = asyncio.create_task(
            self._execute(schedule.id, stage, job.job_id),
            name=f"{stage.value}:{schedule.id}",
        )
        logger.info(f"[{stage.value}:{schedule.id}] Launched job {job.job_id}")
        return self._ack(schedule, job, STAGE_MESSAGES[stage].format(schedule.id))

    async def _execute(self, schedule_id: str, stage: Stage, job_id: str) -> None:
        body = self._bodies[stage]
        try:
            await asyncio.wait_for(body(schedule_id, job_id), timeout=self.stage_timeout)
            logger.info(f"[{stage.value}:{schedule_id}] Job {job_id} succeeded")
        except asyncio.CancelledError:
            logger.warning(f"[{stage.value}:{schedule_id}] Job {job_id} cancelled")
            await self._finish_job(schedule_id, job_id, JobStatus.CANCELLED,
                                   Messages.STAGE_CANCELLED.format(stage.value, schedule_id))
            raise
        except asyncio.TimeoutError:
            message = f"Stage {stage.value} exceeded the {self.stage_timeout:g}s deadline"
            logger.error(f"[{stage.value}:{schedule_id}] {message}")
            await self._finish_job(schedule_id, job_id, JobStatus.FAILED, message)
        except Exception as e:
            message = getattr(e, "detail", None) or str(e) or type(e).__name__
            logger.error(f"[{stage.value}:{schedule_id}] Job {job_id} failed: {message}",
                         exc_info=True)
            await self._finish_job(schedule_id, job_id, JobStatus.FAILED, message,
                                   traceback.format_exc())
        finally:
            if self._tasks.get(schedule_id) is asyncio.current_task():
                del self._tasks[schedule_id]

    async def _complete(self, schedule: Schedule, stage: Stage, job_id: str) -> None:
        job = schedule.find_job(job_id)
        if job is None or job.status != JobStatus.RUNNING:
            raise PreconditionException(f"Job {job_id} is no longer running")
        self._advance(schedule, stage.done_progress)
        job.status = JobStatus.SUCCEEDED
        job.finished_at = utc_now()
        schedule.result.error = None
        await self.repository.save(schedule, schedule.version)

    async def _finish_job(self, schedule_id: str, job_id: str, status: JobStatus,
                          message: str, details: Optional[str] = None) -> None:
        def apply(s: Schedule):
            job = s.find_job(job_id)
            if job is not None and job.is_active:
                self._close_job(s, job, status, message, details)

        try:
            await self._mutate(schedule_id, apply)
        except NotFoundException:
            logger.warning(f"Schedule {schedule_id} no longer exists, discarding job {job_id} outcome")

    def _close_job(self, schedule: Schedule, job: StageJob, status: JobStatus,
                   message: str, details: Optional[str] = None) -> None:
        now = utc_now()
        job.status = status
        job.finished_at = now
        job.error = message
        if status == JobStatus.FAILED:
            schedule.result.error = StageError(
                stage=job.stage, message=message, details=details, timestamp=now
            )

    async def _mutate(self, schedule_id: str, apply: Callable[[Schedule], None]) -> Schedule:
        """Reload, apply and save, retrying on version conflicts"""
        for attempt in range(1, self.save_retries + 1):
            schedule = await self.repository.get(schedule_id)
            apply(schedule)
            try:
                return await self.repository.save(schedule, schedule.version)
            except ConflictException:
                if attempt == self.save_retries:
                    raise
                logger.warning(
                    f"Version conflict on {schedule_id}, retrying ({attempt}/{self.save_retries})"
                )

    def _task_alive(self, schedule_id: str) -> bool:
        task = self._tasks.get(schedule_id)
        return task is not None and not task.done()

    def _running_ack(self, schedule: Schedule, stage: Stage) -> Optional[StageAck]:
        job = schedule.latest_job(stage)
        if job is not None and job.is_active and self._task_alive(schedule.id):
            return self._ack(schedule, job, Messages.STAGE_ALREADY_RUNNING.format(
                stage.value, schedule.id))
        return None

    @staticmethod
    def _ack(schedule: Schedule, job: StageJob, message: str) -> StageAck:
        return StageAck(success=True, message=message, document_id=schedule.id, job_id=job.job_id)

    @staticmethod
    def _require_progress(schedule: Schedule, *allowed: Progress) -> None:
        if schedule.progress not in allowed:
            raise PreconditionException(
                f"Schedule '{schedule.id}' is at {schedule.progress.value}, "
                f"expected {' or '.join(p.value for p in allowed)}"
            )

    @staticmethod
    def _require_reached(schedule: Schedule, progress: Progress) -> None:
        if schedule.progress.rank < progress.rank:
            raise PreconditionException(
                f"Schedule '{schedule.id}' has not reached {progress.value}"
            )

    @staticmethod
    def _advance(schedule: Schedule, target: Progress) -> None:
        if target.rank < schedule.progress.rank:
            raise PreconditionException(
                f"Progress cannot move back from {schedule.progress.value} to {target.value}"
            )
        schedule.result.progress = target

    def _references(self, schedule: Schedule) -> Tuple[ExamLayout, Roster]:
        return (
            self.references.get_layout(schedule.layout_id),
            self.references.get_roster(schedule.roster_id),
        )

    @staticmethod
    def _student_paper(schedule: Schedule, paper_id: str) -> StudentPaper:
        student_paper = schedule.find_student_paper(paper_id)
        if student_paper is None:
            raise NotFoundException("Paper", paper_id)
        return student_paper

    @staticmethod
    def _question(layout: ExamLayout, question_id: str) -> Component:
        component = layout.get_component(question_id)
        if component is None or not component.is_question:
            raise NotFoundException("Question", question_id)
        return component

    def _subjective_target(self, schedule: Schedule, layout: ExamLayout, paper_id: str,
                           question_id: str) -> Tuple[Component, SubjectiveAnswer]:
        student_paper = self._student_paper(schedule, paper_id)
        component = self._question(layout, question_id)
        answer = student_paper.find_subjective(question_id)
        if answer is None or not component.is_subjective:
            raise NotFoundException("Subjective answer", f"{paper_id}/{question_id}")
        return component, answer


# Singleton instance
pipeline_service = PipelineService()


def get_pipeline_service() -> PipelineService:
    """FastAPI dependency returning the process-wide pipeline service"""
    return pipeline_service
