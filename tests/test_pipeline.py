"""
Integration tests for the pipeline service state machine
"""
import asyncio

import pytest

from ezmark.core import (
    BadRequestException,
    ConflictException,
    JobStatus,
    NotFoundException,
    PreconditionException,
    Progress,
    Stage,
)
from ezmark.grader.models import StageJob
from ezmark.utils import utc_now

from conftest import PDF_BYTES, FakeRasterizer, FakeRecognitionService, make_service, run


async def uploaded(service):
    schedule = await service.create_schedule("Midterm", "layout-midterm", "roster-bio")
    await service.upload_pdf(schedule.id, "scan.pdf", PDF_BYTES)
    return schedule.id


async def matched(service):
    schedule_id = await uploaded(service)
    await service.start_matching(schedule_id)
    await service.wait_for_stage(schedule_id)
    return schedule_id


async def objective_done(service):
    schedule_id = await matched(service)
    await service.start_objective(schedule_id)
    await service.wait_for_stage(schedule_id)
    return schedule_id


async def wait_until(predicate, attempts=500):
    for _ in range(attempts):
        if predicate():
            return
        await asyncio.sleep(0.01)
    raise AssertionError("condition not reached")


class TestHappyPath:
    """Test cases for a full grading run"""

    def test_end_to_end(self, tmp_path, matching_recognizer):
        service = make_service(tmp_path, matching_recognizer)

        async def scenario():
            schedule = await service.create_schedule("Midterm", "layout-midterm", "roster-bio")
            assert schedule.progress == Progress.CREATED
            assert schedule.version == 1

            schedule = await service.upload_pdf(schedule.id, "scan.pdf", PDF_BYTES)
            assert schedule.progress == Progress.UPLOADED
            schedule_id = schedule.id

            ack = await service.start_matching(schedule_id)
            assert ack.success
            assert ack.document_id == schedule_id
            assert ack.message == f"Matching has been started for document ID {schedule_id}"
            await service.wait_for_stage(schedule_id)

            schedule = await service.get_schedule(schedule_id)
            assert schedule.progress == Progress.MATCH_DONE
            assert schedule.result.match_result.done
            assert len(schedule.result.papers) == 2
            assert schedule.find_job(ack.job_id).status == JobStatus.SUCCEEDED

            await service.start_objective(schedule_id)
            await service.wait_for_stage(schedule_id)
            schedule = await service.get_schedule(schedule_id)
            assert schedule.progress == Progress.OBJECTIVE_DONE
            assert [sp.student.student_id for sp in schedule.result.student_papers] == ["S001", "S002"]
            assert await service.review_queue(schedule_id) == []

            await service.start_subjective(schedule_id)
            await service.wait_for_stage(schedule_id)
            schedule = await service.get_schedule(schedule_id)
            assert schedule.progress == Progress.SUBJECTIVE_DONE

            suggestion = await service.get_suggestion(schedule_id, "student-1", "q2")
            assert suggestion.score == 7
            stored = (await service.get_schedule(schedule_id)).find_student_paper("student-1")
            assert stored.find_subjective("q2").ai_suggestion.score == 7

            with pytest.raises(PreconditionException):
                await service.start_result(schedule_id)

            await service.submit_score(schedule_id, "student-1", "q2", 7)
            await service.submit_score(schedule_id, "student-2", "q2", 9)

            await service.start_result(schedule_id)
            await service.wait_for_stage(schedule_id)

            statistics, student_papers = await service.get_statistics(schedule_id)
            assert [sp.total_score for sp in student_papers] == [12, 9]
            assert statistics.average == pytest.approx(10.5)
            assert (statistics.highest, statistics.lowest, statistics.median) == (12, 9, 12)
            assert statistics.standard_deviation == pytest.approx(1.5)

            q1, q2 = statistics.questions
            assert (q1.correct, q1.incorrect, q1.average) == (1, 1, 2.5)
            assert q2.correct is None
            assert q2.average == pytest.approx(8)

            path = await service.export_results(schedule_id)
            assert path.exists()

            schedule = await service.get_schedule(schedule_id)
            assert schedule.progress == Progress.RESULT_DONE
            assert [job.stage for job in schedule.jobs] == [
                Stage.MATCH, Stage.OBJECTIVE, Stage.SUBJECTIVE, Stage.RESULT
            ]

        run(scenario())

    def test_reupload_allowed_before_matching(self, tmp_path):
        service = make_service(tmp_path)

        async def scenario():
            schedule_id = await uploaded(service)
            schedule = await service.upload_pdf(schedule_id, "again.pdf", PDF_BYTES)
            assert schedule.progress == Progress.UPLOADED

        run(scenario())

    def test_delete_removes_files(self, tmp_path, matching_recognizer):
        service = make_service(tmp_path, matching_recognizer)

        async def scenario():
            schedule_id = await matched(service)
            assert service.files.assets.schedule_dir(schedule_id).exists()

            await service.delete_schedule(schedule_id)

            with pytest.raises(NotFoundException):
                await service.get_schedule(schedule_id)
            assert not service.files.assets.schedule_dir(schedule_id).exists()
            assert not (tmp_path / "uploads" / f"{schedule_id}.pdf").exists()

        run(scenario())


class TestPreconditions:
    """Test cases for rejected stage triggers"""

    def test_start_matching_before_upload(self, tmp_path):
        service = make_service(tmp_path)

        async def scenario():
            schedule = await service.create_schedule("Midterm", "layout-midterm", "roster-bio")
            with pytest.raises(PreconditionException):
                await service.start_matching(schedule.id)

        run(scenario())

    def test_unknown_layout_rejected(self, tmp_path):
        service = make_service(tmp_path)

        async def scenario():
            with pytest.raises(NotFoundException):
                await service.create_schedule("Midterm", "missing", "roster-bio")

        run(scenario())

    def test_page_mismatch_keeps_uploaded(self, tmp_path):
        service = make_service(tmp_path, rasterizer=FakeRasterizer(page_count=3))

        async def scenario():
            schedule_id = await uploaded(service)
            with pytest.raises(PreconditionException, match="expected 4 pages"):
                await service.start_matching(schedule_id)

            schedule = await service.get_schedule(schedule_id)
            assert schedule.progress == Progress.UPLOADED
            assert schedule.jobs == []

        run(scenario())

    def test_unmatched_blocks_objective(self, tmp_path):
        recognizer = FakeRecognitionService(headers={"student-1": ("Alice", "S001")})
        service = make_service(tmp_path, recognizer)

        async def scenario():
            schedule_id = await matched(service)
            schedule = await service.get_schedule(schedule_id)
            assert schedule.progress == Progress.MATCH_DONE
            assert not schedule.result.match_result.done

            with pytest.raises(PreconditionException):
                await service.start_objective(schedule_id)

            before = await service.get_schedule(schedule_id)
            with pytest.raises(BadRequestException):
                await service.connect(schedule_id, "student-1", "S002")
            after = await service.get_schedule(schedule_id)
            assert after.version == before.version
            assert after.result.match_result == before.result.match_result

            result = await service.connect(schedule_id, "student-2", "S002")
            assert result.done

            await service.start_objective(schedule_id)
            await service.wait_for_stage(schedule_id)
            schedule = await service.get_schedule(schedule_id)
            assert schedule.progress == Progress.OBJECTIVE_DONE

            with pytest.raises(PreconditionException):
                await service.connect(schedule_id, "student-2", "S002")

        run(scenario())

    def test_uncertain_answers_block_subjective(self, tmp_path):
        recognizer = FakeRecognitionService(
            headers={"student-1": ("Alice", "S001"), "student-2": ("Bob", "S002")},
            objective={("student-1", "q1"): ["B"]},
        )
        service = make_service(tmp_path, recognizer)

        async def scenario():
            schedule_id = await objective_done(service)

            with pytest.raises(PreconditionException, match="need review"):
                await service.start_subjective(schedule_id)

            queue = await service.review_queue(schedule_id)
            assert [(item.paper_id, item.question_id) for item in queue] == [("student-2", "q1")]

            answer = await service.adjudicate(schedule_id, "student-2", "q1", True)
            assert answer.score == 5
            assert not answer.uncertain

            with pytest.raises(BadRequestException):
                await service.adjudicate(schedule_id, "student-2", "q1", False)

            await service.start_subjective(schedule_id)
            await service.wait_for_stage(schedule_id)
            assert (await service.get_schedule(schedule_id)).progress == Progress.SUBJECTIVE_DONE

        run(scenario())

    def test_invalid_score_rejected(self, tmp_path, matching_recognizer):
        service = make_service(tmp_path, matching_recognizer)

        async def scenario():
            schedule_id = await objective_done(service)
            await service.start_subjective(schedule_id)
            await service.wait_for_stage(schedule_id)

            with pytest.raises(BadRequestException):
                await service.submit_score(schedule_id, "student-1", "q2", 11)
            with pytest.raises(NotFoundException):
                await service.submit_score(schedule_id, "student-1", "q1", 1)
            with pytest.raises(NotFoundException):
                await service.submit_score(schedule_id, "student-9", "q2", 1)

        run(scenario())


class TestJobs:
    """Test cases for failures, retries, cancellation and recovery"""

    def test_failure_then_retry(self, tmp_path, matching_recognizer):
        service = make_service(tmp_path, matching_recognizer, rasterizer=FakeRasterizer(failures=1))

        async def scenario():
            schedule_id = await matched(service)

            schedule = await service.get_schedule(schedule_id)
            assert schedule.progress == Progress.MATCH_START
            job = schedule.latest_job()
            assert job.status == JobStatus.FAILED
            assert job.error == "renderer crashed"
            assert schedule.result.error.stage == Stage.MATCH
            assert "Traceback" in schedule.result.error.details

            ack = await service.retry(schedule_id)
            assert ack.job_id != job.job_id
            await service.wait_for_stage(schedule_id)

            schedule = await service.get_schedule(schedule_id)
            assert schedule.progress == Progress.MATCH_DONE
            assert schedule.result.error is None
            assert [j.status for j in schedule.jobs] == [JobStatus.FAILED, JobStatus.SUCCEEDED]

        run(scenario())

    def test_retry_requires_failed_job(self, tmp_path, matching_recognizer):
        service = make_service(tmp_path, matching_recognizer)

        async def scenario():
            schedule = await service.create_schedule("Midterm", "layout-midterm", "roster-bio")
            with pytest.raises(PreconditionException):
                await service.retry(schedule.id)

            schedule_id = await matched(service)
            with pytest.raises(PreconditionException):
                await service.retry(schedule_id)

        run(scenario())

    def test_duplicate_start_returns_running_job(self, tmp_path, matching_recognizer):
        service = make_service(tmp_path, matching_recognizer)

        async def scenario():
            matching_recognizer.gate = asyncio.Event()
            schedule_id = await uploaded(service)

            first = await service.start_matching(schedule_id)
            second = await service.start_matching(schedule_id)
            assert second.job_id == first.job_id
            assert "already running" in second.message

            matching_recognizer.gate.set()
            await service.wait_for_stage(schedule_id)
            schedule = await service.get_schedule(schedule_id)
            assert len(schedule.jobs) == 1
            assert schedule.progress == Progress.MATCH_DONE

        run(scenario())

    def test_cancel_then_retry(self, tmp_path, matching_recognizer):
        service = make_service(tmp_path, matching_recognizer)

        async def scenario():
            matching_recognizer.gate = asyncio.Event()
            schedule_id = await uploaded(service)
            await service.start_matching(schedule_id)
            await wait_until(lambda: matching_recognizer.calls["header"] > 0)

            job = await service.cancel(schedule_id)
            assert job.status == JobStatus.CANCELLED

            schedule = await service.get_schedule(schedule_id)
            assert schedule.progress == Progress.MATCH_START

            with pytest.raises(PreconditionException):
                await service.cancel(schedule_id)

            matching_recognizer.gate.set()
            await service.retry(schedule_id)
            await service.wait_for_stage(schedule_id)
            assert (await service.get_schedule(schedule_id)).progress == Progress.MATCH_DONE

        run(scenario())

    def test_timeout_fails_job(self, tmp_path, matching_recognizer):
        service = make_service(tmp_path, matching_recognizer, stage_timeout=0.5)

        async def scenario():
            matching_recognizer.gate = asyncio.Event()
            schedule_id = await matched(service)

            schedule = await service.get_schedule(schedule_id)
            job = schedule.latest_job()
            assert job.status == JobStatus.FAILED
            assert "deadline" in job.error
            assert schedule.progress == Progress.MATCH_START

        run(scenario())

    def test_recover_interrupted_jobs(self, tmp_path, matching_recognizer):
        service = make_service(tmp_path, matching_recognizer)

        async def scenario():
            schedule_id = await uploaded(service)
            schedule = await service.get_schedule(schedule_id)
            schedule.result.progress = Progress.MATCH_START
            schedule.jobs.append(StageJob(
                job_id="job_orphan", stage=Stage.MATCH,
                status=JobStatus.RUNNING, started_at=utc_now(),
            ))
            await service.repository.save(schedule, schedule.version)

            assert await service.recover_interrupted_jobs() == 1

            job = await service.get_job(schedule_id, "job_orphan")
            assert job.status == JobStatus.FAILED
            assert job.error == "interrupted"

            await service.retry(schedule_id)
            await service.wait_for_stage(schedule_id)
            assert (await service.get_schedule(schedule_id)).progress == Progress.MATCH_DONE

        run(scenario())

    def test_unknown_job(self, tmp_path):
        service = make_service(tmp_path)

        async def scenario():
            schedule_id = await uploaded(service)
            with pytest.raises(NotFoundException):
                await service.get_job(schedule_id, "job_missing")

        run(scenario())


class TestRepository:
    """Test cases for optimistic concurrency"""

    def test_stale_save_conflicts(self, tmp_path):
        service = make_service(tmp_path)

        async def scenario():
            schedule_id = await uploaded(service)
            first = await service.get_schedule(schedule_id)
            second = await service.get_schedule(schedule_id)

            first.name = "renamed"
            saved = await service.repository.save(first, first.version)
            assert saved.version == second.version + 1

            second.name = "lost update"
            with pytest.raises(ConflictException):
                await service.repository.save(second, second.version)
            assert (await service.get_schedule(schedule_id)).name == "renamed"

        run(scenario())

    def test_progress_never_moves_back(self, tmp_path, matching_recognizer):
        service = make_service(tmp_path, matching_recognizer)

        async def scenario():
            schedule_id = await matched(service)
            with pytest.raises(PreconditionException):
                await service.upload_pdf(schedule_id, "scan.pdf", PDF_BYTES)
            assert (await service.get_schedule(schedule_id)).progress == Progress.MATCH_DONE

        run(scenario())


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
