"""
Export Service
Writes graded schedules to Excel workbooks
"""
import logging
from datetime import datetime
from pathlib import Path
from typing import Optional

from openpyxl import Workbook
from openpyxl.styles import Font

from ..config import settings
from ..core import PreconditionException
from ..grader.models import ExamLayout, Schedule
from ..utils import ensure_directory

logger = logging.getLogger(__name__)


def _bold_header(ws, headers):
    ws.append(headers)
    for col in range(1, len(headers) + 1):
        ws.cell(row=1, column=col).font = Font(bold=True)


def _autosize(ws):
    for col in ws.columns:
        max_len = max(len(str(cell.value)) if cell.value is not None else 0 for cell in col)
        ws.column_dimensions[col[0].column_letter].width = max_len + 2


class ExportService:
    """Service for spreadsheet export of results"""

    def __init__(self, exports_dir: Optional[Path] = None):
        self.exports_dir = ensure_directory(exports_dir or settings.EXPORTS_DIR)

    def export_to_excel(self, schedule: Schedule, layout: ExamLayout) -> Path:
        """Export totals and statistics of a finished schedule"""
        statistics = schedule.result.statistics
        if statistics is None:
            raise PreconditionException("Statistics have not been computed")

        questions = layout.question_components()
        wb = Workbook()

        # Summary sheet
        ws_summary = wb.active
        ws_summary.title = "Summary"

        rows = [
            ("Schedule", schedule.name or schedule.id),
            ("Layout", layout.title or layout.id),
            ("Total Students", len(schedule.result.student_papers)),
            ("Average Score", statistics.average),
            ("Highest Score", statistics.highest),
            ("Lowest Score", statistics.lowest),
            ("Median Score", statistics.median),
            ("Standard Deviation", statistics.standard_deviation),
        ]
        for row, (label, value) in enumerate(rows, start=1):
            ws_summary.cell(row=row, column=1, value=label).font = Font(bold=True)
            ws_summary.cell(row=row, column=2, value=value)
        _autosize(ws_summary)

        # Results sheet
        ws_results = wb.create_sheet("Results")
        _bold_header(
            ws_results,
            ["Student ID", "Name", "Paper"] + [self._question_label(q) for q in questions] + ["Total"]
        )
        for student_paper in schedule.result.student_papers:
            scores = []
            for question in questions:
                answer = (student_paper.find_objective(question.id)
                          or student_paper.find_subjective(question.id))
                scores.append(answer.score if answer is not None else None)
            ws_results.append(
                [student_paper.student.student_id, student_paper.student.name, student_paper.paper_id]
                + scores
                + [student_paper.total_score]
            )
        _autosize(ws_results)

        # Questions sheet
        ws_questions = wb.create_sheet("Questions")
        _bold_header(
            ws_questions,
            ["Question", "Type", "Max Score", "Average", "Highest", "Lowest",
             "Median", "Std Dev", "Correct", "Incorrect"]
        )
        by_id = {q.question_id: q for q in statistics.questions}
        for question in questions:
            stats = by_id.get(question.id)
            if stats is None:
                continue
            ws_questions.append([
                self._question_label(question), question.type, question.score,
                stats.average, stats.highest, stats.lowest, stats.median,
                stats.standard_deviation, stats.correct, stats.incorrect,
            ])
        _autosize(ws_questions)

        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        file_path = self.exports_dir / f"results_{schedule.id}_{timestamp}.xlsx"
        wb.save(file_path)

        logger.info(f"Exported to Excel: {file_path.name}")
        return file_path

    @staticmethod
    def _question_label(question) -> str:
        if question.question_number is not None:
            return f"Q{question.question_number}"
        return question.id
