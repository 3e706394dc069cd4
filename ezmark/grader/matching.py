"""
Matching Module
Pairs recognized paper headers with roster students
"""
import asyncio
from typing import List
import logging

from ..core.constants import UNKNOWN
from .models import (
    MatchedPair,
    MatchResult,
    Paper,
    Roster,
    StudentIdentity,
    StudentPaper,
    Unmatched,
    UnmatchedPaper,
)

logger = logging.getLogger(__name__)


class ReconciliationError(ValueError):
    """A manual match edit that would break the partition"""


def _normalize_id(value: str) -> str:
    value = (value or "").strip()
    return "" if value.lower() == UNKNOWN.lower() else value


def match_papers(papers: List[Paper], roster: Roster) -> MatchResult:
    """
    Partition papers and roster students by exact student ID.

    Recognized and roster IDs are compared after trimming. ``Unknown`` never
    matches. When two papers carry the same ID, the earlier paper wins and
    the later one stays unmatched.
    """
    by_id = {}
    for student in roster.students:
        by_id.setdefault(student.student_id.strip(), student)

    claimed = set()
    matched: List[MatchedPair] = []
    unmatched_papers: List[UnmatchedPaper] = []

    for paper in papers:
        key = _normalize_id(paper.student_id)
        student = by_id.get(key) if key else None
        if student is not None and student.student_id not in claimed:
            claimed.add(student.student_id)
            matched.append(MatchedPair(
                student_id=student.student_id,
                paper_id=paper.paper_id,
                header_image_ref=paper.header_image_ref,
            ))
        else:
            unmatched_papers.append(UnmatchedPaper(
                paper_id=paper.paper_id,
                header_image_ref=paper.header_image_ref,
            ))

    result = MatchResult(
        matched=matched,
        unmatched=Unmatched(
            student_ids=[s.student_id for s in roster.students if s.student_id not in claimed],
            papers=unmatched_papers,
        ),
    )
    result.refresh_done()
    return result


class MatchingEngine:
    """Recognizes every header and builds the initial match result"""

    def __init__(self, recognizer, assets):
        self.recognizer = recognizer
        self.assets = assets

    async def recognize_headers(self, schedule_id: str, papers: List[Paper]) -> None:
        async def recognize(paper: Paper):
            header = await self.recognizer.recognize_header(
                self.assets.resolve(paper.header_image_ref)
            )
            paper.name = (header.name or UNKNOWN).strip()
            paper.student_id = (header.student_id or UNKNOWN).strip()

        await asyncio.gather(*(recognize(p) for p in papers))
        unknown = sum(1 for p in papers if not _normalize_id(p.student_id))
        logger.info(
            f"[MATCH:{schedule_id}] Recognized {len(papers)} headers, {unknown} unknown"
        )

    async def run(self, schedule_id: str, papers: List[Paper], roster: Roster) -> MatchResult:
        await self.recognize_headers(schedule_id, papers)
        result = match_papers(papers, roster)
        logger.info(
            f"[MATCH:{schedule_id}] Matched {len(result.matched)}/{len(papers)} papers, "
            f"done={result.done}"
        )
        return result


def connect(match_result: MatchResult, paper_id: str, student_id: str) -> MatchResult:
    """
    Manually pair an unmatched paper with an unmatched student.

    Raises:
        ReconciliationError: If either side is not currently unmatched
    """
    paper = next(
        (p for p in match_result.unmatched.papers if p.paper_id == paper_id), None
    )
    if paper is None:
        raise ReconciliationError(f"Paper '{paper_id}' is not unmatched")
    if student_id not in match_result.unmatched.student_ids:
        raise ReconciliationError(f"Student '{student_id}' is not unmatched")

    match_result.unmatched.papers.remove(paper)
    match_result.unmatched.student_ids.remove(student_id)
    match_result.matched.append(MatchedPair(
        student_id=student_id,
        paper_id=paper_id,
        header_image_ref=paper.header_image_ref,
    ))
    match_result.refresh_done()
    return match_result


def disconnect(match_result: MatchResult, paper_id: str, student_id: str) -> MatchResult:
    """
    Return a matched pair to the unmatched pools.

    Raises:
        ReconciliationError: If the pair is not currently matched
    """
    pair = next(
        (m for m in match_result.matched
         if m.paper_id == paper_id and m.student_id == student_id),
        None
    )
    if pair is None:
        raise ReconciliationError(
            f"Paper '{paper_id}' is not matched to student '{student_id}'"
        )

    match_result.matched.remove(pair)
    match_result.unmatched.papers.append(UnmatchedPaper(
        paper_id=pair.paper_id,
        header_image_ref=pair.header_image_ref,
    ))
    match_result.unmatched.student_ids.append(student_id)
    match_result.done = False
    return match_result


def finalize_matching(
    papers: List[Paper],
    match_result: MatchResult,
    roster: Roster
) -> List[StudentPaper]:
    """
    Copy roster identities onto papers and create one StudentPaper per student.

    StudentPapers follow roster order.

    Raises:
        ReconciliationError: If matching is incomplete or inconsistent
    """
    if not match_result.refresh_done():
        raise ReconciliationError("Matching is not complete")

    paper_by_id = {p.paper_id: p for p in papers}
    paper_for_student = {}
    for pair in match_result.matched:
        if pair.paper_id not in paper_by_id:
            raise ReconciliationError(f"Matched paper '{pair.paper_id}' does not exist")
        paper_for_student[pair.student_id] = pair.paper_id

    if len(paper_for_student) != len(roster.students) or len(papers) != len(roster.students):
        raise ReconciliationError("Matched pairs do not cover the roster and papers one-to-one")

    student_papers = []
    for student in roster.students:
        paper_id = paper_for_student.get(student.student_id)
        if paper_id is None:
            raise ReconciliationError(f"Student '{student.student_id}' has no paper")
        paper = paper_by_id[paper_id]
        paper.student_id = student.student_id
        paper.name = student.name
        paper.student_document_id = student.document_id
        student_papers.append(StudentPaper(
            student=StudentIdentity(
                student_id=student.student_id,
                name=student.name,
                document_id=student.document_id,
            ),
            paper_id=paper_id,
        ))

    return student_papers
