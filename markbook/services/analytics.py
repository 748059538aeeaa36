"""
Markbook Analytics
==================
Per-student averages, class averages by assessment, progress over time and
performance by assessment type. Percentages are for display only.
"""

from markbook.config import POOR_AVERAGE, WARNING_AVERAGE, config


def _percent(score, assessment):
    return score.score / assessment.total_marks * 100


def _index_scores(scores):
    return {(s.student_id, s.assessment_id): s for s in scores}


def filter_assessments(assessments, assessment_type='all', start=None, end=None):
    """Filter by type and by date_assigned within [start, end] (ISO dates)."""
    result = []
    for a in assessments:
        if assessment_type and assessment_type != 'all' and a.type != assessment_type:
            continue
        if start and a.date_assigned < start:
            continue
        if end and a.date_assigned > end:
            continue
        result.append(a)
    return result


def status_for_average(average):
    if average < POOR_AVERAGE:
        return "poor"
    if average < WARNING_AVERAGE:
        return "warning"
    return "good"


def markbook_rows(students, assessments, scores):
    """One row per student: a cell per assessment, average %, and status band."""
    by_pair = _index_scores(scores)
    rows = []
    for student in students:
        cells = []
        for assessment in assessments:
            score = by_pair.get((student.id, assessment.id))
            if score is None:
                cells.append(None)
                continue
            cells.append({
                "assessment_id": assessment.id,
                "score": score.score,
                "total": assessment.total_marks,
                "percentage": round(_percent(score, assessment), 1),
            })

        present = [c for c in cells if c is not None]
        # No scores yet averages 0, which reads as "poor"
        average = sum(c["percentage"] for c in present) / len(present) if present else 0
        rows.append({
            "student_id": student.id,
            "student_name": student.full_name,
            "cells": cells,
            "average": round(average, 1),
            "status": status_for_average(average),
        })
    return rows


def average_by_assessment(assessments, scores):
    """Class average (as %) for every assessment that has at least one score."""
    results = []
    for assessment in assessments:
        assessment_scores = [s for s in scores if s.assessment_id == assessment.id]
        if not assessment_scores:
            continue
        total = sum(s.score for s in assessment_scores)
        results.append({
            "assessment_id": assessment.id,
            "name": assessment.title,
            "type": assessment.type,
            "average": round(total / len(assessment_scores) / assessment.total_marks * 100, 1),
            "count": len(assessment_scores),
        })
    return results


def student_progress(students, assessments, scores, threshold=None):
    """Per-student percentage history ordered by date assigned."""
    if threshold is None:
        threshold = config.low_score_threshold
    by_pair = _index_scores(scores)
    progress = []
    for student in students:
        points = []
        for assessment in assessments:
            score = by_pair.get((student.id, assessment.id))
            if score is None:
                continue
            points.append({
                "date": assessment.date_assigned,
                "score": _percent(score, assessment),
                "assessment": assessment.title,
            })
        points.sort(key=lambda p: p["date"])

        average = sum(p["score"] for p in points) / len(points) if points else 0
        progress.append({
            "student_id": student.id,
            "student_name": student.full_name,
            "progress": points,
            "average": average,
            "below_threshold": average < threshold,
        })
    return progress


def students_below_threshold(students, assessments, scores, threshold=None):
    return [p for p in student_progress(students, assessments, scores, threshold) if p["below_threshold"]]


def performance_by_type(assessments, scores):
    """Mean of per-assessment averages, grouped by assessment type."""
    groups = {}
    for assessment in assessments:
        averages = groups.setdefault(assessment.type, [])
        assessment_scores = [s for s in scores if s.assessment_id == assessment.id]
        if assessment_scores:
            avg = sum(_percent(s, assessment) for s in assessment_scores) / len(assessment_scores)
            averages.append(avg)

    return [
        {"type": t, "average": sum(avgs) / len(avgs) if avgs else 0}
        for t, avgs in groups.items()
    ]
