"""
Assessment and score API routes.
"""
from flask import Blueprint, request, jsonify, current_app

from markbook.config import ASSESSMENT_TYPES
from markbook.errors import ValidationError

score_bp = Blueprint('scores', __name__)


def _store():
    return current_app.extensions['markbook_store']


def _class_id_arg(required=False):
    class_id = request.args.get('class_id', type=int)
    if required and class_id is None:
        raise ValidationError("class_id is required")
    return class_id


@score_bp.route('/api/assessments')
def list_assessments():
    return jsonify(_store().list_assessments(_class_id_arg()))


@score_bp.route('/api/assessments', methods=['POST'])
def create_assessment():
    data = request.get_json(silent=True) or {}
    if data.get('type') not in ASSESSMENT_TYPES:
        raise ValidationError(f"Type must be one of {', '.join(ASSESSMENT_TYPES)}")
    assessment = _store().create_assessment(
        data.get('class_id'),
        data.get('title', ''),
        data['type'],
        data.get('total_marks'),
        date_assigned=data.get('date_assigned'),
        date_due=data.get('date_due'),
    )
    return jsonify(assessment), 201


@score_bp.route('/api/assessments/<int:assessment_id>')
def get_assessment(assessment_id):
    return jsonify(_store().get_assessment(assessment_id))


@score_bp.route('/api/assessments/<int:assessment_id>/students-with-scores')
def students_with_scores(assessment_id):
    """Every student on the class roster with their score (or nulls) for this assessment."""
    return jsonify(_store().students_with_scores(assessment_id, _class_id_arg(required=True)))


@score_bp.route('/api/assessments/scores/by-assessment/<int:assessment_id>')
def scores_by_assessment(assessment_id):
    return jsonify(_store().scores_by_assessment(assessment_id, _class_id_arg()))


@score_bp.route('/api/assessments/scores/bulk', methods=['POST'])
def create_scores():
    """Create scores. An already-scored (student, assessment) pair is a 409."""
    data = request.get_json(silent=True) or {}
    scores = data.get('scores')
    if not data.get('assessment_id') or not isinstance(scores, list):
        raise ValidationError("Invalid data format. Expected { assessment_id, scores: [] }")
    created = _store().create_scores(data['assessment_id'], scores)
    return jsonify(created), 201


@score_bp.route('/api/assessments/scores/bulk-import', methods=['POST'])
def bulk_import_scores():
    """Name-matched import; unmatched or ambiguous names come back as conflicts."""
    data = request.get_json(silent=True) or {}
    rows = data.get('rows')
    if not data.get('assessment_id') or not isinstance(rows, list):
        raise ValidationError("Invalid data format. Expected { assessment_id, rows: [] }")
    return jsonify(_store().bulk_import_scores(data['assessment_id'], rows))


@score_bp.route('/api/assessments/scores/<int:score_id>', methods=['PUT'])
def update_score(score_id):
    data = request.get_json(silent=True) or {}
    if 'score' not in data:
        raise ValidationError("score is required")
    return jsonify(_store().update_score(score_id, data['score'], data.get('comment')))


@score_bp.route('/api/assessments/scores/<int:score_id>', methods=['DELETE'])
def delete_score(score_id):
    _store().delete_score(score_id)
    return jsonify({"status": "deleted"})
