"""
Class and roster API routes.
Handles classes, student records, and linking students to a class roster.
"""
from flask import Blueprint, request, jsonify, current_app

from markbook.errors import ValidationError

class_bp = Blueprint('classes', __name__)


def _store():
    return current_app.extensions['markbook_store']


@class_bp.route('/api/classes')
def list_classes():
    return jsonify(_store().list_classes())


@class_bp.route('/api/classes', methods=['POST'])
def create_class():
    data = request.get_json(silent=True) or {}
    cls = _store().create_class(data.get('name', ''), data.get('grade', ''))
    return jsonify(cls), 201


@class_bp.route('/api/classes/<int:class_id>')
def get_class(class_id):
    return jsonify(_store().get_class(class_id))


@class_bp.route('/api/classes/<int:class_id>/students')
def class_students(class_id):
    """Roster for a class."""
    return jsonify(_store().class_students(class_id))


@class_bp.route('/api/classes/<int:class_id>/students', methods=['POST'])
def add_student(class_id):
    """Link an existing student to the class."""
    data = request.get_json(silent=True) or {}
    student_id = data.get('student_id')
    if not isinstance(student_id, int):
        raise ValidationError("student_id is required")
    added = _store().add_to_class(class_id, student_id)
    return jsonify({"status": "added" if added else "already_enrolled", "student_id": student_id})


@class_bp.route('/api/classes/<int:class_id>/students/bulk', methods=['POST'])
def bulk_add_students(class_id):
    """Create-or-match each line (same name AND grade = same student), then link.

    Body: {students: [str], default_grade?, default_gender?}
    """
    data = request.get_json(silent=True) or {}
    lines = data.get('students')
    if not isinstance(lines, list) or not any(isinstance(l, str) and l.strip() for l in lines):
        raise ValidationError("Please enter at least one student name")
    result = _store().bulk_add_students(
        class_id,
        [l for l in lines if isinstance(l, str)],
        default_grade=data.get('default_grade'),
        default_gender=data.get('default_gender'),
    )
    return jsonify(result)


@class_bp.route('/api/classes/<int:class_id>/students/<int:student_id>', methods=['DELETE'])
def remove_student(class_id, student_id):
    _store().remove_from_class(class_id, student_id)
    return jsonify({"status": "removed"})


@class_bp.route('/api/students', methods=['POST'])
def create_student():
    data = request.get_json(silent=True) or {}
    student = _store().create_student(
        data.get('first_name', ''),
        data.get('last_name', ''),
        data.get('grade', ''),
        gender=data.get('gender'),
        parent_contact=data.get('parent_contact'),
    )
    return jsonify(student), 201
