"""
Markbook API Client
===================
HTTP client for the markbook REST API (classes, rosters, assessments, scores).

The bearer token lives on an explicit Session object handed to the client,
so the grid and importers receive a capability instead of reading global state.

Usage:
    session = Session(token)
    client = MarkbookClient(session)
    roster = client.get_class_students(class_id)
"""
import logging

import requests

from markbook.config import config
from markbook.errors import APIError, AuthError, ConflictError, NetworkError, NotFoundError
from markbook.models import Assessment, BulkImportResult, Score, Student, StudentScoreView

logger = logging.getLogger(__name__)


class Session:
    """Holds the bearer token for one signed-in user.

    A 401 from the API clears the token and calls on_unauthorized, which is
    where the outer auth layer hooks in its redirect.
    """

    def __init__(self, token=None, on_unauthorized=None):
        self.token = token
        self.on_unauthorized = on_unauthorized

    @property
    def is_authenticated(self):
        return bool(self.token)

    def headers(self):
        if not self.token:
            return {}
        return {'Authorization': f'Bearer {self.token}'}

    def clear(self):
        self.token = None
        if self.on_unauthorized:
            self.on_unauthorized()


class MarkbookClient:
    def __init__(self, session, base_url=None, http=None, timeout=None):
        self.session = session
        self.base_url = (base_url or config.api_url).rstrip('/')
        self.http = http or requests.Session()
        self.timeout = timeout or config.request_timeout

    # ── transport ──────────────────────────────────────────────

    def _request(self, method, path, params=None, json=None):
        url = f"{self.base_url}/{path.lstrip('/')}"
        headers = {'Content-Type': 'application/json'}
        headers.update(self.session.headers())

        try:
            response = self.http.request(
                method, url, params=params, json=json, headers=headers, timeout=self.timeout,
            )
        except requests.RequestException as e:
            logger.error("Network error calling %s %s: %s", method, url, e)
            raise NetworkError("Network error. Please check your connection and try again.") from e

        if response.status_code == 401:
            logger.warning("401 from %s %s, clearing session token", method, url)
            self.session.clear()
            raise AuthError(_error_detail(response) or "Authentication failed. Please login again.")

        if response.status_code == 403:
            raise APIError(_error_detail(response) or "Access forbidden", status_code=403)

        if not 200 <= response.status_code < 300:
            detail = _error_detail(response) or f"HTTP error! status: {response.status_code}"
            logger.error("API error %s from %s %s: %s", response.status_code, method, url, detail)
            if response.status_code == 404:
                raise NotFoundError(detail)
            if response.status_code == 409:
                raise ConflictError(detail)
            raise APIError(detail, status_code=response.status_code)

        content_type = response.headers.get('Content-Type', '')
        if 'application/json' not in content_type:
            raise APIError(
                f"Server returned non-JSON response: {response.text[:100]}",
                status_code=response.status_code,
            )
        try:
            return response.json()
        except ValueError as e:
            raise APIError(f"Failed to parse JSON response: {e}", status_code=response.status_code) from e

    # ── classes & rosters ─────────────────────────────────────

    def list_classes(self):
        return self._request('GET', '/classes')

    def create_class(self, name, grade=""):
        if not name:
            raise ValueError('Class name is required')
        return self._request('POST', '/classes', json={'name': name, 'grade': grade})

    def get_class_students(self, class_id):
        if not class_id:
            raise ValueError('Class ID is required')
        data = self._request('GET', f'/classes/{class_id}/students')
        return [Student(**s) for s in data]

    def add_student_to_class(self, class_id, student_id):
        if not class_id or not student_id:
            raise ValueError('Class ID and Student ID are required')
        return self._request('POST', f'/classes/{class_id}/students', json={'student_id': student_id})

    def bulk_add_students(self, class_id, lines, default_grade=None, default_gender=None):
        if not class_id:
            raise ValueError('Class ID is required')
        payload = {'students': list(lines)}
        if default_grade:
            payload['default_grade'] = default_grade
        if default_gender:
            payload['default_gender'] = default_gender
        return self._request('POST', f'/classes/{class_id}/students/bulk', json=payload)

    def remove_student_from_class(self, class_id, student_id):
        return self._request('DELETE', f'/classes/{class_id}/students/{student_id}')

    def create_student(self, first_name, last_name, grade, gender=None, parent_contact=None):
        data = self._request('POST', '/students', json={
            'first_name': first_name,
            'last_name': last_name,
            'grade': grade,
            'gender': gender,
            'parent_contact': parent_contact,
        })
        return Student(**data)

    # ── assessments & scores ──────────────────────────────────

    def list_assessments(self, class_id=None):
        params = {'class_id': class_id} if class_id else None
        data = self._request('GET', '/assessments', params=params)
        return [Assessment(**a) for a in data]

    def get_assessment(self, assessment_id):
        if not assessment_id:
            raise ValueError('Assessment ID is required')
        return Assessment(**self._request('GET', f'/assessments/{assessment_id}'))

    def create_assessment(self, class_id, title, type, total_marks, date_assigned, date_due=None):
        data = self._request('POST', '/assessments', json={
            'class_id': class_id,
            'title': title,
            'type': type,
            'total_marks': total_marks,
            'date_assigned': date_assigned,
            'date_due': date_due,
        })
        return Assessment(**data)

    def get_students_with_scores(self, assessment_id, class_id):
        if not assessment_id:
            raise ValueError('Assessment ID is required')
        if not class_id:
            raise ValueError('Class ID is required')
        data = self._request(
            'GET', f'/assessments/{assessment_id}/students-with-scores', params={'class_id': class_id},
        )
        return [StudentScoreView(**row) for row in data]

    def get_scores_by_assessment(self, assessment_id, class_id=None):
        params = {'class_id': class_id} if class_id else None
        data = self._request('GET', f'/assessments/scores/by-assessment/{assessment_id}', params=params)
        return [Score(**s) for s in data]

    def create_scores(self, assessment_id, scores):
        """Create scores in one call. Create-only: an already-scored pair is a conflict."""
        if not assessment_id or not isinstance(scores, list):
            raise ValueError('Invalid data format. Expected { assessment_id, scores: [] }')
        data = self._request('POST', '/assessments/scores/bulk', json={
            'assessment_id': assessment_id,
            'scores': scores,
        })
        return [Score(**s) for s in data]

    def bulk_import_scores(self, assessment_id, rows):
        data = self._request('POST', '/assessments/scores/bulk-import', json={
            'assessment_id': assessment_id,
            'rows': [{'student_name': r.student_name, 'score': r.score} for r in rows],
        })
        return BulkImportResult(**data)

    def update_score(self, score_id, score, comment=None):
        if not score_id:
            raise ValueError('Score ID is required')
        data = self._request('PUT', f'/assessments/scores/{score_id}', json={
            'score': score,
            'comment': comment,
        })
        return Score(**data)

    def delete_score(self, score_id):
        if not score_id:
            raise ValueError('Score ID is required')
        return self._request('DELETE', f'/assessments/scores/{score_id}')


def _error_detail(response):
    """Pull a message out of an error body, if it is JSON."""
    try:
        body = response.json()
    except ValueError:
        return None
    if isinstance(body, dict):
        return body.get('error') or body.get('detail') or body.get('message')
    return None
