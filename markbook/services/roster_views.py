"""
Roster sorting, search filtering and CSV export.
"""
import csv
import io

SORT_KEYS = {
    'name': lambda s: f"{s.first_name} {s.last_name}".lower(),
    'firstname': lambda s: s.first_name.lower(),
    'lastname': lambda s: (s.last_name or '').lower(),
    'gender': lambda s: (s.gender or '').lower(),
    'grade': lambda s: s.grade or '',
    'contact': lambda s: (s.parent_contact or '').lower(),
}


def sort_students(students, sort_by='name-asc'):
    """Sort by '<field>-<asc|desc>'. Unknown fields keep the input order."""
    field, _, direction = (sort_by or '').partition('-')
    key = SORT_KEYS.get(field)
    if key is None:
        return list(students)
    return sorted(students, key=key, reverse=(direction == 'desc'))


def filter_students(students, term):
    """Case-insensitive substring match on first or last name."""
    if not term:
        return list(students)
    term = term.lower()
    return [
        s for s in students
        if term in s.first_name.lower() or term in (s.last_name or '').lower()
    ]


def roster_csv(students):
    output = io.StringIO()
    writer = csv.writer(output, lineterminator='\n')
    writer.writerow(['Name', 'Grade', 'Gender', 'Parent Contact'])
    for s in students:
        writer.writerow([s.full_name, s.grade, s.gender or '', s.parent_contact or ''])
    return output.getvalue()


def roster_filename(class_name):
    return f"class_{'_'.join(class_name.split())}_roster.csv"
