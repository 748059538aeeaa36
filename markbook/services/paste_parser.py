"""
Paste Parser
============
Turns text copied out of a spreadsheet into (name, score) rows.

Two consumers share the tokenizer:
- parse_rows(): bulk import. Blank lines are dropped, unparseable lines counted.
- parse_paste_column(): live-grid paste. Every line keeps its position; a
  blank line or "-" means "clear this cell".
"""
import re
import logging

from markbook.models import ParseResult, PastedCell, PastedScoreRow

logger = logging.getLogger(__name__)

# Plain decimal number: no "nan", "inf", underscores or trailing junk
NUMBER_RE = re.compile(r'^[+-]?(\d+(\.\d*)?|\.\d+)([eE][+-]?\d+)?$')
MULTI_SPACE_RE = re.compile(r' {2,}')

CLEAR_MARKERS = ('', '-')


def parse_number(text):
    """Return text as a float, or None if it is not a finite decimal number."""
    if text is None:
        return None
    text = text.strip()
    if not NUMBER_RE.match(text):
        return None
    value = float(text)
    if value != value or value in (float('inf'), float('-inf')):
        return None
    return value


def split_lines(text, keep_blank=False):
    """Split pasted text into lines.

    With keep_blank, blank lines stay in place as position markers; only the
    single terminator a spreadsheet clipboard appends is dropped.
    """
    if not text:
        return []
    lines = [line.rstrip('\r') for line in text.split('\n')]
    if keep_blank:
        if len(lines) > 1 and not lines[-1].strip():
            lines.pop()
        return lines
    return [line for line in lines if line.strip()]


def split_fields(line):
    """Split one line into (name, score_text) using the first delimiter that works.

    Tried in order: tab, comma, two or more spaces, the last single space.
    Returns None when no strategy yields two fields.
    """
    line = line.strip()

    if '\t' in line:
        fields = [f.strip() for f in line.split('\t')]
        return ' '.join(f for f in fields[:-1] if f), fields[-1]

    if ',' in line:
        fields = line.split(',')
        return ','.join(fields[:-1]).strip(), fields[-1].strip()

    fields = MULTI_SPACE_RE.split(line)
    if len(fields) >= 2:
        name, score_text = ' '.join(f.strip() for f in fields[:-1]), fields[-1].strip()
        # "Mary  Ann Smith 18": the real boundary is the final single space
        if ' ' not in score_text:
            return name, score_text

    space_index = line.rfind(' ')
    if space_index > 0:
        return line[:space_index].strip(), line[space_index + 1:].strip()

    return None


def parse_line(line):
    """Parse one line into a PastedScoreRow, or None if it should be skipped."""
    fields = split_fields(line)
    if fields is None:
        return None
    name, score_text = fields
    score = parse_number(score_text)
    if not name or score is None:
        return None
    return PastedScoreRow(student_name=name, score=score)


def parse_rows(text):
    """Parse a bulk-import block into rows, counting the lines that were dropped."""
    rows = []
    skipped = 0
    for line in split_lines(text):
        row = parse_line(line)
        if row is None:
            logger.debug("Skipping unparseable line: %r", line)
            skipped += 1
            continue
        rows.append(row)
    return ParseResult(rows=rows, skipped=skipped)


def parse_paste_column(text):
    """Parse a column paste into positional cells, one per line.

    The first tab field is the cell value, so a multi-column copy ("18<TAB>5")
    only fills the anchor column. When that field is not a value, as in a
    name-prefixed line ("John Brown<TAB>18"), the trailing field is used.
    Rows map to students by position; the name is not checked.
    """
    cells = []
    for line in split_lines(text, keep_blank=True):
        raw = line.strip()
        if '\t' in raw:
            first = raw.split('\t')[0].strip()
            if first in CLEAR_MARKERS or parse_number(first) is not None:
                raw = first
        if raw not in CLEAR_MARKERS and parse_number(raw) is None:
            fields = split_fields(raw)
            if fields is not None:
                raw = fields[1]
        if raw in CLEAR_MARKERS:
            cells.append(PastedCell(kind="clear", raw=raw))
            continue
        value = parse_number(raw)
        if value is None:
            cells.append(PastedCell(kind="invalid", raw=raw))
        else:
            cells.append(PastedCell(kind="value", raw=raw, value=value))
    return cells
