"""Form questions are plain header strings; their field type is encoded in the text.

    "Course name*"                          required text field
    "Preferred channel (Select: Email;SMS)" select with two options
    "Deliverables (Checkbox: PDF; Video)"   multi-choice checkbox
    "Describe the issue"                    textarea (keyword match)
"""

import re
from datetime import date, datetime

QUESTION_TYPES = ("Text", "Textarea", "Url", "Date", "Select", "Checkbox")

_SELECT_RE = re.compile(r"\(select:\s*(.*?)\)", re.IGNORECASE)
_CHECKBOX_RE = re.compile(r"\(checkbox:\s*(.*?)\)", re.IGNORECASE)
_ANNOTATION_RE = re.compile(r"\s\((select:|checkbox:).*?\)", re.IGNORECASE)


def _split_options(raw):
    return [o.strip() for o in raw.split(";")]


def infer_question_type(header):
    """Return ``(question_type, options)`` for a question header."""
    lower = header.lower()

    if "(select:" in lower:
        m = _SELECT_RE.search(header)
        return "Select", _split_options(m.group(1)) if m else []
    if "(checkbox:" in lower:
        m = _CHECKBOX_RE.search(header)
        return "Checkbox", _split_options(m.group(1)) if m else []
    if "(textarea)" in lower:
        return "Textarea", []
    if "(url)" in lower:
        return "Url", []
    if "date" in lower:
        return "Date", []

    if "describe" in lower or "detail" in lower:
        return "Textarea", []
    if "link" in lower:
        return "Url", []

    return "Text", []


def build_question_header(text, question_type="Text", options=None, required=False):
    """Encode a question the way ``infer_question_type`` reads it back."""
    header = text.strip()
    cleaned = [o.strip() for o in (options or []) if o and o.strip()]
    if question_type in ("Select", "Checkbox") and cleaned:
        header += f" ({question_type}: {';'.join(cleaned)})"
    if required:
        header += "*"
    return header


def is_required(header):
    return header.endswith("*")


def question_label(header):
    label = re.sub(r"\*$", "", header)
    return _ANNOTATION_RE.sub("", label, count=1)


def make_question(header, position):
    question_type, options = infer_question_type(header)
    return {
        "id": f"col-{position}",
        "question_text": header,
        "question_type": question_type,
        "options": options,
        "label": question_label(header),
        "required": is_required(header),
    }


def merge_questions(question_lists):
    """Flatten per-team question lists; the first occurrence of a text wins."""
    seen = set()
    merged = []
    for questions in question_lists:
        for q in questions:
            if q["question_text"] in seen:
                continue
            seen.add(q["question_text"])
            merged.append(q)
    return merged


def parse_form_date(value):
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not value:
        return None
    text = str(value).strip()
    try:
        return datetime.fromisoformat(text.replace("Z", "+00:00")).date()
    except ValueError:
        pass
    for fmt in ("%m/%d/%Y", "%d/%m/%Y", "%Y/%m/%d"):
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            continue
    return None


def _selected_options(value):
    if isinstance(value, dict):
        return [option for option, checked in value.items() if checked]
    if isinstance(value, (list, tuple)):
        return [str(v) for v in value if v]
    if isinstance(value, str) and value.strip():
        return [v.strip() for v in value.split(",") if v.strip()]
    return []


def validate_submission(questions, values):
    """Return ``{question_text: message}`` for every failing required field."""
    errors = {}
    for q in questions:
        if not is_required(q["question_text"]):
            continue
        key = q["question_text"]
        value = values.get(key)
        if q["question_type"] == "Checkbox":
            if not _selected_options(value):
                errors[key] = "At least one option must be selected."
        elif q["question_type"] == "Date":
            if parse_form_date(value) is None:
                errors[key] = "A date is required."
        elif value is None or not str(value).strip():
            errors[key] = "This field is required."
    return errors


def normalize_submission(questions, values):
    """Flatten checkbox selections and dates into the strings stored in the sheet."""
    processed = dict(values)
    team = processed.get("Team")
    if isinstance(team, (list, tuple)):
        processed["Team"] = ", ".join(team)

    for q in questions:
        key = q["question_text"]
        if key not in processed:
            continue
        value = processed[key]
        if q["question_type"] == "Checkbox":
            processed[key] = ", ".join(_selected_options(value))
        elif q["question_type"] == "Date":
            parsed = parse_form_date(value)
            processed[key] = parsed.strftime("%Y-%m-%d") if parsed else ""
        elif value is None:
            processed[key] = ""
    return processed
