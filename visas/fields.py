"""
Field identifiers, field types and answer validation.

A field id is either a signed integer (positive: product catalog, negative:
admin ad hoc field) or one of the reserved passport keys. Ids coming from a
request are parsed once with ``parse_field_id`` and only the canonical form
is used afterwards. Answer maps are keyed by ``field_key(field_id)``.
"""
import os
from decimal import Decimal, InvalidOperation

from django.utils.dateparse import parse_date

from .exceptions import InvalidInput

# ==========================================
# 1. FIELD TYPES & SOURCES
# ==========================================

FIELD_TYPES = (
    ('text', 'Text Input'),
    ('number', 'Number Input'),
    ('date', 'Date Picker'),
    ('upload', 'File Upload'),
    ('dropdown', 'Dropdown Select'),
    ('textarea', 'Long Text'),
)
FIELD_TYPE_VALUES = tuple(value for value, _label in FIELD_TYPES)

SOURCE_PRODUCT = 'product'
SOURCE_ADMIN = 'admin'
SOURCE_PASSPORT = 'passport'

# ==========================================
# 2. PASSPORT PSEUDO-FIELDS
# ==========================================

PASSPORT_NUMBER = '_passport_number'
PASSPORT_EXPIRY_DATE = '_passport_expiry_date'
RESIDENCE_COUNTRY = '_residence_country'
HAS_SCHENGEN_VISA = '_has_schengen_visa'

# Negative display orders so they always render before catalog fields
PASSPORT_FIELDS = (
    {
        'id': PASSPORT_NUMBER,
        'attribute': 'passport_number',
        'field_type': 'text',
        'question': 'Passport Number',
        'display_order': -4,
    },
    {
        'id': PASSPORT_EXPIRY_DATE,
        'attribute': 'passport_expiry_date',
        'field_type': 'date',
        'question': 'Passport Expiry Date',
        'display_order': -3,
    },
    {
        'id': RESIDENCE_COUNTRY,
        'attribute': 'residence_country',
        'field_type': 'dropdown',
        'question': 'Country of Residence',
        'use_countries_list': True,
        'display_order': -2,
    },
    {
        'id': HAS_SCHENGEN_VISA,
        'attribute': 'has_schengen_visa',
        'field_type': 'dropdown',
        'question': 'Do you hold a valid Schengen, USA or UK visa?',
        'options': ['Yes', 'No'],
        'display_order': -1,
    },
)
PASSPORT_KEYS = tuple(entry['id'] for entry in PASSPORT_FIELDS)
PASSPORT_ATTRIBUTES = {entry['id']: entry['attribute'] for entry in PASSPORT_FIELDS}


def passport_field_definitions():
    """Full field definitions for the four passport keys (fresh copies)."""
    definitions = []
    for entry in PASSPORT_FIELDS:
        definition = {
            'placeholder': None,
            'is_required': True,
            'options': None,
            'use_countries_list': False,
            'allowed_file_types': None,
            'max_file_size_mb': None,
            'min_length': None,
            'max_length': None,
            'is_active': True,
        }
        definition.update({k: v for k, v in entry.items() if k != 'attribute'})
        definitions.append(definition)
    return definitions


def is_passport_key(field_id):
    return isinstance(field_id, str) and field_id in PASSPORT_ATTRIBUTES


# ==========================================
# 3. IDENTIFIERS
# ==========================================

def parse_field_id(raw):
    """
    Normalizes an incoming identifier to ``int`` or a reserved passport key.
    "12", 12, "-3" and -3 are all accepted; anything else is InvalidInput.
    """
    if isinstance(raw, bool) or raw is None:
        raise InvalidInput(f"Invalid field id: {raw!r}")

    if isinstance(raw, int):
        field_id = raw
    elif isinstance(raw, float) and raw.is_integer():
        field_id = int(raw)
    elif isinstance(raw, str):
        text = raw.strip()
        if text in PASSPORT_ATTRIBUTES:
            return text
        try:
            field_id = int(text)
        except ValueError:
            raise InvalidInput(f"Invalid field id: {raw!r}")
    else:
        raise InvalidInput(f"Invalid field id: {raw!r}")

    if field_id == 0:
        raise InvalidInput("Field id 0 is not a valid identifier.")
    return field_id


def field_key(field_id):
    """Key used inside answer maps."""
    return str(field_id)


def parse_field_ids(raw_ids):
    """Parses a list of ids, dropping duplicates but keeping first-seen order."""
    seen = []
    for raw in raw_ids or []:
        field_id = parse_field_id(raw)
        if field_id not in seen:
            seen.append(field_id)
    return seen


# ==========================================
# 4. FILE TYPES
# ==========================================

MIME_TO_EXTENSION = {
    'application/pdf': 'pdf',
    'image/jpeg': 'jpg',
    'image/jpg': 'jpg',
    'image/png': 'png',
    'image/gif': 'gif',
    'application/msword': 'doc',
    'application/vnd.openxmlformats-officedocument.wordprocessingml.document': 'docx',
}
EXTENSION_ALIASES = {'jpeg': 'jpg'}


def _normalize_extension(ext):
    ext = ext.lower().lstrip('.')
    return EXTENSION_ALIASES.get(ext, ext)


def allowed_extensions(allowed_file_types):
    """Maps a mix of extensions ('pdf', '.JPG') and MIME types to extensions."""
    extensions = set()
    for file_type in allowed_file_types or []:
        normalized = str(file_type).lower().strip()
        if '/' in normalized:
            normalized = MIME_TO_EXTENSION.get(
                normalized, normalized.split('/')[1])
        extensions.add(_normalize_extension(normalized))
    return extensions


def file_type_allowed(allowed_file_types, file_name, mime_type=None):
    if not allowed_file_types:
        return True

    ext = _normalize_extension(os.path.splitext(file_name or '')[1])
    if ext and ext in allowed_extensions(allowed_file_types):
        return True

    if mime_type:
        mime_type = mime_type.lower()
        return any(str(t).lower() in mime_type for t in allowed_file_types)
    return False


# ==========================================
# 5. ANSWER VALIDATION (dispatch on field_type)
# ==========================================

YES_VALUES = ('yes', 'true', '1', 'y')
NO_VALUES = ('no', 'false', '0', 'n')


def parse_yes_no(value):
    """Returns True/False, or None when the value is not a yes/no answer."""
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower() if value is not None else ''
    if text in YES_VALUES:
        return True
    if text in NO_VALUES:
        return False
    return None


def _as_text(value):
    if value is None:
        return ''
    if isinstance(value, str):
        return value.strip()
    return str(value)


def _require_value(field, answer):
    value = _as_text(answer.get('value'))
    if not value:
        raise InvalidInput(f"Value is required for field: {field['question']}")
    return value


def _validate_text(field, answer):
    value = _require_value(field, answer)
    min_length = field.get('min_length')
    max_length = field.get('max_length')
    if min_length is not None and len(value) < min_length:
        raise InvalidInput(
            f"{field['question']} must be at least {min_length} characters.")
    if max_length is not None and len(value) > max_length:
        raise InvalidInput(
            f"{field['question']} must be at most {max_length} characters.")
    return {'value': value}


def _validate_number(field, answer):
    value = _require_value(field, answer)
    try:
        number = Decimal(value)
    except InvalidOperation:
        raise InvalidInput(f"{field['question']} must be a number.")
    if not number.is_finite():
        raise InvalidInput(f"{field['question']} must be a number.")
    return {'value': value}


def _validate_date(field, answer):
    value = _require_value(field, answer)
    try:
        parsed = parse_date(value)
    except ValueError:
        parsed = None
    if parsed is None:
        raise InvalidInput(
            f"{field['question']} must be a valid date (YYYY-MM-DD).")
    return {'value': parsed.isoformat()}


def _validate_dropdown(field, answer):
    value = _require_value(field, answer)
    if field.get('use_countries_list') and not field.get('options'):
        return {'value': value}
    if value not in (field.get('options') or []):
        raise InvalidInput(
            f"Invalid option for dropdown field: {field['question']}")
    return {'value': value}


def _validate_upload(field, answer):
    file_path = _as_text(answer.get('file_path'))
    if not file_path:
        raise InvalidInput(
            f"File path is required for upload field: {field['question']}")

    file_name = _as_text(answer.get('file_name')) or os.path.basename(file_path)
    if not file_type_allowed(field.get('allowed_file_types'), file_name):
        raise InvalidInput(
            f"File type of {file_name} is not allowed. Allowed types: "
            f"{', '.join(field['allowed_file_types'])}")

    # Location and size are checked against storage by the upload store
    return {
        'value': _as_text(answer.get('value')) or None,
        'file_path': file_path,
        'file_name': file_name,
        'file_size': None,
    }


VALIDATORS = {
    'text': _validate_text,
    'textarea': _validate_text,
    'number': _validate_number,
    'date': _validate_date,
    'dropdown': _validate_dropdown,
    'upload': _validate_upload,
}


def validate_answer(field, answer):
    """
    Validates one raw answer against its field definition and returns the
    cleaned answer record (without ``submitted_at``).
    """
    if field['id'] == HAS_SCHENGEN_VISA:
        flag = parse_yes_no(answer.get('value'))
        if flag is None:
            raise InvalidInput(
                f"Invalid option for dropdown field: {field['question']}")
        answer = dict(answer, value='Yes' if flag else 'No')

    validator = VALIDATORS.get(field['field_type'])
    if validator is None:
        raise InvalidInput(f"Unsupported field type: {field['field_type']}")

    cleaned = {
        'value': None,
        'file_path': None,
        'file_name': None,
        'file_size': None,
    }
    cleaned.update(validator(field, answer))
    return cleaned
