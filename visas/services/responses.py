import logging

from django.db import transaction
from django.utils import timezone

from customers.services import apply_passport_answers, get_traveler, response_owner

from ..exceptions import InvalidInput
from ..fields import (
    PASSPORT_KEYS,
    field_key,
    is_passport_key,
    parse_field_id,
    passport_field_definitions,
    validate_answer,
)
from ..models import VisaApplication
from . import notifications, uploads
from .adhoc import adhoc_fields_for_scope
from .lookups import get_application
from .resubmission import check_fulfillment
from .visibility import VIEW_USER, resolve_fields

logger = logging.getLogger(__name__)

SKIP_NOT_REQUESTED = 'not_requested'
SKIP_READ_ONLY = 'read_only'
SKIP_INACTIVE = 'inactive'

ANSWER_KEYS = ('value', 'file_path', 'file_name', 'file_size')

# =========================================================
# 0. PAYLOAD
# =========================================================


def normalize_payload(responses):
    """
    Accepts either a list of ``{"field_id": .., "value": ..}`` items or a
    mapping ``{field_id: value | {"value": .., "file_path": ..}}``.
    Returns ``[(canonical_id, raw_answer_dict)]``; a repeated id keeps the last.
    """
    if isinstance(responses, dict):
        items = []
        for raw_id, answer in responses.items():
            if not isinstance(answer, dict):
                answer = {'value': answer}
            items.append(dict(answer, field_id=raw_id))
    elif isinstance(responses, list):
        items = responses
    else:
        raise InvalidInput("Responses must be a list or an object.")

    parsed = {}
    for item in items:
        if not isinstance(item, dict) or 'field_id' not in item:
            raise InvalidInput("Each response needs a field_id.")
        field_id = parse_field_id(item['field_id'])
        parsed[field_id] = {k: item.get(k) for k in ANSWER_KEYS}
    if not parsed:
        raise InvalidInput("No responses provided.")
    return list(parsed.items())


def _known_ids(application, traveler_id):
    known = {f['id'] for f in application.visa_product.fields or []}
    known.update(f['id'] for f in adhoc_fields_for_scope(application, traveler_id))
    known.update(PASSPORT_KEYS)
    return known


def _skip_reason(field_id, application, visible_ids, restricted):
    if field_id in visible_ids:
        return SKIP_READ_ONLY
    if restricted:
        return SKIP_NOT_REQUESTED
    if application.status in VisaApplication.RESUBMISSION_STATUSES:
        return SKIP_READ_ONLY
    return SKIP_INACTIVE if not is_passport_key(field_id) else SKIP_READ_ONLY


# =========================================================
# 1. SUBMIT
# =========================================================

def submit_responses(application_id, responses, traveler_id=None):
    """
    Validates and stores answers for one scope, then runs the resubmission
    fulfillment check. Fields the scope may not answer right now are dropped
    and reported under ``skipped``.
    """
    payload = normalize_payload(responses)

    with transaction.atomic():
        application = get_application(application_id, lock=True)
        traveler = get_traveler(application, traveler_id, lock=True)
        owner = response_owner(application, traveler)
        previous_status = application.status

        # 1. Unknown ids are an error, not a skip
        known = _known_ids(application, traveler_id)
        unknown = [fid for fid, _answer in payload if fid not in known]
        if unknown:
            raise InvalidInput(
                f"Unknown field id(s): {', '.join(str(f) for f in unknown)}")

        # 2. Keep only what this scope may answer now
        fields, restricted = resolve_fields(application, traveler, VIEW_USER)
        visible = {f['id']: f for f in fields}
        editable = {fid: f for fid, f in visible.items() if f['editable']}

        accepted = []
        skipped = []
        for field_id, answer in payload:
            if field_id in editable:
                accepted.append((editable[field_id], answer))
            else:
                reason = _skip_reason(field_id, application, visible, restricted)
                skipped.append({'field_id': field_id, 'reason': reason})

        if skipped:
            logger.warning(f"{application.application_number}: ignored "
                           f"{len(skipped)} field(s) outside the editable scope: "
                           f"{', '.join(str(s['field_id']) for s in skipped)}")

        # 3. Required fields
        stored = owner.field_responses or {}
        accepted_ids = {field['id'] for field, _answer in accepted}
        if restricted:
            missing = [f for f in editable.values()
                       if f.get('is_required') and f['id'] not in accepted_ids]
        elif editable:
            missing = [f for f in fields
                       if f['source'] == 'product' and f.get('is_required')
                       and f['id'] not in accepted_ids
                       and field_key(f['id']) not in stored]
        else:
            missing = []
        if missing:
            raise InvalidInput(
                "Required field(s) missing: "
                + ", ".join(f.get('question') or str(f['id']) for f in missing))

        # 4. Validate and merge
        now = timezone.now().isoformat()
        new_answers = {}
        for field, answer in accepted:
            cleaned = validate_answer(field, answer)
            if field.get('field_type') == 'upload':
                cleaned = uploads.resolve_stored_upload(application, field, cleaned)
            cleaned['submitted_at'] = now
            new_answers[field_key(field['id'])] = cleaned

        merged = dict(stored)
        merged.update(new_answers)
        owner.field_responses = merged

        record = traveler if traveler is not None else application.customer
        apply_passport_answers(
            record, {k: v for k, v in new_answers.items() if is_passport_key(k)})

        # 5. Workflow
        fulfilled = check_fulfillment(application, traveler_id, merged)

        if traveler is not None:
            traveler.save(update_fields=['field_responses', 'updated_at'])
        application.save()

        if (previous_status in VisaApplication.RESUBMISSION_STATUSES
                and application.status == VisaApplication.PROCESSING):
            notifications.notify_application_event(
                application, notifications.DOCUMENTS_SUBMITTED)

    logger.info(f"{len(new_answers)} answer(s) stored on "
                f"{application.application_number} (traveler={traveler_id or 1})")
    return {
        'count': len(new_answers),
        'data': new_answers,
        'skipped': skipped,
        'status': application.status,
        'fulfilled_requests': fulfilled,
    }


# =========================================================
# 2. READ
# =========================================================

def get_responses(application_id, traveler_id=None):
    """
    Every stored answer of the scope with its definition. Answers to fields
    deleted since are still returned, with ``definition`` set to None.
    """
    application = get_application(application_id)
    traveler = get_traveler(application, traveler_id)
    stored = response_owner(application, traveler).field_responses or {}

    definitions = {field_key(f['id']): f for f in application.visa_product.fields or []}
    definitions.update({field_key(f['id']): f
                        for f in adhoc_fields_for_scope(application, traveler_id)})
    definitions.update({field_key(f['id']): f for f in passport_field_definitions()})

    items = []
    for key, answer in stored.items():
        try:
            field_id = parse_field_id(key)
        except InvalidInput:
            field_id = key
        items.append(dict(answer, field_id=field_id, definition=definitions.get(key)))

    # Known fields in display order, orphans last
    items.sort(key=lambda item: (
        item['definition'] is None,
        (item['definition'] or {}).get('display_order') or 0,
    ))
    return items
