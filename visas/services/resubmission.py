"""
Correction requests raised by the back office after submission.

An application carries a list of requests (``resubmission_requests``). Older
records carry a single request in the flat ``resubmission_target`` /
``resubmission_traveler_id`` / ``requested_field_ids`` columns instead; while
the list is empty those columns are read as one more request flagged
``legacy``. The list always wins once it has entries.
"""
import logging
import uuid

from django.db import transaction
from django.utils import timezone
from django.utils.dateparse import parse_datetime

from customers.services import get_traveler

from ..exceptions import InvalidInput, StateConflict
from ..fields import (
    PASSPORT_KEYS,
    field_key,
    is_passport_key,
    parse_field_id,
    parse_field_ids,
    passport_field_definitions,
)
from ..forms import ResubmissionRequestForm, clean_or_raise
from ..models import VisaApplication
from . import notifications
from .adhoc import adhoc_fields_for_scope, clean_adhoc_definitions, mint_adhoc_fields
from .lookups import get_application

logger = logging.getLogger(__name__)

LEGACY_REQUEST_ID = 'legacy'

# =========================================================
# 1. READING REQUESTS
# =========================================================


def _lenient_field_ids(raw_ids):
    """Stored ids from older records: keep what parses, skip the rest."""
    ids = []
    for raw in raw_ids or []:
        try:
            field_id = parse_field_id(raw)
        except InvalidInput:
            logger.warning(f"Ignoring malformed stored field id: {raw!r}")
            continue
        if field_id not in ids:
            ids.append(field_id)
    return ids


def legacy_request(application):
    if not application.has_legacy_request or application.resubmission_requests:
        return None
    return {
        'id': LEGACY_REQUEST_ID,
        'target': application.resubmission_target,
        'traveler_id': application.resubmission_traveler_id,
        'field_ids': _lenient_field_ids(application.requested_field_ids),
        'note': None,
        'requested_at': None,
        'fulfilled_at': None,
        'legacy': True,
    }


def _request_traveler_id(request):
    if request.get('target') == VisaApplication.TARGET_TRAVELER:
        return request.get('traveler_id')
    return None


def live_field_ids(application, traveler_id):
    """Ids the scope can still answer: active catalog, its ad hoc fields, passport keys."""
    live = {f['id'] for f in application.visa_product.fields or []
            if f.get('is_active', True) is not False}
    live.update(f['id'] for f in adhoc_fields_for_scope(application, traveler_id)
                if f.get('is_active', True) is not False)
    live.update(PASSPORT_KEYS)
    return live


def _live_request_ids(application, request):
    live = live_field_ids(application, _request_traveler_id(request))
    return [fid for fid in _lenient_field_ids(request.get('field_ids')) if fid in live]


def open_requests(application):
    """
    Unfulfilled requests, the legacy one included. Ids whose field was deleted
    or deactivated since are left out; a request with none left is not open.
    """
    requests = []
    for request in application.resubmission_requests or []:
        if request.get('fulfilled_at'):
            continue
        field_ids = _live_request_ids(application, request)
        if not field_ids:
            continue
        requests.append(dict(request, field_ids=field_ids))
    legacy = legacy_request(application)
    if legacy is not None:
        requests.append(legacy)
    return requests


def request_matches_scope(request, traveler_id):
    """
    A traveler-targeted request without a traveler id belongs to Traveler 1,
    which is the application-level scope.
    """
    if (request.get('target') == VisaApplication.TARGET_TRAVELER
            and request.get('traveler_id') is not None):
        return request['traveler_id'] == traveler_id
    return traveler_id is None


def open_requests_for_scope(application, traveler_id):
    return [r for r in open_requests(application)
            if request_matches_scope(r, traveler_id)]


def has_open_requests(application):
    return bool(open_requests(application))


def _field_labels(application, traveler_id):
    labels = {f['id']: f.get('question') for f in application.visa_product.fields or []}
    labels.update({f['id']: f.get('question')
                   for f in adhoc_fields_for_scope(application, traveler_id)})
    labels.update({f['id']: f['question'] for f in passport_field_definitions()})
    return labels


def get_active_resubmission_requests(application_id):
    application = get_application(application_id)
    active = []
    for request in open_requests(application):
        labels = _field_labels(application, request.get('traveler_id'))
        item = dict(request)
        item['fields'] = [{'id': fid, 'question': labels.get(fid)}
                          for fid in request['field_ids']]
        active.append(item)
    return active


# =========================================================
# 2. ADMIN: RAISE REQUESTS
# =========================================================

def _validate_requested_ids(application, field_ids, traveler_id):
    catalog_ids = {f['id'] for f in application.visa_product.fields or []
                   if f.get('is_active', True) is not False}
    adhoc_ids = {f['id'] for f in adhoc_fields_for_scope(application, traveler_id)}

    for field_id in field_ids:
        if is_passport_key(field_id):
            continue
        if field_id > 0 and field_id in catalog_ids:
            continue
        if field_id < 0 and field_id in adhoc_ids:
            continue
        raise InvalidInput(
            f"Field {field_id} is not part of this application's form.")


def _materialize_legacy(application):
    """Moves a legacy flat request into the list before new requests join it."""
    legacy = legacy_request(application)
    if legacy is None:
        return
    legacy.pop('legacy')
    legacy['id'] = uuid.uuid4().hex
    application.resubmission_requests = [legacy]
    application.resubmission_target = None
    application.resubmission_traveler_id = None
    application.requested_field_ids = None


def request_resubmission(application_id, requests):
    """
    Asks the customer to correct or complete some fields. Each item may name
    existing field ids and/or define new questions inline (``custom_fields``).
    """
    if isinstance(requests, dict):
        requests = [requests]
    if not isinstance(requests, list) or not requests:
        raise InvalidInput("At least one resubmission request is required.")

    with transaction.atomic():
        application = get_application(application_id, lock=True)

        if application.status not in VisaApplication.IN_PROCESS_STATUSES:
            raise StateConflict(
                f"Cannot request a resubmission while the application is "
                f"'{application.status}'.")

        _materialize_legacy(application)
        now = timezone.now().isoformat()
        created = []

        for item in requests:
            if not isinstance(item, dict):
                raise InvalidInput("Each resubmission request must be an object.")
            cleaned = clean_or_raise(ResubmissionRequestForm(data=item))
            traveler_id = cleaned.get('traveler_id')
            get_traveler(application, traveler_id)

            field_ids = parse_field_ids(item.get('requested_field_ids'))
            _validate_requested_ids(application, field_ids, traveler_id)

            custom_fields = item.get('custom_fields') or []
            if custom_fields:
                minted = mint_adhoc_fields(
                    application, clean_adhoc_definitions(custom_fields, traveler_id))
                field_ids += [f['id'] for f in minted]

            if not field_ids:
                raise InvalidInput(
                    "A resubmission request must name at least one field.")

            request = {
                'id': uuid.uuid4().hex,
                'target': cleaned['target'],
                'traveler_id': traveler_id,
                'field_ids': field_ids,
                'note': cleaned.get('note') or None,
                'requested_at': now,
                'fulfilled_at': None,
            }
            application.resubmission_requests = list(
                application.resubmission_requests or []) + [request]
            created.append(request)

        application.status = VisaApplication.RESUBMISSION
        application.save()
        notifications.notify_application_event(
            application, notifications.RESUBMISSION_REQUIRED,
            message=' '.join(r['note'] for r in created if r['note']) or None)

    logger.info(f"{len(created)} resubmission request(s) raised on "
                f"{application.application_number}")
    return created


# =========================================================
# 3. FULFILLMENT (runs inside the submit transaction)
# =========================================================

def _answered_since(answer, since):
    if not answer:
        return False
    if since is None:
        return True
    submitted_at = parse_datetime(answer.get('submitted_at') or '')
    return submitted_at is not None and submitted_at >= since


def _request_satisfied(application, request, merged_responses):
    if request.get('legacy'):
        # Old single requests are closed by any submission for their scope
        return True
    since = parse_datetime(request.get('requested_at') or '')
    return all(
        _answered_since(merged_responses.get(field_key(fid)), since)
        for fid in _live_request_ids(application, request)
    )


def check_fulfillment(application, traveler_id, merged_responses):
    """
    Marks the scope's open requests as fulfilled when every field they name
    was answered after the request was raised. Once nothing is left open the
    workflow is reset and the application goes back to processing.

    Mutates ``application`` (not saved). Returns the fulfilled request ids.
    """
    if application.status not in VisaApplication.RESUBMISSION_STATUSES:
        return []

    now = timezone.now().isoformat()
    fulfilled = []
    had_requests = has_open_requests(application)

    requests = []
    for request in application.resubmission_requests or []:
        if (not request.get('fulfilled_at')
                and request_matches_scope(request, traveler_id)
                and _request_satisfied(application, request, merged_responses)):
            request = dict(request, fulfilled_at=now)
            fulfilled.append(request['id'])
        requests.append(request)
    application.resubmission_requests = requests

    legacy = legacy_request(application)
    if legacy is not None and request_matches_scope(legacy, traveler_id):
        application.resubmission_target = None
        application.resubmission_traveler_id = None
        application.requested_field_ids = None
        fulfilled.append(LEGACY_REQUEST_ID)

    if not has_open_requests(application):
        application.clear_resubmission()
        previous = application.status
        application.status = VisaApplication.PROCESSING
        if had_requests:
            logger.info(f"All resubmission requests fulfilled on "
                        f"{application.application_number}; back to processing")
        else:
            logger.info(f"{application.application_number} left '{previous}' "
                        f"after the customer submitted information")
    elif fulfilled:
        logger.info(f"Requests {', '.join(fulfilled)} fulfilled on "
                    f"{application.application_number}; others still open")
    return fulfilled
