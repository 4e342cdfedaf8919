"""
Which fields a given scope sees, and which of them it may answer.

Scope = one application + one traveler (``None`` is Traveler 1, the customer).
"""
import logging

from customers.services import (
    get_traveler,
    missing_passport_keys,
    passport_answer,
    response_owner,
)

from ..exceptions import InvalidInput
from ..fields import (
    PASSPORT_KEYS,
    SOURCE_PASSPORT,
    SOURCE_PRODUCT,
    field_key,
    is_passport_key,
    passport_field_definitions,
)
from ..models import VisaApplication
from .adhoc import adhoc_fields_for_scope
from .catalog import sort_fields
from .lookups import get_application
from .resubmission import has_open_requests, open_requests_for_scope

logger = logging.getLogger(__name__)

VIEW_USER = 'user'
VIEW_ADMIN = 'admin'
VIEW_MODES = (VIEW_USER, VIEW_ADMIN)


def _is_active(field):
    return field.get('is_active', True) is not False


def _catalog(application):
    return [dict(f, source=SOURCE_PRODUCT)
            for f in application.visa_product.fields or [] if _is_active(f)]


def _adhoc(application, traveler_id):
    return [dict(f) for f in adhoc_fields_for_scope(application, traveler_id)
            if _is_active(f)]


def _restricted_selection(application, traveler_id, adhoc):
    """
    First non-empty source wins: ids named by open requests, then the scope's
    ad hoc fields, then the legacy requested ids.
    """
    requests = open_requests_for_scope(application, traveler_id)

    requested = []
    for request in requests:
        if request.get('legacy'):
            continue
        for field_id in request['field_ids']:
            if field_id not in requested:
                requested.append(field_id)
    if requested:
        return requested

    if adhoc:
        return [f['id'] for f in adhoc]

    for request in requests:
        if request.get('legacy') and request['field_ids']:
            return request['field_ids']
    return None


def resolve_fields(application, traveler, view_mode=VIEW_USER):
    """
    Returns ``(fields, restricted)``: the ordered definitions visible to the
    scope, each with ``source`` and ``editable``. ``restricted`` is True when
    the list was narrowed to the fields an open request asks for.
    """
    if view_mode not in VIEW_MODES:
        raise InvalidInput(f"Unknown view mode: {view_mode}")

    traveler_id = traveler.id if traveler is not None else None
    record = traveler if traveler is not None else application.customer
    responses = response_owner(application, traveler).field_responses or {}

    catalog = _catalog(application)
    adhoc = _adhoc(application, traveler_id)
    union = catalog + adhoc

    restricted_mode = (view_mode == VIEW_USER
                       and application.status in VisaApplication.RESUBMISSION_STATUSES
                       and has_open_requests(application))
    selection = None
    if restricted_mode:
        selection = _restricted_selection(application, traveler_id, adhoc)

    if selection is not None:
        by_id = {f['id']: f for f in union}
        fields = [dict(by_id[fid], editable=True) for fid in selection if fid in by_id]
        named_passport = {fid for fid in selection if is_passport_key(fid)}
        scope_open = False
    else:
        # Nothing requested for this scope: everything, read-only while the
        # customer owes corrections elsewhere
        editable = (view_mode == VIEW_USER
                    and not restricted_mode
                    and application.status not in VisaApplication.TERMINAL_STATUSES)
        fields = [dict(f, editable=editable) for f in union]
        named_passport = set()
        scope_open = editable

    missing = set(missing_passport_keys(record))
    for definition in passport_field_definitions():
        key = definition['id']
        named = key in named_passport
        if key in missing or field_key(key) in responses or named:
            fields.append(dict(
                definition,
                source=SOURCE_PASSPORT,
                editable=named or (key in missing and scope_open),
            ))

    seen = set()
    unique = []
    for field in fields:
        if field['id'] in seen:
            continue
        seen.add(field['id'])
        unique.append(field)

    return sort_fields(unique), selection is not None


def list_fields_with_responses(application_id, traveler_id=None, view_mode=VIEW_USER):
    application = get_application(application_id)
    traveler = get_traveler(application, traveler_id)
    record = traveler if traveler is not None else application.customer
    responses = response_owner(application, traveler).field_responses or {}

    fields, _restricted = resolve_fields(application, traveler, view_mode)
    for field in fields:
        response = responses.get(field_key(field['id']))
        if response is None and field['id'] in PASSPORT_KEYS:
            synthesized = passport_answer(record, field['id'])
            response = synthesized if synthesized['value'] is not None else None
        field['response'] = response
    return fields
