import logging

from django.db import transaction
from django.utils import timezone

from customers.services import get_traveler

from ..exceptions import InvalidInput, NotFound
from ..fields import SOURCE_ADMIN, parse_field_id
from ..forms import AdHocFieldForm, clean_field_definition
from .catalog import DEFINITION_KEYS
from .lookups import get_application

logger = logging.getLogger(__name__)


def adhoc_fields_for_scope(application, traveler_id=None):
    """Ad hoc fields asked to exactly this scope (None = application level)."""
    return [f for f in application.admin_requested_fields or []
            if f.get('traveler_id') == traveler_id]


def next_adhoc_id(application):
    existing = [f['id'] for f in application.admin_requested_fields or []
                if isinstance(f.get('id'), int)]
    return min(application.admin_field_counter or 0, min(existing, default=0), 0) - 1


def clean_adhoc_definitions(definitions, traveler_id=None):
    if not isinstance(definitions, list) or not definitions:
        raise InvalidInput("At least one field definition is required.")

    cleaned = []
    for definition in definitions:
        data = clean_field_definition(definition, form_class=AdHocFieldForm)
        if data.get('traveler_id') is None:
            data['traveler_id'] = traveler_id
        cleaned.append(data)
    return cleaned


def mint_adhoc_fields(application, cleaned_definitions):
    """
    Allocates ids and appends the fields to the (locked) application.
    The caller saves the row.
    """
    for traveler_id in {d['traveler_id'] for d in cleaned_definitions}:
        get_traveler(application, traveler_id)

    now = timezone.now().isoformat()
    fields = list(application.admin_requested_fields or [])
    # Ad hoc questions default to after the catalog and earlier ad hoc fields
    orders = [f.get('display_order') or 0
              for f in (application.visa_product.fields or []) + fields]
    next_order = max(orders, default=-1) + 1
    created = []
    for data in cleaned_definitions:
        field_id = next_adhoc_id(application)
        definition = {'id': field_id}
        definition.update({key: data.get(key) for key in DEFINITION_KEYS})
        if definition['display_order'] is None:
            definition['display_order'] = next_order
            next_order += 1
        definition['traveler_id'] = data['traveler_id']
        definition['source'] = SOURCE_ADMIN
        definition['created_at'] = now
        definition['updated_at'] = now

        fields.append(definition)
        application.admin_requested_fields = fields
        application.admin_field_counter = field_id
        created.append(definition)
    return created


def add_adhoc_fields(application_id, definitions, traveler_id=None):
    cleaned = clean_adhoc_definitions(definitions, traveler_id)

    with transaction.atomic():
        application = get_application(application_id, lock=True)
        created = mint_adhoc_fields(application, cleaned)
        application.save(update_fields=[
            'admin_requested_fields', 'admin_field_counter', 'updated_at'])

    logger.info(f"{len(created)} ad hoc field(s) added to "
                f"{application.application_number}: "
                f"{', '.join(str(f['id']) for f in created)}")
    return created


def remove_adhoc_field(application_id, field_id):
    """
    Drops the definition. Answers already given stay in the response map and
    the counter is not rolled back.
    """
    field_id = parse_field_id(field_id)
    if not isinstance(field_id, int) or field_id > 0:
        raise InvalidInput(f"{field_id} is not an ad hoc field id.")

    with transaction.atomic():
        application = get_application(application_id, lock=True)
        fields = application.admin_requested_fields or []
        remaining = [f for f in fields if f.get('id') != field_id]
        if len(remaining) == len(fields):
            raise NotFound(f"Ad hoc field {field_id} not found on "
                           f"{application.application_number}.")
        application.admin_requested_fields = remaining
        application.save(update_fields=['admin_requested_fields', 'updated_at'])

    logger.info(f"Ad hoc field {field_id} removed from {application.application_number}")
