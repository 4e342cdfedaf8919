import logging

from django.db import transaction
from django.utils import timezone
from django.utils.dateparse import parse_date

from visas.exceptions import InvalidInput, NotFound, StateConflict
from visas.fields import (
    HAS_SCHENGEN_VISA,
    PASSPORT_ATTRIBUTES,
    PASSPORT_EXPIRY_DATE,
    field_key,
    parse_yes_no,
)
from visas.forms import PassportForm, TravelerForm, clean_or_raise
from visas.models import VisaApplication

from .models import Traveler

logger = logging.getLogger(__name__)

# =========================================================
# 1. LOOKUPS
# =========================================================


def get_traveler(application, traveler_id, lock=False):
    """
    Travelers 2..N. ``None`` means Traveler 1 (the customer) and returns None.
    """
    if traveler_id is None:
        return None
    qs = Traveler.objects.filter(application=application, id=traveler_id)
    if lock:
        qs = qs.select_for_update()
    traveler = qs.first()
    if traveler is None:
        raise NotFound(
            f"Traveler {traveler_id} not found on application "
            f"{application.application_number}.")
    return traveler


def passport_record(application, traveler_id):
    """The object holding the passport attributes for one scope."""
    traveler = get_traveler(application, traveler_id)
    return traveler if traveler is not None else application.customer


def response_owner(application, traveler):
    """The object whose ``field_responses`` holds the answers for one scope."""
    return traveler if traveler is not None else application


# =========================================================
# 2. PASSPORT ATTRIBUTES <-> PSEUDO ANSWERS
# =========================================================

def _is_missing(value):
    return value is None or value == ''


def missing_passport_keys(record):
    return [key for key, attr in PASSPORT_ATTRIBUTES.items()
            if _is_missing(getattr(record, attr, None))]


def passport_value(record, key):
    """Attribute value rendered the way a submitted answer stores it."""
    value = getattr(record, PASSPORT_ATTRIBUTES[key], None)
    if _is_missing(value):
        return None
    if key == HAS_SCHENGEN_VISA:
        return 'Yes' if value else 'No'
    if key == PASSPORT_EXPIRY_DATE:
        return value.isoformat()
    return str(value)


def apply_passport_answers(record, answers):
    """
    Writes passport pseudo answers (keyed by reserved key) into the record.
    Answers for other keys are ignored. Returns the updated attribute names.
    """
    updated = []
    for key, attr in PASSPORT_ATTRIBUTES.items():
        answer = answers.get(field_key(key))
        if answer is None:
            continue
        raw = answer.get('value')

        if key == PASSPORT_EXPIRY_DATE:
            value = parse_date(raw) if raw else None
            if raw and value is None:
                raise InvalidInput(f"Invalid passport expiry date: {raw}")
        elif key == HAS_SCHENGEN_VISA:
            value = parse_yes_no(raw)
        else:
            value = (raw or '').strip()

        setattr(record, attr, value)
        updated.append(attr)

    if updated:
        record.save(update_fields=updated + ['updated_at'])
        logger.info(f"Passport data synced on {record.__class__.__name__} "
                    f"#{record.pk}: {', '.join(updated)}")
    return updated


def passport_answer(record, key, submitted_at=None):
    return {
        'value': passport_value(record, key),
        'file_path': None,
        'file_name': None,
        'file_size': None,
        'submitted_at': submitted_at,
    }


# =========================================================
# 3. CLIENT ACTIONS
# =========================================================

def update_passport(application_id, traveler_id, data):
    """
    Direct edit of passport attributes. The new values are mirrored into the
    scope's answer map so both representations stay in sync.
    """
    form = PassportForm(data=data)
    clean_or_raise(form)
    provided = form.provided_data()
    if not provided:
        raise InvalidInput("No passport data provided.")

    with transaction.atomic():
        try:
            application = VisaApplication.objects.select_for_update().select_related(
                'customer').get(id=application_id)
        except VisaApplication.DoesNotExist:
            raise NotFound(f"Visa application {application_id} not found.")

        traveler = get_traveler(application, traveler_id, lock=True)
        record = traveler if traveler is not None else application.customer

        application_fields = []
        if 'passport_nationality' in provided and traveler is None:
            # The customer's nationality is the application's
            application.nationality = provided.pop('passport_nationality') or ''
            application_fields.append('nationality')

        updated = []
        for attr, value in provided.items():
            if value is None and attr != 'has_schengen_visa' and attr != 'passport_expiry_date':
                value = ''
            setattr(record, attr, value)
            updated.append(attr)
        if updated:
            record.save(update_fields=updated + ['updated_at'])

        # Mirror into the answers
        owner = response_owner(application, traveler)
        now = timezone.now().isoformat()
        responses = dict(owner.field_responses or {})
        for key, attr in PASSPORT_ATTRIBUTES.items():
            if attr in provided:
                responses[field_key(key)] = passport_answer(record, key, now)
        owner.field_responses = responses
        if owner is application:
            application_fields.append('field_responses')
        else:
            owner.save(update_fields=['field_responses', 'updated_at'])
        if application_fields:
            application.save(update_fields=application_fields + ['updated_at'])

    logger.info(f"Passport updated on {application.application_number} "
                f"(traveler={traveler_id or 1})")
    return {
        'traveler_id': traveler_id,
        'passport_number': record.passport_number,
        'passport_expiry_date': (record.passport_expiry_date.isoformat()
                                 if record.passport_expiry_date else None),
        'residence_country': record.residence_country,
        'has_schengen_visa': record.has_schengen_visa,
        'missing': missing_passport_keys(record),
    }


def add_traveler(application_id, data):
    """Adds one of travelers 2..N while the application is still a draft."""
    cleaned = clean_or_raise(TravelerForm(data=data))
    passport_form = PassportForm(data=data)
    clean_or_raise(passport_form)
    passport = passport_form.provided_data()

    with transaction.atomic():
        try:
            application = VisaApplication.objects.select_for_update().get(
                id=application_id)
        except VisaApplication.DoesNotExist:
            raise NotFound(f"Visa application {application_id} not found.")

        if application.status != VisaApplication.DRAFT:
            raise StateConflict(
                "Travelers can only be added while the application is a draft.")

        if application.travelers.count() >= application.number_of_travelers - 1:
            raise InvalidInput(
                f"This application is for {application.number_of_travelers} "
                f"traveler(s); all of them are already registered.")

        traveler = Traveler(application=application, **cleaned)
        for attr, value in passport.items():
            if value is None and attr not in ('has_schengen_visa', 'passport_expiry_date'):
                value = ''
            setattr(traveler, attr, value)
        if not traveler.email:
            traveler.email = ''
        traveler.save()

    logger.info(f"Traveler #{traveler.id} added to {application.application_number}")
    return traveler
