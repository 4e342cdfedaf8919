import logging

from django.db import transaction
from django.utils import timezone

from customers.models import Customer

from ..exceptions import InvalidInput, NotFound, StateConflict
from ..forms import SelectProcessingForm, UpdateStatusForm, clean_or_raise
from ..models import VisaApplication, VisaProduct
from . import notifications
from .lookups import get_application

logger = logging.getLogger(__name__)

A = VisaApplication

# Allowed admin moves. In-process states may jump to any in-process or final state.
ALLOWED_TRANSITIONS = {
    A.DRAFT: {A.SUBMITTED, A.CANCELLED},
    A.APPROVED: {A.COMPLETED},
    A.REJECTED: set(),
    A.CANCELLED: set(),
    A.COMPLETED: set(),
}
for _status in A.IN_PROCESS_STATUSES:
    ALLOWED_TRANSITIONS[_status] = set(A.IN_PROCESS_STATUSES) | set(A.TERMINAL_STATUSES)

STATUS_EVENTS = {
    A.SUBMITTED: notifications.APPLICATION_SUBMITTED,
    A.RESUBMISSION: notifications.RESUBMISSION_REQUIRED,
    A.ADDITIONAL_INFO_REQUIRED: notifications.ADDITIONAL_INFO_REQUIRED,
    A.COMPLETED: notifications.APPLICATION_COMPLETED,
}


def can_transition(current, target):
    return target in ALLOWED_TRANSITIONS.get(current, set())


# =========================================================
# 1. CLIENT STEPS (draft)
# =========================================================

def create_application(customer_id, visa_product_id, nationality, visa_type,
                       number_of_travelers=1, destination_country=None):
    """
    Step 1 (Trip Info). Fees are per traveler.
    """
    try:
        number_of_travelers = int(number_of_travelers)
    except (TypeError, ValueError):
        raise InvalidInput("number_of_travelers must be a whole number.")
    if number_of_travelers < 1:
        raise InvalidInput("An application needs at least one traveler.")

    try:
        customer = Customer.objects.get(id=customer_id)
    except Customer.DoesNotExist:
        raise NotFound(f"Customer {customer_id} not found.")
    try:
        product = VisaProduct.objects.get(id=visa_product_id)
    except VisaProduct.DoesNotExist:
        raise NotFound(f"Visa product {visa_product_id} not found.")

    if not product.is_active:
        raise InvalidInput(f"{product} is not available.")
    if product.visa_types and visa_type not in product.visa_types:
        raise InvalidInput(
            f"Visa type '{visa_type}' is not offered for {product}. "
            f"Options: {', '.join(product.visa_types)}")

    government_fee = product.govt_fee * number_of_travelers
    service_fee = product.service_fee * number_of_travelers

    application = VisaApplication.objects.create(
        customer=customer,
        visa_product=product,
        nationality=nationality,
        destination_country=destination_country or product.country,
        visa_type=visa_type,
        number_of_travelers=number_of_travelers,
        government_fee=government_fee,
        service_fee=service_fee,
        total_amount=government_fee + service_fee,
        status=VisaApplication.DRAFT,
    )
    logger.info(f"Application {application.application_number} created for {customer.email}")
    return application


def select_processing(application_id, processing_type):
    cleaned = clean_or_raise(SelectProcessingForm(data={'processing_type': processing_type}))
    processing_type = cleaned['processing_type'].strip()

    with transaction.atomic():
        application = get_application(application_id, lock=True)
        if application.status != VisaApplication.DRAFT:
            raise StateConflict("Processing speed can only be changed on a draft.")

        fee = application.visa_product.processing_fees.filter(
            fee_type__iexact=processing_type).first()
        if fee is None:
            raise InvalidInput(
                f"Processing type '{processing_type}' is not offered for "
                f"{application.visa_product}.")

        application.processing_type = fee.fee_type
        application.processing_fee = fee.amount
        application.total_amount = (
            application.government_fee + application.service_fee + fee.amount)
        application.save(update_fields=[
            'processing_type', 'processing_fee', 'total_amount', 'updated_at'])

    return application


def submit_application(application_id):
    """
    Final step of the wizard: draft -> submitted.
    """
    with transaction.atomic():
        application = get_application(application_id, lock=True)
        if application.status != VisaApplication.DRAFT:
            raise StateConflict(
                f"Only draft applications can be submitted (current: {application.status}).")
        if not application.processing_type:
            raise InvalidInput("Select a processing speed before submitting.")

        expected = application.number_of_travelers - 1
        registered = application.travelers.count()
        if registered < expected:
            raise InvalidInput(
                f"{expected} additional traveler(s) expected, {registered} registered.")

        application.status = VisaApplication.SUBMITTED
        application.submitted_at = timezone.now()
        application.save(update_fields=['status', 'submitted_at', 'updated_at'])
        notifications.notify_application_event(
            application, notifications.APPLICATION_SUBMITTED)

    logger.info(f"Application {application.application_number} submitted")
    return application


def remove_application(application_id):
    with transaction.atomic():
        application = get_application(application_id, lock=True)
        if application.status != VisaApplication.DRAFT:
            raise StateConflict(
                f"Only draft applications can be deleted (current: {application.status}).")
        number = application.application_number
        application.delete()

    logger.info(f"Draft application {number} deleted")


# =========================================================
# 2. ADMIN (Kanban)
# =========================================================

def update_status(application_id, status, notes=None):
    """
    Moves the application along the workflow. Writing the current status is a
    no-op (nothing saved, nobody notified). Leaving the correction states by
    hand drops every open request.
    """
    cleaned = clean_or_raise(UpdateStatusForm(data={'status': status, 'notes': notes or ''}))
    status = cleaned['status']
    notes = cleaned.get('notes') or None

    with transaction.atomic():
        application = get_application(application_id, lock=True)
        previous = application.status

        if status == previous:
            return application, False

        if not can_transition(previous, status):
            raise StateConflict(f"Cannot move an application from '{previous}' to '{status}'.")

        if (previous in VisaApplication.RESUBMISSION_STATUSES
                and status not in VisaApplication.RESUBMISSION_STATUSES):
            application.clear_resubmission()

        now = timezone.now()
        application.status = status
        if status == VisaApplication.SUBMITTED and not application.submitted_at:
            application.submitted_at = now
        elif status == VisaApplication.APPROVED:
            application.approved_at = now
        elif status == VisaApplication.REJECTED:
            application.rejection_reason = notes
        if notes and status != VisaApplication.REJECTED:
            application.notes = notes
        application.save()

        notifications.notify_application_event(
            application,
            STATUS_EVENTS.get(status, notifications.STATUS_CHANGED),
            message=notes)

    logger.info(f"{application.application_number}: {previous} -> {status}")
    return application, True
