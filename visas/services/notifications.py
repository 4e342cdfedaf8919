import logging
from concurrent.futures import ThreadPoolExecutor

from django.core.mail import EmailMultiAlternatives
from django.template.loader import render_to_string
from django.utils.html import strip_tags
from django.db import connection, transaction
from django.conf import settings

logger = logging.getLogger(__name__)

notice_executor = ThreadPoolExecutor(
    max_workers=getattr(settings, 'VISAS_NOTIFICATION_WORKERS', 2),
    thread_name_prefix='visa-notice')

APPLICATION_SUBMITTED = 'application_submitted'
RESUBMISSION_REQUIRED = 'resubmission_required'
ADDITIONAL_INFO_REQUIRED = 'additional_info_required'
DOCUMENTS_SUBMITTED = 'documents_submitted'
STATUS_CHANGED = 'status_changed'
APPLICATION_COMPLETED = 'application_completed'

EVENT_SUBJECTS = {
    APPLICATION_SUBMITTED: "Application received: {number}",
    RESUBMISSION_REQUIRED: "Action required: corrections for {number}",
    ADDITIONAL_INFO_REQUIRED: "Action required: additional information for {number}",
    DOCUMENTS_SUBMITTED: "Documents received for {number}",
    STATUS_CHANGED: "Status update for {number}",
    APPLICATION_COMPLETED: "Your application {number} is complete",
}


def tracking_url(application):
    return f"{settings.FRONTEND_URL}/track/{application.application_number}"


def send_application_notice(application, event, message=None):
    """
    Renders and sends one notice. Never raises: a failed e-mail must not
    undo the workflow change that triggered it.
    """
    subject = EVENT_SUBJECTS[event].format(number=application.application_number)

    context = {
        'customer_name': application.customer.fullname,
        'application_number': application.application_number,
        'destination': application.destination_country,
        'status': application.client_status_label,
        'event': event,
        'message': message,
        'tracking_url': tracking_url(application),
    }

    try:
        html_content = render_to_string('emails/application_notice.html', context)
    except Exception as e:
        logger.error(f"Could not render notice {event} for "
                     f"{application.application_number}: {e}")
        return

    text_content = strip_tags(html_content)

    recipients = [application.customer.email]
    admin_email = getattr(settings, 'VISAS_ADMIN_NOTIFICATION_EMAIL', None)
    if admin_email:
        recipients.append(admin_email)  # Platform / back office

    for email in recipients:
        try:
            msg = EmailMultiAlternatives(
                subject=subject,
                body=text_content,
                from_email=settings.DEFAULT_FROM_EMAIL,
                to=[email],
            )
            msg.attach_alternative(html_content, "text/html")
            msg.send(fail_silently=False)
            logger.info(f"{event} notice for {application.application_number} "
                        f"sent to: {email}")
        except Exception as e:
            logger.error(f"{event} notice failed for {email}: {e}")


def _run_in_worker(job):
    try:
        job()
    finally:
        # Worker threads hold their own DB connection
        connection.close()


def dispatch_notice(job):
    """Hands a send job to the worker pool, or runs it inline when configured."""
    if getattr(settings, 'VISAS_SEND_NOTICES_INLINE', False):
        job()
    else:
        notice_executor.submit(_run_in_worker, job)


def notify_application_event(application, event, message=None):
    """
    Fire-and-forget: once the current transaction commits (immediately when
    there is none) the e-mail is queued on the worker pool. Nothing waits for
    it, and a failure is only logged.
    """
    if event not in EVENT_SUBJECTS:
        raise ValueError(f"Unknown notification event: {event}")

    application_id = application.pk

    def _send():
        from ..models import VisaApplication
        try:
            fresh = VisaApplication.objects.select_related('customer').filter(
                pk=application_id).first()
            if fresh is None:
                logger.error(f"Notice {event} dropped: application {application_id} is gone")
                return
            send_application_notice(fresh, event, message)
        except Exception:
            logger.exception(f"Notice {event} failed for application {application_id}")

    transaction.on_commit(lambda: dispatch_notice(_send))
