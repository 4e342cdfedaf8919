import logging
import os
import posixpath
import uuid

from django.conf import settings
from django.core.files.storage import default_storage

from customers.services import get_traveler

from ..exceptions import InvalidInput, NotFound
from ..fields import file_type_allowed, parse_field_id
from .adhoc import adhoc_fields_for_scope
from .lookups import get_application

logger = logging.getLogger(__name__)


def validate_file_upload(field, uploaded_file):
    if field.get('field_type') != 'upload':
        raise InvalidInput(f"{field.get('question')} does not accept files.")
    if field.get('is_active', True) is False:
        raise InvalidInput(f"{field.get('question')} is no longer active.")

    content_type = getattr(uploaded_file, 'content_type', None)
    if not file_type_allowed(field.get('allowed_file_types'), uploaded_file.name, content_type):
        raise InvalidInput(
            f"File type of {uploaded_file.name} is not allowed. Allowed types: "
            f"{', '.join(field['allowed_file_types'])}")

    max_mb, max_bytes = _max_upload_bytes(field)
    if uploaded_file.size > max_bytes:
        raise InvalidInput(f"File size exceeds maximum allowed size of {max_mb}MB")


def _max_upload_bytes(field):
    max_mb = field.get('max_file_size_mb') or settings.VISAS_DEFAULT_MAX_UPLOAD_MB
    return max_mb, max_mb * 1024 * 1024


def upload_prefix(application):
    return f"{settings.VISAS_UPLOAD_DIR}/{application.application_number}/"


def resolve_stored_upload(application, field, answer):
    """
    Checks that an upload answer points at a file this application stored,
    and takes its size from storage rather than from the client.
    """
    file_path = posixpath.normpath(answer['file_path'].replace('\\', '/'))
    if not file_path.startswith(upload_prefix(application)):
        raise InvalidInput(
            f"{answer['file_path']} was not uploaded for {application.application_number}.")
    if not default_storage.exists(file_path):
        raise InvalidInput(f"Uploaded file {answer['file_name']} was not found.")

    file_size = default_storage.size(file_path)
    max_mb, max_bytes = _max_upload_bytes(field)
    if file_size > max_bytes:
        raise InvalidInput(f"File size exceeds maximum allowed size of {max_mb}MB")
    return dict(answer, file_path=file_path, file_size=file_size)


def store_upload(application_id, field_id, uploaded_file, traveler_id=None):
    """
    Saves the file for a later answer. The returned dict is what the client
    sends back as the upload field's answer.
    """
    if uploaded_file is None:
        raise InvalidInput("No file uploaded.")
    field_id = parse_field_id(field_id)

    application = get_application(application_id)
    get_traveler(application, traveler_id)

    fields = list(application.visa_product.fields or [])
    fields += adhoc_fields_for_scope(application, traveler_id)
    field = next((f for f in fields if f.get('id') == field_id), None)
    if field is None:
        raise NotFound(f"Field {field_id} not found on {application.application_number}.")

    validate_file_upload(field, uploaded_file)

    ext = os.path.splitext(uploaded_file.name)[1].lower()
    name = f"{upload_prefix(application)}{uuid.uuid4().hex}{ext}"
    file_path = default_storage.save(name, uploaded_file)

    logger.info(f"Upload for field {field_id} of {application.application_number} "
                f"stored at {file_path}")
    return {
        'file_path': file_path,
        'file_name': uploaded_file.name,
        'file_size': uploaded_file.size,
        'mime_type': getattr(uploaded_file, 'content_type', None),
    }
