import json
import logging
from functools import wraps

from django.contrib.admin.views.decorators import staff_member_required
from django.contrib.auth.decorators import login_required
from django.core.exceptions import ObjectDoesNotExist, ValidationError
from django.http import JsonResponse
from django.views.decorators.http import require_GET, require_http_methods, require_POST

from customers.models import Customer
from customers.services import add_traveler, update_passport

from .exceptions import InvalidInput, NotFound, error_message
from .services import adhoc, applications, catalog, resubmission, responses, uploads, visibility
from .services.lookups import get_application

logger = logging.getLogger(__name__)

# ========================================================
# 0. HELPERS
# ========================================================


def json_api(view):
    """
    Turns service exceptions into the usual {"status": "error"} payloads.
    """
    @wraps(view)
    def wrapper(request, *args, **kwargs):
        try:
            return view(request, *args, **kwargs)
        except ObjectDoesNotExist as e:
            return JsonResponse({'status': 'error', 'message': error_message(e)}, status=404)
        except ValidationError as e:
            status = getattr(e, 'status_code', 400)
            return JsonResponse({'status': 'error', 'message': error_message(e)}, status=status)
        except ValueError as e:
            return JsonResponse({'status': 'error', 'message': str(e)}, status=400)
        except Exception as e:
            logger.exception(f"Unexpected error in {view.__name__}")
            return JsonResponse({'status': 'error', 'message': f"System Error: {str(e)}"}, status=500)
    return wrapper


def _json_body(request):
    """JSON body, or the 'data' form value for multipart posts."""
    if request.content_type == 'multipart/form-data' or request.content_type == 'application/x-www-form-urlencoded':
        raw = request.POST.get('data')
        if raw is None:
            return request.POST.dict()
    else:
        raw = request.body.decode('utf-8') if request.body else ''
    if not raw:
        return {}
    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        raise InvalidInput("Request body is not valid JSON.")


def _json_object(request):
    data = _json_body(request)
    if not isinstance(data, dict):
        raise InvalidInput("Request body must be a JSON object.")
    return data


def _traveler_id(value):
    if value in (None, '', 'null'):
        return None
    try:
        traveler_id = int(value)
    except (TypeError, ValueError):
        raise InvalidInput(f"Invalid traveler id: {value}")
    # Traveler 1 is the customer (application level)
    return traveler_id if traveler_id > 0 else None


def _flag(value):
    return str(value).lower() in ('1', 'true', 'yes')


def _application_data(app):
    return {
        'id': app.id,
        'application_number': app.application_number,
        'status': app.status,
        'status_label': app.client_status_label,
        'visa_product_id': app.visa_product_id,
        'destination_country': app.destination_country,
        'visa_type': app.visa_type,
        'number_of_travelers': app.number_of_travelers,
        'processing_type': app.processing_type,
        'government_fee': str(app.government_fee),
        'service_fee': str(app.service_fee),
        'processing_fee': str(app.processing_fee),
        'total_amount': str(app.total_amount),
        'submitted_at': app.submitted_at.isoformat() if app.submitted_at else None,
    }


def _own_application(request, app_id):
    """Clients only reach their own applications; staff reach all of them."""
    app = get_application(app_id)
    if not request.user.is_staff and app.customer.email.lower() != (request.user.email or '').lower():
        raise NotFound(f"Visa application {app_id} not found.")
    return app


# ========================================================
# 1. ADMIN: PRODUCT FIELD CATALOG
# ========================================================

@staff_member_required
@require_http_methods(["GET", "POST"])
@json_api
def product_fields_api(request, product_id):
    if request.method == 'GET':
        fields = catalog.list_fields(
            product_id, include_inactive=_flag(request.GET.get('include_inactive')))
        return JsonResponse({'status': 'success', 'count': len(fields), 'data': fields})

    data = _json_body(request)
    if isinstance(data, list):
        result = catalog.add_fields(product_id, data)
        return JsonResponse({
            'status': 'success',
            'message': f"{len(result['created'])} field(s) created, "
                       f"{len(result['updated'])} updated",
            'data': result,
        }, status=201)

    field = catalog.add_field(product_id, data)
    return JsonResponse({'status': 'success', 'message': 'Field created', 'data': field}, status=201)


@staff_member_required
@require_POST
@json_api
def product_field_update_api(request, field_id):
    data = _json_object(request)
    product_id = data.pop('product_id', None)
    field = catalog.update_field(field_id, data, product_id=product_id)
    return JsonResponse({'status': 'success', 'message': 'Field updated', 'data': field})


@staff_member_required
@require_POST
@json_api
def product_field_delete_api(request, field_id):
    data = _json_object(request)
    catalog.delete_field(field_id, product_id=data.get('product_id'))
    return JsonResponse({'status': 'success', 'message': 'Field deleted'})


# ========================================================
# 2. ADMIN: APPLICATION WORKFLOW
# ========================================================

@staff_member_required
@require_GET
@json_api
def admin_application_fields_api(request, app_id):
    fields = visibility.list_fields_with_responses(
        app_id, _traveler_id(request.GET.get('traveler_id')), view_mode=visibility.VIEW_ADMIN)
    return JsonResponse({'status': 'success', 'count': len(fields), 'data': fields})


@staff_member_required
@require_POST
@json_api
def request_resubmission_api(request, app_id):
    data = _json_body(request)
    items = data.get('requests', data) if isinstance(data, dict) else data
    created = resubmission.request_resubmission(app_id, items)
    return JsonResponse({
        'status': 'success',
        'message': 'Resubmission requested',
        'data': created,
    })


@staff_member_required
@require_GET
@json_api
def active_resubmission_api(request, app_id):
    active = resubmission.get_active_resubmission_requests(app_id)
    return JsonResponse({'status': 'success', 'count': len(active), 'data': active})


@staff_member_required
@require_POST
@json_api
def adhoc_fields_api(request, app_id):
    data = _json_body(request)
    if isinstance(data, list):
        definitions, traveler_id = data, None
    else:
        definitions = data.get('fields', [])
        traveler_id = _traveler_id(data.get('traveler_id'))
    created = adhoc.add_adhoc_fields(app_id, definitions, traveler_id=traveler_id)
    return JsonResponse({'status': 'success', 'data': created}, status=201)


@staff_member_required
@require_POST
@json_api
def adhoc_field_delete_api(request, app_id, field_id):
    adhoc.remove_adhoc_field(app_id, field_id)
    return JsonResponse({'status': 'success', 'message': 'Field removed'})


@staff_member_required
@require_POST
@json_api
def update_status_api(request, app_id):
    data = _json_object(request)
    app, changed = applications.update_status(app_id, data.get('status'), data.get('notes'))
    return JsonResponse({
        'status': 'success',
        'changed': changed,
        'data': _application_data(app),
    })


@staff_member_required
@require_POST
@json_api
def delete_application_api(request, app_id):
    applications.remove_application(app_id)
    return JsonResponse({'status': 'success', 'message': 'Application deleted'})


# ========================================================
# 3. CLIENT: APPLICATION WIZARD
# ========================================================

@login_required
@require_POST
@json_api
def create_application_api(request):
    data = _json_object(request)
    try:
        customer = Customer.objects.get(email__iexact=request.user.email)
    except Customer.DoesNotExist:
        raise NotFound("No customer profile for this account.")

    app = applications.create_application(
        customer_id=customer.id,
        visa_product_id=data.get('visa_product_id'),
        nationality=data.get('nationality', ''),
        visa_type=data.get('visa_type', ''),
        number_of_travelers=data.get('number_of_travelers', 1),
        destination_country=data.get('destination_country'),
    )
    return JsonResponse({'status': 'success', 'data': _application_data(app)}, status=201)


@login_required
@require_POST
@json_api
def add_traveler_api(request, app_id):
    _own_application(request, app_id)
    traveler = add_traveler(app_id, _json_object(request))
    return JsonResponse({
        'status': 'success',
        'data': {'id': traveler.id, 'first_name': traveler.first_name,
                 'last_name': traveler.last_name},
    }, status=201)


@login_required
@require_POST
@json_api
def select_processing_api(request, app_id):
    _own_application(request, app_id)
    data = _json_object(request)
    app = applications.select_processing(app_id, data.get('processing_type'))
    return JsonResponse({'status': 'success', 'data': _application_data(app)})


@login_required
@require_POST
@json_api
def submit_application_api(request, app_id):
    _own_application(request, app_id)
    app = applications.submit_application(app_id)
    return JsonResponse({
        'status': 'success',
        'message': 'Application submitted',
        'data': _application_data(app),
    })


@login_required
@require_GET
@json_api
def application_fields_api(request, app_id):
    app = _own_application(request, app_id)
    fields = visibility.list_fields_with_responses(
        app_id, _traveler_id(request.GET.get('traveler_id')), view_mode=visibility.VIEW_USER)
    return JsonResponse({
        'status': 'success',
        'application_status': app.status,
        'count': len(fields),
        'data': fields,
    })


@login_required
@require_http_methods(["GET", "POST"])
@json_api
def application_responses_api(request, app_id):
    _own_application(request, app_id)

    if request.method == 'GET':
        items = responses.get_responses(app_id, _traveler_id(request.GET.get('traveler_id')))
        return JsonResponse({'status': 'success', 'count': len(items), 'data': items})

    data = _json_object(request)
    result = responses.submit_responses(
        app_id, data.get('responses'), traveler_id=_traveler_id(data.get('traveler_id')))
    message = 'Responses saved'
    if result['skipped']:
        message = f"Responses saved; {len(result['skipped'])} field(s) were not editable and were ignored"
    return JsonResponse({'status': 'success', 'message': message, **result})


@login_required
@require_POST
@json_api
def upload_file_api(request, app_id):
    _own_application(request, app_id)
    field_id = request.GET.get('field_id') or request.POST.get('field_id')
    if not field_id:
        raise InvalidInput("field_id is required.")
    stored = uploads.store_upload(
        app_id, field_id, request.FILES.get('file'),
        traveler_id=_traveler_id(request.GET.get('traveler_id') or request.POST.get('traveler_id')))
    return JsonResponse({'status': 'success', 'data': stored}, status=201)


@login_required
@require_POST
@json_api
def passport_api(request, app_id):
    _own_application(request, app_id)
    data = _json_object(request)
    traveler_id = _traveler_id(data.pop('traveler_id', None))
    passport = update_passport(app_id, traveler_id, data)
    return JsonResponse({'status': 'success', 'data': passport})
