from ..exceptions import NotFound
from ..models import VisaApplication


def get_application(application_id, lock=False):
    """
    Loads the aggregate. With lock=True the row is held until the surrounding
    transaction ends (must be called inside transaction.atomic()).
    """
    qs = VisaApplication.objects.select_related('visa_product', 'customer')
    if lock:
        qs = qs.select_for_update(of=('self',))
    try:
        return qs.get(id=application_id)
    except VisaApplication.DoesNotExist:
        raise NotFound(f"Visa application {application_id} not found.")
