import logging

from django.conf import settings
from django.db import transaction
from django.utils import timezone

from ..exceptions import InvalidInput, NotFound
from ..fields import PASSPORT_KEYS, is_passport_key, parse_field_id
from ..forms import FieldDefinitionForm, clean_field_definition
from ..models import VisaProduct

logger = logging.getLogger(__name__)

# Keys of a stored definition, in display order
DEFINITION_KEYS = tuple(FieldDefinitionForm.base_fields)

# =========================================================
# 0. HELPERS
# =========================================================


def _get_product(product_id, lock=False):
    qs = VisaProduct.objects.all()
    if lock:
        qs = qs.select_for_update()
    try:
        return qs.get(id=product_id)
    except VisaProduct.DoesNotExist:
        raise NotFound(f"Visa product {product_id} not found.")


def _creation_rank(field_id):
    """
    Orders ids the way they were handed out: passport keys, then catalog ids
    ascending, then ad hoc ids descending (-1, -2, ...).
    """
    if is_passport_key(field_id):
        return (0, PASSPORT_KEYS.index(field_id))
    if isinstance(field_id, int) and field_id > 0:
        return (1, field_id)
    if isinstance(field_id, int):
        return (2, -field_id)
    return (3, 0)


def sort_fields(fields):
    # Equal display orders fall back to creation order, not list position
    return sorted(fields, key=lambda f: (f.get('display_order') or 0,
                                         _creation_rank(f.get('id'))))


def _catalog_id(raw):
    field_id = parse_field_id(raw)
    if not isinstance(field_id, int) or field_id < 0:
        raise NotFound(f"Field {raw} is not a product catalog field.")
    return field_id


def next_field_id(product):
    existing = [f['id'] for f in product.fields or [] if isinstance(f.get('id'), int)]
    return max(product.max_field_id or 0, max(existing, default=0)) + 1


def _sync_high_water_mark(product):
    """Initialises max_field_id for catalogs created before it existed."""
    existing = [f['id'] for f in product.fields or [] if isinstance(f.get('id'), int)]
    highest = max(existing, default=0)
    if product.max_field_id is None or product.max_field_id < highest:
        product.max_field_id = highest
        return True
    return False


def _new_definition(product, cleaned):
    now = timezone.now().isoformat()
    field_id = next_field_id(product)
    definition = {'id': field_id}
    definition.update({key: cleaned.get(key) for key in DEFINITION_KEYS})
    if definition['display_order'] is None:
        definition['display_order'] = len(product.fields or [])
    definition['created_at'] = now
    definition['updated_at'] = now

    product.fields = list(product.fields or []) + [definition]
    product.max_field_id = field_id
    return definition


def _merge_definition(existing, patch):
    """
    Applies a partial update. The merged definition is validated as a whole,
    so switching to 'dropdown' keeps working only if options exist.
    """
    if not isinstance(patch, dict):
        raise InvalidInput("Field update must be an object.")
    patch = {k: v for k, v in patch.items() if k not in ('id', 'created_at', 'updated_at')}
    merged = {key: existing.get(key) for key in DEFINITION_KEYS}
    merged.update(patch)
    # Form fields treat None as "not provided"
    data = {k: v for k, v in merged.items() if v is not None}
    cleaned = clean_field_definition(data)

    updated = dict(existing)
    updated.update({key: cleaned.get(key) for key in DEFINITION_KEYS})
    if updated['display_order'] is None:
        updated['display_order'] = existing.get('display_order') or 0
    updated['updated_at'] = timezone.now().isoformat()
    return updated


def repair_reversed_order(definitions):
    """
    Some clients send a new batch with display orders counting down to zero
    (first item has the highest order). Such a batch is flipped back so the
    first submitted field is shown first.
    """
    if not getattr(settings, 'VISAS_REPAIR_REVERSED_FIELD_ORDER', True):
        return definitions
    if len(definitions) < 2:
        return definitions

    orders = [d.get('display_order') for d in definitions]
    if any(not isinstance(o, int) for o in orders):
        return definitions
    strictly_decreasing = all(a > b for a, b in zip(orders, orders[1:]))
    if not strictly_decreasing or orders[-1] != 0:
        return definitions

    highest = orders[0]
    logger.warning(f"Reversed display orders detected in a batch of "
                   f"{len(definitions)} fields; inverting them.")
    return [dict(d, display_order=highest - d['display_order']) for d in definitions]


# =========================================================
# 1. READ
# =========================================================

def list_fields(product_id, include_inactive=False):
    product = _get_product(product_id)

    if product.max_field_id is None and product.fields:
        with transaction.atomic():
            product = _get_product(product_id, lock=True)
            if _sync_high_water_mark(product):
                product.save(update_fields=['max_field_id', 'updated_at'])

    fields = product.fields or []
    if not include_inactive:
        fields = [f for f in fields if f.get('is_active', True) is not False]
    return sort_fields(fields)


def get_field(field_id, product_id=None):
    """
    Single definition lookup. Without product_id every product is searched.
    """
    field_id = _catalog_id(field_id)
    if product_id is not None:
        products = [_get_product(product_id)]
    else:
        products = VisaProduct.objects.order_by('id')

    for product in products:
        for field in product.fields or []:
            if field.get('id') == field_id:
                return product, field
    raise NotFound(f"Field {field_id} not found.")


# =========================================================
# 2. WRITE
# =========================================================

def add_field(product_id, definition):
    cleaned = clean_field_definition(definition)

    with transaction.atomic():
        product = _get_product(product_id, lock=True)
        _sync_high_water_mark(product)
        created = _new_definition(product, cleaned)
        product.fields = sort_fields(product.fields)
        product.save(update_fields=['fields', 'max_field_id', 'updated_at'])

    logger.info(f"Field #{created['id']} added to product #{product.id}")
    return created


def add_fields(product_id, definitions):
    """
    Batch save (all or nothing). Items carrying an existing ``id`` update that
    field; the others are created with fresh ids.
    """
    if not isinstance(definitions, list) or not definitions:
        raise InvalidInput("A non-empty list of field definitions is required.")

    new_items = [d for d in definitions if not (isinstance(d, dict) and d.get('id'))]
    updates = [d for d in definitions if isinstance(d, dict) and d.get('id')]
    new_items = repair_reversed_order(new_items)

    # Validate everything before touching the row
    cleaned_new = [clean_field_definition(d) for d in new_items]

    with transaction.atomic():
        product = _get_product(product_id, lock=True)
        _sync_high_water_mark(product)

        by_id = {f.get('id'): i for i, f in enumerate(product.fields or [])}
        fields = list(product.fields or [])
        updated = []
        for patch in updates:
            field_id = _catalog_id(patch['id'])
            if field_id not in by_id:
                raise NotFound(f"Field {field_id} not found on product #{product.id}.")
            index = by_id[field_id]
            fields[index] = _merge_definition(fields[index], patch)
            updated.append(fields[index])
        product.fields = fields

        created = [_new_definition(product, cleaned) for cleaned in cleaned_new]
        product.fields = sort_fields(product.fields)
        product.save(update_fields=['fields', 'max_field_id', 'updated_at'])

    logger.info(f"Batch on product #{product.id}: {len(created)} created, "
                f"{len(updated)} updated")
    return {'created': created, 'updated': updated}


def update_field(field_id, patch, product_id=None):
    field_id = _catalog_id(field_id)
    if product_id is None:
        product, _field = get_field(field_id)
        product_id = product.id

    with transaction.atomic():
        product = _get_product(product_id, lock=True)
        fields = list(product.fields or [])
        for index, field in enumerate(fields):
            if field.get('id') == field_id:
                break
        else:
            raise NotFound(f"Field {field_id} not found on product #{product_id}.")

        fields[index] = _merge_definition(field, patch)
        product.fields = sort_fields(fields)
        product.save(update_fields=['fields', 'updated_at'])

    logger.info(f"Field #{field_id} of product #{product_id} updated")
    return fields[index]


def delete_field(field_id, product_id=None):
    """
    Removes the definition only. Stored answers and the id high-water mark
    are left alone, so the id is never handed out again.
    """
    field_id = _catalog_id(field_id)
    if product_id is None:
        product, _field = get_field(field_id)
        product_id = product.id

    with transaction.atomic():
        product = _get_product(product_id, lock=True)
        _sync_high_water_mark(product)
        remaining = [f for f in product.fields or [] if f.get('id') != field_id]
        if len(remaining) == len(product.fields or []):
            raise NotFound(f"Field {field_id} not found on product #{product_id}.")
        product.fields = remaining
        product.save(update_fields=['fields', 'max_field_id', 'updated_at'])

    logger.info(f"Field #{field_id} deleted from product #{product_id}")
