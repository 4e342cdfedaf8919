from django.urls import path
from ..views import (
    active_resubmission_api,
    adhoc_field_delete_api,
    adhoc_fields_api,
    admin_application_fields_api,
    delete_application_api,
    product_field_delete_api,
    product_field_update_api,
    product_fields_api,
    request_resubmission_api,
    update_status_api,
)


urlpatterns = [
    # --- PRODUCT FIELD CATALOG ---
    # GET: list (?include_inactive=true) | POST: one field, or a list (batch)
    path("api/visa-products/<int:product_id>/fields/",
         product_fields_api, name="api_product_fields"),
    path("api/visa-product-fields/<int:field_id>/update/",
         product_field_update_api, name="api_product_field_update"),
    path("api/visa-product-fields/<int:field_id>/delete/",
         product_field_delete_api, name="api_product_field_delete"),

    # --- APPLICATION WORKFLOW ---
    path("api/visa-applications/<int:app_id>/fields/",
         admin_application_fields_api, name="api_admin_application_fields"),
    path("api/visa-applications/<int:app_id>/resubmission/",
         request_resubmission_api, name="api_request_resubmission"),
    path("api/visa-applications/<int:app_id>/resubmission/active/",
         active_resubmission_api, name="api_active_resubmission"),
    path("api/visa-applications/<int:app_id>/adhoc-fields/",
         adhoc_fields_api, name="api_adhoc_fields"),
    # Ad hoc ids are negative, so the id is taken as a string
    path("api/visa-applications/<int:app_id>/adhoc-fields/<str:field_id>/delete/",
         adhoc_field_delete_api, name="api_adhoc_field_delete"),
    path("api/visa-applications/<int:app_id>/status/",
         update_status_api, name="api_application_status"),
    path("api/visa-applications/<int:app_id>/delete/",
         delete_application_api, name="api_application_delete"),
]
