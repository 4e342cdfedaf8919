from django.urls import path
from ..views import (
    add_traveler_api,
    application_fields_api,
    application_responses_api,
    create_application_api,
    passport_api,
    select_processing_api,
    submit_application_api,
    upload_file_api,
)


urlpatterns = [
    # --- WIZARD ---
    path('api/applications/', create_application_api,
         name='api_application_create'),
    path('api/applications/<int:app_id>/travelers/', add_traveler_api,
         name='api_application_travelers'),
    path('api/applications/<int:app_id>/processing/', select_processing_api,
         name='api_application_processing'),
    path('api/applications/<int:app_id>/submit/', submit_application_api,
         name='api_application_submit'),

    # --- DYNAMIC FORM ---
    # Fields visible to the customer (or ?traveler_id=)
    path('api/applications/<int:app_id>/fields/', application_fields_api,
         name='api_application_fields'),
    # GET: stored answers | POST: submit answers
    path('api/applications/<int:app_id>/responses/', application_responses_api,
         name='api_application_responses'),
    # Multipart "file" + ?field_id=
    path('api/applications/<int:app_id>/upload/', upload_file_api,
         name='api_application_upload'),
    path('api/applications/<int:app_id>/passport/', passport_api,
         name='api_application_passport'),
]
