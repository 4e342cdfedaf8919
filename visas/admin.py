from django.contrib import admin
from customers.admin import PASSPORT_READONLY_FIELDS
from customers.models import Traveler
from .models import VisaProduct, ProcessingFee, VisaApplication

# --- 1. Product Configuration ---


class ProcessingFeeInline(admin.TabularInline):
    model = ProcessingFee
    extra = 1


@admin.register(VisaProduct)
class VisaProductAdmin(admin.ModelAdmin):
    list_display = ('country', 'product_name', 'total_amount',
                    'max_field_id', 'is_active')
    search_fields = ('country', 'product_name')
    list_filter = ('is_active',)
    # The question catalog is edited through the field API (ids must stay stable)
    readonly_fields = ('fields', 'max_field_id')
    inlines = [ProcessingFeeInline]

# --- 2. Applications (Client Data) ---


class TravelerInline(admin.TabularInline):
    model = Traveler
    extra = 0
    fields = ('first_name', 'last_name', 'passport_number',
              'passport_expiry_date', 'residence_country', 'has_schengen_visa')
    readonly_fields = PASSPORT_READONLY_FIELDS


@admin.register(VisaApplication)
class VisaApplicationAdmin(admin.ModelAdmin):
    list_display = ('application_number', 'customer', 'visa_product',
                    'number_of_travelers', 'status', 'created_at')
    list_filter = ('status', 'visa_product')
    search_fields = ('application_number', 'customer__email', 'customer__fullname')
    readonly_fields = ('application_number', 'field_responses',
                       'admin_requested_fields', 'admin_field_counter',
                       'resubmission_requests')
    inlines = [TravelerInline]
