from django.contrib import admin
from visas.fields import PASSPORT_ATTRIBUTES
from .models import Customer

# Passport data is changed through the passport API, which keeps the stored
# answers in step with these columns
PASSPORT_READONLY_FIELDS = tuple(PASSPORT_ATTRIBUTES.values())


@admin.register(Customer)
class CustomerAdmin(admin.ModelAdmin):
    list_display = ('fullname', 'email', 'phone', 'status', 'passport_number')
    search_fields = ('fullname', 'email', 'passport_number')
    list_filter = ('status',)
    readonly_fields = PASSPORT_READONLY_FIELDS
