import random
import string
from django.db import models
from django.utils import timezone
from .visa_product import VisaProduct


def generate_application_number():
    suffix = ''.join(random.choices(
        string.ascii_uppercase + string.digits, k=6))
    return f"VAP-{timezone.now().year}-{suffix}"


class VisaApplication(models.Model):
    # --- Status Logic (Single Source of Truth) ---
    DRAFT = 'draft'
    SUBMITTED = 'submitted'
    ADDITIONAL_INFO_REQUIRED = 'additional_info_required'
    RESUBMISSION = 'resubmission'
    PROCESSING = 'processing'
    UNDER_REVIEW = 'under_review'
    APPROVED = 'approved'
    REJECTED = 'rejected'
    CANCELLED = 'cancelled'
    COMPLETED = 'completed'

    STATUS_CHOICES = (
        (DRAFT, 'Draft'),
        (SUBMITTED, 'Submitted'),
        (ADDITIONAL_INFO_REQUIRED, 'Additional Info Required'),
        (RESUBMISSION, 'Resubmission Requested'),
        (PROCESSING, 'Processing'),
        (UNDER_REVIEW, 'Under Review'),
        (APPROVED, 'Approved'),
        (REJECTED, 'Rejected'),
        (CANCELLED, 'Cancelled'),
        (COMPLETED, 'Completed'),
    )

    # The customer is waiting on us, or we are waiting on the customer
    IN_PROCESS_STATUSES = (
        SUBMITTED, ADDITIONAL_INFO_REQUIRED, RESUBMISSION, PROCESSING, UNDER_REVIEW)
    # The customer owes us corrections
    RESUBMISSION_STATUSES = (RESUBMISSION, ADDITIONAL_INFO_REQUIRED)
    TERMINAL_STATUSES = (APPROVED, REJECTED, CANCELLED, COMPLETED)

    TARGET_APPLICATION = 'application'
    TARGET_TRAVELER = 'traveler'
    TARGET_CHOICES = (
        (TARGET_APPLICATION, 'Application'),
        (TARGET_TRAVELER, 'Traveler'),
    )

    # 1. Identity
    application_number = models.CharField(
        max_length=20, unique=True, db_index=True,
        default=generate_application_number, editable=False
    )

    # 2. Links
    customer = models.ForeignKey(
        'customers.Customer',
        on_delete=models.CASCADE,
        related_name='applications'
    )

    visa_product = models.ForeignKey(
        VisaProduct,
        on_delete=models.PROTECT,
        related_name='applications'
    )

    # 3. Trip Info
    nationality = models.CharField(max_length=100)
    destination_country = models.CharField(max_length=100)
    visa_type = models.CharField(
        max_length=50, help_text="e.g. 90-single, 180-multiple")
    number_of_travelers = models.PositiveIntegerField(default=1)

    # 4. Finance
    processing_type = models.CharField(max_length=50, blank=True, null=True)
    processing_fee = models.DecimalField(
        max_digits=10, decimal_places=2, default=0)
    government_fee = models.DecimalField(
        max_digits=10, decimal_places=2, default=0)
    service_fee = models.DecimalField(
        max_digits=10, decimal_places=2, default=0)
    total_amount = models.DecimalField(
        max_digits=10, decimal_places=2, default=0)

    # 5. Status Tracking
    status = models.CharField(
        max_length=30, choices=STATUS_CHOICES, default=DRAFT)
    submitted_at = models.DateTimeField(null=True, blank=True)
    approved_at = models.DateTimeField(null=True, blank=True)
    rejection_reason = models.TextField(blank=True, null=True)
    notes = models.TextField(blank=True, null=True)

    # 6. Dynamic Data
    # Traveler 1 (the customer) answers, keyed by field id
    field_responses = models.JSONField(default=dict, blank=True)

    # Ad hoc questions added by an admin. Negative ids.
    admin_requested_fields = models.JSONField(default=list, blank=True)
    # Most negative ad hoc id handed out. Never increases.
    admin_field_counter = models.IntegerField(default=0)

    # Open / fulfilled correction requests
    resubmission_requests = models.JSONField(default=list, blank=True)

    # Legacy single-request representation
    resubmission_target = models.CharField(
        max_length=20, choices=TARGET_CHOICES, blank=True, null=True)
    resubmission_traveler_id = models.IntegerField(null=True, blank=True)
    requested_field_ids = models.JSONField(null=True, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'visas_application'
        ordering = ['-created_at']

    def __str__(self):
        return f"{self.application_number} ({self.status})"

    # --- UI Helpers ---

    @property
    def client_status_label(self):
        """What the Client sees"""
        labels = {
            self.DRAFT: 'Draft',
            self.SUBMITTED: 'Submitted',
            self.ADDITIONAL_INFO_REQUIRED: 'Action Required: Additional Info',
            self.RESUBMISSION: 'Action Required: Corrections Requested',
            self.PROCESSING: 'In Progress',
            self.UNDER_REVIEW: 'In Progress',
            self.APPROVED: 'Approved',
            self.REJECTED: 'Rejected',
            self.CANCELLED: 'Cancelled',
            self.COMPLETED: 'Completed',
        }
        return labels.get(self.status, self.status)

    @property
    def has_legacy_request(self):
        return bool(self.resubmission_target)

    def clear_resubmission(self):
        """Full workflow reset: drops every request and the legacy fields."""
        self.resubmission_requests = []
        self.resubmission_target = None
        self.resubmission_traveler_id = None
        self.requested_field_ids = None
