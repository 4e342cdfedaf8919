from django.db import models


class Traveler(models.Model):
    """
    Travelers 2..N of an application. Each one owns its own answer map.
    """
    application = models.ForeignKey(
        'visas.VisaApplication',
        on_delete=models.CASCADE,
        related_name='travelers'
    )

    # Personal Information
    first_name = models.CharField(max_length=100)
    last_name = models.CharField(max_length=100)
    email = models.EmailField(blank=True)
    date_of_birth = models.DateField(null=True, blank=True)

    # Passport Details
    passport_nationality = models.CharField(
        max_length=100, blank=True, default='')
    passport_number = models.CharField(max_length=50, blank=True, default='')
    passport_expiry_date = models.DateField(null=True, blank=True)
    residence_country = models.CharField(
        max_length=100, blank=True, default='')
    has_schengen_visa = models.BooleanField(null=True, blank=True)

    place_of_birth = models.CharField(max_length=100, blank=True, default='')
    notes = models.TextField(blank=True, null=True)

    # {"<field id>": {"value": ..., "file_path": ..., "submitted_at": ...}}
    field_responses = models.JSONField(default=dict, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'customers_traveler'
        ordering = ['id']

    def __str__(self):
        return f"{self.first_name} {self.last_name}"
