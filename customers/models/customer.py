from django.db import models


class Customer(models.Model):
    """
    The applicant. Also acts as Traveler 1 of every application they own:
    its passport data lives here, not on a Traveler row.
    """
    STATUS_CHOICES = (
        ('Active', 'Active'),
        ('Inactive', 'Inactive'),
        ('Suspended', 'Suspended'),
    )

    fullname = models.CharField(max_length=150)
    email = models.EmailField(unique=True)
    phone = models.CharField(max_length=30, blank=True)
    status = models.CharField(
        max_length=20, choices=STATUS_CHOICES, default='Active')

    # Passport attributes (mirrored by the "_passport_*" pseudo answers)
    passport_number = models.CharField(max_length=50, blank=True, default='')
    passport_expiry_date = models.DateField(null=True, blank=True)
    residence_country = models.CharField(
        max_length=100, blank=True, default='')
    # Null means "not answered yet", which is different from "No"
    has_schengen_visa = models.BooleanField(null=True, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'customers_customer'

    def __str__(self):
        return f"{self.fullname} <{self.email}>"
