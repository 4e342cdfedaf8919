from django.db import models


class VisaProduct(models.Model):
    """
    The Country or Visa Product. e.g. "Morocco - 90 Days Tourist".
    Owns the ordered catalog of questions asked for every application.
    """
    country = models.CharField(max_length=100)
    product_name = models.CharField(max_length=150)

    duration = models.PositiveIntegerField(
        default=0, help_text="Stay duration in days")
    validity = models.PositiveIntegerField(
        default=0, help_text="Visa validity in days")

    # Allowed visa-type codes e.g. ["90-single", "180-multiple"]. Empty = any.
    visa_types = models.JSONField(default=list, blank=True)

    # Pricing (per traveler)
    govt_fee = models.DecimalField(
        max_digits=10, decimal_places=2, default=0, help_text="Embassy Fee")
    service_fee = models.DecimalField(
        max_digits=10, decimal_places=2, default=0, help_text="Our Fee")
    total_amount = models.DecimalField(
        max_digits=10, decimal_places=2, default=0)

    is_active = models.BooleanField(default=True)

    # The question catalog. A list of field definitions (see visas.fields).
    fields = models.JSONField(default=list, blank=True)

    # High-water mark of field ids. Never decreases, so ids are never reused.
    max_field_id = models.IntegerField(null=True, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'visas_product'

    def __str__(self):
        return f"{self.country} - {self.product_name}"
