from django.db import models
from .visa_product import VisaProduct


class ProcessingFee(models.Model):
    """
    Speed options offered for a product. e.g. 'Standard' 5 days, 'Rush' 24 hours.
    """
    TIME_UNITS = (
        ('hours', 'Hours'),
        ('days', 'Days'),
    )

    visa_product = models.ForeignKey(
        VisaProduct,
        on_delete=models.CASCADE,
        related_name='processing_fees'
    )

    fee_type = models.CharField(
        max_length=50, help_text="e.g. Standard, Express, Rush")
    time_value = models.PositiveIntegerField(help_text="e.g. 24, 48, 3, 5")
    time_unit = models.CharField(
        max_length=10, choices=TIME_UNITS, default='days')
    amount = models.DecimalField(max_digits=10, decimal_places=2)

    class Meta:
        db_table = 'visas_processing_fee'
        ordering = ['amount']

    def __str__(self):
        return f"{self.fee_type} ({self.time_value} {self.time_unit})"
