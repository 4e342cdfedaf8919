# visas/
# ├── models/
# │   ├── __init__.py
# │   │
# │   ├── # 1. The Configuration (Admin Side)
# │   ├── visa_product.py       <-- "Morocco 90 days" + its question catalog
# │   ├── processing_fee.py     <-- "Standard", "Rush"
# │   │
# │   ├── # 2. The Application (Client Side)
# │   └── visa_application.py   <-- The main record: status, answers,
# │                                 ad hoc fields, resubmission requests

from .visa_product import VisaProduct
from .processing_fee import ProcessingFee
from .visa_application import VisaApplication
