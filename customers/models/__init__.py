# customers/
# ├── models/
# │   ├── customer.py   <-- The applicant (Traveler 1)
# │   └── traveler.py   <-- Travelers 2..N of one application

from .customer import Customer
from .traveler import Traveler
