# Models package — import all models here so Alembic can discover them.

from invoicely.models.user import User  # noqa: F401
from invoicely.models.tenant import Tenant  # noqa: F401
from invoicely.models.plan import Plan  # noqa: F401
from invoicely.models.subscription import Subscription  # noqa: F401
from invoicely.models.customer import Customer, Item  # noqa: F401
from invoicely.models.invoice import Invoice, InvoiceItem  # noqa: F401
from invoicely.models.payment import Payment  # noqa: F401
from invoicely.models.receipt import Receipt  # noqa: F401
from invoicely.models.tax import Tax  # noqa: F401
from invoicely.models.audit import AuditLog  # noqa: F401
