from finwrk.app.db.base_class import Base

# Import models to register metadata for Base.metadata.create_all in tests
from finwrk.app.models.user import User  # noqa: F401
from finwrk.app.models.client import Client  # noqa: F401
from finwrk.app.models.invoice import Invoice  # noqa: F401
from finwrk.app.models.payment import Payment  # noqa: F401
from finwrk.app.models.recurring_template import RecurringTemplate  # noqa: F401
from finwrk.app.models.reminder import Reminder  # noqa: F401
from finwrk.app.models.notification import Notification, NotificationToast  # noqa: F401
