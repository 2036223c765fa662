"""Dependencies gating features that need the background job store."""

from finwrk.app.core.errors import JobsUnavailableError
from finwrk.app.jobs.runner import get_job_runner


def require_reminder_features() -> None:
    if not get_job_runner().reminders_available:
        raise JobsUnavailableError("Reminders are unavailable: the job store cannot be reached")
