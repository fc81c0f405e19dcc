# shopbook/routers/cron_routes.py

from fastapi import APIRouter, Depends

from shopbook.deps import get_reminder_scheduler, require_cron_secret
from shopbook.reminders import ReminderScheduler
from shopbook.schemas import ReminderRunResponse

router = APIRouter(
    prefix="/cron",
    tags=["cron"],
    dependencies=[Depends(require_cron_secret)],
)


# GET for the platform scheduler, POST for manual runs
@router.api_route("/send-reminders", methods=["GET", "POST"], response_model=ReminderRunResponse)
def send_reminders(scheduler: ReminderScheduler = Depends(get_reminder_scheduler)):
    result = scheduler.run()
    return ReminderRunResponse.model_validate(result, from_attributes=True)
