"""
Celery configuration for the CRM automation workers.

Loaded by `celery_app.config_from_object("celeryconfig")` in app/tasks/__init__.py.
All broker/result-backend URLs come from environment variables,
defaulting to localhost for local dev.
"""

import os

from celery.schedules import crontab

# ═══════════════════════════════════════════════════════════
#  Broker & Result Backend
# ═══════════════════════════════════════════════════════════

broker_url = os.getenv("CELERY_BROKER_URL", "redis://localhost:6379/0")
result_backend = os.getenv("CELERY_RESULT_BACKEND", "redis://localhost:6379/1")

# ═══════════════════════════════════════════════════════════
#  Serialization — JSON only
# ═══════════════════════════════════════════════════════════

task_serializer = "json"
result_serializer = "json"
accept_content = ["json"]

# ═══════════════════════════════════════════════════════════
#  Timezone — beat fires in the agency's local time
# ═══════════════════════════════════════════════════════════

timezone = os.getenv("AUTOMATION_TIMEZONE", "Asia/Kolkata")
enable_utc = True

# ═══════════════════════════════════════════════════════════
#  Task Execution
# ═══════════════════════════════════════════════════════════

# Acknowledge after completion so a crashed worker re-delivers the run
task_acks_late = True
task_reject_on_worker_lost = True
worker_prefetch_multiplier = 1

# A run sends one SMTP / HTTP request per recipient
task_soft_time_limit = 900    # 15 min: raises SoftTimeLimitExceeded
task_time_limit = 960         # 16 min: hard kill

task_default_retry_delay = 60
task_max_retries = 3

result_expires = 86400

worker_max_tasks_per_child = 200
worker_send_task_events = False
task_send_sent_event = False

# ═══════════════════════════════════════════════════════════
#  Task Routes
# ═══════════════════════════════════════════════════════════
#   celery -A app.tasks worker -Q automation,default

task_routes = {
    "app.tasks.automation_tasks.run_daily_automation": {"queue": "automation"},
    "app.tasks.automation_tasks.*": {"queue": "default"},
}

task_default_queue = "default"

# ═══════════════════════════════════════════════════════════
#  Beat Schedule
# ═══════════════════════════════════════════════════════════

_run_hour = int(os.getenv("AUTOMATION_RUN_HOUR", "9"))

beat_schedule = {
    "daily-client-automation": {
        "task": "app.tasks.automation_tasks.run_daily_automation",
        "schedule": crontab(hour=_run_hour, minute=0),
    },
    "expire-past-due-policies": {
        "task": "app.tasks.automation_tasks.expire_policies",
        "schedule": crontab(hour=0, minute=30),
    },
    "weekly-automation-summary": {
        "task": "app.tasks.automation_tasks.weekly_summary",
        "schedule": crontab(hour=10, minute=0, day_of_week="mon"),
    },
}
