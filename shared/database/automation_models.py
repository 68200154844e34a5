from enum import Enum

from tortoise import fields, models


class AutomationRunStatus(str, Enum):
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELLED = "cancelled"


class AutomationRun(models.Model):
    """Finished run of an automation blueprint, written by the run sink."""

    id = fields.IntField(primary_key=True)
    run_id = fields.CharField(max_length=64, unique=True, db_index=True)
    automation_id = fields.CharField(max_length=255, db_index=True)
    status = fields.CharEnumField(
        AutomationRunStatus, max_length=20, default=AutomationRunStatus.RUNNING
    )
    success = fields.BooleanField(default=False)
    duration_ms = fields.FloatField(default=0.0)
    trigger_data = fields.JSONField(null=True)
    details_log = fields.JSONField(null=True)
    errors = fields.JSONField(null=True)
    started_at = fields.DatetimeField(null=True)
    finished_at = fields.DatetimeField(null=True)
    created_at = fields.DatetimeField(auto_now_add=True)

    class Meta:
        table = "automation_runs"
        ordering = ("-created_at", "id")

    def __str__(self) -> str:
        return f"AutomationRun<{self.run_id}:{self.status}>"


class PlatformCredential(models.Model):
    """
    Stored credential for one platform. Rows with ``automation_id`` set are
    scoped to that automation; rows without it are shared defaults.
    """

    id = fields.IntField(primary_key=True)
    automation_id = fields.CharField(max_length=255, null=True, db_index=True)
    platform_name = fields.CharField(max_length=100, db_index=True)
    # Stored as plain JSON here; encrypt at the application level before saving
    credentials = fields.JSONField()
    status = fields.CharField(max_length=20, default="active")  # active, revoked, error
    created_at = fields.DatetimeField(auto_now_add=True)
    updated_at = fields.DatetimeField(auto_now=True)

    class Meta:
        table = "platform_credentials"

    def __str__(self) -> str:
        return f"PlatformCredential<{self.platform_name}:{self.id}>"
