"""
Application configuration and capacity policy.
"""
import os
from pathlib import Path
from dataclasses import dataclass, field


def _default_data_dir() -> Path:
    env_dir = os.getenv("DATA_DIR")
    if env_dir:
        return Path(env_dir)
    return Path("./data")


@dataclass
class AppConfig:
    """Application configuration with environment overrides."""

    # Paths
    data_dir: Path = field(default_factory=_default_data_dir)

    # Environment
    app_env: str = field(default_factory=lambda: os.getenv("APP_ENV", "dev"))

    # Capacity model
    default_daily_hours: float = field(default_factory=lambda: float(os.getenv("DEFAULT_DAILY_HOURS", "8")))
    reserve_share: float = field(default_factory=lambda: float(os.getenv("CONTINUOUS_RESERVE_SHARE", "0.5")))

    # Occupancy thresholds (percent of target hours)
    comfortable_threshold: float = field(default_factory=lambda: float(os.getenv("CAPACITY_COMFORTABLE_PCT", "80")))
    high_threshold: float = field(default_factory=lambda: float(os.getenv("CAPACITY_HIGH_PCT", "100")))

    # Forecast walk bound
    forecast_horizon_days: int = field(default_factory=lambda: int(os.getenv("FORECAST_HORIZON_DAYS", "365")))

    # Shape of a standard working day
    workday_start: str = "09:00"
    lunch_start: str = "12:00"
    lunch_end: str = "13:00"
    workday_end: str = "18:00"
    half_day_fraction: float = 0.5

    @property
    def snapshot_dir(self) -> Path:
        return self.data_dir / "snapshot"


# Global config instance
config = AppConfig()


@dataclass(frozen=True)
class CapacityPolicy:
    """
    Organisational policy knobs for the capacity engine.

    Thresholds are occupancy percentages: below ``comfortable_threshold`` is
    Normal, up to ``high_threshold`` is Alto, above it Sobrecarregado.
    ``reserve_share`` is the slice of daily capacity held for continuous work
    when no planned work is scheduled.
    """
    comfortable_threshold: float = field(default_factory=lambda: config.comfortable_threshold)
    high_threshold: float = field(default_factory=lambda: config.high_threshold)
    reserve_share: float = field(default_factory=lambda: config.reserve_share)
    forecast_horizon_days: int = field(default_factory=lambda: config.forecast_horizon_days)
    default_daily_hours: float = field(default_factory=lambda: config.default_daily_hours)
    split_shared_estimates: bool = False

    def __post_init__(self):
        if self.comfortable_threshold > self.high_threshold:
            raise ValueError(
                f"comfortable_threshold ({self.comfortable_threshold}) exceeds "
                f"high_threshold ({self.high_threshold})"
            )
        if not 0.0 <= self.reserve_share <= 1.0:
            raise ValueError(f"reserve_share must be within [0, 1], got {self.reserve_share}")
        if self.forecast_horizon_days <= 0:
            raise ValueError("forecast_horizon_days must be positive")
        if self.default_daily_hours <= 0:
            raise ValueError("default_daily_hours must be positive")


# Occupancy status labels
STATUS_NORMAL = "Normal"
STATUS_HIGH = "Alto"
STATUS_OVERLOADED = "Sobrecarregado"

# Workload tiers
TIER_PLANNED = "planned"
TIER_CONTINUOUS = "continuous"

PROJECT_TYPE_ALIASES = {
    "planned": TIER_PLANNED,
    "planejado": TIER_PLANNED,
    "continuous": TIER_CONTINUOUS,
    "continuo": TIER_CONTINUOUS,
    "contínuo": TIER_CONTINUOUS,
    "sustentacao": TIER_CONTINUOUS,
    "sustentação": TIER_CONTINUOUS,
}

# Terminal task statuses (compared case-insensitively)
DONE_STATUSES = {"done", "concluído", "concluido"}

# Absence workflow: only these remove capacity
APPROVED_ABSENCE_STATUSES = {"aprovada_gestao", "aprovada_rh", "finalizada_dp", "approved"}

# Day periods for holidays and absences
PERIOD_FULL_DAY = "integral"
PERIOD_MORNING = "manha"
PERIOD_AFTERNOON = "tarde"

PERIOD_ALIASES = {
    "integral": PERIOD_FULL_DAY,
    "full": PERIOD_FULL_DAY,
    "full_day": PERIOD_FULL_DAY,
    "whole_day": PERIOD_FULL_DAY,
    "manha": PERIOD_MORNING,
    "manhã": PERIOD_MORNING,
    "morning": PERIOD_MORNING,
    "tarde": PERIOD_AFTERNOON,
    "afternoon": PERIOD_AFTERNOON,
}

# Snapshot file names (without extension)
TABLE_FILES = {
    "collaborators": "collaborators",
    "projects": "projects",
    "project_members": "project_members",
    "tasks": "tasks",
    "timesheets": "timesheets",
    "holidays": "holidays",
    "absences": "absences",
}

# Required columns (hard fail if missing)
REQUIRED_COLUMNS = {
    "collaborators": ["collaborator_id"],
    "projects": ["project_id"],
    "project_members": ["project_id", "collaborator_id"],
    "tasks": ["task_id", "project_id"],
    "timesheets": ["collaborator_id", "date", "total_hours"],
    "holidays": ["date"],
    "absences": ["collaborator_id", "start_date"],
}

# Optional columns (added as nulls if missing)
OPTIONAL_COLUMNS = {
    "collaborators": ["name", "daily_available_hours", "monthly_available_hours", "active"],
    "projects": ["name", "project_type", "start_date", "estimated_delivery", "active"],
    "project_members": ["allocation_percentage", "start_date", "end_date"],
    "tasks": [
        "title",
        "status",
        "developer_id",
        "collaborator_ids",
        "estimated_hours",
        "scheduled_start",
        "actual_start",
        "estimated_delivery",
        "actual_delivery",
    ],
    "timesheets": ["entry_id", "task_id", "project_id"],
    "holidays": ["holiday_id", "name", "end_date", "type", "period", "end_time"],
    "absences": ["absence_id", "type", "end_date", "status", "period", "end_time"],
}

# Upstream field names mapped onto canonical columns
COLUMN_ALIASES = {
    "collaborators": {
        "id": "collaborator_id",
        "ID_Colaborador": "collaborator_id",
        "NomeColaborador": "name",
        "dailyAvailableHours": "daily_available_hours",
        "monthlyAvailableHours": "monthly_available_hours",
    },
    "projects": {
        "id": "project_id",
        "ID_Projeto": "project_id",
        "projectType": "project_type",
        "tipo_projeto": "project_type",
        "startDate": "start_date",
        "estimatedDelivery": "estimated_delivery",
    },
    "project_members": {
        "id_projeto": "project_id",
        "id_colaborador": "collaborator_id",
        "projectId": "project_id",
        "userId": "collaborator_id",
        "allocationPercentage": "allocation_percentage",
        "startDate": "start_date",
        "endDate": "end_date",
    },
    "tasks": {
        "id": "task_id",
        "projectId": "project_id",
        "developerId": "developer_id",
        "collaboratorIds": "collaborator_ids",
        "estimatedHours": "estimated_hours",
        "scheduledStart": "scheduled_start",
        "actualStart": "actual_start",
        "estimatedDelivery": "estimated_delivery",
        "actualDelivery": "actual_delivery",
    },
    "timesheets": {
        "id": "entry_id",
        "userId": "collaborator_id",
        "taskId": "task_id",
        "projectId": "project_id",
        "totalHours": "total_hours",
        "hours": "total_hours",
    },
    "holidays": {
        "id": "holiday_id",
        "nome": "name",
        "data": "date",
        "data_fim": "end_date",
        "endDate": "end_date",
        "tipo": "type",
        "periodo": "period",
        "hora_fim": "end_time",
        "endTime": "end_time",
    },
    "absences": {
        "id": "absence_id",
        "userId": "collaborator_id",
        "startDate": "start_date",
        "endDate": "end_date",
        "periodo": "period",
        "hora_fim": "end_time",
        "endTime": "end_time",
    },
}

# Formatting constants
FORMAT_HOURS = "{:,.1f}"
FORMAT_PERCENT = "{:.1f}%"
