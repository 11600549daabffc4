import datetime as dt

from pydantic import BaseModel, Field

from .scheduling.models import BatchIntent, PlacementPolicy, PlanningMethod, ScheduleIntent


# ---- master data ----
class LineIn(BaseModel):
    line_id: str
    name: str
    daily_capacity: int = Field(gt=0)
    operator_count: int | None = Field(default=None, gt=0)
    is_active: bool = True

class LineOut(BaseModel):
    line_id: str
    name: str
    daily_capacity: int
    operator_count: int | None = None
    is_active: bool
    schedule_revision: int
    replanned_order_ids: list[str] = Field(default_factory=list)

class HolidayIn(BaseModel):
    date: dt.date
    name: str = ""
    line_ids: list[str] = Field(default_factory=list)
    is_recurring: bool = False

class HolidayOut(HolidayIn):
    id: int
    is_global: bool
    replanned_order_ids: list[str] = Field(default_factory=list)

class RampUpStepIn(BaseModel):
    day_number: int = Field(ge=1)
    efficiency: float = Field(ge=0)

class RampUpPlanIn(BaseModel):
    plan_id: str
    name: str
    steps: list[RampUpStepIn] = Field(default_factory=list)
    final_efficiency: float = Field(default=100.0, ge=0)

class OrderIn(BaseModel):
    order_id: str
    po_number: str
    order_quantity: int = Field(gt=0)
    style_id: str = ""
    smv: float = Field(default=0.0, ge=0)
    mo_count: int | None = Field(default=None, gt=0)
    cut_quantity: int | None = None
    issue_quantity: int | None = None

class OrderOut(BaseModel):
    order_id: str
    po_number: str
    order_quantity: int
    style_id: str
    status: str
    assigned_line_id: str | None = None
    plan_start_date: dt.date | None = None
    plan_end_date: dt.date | None = None
    planning_method: str | None = None
    ramp_up_plan_id: str | None = None
    daily_production: dict[dt.date, int] = Field(default_factory=dict)
    version: int


# ---- scheduling ----
class ScheduleIn(BaseModel):
    order_id: str
    line_id: str
    target_date: dt.date
    planning_method: PlanningMethod = PlanningMethod.FLAT
    ramp_up_plan_id: str | None = None
    placement_policy: PlacementPolicy | None = None
    roll_forward: bool = False
    accept_partial: bool = False

    def to_intent(self) -> ScheduleIntent:
        return ScheduleIntent(**self.model_dump())

class BatchIn(BaseModel):
    order_ids: list[str] = Field(min_length=1)
    line_id: str
    target_date: dt.date
    planning_method: PlanningMethod = PlanningMethod.FLAT
    ramp_up_plan_id: str | None = None
    policies: dict[str, PlacementPolicy] = Field(default_factory=dict)
    roll_forward: bool = False
    accept_partial: bool = False

    def to_intent(self) -> BatchIntent:
        data = self.model_dump()
        data["order_ids"] = tuple(data["order_ids"])
        return BatchIntent(**data)

class SplitIn(BaseModel):
    quantity: int = Field(gt=0)

class CommittedScheduleOut(BaseModel):
    order_id: str
    line_id: str | None = None
    plan_start_date: dt.date | None = None
    plan_end_date: dt.date | None = None
    daily_plan: dict[dt.date, int] = Field(default_factory=dict)
    complete: bool

class ScheduleOutcomeOut(BaseModel):
    orders: list[CommittedScheduleOut] = Field(default_factory=list)
    displaced_order_ids: list[str] = Field(default_factory=list)

class LineLoadRow(BaseModel):
    work_date: dt.date
    used: int
    capacity: int
    free: int
    util: float
    working: bool
