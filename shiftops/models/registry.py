# shiftops/models/registry.py
# Import every model once so Base.metadata knows all tables
# (FK targets must be registered before the first flush / create_all).
from shiftops.models.base import Base  # noqa: F401
from shiftops.models.dealership import Dealership, User  # noqa: F401
from shiftops.models.setting import DealershipSetting  # noqa: F401
from shiftops.models.shift import Shift  # noqa: F401
from shiftops.models.task import Task, TaskAssignment  # noqa: F401
from shiftops.models.task_generator import TaskGenerator, TaskGeneratorAssignment  # noqa: F401
from shiftops.models.task_response import TaskResponse  # noqa: F401
