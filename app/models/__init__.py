from .user import User, Site
from .schedule import EmployeeSchedule
from .biometric import AttendanceUpload, BiometricRecord
from .leave import LeaveRequest
from .attendance import Attendance
from .attendance_point import AttendancePoint

__all__ = [
    "User",
    "Site",
    "EmployeeSchedule",
    "AttendanceUpload",
    "BiometricRecord",
    "LeaveRequest",
    "Attendance",
    "AttendancePoint",
]
