from .circle import Circle, CircleMember, CircleRole
from .user_alignment import UserAlignment, UserAlignmentSummary
from .circle_alignment import CircleAlignmentDay, CircleAlignmentSummary

__all__ = [
    "Circle",
    "CircleMember",
    "CircleRole",
    "UserAlignment",
    "UserAlignmentSummary",
    "CircleAlignmentDay",
    "CircleAlignmentSummary",
]
