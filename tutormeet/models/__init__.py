from tutormeet.models.meeting import AdHocMeeting
from tutormeet.models.tutor import Tutor

__all__ = ["Tutor", "AdHocMeeting"]
