from typingdesk.models.admin import Admin
from typingdesk.models.student import Student
from typingdesk.models.batch import Batch
from typingdesk.models.test import Test
from typingdesk.models.shift import Shift
from typingdesk.models.result import Result

__all__ = ["Admin", "Student", "Batch", "Test", "Shift", "Result"]
