from app.models.activity_log import ActivityLog  # noqa: F401
from app.models.assignment import Assignment, LabDivision, SubAssignment  # noqa: F401
from app.models.complaint import Complaint, ComplaintStatus  # noqa: F401
from app.models.course import Course, CourseStatus  # noqa: F401
from app.models.instructor import Instructor, InstructorCommitment  # noqa: F401
from app.models.period import PROGRAM_SEMESTERS, Program, Semester  # noqa: F401
from app.models.position import Position  # noqa: F401
from app.models.preference import Preference  # noqa: F401
from app.models.preference_form import PreferenceForm  # noqa: F401
from app.models.user import CHAIR_ROLES, FACULTY_ROLES, User, UserRole  # noqa: F401
