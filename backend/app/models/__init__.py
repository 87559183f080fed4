from app.models.academic_session import AcademicSession  # noqa: F401
from app.models.activity_log import ActivityLog  # noqa: F401
from app.models.batch import Batch, Shift  # noqa: F401
from app.models.classroom import Classroom, RoomType  # noqa: F401
from app.models.course_offering import CourseOffering, CourseType  # noqa: F401
from app.models.course_schedule import ClassType, CourseSchedule, ScheduleStatus  # noqa: F401
from app.models.schedule_proposal import ProposalStatus, ScheduleProposal  # noqa: F401
from app.models.teacher import Teacher  # noqa: F401
