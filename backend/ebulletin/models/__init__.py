from ebulletin.db.base import Base  # noqa: F401

from .admin import AdminAccount, AdminProfile  # noqa: F401
from .student import StudentAccount, StudentProfile  # noqa: F401
from .category import Category  # noqa: F401
from .announcement import Announcement, AnnouncementImage  # noqa: F401
from .welcome_page import CarouselImage, WelcomeCard  # noqa: F401
from .audit_log import AuditLog  # noqa: F401
