from .user import User
from .organization import Organization, OrganizationInvite, OrganizationMember
from .task import Project, Task
from .timelog import TimeLogEntry
from .points import PointsLedgerEntry, PointsBalance, Reward, Redemption
from .presence import PresenceRecord, AttendanceCheckin
from .extension import ExtensionRequest
from .notification import Notification
