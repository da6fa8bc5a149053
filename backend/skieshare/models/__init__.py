from .audit_log import AuditLog
from .download_log import DownloadLog
from .file import File
from .folder import Folder
from .share_link import SharedLink
from .team import Space, Team, TeamFileShare, TeamInvite, TeamMember, TeamPolicy
from .user import Profile, User

__all__ = [
    "AuditLog",
    "DownloadLog",
    "File",
    "Folder",
    "Profile",
    "SharedLink",
    "Space",
    "Team",
    "TeamFileShare",
    "TeamInvite",
    "TeamMember",
    "TeamPolicy",
    "User",
]
