from .analytics import router as analytics
from .auth import router as auth
from .download import router as download
from .files import router as files
from .rpc import router as rpc
from .share_links import router as share_links
from .teams import router as teams
from .users import router as users
