from careernet.models.user import User, Profile
from careernet.models.connection import ConnectionRequest, Connection

__all__ = ["User", "Profile", "ConnectionRequest", "Connection"]
