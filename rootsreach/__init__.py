"""
RootsReach - marketplace access core

Role-based access policy, account lockout, OTP verification and the FastAPI
plumbing that enforces them on top of MongoDB.
"""

# Access policy
from .security import (Action, Resource, Role, Scope, check_requirements,
                       get_required_permission_level, has_permission)
# Configuration
from .config import SecurityConfig
# Exceptions
from .exceptions import (AccountNotFoundError, ConfigurationError, OTPError,
                         RootsReachError)
# Domain model
from .models import Account

__version__ = "0.1.0"

__all__ = [
    # Policy
    "Role",
    "Resource",
    "Action",
    "Scope",
    "has_permission",
    "get_required_permission_level",
    "check_requirements",
    # Config
    "SecurityConfig",
    # Errors
    "RootsReachError",
    "ConfigurationError",
    "AccountNotFoundError",
    "OTPError",
    # Models
    "Account",
]
