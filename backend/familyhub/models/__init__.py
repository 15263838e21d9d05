from .auth import User, AuthSession, ROLE_ADMIN, ROLE_VENDOR, ROLE_USER, ROLES
from .venues import Venue, VenueNews
from .tariffs import VenueEntitlement, VenueTariffHistory

__all__ = [
    'User', 'AuthSession',
    'ROLE_ADMIN', 'ROLE_VENDOR', 'ROLE_USER', 'ROLES',
    'Venue', 'VenueNews',
    'VenueEntitlement', 'VenueTariffHistory',
]
