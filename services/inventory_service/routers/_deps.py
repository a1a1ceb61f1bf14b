"""Shared inventory access dependencies."""

from libs.auth.dependencies import require_roles
from libs.auth.models import INVENTORY_MANAGERS, ClubRole

require_inventory_manager = require_roles(*INVENTORY_MANAGERS)

# Members can look things up; only managers change stock.
require_inventory_reader = require_roles(ClubRole.MEMBER, *INVENTORY_MANAGERS)
