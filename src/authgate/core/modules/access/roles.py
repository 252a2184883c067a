"""Role sets for protected operations.

Each set lists every role allowed explicitly. Adding a role grants nothing
until it is added to the sets that should include it.
"""

from authgate.core.modules.principal.models import Role

ADMIN_ONLY: frozenset[Role] = frozenset({Role.ADMIN})
ACCOUNT_ADMINS: frozenset[Role] = frozenset({Role.ADMIN, Role.COMPANY_ADMIN})
EVERYONE: frozenset[Role] = frozenset(Role)
