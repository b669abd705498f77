"""Domain modules package."""

from app.modules.audit import models as audit_models  # noqa: F401
from app.modules.billing import models as billing_models  # noqa: F401
from app.modules.identity import models as identity_models  # noqa: F401
from app.modules.lessons import models as lessons_models  # noqa: F401
from app.modules.scheduling import models as scheduling_models  # noqa: F401
