from pydantic import BaseModel
from typing import Literal, Optional

class SessionContext(BaseModel):
    """Authenticated caller, resolved once per request from the bearer token"""
    user_id: str
    role: Literal["student", "admin", "super_admin"]
    student_id: Optional[str] = None

    @property
    def is_admin(self) -> bool:
        return self.role in ("admin", "super_admin")

    def can_act_for(self, student_id: str, student_code: Optional[str] = None) -> bool:
        """Admins act for anyone; students only for themselves"""
        if self.is_admin:
            return True
        return self.student_id is not None and self.student_id in (student_id, student_code)
