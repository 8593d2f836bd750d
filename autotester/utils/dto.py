from dataclasses import dataclass


@dataclass(frozen=True)
class CurrentUser:
    id: str
    username: str
    is_admin: bool = False

    def can_access(self, owner_id: str) -> bool:
        return self.is_admin or self.id == owner_id
