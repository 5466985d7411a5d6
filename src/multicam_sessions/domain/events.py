"""Change events fanned out to every device of a session."""

from dataclasses import dataclass
from uuid import UUID

from multicam_sessions.domain.sessions import DeviceRecord, SessionRecord

MEMBERSHIP_CHANGED = "membership_changed"
SESSION_STATUS_CHANGED = "session_status_changed"


@dataclass(frozen=True)
class MembershipChanged:
    """A device row was inserted or updated."""

    device: DeviceRecord

    @property
    def session_id(self) -> UUID:
        return self.device.session_id

    def to_payload(self) -> dict[str, object]:
        return {
            "type": MEMBERSHIP_CHANGED,
            "session_id": str(self.session_id),
            "record": self.device.to_dict(),
        }


@dataclass(frozen=True)
class SessionStatusChanged:
    """A session row was updated (status, timestamps or master link)."""

    session: SessionRecord

    @property
    def session_id(self) -> UUID:
        return self.session.id

    def to_payload(self) -> dict[str, object]:
        return {
            "type": SESSION_STATUS_CHANGED,
            "session_id": str(self.session_id),
            "record": self.session.to_dict(),
        }


SessionEvent = MembershipChanged | SessionStatusChanged
