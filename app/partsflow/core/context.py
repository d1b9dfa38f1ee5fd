from dataclasses import dataclass


@dataclass(frozen=True)
class RequestContext:
    user_id: str | None
    store_id: str | None
    role: str | None
    trace_id: str

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"


def build_request_context(
    *,
    user_id: str | None,
    store_id: str | None,
    role: str | None,
    trace_id: str,
) -> RequestContext:
    return RequestContext(
        user_id=user_id,
        store_id=store_id,
        role=role,
        trace_id=trace_id,
    )

