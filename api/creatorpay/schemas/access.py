from pydantic import BaseModel


class PostAccessResponse(BaseModel):
    post_id: int
    can_view: bool
    gate: str
    reason: str | None = None


class LivestreamAccessResponse(BaseModel):
    can_watch: bool
    requires_ticket: bool
    has_ticket: bool
    requires_subscription: bool
    has_subscription: bool
    entry_price: int
    is_creator: bool
    channel_name: str | None = None
    reason: str | None = None
