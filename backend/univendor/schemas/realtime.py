from pydantic import BaseModel
from typing import Any, Optional

class RelayEvent(BaseModel):
    event: str
    data: Any = None

class ChannelAuthRequest(BaseModel):
    socket_id: str
    channel_name: str

class ChannelAuthResponse(BaseModel):
    auth: str

class MessagingConfig(BaseModel):
    backend: str
    channel: str
    auth_endpoint: str
    socket_path: str
    app_key: Optional[str] = None
