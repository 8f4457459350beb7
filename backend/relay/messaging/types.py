from enum import StrEnum
from typing import Annotated, Any, Literal

from pydantic import AfterValidator, BaseModel, BeforeValidator, ConfigDict, Field, TypeAdapter, field_validator
from pydantic.alias_generators import to_camel

from lobby.directory.models import RoomListing, RoomStatus
from relay.session.models import MAX_MEMBERS, MemberInfo
from shared.validators import validate_display_text


class ClientEventType(StrEnum):
    CREATE_ROOM = "createRoom"
    JOIN_ROOM = "joinRoom"
    REQUEST_START = "requestStart"
    GAME_ACTION = "gameAction"
    REQUEST_WAVE = "requestWave"
    REQUEST_PAUSE = "requestPause"
    REQUEST_RESTART = "requestRestart"
    GAME_STATE_UPDATE = "gameStateUpdate"
    ANNOUNCE_ROOM = "announceRoom"
    GET_ROOMS = "getRooms"
    PING = "ping"


class ServerEventType(StrEnum):
    SERVER_INFO = "serverInfo"
    ROOM_CREATED = "roomCreated"
    ROOM_JOINED = "roomJoined"
    PLAYER_JOINED = "playerJoined"
    PLAYER_LEFT = "playerLeft"
    HOST_LEFT = "hostLeft"
    GAME_START = "gameStart"
    REMOTE_ACTION = "remoteAction"
    FORCE_START_WAVE = "forceStartWave"
    FORCE_PAUSE = "forcePause"
    FORCE_RESTART = "forceRestart"
    FORCE_GAME_STATE = "forceGameState"
    ROOMS = "rooms"
    PONG = "pong"
    ERROR = "errorMsg"


class SessionErrorCode(StrEnum):
    NOT_FOUND = "not_found"
    UNJOINABLE = "unjoinable"
    SERVER_FULL = "server_full"
    INVALID_MESSAGE = "invalid_message"
    RATE_LIMITED = "rate_limited"


def _normalize_session_id(value: object) -> object:
    # Codes are typed by people; accept any case and stray whitespace.
    if isinstance(value, str):
        return value.strip().upper()
    return value


SessionId = Annotated[
    str,
    BeforeValidator(_normalize_session_id),
    Field(min_length=1, max_length=16, pattern=r"^[A-Z0-9]+$"),
]
DisplayName = Annotated[str, Field(min_length=1, max_length=50), AfterValidator(validate_display_text)]


class _WireModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class _OpaqueWireModel(_WireModel):
    """Payload whose undeclared keys are relayed to other clients untouched."""

    model_config = ConfigDict(extra="allow")

    @property
    def opaque(self) -> dict[str, Any]:
        return dict(self.model_extra or {})


# --- Inbound payloads ---


class CreateRoomData(_WireModel):
    display_name: DisplayName


class JoinRoomData(_WireModel):
    session_id: SessionId
    display_name: DisplayName


class SessionRefData(_WireModel):
    session_id: SessionId


class RequestStartData(_OpaqueWireModel):
    session_id: SessionId
    seed: int | str | None = None


class RelayData(_OpaqueWireModel):
    session_id: SessionId


class RequestPauseData(_WireModel):
    session_id: SessionId
    is_paused: bool


class AnnounceRoomData(_WireModel):
    session_id: SessionId
    host_name: DisplayName
    is_private: bool = False
    player_count: int = Field(default=1, ge=0, le=MAX_MEMBERS)
    status: RoomStatus = RoomStatus.WAITING


# --- Inbound envelopes ---


class CreateRoomMessage(BaseModel):
    event: Literal[ClientEventType.CREATE_ROOM] = ClientEventType.CREATE_ROOM
    data: CreateRoomData

    @field_validator("data", mode="before")
    @classmethod
    def _accept_bare_name(cls, v: object) -> object:
        return {"displayName": v} if isinstance(v, str) else v


class JoinRoomMessage(BaseModel):
    event: Literal[ClientEventType.JOIN_ROOM] = ClientEventType.JOIN_ROOM
    data: JoinRoomData


class RequestStartMessage(BaseModel):
    event: Literal[ClientEventType.REQUEST_START] = ClientEventType.REQUEST_START
    data: RequestStartData


class GameActionMessage(BaseModel):
    event: Literal[ClientEventType.GAME_ACTION] = ClientEventType.GAME_ACTION
    data: RelayData


class GameStateUpdateMessage(BaseModel):
    event: Literal[ClientEventType.GAME_STATE_UPDATE] = ClientEventType.GAME_STATE_UPDATE
    data: RelayData


def _accept_bare_session_id(v: object) -> object:
    return {"sessionId": v} if isinstance(v, str) else v


class RequestWaveMessage(BaseModel):
    event: Literal[ClientEventType.REQUEST_WAVE] = ClientEventType.REQUEST_WAVE
    data: Annotated[SessionRefData, BeforeValidator(_accept_bare_session_id)]


class RequestRestartMessage(BaseModel):
    event: Literal[ClientEventType.REQUEST_RESTART] = ClientEventType.REQUEST_RESTART
    data: Annotated[SessionRefData, BeforeValidator(_accept_bare_session_id)]


class RequestPauseMessage(BaseModel):
    event: Literal[ClientEventType.REQUEST_PAUSE] = ClientEventType.REQUEST_PAUSE
    data: RequestPauseData


class AnnounceRoomMessage(BaseModel):
    event: Literal[ClientEventType.ANNOUNCE_ROOM] = ClientEventType.ANNOUNCE_ROOM
    data: AnnounceRoomData


class GetRoomsMessage(BaseModel):
    event: Literal[ClientEventType.GET_ROOMS] = ClientEventType.GET_ROOMS
    data: Any = None


class PingMessage(BaseModel):
    event: Literal[ClientEventType.PING] = ClientEventType.PING
    data: Any = None


ClientMessage = Annotated[
    CreateRoomMessage
    | JoinRoomMessage
    | RequestStartMessage
    | GameActionMessage
    | GameStateUpdateMessage
    | RequestWaveMessage
    | RequestRestartMessage
    | RequestPauseMessage
    | AnnounceRoomMessage
    | GetRoomsMessage
    | PingMessage,
    Field(discriminator="event"),
]

_client_message_adapter: TypeAdapter[ClientMessage] = TypeAdapter(ClientMessage)


def parse_client_message(data: dict[str, Any]) -> ClientMessage:
    """Parse a decoded envelope into a typed client message."""
    return _client_message_adapter.validate_python(data)


# --- Outbound payloads ---


class ServerInfoData(_WireModel):
    name: str
    location: str
    region: str


class SessionRosterData(_WireModel):
    """Sent to a single connection when it creates or joins a session."""

    session_id: str
    members: list[MemberInfo]


class PlayerJoinedData(_WireModel):
    members: list[MemberInfo]


class PlayerLeftData(_WireModel):
    connection_id: str


class ForcePauseData(_WireModel):
    is_paused: bool


class RoomsData(_WireModel):
    rooms: list[RoomListing]


class ErrorData(_WireModel):
    code: SessionErrorCode
    reason: str


def server_event(event: ServerEventType, data: BaseModel | dict[str, Any] | None = None) -> dict[str, Any]:
    """Build an outbound envelope ready for encoding."""
    if isinstance(data, BaseModel):
        payload: Any = data.model_dump(mode="json", by_alias=True)
    else:
        payload = data
    return {"event": event.value, "data": payload}


def error_event(code: SessionErrorCode, reason: str) -> dict[str, Any]:
    return server_event(ServerEventType.ERROR, ErrorData(code=code, reason=reason))
