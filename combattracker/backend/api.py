"""FastAPI endpoints for combat sessions, reference data and websocket sync."""

from __future__ import annotations

from collections import defaultdict
from datetime import datetime, timedelta
import logging
from typing import Any, Literal

from fastapi import Depends, FastAPI, Header, HTTPException, Query, Request, WebSocket, WebSocketDisconnect
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from .campaigns import CampaignService
from .config import load_settings
from .errors import TrackerError
from .models import CombatantRecord, MonsterFilters, NewCombatant, NewCustomAction, SessionRecord
from .monsters import MonsterService
from .security import generate_token
from .store import CombatStore, create_store
from .tracker import CombatTracker


logger = logging.getLogger(__name__)


class RecordModel(BaseModel):
    model_config = ConfigDict(from_attributes=True)


class SessionOut(RecordModel):
    id: str
    code: str
    created_at: datetime
    expires_at: datetime
    round: int
    current_turn_index: int
    is_active: bool
    campaign_id: str | None = None


class CustomActionOut(RecordModel):
    id: str
    name: str
    max_uses: int
    current_uses: int
    reset_on: str


class CombatantOut(RecordModel):
    id: str
    session_id: str
    name: str
    initiative: int
    max_hp: int | None
    current_hp: int | None
    is_player: bool
    claimed: bool
    action_available: bool
    bonus_action_available: bool
    reaction_available: bool
    movement_available: bool
    custom_actions: list[CustomActionOut]
    notes: str | None
    conditions: list[str]
    created_at: datetime
    order_index: int


class CampaignOut(RecordModel):
    id: str
    user_id: str
    title: str
    description: str | None
    settings: dict[str, Any]
    created_at: datetime
    updated_at: datetime


class PlayerOut(RecordModel):
    id: str
    campaign_id: str
    name: str
    max_hp: int
    current_hp: int
    ac: int
    initiative_bonus: int
    level: int
    ability_scores: dict[str, Any]
    notes: str | None
    created_at: datetime
    updated_at: datetime


class CampaignStatsOut(RecordModel):
    player_count: int
    encounter_count: int


class MonsterOut(RecordModel):
    id: str
    name: str
    type: str | None
    size: str | None
    challenge_rating: float | None
    armor_class: int | None
    hit_points: int | None
    source: str | None
    is_homebrew: bool
    created_by: str | None
    created_at: datetime


class CreateSessionRequest(BaseModel):
    campaign_id: str | None = None


class CreateSessionResponse(BaseModel):
    session: SessionOut
    dm_token: str


class JoinSessionRequest(BaseModel):
    code: str = Field(min_length=6, max_length=6, pattern=r"^[A-Za-z0-9]{6}$")


class JoinSessionResponse(BaseModel):
    session: SessionOut
    player_token: str


class TokenEnvelope(BaseModel):
    token: str = Field(min_length=1)


class SessionPatch(TokenEnvelope):
    round: int | None = Field(default=None, ge=1)
    current_turn_index: int | None = Field(default=None, ge=0)


class ResetRequest(TokenEnvelope):
    reset_type: Literal["turn", "round"]


class RoleResponse(BaseModel):
    role: Literal["dm", "player"] | None


class VerifyResponse(BaseModel):
    is_dm: bool


class CustomActionIn(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    max_uses: int = Field(ge=0)
    reset_on: Literal["turn", "round", "manual"] = "manual"


class CombatantIn(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    initiative: int
    max_hp: int | None = Field(default=None, ge=0)
    current_hp: int | None = None
    is_player: bool = False
    player_token: str | None = None
    notes: str | None = None
    conditions: list[str] = Field(default_factory=list)
    custom_actions: list[CustomActionIn] = Field(default_factory=list)


class AddCombatantRequest(TokenEnvelope):
    combatant: CombatantIn


class CombatantChanges(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: str | None = Field(default=None, min_length=1, max_length=200)
    initiative: int | None = None
    max_hp: int | None = Field(default=None, ge=0)
    current_hp: int | None = None
    notes: str | None = None
    conditions: list[str] | None = None


class UpdateCombatantRequest(TokenEnvelope):
    changes: CombatantChanges


class ActionFlagsRequest(TokenEnvelope):
    action_available: bool | None = None
    bonus_action_available: bool | None = None
    reaction_available: bool | None = None
    movement_available: bool | None = None


class CampaignIn(BaseModel):
    title: str = Field(min_length=1, max_length=200)
    description: str | None = None
    settings: dict[str, Any] = Field(default_factory=dict)


class CampaignChanges(BaseModel):
    model_config = ConfigDict(extra="forbid")

    title: str | None = Field(default=None, min_length=1, max_length=200)
    description: str | None = None
    settings: dict[str, Any] | None = None


class PlayerIn(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    max_hp: int | None = Field(default=None, ge=0)
    current_hp: int | None = None
    ac: int | None = Field(default=None, ge=0)
    initiative_bonus: int | None = None
    level: int | None = Field(default=None, ge=1, le=20)
    ability_scores: dict[str, Any] | None = None
    notes: str | None = None


class MonsterIn(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    type: str | None = None
    size: str | None = None
    challenge_rating: float | None = Field(default=None, ge=0)
    armor_class: int | None = Field(default=None, ge=0)
    hit_points: int | None = Field(default=None, ge=0)


class MonsterChanges(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: str | None = Field(default=None, min_length=1, max_length=200)
    type: str | None = None
    size: str | None = None
    challenge_rating: float | None = Field(default=None, ge=0)
    armor_class: int | None = Field(default=None, ge=0)
    hit_points: int | None = Field(default=None, ge=0)


class MonsterFilterOptionsOut(BaseModel):
    types: list[str]
    sources: list[str]


def session_snapshot(session: SessionRecord, combatants: list[CombatantRecord]) -> dict[str, Any]:
    return {
        "type": "session.full",
        "session": SessionOut.model_validate(session).model_dump(mode="json"),
        "combatants": [CombatantOut.model_validate(c).model_dump(mode="json") for c in combatants],
    }


class SessionWebSocketHub:
    def __init__(self) -> None:
        self._connections: dict[str, set[WebSocket]] = defaultdict(set)

    async def connect(self, session_id: str, websocket: WebSocket) -> None:
        await websocket.accept()
        self._connections[session_id].add(websocket)

    def disconnect(self, session_id: str, websocket: WebSocket) -> None:
        connections = self._connections.get(session_id)
        if connections is None:
            return
        connections.discard(websocket)
        if not connections:
            self._connections.pop(session_id, None)

    async def send_snapshot(self, websocket: WebSocket, snapshot: dict[str, Any]) -> None:
        await websocket.send_json(snapshot)

    async def broadcast(self, session_id: str, snapshot: dict[str, Any]) -> None:
        stale_connections: list[WebSocket] = []
        for websocket in list(self._connections.get(session_id, set())):
            try:
                await self.send_snapshot(websocket, snapshot)
            except RuntimeError:
                stale_connections.append(websocket)
        for websocket in stale_connections:
            self.disconnect(session_id=session_id, websocket=websocket)


def require_user(x_user_id: str | None = Header(default=None)) -> str:
    """Return the end user forwarded by the authenticating gateway."""
    if not x_user_id:
        raise HTTPException(status_code=401, detail="Authentication required")
    return x_user_id


def create_app(
    store: CombatStore | None = None,
    server_salt: str | None = None,
    session_ttl: timedelta | None = None,
) -> FastAPI:
    settings = load_settings()
    app = FastAPI(title="Combat Tracker API", version="0.3.0")
    local_store = store if store is not None else create_store(settings.database_url)
    tracker = CombatTracker(
        store=local_store,
        server_salt=server_salt if server_salt is not None else settings.server_salt,
        session_ttl=session_ttl if session_ttl is not None else timedelta(hours=settings.session_ttl_hours),
    )
    campaigns = CampaignService(store=local_store)
    monsters = MonsterService(store=local_store)
    websocket_hub = SessionWebSocketHub()
    app.state.tracker = tracker
    app.state.websocket_hub = websocket_hub

    @app.exception_handler(TrackerError)
    async def handle_tracker_error(request: Request, exc: TrackerError) -> JSONResponse:
        return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})

    async def publish_session(session_id: str) -> None:
        session = await run_in_threadpool(local_store.get_session, session_id)
        if session is None:
            return
        combatants = await run_in_threadpool(tracker.get_combatants, session_id)
        snapshot = session_snapshot(session, combatants)
        await websocket_hub.broadcast(session_id=session_id, snapshot=snapshot)

    app.state.publish_session = publish_session

    def get_tracker() -> CombatTracker:
        return tracker

    def get_campaigns() -> CampaignService:
        return campaigns

    def get_monsters() -> MonsterService:
        return monsters

    @app.post("/api/sessions", response_model=CreateSessionResponse)
    def create_session(
        payload: CreateSessionRequest | None = None,
        x_user_id: str | None = Header(default=None),
        local_tracker: CombatTracker = Depends(get_tracker),
        service: CampaignService = Depends(get_campaigns),
    ) -> CreateSessionResponse:
        campaign_id = payload.campaign_id if payload is not None else None
        if campaign_id is not None:
            service.get_campaign(campaign_id, require_user(x_user_id))
        created = local_tracker.create_session(campaign_id=campaign_id)
        return CreateSessionResponse(
            session=SessionOut.model_validate(created.session),
            dm_token=created.dm_token,
        )

    @app.post("/api/sessions/join", response_model=JoinSessionResponse)
    def join_session(
        payload: JoinSessionRequest,
        local_tracker: CombatTracker = Depends(get_tracker),
    ) -> JoinSessionResponse:
        session = local_tracker.join_session(payload.code)
        return JoinSessionResponse(session=SessionOut.model_validate(session), player_token=generate_token())

    @app.get("/api/sessions/by-code/{code}/verify", response_model=VerifyResponse)
    def verify_dm_by_code(
        code: str,
        token: str = Query(min_length=1),
        local_tracker: CombatTracker = Depends(get_tracker),
    ) -> VerifyResponse:
        return VerifyResponse(is_dm=local_tracker.verify_dm_token_by_code(code, token))

    @app.get("/api/sessions/{session_id}", response_model=SessionOut)
    def get_session(session_id: str, local_tracker: CombatTracker = Depends(get_tracker)) -> SessionOut:
        return SessionOut.model_validate(local_tracker.get_session(session_id))

    @app.get("/api/sessions/{session_id}/role", response_model=RoleResponse)
    def get_role(
        session_id: str,
        token: str = Query(min_length=1),
        combatant_id: str | None = Query(default=None),
        local_tracker: CombatTracker = Depends(get_tracker),
    ) -> RoleResponse:
        role = local_tracker.resolve_role(session_id, token, combatant_id=combatant_id)
        return RoleResponse(role=role.value if role is not None else None)

    @app.patch("/api/sessions/{session_id}", response_model=SessionOut)
    async def patch_session(
        session_id: str,
        payload: SessionPatch,
        local_tracker: CombatTracker = Depends(get_tracker),
    ) -> SessionOut:
        if not await run_in_threadpool(local_tracker.verify_dm_token, session_id, payload.token):
            raise HTTPException(status_code=403, detail="Unauthorized: Invalid DM token")
        session = await run_in_threadpool(
            local_tracker.update_session,
            session_id,
            round=payload.round,
            current_turn_index=payload.current_turn_index,
        )
        await publish_session(session_id)
        return SessionOut.model_validate(session)

    @app.post("/api/sessions/{session_id}/end", response_model=SessionOut)
    async def end_session(
        session_id: str,
        payload: TokenEnvelope,
        local_tracker: CombatTracker = Depends(get_tracker),
    ) -> SessionOut:
        session = await run_in_threadpool(local_tracker.end_session, session_id, payload.token)
        await publish_session(session_id)
        return SessionOut.model_validate(session)

    @app.post("/api/sessions/{session_id}/advance", response_model=SessionOut)
    async def advance_turn(
        session_id: str,
        payload: TokenEnvelope,
        local_tracker: CombatTracker = Depends(get_tracker),
    ) -> SessionOut:
        session = await run_in_threadpool(local_tracker.advance_turn, session_id, payload.token)
        await publish_session(session_id)
        return SessionOut.model_validate(session)

    @app.post("/api/sessions/{session_id}/reset", response_model=list[CombatantOut])
    async def reset_actions(
        session_id: str,
        payload: ResetRequest,
        local_tracker: CombatTracker = Depends(get_tracker),
    ) -> list[CombatantOut]:
        combatants = await run_in_threadpool(
            local_tracker.reset_combatant_actions,
            session_id,
            payload.reset_type,
            payload.token,
        )
        await publish_session(session_id)
        return [CombatantOut.model_validate(c) for c in combatants]

    @app.get("/api/sessions/{session_id}/combatants", response_model=list[CombatantOut])
    def list_combatants(session_id: str, local_tracker: CombatTracker = Depends(get_tracker)) -> list[CombatantOut]:
        return [CombatantOut.model_validate(c) for c in local_tracker.get_combatants(session_id)]

    @app.post("/api/sessions/{session_id}/combatants", response_model=CombatantOut)
    async def add_combatant(
        session_id: str,
        payload: AddCombatantRequest,
        local_tracker: CombatTracker = Depends(get_tracker),
    ) -> CombatantOut:
        data = payload.combatant
        combatant = await run_in_threadpool(
            local_tracker.add_combatant,
            session_id,
            NewCombatant(
                name=data.name,
                initiative=data.initiative,
                max_hp=data.max_hp,
                current_hp=data.current_hp,
                is_player=data.is_player,
                player_token=data.player_token,
                notes=data.notes,
                conditions=tuple(data.conditions),
                custom_actions=tuple(
                    NewCustomAction(name=a.name, max_uses=a.max_uses, reset_on=a.reset_on)
                    for a in data.custom_actions
                ),
            ),
            payload.token,
        )
        await publish_session(session_id)
        return CombatantOut.model_validate(combatant)

    @app.patch("/api/combatants/{combatant_id}", response_model=CombatantOut)
    async def update_combatant(
        combatant_id: str,
        payload: UpdateCombatantRequest,
        local_tracker: CombatTracker = Depends(get_tracker),
    ) -> CombatantOut:
        changes = payload.changes.model_dump(exclude_unset=True)
        combatant = await run_in_threadpool(local_tracker.update_combatant, combatant_id, changes, payload.token)
        await publish_session(combatant.session_id)
        return CombatantOut.model_validate(combatant)

    @app.delete("/api/combatants/{combatant_id}", status_code=204)
    async def remove_combatant(
        combatant_id: str,
        token: str = Query(min_length=1),
        local_tracker: CombatTracker = Depends(get_tracker),
    ) -> None:
        combatant = await run_in_threadpool(local_store.get_combatant, combatant_id)
        await run_in_threadpool(local_tracker.remove_combatant, combatant_id, token)
        if combatant is not None:
            await publish_session(combatant.session_id)

    @app.post("/api/combatants/{combatant_id}/claim", response_model=CombatantOut)
    async def claim_combatant(
        combatant_id: str,
        payload: TokenEnvelope,
        local_tracker: CombatTracker = Depends(get_tracker),
    ) -> CombatantOut:
        combatant = await run_in_threadpool(local_tracker.claim_combatant, combatant_id, payload.token)
        await publish_session(combatant.session_id)
        return CombatantOut.model_validate(combatant)

    @app.patch("/api/combatants/{combatant_id}/actions", response_model=CombatantOut)
    async def update_actions(
        combatant_id: str,
        payload: ActionFlagsRequest,
        local_tracker: CombatTracker = Depends(get_tracker),
    ) -> CombatantOut:
        flags = payload.model_dump(exclude_none=True, exclude={"token"})
        combatant = await run_in_threadpool(local_tracker.update_combatant_actions, combatant_id, flags, payload.token)
        await publish_session(combatant.session_id)
        return CombatantOut.model_validate(combatant)

    @app.post("/api/combatants/{combatant_id}/custom-actions/{action_id}/use", response_model=CombatantOut)
    async def use_custom_action(
        combatant_id: str,
        action_id: str,
        payload: TokenEnvelope,
        local_tracker: CombatTracker = Depends(get_tracker),
    ) -> CombatantOut:
        combatant = await run_in_threadpool(local_tracker.use_custom_action, combatant_id, action_id, payload.token)
        await publish_session(combatant.session_id)
        return CombatantOut.model_validate(combatant)

    @app.get("/api/campaigns", response_model=list[CampaignOut])
    def list_campaigns(
        user_id: str = Depends(require_user),
        service: CampaignService = Depends(get_campaigns),
    ) -> list[CampaignOut]:
        return [CampaignOut.model_validate(c) for c in service.list_campaigns(user_id)]

    @app.post("/api/campaigns", response_model=CampaignOut)
    def create_campaign(
        payload: CampaignIn,
        user_id: str = Depends(require_user),
        service: CampaignService = Depends(get_campaigns),
    ) -> CampaignOut:
        campaign = service.create_campaign(
            user_id,
            title=payload.title,
            description=payload.description,
            settings=payload.settings,
        )
        return CampaignOut.model_validate(campaign)

    @app.get("/api/campaigns/{campaign_id}", response_model=CampaignOut)
    def get_campaign(
        campaign_id: str,
        user_id: str = Depends(require_user),
        service: CampaignService = Depends(get_campaigns),
    ) -> CampaignOut:
        return CampaignOut.model_validate(service.get_campaign(campaign_id, user_id))

    @app.patch("/api/campaigns/{campaign_id}", response_model=CampaignOut)
    def update_campaign(
        campaign_id: str,
        payload: CampaignChanges,
        user_id: str = Depends(require_user),
        service: CampaignService = Depends(get_campaigns),
    ) -> CampaignOut:
        changes = payload.model_dump(exclude_unset=True)
        return CampaignOut.model_validate(service.update_campaign(campaign_id, user_id, changes))

    @app.delete("/api/campaigns/{campaign_id}", status_code=204)
    def delete_campaign(
        campaign_id: str,
        user_id: str = Depends(require_user),
        service: CampaignService = Depends(get_campaigns),
    ) -> None:
        service.delete_campaign(campaign_id, user_id)

    @app.get("/api/campaigns/{campaign_id}/stats", response_model=CampaignStatsOut)
    def get_campaign_stats(
        campaign_id: str,
        user_id: str = Depends(require_user),
        service: CampaignService = Depends(get_campaigns),
    ) -> CampaignStatsOut:
        return CampaignStatsOut.model_validate(service.get_campaign_stats(campaign_id, user_id))

    @app.get("/api/campaigns/{campaign_id}/players", response_model=list[PlayerOut])
    def list_players(
        campaign_id: str,
        user_id: str = Depends(require_user),
        service: CampaignService = Depends(get_campaigns),
    ) -> list[PlayerOut]:
        return [PlayerOut.model_validate(p) for p in service.list_players(campaign_id, user_id)]

    @app.post("/api/campaigns/{campaign_id}/players", response_model=PlayerOut)
    def add_player(
        campaign_id: str,
        payload: PlayerIn,
        user_id: str = Depends(require_user),
        service: CampaignService = Depends(get_campaigns),
    ) -> PlayerOut:
        attributes = payload.model_dump(exclude={"name"})
        return PlayerOut.model_validate(service.add_player(campaign_id, user_id, payload.name, **attributes))

    @app.delete("/api/campaigns/{campaign_id}/players/{player_id}", status_code=204)
    def remove_player(
        campaign_id: str,
        player_id: str,
        user_id: str = Depends(require_user),
        service: CampaignService = Depends(get_campaigns),
    ) -> None:
        service.remove_player(campaign_id, user_id, player_id)

    @app.get("/api/monsters", response_model=list[MonsterOut])
    def list_monsters(
        type: str | None = None,
        challenge_rating_min: float | None = None,
        challenge_rating_max: float | None = None,
        is_homebrew: bool | None = None,
        source: str | None = None,
        service: MonsterService = Depends(get_monsters),
    ) -> list[MonsterOut]:
        filters = MonsterFilters(
            type=type,
            challenge_rating_min=challenge_rating_min,
            challenge_rating_max=challenge_rating_max,
            is_homebrew=is_homebrew,
            source=source,
        )
        return [MonsterOut.model_validate(m) for m in service.list_monsters(filters)]

    @app.get("/api/monsters/filters", response_model=MonsterFilterOptionsOut)
    def monster_filter_options(service: MonsterService = Depends(get_monsters)) -> MonsterFilterOptionsOut:
        options = service.get_filter_options()
        return MonsterFilterOptionsOut(types=options.types, sources=options.sources)

    @app.get("/api/monsters/{monster_id}", response_model=MonsterOut)
    def get_monster(monster_id: str, service: MonsterService = Depends(get_monsters)) -> MonsterOut:
        return MonsterOut.model_validate(service.get_monster(monster_id))

    @app.post("/api/monsters", response_model=MonsterOut)
    def create_monster(
        payload: MonsterIn,
        user_id: str = Depends(require_user),
        service: MonsterService = Depends(get_monsters),
    ) -> MonsterOut:
        attributes = payload.model_dump(exclude={"name"})
        return MonsterOut.model_validate(service.create_monster(user_id, payload.name, **attributes))

    @app.patch("/api/monsters/{monster_id}", response_model=MonsterOut)
    def update_monster(
        monster_id: str,
        payload: MonsterChanges,
        user_id: str = Depends(require_user),
        service: MonsterService = Depends(get_monsters),
    ) -> MonsterOut:
        changes = payload.model_dump(exclude_unset=True)
        return MonsterOut.model_validate(service.update_monster(monster_id, user_id, changes))

    @app.delete("/api/monsters/{monster_id}", status_code=204)
    def delete_monster(
        monster_id: str,
        user_id: str = Depends(require_user),
        service: MonsterService = Depends(get_monsters),
    ) -> None:
        service.delete_monster(monster_id, user_id)

    @app.websocket("/ws/sessions/{session_id}")
    async def session_ws(websocket: WebSocket, session_id: str) -> None:
        session = await run_in_threadpool(local_store.get_session, session_id)
        if session is None or not session.is_active:
            await websocket.close(code=1008)
            return

        await websocket_hub.connect(session_id=session_id, websocket=websocket)
        combatants = await run_in_threadpool(tracker.get_combatants, session_id)
        await websocket_hub.send_snapshot(websocket=websocket, snapshot=session_snapshot(session, combatants))

        try:
            while True:
                await websocket.receive_text()
        except WebSocketDisconnect:
            websocket_hub.disconnect(session_id=session_id, websocket=websocket)

    return app


app = create_app()
