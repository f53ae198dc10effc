# mindmate/app/routes_chat.py
from __future__ import annotations

import asyncio
import logging
from typing import Dict, List, Literal, Optional, Union

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from mindmate.app.deps import get_chat_service
from mindmate.domain.models import AnalysisResult, TurnResult
from mindmate.exceptions import ChatInputError, ExchangeInProgressError
from mindmate.infra.repository import Row
from mindmate.services.chat_service import ChatService

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/chat")

# ---------------------------
# Request schemas
# ---------------------------


class SendMessageRequest(BaseModel):
    message: str = Field(..., description="What the user typed")


# ---------------------------
# Response schemas
# ---------------------------


class MessageOut(BaseModel):
    content: str
    sender: str  # "user" | "bot"
    created_at: Optional[str] = None


class SessionOut(BaseModel):
    session_id: Optional[str] = None
    title: Optional[str] = None


class SessionResponse(BaseModel):
    status: Literal["ok"] = "ok"
    session: SessionOut
    messages: List[MessageOut]


class HistoryItem(BaseModel):
    id: str
    title: str
    active: bool


class HistoryResponse(BaseModel):
    status: Literal["ok"] = "ok"
    groups: Dict[str, List[HistoryItem]]
    counts: Dict[str, int]


class AnalysisOut(BaseModel):
    primary_emotion: str
    intensity: float
    hidden_emotion: Optional[str] = None
    risk_score: float
    distortion: Optional[str] = None
    source: str
    badge: Optional[str] = None


class FollowUpOut(BaseModel):
    text: str
    delay_ms: int


class SendMessageResponse(BaseModel):
    status: Literal["ok"] = "ok"
    reply: str
    analysis: Optional[AnalysisOut] = None
    follow_ups: List[FollowUpOut] = []
    session: SessionOut
    degraded: bool = False


class ChatErrorResponse(BaseModel):
    status: Literal["error"] = "error"
    error_type: str
    message: str


# ---------------------------
# Helpers
# ---------------------------


def _messages_out(rows: List[Row]) -> List[MessageOut]:
    return [
        MessageOut(
            content=row.get("content") or "",
            sender=row.get("sender") or "bot",
            created_at=str(row["created_at"]) if row.get("created_at") else None,
        )
        for row in rows
    ]


def _analysis_out(analysis: Optional[AnalysisResult]) -> Optional[AnalysisOut]:
    if analysis is None:
        return None
    return AnalysisOut(**analysis.to_dict(), badge=analysis.badge())


def _turn_out(turn: TurnResult) -> SendMessageResponse:
    return SendMessageResponse(
        reply=turn.reply,
        analysis=_analysis_out(turn.analysis),
        follow_ups=[
            FollowUpOut(text=m.text, delay_ms=int(round(m.delay_seconds * 1000)))
            for m in turn.follow_ups
        ],
        session=SessionOut(session_id=turn.session_id, title=turn.session_title),
        degraded=turn.degraded,
    )


def _session_response(service: ChatService, info: Dict[str, Optional[str]]) -> SessionResponse:
    return SessionResponse(
        session=SessionOut(session_id=info.get("session_id"), title=info.get("title")),
        messages=_messages_out(service.stored_messages()),
    )


def _busy(e: ExchangeInProgressError) -> ChatErrorResponse:
    logger.info("Request rejected while a reply is pending: %s", e)
    return ChatErrorResponse(error_type="exchange_in_progress", message=str(e))


# ---------------------------
# Routes
# ---------------------------


@router.get("/session", response_model=Union[SessionResponse, ChatErrorResponse])
async def current_session(service: ChatService = Depends(get_chat_service)):
    """
    Chat page entry point.

    - resumes the most recently updated conversation, or starts a new one
    - returns its stored messages in order
    """
    try:
        info = await asyncio.to_thread(service.load_or_create_session)
    except ExchangeInProgressError as e:
        return _busy(e)
    return await asyncio.to_thread(_session_response, service, info)


@router.post("/sessions", response_model=Union[SessionResponse, ChatErrorResponse])
async def new_session(service: ChatService = Depends(get_chat_service)):
    try:
        info = await asyncio.to_thread(service.new_conversation)
    except ExchangeInProgressError as e:
        return _busy(e)
    return SessionResponse(
        session=SessionOut(session_id=info.get("session_id"), title=info.get("title")),
        messages=[],
    )


@router.get("/sessions", response_model=HistoryResponse)
async def history(service: ChatService = Depends(get_chat_service)):
    result = await asyncio.to_thread(service.list_history)
    return HistoryResponse(**result)


@router.post("/sessions/{session_id}/open", response_model=Union[SessionResponse, ChatErrorResponse])
async def open_session(session_id: str, service: ChatService = Depends(get_chat_service)):
    try:
        await asyncio.to_thread(service.open_session, session_id)
    except ChatInputError as e:
        logger.warning("Open conversation rejected: %s", e)
        return ChatErrorResponse(error_type="not_found", message=str(e))
    except ExchangeInProgressError as e:
        return _busy(e)

    info = {"session_id": service.context.session_id, "title": service.context.session_title}
    return await asyncio.to_thread(_session_response, service, info)


@router.post("/messages", response_model=Union[SendMessageResponse, ChatErrorResponse])
async def send_message(req: SendMessageRequest, service: ChatService = Depends(get_chat_service)):
    """
    One chat exchange.

    - the reply is always present (model, salvaged, fallback or apology)
    - follow_ups carries the delayed safety message when the crisis policy fires
    """
    try:
        turn = await asyncio.to_thread(service.send_message, req.message)
    except ChatInputError as e:
        return ChatErrorResponse(error_type="input_error", message=str(e))
    except ExchangeInProgressError as e:
        return _busy(e)

    return _turn_out(turn)
