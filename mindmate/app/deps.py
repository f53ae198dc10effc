# mindmate/app/deps.py
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, Header, HTTPException, Request

from mindmate.core.config import Settings, load_settings
from mindmate.domain.crisis import CrisisPolicy
from mindmate.domain.models import TranscriptWindow, UserIdentity
from mindmate.exceptions import ConfigError
from mindmate.infra.auth import SupabaseAuthGateway
from mindmate.infra.llm_client import ChatCompletionClient, load_chat_api_key
from mindmate.infra.repository import ChatRepository, create_repository
from mindmate.services.chat_service import ChatService, SessionContext, SessionRegistry
from mindmate.services.dashboard_service import DashboardService
from mindmate.usecases.analyze_message import ConversationAnalyzer

logger = logging.getLogger(__name__)


@dataclass
class AppServices:
    settings: Settings
    repository: ChatRepository
    analyzer: ConversationAnalyzer
    crisis_policy: CrisisPolicy
    registry: SessionRegistry
    dashboard: DashboardService
    auth: Optional[SupabaseAuthGateway] = None


def build_analyzer(settings: Settings, offline: bool = False) -> ConversationAnalyzer:
    """Analyzer over the chat API; without an API key every reply comes from the fallback."""
    if offline:
        return ConversationAnalyzer(None, history_limit=settings.history_limit)
    try:
        load_chat_api_key()
    except ConfigError as e:
        logger.warning("%s Running with fallback replies only.", e)
        return ConversationAnalyzer(None, history_limit=settings.history_limit)
    return ConversationAnalyzer(
        ChatCompletionClient.from_settings(settings),
        history_limit=settings.history_limit,
    )


def build_services(
    settings: Optional[Settings] = None,
    repository: Optional[ChatRepository] = None,
    analyzer: Optional[ConversationAnalyzer] = None,
    auth: Optional[SupabaseAuthGateway] = None,
) -> AppServices:
    settings = settings or load_settings()
    repository = repository or create_repository(settings)
    analyzer = analyzer or build_analyzer(settings)
    crisis_policy = CrisisPolicy(threshold=settings.crisis_threshold)

    if auth is None and settings.supabase_url and settings.supabase_key:
        auth = SupabaseAuthGateway.from_settings(settings)

    def _new_chat_service(user: UserIdentity) -> ChatService:
        context = SessionContext(user=user, window=TranscriptWindow(limit=settings.history_limit))
        return ChatService(repository, analyzer, crisis_policy, context)

    return AppServices(
        settings=settings,
        repository=repository,
        analyzer=analyzer,
        crisis_policy=crisis_policy,
        registry=SessionRegistry(_new_chat_service, idle_seconds=settings.session_idle_seconds),
        dashboard=DashboardService(repository),
        auth=auth,
    )


# ---------------------------
# FastAPI dependencies
# ---------------------------

def get_services(request: Request) -> AppServices:
    return request.app.state.services


def get_auth(services: AppServices = Depends(get_services)) -> SupabaseAuthGateway:
    if services.auth is None:
        raise HTTPException(status_code=503, detail="Authentication backend is not configured.")
    return services.auth


def bearer_token(authorization: Optional[str] = Header(None)) -> str:
    if not authorization:
        raise HTTPException(status_code=401, detail="Not signed in.")
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise HTTPException(status_code=401, detail="Not signed in.")
    return token.strip()


def get_current_user(
    token: str = Depends(bearer_token),
    auth: SupabaseAuthGateway = Depends(get_auth),
) -> UserIdentity:
    user = auth.get_user(token)
    if user is None:
        raise HTTPException(status_code=401, detail="Session expired. Please log in again.")
    return user


def get_chat_service(
    user: UserIdentity = Depends(get_current_user),
    services: AppServices = Depends(get_services),
) -> ChatService:
    return services.registry.get(user)
