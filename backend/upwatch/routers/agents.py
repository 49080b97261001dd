"""Agent push API endpoints."""
import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from ..database import get_db
from ..schemas.agent import AgentRegister, AgentRegisterResponse, AgentStatusReport, AgentStatusResponse
from ..services.agents import agent_service, AgentAuthError

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/agents", tags=["agents"])


@router.post("/register", response_model=AgentRegisterResponse, status_code=201)
async def register_agent(data: AgentRegister, db: AsyncSession = Depends(get_db)):
    """Register a new agent using the shared registration token.

    The response carries the agent's own token, which it must send with
    every status report.
    """
    try:
        agent = await agent_service.register(db, data)
    except AgentAuthError:
        logger.warning(f"Rejected registration for agent '{data.name}': invalid token")
        raise HTTPException(status_code=403, detail="Invalid registration token")

    return AgentRegisterResponse(id=agent.id, token=agent.token)


@router.post("/status", response_model=AgentStatusResponse)
async def report_status(data: AgentStatusReport, db: AsyncSession = Depends(get_db)):
    """Receive a heartbeat with host info and the latest metrics."""
    try:
        return await agent_service.handle_heartbeat(db, data)
    except AgentAuthError:
        raise HTTPException(status_code=403, detail="Unknown agent token")
